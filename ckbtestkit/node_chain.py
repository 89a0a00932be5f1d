"""Node operations on the chain and the transaction pool, built on the node's RPC client."""

from __future__ import annotations

import logging
import time
from typing import Any

from . import logger


def _int(value: str) -> int:
    return int(value, 16)


def _log_fine(msg: str, *args: Any) -> None:
    """Log at the finest level under the current log target."""
    target = logger.log_target() or logger.DEFAULT_LOGGER_NAME
    logging.getLogger(target).log(logger.TRACE, msg, *args)


def _without_hash(item: dict) -> dict:
    return {key: value for key, value in item.items() if key != "hash"}


def transaction_data(transaction: dict) -> dict:
    """Return the transaction as sent over RPC, without its computed hash."""
    return _without_hash(transaction)


def block_data(block: dict) -> dict:
    """Return the block as sent over RPC, without computed hashes."""
    return {
        "header": _without_hash(block["header"]),
        "uncles": [
            {"header": _without_hash(uncle["header"]), "proposals": uncle["proposals"]}
            for uncle in block.get("uncles", [])
        ],
        "transactions": [transaction_data(tx) for tx in block.get("transactions", [])],
        "proposals": block.get("proposals", []),
    }


class ChainMixin:
    """Chain queries for a node with `rpc_client()`, `genesis_block()` and `node_name()`."""

    tx_pool_timeout_secs: float = 10
    tx_pool_poll_interval_secs: float = 1

    def genesis_cellbase_hash(self) -> str:
        return self.genesis_block()["transactions"][0]["hash"]

    def dep_group_tx_hash(self) -> str:
        return self.genesis_block()["transactions"][1]["hash"]

    def _transaction_status(self, tx_hash: str) -> str | None:
        result = self.rpc_client().get_transaction(tx_hash)
        return None if result is None else result["tx_status"]["status"]

    def is_transaction_pending(self, tx_hash: str) -> bool:
        return self._transaction_status(tx_hash) == "pending"

    def is_transaction_proposed(self, tx_hash: str) -> bool:
        return self._transaction_status(tx_hash) == "proposed"

    def is_transaction_committed(self, tx_hash: str) -> bool:
        return self._transaction_status(tx_hash) == "committed"

    def is_transaction_unknown(self, tx_hash: str) -> bool:
        return self.rpc_client().get_transaction(tx_hash) is None

    def get_transaction_cycles(self, transaction: dict) -> int:
        """Return the cycles the node reports for a dry run of `transaction`.

        Cycles depend on the VM the node runs, so they may differ before and
        after the 2021 hard fork for scripts referenced by type.
        """
        result = self.rpc_client().dry_run_transaction(transaction_data(transaction))
        return _int(result["cycles"])

    def submit_block(self, block: dict) -> str:
        """Submit `block`, wait for the pool to catch up, and return the block hash."""
        block_hash = self.rpc_client().submit_block("", block_data(block))
        self.wait_for_tx_pool()
        return block_hash

    def submit_transaction(self, transaction: dict) -> str:
        return self.rpc_client().send_transaction(transaction_data(transaction))

    def get_tip_block(self) -> dict:
        rpc_client = self.rpc_client()
        tip_number = rpc_client.get_tip_block_number()
        block = rpc_client.get_block_by_number(tip_number)
        if block is None:
            raise LookupError(f"tip block {tip_number} does not exist")
        _log_fine("[Node %s] get_tip_block(), block: %r", self.node_name(), block)
        return block

    def get_tip_block_number(self) -> int:
        number = self.rpc_client().get_tip_block_number()
        _log_fine(
            "[Node %s] get_tip_block_number(), block_number: %s", self.node_name(), number
        )
        return number

    def get_block(self, block_hash: str) -> dict:
        block = self.rpc_client().get_block(block_hash)
        if block is None:
            raise LookupError(f"block {block_hash} does not exist")
        return block

    def get_block_by_number(self, number: int) -> dict:
        block = self.rpc_client().get_block_by_number(number)
        if block is None:
            raise LookupError(f"block {number} does not exist")
        return block

    def get_header_by_number(self, number: int) -> dict:
        header = self.rpc_client().get_header_by_number(number)
        if header is None:
            raise LookupError(f"header {number} does not exist")
        return header

    def get_tip_tx_pool_info(self) -> dict:
        """Return the pool info once the pool has caught up with the chain tip.

        Chain and pool are updated asynchronously, so the pool may still be
        on an older tip right after the chain moved.
        """
        tip_header = self.rpc_client().get_tip_header()
        start = time.monotonic()
        recent: dict[str, Any] = {}
        while time.monotonic() - start < self.tx_pool_timeout_secs:
            tx_pool_info = self.rpc_client().tx_pool_info()
            if tx_pool_info["tip_hash"] == tip_header["hash"]:
                return tx_pool_info
            recent = tx_pool_info
        raise TimeoutError(
            f"timeout to get_tip_tx_pool_info, tip_header={tip_header!r}, "
            f"tx_pool_info: {recent!r}"
        )

    def wait_for_tx_pool(self) -> None:
        """Wait until the pool tip equals the chain tip.

        The timeout restarts whenever the pool makes progress towards the chain tip.
        """
        rpc_client = self.rpc_client()
        chain_tip = rpc_client.get_tip_header()
        tx_pool_tip = rpc_client.tx_pool_info()
        if chain_tip["hash"] == tx_pool_tip["tip_hash"]:
            return
        start = time.monotonic()
        while time.monotonic() - start < self.tx_pool_timeout_secs:
            time.sleep(self.tx_pool_poll_interval_secs)
            chain_tip = rpc_client.get_tip_header()
            previous_tip_hash = tx_pool_tip["tip_hash"]
            tx_pool_tip = rpc_client.tx_pool_info()
            if chain_tip["hash"] == tx_pool_tip["tip_hash"]:
                return
            if previous_tip_hash != tx_pool_tip["tip_hash"] and _int(
                tx_pool_tip["tip_number"]
            ) < _int(chain_tip["number"]):
                start = time.monotonic()
        raise TimeoutError(
            "timeout to wait for tx pool,\n"
            f"\tchain   tip: {_int(chain_tip['number'])}, {chain_tip['hash']},\n"
            f"\ttx-pool tip: {_int(tx_pool_tip['tip_number'])}, {tx_pool_tip['tip_hash']}"
        )