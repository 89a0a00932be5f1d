"""Node RPC client that speaks both the 2019 and the 2021 dialects."""

from __future__ import annotations

import json
import time
from typing import Any

from .jsonrpc import JsonRpcClient

SEND_TRANSACTION_WAIT_SECS = 20
_POLL_INTERVAL_SECS = 0.05


def _dumps(item: Any) -> str:
    return json.dumps(item, separators=(",", ":"))


def item2019_to_item2021(item: Any) -> Any:
    """Rewrite a 2019-dialect JSON item into the 2021 dialect."""
    raw = (
        _dumps(item)
        .replace("uncles_hash", "extra_hash")
        .replace(
            '"permanent_difficulty_in_dummy":',
            '"hardfork_features":[],"permanent_difficulty_in_dummy":',
        )
    )
    return json.loads(raw)


def item2021_to_item2019(item: Any) -> Any:
    """Rewrite a 2021-dialect JSON item into the 2019 dialect."""
    return json.loads(_dumps(item).replace("extra_hash", "uncles_hash"))


def _hex(value: int | None) -> str | None:
    return None if value is None else hex(value)


def _int(value: str) -> int:
    return int(value, 16)


class RpcClient:
    """Calls a node's RPC, converting between dialects when the node is pre-2021."""

    def __init__(self, uri: str, ckb2021: bool) -> None:
        self.ckb2021 = ckb2021
        self._inner2019 = JsonRpcClient(uri)
        self._inner2021 = JsonRpcClient(uri)

    def __copy__(self) -> "RpcClient":
        return RpcClient(self.url(), self.ckb2021)

    def url(self) -> str:
        return self._inner2021.url

    def inner(self) -> JsonRpcClient:
        return self._inner2021

    def _dialect_call(self, method: str, *args: Any) -> Any:
        if self.ckb2021:
            return self._inner2021.call(method, *args)
        return item2019_to_item2021(self._inner2019.call(method, *args))

    def get_block(self, block_hash: str) -> dict | None:
        return self._dialect_call("get_block", block_hash)

    def get_fork_block(self, block_hash: str) -> dict | None:
        return self._dialect_call("get_fork_block", block_hash)

    def get_block_by_number(self, number: int) -> dict | None:
        return self._dialect_call("get_block_by_number", _hex(number))

    def get_header(self, block_hash: str) -> dict | None:
        return self._dialect_call("get_header", block_hash)

    def get_header_by_number(self, number: int) -> dict | None:
        return self._dialect_call("get_header_by_number", _hex(number))

    def get_transaction(self, tx_hash: str) -> dict | None:
        return self._dialect_call("get_transaction", tx_hash)

    def get_block_hash(self, number: int) -> str | None:
        return self.inner().call("get_block_hash", _hex(number))

    def get_tip_header(self) -> dict:
        return self._dialect_call("get_tip_header")

    def get_live_cell(self, out_point: dict, with_data: bool) -> dict:
        if self.ckb2021:
            return self._inner2021.call("get_live_cell", out_point, with_data)
        out_point = item2019_to_item2021(out_point)
        return item2019_to_item2021(
            self._inner2019.call("get_live_cell", out_point, with_data)
        )

    def get_tip_block_number(self) -> int:
        return _int(self.inner().call("get_tip_block_number"))

    def get_current_epoch(self) -> dict:
        return self.inner().call("get_current_epoch")

    def get_epoch_by_number(self, number: int) -> dict | None:
        return self.inner().call("get_epoch_by_number", _hex(number))

    def get_consensus(self) -> dict:
        return self._dialect_call("get_consensus")

    def local_node_info(self) -> dict:
        return self.inner().call("local_node_info")

    def get_peers(self) -> list[dict]:
        return self.inner().call("get_peers")

    def get_banned_addresses(self) -> list[dict]:
        return self.inner().call("get_banned_addresses")

    def set_ban(
        self,
        address: str,
        command: str,
        ban_time: int | None = None,
        absolute: bool | None = None,
        reason: str | None = None,
    ) -> None:
        self.inner().call("set_ban", address, command, _hex(ban_time), absolute, reason)

    def get_block_template(
        self,
        bytes_limit: int | None = None,
        proposals_limit: int | None = None,
        max_version: int | None = None,
    ) -> dict:
        args = (_hex(bytes_limit), _hex(proposals_limit), _hex(max_version))
        if self.ckb2021:
            return self._inner2021.call("get_block_template2021", *args)
        return item2019_to_item2021(self._inner2019.call("get_block_template2019", *args))

    def submit_block(self, work_id: str, block: dict) -> str:
        if self.ckb2021:
            return self._inner2021.call("submit_block", work_id, block)
        return self._inner2019.call("submit_block", work_id, item2021_to_item2019(block))

    def get_blockchain_info(self) -> dict:
        return self.inner().call("get_blockchain_info")

    def get_block_median_time(self, block_hash: str) -> int | None:
        result = self.inner().call("get_block_median_time", block_hash)
        return None if result is None else _int(result)

    def send_transaction(self, tx: dict) -> str:
        return self.send_transaction_result(tx)

    def send_transaction_result(self, tx: dict) -> str:
        """Send `tx`; on a 2021 node, wait until the node knows its status."""
        if not self.ckb2021:
            return self._inner2019.call(
                "send_transaction", item2021_to_item2019(tx), "passthrough"
            )
        tx_hash = self._inner2021.call("send_transaction", tx, "passthrough")
        # Large-cycle scripts may still be running after a successful reply,
        # so wait until the transaction leaves the "unknown" state.
        start = time.monotonic()
        while time.monotonic() - start <= SEND_TRANSACTION_WAIT_SECS:
            status = self._inner2021.call("get_transaction", tx_hash)
            if status is not None and status["tx_status"]["status"] != "unknown":
                break
            time.sleep(_POLL_INTERVAL_SECS)
        return tx_hash

    def dry_run_transaction(self, tx: dict) -> dict:
        if self.ckb2021:
            return self._inner2021.call("dry_run_transaction", tx)
        return item2019_to_item2021(
            self._inner2019.call("dry_run_transaction", item2019_to_item2021(tx))
        )

    def send_alert(self, alert: dict) -> None:
        self.inner().call("send_alert", alert)

    def tx_pool_info(self) -> dict:
        return self.inner().call("tx_pool_info")

    def add_node(self, peer_id: str, address: str) -> None:
        self.inner().call("add_node", peer_id, address)

    def remove_node(self, peer_id: str) -> None:
        self.inner().call("remove_node", peer_id)

    def truncate(self, target_tip_hash: str) -> None:
        self.inner().call("truncate", target_tip_hash)

    def calculate_dao_maximum_withdraw(self, out_point: dict, block_hash: str) -> int:
        return _int(
            self.inner().call("calculate_dao_maximum_withdraw", out_point, block_hash)
        )

    def process_block_without_verify(self, block: dict, should_broadcast: bool) -> str | None:
        if self.ckb2021:
            return self._inner2021.call(
                "process_block_without_verify", block, should_broadcast
            )
        return self._inner2019.call(
            "process_block_without_verify", item2021_to_item2019(block), should_broadcast
        )

    def _require_ckb2021(self, method: str) -> None:
        if not self.ckb2021:
            raise RuntimeError(f"{method} requires a ckb2021 node")

    def calculate_dao_field(self, block_template: dict) -> str:
        self._require_ckb2021("calculate_dao_field")
        return self._inner2021.call("calculate_dao_field", block_template)

    def get_raw_tx_pool(self, verbose: bool | None = None) -> dict:
        self._require_ckb2021("get_raw_tx_pool")
        return self._inner2021.call("get_raw_tx_pool", verbose)