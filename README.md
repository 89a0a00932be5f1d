# ckbtestkit

Building blocks for integration tests against CKB nodes that are already
running: a JSON-RPC client that speaks both the 2019 and the 2021 RPC
dialects, an asyncio client for the TCP subscription feed, the framing and
snappy compression used for p2p messages, the table of p2p protocols, and
chain and transaction-pool helpers that work on top of the RPC client.

Install with the `test` extra to run the test suite with pytest.

## Modules

| Module | Contents |
| --- | --- |
| `ckbtestkit.logger` | `set_log_target`, `log_target`, and `trace`, `debug`, `info`, `warn`, `error`. Records go to a logger named after the current thread's log target, or `ckbtestkit` when none is set. `error` also prints the message to stderr. |
| `ckbtestkit.util` | `find_available_port`, `temp_path`, `wait_until`, the `since_from_*` builders, `EpochNumberWithFraction`, `assert_result_eq`, and constants such as `SIGHASH_ALL_TYPE_HASH`. |
| `ckbtestkit.compress` | `compress` / `decompress` for the one-byte-flag message framing, and a raw snappy codec (`snappy_compress`, `snappy_decompress`, `snappy_decompressed_length`). |
| `ckbtestkit.protocols` | `SupportProtocols` (ids, names, supported versions, maximum frame lengths) and `BlockingFlag`. |
| `ckbtestkit.jsonrpc` | `JsonRpcClient`, `IdGenerator` and `RpcError`. |
| `ckbtestkit.rpc` | `RpcClient` and the dialect converters `item2019_to_item2021` / `item2021_to_item2019`. |
| `ckbtestkit.subscribe` | `open_client`, `Client`, `Handle`, `StreamCodec`, `Separator` and `subscribe_new_tip_block` and its siblings. |
| `ckbtestkit.shared` | `SessionContext` and `SharedState`: sessions and one queue per opened protocol. |
| `ckbtestkit.node_chain` | `ChainMixin` with block, header, transaction and tx-pool helpers, plus `transaction_data` / `block_data`. |

## RPC

```python
from ckbtestkit.rpc import RpcClient

client = RpcClient("http://127.0.0.1:8114/", True)   # False for a pre-2021 node
tip = client.get_tip_block_number()                  # int
header = client.get_header_by_number(tip)            # dict, 2021 layout
pool = client.tx_pool_info()
```

Results are the node's JSON objects as dictionaries. Methods that take block
numbers accept ints and send them as hex strings. With `ckb2021=False`,
replies are rewritten into the 2021 layout (`uncles_hash` becomes
`extra_hash`, consensus gains an empty `hardfork_features`) and blocks and
transactions are rewritten back before they are sent. `calculate_dao_field`
and `get_raw_tx_pool` raise `RuntimeError` on a pre-2021 client. A failure
answer from the node raises `ckbtestkit.jsonrpc.RpcError`.

`send_transaction` on a 2021 node waits up to 20 seconds until
`get_transaction` reports a status other than `unknown`.

## Chain helpers

`ChainMixin` needs `rpc_client()`, `genesis_block()` and `node_name()` from
the class it is mixed into:

```python
from ckbtestkit.node_chain import ChainMixin
from ckbtestkit.rpc import RpcClient


class LocalNode(ChainMixin):
    def __init__(self, url):
        self._rpc = RpcClient(url, True)
        self._genesis = self._rpc.get_block_by_number(0)

    def rpc_client(self):
        return self._rpc

    def genesis_block(self):
        return self._genesis

    def node_name(self):
        return "local"


node = LocalNode("http://127.0.0.1:8114/")
print(node.genesis_cellbase_hash(), node.get_tip_block_number())
node.wait_for_tx_pool()          # raises TimeoutError if the pool never catches up
```

Missing blocks or headers raise `LookupError`.

## Subscriptions

```python
from ckbtestkit.subscribe import subscribe_new_tip_header

handle = await subscribe_new_tip_header("127.0.0.1", 18114)
async for topic, header in handle:
    print(topic, header["inner"]["number"])
```

`Handle.subscribe` adds topics, `Handle.unsubscribe` and
`Handle.unsubscribe_all` remove them; notifications that arrive while a
reply is awaited are kept and delivered later.

## Utilities

```python
from ckbtestkit.compress import compress, decompress
from ckbtestkit.util import EpochNumberWithFraction, since_from_relative_block_number, wait_until

since = since_from_relative_block_number(5)
epoch = EpochNumberWithFraction(number=10, index=1, length=100)
assert EpochNumberWithFraction.from_full_value(epoch.full_value()) == epoch
assert decompress(compress(b"payload")) == b"payload"
assert wait_until(10, lambda: node.get_tip_block_number() >= 3)
```

Messages longer than 1024 bytes are snappy compressed; `decompress` raises
`InvalidDataError` for empty or corrupt input and for payloads that announce
more than 8 MiB.

## What this package does not do

- It does not launch, stop or configure node processes, and it does not
  prepare working directories; it works with nodes that are already running.
- It has no type for a group of nodes, and no helpers for connecting nodes
  to each other, waiting for them to sync, or waiting for bans.
- It does not open p2p connections itself: `compress`, `SupportProtocols`
  and `SharedState` are the pieces a p2p client would use, but there is no
  connector that dials a node.
- It has no cell indexer and no command-line command.