import asyncio
import contextlib
import json
from contextlib import asynccontextmanager

import pytest

from ckbtestkit.subscribe import (
    Client,
    ProtocolError,
    Separator,
    StreamCodec,
    open_client,
    subscribe_new_tip_block,
    subscribe_rejected_transaction,
)


def _success(request, result):
    return {"jsonrpc": "2.0", "result": result, "id": request["id"]}


def _notification(subscription, payload):
    return {
        "jsonrpc": "2.0",
        "method": "subscribe",
        "params": {"result": json.dumps(payload), "subscription": subscription},
    }


@asynccontextmanager
async def _fake_server(responder):
    seen = []

    async def handle(reader, writer):
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                request = json.loads(line)
                seen.append(request)
                messages = responder(request)
                if messages is None:
                    break
                for message in messages:
                    writer.write(json.dumps(message).encode() + b"\n")
                await writer.drain()
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield port, seen
    finally:
        server.close()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(server.wait_closed(), 5)


def _subscribing_responder(payload):
    def responder(request):
        if request["method"] == "subscribe":
            sub_id = f"0x{request['id']}"
            return [_success(request, sub_id), _notification(sub_id, payload)]
        return [_success(request, True)]

    return responder


def test_byte_separator_decodes_lines():
    codec = StreamCodec()
    buf = bytearray(b'{"a":1}\n{"b"')
    assert codec.decode(buf) == b'{"a":1}'
    assert buf == bytearray(b'{"b"')
    assert codec.decode(buf) is None


def test_byte_separator_rejects_invalid_utf8():
    codec = StreamCodec()
    buf = bytearray(b"\xff\xfe\n")
    with pytest.raises(ProtocolError):
        codec.decode(buf)
    assert buf == bytearray()


def test_stream_incoming_splits_concatenated_objects():
    codec = StreamCodec.stream_incoming()
    buf = bytearray(b'{"a":1}{"b":[2]}')
    assert codec.decode(buf) == b'{"a":1}'
    assert codec.decode(buf) == b'{"b":[2]}'
    assert buf == bytearray()


def test_stream_incoming_ignores_brackets_inside_strings():
    codec = StreamCodec.stream_incoming()
    buf = bytearray(b'{"a":"}{"}')
    assert codec.decode(buf) == b'{"a":"}{"}'


def test_stream_incoming_handles_escaped_quotes():
    codec = StreamCodec.stream_incoming()
    buf = bytearray(b'{"a":"\\"}"}')
    assert codec.decode(buf) == b'{"a":"\\"}"}'


def test_stream_incoming_incomplete_leaves_buffer():
    codec = StreamCodec.stream_incoming()
    buf = bytearray(b'{"a":[1,2')
    assert codec.decode(buf) is None
    assert buf == bytearray(b'{"a":[1,2')


def test_stream_incoming_whitespace_only_is_not_a_message():
    codec = StreamCodec.stream_incoming()
    buf = bytearray(b"\n\n \t")
    assert codec.decode(buf) is None
    assert buf == bytearray(b"\n\n \t")


def test_stream_incoming_keeps_leading_whitespace():
    codec = StreamCodec.stream_incoming()
    buf = bytearray(b'\n{"a":1}')
    assert codec.decode(buf) == b'\n{"a":1}'


def test_stream_incoming_drops_non_utf8_message():
    codec = StreamCodec.stream_incoming()
    buf = bytearray(b'{"\xff"}')
    assert codec.decode(buf) is None
    assert buf == bytearray()


def test_encode_appends_separator():
    assert StreamCodec().encode("abc") == b"abc\n"
    assert StreamCodec.stream_incoming().encode("abc") == b"abc\n"
    assert StreamCodec(Separator.empty(), Separator.empty()).encode("abc") == b"abc"


@pytest.mark.asyncio
async def test_subscribe_sends_request_and_receives_notification():
    async with _fake_server(_subscribing_responder({"number": "0x1"})) as (port, seen):
        client = await open_client("127.0.0.1", port)
        handle = await client.subscribe("new_tip_header")
        try:
            assert seen[0] == {
                "id": 0,
                "jsonrpc": "2.0",
                "method": "subscribe",
                "params": ["new_tip_header"],
            }
            assert handle.topics() == ["new_tip_header"]
            assert handle.ids() == ["0x0"]
            topic, value = await asyncio.wait_for(anext(handle), 5)
            assert (topic, value) == ("new_tip_header", {"number": "0x1"})
        finally:
            await handle.close()


@pytest.mark.asyncio
async def test_notification_before_reply_is_kept():
    def responder(request):
        return [_notification("0x7", {"n": 1}), _success(request, "0x7")]

    async with _fake_server(responder) as (port, _seen):
        client = await open_client("127.0.0.1", port)
        handle = await client.subscribe("new_transaction")
        try:
            assert await asyncio.wait_for(anext(handle), 5) == ("new_transaction", {"n": 1})
        finally:
            await handle.close()


@pytest.mark.asyncio
async def test_subscribe_list_uses_increasing_ids():
    async with _fake_server(_subscribing_responder({})) as (port, seen):
        client = await open_client("127.0.0.1", port)
        handle = await client.subscribe_list(["new_tip_block", "new_tip_header"])
        try:
            assert [request["id"] for request in seen] == [0, 1]
            assert sorted(handle.topics()) == ["new_tip_block", "new_tip_header"]
            await handle.subscribe("new_tip_block")
            assert len(seen) == 2
        finally:
            await handle.close()


@pytest.mark.asyncio
async def test_subscribe_failure_raises_protocol_error():
    def responder(request):
        return [{"jsonrpc": "2.0", "error": {"code": -32601, "message": "no"}, "id": request["id"]}]

    async with _fake_server(responder) as (port, _seen):
        client = await open_client("127.0.0.1", port)
        try:
            with pytest.raises(ProtocolError):
                await client.subscribe("new_tip_block")
        finally:
            await client.close()


@pytest.mark.asyncio
async def test_closed_stream_raises_broken_pipe():
    async with _fake_server(lambda request: None) as (port, _seen):
        client = await open_client("127.0.0.1", port)
        try:
            with pytest.raises(BrokenPipeError):
                await client.subscribe("new_tip_block")
        finally:
            await client.close()


@pytest.mark.asyncio
async def test_subscribe_new_tip_block_reports_wrong_port():
    async with _fake_server(lambda request: None) as (port, _seen):
        with pytest.raises(ProtocolError, match="not a subscribe port"):
            await subscribe_new_tip_block("127.0.0.1", port)


@pytest.mark.asyncio
async def test_unsubscribe_removes_topic_and_keeps_notifications():
    def responder(request):
        if request["method"] == "subscribe":
            return [_success(request, "0x0")]
        return [_notification("0x0", {"late": True}), _success(request, True)]

    async with _fake_server(responder) as (port, seen):
        client = await open_client("127.0.0.1", port)
        handle = await client.subscribe("new_tip_header")
        try:
            await handle.unsubscribe("new_tip_header")
            assert seen[-1] == {
                "id": 1,
                "jsonrpc": "2.0",
                "method": "unsubscribe",
                "params": ["0x0"],
            }
            assert handle.topics() == []
            with pytest.raises(KeyError):
                await asyncio.wait_for(anext(handle), 5)
            assert isinstance(handle.into_client(), Client)
        finally:
            await handle.close()


@pytest.mark.asyncio
async def test_into_client_requires_no_topics():
    async with _fake_server(_subscribing_responder({})) as (port, _seen):
        client = await open_client("127.0.0.1", port)
        handle = await client.subscribe("new_tip_block")
        try:
            with pytest.raises(ValueError):
                handle.into_client()
            resumed = await handle.unsubscribe_all()
            assert handle.topics() == []
            assert isinstance(resumed, Client)
        finally:
            await handle.close()


@pytest.mark.asyncio
async def test_rejected_transaction_pairs():
    payload = [{"tx_hash": "0x01"}, {"type": "Full"}]
    async with _fake_server(_subscribing_responder(payload)) as (port, _seen):
        handle = await subscribe_rejected_transaction("127.0.0.1", port)
        try:
            topic, value = await asyncio.wait_for(anext(handle), 5)
            assert topic == "rejected_transaction"
            assert value == payload
        finally:
            await handle.close()