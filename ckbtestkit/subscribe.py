"""Client for a node's JSON-RPC subscription interface over a TCP stream."""

from __future__ import annotations

import asyncio
import json
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable

NOT_A_SUBSCRIBE_PORT = (
    "not a subscribe port, please set ckb `tcp_listen_address` "
    "to use subscribe rpc feature"
)

_READ_SIZE = 64 * 1024
_ID_MODULUS = 1 << 64
_WHITESPACE = frozenset(b"\r\n \t")


class ProtocolError(OSError):
    """An error on a subscription stream: bad data or a failure response."""


@dataclass(frozen=True)
class Separator:
    """Envelope between messages: a single byte, or none at all when `byte` is None."""

    byte: int | None = ord("\n")

    @classmethod
    def empty(cls) -> "Separator":
        """No envelope; message boundaries are found by balancing JSON brackets."""
        return cls(None)

    @classmethod
    def newline(cls) -> "Separator":
        return cls(ord("\n"))


@dataclass
class StreamCodec:
    """Splits a byte stream into JSON messages and frames outgoing ones."""

    incoming_separator: Separator = field(default_factory=Separator.newline)
    outgoing_separator: Separator = field(default_factory=Separator.newline)

    @classmethod
    def stream_incoming(cls) -> "StreamCodec":
        """Codec whose input may be enveloped or not."""
        return cls(Separator.empty(), Separator.newline())

    def decode(self, buf: bytearray) -> bytes | None:
        """Remove and return the next complete message from `buf`, or None."""
        separator = self.incoming_separator.byte
        if separator is not None:
            position = buf.find(bytes([separator]))
            if position < 0:
                return None
            line = bytes(buf[:position])
            del buf[: position + 1]
            try:
                line.decode("utf-8")
            except UnicodeDecodeError as err:
                raise ProtocolError("invalid UTF-8") from err
            return line

        depth = 0
        in_str = False
        is_escaped = False
        start = 0
        whitespaces = 0
        for idx, byte in enumerate(buf):
            if byte in b"{[" and not in_str:
                if depth == 0:
                    start = idx
                depth += 1
            elif byte in b"}]" and not in_str:
                depth -= 1
            elif byte == ord('"') and not is_escaped:
                in_str = not in_str
            elif byte in _WHITESPACE:
                whitespaces += 1
            is_escaped = byte == ord("\\") and not is_escaped and in_str

            if depth == 0 and idx != start and idx - start + 1 > whitespaces:
                frame = bytes(buf[: idx + 1])
                del buf[: idx + 1]
                try:
                    frame.decode("utf-8")
                except UnicodeDecodeError:
                    # Messages that are not UTF-8 are dropped.
                    return None
                return frame
        return None

    def encode(self, msg: str) -> bytes:
        """Return the bytes to send for `msg`."""
        payload = msg.encode("utf-8")
        separator = self.outgoing_separator.byte
        if separator is not None:
            payload += bytes([separator])
        return payload


class _Framed:
    """A stream pair read and written through a codec."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        codec: StreamCodec,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._codec = codec
        self._buffer = bytearray()

    async def send(self, msg: str) -> None:
        self._writer.write(self._codec.encode(msg))
        await self._writer.drain()

    async def next(self) -> bytes | None:
        """Return the next frame, or None once the stream has ended."""
        while True:
            frame = self._codec.decode(self._buffer)
            if frame is not None:
                return frame
            chunk = await self._reader.read(_READ_SIZE)
            if not chunk:
                if self._buffer.strip():
                    raise ProtocolError("bytes remaining on stream")
                return None
            self._buffer += chunk

    async def close(self) -> None:
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except ConnectionError:
            pass


def _request(request_id: int, method: str, param: str) -> str:
    return (
        f'{{"id": {request_id}, "jsonrpc": "2.0", '
        f'"method": "{method}", "params": ["{param}"]}}'
    )


def _parse_output(frame: bytes) -> dict[str, Any] | None:
    """Return the frame as a JSON-RPC response, or None if it is something else."""
    try:
        value = json.loads(frame)
    except ValueError:
        return None
    if not isinstance(value, dict) or "id" not in value or "jsonrpc" not in value:
        return None
    if ("result" in value) == ("error" in value):
        return None
    return value


async def _next_output(framed: _Framed, pending: deque[bytes]) -> dict[str, Any]:
    """Read until a response arrives, keeping notifications read on the way."""
    while True:
        frame = await framed.next()
        if frame is None:
            raise BrokenPipeError("subscription stream closed")
        output = _parse_output(frame)
        if output is not None:
            return output
        pending.append(frame)


async def _subscribe(
    framed: _Framed,
    request_id: int,
    topic: str,
    topic_list: dict[str, str],
    pending: deque[bytes],
) -> None:
    await framed.send(_request(request_id, "subscribe", topic))
    output = await _next_output(framed, pending)
    if "error" in output:
        raise ProtocolError(json.dumps(output["error"]))
    subscription_id = output["result"]
    if not isinstance(subscription_id, str):
        raise TypeError(f"subscription id must be a string, got {subscription_id!r}")
    topic_list[subscription_id] = topic


class Client:
    """A subscription client that has no active topics."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._framed: _Framed | None = _Framed(reader, writer, StreamCodec.stream_incoming())
        self._id = 0

    @classmethod
    def _from_framed(cls, framed: _Framed, next_id: int) -> "Client":
        client = cls.__new__(cls)
        client._framed = framed
        client._id = next_id
        return client

    def _stream(self) -> _Framed:
        if self._framed is None:
            raise RuntimeError("client has been turned into a subscription handle")
        return self._framed

    async def subscribe(self, name: str) -> "Handle":
        """Subscribe to one topic and return the handle that receives it."""
        return await self.subscribe_list([name])

    async def subscribe_list(self, names: Iterable[str]) -> "Handle":
        """Subscribe to every topic in `names` and return one handle for them all."""
        framed = self._stream()
        topic_list: dict[str, str] = {}
        pending: deque[bytes] = deque()
        for topic in names:
            await _subscribe(framed, self._id, topic, topic_list, pending)
            self._id = (self._id + 1) % _ID_MODULUS
        self._framed = None
        return Handle(framed, topic_list, self._id, pending)

    async def close(self) -> None:
        """Close the connection unless a handle has taken it over."""
        if self._framed is not None:
            await self._framed.close()
            self._framed = None


class Handle:
    """Receives notifications for subscribed topics as (topic, value) pairs."""

    def __init__(
        self,
        framed: _Framed,
        topic_list: dict[str, str],
        rpc_id: int,
        pending: deque[bytes],
    ) -> None:
        self._framed = framed
        self._topic_list = topic_list
        self._rpc_id = rpc_id
        self._pending = pending

    def ids(self) -> list[str]:
        """Subscription ids."""
        return list(self._topic_list)

    def topics(self) -> list[str]:
        """Topic names."""
        return list(self._topic_list.values())

    def into_client(self) -> Client:
        """Return the underlying client; only allowed once no topic is left."""
        if self._topic_list:
            raise ValueError(f"handle is still subscribed to {self.topics()}")
        return Client._from_framed(self._framed, self._rpc_id)

    def _next_id(self) -> int:
        request_id = self._rpc_id
        self._rpc_id = (self._rpc_id + 1) % _ID_MODULUS
        return request_id

    async def subscribe(self, topic: str) -> "Handle":
        """Add `topic` unless it is already subscribed."""
        if topic in self._topic_list.values():
            return self
        await _subscribe(
            self._framed, self._rpc_id, topic, self._topic_list, self._pending
        )
        self._rpc_id = (self._rpc_id + 1) % _ID_MODULUS
        return self

    async def unsubscribe(self, topic: str) -> None:
        """Unsubscribe from `topic`; unknown topics are ignored."""
        subscription_id = next(
            (key for key, value in self._topic_list.items() if value == topic), None
        )
        if subscription_id is None:
            return
        await self._framed.send(_request(self._next_id(), "unsubscribe", subscription_id))
        # Notifications may arrive before the reply; keep them for later.
        output = await _next_output(self._framed, self._pending)
        if "error" in output:
            raise ProtocolError(json.dumps(output["error"]))
        del self._topic_list[subscription_id]

    async def unsubscribe_all(self) -> Client:
        """Unsubscribe from every topic and return the client."""
        for topic in list(self._topic_list.values()):
            await self.unsubscribe(topic)
        return Client._from_framed(self._framed, self._rpc_id)

    async def close(self) -> None:
        await self._framed.close()

    def _parse(self, frame: bytes) -> tuple[str, Any]:
        notification = json.loads(frame)
        params = notification["params"]
        result, subscription = params["result"], params["subscription"]
        try:
            value = json.loads(result)
        except ValueError as err:
            raise ProtocolError("invalid notification data") from err
        return self._topic_list[subscription], value

    def __aiter__(self) -> "Handle":
        return self

    async def __anext__(self) -> tuple[str, Any]:
        if self._pending:
            return self._parse(self._pending.popleft())
        frame = await self._framed.next()
        if frame is None:
            raise StopAsyncIteration
        return self._parse(frame)


async def open_client(host: str, port: int) -> Client:
    """Connect to a node's subscription port."""
    reader, writer = await asyncio.open_connection(host, port)
    return Client(reader, writer)


async def _subscribe_topic(host: str, port: int, topic: str) -> Handle:
    client = await open_client(host, port)
    try:
        return await client.subscribe_list([topic])
    except OSError as err:
        await client.close()
        raise ProtocolError(NOT_A_SUBSCRIBE_PORT) from err


async def subscribe_new_tip_block(host: str, port: int) -> Handle:
    return await _subscribe_topic(host, port, "new_tip_block")


async def subscribe_new_tip_header(host: str, port: int) -> Handle:
    return await _subscribe_topic(host, port, "new_tip_header")


async def subscribe_new_transaction(host: str, port: int) -> Handle:
    return await _subscribe_topic(host, port, "new_transaction")


async def subscribe_proposed_transaction(host: str, port: int) -> Handle:
    return await _subscribe_topic(host, port, "proposed_transaction")


async def subscribe_rejected_transaction(host: str, port: int) -> Handle:
    """Notifications are [pool transaction entry, reject reason] pairs."""
    return await _subscribe_topic(host, port, "rejected_transaction")