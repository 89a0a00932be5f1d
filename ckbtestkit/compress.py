"""Message compression with a one-byte flag header and raw snappy payloads.

Message layout: byte 0 carries the compress flag in its top bit (the other
seven bits are reserved); the remaining bytes are the payload, snappy
compressed when the flag is set.
"""

from __future__ import annotations

from . import logger

COMPRESSION_SIZE_THRESHOLD = 1024
UNCOMPRESS_FLAG = 0b0000_0000
COMPRESS_FLAG = 0b1000_0000
MAX_UNCOMPRESSED_LEN = 1 << 23

_BLOCK_SIZE = 1 << 16
_MAX_INPUT = 0xFFFFFFFF
_MAX_COPY = 64


class SnappyError(ValueError):
    """Raised when snappy data cannot be encoded or decoded."""


class InvalidDataError(ValueError):
    """Raised when a message cannot be decompressed."""


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def _read_varint(data: bytes) -> tuple[int, int]:
    value = 0
    for position, byte in enumerate(data[:5]):
        value |= (byte & 0x7F) << (7 * position)
        if not byte & 0x80:
            if value > _MAX_INPUT:
                raise SnappyError("snappy length header overflows 32 bits")
            return value, position + 1
    raise SnappyError("invalid snappy length header")


def _emit_literal(out: bytearray, literal: bytes) -> None:
    if not literal:
        return
    n = len(literal) - 1
    if n < 60:
        out.append(n << 2)
    else:
        width = (n.bit_length() + 7) // 8
        out.append((59 + width) << 2)
        out += n.to_bytes(width, "little")
    out += literal


def _emit_copy(out: bytearray, offset: int, length: int) -> None:
    while length > 0:
        chunk = min(length, _MAX_COPY)
        if 4 <= chunk <= 11 and offset < 2048:
            out.append(((offset >> 8) << 5) | ((chunk - 4) << 2) | 1)
            out.append(offset & 0xFF)
        else:
            out.append(((chunk - 1) << 2) | 2)
            out += offset.to_bytes(2, "little")
        length -= chunk


def _compress_block(block: bytes, out: bytearray) -> None:
    table: dict[bytes, int] = {}
    pos = 0
    literal_start = 0
    end = len(block)
    while pos + 4 <= end:
        key = block[pos:pos + 4]
        candidate = table.get(key)
        table[key] = pos
        if candidate is None:
            pos += 1
            continue
        length = 4
        while pos + length < end and block[candidate + length] == block[pos + length]:
            length += 1
        _emit_literal(out, block[literal_start:pos])
        _emit_copy(out, pos - candidate, length)
        pos += length
        literal_start = pos
    _emit_literal(out, block[literal_start:])


def snappy_compress(data: bytes) -> bytes:
    """Encode `data` in the raw snappy format."""
    data = bytes(data)
    if len(data) > _MAX_INPUT:
        raise SnappyError(f"input of {len(data)} bytes is too large for snappy")
    out = bytearray(_encode_varint(len(data)))
    for start in range(0, len(data), _BLOCK_SIZE):
        _compress_block(data[start:start + _BLOCK_SIZE], out)
    return bytes(out)


def snappy_decompressed_length(data: bytes) -> int:
    """Return the uncompressed length announced by a raw snappy header."""
    return _read_varint(bytes(data))[0]


def _append_copy(out: bytearray, offset: int, length: int) -> None:
    if offset == 0 or offset > len(out):
        raise SnappyError(f"invalid copy offset {offset}")
    start = len(out) - offset
    if offset >= length:
        out += out[start:start + length]
    else:
        pattern = bytes(out[start:])
        out += (pattern * (length // offset + 1))[:length]


def snappy_decompress(data: bytes) -> bytes:
    """Decode raw snappy data."""
    data = bytes(data)
    expected, pos = _read_varint(data)
    out = bytearray()
    end = len(data)
    while pos < end:
        tag = data[pos]
        pos += 1
        kind = tag & 0b11
        if kind == 0:
            length = tag >> 2
            if length >= 60:
                width = length - 59
                if pos + width > end:
                    raise SnappyError("truncated literal length")
                length = int.from_bytes(data[pos:pos + width], "little")
                pos += width
            length += 1
            if pos + length > end:
                raise SnappyError("truncated literal")
            out += data[pos:pos + length]
            pos += length
        else:
            if kind == 1:
                width = 1
                length = ((tag >> 2) & 0b111) + 4
            elif kind == 2:
                width = 2
                length = (tag >> 2) + 1
            else:
                width = 4
                length = (tag >> 2) + 1
            if pos + width > end:
                raise SnappyError("truncated copy offset")
            offset = int.from_bytes(data[pos:pos + width], "little")
            if kind == 1:
                offset |= (tag >> 5) << 8
            pos += width
            _append_copy(out, offset, length)
        if len(out) > expected:
            raise SnappyError("decompressed data exceeds announced length")
    if len(out) != expected:
        raise SnappyError("decompressed data is shorter than announced length")
    return bytes(out)


def compress(data: bytes) -> bytes:
    """Frame `data` as a message, snappy compressing it when it is large."""
    message = bytes([UNCOMPRESS_FLAG]) + bytes(data)
    if len(message) <= COMPRESSION_SIZE_THRESHOLD:
        return message
    try:
        compressed = snappy_compress(message[1:])
    except SnappyError as err:
        logger.debug("snappy compress error: %s", err)
        return message
    return bytes([COMPRESS_FLAG]) + compressed


def decompress(data: bytes) -> bytes:
    """Unframe a message produced by :func:`compress`."""
    data = bytes(data)
    if not data:
        raise InvalidDataError("empty message")
    if not data[0] & COMPRESS_FLAG:
        return data[1:]
    payload = data[1:]
    try:
        length = snappy_decompressed_length(payload)
    except SnappyError as err:
        logger.debug("snappy decompress_len error: %s", err)
        raise InvalidDataError(str(err)) from err
    if length > MAX_UNCOMPRESSED_LEN:
        logger.debug(
            "the maximum uncompressed bytes len limit is exceeded, limit: %s, len: %s",
            MAX_UNCOMPRESSED_LEN,
            length,
        )
        raise InvalidDataError("uncompressed length exceeds limit")
    try:
        return snappy_decompress(payload)
    except SnappyError as err:
        logger.debug("snappy decompress error: %s", err)
        raise InvalidDataError(str(err)) from err