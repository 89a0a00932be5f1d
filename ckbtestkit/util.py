"""Shared helpers: ports, temporary paths, polling, `since` values and constants."""

from __future__ import annotations

import itertools
import os
import socket
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

SYSTEM_CELL_ALWAYS_SUCCESS_INDEX = 5
GENESIS_DEP_GROUP_TRANSACTION_INDEX = 1
GENESIS_SIGHASH_ALL_DEP_GROUP_CELL_INDEX = 0
SIGHASH_ALL_TYPE_HASH = "0x9bd7e06f3ecf4be0f2fcd2188b23f1b9fcc88e5d4b65a8637b17723bbda3cce8"
SIGHASH_ALL_DATA_HASH = "0x709f3fda12f561cfacf92273c57a98fede188a3f1a59b1f888d113f9cce08649"

FLAG_SINCE_RELATIVE = 1 << 63
FLAG_SINCE_BLOCK_NUMBER = 0
FLAG_SINCE_EPOCH_NUMBER_WITH_FRACTION = 1 << 61
FLAG_SINCE_TIMESTAMP = 1 << 62

TMP_DIR_ENV = "CKB_INTEGRATION_TEST_TMP"

_NUMBER_BITS = 24
_INDEX_OFFSET = 24
_INDEX_BITS = 16
_LENGTH_OFFSET = 40
_LENGTH_BITS = 16

_PORT_COUNTER = itertools.count(9000)
_PORT_ATTEMPTS = 2000


@dataclass(frozen=True)
class EpochNumberWithFraction:
    """An epoch number together with a fractional position inside the epoch."""

    number: int
    index: int
    length: int

    def __post_init__(self) -> None:
        for name, value, bits in (
            ("number", self.number, _NUMBER_BITS),
            ("index", self.index, _INDEX_BITS),
            ("length", self.length, _LENGTH_BITS),
        ):
            if not 0 <= value < (1 << bits):
                raise ValueError(f"epoch {name} {value} does not fit in {bits} bits")

    def full_value(self) -> int:
        """Pack the epoch into its 64-bit integer form."""
        return (
            (self.length << _LENGTH_OFFSET)
            | (self.index << _INDEX_OFFSET)
            | self.number
        )

    @classmethod
    def from_full_value(cls, value: int) -> "EpochNumberWithFraction":
        """Unpack an epoch from its 64-bit integer form."""
        return cls(
            number=value & ((1 << _NUMBER_BITS) - 1),
            index=(value >> _INDEX_OFFSET) & ((1 << _INDEX_BITS) - 1),
            length=(value >> _LENGTH_OFFSET) & ((1 << _LENGTH_BITS) - 1),
        )


def find_available_port() -> int:
    """Return a localhost TCP port that can currently be bound."""
    for _ in range(_PORT_ATTEMPTS):
        port = next(_PORT_COUNTER) % 65536
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind(("127.0.0.1", port))
            except OSError:
                continue
        return port
    raise RuntimeError("failed to allocate available port")


def temp_path(case_name: str, suffix: str) -> Path:
    """Return a fresh, not yet existing path inside the temporary directory."""
    prefix = "-".join(["ckb-it", case_name, suffix, ""])
    directory = tempfile.mkdtemp(prefix=prefix, dir=os.environ.get(TMP_DIR_ENV))
    os.rmdir(directory)
    return Path(directory)


def wait_until(timeout_secs: float, predicate: Callable[[], bool]) -> bool:
    """Poll `predicate` once a second until it holds or the timeout passes."""
    start = time.monotonic()
    while time.monotonic() - start <= timeout_secs:
        if predicate():
            return True
        time.sleep(1)
    return False


def since_from_relative_block_number(block_number: int) -> int:
    return FLAG_SINCE_RELATIVE | FLAG_SINCE_BLOCK_NUMBER | block_number


def since_from_absolute_block_number(block_number: int) -> int:
    return FLAG_SINCE_BLOCK_NUMBER | block_number


def since_from_relative_epoch_number_with_fraction(
    epoch_number_with_fraction: EpochNumberWithFraction,
) -> int:
    return (
        FLAG_SINCE_RELATIVE
        | FLAG_SINCE_EPOCH_NUMBER_WITH_FRACTION
        | epoch_number_with_fraction.full_value()
    )


def since_from_absolute_epoch_number_with_fraction(
    epoch_number_with_fraction: EpochNumberWithFraction,
) -> int:
    return FLAG_SINCE_EPOCH_NUMBER_WITH_FRACTION | epoch_number_with_fraction.full_value()


def since_from_relative_timestamp(timestamp: int) -> int:
    return FLAG_SINCE_RELATIVE | FLAG_SINCE_TIMESTAMP | timestamp


def since_from_absolute_timestamp(timestamp: int) -> int:
    return FLAG_SINCE_TIMESTAMP | timestamp


def _as_outcome(result: object) -> tuple[str, object]:
    if isinstance(result, BaseException):
        return ("err", str(result))
    return ("ok", result)


def assert_result_eq(left: object, right: object, message: str | None = None) -> None:
    """Assert two outcomes agree; exceptions match when one message contains the other."""
    left_outcome = _as_outcome(left)
    right_outcome = _as_outcome(right)
    if left_outcome[0] == "err" and right_outcome[0] == "err":
        left_text, right_text = left_outcome[1], right_outcome[1]
        if left_text in right_text or right_text in left_text:
            return
    elif left_outcome == right_outcome:
        return
    detail = f"left: {left_outcome!r}, right: {right_outcome!r}"
    raise AssertionError(f"{detail}: {message}" if message else detail)