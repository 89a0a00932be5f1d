"""The peer-to-peer protocols a node speaks, with their ids and limits."""

from __future__ import annotations

import enum
from dataclasses import dataclass

_CONNECTED = 0b0001
_DISCONNECTED = 0b0010
_RECEIVED = 0b0100
_NOTIFY = 0b1000


@dataclass
class BlockingFlag:
    """Which protocol callbacks may block; every callback may by default."""

    bits: int = _CONNECTED | _DISCONNECTED | _RECEIVED | _NOTIFY

    @property
    def connected(self) -> bool:
        return bool(self.bits & _CONNECTED)

    @property
    def disconnected(self) -> bool:
        return bool(self.bits & _DISCONNECTED)

    @property
    def received(self) -> bool:
        return bool(self.bits & _RECEIVED)

    @property
    def notify(self) -> bool:
        return bool(self.bits & _NOTIFY)

    def disable_all(self) -> None:
        self.bits = 0

    def disable_connected(self) -> None:
        self.bits &= ~_CONNECTED

    def disable_disconnected(self) -> None:
        self.bits &= ~_DISCONNECTED

    def disable_notify(self) -> None:
        self.bits &= ~_NOTIFY

    def disable_received(self) -> None:
        self.bits &= ~_RECEIVED


class SupportProtocols(enum.Enum):
    """All supported protocols, valued by protocol id."""

    PING = 0
    DISCOVERY = 1
    IDENTIFY = 2
    FEELER = 3
    DISCONNECT_MESSAGE = 4
    SYNC = 100
    RELAY = 101
    TIME = 102
    RELAY_V2 = 103
    ALERT = 110

    def protocol_id(self) -> int:
        return self.value

    def protocol_name(self) -> str:
        return _NAMES[self]

    def support_versions(self) -> list[str]:
        return list(_VERSIONS[self])

    def max_frame_length(self) -> int:
        return _MAX_FRAME_LENGTHS[self]

    def flag(self) -> BlockingFlag:
        flag = BlockingFlag()
        if self in _BLOCKING_RECEIVE:
            flag.disable_connected()
            flag.disable_disconnected()
            flag.disable_notify()
        else:
            flag.disable_all()
        return flag


_NAMES = {
    SupportProtocols.PING: "/ckb/ping",
    SupportProtocols.DISCOVERY: "/ckb/discovery",
    SupportProtocols.IDENTIFY: "/ckb/identify",
    SupportProtocols.FEELER: "/ckb/flr",
    SupportProtocols.DISCONNECT_MESSAGE: "/ckb/disconnectmsg",
    SupportProtocols.SYNC: "/ckb/syn",
    SupportProtocols.RELAY: "/ckb/rel",
    SupportProtocols.RELAY_V2: "/ckb/relay",
    SupportProtocols.TIME: "/ckb/tim",
    SupportProtocols.ALERT: "/ckb/alt",
}

# The early protocols keep "0.0.1" for compatibility with older peers.
_LEGACY_VERSIONS = ("0.0.1", "2")
_VERSIONS = {
    SupportProtocols.PING: _LEGACY_VERSIONS,
    SupportProtocols.DISCOVERY: _LEGACY_VERSIONS,
    SupportProtocols.IDENTIFY: _LEGACY_VERSIONS,
    SupportProtocols.FEELER: _LEGACY_VERSIONS,
    SupportProtocols.DISCONNECT_MESSAGE: _LEGACY_VERSIONS,
    SupportProtocols.SYNC: ("1", "2"),
    SupportProtocols.RELAY: ("1",),
    SupportProtocols.TIME: ("1", "2"),
    SupportProtocols.ALERT: ("1", "2"),
    SupportProtocols.RELAY_V2: ("2",),
}

_MAX_FRAME_LENGTHS = {
    SupportProtocols.PING: 1024,
    SupportProtocols.DISCOVERY: 512 * 1024,
    SupportProtocols.IDENTIFY: 2 * 1024,
    SupportProtocols.FEELER: 1024,
    SupportProtocols.DISCONNECT_MESSAGE: 1024,
    SupportProtocols.SYNC: 2 * 1024 * 1024,
    SupportProtocols.RELAY: 4 * 1024 * 1024,
    SupportProtocols.RELAY_V2: 4 * 1024 * 1024,
    SupportProtocols.TIME: 1024,
    SupportProtocols.ALERT: 128 * 1024,
}

_BLOCKING_RECEIVE = frozenset(
    {SupportProtocols.SYNC, SupportProtocols.RELAY, SupportProtocols.RELAY_V2}
)