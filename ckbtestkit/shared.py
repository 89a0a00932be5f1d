"""Session and per-protocol mailbox state shared by protocol and service handlers."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class SessionContext:
    """A peer session: its id and the remote address it is connected to."""

    id: int
    address: str


class SharedState:
    """Tracks open sessions and, for each, one mailbox per opened protocol.

    A mailbox is an unbounded queue: the protocol handler puts received
    messages into it and readers take them out. All methods are thread-safe.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, tuple[SessionContext, dict[int, queue.Queue]]] = {}
        self._lock = threading.RLock()

    def add_session(self, session: SessionContext) -> None:
        """Register `session`; an already known session id is left untouched."""
        with self._lock:
            self._sessions.setdefault(session.id, (session, {}))

    def remove_session(self, session_id: int) -> SessionContext | None:
        """Forget a session and its mailboxes, returning the session if it was known."""
        with self._lock:
            entry = self._sessions.pop(session_id, None)
        return None if entry is None else entry[0]

    def get_session(self, address: str) -> SessionContext | None:
        """Return the session connected to `address`, if any."""
        with self._lock:
            return next(
                (session for session, _ in self._sessions.values() if session.address == address),
                None,
            )

    def add_protocol(self, session: SessionContext, protocol_id: int) -> None:
        """Open a fresh mailbox for `protocol_id`, registering the session if needed."""
        with self._lock:
            _, mailboxes = self._sessions.setdefault(session.id, (session, {}))
            mailboxes[protocol_id] = queue.Queue()

    def remove_protocol(self, session_id: int, protocol_id: int) -> None:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is not None:
                entry[1].pop(protocol_id, None)

    def _mailbox(self, session_id: int, protocol_id: int) -> queue.Queue | None:
        with self._lock:
            entry = self._sessions.get(session_id)
            return None if entry is None else entry[1].get(protocol_id)

    def get_protocol_sender(self, session_id: int, protocol_id: int) -> queue.Queue | None:
        """Return the mailbox to put received messages into."""
        return self._mailbox(session_id, protocol_id)

    def get_protocol_receiver(self, session_id: int, protocol_id: int) -> queue.Queue | None:
        """Return the mailbox to take received messages from."""
        return self._mailbox(session_id, protocol_id)

    def get_opened_protocol_ids(self, session_id: int) -> list[int] | None:
        with self._lock:
            entry = self._sessions.get(session_id)
            return None if entry is None else list(entry[1])

    def get_sessions(self) -> list[SessionContext]:
        with self._lock:
            return [session for session, _ in self._sessions.values()]

    def get_session_ids(self) -> list[int]:
        with self._lock:
            return [session.id for session, _ in self._sessions.values()]