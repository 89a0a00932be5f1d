"""A minimal blocking JSON-RPC 2.0 client over HTTP."""

from __future__ import annotations

import itertools
import json
import threading
from typing import Any
from urllib.parse import urlparse

import requests

HTTP_TIMEOUT_SECS = 30

_session = requests.Session()


class RpcError(Exception):
    """A JSON-RPC failure response returned by the server."""

    def __init__(self, error: dict[str, Any]) -> None:
        self.error = dict(error)
        super().__init__(str(self))

    @property
    def code(self) -> int | None:
        return self.error.get("code")

    @property
    def message(self) -> str | None:
        return self.error.get("message")

    @property
    def data(self) -> Any:
        return self.error.get("data")

    def __str__(self) -> str:
        return json.dumps(self.error, separators=(",", ":"))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RpcError) and self.error == other.error

    def __hash__(self) -> int:
        return hash(str(self))


class IdGenerator:
    """Thread-safe generator of request ids, starting at 1."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            return next(self._counter)


class JsonRpcClient:
    """Sends JSON-RPC requests to a single HTTP endpoint."""

    def __init__(self, url: str) -> None:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f'invalid ckb uri {url!r}, e.g. "http://127.0.0.1:8114"')
        self.url = url
        self.id_generator = IdGenerator()

    def call(self, method: str, *args: Any) -> Any:
        """Call `method` with positional `args` and return its result.

        The suffixes "2019" and "2021" are stripped from the method name.
        Raises :class:`RpcError` when the server answers with a failure.
        """
        name = method.replace("2019", "").replace("2021", "")
        request = {
            "id": self.id_generator.next(),
            "jsonrpc": "2.0",
            "method": name,
            "params": list(args) if args else None,
        }
        response = _session.post(self.url, json=request, timeout=HTTP_TIMEOUT_SECS)
        output = response.json()
        if not isinstance(output, dict):
            raise ValueError(f"invalid JSON-RPC response: {output!r}")
        if "error" in output:
            raise RpcError(output["error"])
        if "result" not in output:
            raise ValueError(f"invalid JSON-RPC response: {output!r}")
        return output["result"]