"""httpx.AsyncClient stand-ins that replay queued responses."""

from __future__ import annotations

import json as jsonlib
from typing import Any


class DummyResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_data: Any = None,
        *,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self._json_data = json_data
        self.headers = headers or {}
        if content is not None:
            self.content = content
        else:
            self.content = jsonlib.dumps(json_data).encode() if json_data is not None else b""
        self.text = self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        if self._json_data is None:
            raise ValueError("no JSON body")
        return self._json_data


class DummyAsyncClient:
    def __init__(self, responses: list[DummyResponse | Exception]) -> None:
        self._responses = responses
        self.requests: list[dict[str, Any]] = []

    async def __aenter__(self) -> "DummyAsyncClient":  # pragma: no cover - helper
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:  # pragma: no cover - helper
        return None

    async def post(self, url: str, **kwargs: Any) -> DummyResponse:
        return self._record("POST", url, kwargs)

    async def get(self, url: str, **kwargs: Any) -> DummyResponse:
        return self._record("GET", url, kwargs)

    def _record(self, method: str, url: str, kwargs: dict[str, Any]) -> DummyResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        if not self._responses:
            raise RuntimeError("No more responses queued")
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def install_client(monkeypatch, responses: list[DummyResponse | Exception]) -> DummyAsyncClient:
    """Route every ``httpx.AsyncClient(...)`` to one replaying client."""
    client = DummyAsyncClient(responses)
    monkeypatch.setattr("httpx.AsyncClient", lambda *args, **kwargs: client)
    return client
