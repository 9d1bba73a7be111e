"""Request options and the relay's response type."""

from __future__ import annotations

import json as jsonlib
from dataclasses import dataclass, field
from typing import Any


@dataclass
class RequestOptions:
    """Per-call options for ``Dispatcher.request``.

    Attributes:
        method:  HTTP method; only ``GET`` responses are cached.
        headers: Request headers sent to every candidate host.
        body:    Raw request body.
        json:    JSON-serializable body (ignored when ``body`` is set).
    """

    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | str | None = None
    json: Any = None

    @property
    def is_cacheable(self) -> bool:
        return self.method.upper() == "GET"


@dataclass(frozen=True)
class RelayResponse:
    """Response returned by ``Dispatcher.request``.

    Attributes:
        status:      HTTP status code.
        status_text: Reason phrase (e.g. ``"OK"``).
        headers:     Response headers, lower-cased names.
        body:        Raw response body.
        host:        Host that served the response (original host for cache hits).
        elapsed_ms:  Round-trip time of the serving attempt.
        from_cache:  ``True`` when served from ``ResponseCache``.
    """

    status: int
    status_text: str
    headers: dict[str, str]
    body: bytes
    host: str = ""
    elapsed_ms: float = 0.0
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return jsonlib.loads(self.body)
