"""RequestExecutor — one HTTP attempt against one host.

Issues the request with a hard deadline and classifies the outcome by
type:

* any received status code (4xx/5xx included) → ``RelayResponse``
* deadline exceeded → ``AttemptTimeoutError`` (request cancelled)
* transport failure (DNS, refused, TLS, protocol, malformed URL) → ``NetworkError``
* cancelled by ``abort_all()`` → ``AttemptAbortedError``

Deciding whether a status is a success is the dispatcher's job.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from mirror_relay.core.errors import AttemptAbortedError, AttemptTimeoutError, NetworkError
from mirror_relay.models.request import RelayResponse, RequestOptions

logger = logging.getLogger(__name__)


def _host_of(url: str) -> str:
    try:
        return httpx.URL(url).host
    except httpx.InvalidURL:
        return url


class RequestExecutor:
    """Performs single attempts through a pooled ``httpx.AsyncClient``.

    Args:
        client:    Client to use; tests inject one built on
                   ``httpx.MockTransport``.  Created lazily if omitted.
        transport: Transport for the lazily-created client.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = client
        self._transport = transport
        self._in_flight: set[asyncio.Task] = set()
        self._aborting = False

        # Metrics
        self.total_attempts = 0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, follow_redirects=False)
        return self._client

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def execute(
        self,
        url: str,
        options: RequestOptions,
        timeout: float,
        *,
        host: str = "",
    ) -> RelayResponse:
        """Send one request to *url*, bounded by *timeout* seconds.

        Raises:
            AttemptTimeoutError: The deadline expired.
            NetworkError: The transport failed before a response arrived.
            AttemptAbortedError: ``abort_all()`` cancelled the attempt.
        """
        host = host or _host_of(url)
        self.total_attempts += 1
        start = time.monotonic()
        task = asyncio.ensure_future(self._send(url, options, timeout))
        self._in_flight.add(task)
        try:
            response = await asyncio.wait_for(task, timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise AttemptTimeoutError(host, timeout) from None
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            # InvalidURL is not a RequestError
            raise NetworkError(host, f"{type(exc).__name__}: {exc}") from exc
        except asyncio.CancelledError:
            if self._aborting:
                raise AttemptAbortedError(host, "relay shutting down") from None
            raise
        finally:
            self._in_flight.discard(task)

        elapsed_ms = (time.monotonic() - start) * 1000
        return RelayResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            body=response.content,
            host=host,
            elapsed_ms=round(elapsed_ms, 2),
        )

    async def _send(self, url: str, options: RequestOptions, timeout: float) -> httpx.Response:
        content = options.body.encode() if isinstance(options.body, str) else options.body
        return await self._get_client().request(
            options.method.upper(),
            url,
            headers=options.headers or None,
            content=content,
            json=options.json if content is None else None,
            timeout=timeout,
        )

    async def abort_all(self) -> int:
        """Cancel every in-flight attempt; returns how many were cancelled."""
        pending = list(self._in_flight)
        if not pending:
            return 0
        self._aborting = True
        try:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            # Let the awaiting execute() calls observe the cancellation
            await asyncio.sleep(0)
        finally:
            self._aborting = False
        logger.info("Aborted %d in-flight request(s)", len(pending))
        return len(pending)

    async def close(self) -> None:
        """Close the pooled httpx client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
