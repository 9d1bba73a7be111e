"""Error taxonomy for mirror-relay.

Two families live here.  Per-attempt failures (``AttemptError`` and its
subclasses) are raised by the executor or the attempt loop and are
always caught and classified inside ``Dispatcher.request()``.  Terminal
errors are the only ones a caller ever sees.

``StructuredErrorResponse`` maps any exception to a machine-readable
``{"error", "code", "request_id"}`` payload without leaking internals.
"""

from __future__ import annotations

from pydantic import BaseModel


class MirrorRelayError(Exception):
    """Base exception for all mirror-relay errors."""


# ── Per-attempt failures ────────────────────────────────────────────────


class AttemptError(MirrorRelayError):
    """A single attempt against a single host failed.

    Attributes:
        host: Host the attempt targeted (empty if unknown).
    """

    retryable: bool = True

    def __init__(self, host: str, detail: str = "") -> None:
        self.host = host
        self.detail = detail
        msg = f"{self.kind} on '{host}'"
        if detail:
            msg += f" — {detail}"
        super().__init__(msg)

    @property
    def kind(self) -> str:
        return "attempt failed"


class AttemptTimeoutError(AttemptError):
    """The attempt exceeded its deadline and was cancelled."""

    def __init__(self, host: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(host, f"no response within {timeout_seconds}s")

    @property
    def kind(self) -> str:
        return "Timeout"


class NetworkError(AttemptError):
    """The transport could not reach the host (DNS, refused, TLS)."""

    @property
    def kind(self) -> str:
        return "Network error"


class AttemptAbortedError(AttemptError):
    """The in-flight attempt was cancelled by ``RequestExecutor.abort_all``."""

    retryable = False

    @property
    def kind(self) -> str:
        return "Aborted"


class HttpStatusError(AttemptError):
    """The host answered with a status outside ``[200, 400)``.

    5xx is retryable.  4xx is not a health signal worth retrying on the
    same host, but the dispatcher still advances to the next candidate.
    """

    def __init__(self, host: str, status: int, status_text: str = "") -> None:
        self.status = status
        self.status_text = status_text
        super().__init__(host, f"HTTP {status} {status_text}".rstrip())

    @property
    def kind(self) -> str:
        return "HTTP error"

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status >= 500


class CircuitOpenSkip(AttemptError):
    """Internal skip reason: the host's breaker is open.  Never raised."""

    retryable = False

    def __init__(self, host: str, retry_after: float) -> None:
        self.retry_after = max(0.0, retry_after)
        super().__init__(host, f"retry after {self.retry_after:.1f}s")

    @property
    def kind(self) -> str:
        return "Circuit open"


# ── Terminal errors ─────────────────────────────────────────────────────


class ConfigValidationError(MirrorRelayError):
    """Raised at construction when the config snapshot is invalid."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid relay configuration: {detail}")


class AllHostsUnavailableError(MirrorRelayError):
    """The retry budget was exhausted without a successful response.

    Attributes:
        attempts:   Budget slots consumed (skips included).
        last_error: Last per-attempt failure, or ``None`` if every slot
                    was a circuit skip.
    """

    def __init__(
        self,
        attempts: int,
        last_error: AttemptError | None = None,
        detail: str = "",
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        msg = f"All hosts unavailable after {attempts} attempt(s)"
        if detail:
            msg += f" — {detail}"
        elif last_error is not None:
            msg += f" — last error: {last_error}"
        super().__init__(msg)


class NoHealthyHostsError(AllHostsUnavailableError):
    """No configured host passed the usability filter; nothing was sent."""

    def __init__(self, host_count: int) -> None:
        self.host_count = host_count
        super().__init__(0, detail=f"none of {host_count} host(s) is usable")


class RateLimitExceededError(MirrorRelayError):
    """Admission denied by the per-minute call ceiling."""

    def __init__(self, limit: int, retry_after: float) -> None:
        self.limit = limit
        self.retry_after = max(0.0, retry_after)
        super().__init__(f"Rate limit of {limit}/min exceeded — retry after {self.retry_after:.1f}s")


class NotInitializedError(MirrorRelayError):
    """``request()`` was called before ``Dispatcher.start()``."""

    def __init__(self, detail: str = "Dispatcher not started") -> None:
        super().__init__(detail)


class DispatcherShutdownError(NotInitializedError):
    """``request()`` was called after ``Dispatcher.shutdown()``."""

    def __init__(self) -> None:
        super().__init__("Dispatcher has been shut down")


class StructuredErrorResponse(BaseModel):
    """Structured error payload — ``{"error", "code", "request_id"}``."""

    error: str
    code: str
    request_id: str

    @classmethod
    def from_exception(cls, exc: Exception, request_id: str) -> "StructuredErrorResponse":
        """Create from an exception, mapping to machine-readable codes.

        Never leaks internal details for unhandled exceptions.
        """
        # Order matters: subclasses before their parents.
        for exc_type, code in _ERROR_CODES:
            if isinstance(exc, exc_type):
                return cls(error=str(exc), code=code, request_id=request_id)
        return cls(
            error="An internal error occurred",
            code="INTERNAL_ERROR",
            request_id=request_id,
        )


_ERROR_CODES: tuple[tuple[type[Exception], str], ...] = (
    (RateLimitExceededError, "RATE_LIMITED"),
    (NoHealthyHostsError, "NO_HEALTHY_HOSTS"),
    (AllHostsUnavailableError, "ALL_HOSTS_UNAVAILABLE"),
    (ConfigValidationError, "CONFIG_INVALID"),
    (DispatcherShutdownError, "SHUTDOWN"),
    (NotInitializedError, "NOT_INITIALIZED"),
    (MirrorRelayError, "RELAY_ERROR"),
)
