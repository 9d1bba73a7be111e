"""Relay configuration.

Two layers, mirroring how the service is deployed:

* ``RelayConfig`` — the validated, immutable snapshot the dispatcher is
  built from (hosts, health checks, cache, performance, security,
  breaker).  Loaded from YAML via ``load_config`` or built in code.
* ``Settings`` — environment variables with the ``MIRROR_RELAY_`` prefix.
  ``build_relay_config`` turns them into a ``RelayConfig``, preferring a
  YAML file when ``CONFIG_PATH`` is set.

``RelayConfig.from_mapping``, ``load_config`` and ``build_relay_config``
report every validation failure as ``ConfigValidationError``.  Building
the models directly (``RelayConfig(...)``, ``model_validate``) is plain
pydantic and raises ``pydantic.ValidationError``.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from mirror_relay.core.errors import ConfigValidationError

_DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}


class HostProtocol(str, Enum):
    """Scheme used to reach a host."""

    HTTP = "http"
    HTTPS = "https"


# ── Snapshot models ─────────────────────────────────────────────────────


class HostDescriptor(BaseModel):
    """A primary origin or fallback mirror.

    Identity is ``host``; it must be unique within one config.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1)
    port: int = Field(default=443, ge=1, le=65535)
    protocol: HostProtocol = HostProtocol.HTTPS
    weight: float = Field(default=1.0, gt=0)
    region: str | None = None
    priority: int | None = None

    @model_validator(mode="before")
    @classmethod
    def default_port(cls, data: Any) -> Any:
        """Fill a missing port from the protocol (80 for http, 443 for https)."""
        if isinstance(data, dict) and data.get("port") is None:
            protocol = HostProtocol(data.get("protocol", HostProtocol.HTTPS))
            data = {**data, "port": _DEFAULT_PORTS[protocol.value]}
        return data

    @field_validator("host", mode="before")
    @classmethod
    def strip_host(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def host_is_bare_hostname(self) -> HostDescriptor:
        """Reject hosts that carry a scheme, port, path or userinfo."""
        try:
            parsed = httpx.URL(self.base_url)
        except httpx.InvalidURL as exc:
            raise ValueError(f"invalid host '{self.host}': {exc}") from None
        if parsed.host != self.host.lower() or parsed.port not in (None, self.port):
            raise ValueError(f"host must be a bare hostname, got '{self.host}'")
        return self

    @property
    def base_url(self) -> str:
        """Origin URL; the port is omitted when it is the scheme default."""
        scheme = self.protocol.value
        if self.port == _DEFAULT_PORTS[scheme]:
            return f"{scheme}://{self.host}"
        return f"{scheme}://{self.host}:{self.port}"


class HealthCheckConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    interval: float = Field(default=30.0, gt=0)  # seconds between probe cycles
    timeout: float = Field(default=5.0, gt=0)  # per-probe deadline
    endpoints: list[str] = Field(default_factory=lambda: ["/health"])

    @field_validator("endpoints")
    @classmethod
    def endpoints_root_relative(cls, v: list[str]) -> list[str]:
        for endpoint in v:
            if not endpoint.startswith("/"):
                raise ValueError(f"health_check endpoint must be root-relative, got '{endpoint}'")
        return v

    @model_validator(mode="after")
    def endpoints_required_when_enabled(self) -> HealthCheckConfig:
        if self.enabled and not self.endpoints:
            raise ValueError("health_check.endpoints must be non-empty when health checks are enabled")
        return self


class CacheConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    ttl: float = Field(default=300.0, gt=0)
    max_size: int = Field(default=100, ge=1)


class PerformanceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_concurrent_requests: int = Field(default=10, ge=1)
    request_timeout: float = Field(default=10.0, gt=0)
    retry_delay: float = Field(default=1.0, ge=0)  # base of the exponential backoff
    max_retries: int = Field(default=3, ge=0)


class SecurityConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    rate_limit_per_minute: int = Field(default=100, ge=0)  # 0 disables the limit


class BreakerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    failure_threshold: int = Field(default=3, ge=1)
    cooldown: float = Field(default=30.0, gt=0)


class RelayConfig(BaseModel):
    """Immutable configuration snapshot consumed by ``Dispatcher``."""

    model_config = ConfigDict(frozen=True)

    primary: HostDescriptor
    fallbacks: list[HostDescriptor] = Field(default_factory=list)
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    breaker: BreakerConfig = Field(default_factory=BreakerConfig)

    @model_validator(mode="after")
    def unique_hosts(self) -> RelayConfig:
        seen: set[str] = set()
        for descriptor in self.hosts:
            if descriptor.host in seen:
                raise ValueError(f"duplicate host '{descriptor.host}'")
            seen.add(descriptor.host)
        return self

    @property
    def hosts(self) -> list[HostDescriptor]:
        """Primary first, then fallbacks in configured order."""
        return [self.primary, *self.fallbacks]

    @classmethod
    def from_mapping(cls, data: Any) -> RelayConfig:
        """Validate *data*, translating pydantic errors to ``ConfigValidationError``."""
        if not isinstance(data, dict):
            raise ConfigValidationError("configuration root must be a mapping")
        if not isinstance(data.get("fallbacks", []), list):
            raise ConfigValidationError("fallbacks must be a list")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigValidationError(_format_validation_error(exc)) from exc


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "config"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def load_config(path: str | Path) -> RelayConfig:
    """Load and validate a YAML relay configuration file.

    Raises:
        ConfigValidationError: If the file is missing, not valid YAML,
            or fails validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigValidationError(f"config file not found: {config_path}")
    try:
        with open(config_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"invalid YAML in {config_path}: {exc}") from exc
    return RelayConfig.from_mapping(raw)


# ── Environment settings ────────────────────────────────────────────────


class Settings(BaseSettings):
    """Environment-driven relay settings.

    All fields can be overridden by environment variables prefixed with
    ``MIRROR_RELAY_``.  For example, ``MIRROR_RELAY_MAX_RETRIES=5``.
    ``FALLBACK_HOSTS`` is read as a JSON list.
    """

    # ── Config file (takes precedence over the flat fields) ─────────
    CONFIG_PATH: str = ""

    # ── Hosts ───────────────────────────────────────────────────────
    PRIMARY_HOST: str = ""
    PRIMARY_PORT: int | None = None
    USE_HTTPS: bool = True
    FALLBACK_HOSTS: list[str] = []

    # ── Performance ─────────────────────────────────────────────────
    REQUEST_TIMEOUT: float = 10.0
    MAX_RETRIES: int = 3
    RETRY_DELAY: float = 1.0  # Base delay in seconds (exponential backoff)
    MAX_CONCURRENT_REQUESTS: int = 10

    # ── Security ────────────────────────────────────────────────────
    RATE_LIMIT_RPM: int = 100  # 0 disables

    # ── Cache ───────────────────────────────────────────────────────
    CACHE_ENABLED: bool = True
    CACHE_TTL: float = 300.0
    CACHE_MAX_SIZE: int = 100

    # ── Health checks ───────────────────────────────────────────────
    HEALTH_CHECK_ENABLED: bool = True
    HEALTH_CHECK_INTERVAL: float = 30.0
    HEALTH_CHECK_TIMEOUT: float = 5.0
    HEALTH_CHECK_PATH: str = "/health"

    # ── Circuit breaker ─────────────────────────────────────────────
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures before OPEN
    CIRCUIT_BREAKER_COOLDOWN_SECONDS: float = 30.0

    model_config = {
        "env_prefix": "MIRROR_RELAY_",
    }


def build_relay_config(settings: Settings) -> RelayConfig:
    """Build a ``RelayConfig`` from *settings*.

    Uses the YAML file at ``CONFIG_PATH`` when set; otherwise assembles
    the snapshot from the flat environment fields.
    """
    if settings.CONFIG_PATH:
        return load_config(settings.CONFIG_PATH)

    if not settings.PRIMARY_HOST.strip():
        raise ConfigValidationError("primary host must be non-empty")

    protocol = HostProtocol.HTTPS if settings.USE_HTTPS else HostProtocol.HTTP
    return RelayConfig.from_mapping(
        {
            "primary": {
                "host": settings.PRIMARY_HOST,
                "port": settings.PRIMARY_PORT,
                "protocol": protocol,
            },
            "fallbacks": [{"host": host, "protocol": protocol} for host in settings.FALLBACK_HOSTS],
            "health_check": {
                "enabled": settings.HEALTH_CHECK_ENABLED,
                "interval": settings.HEALTH_CHECK_INTERVAL,
                "timeout": settings.HEALTH_CHECK_TIMEOUT,
                "endpoints": [settings.HEALTH_CHECK_PATH] if settings.HEALTH_CHECK_PATH else [],
            },
            "cache": {
                "enabled": settings.CACHE_ENABLED,
                "ttl": settings.CACHE_TTL,
                "max_size": settings.CACHE_MAX_SIZE,
            },
            "performance": {
                "max_concurrent_requests": settings.MAX_CONCURRENT_REQUESTS,
                "request_timeout": settings.REQUEST_TIMEOUT,
                "retry_delay": settings.RETRY_DELAY,
                "max_retries": settings.MAX_RETRIES,
            },
            "security": {"rate_limit_per_minute": settings.RATE_LIMIT_RPM},
            "breaker": {
                "failure_threshold": settings.CIRCUIT_BREAKER_THRESHOLD,
                "cooldown": settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
            },
        }
    )
