"""mirror-relay — client-side failover across a primary origin and its mirrors.

Usage::

    from mirror_relay import Dispatcher, load_config

    async with Dispatcher(load_config("relay.yaml")) as relay:
        response = await relay.get("/api/v1/user/info")
"""

from mirror_relay.core.config import (
    HostDescriptor,
    HostProtocol,
    RelayConfig,
    Settings,
    build_relay_config,
    load_config,
)
from mirror_relay.core.errors import (
    AllHostsUnavailableError,
    ConfigValidationError,
    DispatcherShutdownError,
    MirrorRelayError,
    NoHealthyHostsError,
    NotInitializedError,
    RateLimitExceededError,
)
from mirror_relay.dispatcher import Dispatcher
from mirror_relay.models.request import RelayResponse, RequestOptions

__all__ = [
    "AllHostsUnavailableError",
    "ConfigValidationError",
    "Dispatcher",
    "DispatcherShutdownError",
    "HostDescriptor",
    "HostProtocol",
    "MirrorRelayError",
    "NoHealthyHostsError",
    "NotInitializedError",
    "RateLimitExceededError",
    "RelayConfig",
    "RelayResponse",
    "RequestOptions",
    "Settings",
    "build_relay_config",
    "load_config",
]
