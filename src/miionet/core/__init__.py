"""Core module - configuration, exceptions, and utilities."""

from .config import (
    MIIO_PORT,
    Config,
    DeviceEntry,
    NetworkConfig,
    SessionConfig,
    TokenStoreConfig,
    get_config,
    set_config,
)
from .exceptions import (
    CallTimeout,
    ConnectionFailure,
    DecryptFailure,
    HandshakeTimeout,
    MalformedPacket,
    MiioError,
    MissingToken,
    NoIdentifier,
    NoToken,
    RemoteError,
    TokenStoreError,
    TransportError,
    ValidationError,
)
from .utils import (
    format_mac,
    get_broadcast_addresses,
    parse_token,
    resolve_target,
    validate_ip,
    validate_token,
)

__all__ = [
    "MIIO_PORT",
    "Config",
    "DeviceEntry",
    "NetworkConfig",
    "SessionConfig",
    "TokenStoreConfig",
    "get_config",
    "set_config",
    "MiioError",
    "ValidationError",
    "MalformedPacket",
    "DecryptFailure",
    "MissingToken",
    "NoToken",
    "NoIdentifier",
    "HandshakeTimeout",
    "CallTimeout",
    "ConnectionFailure",
    "RemoteError",
    "TransportError",
    "TokenStoreError",
    "format_mac",
    "get_broadcast_addresses",
    "parse_token",
    "resolve_target",
    "validate_ip",
    "validate_token",
]
