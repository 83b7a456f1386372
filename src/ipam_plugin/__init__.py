"""
IPAM plugin protocol adapter.

Exposes the daemon-facing ``/IpamDriver.*`` HTTP/JSON endpoints and forwards
each call to an integrator-supplied ``Driver``.
"""

from .config import Settings, configure, get_settings, load_env
from .driver import Driver
from .errors import ConfigError, DriverError, IpamPluginError, RequestDecodeError
from .handler import MANIFEST, ROUTES, Handler, Route
from .types import (
    AddressReleaseRequest,
    AddressRequest,
    AddressResponse,
    AddressSpacesResponse,
    CapabilitiesResponse,
    ErrorResponse,
    PoolReleaseRequest,
    PoolRequest,
    PoolResponse,
)

__version__ = "0.1.0"

__all__ = [
    "Handler",
    "Driver",
    "Route",
    "ROUTES",
    "MANIFEST",
    # Records
    "PoolRequest",
    "PoolResponse",
    "PoolReleaseRequest",
    "AddressRequest",
    "AddressResponse",
    "AddressReleaseRequest",
    "AddressSpacesResponse",
    "CapabilitiesResponse",
    "ErrorResponse",
    # Errors
    "IpamPluginError",
    "RequestDecodeError",
    "DriverError",
    "ConfigError",
    # Config
    "Settings",
    "get_settings",
    "configure",
    "load_env",
]
