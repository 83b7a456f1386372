"""
Driver interface.

A driver is the backend that actually owns pools and addresses. The plugin
handler only translates HTTP calls into calls on a driver and never keeps
state of its own, so any consistency guarantee across concurrent calls
(e.g. never handing out the same address twice) is the driver's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .types import (
    AddressReleaseRequest,
    AddressRequest,
    AddressResponse,
    AddressSpacesResponse,
    CapabilitiesResponse,
    PoolReleaseRequest,
    PoolRequest,
    PoolResponse,
)


class Driver(ABC):
    """
    Abstract base class for IPAM drivers.

    To signal a failure, raise an exception; its ``str()`` becomes the
    ``Err`` message sent back to the daemon. ``DriverError`` from
    ``ipam_plugin.errors`` is a convenient base for that.
    """

    @abstractmethod
    async def get_capabilities(self) -> CapabilitiesResponse:
        """Report what the driver needs from the daemon."""
        ...

    @abstractmethod
    async def request_pool(self, request: PoolRequest) -> PoolResponse:
        """
        Allocate an address pool.

        Args:
            request: Address space, optional preferred pool and sub-pool
                (CIDR), driver options and whether an IPv6 pool is wanted

        Returns:
            PoolResponse with the pool's id, its CIDR and opaque driver data
        """
        ...

    @abstractmethod
    async def release_pool(self, request: PoolReleaseRequest) -> None:
        """Release the pool identified by ``request.pool_id``."""
        ...

    @abstractmethod
    async def request_address(self, request: AddressRequest) -> AddressResponse:
        """
        Allocate an address from a pool.

        Args:
            request: Pool id, optional preferred address and driver options

        Returns:
            AddressResponse with the address in CIDR form and opaque driver data
        """
        ...

    @abstractmethod
    async def release_address(self, request: AddressReleaseRequest) -> None:
        """Return ``request.address`` to the pool ``request.pool_id``."""
        ...

    @abstractmethod
    async def get_default_address_spaces(self) -> AddressSpacesResponse:
        """Name the default local and global address spaces."""
        ...


__all__ = ["Driver"]
