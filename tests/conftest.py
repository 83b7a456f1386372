"""
Shared test fixtures and fake drivers for ipam-plugin tests.

This module provides:
- EmptyDriver: answers every call with empty records
- ErrDriver: fails every call
- RecordingDriver: returns canned records and remembers what it was sent
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from ipam_plugin.config import Settings
from ipam_plugin.driver import Driver
from ipam_plugin.errors import DriverError
from ipam_plugin.handler import Handler
from ipam_plugin.types import (
    AddressReleaseRequest,
    AddressRequest,
    AddressResponse,
    AddressSpacesResponse,
    CapabilitiesResponse,
    PoolReleaseRequest,
    PoolRequest,
    PoolResponse,
)

ERROR_MESSAGE = "I CAN HAZ ERRORZ"


# =============================================================================
# Fake Drivers
# =============================================================================


class EmptyDriver(Driver):
    async def get_capabilities(self) -> CapabilitiesResponse:
        return CapabilitiesResponse()

    async def request_pool(self, request: PoolRequest) -> PoolResponse:
        return PoolResponse()

    async def release_pool(self, request: PoolReleaseRequest) -> None:
        return None

    async def request_address(self, request: AddressRequest) -> AddressResponse:
        return AddressResponse()

    async def release_address(self, request: AddressReleaseRequest) -> None:
        return None

    async def get_default_address_spaces(self) -> AddressSpacesResponse:
        return AddressSpacesResponse()


class ErrDriver(Driver):
    def __init__(self, message: str = ERROR_MESSAGE) -> None:
        self.message = message

    async def get_capabilities(self) -> CapabilitiesResponse:
        raise DriverError(self.message)

    async def request_pool(self, request: PoolRequest) -> PoolResponse:
        raise DriverError(self.message)

    async def release_pool(self, request: PoolReleaseRequest) -> None:
        raise DriverError(self.message)

    async def request_address(self, request: AddressRequest) -> AddressResponse:
        raise RuntimeError(self.message)

    async def release_address(self, request: AddressReleaseRequest) -> None:
        raise RuntimeError(self.message)

    async def get_default_address_spaces(self) -> AddressSpacesResponse:
        raise ValueError(self.message)


class RecordingDriver(Driver):
    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    async def get_capabilities(self) -> CapabilitiesResponse:
        self.calls.append(("get_capabilities", None))
        return CapabilitiesResponse(requires_mac_address=True)

    async def request_pool(self, request: PoolRequest) -> PoolResponse:
        self.calls.append(("request_pool", request))
        return PoolResponse(
            pool_id="local/172.18.0.0/16",
            pool="172.18.0.0/16",
            data={"zone": "b", "com.example.vlan": "10"},
        )

    async def release_pool(self, request: PoolReleaseRequest) -> None:
        self.calls.append(("release_pool", request))

    async def request_address(self, request: AddressRequest) -> AddressResponse:
        self.calls.append(("request_address", request))
        return AddressResponse(address="172.18.0.2/16", data={})

    async def release_address(self, request: AddressReleaseRequest) -> None:
        self.calls.append(("release_address", request))

    async def get_default_address_spaces(self) -> AddressSpacesResponse:
        self.calls.append(("get_default_address_spaces", None))
        return AddressSpacesResponse(
            local_default_address_space="local",
            global_default_address_space="global",
        )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def legacy_settings() -> Settings:
    return Settings(legacy_double_write=True)


@pytest.fixture
def empty_handler(settings: Settings) -> Handler:
    return Handler(EmptyDriver(), settings=settings)


@pytest.fixture
def err_handler(settings: Settings) -> Handler:
    return Handler(ErrDriver(), settings=settings)


@pytest.fixture
def recording_driver() -> RecordingDriver:
    return RecordingDriver()


@pytest.fixture
def recording_handler(recording_driver: RecordingDriver, settings: Settings) -> Handler:
    return Handler(recording_driver, settings=settings)


@pytest.fixture
def client_for():
    """Build an httpx client that talks to a handler in-process."""

    def _client_for(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=handler),
            base_url="http://plugin",
        )

    return _client_for
