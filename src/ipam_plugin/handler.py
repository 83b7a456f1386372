"""
Protocol handler.

Forwards requests and responses between the container-networking daemon
and a ``Driver``. Every route decodes its body (if it has one), makes one
driver call and writes the result or an ``{"Err": ...}`` envelope back with
HTTP 200; the status code never signals failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request, Response

from . import server
from .codec import CONTENT_TYPE, decode_request, encode_response
from .config import Settings, get_settings
from .driver import Driver
from .errors import RequestDecodeError
from .logging import CallLog, StructuredLogger, get_logger, timed, truncate_for_log
from .types import (
    AddressReleaseRequest,
    AddressRequest,
    ErrorResponse,
    PoolReleaseRequest,
    PoolRequest,
    WireModel,
)

MANIFEST = '{"Implements": ["IpamDriver"]}'

ACTIVATE_PATH = "/Plugin.Activate"
CAPABILITIES_PATH = "/IpamDriver.GetCapabilities"
REQUEST_POOL_PATH = "/IpamDriver.RequestPool"
RELEASE_POOL_PATH = "/IpamDriver.ReleasePool"
REQUEST_ADDRESS_PATH = "/IpamDriver.RequestAddress"
RELEASE_ADDRESS_PATH = "/IpamDriver.ReleaseAddress"
GET_DEFAULT_ADDRESS_SPACES_PATH = "/IpamDriver.GetDefaultAddressSpaces"


@dataclass(frozen=True)
class Route:
    """One protocol path and the driver method behind it."""

    path: str
    operation: str
    request_model: type[WireModel] | None = None
    # Release routes answer ``{}`` and always stop after an error.
    releases: bool = False


ROUTES: tuple[Route, ...] = (
    Route(CAPABILITIES_PATH, "get_capabilities"),
    Route(REQUEST_POOL_PATH, "request_pool", PoolRequest),
    Route(RELEASE_POOL_PATH, "release_pool", PoolReleaseRequest, releases=True),
    Route(REQUEST_ADDRESS_PATH, "request_address", AddressRequest),
    Route(RELEASE_ADDRESS_PATH, "release_address", AddressReleaseRequest, releases=True),
    Route(GET_DEFAULT_ADDRESS_SPACES_PATH, "get_default_address_spaces"),
)


class Handler:
    """
    ASGI application serving the IPAM plugin protocol for one driver.

    Example:
        ```python
        handler = Handler(MyDriver())
        handler.serve_unix("my-ipam", gid=0)
        ```

    The handler is itself an ASGI callable, so it can also be mounted in any
    ASGI server or test client.
    """

    def __init__(
        self,
        driver: Driver,
        *,
        settings: Settings | None = None,
        logger: StructuredLogger | None = None,
    ):
        self.driver = driver
        self.settings = settings or get_settings()
        # Shared across handlers; only the first one configures it.
        self.logger = logger or get_logger(self.settings.logging)

        self.app = FastAPI(
            title="IPAM plugin",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )
        self.app.state.driver = driver
        self.app.state.settings = self.settings

        self.handle(ACTIVATE_PATH, self.activate)
        for route in ROUTES:
            self.handle(route.path, self._endpoint(route))

    async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
        await self.app(scope, receive, send)

    def handle(self, path: str, endpoint: Any) -> None:
        """Register ``endpoint`` at ``path``; like the daemon's mux, any method is accepted."""
        self.app.add_api_route(
            path,
            endpoint,
            methods=["GET", "POST"],
            include_in_schema=False,
        )

    async def activate(self, request: Request) -> Response:
        """Discovery: tell the daemon which plugin interface we implement."""
        return Response(content=MANIFEST + "\n", media_type=CONTENT_TYPE)

    def _endpoint(self, route: Route):
        async def endpoint(request: Request) -> Response:
            return await self.dispatch(route, request)

        endpoint.__name__ = route.operation
        return endpoint

    async def dispatch(self, route: Route, request: Request) -> Response:
        """Run one protocol call and log it."""
        with self.logger.request_context(route.path, route.operation) as request_id:
            call = CallLog(request_id=request_id, path=route.path, operation=route.operation)
            with timed() as timer:
                content = await self._call_driver(route, request, call)
            call.duration_ms = timer.elapsed_ms
            self.logger.log_call(call)

        if not content:
            # Undecodable request: nothing is written back.
            return Response(status_code=200)
        return Response(content=content, media_type=CONTENT_TYPE)

    async def _call_driver(self, route: Route, request: Request, call: CallLog) -> bytes:
        args: list[WireModel] = []
        if route.request_model is not None:
            try:
                args.append(decode_request(await request.body(), route.request_model, path=route.path))
            except RequestDecodeError as exc:
                call.outcome = "decode_error"
                call.error = truncate_for_log(str(exc))
                self.logger.debug("Request body rejected", error=exc.to_dict())
                return b""

        operation = getattr(self.driver, route.operation)
        try:
            result = await operation(*args)
        except Exception as exc:
            call.outcome = "driver_error"
            call.error = truncate_for_log(str(exc))
            content = encode_response(ErrorResponse.from_exception(exc))
            if route.releases or not self.settings.legacy_double_write:
                return content
            # Legacy behaviour: the (missing) success value follows the error.
            return content + encode_response(None)

        if route.releases:
            return encode_response({})
        return encode_response(result)

    # =========================================================================
    # Serving
    # =========================================================================

    def serve_tcp(self, name: str, address: str, *, spec_dir: str | None = None) -> None:
        """Serve on a TCP address (``host:port``) until interrupted."""
        asyncio.run(server.serve_tcp(self, name, address, spec_dir=spec_dir))

    def serve_unix(self, name: str, *, gid: int | None = None) -> None:
        """Serve on ``<socket_dir>/<name>.sock`` until interrupted."""
        asyncio.run(server.serve_unix(self, name, gid=gid))


__all__ = [
    "MANIFEST",
    "ACTIVATE_PATH",
    "CAPABILITIES_PATH",
    "REQUEST_POOL_PATH",
    "RELEASE_POOL_PATH",
    "REQUEST_ADDRESS_PATH",
    "RELEASE_ADDRESS_PATH",
    "GET_DEFAULT_ADDRESS_SPACES_PATH",
    "Route",
    "ROUTES",
    "Handler",
]
