"""
Transport for the plugin handler.

The daemon finds plugins in two ways: a UNIX socket named
``<socket_dir>/<name>.sock``, or a ``<spec_dir>/<name>.spec`` file holding a
``tcp://host:port`` URL. This module binds those sockets, writes the spec
file and runs the handler under uvicorn until shutdown, cleaning up after
itself.
"""

from __future__ import annotations

import os
import socket
from pathlib import Path
from typing import TYPE_CHECKING

import uvicorn

if TYPE_CHECKING:
    from .handler import Handler


SPEC_SUFFIX = ".spec"
SOCKET_SUFFIX = ".sock"


def _check_name(name: str) -> str:
    if not name or "/" in name or name in {".", ".."}:
        raise ValueError(f"Invalid plugin name: {name!r}")
    return name


def parse_address(address: str) -> tuple[str, int]:
    """
    Split ``host:port`` into its parts.

    An empty host (``":8080"``) means all interfaces; IPv6 hosts may be
    bracketed (``"[::1]:8080"``).
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"Missing port in address: {address!r}")
    try:
        port_number = int(port)
    except ValueError as exc:
        raise ValueError(f"Invalid port in address: {address!r}") from exc
    if not 0 <= port_number <= 65535:
        raise ValueError(f"Port out of range in address: {address!r}")
    return host.strip("[]"), port_number


def format_address(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def bind_tcp(address: str) -> socket.socket:
    """Bind a TCP socket on ``address``; port 0 picks a free port."""
    host, port = parse_address(address)
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def write_spec_file(name: str, address: str, spec_dir: str | Path) -> Path:
    """Write ``tcp://<address>`` to ``<spec_dir>/<name>.spec`` and return its path."""
    spec_dir = Path(spec_dir)
    spec_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
    path = spec_dir / f"{_check_name(name)}{SPEC_SUFFIX}"
    path.write_text(f"tcp://{address}")
    path.chmod(0o644)
    return path


def socket_path(name: str, socket_dir: str | Path) -> Path:
    return Path(socket_dir) / f"{_check_name(name)}{SOCKET_SUFFIX}"


def bind_unix(path: str | Path, gid: int | None = None) -> socket.socket:
    """
    Bind a UNIX socket at ``path``.

    The parent directory is created if needed and a stale socket left by a
    previous run is removed. The socket file is made group read/writable and,
    when ``gid`` is given, handed to that group.

    Raises:
        FileExistsError: ``path`` exists and is not a socket
    """
    path = Path(path)
    path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
    if path.is_socket():
        path.unlink()
    elif path.exists():
        raise FileExistsError(f"Refusing to replace non-socket file: {path}")

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(str(path))
        os.chmod(path, 0o660)
        if gid is not None:
            os.chown(path, -1, gid)
    except OSError:
        sock.close()
        path.unlink(missing_ok=True)
        raise
    sock.set_inheritable(True)
    return sock


def build_server(handler: Handler) -> uvicorn.Server:
    """Create a uvicorn server for ``handler``; the plugin's own logger stays in charge of output."""
    settings = handler.settings
    config = uvicorn.Config(
        handler,
        log_config=None,
        log_level=settings.logging.level.lower(),
        access_log=settings.logging.access_log,
        lifespan="off",
    )
    return uvicorn.Server(config)


async def serve_tcp(
    handler: Handler,
    name: str,
    address: str,
    *,
    spec_dir: str | Path | None = None,
) -> None:
    """Serve ``handler`` on TCP and advertise it with a spec file until shutdown."""
    sock = bind_tcp(address)
    host, port = sock.getsockname()[:2]
    spec = write_spec_file(
        name,
        format_address(host, port),
        spec_dir or handler.settings.server.spec_dir,
    )
    handler.logger.set_context(plugin=name)
    handler.logger.info(f"Serving on tcp://{format_address(host, port)}", spec=str(spec))
    try:
        await build_server(handler).serve(sockets=[sock])
    finally:
        spec.unlink(missing_ok=True)
        sock.close()


async def serve_unix(
    handler: Handler,
    name: str,
    *,
    gid: int | None = None,
    socket_dir: str | Path | None = None,
) -> None:
    """Serve ``handler`` on ``<socket_dir>/<name>.sock`` until shutdown."""
    server_settings = handler.settings.server
    path = socket_path(name, socket_dir or server_settings.socket_dir)
    sock = bind_unix(path, gid if gid is not None else server_settings.socket_gid)
    handler.logger.set_context(plugin=name)
    handler.logger.info(f"Serving on unix://{path}")
    try:
        await build_server(handler).serve(sockets=[sock])
    finally:
        sock.close()
        path.unlink(missing_ok=True)


__all__ = [
    "parse_address",
    "format_address",
    "bind_tcp",
    "write_spec_file",
    "socket_path",
    "bind_unix",
    "build_server",
    "serve_tcp",
    "serve_unix",
]
