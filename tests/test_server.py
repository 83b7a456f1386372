"""
Tests for the transport layer: addresses, spec files, sockets and serving.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import stat

import httpx
import pytest

from ipam_plugin import server
from ipam_plugin.codec import CONTENT_TYPE
from ipam_plugin.config import ServerConfig, Settings
from ipam_plugin.handler import ACTIVATE_PATH, MANIFEST, RELEASE_POOL_PATH, Handler

from .conftest import EmptyDriver


class FakeServer:
    """Stands in for uvicorn and records what the serve loop saw."""

    def __init__(self, check=None):
        self.check = check
        self.sockets = None
        self.seen = None

    async def serve(self, sockets=None):
        self.sockets = sockets
        if self.check is not None:
            self.seen = self.check()


class TestAddresses:
    """Test address parsing and formatting."""

    @pytest.mark.parametrize(
        ("address", "expected"),
        [
            ("127.0.0.1:8080", ("127.0.0.1", 8080)),
            (":32234", ("", 32234)),
            ("localhost:0", ("localhost", 0)),
            ("[::1]:8080", ("::1", 8080)),
        ],
    )
    def test_parse_address(self, address, expected):
        assert server.parse_address(address) == expected

    @pytest.mark.parametrize("address", ["localhost", "host:http", "host:70000", "host:-1", ""])
    def test_parse_invalid_address(self, address):
        with pytest.raises(ValueError):
            server.parse_address(address)

    def test_format_address(self):
        assert server.format_address("127.0.0.1", 80) == "127.0.0.1:80"
        assert server.format_address("::1", 80) == "[::1]:80"


class TestTcp:
    """Test TCP binding and the discovery spec file."""

    def test_bind_free_port(self):
        sock = server.bind_tcp("127.0.0.1:0")
        try:
            host, port = sock.getsockname()
            assert host == "127.0.0.1"
            assert port > 0
            assert sock.family == socket.AF_INET
        finally:
            sock.close()

    def test_write_spec_file(self, tmp_path):
        spec_dir = tmp_path / "etc" / "docker" / "plugins"

        path = server.write_spec_file("my-ipam", "127.0.0.1:32234", spec_dir)

        assert path == spec_dir / "my-ipam.spec"
        assert path.read_text() == "tcp://127.0.0.1:32234"
        assert stat.S_IMODE(path.stat().st_mode) == 0o644

    def test_write_spec_file_overwrites(self, tmp_path):
        server.write_spec_file("my-ipam", "127.0.0.1:1", tmp_path)
        path = server.write_spec_file("my-ipam", "127.0.0.1:2", tmp_path)

        assert path.read_text() == "tcp://127.0.0.1:2"

    @pytest.mark.parametrize("name", ["", "a/b", ".", ".."])
    def test_invalid_plugin_name(self, tmp_path, name):
        with pytest.raises(ValueError, match="Invalid plugin name"):
            server.write_spec_file(name, "127.0.0.1:1", tmp_path)

    @pytest.mark.asyncio
    async def test_serve_tcp_advertises_then_cleans_up(self, tmp_path, settings, monkeypatch):
        spec = tmp_path / "my-ipam.spec"
        fake = FakeServer(check=lambda: spec.read_text())
        monkeypatch.setattr(server, "build_server", lambda handler: fake)

        await server.serve_tcp(Handler(EmptyDriver(), settings=settings), "my-ipam", "127.0.0.1:0", spec_dir=tmp_path)

        assert fake.seen.startswith("tcp://127.0.0.1:")
        assert int(fake.seen.rsplit(":", 1)[1]) > 0
        assert fake.sockets[0].fileno() == -1
        assert not spec.exists()

    @pytest.mark.asyncio
    async def test_serve_tcp_logs_through_handler(self, tmp_path, settings, monkeypatch, caplog):
        handler = Handler(EmptyDriver(), settings=settings)
        fake = FakeServer(check=lambda: handler.logger.context.plugin)
        monkeypatch.setattr(server, "build_server", lambda handler: fake)

        with caplog.at_level(logging.INFO, logger="ipam_plugin"):
            await server.serve_tcp(handler, "my-ipam", "127.0.0.1:0", spec_dir=tmp_path)

        assert fake.seen == "my-ipam"
        message = next(r.getMessage() for r in caplog.records if "Serving on tcp://127.0.0.1:" in r.getMessage())
        assert "plugin=my-ipam" in message
        assert f"spec={tmp_path / 'my-ipam.spec'}" in message

    @pytest.mark.asyncio
    async def test_serve_tcp_uses_configured_spec_dir(self, tmp_path, monkeypatch):
        settings = Settings(server=ServerConfig(spec_dir=tmp_path))
        fake = FakeServer(check=lambda: sorted(p.name for p in tmp_path.iterdir()))
        monkeypatch.setattr(server, "build_server", lambda handler: fake)

        await server.serve_tcp(Handler(EmptyDriver(), settings=settings), "cfg", "127.0.0.1:0")

        assert fake.seen == ["cfg.spec"]


class TestUnix:
    """Test UNIX socket binding and serving."""

    def test_socket_path(self, tmp_path):
        assert server.socket_path("my-ipam", tmp_path) == tmp_path / "my-ipam.sock"

        with pytest.raises(ValueError):
            server.socket_path("../escape", tmp_path)

    def test_bind_unix(self, tmp_path):
        path = tmp_path / "plugins" / "my-ipam.sock"

        sock = server.bind_unix(path, gid=os.getgid())
        try:
            assert path.is_socket()
            assert stat.S_IMODE(path.stat().st_mode) == 0o660
            assert path.stat().st_gid == os.getgid()
        finally:
            sock.close()

    def test_bind_unix_replaces_stale_socket(self, tmp_path):
        path = tmp_path / "my-ipam.sock"
        stale = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        stale.bind(str(path))
        stale.close()

        sock = server.bind_unix(path)
        try:
            assert path.is_socket()
        finally:
            sock.close()

    def test_bind_unix_refuses_regular_file(self, tmp_path):
        path = tmp_path / "my-ipam.sock"
        path.write_text("keep me")

        with pytest.raises(FileExistsError):
            server.bind_unix(path)
        assert path.read_text() == "keep me"

    @pytest.mark.asyncio
    async def test_serve_unix_removes_socket(self, tmp_path, settings, monkeypatch):
        path = tmp_path / "my-ipam.sock"
        fake = FakeServer(check=path.is_socket)
        monkeypatch.setattr(server, "build_server", lambda handler: fake)

        await server.serve_unix(Handler(EmptyDriver(), settings=settings), "my-ipam", socket_dir=tmp_path)

        assert fake.seen is True
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_serve_unix_logs_through_handler(self, tmp_path, settings, monkeypatch, caplog):
        handler = Handler(EmptyDriver(), settings=settings)
        monkeypatch.setattr(server, "build_server", lambda handler: FakeServer())

        with caplog.at_level(logging.INFO, logger="ipam_plugin"):
            await server.serve_unix(handler, "my-ipam", socket_dir=tmp_path)

        messages = [r.getMessage() for r in caplog.records]
        assert any(f"Serving on unix://{tmp_path / 'my-ipam.sock'}" in m and "plugin=my-ipam" in m for m in messages)

    @pytest.mark.asyncio
    async def test_serve_unix_end_to_end(self, tmp_path, settings, monkeypatch):
        started = []
        real_build = server.build_server

        def build(handler):
            started.append(real_build(handler))
            return started[-1]

        monkeypatch.setattr(server, "build_server", build)
        handler = Handler(EmptyDriver(), settings=settings)
        path = tmp_path / "e2e.sock"

        task = asyncio.create_task(server.serve_unix(handler, "e2e", socket_dir=tmp_path))
        try:
            for _ in range(100):
                if started and started[0].started:
                    break
                await asyncio.sleep(0.05)
            assert started and started[0].started

            transport = httpx.AsyncHTTPTransport(uds=str(path))
            async with httpx.AsyncClient(transport=transport, base_url="http://plugin") as client:
                activate = await client.post(ACTIVATE_PATH)
                release = await client.post(RELEASE_POOL_PATH, content=b'{"PoolID":"p"}')
        finally:
            if started:
                started[0].should_exit = True
            await asyncio.wait_for(task, timeout=10)

        assert activate.text == MANIFEST + "\n"
        assert activate.headers["content-type"] == CONTENT_TYPE
        assert release.content == b"{}\n"
        assert not path.exists()


class TestBuildServer:
    """Test the uvicorn server configuration."""

    def test_config_follows_settings(self, settings):
        handler = Handler(EmptyDriver(), settings=settings)

        uvicorn_server = server.build_server(handler)

        assert uvicorn_server.config.app is handler
        assert uvicorn_server.config.access_log is False
        assert uvicorn_server.config.lifespan == "off"
