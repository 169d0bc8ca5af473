"""Tests for the HTTP API printer driver against a local aiohttp app."""

import base64
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as AppServer

from printer_bridge.exceptions import PrinterConnectionError, PrinterSendError
from printer_bridge.models.enums import ConnectionErrorKind, SendErrorKind
from printer_bridge.models.printer import ApiConfig
from printer_bridge.transport.api import ApiDriver


class FakePrintService:
    """Remote print service recording what it receives."""

    def __init__(self) -> None:
        self.status_code = 200
        self.print_code = 200
        self.status_body: Any = {"name": "Front Desk", "online": True}
        self.print_body: Any = {"jobId": "remote-1"}
        self.authorization: list[str | None] = []
        self.printed: list[dict[str, Any]] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/status", self.status)
        app.router.add_post("/print", self.print)
        return app

    async def status(self, request: web.Request) -> web.StreamResponse:
        self.authorization.append(request.headers.get("Authorization"))
        if isinstance(self.status_body, str):
            return web.Response(text=self.status_body, status=self.status_code)
        return web.json_response(self.status_body, status=self.status_code)

    async def print(self, request: web.Request) -> web.StreamResponse:
        self.printed.append(await request.json())
        return web.json_response(self.print_body, status=self.print_code)


@pytest.fixture
async def service() -> AsyncIterator[tuple[FakePrintService, str]]:
    fake = FakePrintService()
    async with AppServer(fake.app()) as server:
        yield fake, str(server.make_url("")).rstrip("/")


@pytest.mark.anyio
async def test_connect_reads_status(service: tuple[FakePrintService, str]) -> None:
    """Connect checks the status endpoint with the bearer key."""
    fake, url = service
    driver = ApiDriver(ApiConfig(endpoint_url=url, api_key="secret"))
    await driver.connect()
    try:
        assert driver.is_connected
        assert driver.status == "Connected to API printer: Front Desk"
        assert driver.remote_status["online"] is True
        assert fake.authorization == ["Bearer secret"]
    finally:
        await driver.disconnect()


@pytest.mark.anyio
async def test_connect_without_name(service: tuple[FakePrintService, str]) -> None:
    """A status without a name falls back to a generic label."""
    fake, url = service
    fake.status_body = {}
    driver = ApiDriver(ApiConfig(endpoint_url=url))
    await driver.connect()
    try:
        assert driver.status == "Connected to API printer: Remote Printer"
        assert fake.authorization == [None]
    finally:
        await driver.disconnect()


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("code", "body", "kind"),
    [
        (401, {"message": "bad key"}, ConnectionErrorKind.PERMISSION_DENIED),
        (403, {}, ConnectionErrorKind.PERMISSION_DENIED),
        (500, {}, ConnectionErrorKind.UNAVAILABLE),
        (200, "<html>not a printer</html>", ConnectionErrorKind.PROTOCOL_MISMATCH),
    ],
)
async def test_connect_failures(
    service: tuple[FakePrintService, str],
    code: int,
    body: Any,
    kind: ConnectionErrorKind,
) -> None:
    fake, url = service
    fake.status_code = code
    fake.status_body = body
    driver = ApiDriver(ApiConfig(endpoint_url=url))
    with pytest.raises(PrinterConnectionError) as err:
        await driver.connect()
    assert err.value.kind is kind
    assert not driver.is_connected
    assert driver.status.startswith("API error:")


@pytest.mark.anyio
async def test_connect_unreachable(unused_tcp_port: int) -> None:
    """Nothing listening is reported as unavailable."""
    driver = ApiDriver(ApiConfig(endpoint_url=f"http://127.0.0.1:{unused_tcp_port}"))
    with pytest.raises(PrinterConnectionError) as err:
        await driver.connect()
    assert err.value.kind is ConnectionErrorKind.UNAVAILABLE


@pytest.mark.anyio
async def test_send_posts_base64(service: tuple[FakePrintService, str]) -> None:
    """Each send is one POST carrying the payload as base64."""
    fake, url = service
    driver = ApiDriver(ApiConfig(endpoint_url=url, api_key="k"))
    await driver.connect()
    try:
        await driver.send(b"\x1b@receipt\n")
        await driver.send(b"second")
    finally:
        await driver.disconnect()

    assert len(fake.printed) == 2
    first = fake.printed[0]
    assert base64.b64decode(first["data"]) == b"\x1b@receipt\n"
    assert first["format"] == "base64"
    assert "timestamp" in first


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("code", "kind", "text"),
    [
        (413, SendErrorKind.PAYLOAD_TOO_LARGE, "Print failed: 413 - too big"),
        (500, SendErrorKind.TRANSPORT_FAILURE, "Print failed: 500 - too big"),
    ],
)
async def test_send_failures(
    service: tuple[FakePrintService, str], code: int, kind: SendErrorKind, text: str
) -> None:
    fake, url = service
    fake.print_code = code
    fake.print_body = {"message": "too big"}
    driver = ApiDriver(ApiConfig(endpoint_url=url))
    await driver.connect()
    try:
        with pytest.raises(PrinterSendError) as err:
            await driver.send(b"data")
        assert err.value.kind is kind
        assert err.value.message == text
        assert driver.is_connected
    finally:
        await driver.disconnect()


@pytest.mark.anyio
async def test_shared_session_is_not_closed(service: tuple[FakePrintService, str]) -> None:
    """An injected client session outlives the driver."""
    _, url = service
    async with aiohttp.ClientSession() as session:
        driver = ApiDriver(ApiConfig(endpoint_url=url), session=session)
        await driver.connect()
        await driver.disconnect()
        assert not session.closed
        assert driver.session is session
