"""
Bridge relay service.

Lets clients that cannot open raw TCP sockets (browsers, sandboxed apps)
print to network printers. Each request is relayed over a fresh,
time-bounded TCP session; sessions are independent and admission is capped.
"""

from __future__ import annotations

import json
from typing import Any

import voluptuous as vol
from aiohttp import WSMsgType, web

from printer_bridge.const import LOGGER, RELAY_MAX_PAYLOAD_SIZE
from printer_bridge.exceptions import RelayBusyError
from printer_bridge.models.enums import RelayErrorKind
from printer_bridge.models.relay import (
    DISCOVERY_REQUEST_SCHEMA,
    PROBE_REQUEST_SCHEMA,
    RelayRequest,
    RelayResult,
    RelaySessionDescriptor,
)

from .config import RelayConfig
from .discovery import discover_hosts, probe_printer, subnet_hosts
from .limiter import SessionLimiter
from .session import relay_exchange

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@web.middleware
async def cors_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Answer preflight requests and add permissive CORS headers."""
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as err:
        err.headers.update(CORS_HEADERS)
        raise
    if not isinstance(response, web.WebSocketResponse):
        response.headers.update(CORS_HEADERS)
    return response


def _bad_request(message: str) -> web.Response:
    return web.json_response({"message": message}, status=400)


async def _read_json(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        msg = f"Request body is not valid JSON: {err}"
        raise vol.Invalid(msg) from err
    if not isinstance(body, dict):
        msg = "Request body must be a JSON object"
        raise vol.Invalid(msg)
    return body


class BridgeRelayServer:
    """
    aiohttp application relaying payloads to raw TCP printers.

    Routes:
        POST /relay     relay one payload, answer with a RelayResult
        POST /discover  scan a subnet for printers
        POST /test      probe a single host
        GET  /status    session counters
        GET  /ws        WebSocket; each frame is relayed to ?host=&port=
    """

    def __init__(self, config: RelayConfig | None = None, logger: Any = LOGGER) -> None:
        """Initialize the server without binding any socket."""
        self.config = config or RelayConfig()
        self.logger = logger
        self.limiter = SessionLimiter(self.config.max_sessions, self.config.max_waiting)
        self.port = self.config.port
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def is_running(self) -> bool:
        """Return True while the server is listening."""
        return self._runner is not None and self._site is not None

    def create_app(self) -> web.Application:
        """Build the aiohttp application."""
        app = web.Application(
            client_max_size=RELAY_MAX_PAYLOAD_SIZE * 2,
            middlewares=[cors_middleware],
        )
        app.add_routes(
            [
                web.post("/relay", self._handle_relay),
                web.post("/discover", self._handle_discover),
                web.post("/test", self._handle_test),
                web.get("/status", self._handle_status),
                web.get("/ws", self._handle_websocket),
            ]
        )
        return app

    async def start(self) -> None:
        """Start listening on the configured host and port."""
        if self.is_running:
            return
        runner = web.AppRunner(self.create_app())
        await runner.setup()
        site = web.TCPSite(runner, self.config.host, self.config.port)
        try:
            await site.start()
        except OSError:
            self.logger.exception(
                "Failed to start relay on %s:%d", self.config.host, self.config.port
            )
            await runner.cleanup()
            raise
        self._runner = runner
        self._site = site
        if runner.addresses:
            self.port = runner.addresses[0][1]
        self.logger.info("Bridge relay listening on http://%s:%d", self.config.host, self.port)

    async def stop(self) -> None:
        """Stop listening and release the sockets."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
        self.logger.info("Bridge relay stopped")

    async def relay(self, request: RelayRequest) -> RelayResult:
        """Relay one request under admission control."""
        try:
            async with self.limiter.slot():
                result = await relay_exchange(
                    request.descriptor,
                    request.payload,
                    response_expected=request.response_expected,
                    logger=self.logger,
                )
        except RelayBusyError as err:
            self.logger.warning(
                "Rejecting relay to %s: %s", request.descriptor.address, err.message
            )
            return RelayResult(
                accepted=False, error_kind=RelayErrorKind.BUSY, message=err.message
            )

        if result.accepted:
            self.logger.info(
                "Relayed %d bytes to %s", result.bytes_sent, request.descriptor.address
            )
        else:
            self.logger.warning(
                "Relay to %s failed: %s (%s)",
                request.descriptor.address,
                result.error_kind.value if result.error_kind else "unknown",
                result.message,
            )
        return result

    async def _handle_relay(self, request: web.Request) -> web.Response:
        try:
            relay_request = RelayRequest.from_dict(
                await _read_json(request),
                connect_timeout=self.config.connect_timeout,
                idle_timeout=self.config.idle_timeout,
            )
        except vol.Invalid as err:
            return _bad_request(str(err))
        if len(relay_request.payload) > RELAY_MAX_PAYLOAD_SIZE:
            return web.json_response({"message": "Payload too large"}, status=413)

        result = await self.relay(relay_request)
        return web.json_response(result.to_dict(), status=result.http_status)

    async def _handle_discover(self, request: web.Request) -> web.Response:
        try:
            body = DISCOVERY_REQUEST_SCHEMA(await _read_json(request))
            hosts = subnet_hosts(body["subnetPrefix"], body.get("first"), body.get("last"))
        except (vol.Invalid, ValueError) as err:
            return _bad_request(str(err))

        printers = await discover_hosts(
            hosts,
            port=body["port"],
            timeout=body.get("timeoutMs", self.config.discovery_timeout),
            concurrency=self.config.discovery_concurrency,
            logger=self.logger,
        )
        return web.json_response(
            {
                "printers": [printer.to_dict() for printer in printers],
                "scanned": len(hosts),
            }
        )

    async def _handle_test(self, request: web.Request) -> web.Response:
        try:
            body = PROBE_REQUEST_SCHEMA(await _read_json(request))
        except vol.Invalid as err:
            return _bad_request(str(err))
        result = await probe_printer(
            body["host"],
            body["port"],
            body.get("timeoutMs", self.config.connect_timeout),
        )
        return web.json_response(result.to_dict())

    async def _handle_status(self, _request: web.Request) -> web.Response:
        return web.json_response(self.limiter.snapshot().to_dict())

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0, max_msg_size=RELAY_MAX_PAYLOAD_SIZE)
        await ws.prepare(request)

        query = {"host": request.query.get("host") or request.query.get("ip") or ""}
        if port := request.query.get("port"):
            query["port"] = port
        try:
            target = PROBE_REQUEST_SCHEMA(query)
        except vol.Invalid as err:
            await ws.send_json({"type": "error", "message": f"Invalid target: {err}"})
            await ws.close()
            return ws

        descriptor = RelaySessionDescriptor(
            host=target["host"],
            port=target["port"],
            connect_timeout=self.config.connect_timeout,
            idle_timeout=self.config.idle_timeout,
        )
        self.logger.debug("WebSocket relay opened for %s", descriptor.address)
        await ws.send_json(
            {"type": "connected", "message": f"Connected to relay for {descriptor.address}"}
        )

        try:
            async for message in ws:
                if message.type == WSMsgType.BINARY:
                    payload = message.data
                elif message.type == WSMsgType.TEXT:
                    payload = message.data.encode("utf-8")
                else:
                    break
                result = await self.relay(
                    RelayRequest(
                        host=descriptor.host,
                        port=descriptor.port,
                        payload=payload,
                        connect_timeout=descriptor.connect_timeout,
                        idle_timeout=descriptor.idle_timeout,
                    )
                )
                await ws.send_json({"type": "result", **result.to_dict()})
        except Exception:
            self.logger.exception("Error in WebSocket relay for %s", descriptor.address)
        finally:
            if not ws.closed:
                await ws.close()
            self.logger.debug("WebSocket relay closed for %s", descriptor.address)
        return ws
