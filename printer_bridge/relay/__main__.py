"""Run the bridge relay service: ``python -m printer_bridge.relay``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from dataclasses import replace

import voluptuous as vol
from loguru import logger

from printer_bridge.const import DEBUG, LOG_LEVEL, LOGGER

from .config import RelayConfig
from .server import BridgeRelayServer


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Send package and aiohttp logs to loguru on stdout."""
    logger.remove()
    logger.add(sys.stdout, colorize=DEBUG, level=level)
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    LOGGER.setLevel(level)
    logging.getLogger("aiohttp.access").setLevel(logging.DEBUG if DEBUG else logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="printer-bridge-relay",
        description="Relay print payloads from HTTP/WebSocket clients to raw TCP printers.",
    )
    parser.add_argument("--host", help="address to listen on (RELAY_HOST)")
    parser.add_argument("--port", type=int, help="port to listen on (RELAY_PORT)")
    parser.add_argument(
        "--max-sessions", type=int, help="concurrent printer sessions (RELAY_MAX_SESSIONS)"
    )
    parser.add_argument("--log-level", default=LOG_LEVEL, help="log level (LOG_LEVEL)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RelayConfig:
    """Merge command line overrides into the environment settings."""
    config = RelayConfig.from_env()
    overrides = {
        "host": args.host,
        "port": args.port,
        "max_sessions": args.max_sessions,
    }
    return replace(config, **{key: value for key, value in overrides.items() if value is not None})


async def run(config: RelayConfig) -> None:
    """Serve until SIGINT or SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    server = BridgeRelayServer(config)
    await server.start()
    logger.info(
        "Relay ready: {} sessions, {} queued, connect timeout {}s, idle timeout {}s",
        config.max_sessions,
        config.max_waiting,
        config.connect_timeout,
        config.idle_timeout,
    )
    try:
        await stop_event.wait()
    finally:
        await server.stop()


def main(argv: list[str] | None = None) -> int:
    """Console entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level.upper())
    try:
        config = build_config(args)
    except vol.Invalid as err:
        logger.error("Invalid relay configuration: {}", err)
        return 2
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Relay shutting down")
    except OSError as err:
        logger.error("Relay could not start: {}", err)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
