"""Entry points for the multichat server and terminal viewer."""

import argparse
import asyncio
import logging
import sys

from aiohttp import web

from . import __version__
from .core.models import Platform
from .core.settings import ConfigError, Settings

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("TikTokLive").setLevel(logging.WARNING)
    logging.getLogger("pytchat").setLevel(logging.WARNING)


def _load_settings(env_file: str | None) -> Settings | None:
    try:
        return Settings.load(env_file=env_file)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return None


def build_server_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multichat", description="Aggregate Twitch, YouTube and TikTok chat into one feed."
    )
    parser.add_argument("--host", help="interface to bind (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="port to listen on (default: PORT or 8787)")
    parser.add_argument("--env-file", help="read environment variables from this .env file")
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    parser.add_argument(
        "--fake-messages", action="store_true", help="emit synthetic messages for testing"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the hub server until interrupted."""
    args = build_server_parser().parse_args(argv)
    setup_logging(args.debug)

    settings = _load_settings(args.env_file)
    if settings is None:
        return 1

    server = settings.server
    if args.host:
        server.host = args.host
    if args.port is not None:
        if not 1 <= args.port <= 65535:
            logger.error(f"Invalid port: {args.port}")
            return 1
        server.port = args.port
    server.debug = server.debug or args.debug
    server.fake_messages = server.fake_messages or args.fake_messages
    if server.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    from .server import create_app

    # run_app handles SIGINT/SIGTERM and runs the shutdown hooks
    web.run_app(
        create_app(settings),
        host=server.host,
        port=server.port,
        shutdown_timeout=server.shutdown_timeout,
        print=None,
    )
    return 0


def build_viewer_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multichat-viewer", description="Show a multichat feed in the terminal."
    )
    parser.add_argument("--url", help="server WebSocket URL (default: MULTICHAT_URL)")
    parser.add_argument("--env-file", help="read environment variables from this .env file")
    parser.add_argument(
        "--private",
        action="store_true",
        help="full interface mode: keep messages and show unresolved badges as text",
    )
    parser.add_argument("--max-messages", type=int, help="messages kept in memory")
    parser.add_argument("--expire-after", type=float, help="seconds before a message expires")
    parser.add_argument(
        "--platform",
        action="append",
        choices=[p.value for p in Platform],
        help="only show this platform (repeatable)",
    )
    parser.add_argument("--search", default="", help="only show messages matching this text")
    parser.add_argument(
        "--redraw", action="store_true", help="redraw the whole screen on every change"
    )
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    return parser


def viewer_main(argv: list[str] | None = None) -> int:
    """Run the terminal viewer until interrupted."""
    args = build_viewer_parser().parse_args(argv)
    setup_logging(args.debug)

    settings = _load_settings(args.env_file)
    if settings is None:
        return 1

    from .chat.store import MessageStore
    from .viewer import ChatViewer

    config = settings.viewer
    store = MessageStore(
        capacity=args.max_messages or config.capacity,
        auto_expire=config.auto_expire and not args.private,
        expire_after=args.expire_after or config.expire_after,
        fade_duration=config.fade_duration,
    )
    viewer = ChatViewer(
        url=args.url or config.url,
        store=store,
        private=args.private,
        platforms=args.platform,
        query=args.search,
        redraw=args.redraw,
    )

    try:
        asyncio.run(viewer.run())
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
