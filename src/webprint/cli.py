"""
WebPrint - Command Line Entry Point
Runs the queue server or the print agent
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from . import __version__
from .config_manager import ConfigManager


def setup_logging(log_directory: str = None, level: str = "INFO"):
    """Setup basic logging configuration"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_directory:
        Path(log_directory).mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(Path(log_directory) / "webprint.log", encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="webprint", description="WebPrint queue server and print agent")
    parser.add_argument("--config", metavar="PATH", help="Path to config.json")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    server = subparsers.add_parser("server", help="Run the queue server")
    server.add_argument("--host", help="Bind address (default from config)")
    server.add_argument("--port", type=int, help="Bind port (default from config)")

    agent = subparsers.add_parser("agent", help="Run the print agent")
    agent.add_argument("--server-url", help="Queue server base URL")
    agent.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")

    return parser


async def _run_until_signalled(service_coro, stop):
    """Run ``service_coro`` and call ``stop`` on SIGINT/SIGTERM where the loop supports it"""
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, lambda: asyncio.ensure_future(stop()))
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers; Ctrl+C raises KeyboardInterrupt instead
            pass
    await service_coro


def run_server(config_manager: ConfigManager, host: str = None, port: int = None) -> int:
    from .api_server import APIServer

    server = APIServer(config_manager)
    asyncio.run(_run_until_signalled(server.start_server(host, port), server.stop_server))
    return 0


def run_agent(config_manager: ConfigManager, once: bool = False) -> int:
    from .service_manager import AgentService

    service = AgentService(config_manager)
    if once:
        ran = asyncio.run(service.run_once())
        return 0 if ran else 1

    asyncio.run(_run_until_signalled(service.run(), service.stop))
    return 0


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    config_manager = ConfigManager(args.config)
    if args.command == "agent" and args.server_url:
        config_manager.config["server_url"] = args.server_url

    config = config_manager.get_config()
    setup_logging(config.get("log_directory"), config.get("log_level", "INFO"))
    logger = logging.getLogger(__name__)

    try:
        if args.command == "server":
            return run_server(config_manager, args.host, args.port)
        return run_agent(config_manager, once=args.once)

    except KeyboardInterrupt:
        logger.info("Stopped by user")
        return 0
    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
