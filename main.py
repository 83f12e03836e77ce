# main.py
"""
Entry point for the pysd runtime publisher.

Starts publishing this process's runtime stats and keeps running until
interrupted. Mostly useful as a demo host and for checking credentials;
applications normally call monitoring.init_monitoring() themselves.
"""
import asyncio
import logging
import os
import signal
import sys
import argparse
from loguru import logger

from monitoring import init_monitoring, stop_runtime_stats
from utils.config import EnvironmentValidator

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"


class InterceptHandler(logging.Handler):
    """Routes standard logging records (google-cloud, opencensus) into loguru."""

    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str = "INFO"):
    """Replace the default loguru sink and capture standard logging."""
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=level)
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


async def main_loop(destination: str, trace_allocations: bool, send_timeout: float,
                    count_gc_objects: bool = True) -> int:
    publisher = init_monitoring(destination, error_sink=sys.stderr, trace_allocations=trace_allocations,
                                count_gc_objects=count_gc_objects, send_timeout=send_timeout)
    if publisher is None:
        return 1

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still cancels
            pass

    logger.info("🚀 Publishing runtime stats, press Ctrl+C to stop")
    try:
        await stop_event.wait()
    finally:
        logger.info(f"📊 Publisher stats: {publisher.get_stats()}")
        await stop_runtime_stats()
    return 0


def cli():
    """Command line entry point."""
    parser = argparse.ArgumentParser(description="Publish Python runtime stats to a cloud monitoring backend")
    parser.add_argument("--project", help="Destination project id or connection string (defaults to the backend's env var)")
    parser.add_argument("--backend", choices=["stackdriver", "azure"], help="Monitoring backend (defaults to PYSD_BACKEND)")
    parser.add_argument("--log-level", help="Log level (defaults to LOG_LEVEL or INFO)")
    args = parser.parse_args()

    if args.backend:
        os.environ["PYSD_BACKEND"] = args.backend

    configure_logging((args.log_level or os.getenv("LOG_LEVEL", "INFO")).upper())

    validation = EnvironmentValidator.validate_publisher_config(args.project)
    if not all(validation.values()):
        invalid = [name for name, valid in validation.items() if not valid]
        logger.error(f"❌ Invalid configuration: {', '.join(invalid)}")
        sys.exit(2)

    config = EnvironmentValidator.get_publisher_config()
    destination = args.project or config["destination"]

    logger.info(f"🔍 Backend: {config['backend']}, send timeout: {config['send_timeout']}s")
    sys.exit(asyncio.run(main_loop(destination, config["tracemalloc"], config["send_timeout"],
                                   config["count_gc_objects"])))


if __name__ == "__main__":
    cli()
