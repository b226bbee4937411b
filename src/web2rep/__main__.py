"""
web2rep/__main__.py

Runs the achievement API server.
Run with: python -m web2rep [--host HOST] [--port PORT]

Settings not given on the command line come from WEB2REP_* environment
variables (see config.ServiceConfig.from_env).
"""

import argparse
import logging
import sys

import trio

from .api import AchievementAPI
from .config import ServiceConfig
from .service import AchievementService

logger = logging.getLogger("web2rep")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="web2rep", description="Web2 achievement aggregation API")
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to listen on")
    parser.add_argument("--source-mode", choices=["direct", "http"], help="Where provider metrics come from")
    parser.add_argument("--upstream-url", help="Base URL of the per-provider metrics endpoints")
    parser.add_argument("--concurrent", action="store_true", help="Fetch providers concurrently")
    parser.add_argument("--no-metrics", action="store_true", help="Disable the /metrics endpoint")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ServiceConfig:
    """Environment configuration with command line overrides applied."""
    config = ServiceConfig.from_env()
    if args.host:
        config.api.host = args.host
    if args.port:
        config.api.port = args.port
    if args.source_mode:
        config.upstream.source_mode = args.source_mode
    if args.upstream_url:
        config.upstream.base_url = args.upstream_url
    if args.concurrent:
        config.upstream.concurrent = True
    if args.no_metrics:
        config.api.enable_metrics = False
    return config


async def main(config: ServiceConfig) -> None:
    service = AchievementService.from_config(config)
    api = AchievementAPI(
        service,
        host=config.api.host,
        port=config.api.port,
        enable_metrics=config.api.enable_metrics,
    )

    logger.info(f"Sources: {', '.join(p.value for p in service.sources)} ({config.upstream.source_mode})")
    await api.start()


def run(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    )

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        trio.run(main, config)
    except KeyboardInterrupt:
        logger.info("web2rep stopped")
    except Exception as e:
        logger.error(f"web2rep error: {type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
