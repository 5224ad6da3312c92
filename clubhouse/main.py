"""
Clubhouse - main entry point.

    python -m clubhouse.main serve            # run the API with uvicorn
    python -m clubhouse.main backfill-names   # split legacy full names
"""

from __future__ import annotations

import argparse
import asyncio
import logging

import uvicorn

from clubhouse.config import Settings, get_settings
from clubhouse.services.migrations import backfill_split_names
from clubhouse.storage import create_storage

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def serve(settings: Settings) -> None:
    """Run the API. Uvicorn drains in-flight requests before the lifespan closes the store."""
    uvicorn.run(
        "clubhouse.api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=settings.debug and not settings.is_production,
    )


async def run_backfill(settings: Settings) -> int:
    storage = create_storage(settings)
    await storage.connect()
    try:
        return await backfill_split_names(storage)
    finally:
        await storage.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="clubhouse", description="Clubhouse backend")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("serve", help="Run the HTTP API")
    commands.add_parser("backfill-names", help="Split legacy full names into first/last names")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)

    if args.command == "serve":
        serve(settings)
    elif args.command == "backfill-names":
        count = asyncio.run(run_backfill(settings))
        logger.info(f"Backfill complete: {count} principal(s) updated")


if __name__ == "__main__":
    main()
