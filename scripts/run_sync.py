"""
Run one Terviseamet sync from the command line and print its summary.

Usage:
    python -m scripts.run_sync [--force]

Exit codes:
    0  sync completed (individual feeds may still have errored)
    1  a sync failed unexpectedly
    2  another sync run is in progress
"""

import argparse
import asyncio
import json
import logging
import sys

from core.database import async_session_maker, engine
from core.exceptions import SyncAlreadyRunningError, SyncException
from core.logging import setup_logging
from ingestion.runner import SyncRunner

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync Terviseamet water quality open data")
    parser.add_argument(
        "--force",
        action="store_true",
        help="ignore per-feed refresh intervals (conditional requests are still used)",
    )
    return parser.parse_args(argv)


async def run_sync(force: bool) -> int:
    try:
        async with async_session_maker() as session:
            summary = await SyncRunner(session).sync_from_terviseamet(force=force)
    except SyncAlreadyRunningError as e:
        logger.error(e.message)
        return 2
    except SyncException as e:
        logger.error(f"Sync failed: {e}", extra={"error_context": e.to_dict()})
        return 1
    finally:
        await engine.dispose()

    print(json.dumps(summary.model_dump(by_alias=True), indent=2))
    return 0


def main(argv=None) -> int:
    setup_logging()
    args = parse_args(argv)
    return asyncio.run(run_sync(args.force))


if __name__ == "__main__":
    sys.exit(main())
