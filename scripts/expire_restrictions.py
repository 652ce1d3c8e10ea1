#!/usr/bin/env python3
"""Run one expiration sweep, for cron setups without the in-process worker."""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from moderation_core.database import async_session_maker, engine
from moderation_core.workers.expiration_worker import ExpirationWorker


async def run() -> None:
    try:
        restrictions, suspensions = await ExpirationWorker(async_session_maker).run_once()
        print(f"Expired restrictions: {restrictions}")
        print(f"Expired suspensions: {suspensions}")
    finally:
        await engine.dispose()


def main():
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run())


if __name__ == "__main__":
    main()
