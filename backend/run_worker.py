"""Run the judge reconciliation worker as a standalone process."""

import asyncio
import logging

from portal.config import settings
from portal.services.judge_worker import judge_worker


async def main() -> None:
    judge_worker.start()
    try:
        while judge_worker.is_running():
            await asyncio.sleep(1)
    finally:
        # stop() also closes the judge connection pool
        await judge_worker.stop()


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
