"""
Standalone dispatch worker process.

    python -m pipeline_journey.worker
"""
import asyncio
import logging
import signal

from pipeline_journey.config import settings
from pipeline_journey.core.logging import setup_logging
from pipeline_journey.database import engine, init_db
from pipeline_journey.services.dispatch_worker import DispatchWorker

logger = logging.getLogger(__name__)


async def main():
    setup_logging()
    await init_db()

    worker = DispatchWorker()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            # Not available on Windows event loops; Ctrl+C still raises KeyboardInterrupt
            pass

    logger.info(
        f"Starting dispatch worker {worker.worker_id} "
        f"(partition {settings.WORKER_PARTITION_INDEX}/{settings.WORKER_PARTITION_COUNT})"
    )
    try:
        await worker.run_forever()
    finally:
        await engine.dispose()
        logger.info("Dispatch worker stopped")


def run():
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass


if __name__ == "__main__":
    run()
