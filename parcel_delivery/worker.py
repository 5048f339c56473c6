"""
Consumer worker: runs a service's event consumers without the HTTP surface
Usage: SERVICE_NAME=notification-service python -m parcel_delivery.worker
"""

from dotenv import load_dotenv
load_dotenv()

import asyncio
import signal

from parcel_delivery.core.config import config
from parcel_delivery.core.logger import logger
from parcel_delivery.runtime import ServiceRuntime, create_runtime


class ConsumerWorker:
    """Worker process for consuming and processing messages"""

    def __init__(self, runtime: ServiceRuntime = None):
        self.runtime = runtime
        self._stopped = asyncio.Event()

    async def start(self):
        """Start the runtime and block until stop() is called"""
        logger.info(f"{config.service_name} worker starting...")
        if self.runtime is None:
            self.runtime = await create_runtime()
        await self.runtime.start()
        logger.info(f"{config.service_name} worker started", metadata={"consumers": len(self.runtime.consumers)})
        await self._stopped.wait()

    def request_stop(self):
        self._stopped.set()

    async def stop(self):
        """Gracefully stop the worker"""
        logger.info(f"Stopping {config.service_name} worker...")
        self._stopped.set()
        if self.runtime is not None:
            await self.runtime.stop()
        logger.info(f"{config.service_name} worker stopped")


async def main():
    """Main entry point for the worker"""
    worker = ConsumerWorker()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.request_stop)

    try:
        await worker.start()
    except Exception as e:
        logger.error("Worker error", error=e)
        raise
    finally:
        await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
