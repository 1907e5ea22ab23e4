"""
x402 watch - main entry point

Builds the config, wires the payment watcher, serves the status API.
The watcher runs as a background task inside the API server's lifespan.

Usage:
    python main.py              # Start the service
    uvicorn main:app            # Or via uvicorn directly
"""

import os
import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from x402watch.logs import setup_logging

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()
setup_logging()

logger = logging.getLogger("x402.main")

from x402watch.config import WatcherConfig
from x402watch.watcher import PaymentWatcher, create_watcher
from api.server import create_app


def create_service_app(config: WatcherConfig) -> FastAPI:
    """Create the fully wired FastAPI app."""
    watcher: PaymentWatcher = create_watcher(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        start_task = None
        if config.enabled:
            start_task = asyncio.create_task(watcher.start(), name="x402_watch_start")
            logger.info(
                f"Watching routers for {config.wallet_address or '(no wallet)'} on "
                f"{config.chain['name']} | hooks "
                f"{'enabled' if config.delivery_enabled else 'disabled'}"
            )
        else:
            logger.info("Payment watcher disabled by config")

        yield

        logger.info("x402 watch shutting down...")
        if start_task is not None and not start_task.done():
            await asyncio.gather(start_task, return_exceptions=True)
        await watcher.close()

    app = create_app(config, watcher, watcher_enabled=config.enabled)
    app.router.lifespan_context = lifespan
    return app


# ============================================================
# ENTRY POINT
# ============================================================

app = create_service_app(WatcherConfig.from_env())

if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8402"))

    logger.info(f"Starting server on {host}:{port}")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
