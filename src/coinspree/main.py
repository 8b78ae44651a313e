"""Main module for the CoinSpree ATH notification service."""
import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from coinspree.container import Container
from coinspree.routers import (cron_router, email_queue_router,
                               notifications_router)
from coinspree.services import run_periodically

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Create the container at startup; optionally run both ticks in-process."""
    container = getattr(fastapi_app.state, "container", None) or Container()
    fastapi_app.state.container = container
    settings = container.settings()

    stop_event = asyncio.Event()
    tasks: list[asyncio.Task] = []
    if settings.run_scheduler:
        pipeline = container.pipeline()
        tasks = [
            asyncio.create_task(
                run_periodically(
                    pipeline.run_detection_tick,
                    settings.detection_interval_seconds,
                    name="ath-detection",
                    stop_event=stop_event,
                )
            ),
            asyncio.create_task(
                run_periodically(
                    pipeline.run_queue_tick,
                    settings.queue_interval_seconds,
                    name="email-queue",
                    stop_event=stop_event,
                )
            ),
        ]

    yield

    stop_event.set()
    await asyncio.gather(*tasks)

    # Close HTTP clients and the Redis connection pool
    for resource in (
        container.market_provider(),
        container.email_provider(),
        container.template_store(),
    ):
        try:
            await resource.close()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Error closing %s: %s", type(resource).__name__, exc)
    await container.redis().aclose()


app = FastAPI(
    title="CoinSpree",
    description="All-time-high detection and email notifications for top cryptocurrencies",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(cron_router)
app.include_router(email_queue_router)
app.include_router(notifications_router)


@app.get("/")
def health():
    """Return health check status."""
    return {"status": "ok"}


def run():
    """Run the server (uvicorn). Use for `poetry run start`."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("coinspree.main:app", host="127.0.0.1", port=8000)
