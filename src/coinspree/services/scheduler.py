"""In-process interval scheduler for local runs without an external cron."""
import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


async def run_periodically(
    tick: Callable[[], Awaitable[object]],
    interval_seconds: float,
    *,
    name: str,
    stop_event: asyncio.Event,
) -> None:
    """Call ``tick`` every ``interval_seconds`` until ``stop_event`` is set.

    A failing tick is logged and the loop keeps going; the next run happens
    on schedule.

    Args:
        tick: Async callable run once per interval.
        interval_seconds: Seconds to wait between the end of one run and the next.
        name: Label used in log lines.
        stop_event: When set, the loop exits (also interrupts the wait).
    """
    logger.info("Scheduler %s started (every %ss)", name, interval_seconds)
    while not stop_event.is_set():
        try:
            await tick()
        except Exception:  # pylint: disable=broad-except
            logger.exception("Scheduled %s run failed", name)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue
    logger.info("Scheduler %s stopped", name)
