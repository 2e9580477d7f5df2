"""Background scheduler for periodic entitlement tasks (plan expiry alerts)."""
import asyncio
import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import database
from src.config.settings import settings

logger = logging.getLogger(__name__)


class BackgroundScheduler:
    """Runs periodic background tasks using asyncio.

    Each loop runs its job once right away, then sleeps for its interval.
    """

    def __init__(self, interval_seconds: float | None = None):
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self._interval = interval_seconds or settings.PLAN_EXPIRY_CHECK_INTERVAL_SECONDS

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self):
        """Start all background tasks."""
        logger.info("BackgroundScheduler starting...")
        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(self._plan_expiry_loop()),
        ]
        logger.info("BackgroundScheduler started with %d tasks", len(self._tasks))

    async def stop(self):
        """Gracefully stop all background tasks."""
        logger.info("BackgroundScheduler stopping...")
        self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("BackgroundScheduler stopped")

    async def _plan_expiry_loop(self):
        """Warn trainers about plans expiring soon, once per interval."""
        from src.domains.plans.expiry import notify_expiring_plans

        await self._run_periodically("Plan expiry", notify_expiring_plans, self._interval)

    async def _run_periodically(
        self,
        name: str,
        job: Callable[[AsyncSession], Awaitable[int]],
        interval: float,
    ):
        while not self._stop_event.is_set():
            try:
                async with database.session() as db:
                    count = await job(db)
                logger.info("%s run finished: %d processed", name, count)
            except Exception as e:
                logger.error("%s loop error: %s", name, e)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
