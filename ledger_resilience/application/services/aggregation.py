"""
Monthly Aggregation Refresher

Handler for `aggregation.updateMonthly` jobs. The ledger recomputation itself
belongs to the accounting layer and is injected as `recompute`; this handler
runs it and then drops the dashboard caches that read the aggregates.
"""

from collections.abc import Awaitable, Callable

from ledger_resilience.core.config.constants import Stage
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.infrastructure.cache.app_cache import AppCache
from ledger_resilience.infrastructure.message_queue.jobs import AggregationUpdateJob

logger = get_logger(__name__)

Recompute = Callable[[str, int, int], Awaitable[None]]


class MonthlyAggregationRefresher:
    def __init__(self, app_cache: AppCache, recompute: Recompute | None = None):
        self._app_cache = app_cache
        self._recompute = recompute

    async def __call__(self, job: AggregationUpdateJob) -> None:
        if self._recompute is not None:
            await self._recompute(job.user_id, job.year, job.month)

        await self._app_cache.invalidate_dashboard_stats(job.user_id)
        await self._app_cache.invalidate_revenue_chart(job.user_id)
        log_stage(
            logger, Stage.WORKER, "Monthly aggregation refreshed",
            user_id=job.user_id, year=job.year, month=job.month,
        )
