"""
Scheduling service for periodic trend refresh and rescoring
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

from civic_triage.services.ingestion_pipeline import IngestionPipeline
from civic_triage.services.trend_provider import HttpTrendSource, TrendWeightCache
from civic_triage.logging_config import logger


class RescoreScheduler:
    """Keeps priority scores current as complaints age and trends move"""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        interval_seconds: float = 3600,
        trend_cache: Optional[TrendWeightCache] = None,
        trend_source: Optional[HttpTrendSource] = None
    ):
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self.trend_cache = trend_cache
        self.trend_source = trend_source
        self.is_running = False
        self.last_run: Optional[datetime] = None
        self.last_stats: Optional[dict] = None
        self._task: Optional[asyncio.Task] = None

    async def run_scheduled_rescore(self) -> Optional[dict]:
        """Run one refresh-and-rescore pass"""
        if self.is_running:
            logger.warning("Rescore already in progress, skipping scheduled run")
            return None

        self.is_running = True
        self.last_run = datetime.now(timezone.utc)

        try:
            logger.info("Starting scheduled rescore")

            if self.trend_cache is not None and self.trend_source is not None:
                await self.trend_cache.refresh(self.trend_source)

            stats = await self.pipeline.rescore_all()
            self.last_stats = stats
            logger.info(f"Scheduled rescore completed: {stats}")
            return stats

        except Exception as e:
            logger.error(f"Error in scheduled rescore: {str(e)}")
            return None
        finally:
            self.is_running = False

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_scheduled_rescore()

    def start(self) -> None:
        """Start the background loop"""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Rescore scheduler started with interval {self.interval_seconds}s")

    async def stop(self) -> None:
        """Stop the background loop and wait for it to exit"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Rescore scheduler stopped")

    def get_status(self) -> dict:
        """Get current scheduler status"""
        return {
            "is_running": self.is_running,
            "active": self._task is not None and not self._task.done(),
            "interval_seconds": self.interval_seconds,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_stats": self.last_stats
        }
