"""
Weekly insights job.
Runs once a week (Monday 09:00 UTC by default) and generates insights for
the Monday-aligned week that just ended.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.features.team_health.pipeline.insights.service import InsightEngine, insight_engine
from app.infrastructure.observability.logging import get_logger, log_job_run
from app.utils.time_windows import previous_week_start, week_start_for

logger = get_logger(__name__)

JOB_NAME = "weekly_insights"
ERROR_RETRY_SECONDS = 300


class WeeklyInsightsJobError(Exception):
    """Custom exception for weekly insights job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def next_run_after(now: datetime, weekday: int, hour_utc: int) -> datetime:
    """First scheduled slot strictly after now."""
    now = now.astimezone(UTC)
    candidate = (now - timedelta(days=now.weekday() - weekday)).replace(
        hour=hour_utc, minute=0, second=0, microsecond=0
    )
    while candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def target_week_for(now: datetime) -> datetime:
    """Start of the last complete Monday-aligned week before now."""
    return previous_week_start(week_start_for(now))


class WeeklyInsightsJob:
    def __init__(
        self,
        engine: InsightEngine | None = None,
        weekday: int | None = None,
        hour_utc: int | None = None,
    ):
        self.engine = engine or insight_engine
        self.weekday = settings.WEEKLY_INSIGHTS_DAY if weekday is None else weekday
        self.hour_utc = settings.WEEKLY_INSIGHTS_HOUR_UTC if hour_utc is None else hour_utc
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_summary: dict | None = None

    async def run_once(self, now: datetime | None = None, generated_by: str = "system") -> dict:
        """
        Generate insights for the week that just ended.

        Raises:
            WeeklyInsightsJobError: if generation raised instead of reporting
        """
        if self.is_running:
            logger.warning("Weekly insights job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        now = now or datetime.now(UTC)
        window_start = target_week_for(now)

        try:
            self.is_running = True
            logger.info("Starting weekly insights job", window_start=window_start.isoformat())

            summary = await self.engine.generate_weekly_insights(
                window_start, generated_by=generated_by, now=now
            )
            result = summary.to_dict()
            self.last_run_time = datetime.now(UTC)
            self.last_summary = result

            log_job_run(
                JOB_NAME,
                result["status"],
                result["duration_ms"],
                window_start=result["window_start"],
                succeeded=len(result["succeeded_channels"]),
                failed=len(result["failed_channels"]),
                overall_risk=result["overall_risk"],
                insight_source=result["insight_source"],
                error=result["error"],
            )
            return result

        except Exception as e:
            logger.error("Weekly insights job failed", error=str(e), error_type=type(e).__name__)
            raise WeeklyInsightsJobError(
                f"Weekly insights job failed: {e}", operation="run_once"
            ) from e

        finally:
            self.is_running = False

    def next_run_time(self, now: datetime | None = None) -> datetime:
        return next_run_after(now or datetime.now(UTC), self.weekday, self.hour_utc)

    def get_job_status(self) -> dict:
        return {
            "job_name": JOB_NAME,
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "next_run_time": self.next_run_time().isoformat(),
            "last_summary": self.last_summary,
        }


weekly_insights_job = WeeklyInsightsJob()


async def run_weekly_insights_job() -> dict:
    """Run a single iteration of the weekly insights job."""
    return await weekly_insights_job.run_once()


async def start_weekly_insights_scheduler():
    """Sleep until the next weekly slot, run, repeat."""
    logger.info(
        "Starting weekly insights scheduler",
        weekday=weekly_insights_job.weekday,
        hour_utc=weekly_insights_job.hour_utc,
    )

    while True:
        try:
            next_run = weekly_insights_job.next_run_time()
            delay = (next_run - datetime.now(UTC)).total_seconds()
            logger.info("Weekly insights job scheduled", next_run=next_run.isoformat())
            await asyncio.sleep(max(delay, 0))

            await run_weekly_insights_job()

        except Exception as e:
            logger.error(
                "Error in weekly insights scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(ERROR_RETRY_SECONDS)
