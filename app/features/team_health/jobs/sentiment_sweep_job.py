"""
Sentiment sweep job.
Periodically scores the backlog of unscored messages so nothing stays
unscored when the ingestion-time scoring call was missed or failed.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.features.team_health.domain.models import RunStatus
from app.features.team_health.pipeline.scoring.service import BatchScorer, batch_scorer
from app.infrastructure.observability.logging import get_logger, log_job_run

logger = get_logger(__name__)

JOB_NAME = "sentiment_sweep"
ERROR_RETRY_SECONDS = 60


class SentimentSweepMetrics:
    """Counters for one sweep run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.status = RunStatus.SUCCESS.value
        self.processed_count = 0
        self.failed_count = 0
        self.degraded_count = 0
        self.skipped_count = 0
        self.remaining_backlog = 0
        self.total_duration_seconds = 0.0
        self.errors: list[str] = []

    def record_summary(self, summary) -> None:
        self.status = summary.status.value
        self.processed_count = summary.processed_count
        self.failed_count = summary.failed_count
        self.degraded_count = summary.degraded_count
        self.skipped_count = summary.skipped_count
        self.errors = list(summary.errors)

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": JOB_NAME,
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "status": self.status,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "degraded_count": self.degraded_count,
            "skipped_count": self.skipped_count,
            "remaining_backlog": self.remaining_backlog,
            "errors_count": len(self.errors),
        }


class SentimentSweepJob:
    def __init__(self, scorer: BatchScorer | None = None, interval_minutes: int | None = None):
        self.scorer = scorer or batch_scorer
        self.interval_minutes = interval_minutes or settings.SWEEP_INTERVAL_MINUTES
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = SentimentSweepMetrics()

    async def run_once(self) -> dict:
        """Run a single sweep; overlapping runs are skipped."""
        if self.is_running:
            logger.warning("Sentiment sweep already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            summary = await self.scorer.sweep_unscored()
            self.job_metrics.record_summary(summary)
            self.job_metrics.remaining_backlog = await self.scorer.repository.count_unscored()
            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)

            metrics = self.job_metrics.to_dict()
            log_job_run(
                JOB_NAME,
                metrics["status"],
                metrics["total_duration_seconds"] * 1000,
                processed_count=metrics["processed_count"],
                failed_count=metrics["failed_count"],
                degraded_count=metrics["degraded_count"],
                remaining_backlog=metrics["remaining_backlog"],
            )
            return metrics

        finally:
            self.is_running = False

    def get_job_status(self) -> dict:
        return {
            "job_name": JOB_NAME,
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_minutes": self.interval_minutes,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    def health_check(self) -> dict:
        now = datetime.now(UTC)
        overdue_threshold = timedelta(minutes=self.interval_minutes * 2)
        is_overdue = self.last_run_time is not None and (now - self.last_run_time) > overdue_threshold

        health_status = {
            "healthy": not is_overdue,
            "service": f"{JOB_NAME}_job",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
        }
        if is_overdue:
            health_status["warning"] = (
                f"Job overdue by {(now - self.last_run_time).total_seconds() / 60:.1f} minutes"
            )
        return health_status


sentiment_sweep_job = SentimentSweepJob()


async def run_sentiment_sweep_job() -> dict:
    """Run a single iteration of the sentiment sweep."""
    return await sentiment_sweep_job.run_once()


async def start_sentiment_sweep_scheduler():
    """Sweep the unscored backlog every SWEEP_INTERVAL_MINUTES, forever."""
    logger.info("Starting sentiment sweep scheduler", interval_minutes=sentiment_sweep_job.interval_minutes)

    while True:
        try:
            metrics = await run_sentiment_sweep_job()
            if not metrics.get("skipped", False):
                logger.info("Sentiment sweep cycle completed", **metrics)

            await asyncio.sleep(sentiment_sweep_job.interval_minutes * 60)

        except Exception as e:
            logger.error(
                "Error in sentiment sweep scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(ERROR_RETRY_SECONDS)
