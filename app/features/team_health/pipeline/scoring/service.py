"""
Batch sentiment scoring service.

Drives the classifier over sub-batches of unscored messages, validates
every result and persists scores one message at a time so a single bad
write never aborts the run.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from app.config import settings
from app.features.team_health.domain.models import (
    ClassificationItem,
    Message,
    RunStatus,
)
from app.features.team_health.repository.message_repository import (
    MessageRepository,
    MessageStoreError,
)
from app.infrastructure.observability.logging import get_logger

from .classifier_client import MAX_BATCH_SIZE, ClassifierClient
from .validator import ScoreValidator, score_validator

logger = get_logger(__name__)


@dataclass(slots=True)
class BatchScoreSummary:
    processed_count: int = 0
    failed_count: int = 0
    failed_ids: list[str] = field(default_factory=list)
    degraded_count: int = 0
    skipped_count: int = 0
    status: RunStatus = RunStatus.SUCCESS
    errors: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    def record_failure(self, message_id: str, error: str) -> None:
        self.failed_count += 1
        self.failed_ids.append(message_id)
        self.errors.append(f"{message_id}: {error}")

    def finalize(self, started: float) -> BatchScoreSummary:
        self.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        if self.failed_count == 0:
            self.status = RunStatus.SUCCESS
        elif self.processed_count > 0:
            self.status = RunStatus.PARTIAL
        else:
            self.status = RunStatus.ERROR
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "failed_ids": list(self.failed_ids),
            "degraded_count": self.degraded_count,
            "skipped_count": self.skipped_count,
            "errors": self.errors[:20],
            "duration_ms": self.duration_ms,
        }


class BatchScorer:
    def __init__(
        self,
        classifier: ClassifierClient | None = None,
        repository: MessageRepository | None = None,
        validator: ScoreValidator | None = None,
        batch_size: int | None = None,
        inter_batch_delay_seconds: float | None = None,
        sweep_page_size: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        config = settings.get_classifier_config()
        self.classifier = classifier or ClassifierClient()
        self.repository = repository or MessageRepository()
        self.validator = validator or score_validator
        self.batch_size = min(batch_size or config["batch_size"], MAX_BATCH_SIZE)
        self.inter_batch_delay_seconds = (
            inter_batch_delay_seconds
            if inter_batch_delay_seconds is not None
            else config["inter_batch_delay_seconds"]
        )
        self.sweep_page_size = sweep_page_size or settings.SWEEP_PAGE_SIZE
        self._sleep = sleep

    async def score_messages(self, message_ids: list[str]) -> BatchScoreSummary:
        """Score the given messages; never raises."""
        started = time.perf_counter()
        summary = BatchScoreSummary()
        ids = list(dict.fromkeys(mid for mid in message_ids if mid))
        if not ids:
            return summary.finalize(started)

        candidates: list[Message] = []
        handled: set[str] = set()
        try:
            loaded = await self.repository.get_messages(ids)
            for message_id in ids:
                message = loaded.get(message_id)
                if message is None or not message.is_scoring_candidate:
                    summary.skipped_count += 1
                    continue
                candidates.append(message)

            if summary.skipped_count:
                logger.info(
                    "Skipped messages not eligible for scoring",
                    skipped_count=summary.skipped_count,
                    requested=len(ids),
                )
            await self._score_candidates(candidates, summary, handled)

        except Exception as e:
            logger.error(
                "Sentiment scoring run failed",
                error=str(e),
                error_type=type(e).__name__,
                requested=len(ids),
            )
            pending = [message.id for message in candidates] if candidates else ids
            for message_id in pending:
                if message_id not in handled:
                    summary.record_failure(message_id, f"run aborted: {e}")

        summary.finalize(started)
        logger.info("Sentiment scoring run completed", **summary.to_dict())
        return summary

    async def sweep_unscored(self) -> BatchScoreSummary:
        """Score up to one page of the unscored backlog; a no-op when it is empty."""
        started = time.perf_counter()
        try:
            backlog = await self.repository.list_unscored(limit=self.sweep_page_size)
        except MessageStoreError as e:
            logger.error("Failed to read unscored backlog", error=str(e))
            summary = BatchScoreSummary(errors=[str(e)])
            summary.finalize(started)
            summary.status = RunStatus.ERROR
            return summary

        if not backlog:
            logger.debug("No unscored messages in backlog")
            return BatchScoreSummary().finalize(started)

        logger.info("Sweeping unscored messages", count=len(backlog))
        return await self.score_messages([message.id for message in backlog])

    async def _score_candidates(
        self, candidates: list[Message], summary: BatchScoreSummary, handled: set[str]
    ) -> None:
        batches = [
            candidates[i : i + self.batch_size] for i in range(0, len(candidates), self.batch_size)
        ]

        for index, batch in enumerate(batches):
            classified = await self.classifier.classify(
                [ClassificationItem.from_message(message) for message in batch]
            )
            validation = self.validator.validate_batch(classified.results)

            if classified.fallback:
                summary.degraded_count += len(batch)
            else:
                summary.degraded_count += validation.stats.invalid_count

            if validation.stats.errors:
                logger.warning(
                    "Classifier results sanitized",
                    batch_index=index,
                    invalid_count=validation.stats.invalid_count,
                    sanitized_count=validation.stats.sanitized_count,
                    errors=validation.stats.errors[:5],
                )

            scored_at = datetime.now(UTC)
            for message, result in zip(batch, validation.results):
                handled.add(message.id)
                try:
                    await self.repository.update_sentiment(
                        message.id, result.sentiment_score, scored_at=scored_at
                    )
                    summary.processed_count += 1
                except Exception as e:
                    logger.warning(
                        "Failed to persist sentiment score",
                        message_id=message.id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    summary.record_failure(message.id, str(e))

            if index < len(batches) - 1 and self.inter_batch_delay_seconds > 0:
                await self._sleep(self.inter_batch_delay_seconds)


batch_scorer = BatchScorer()
