"""
Sentiment classifier client.

Submits one sub-batch of messages to the classification model and returns
exactly one raw ScoreResult per input, in input order. Failures never
escape: exhausted retries or an open circuit produce neutral fallbacks.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.config import settings
from app.features.team_health.domain.models import ClassificationItem, Outcome, ScoreResult
from app.infrastructure.observability.logging import get_logger
from app.services.openai_service import OpenAIServiceError, openai_service

from .circuit_breaker import Admission, CircuitBreaker, ai_circuit_breaker
from .validator import fallback_result

logger = get_logger(__name__)

MAX_BATCH_SIZE = 25
_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")

SYSTEM_MESSAGE = """You are a sentiment analysis expert analyzing workplace communication for employee engagement insights.

Score each message from -1.0 (very negative) to 1.0 (very positive).

Consider:
- Work-related stress indicators (deadlines, pressure, frustration)
- Team morale and collaboration tone
- Enthusiasm and engagement levels
- Burnout signals (exhaustion, cynicism, detachment)
- Positive indicators (celebration, achievement, support)

Respond with ONLY a JSON object in this exact format:
{"results": [{"messageId": "id_1", "sentimentScore": 0.2, "confidence": 0.85}]}

Rules:
- sentimentScore must be between -1.0 and 1.0
- confidence must be between 0.0 and 1.0
- Include every messageId from the input exactly once
- No prose, no markdown"""


class ClassifierReplyError(Exception):
    """Raised when a classifier reply contains no usable records."""


@dataclass(slots=True)
class ClassificationBatch:
    results: list[ScoreResult]
    outcome: Outcome
    reason: str | None = None
    attempts: int = 0
    fallback: bool = False


class ClassifierClient:
    def __init__(
        self,
        service=None,
        breaker: CircuitBreaker | None = None,
        max_attempts: int | None = None,
        base_delay_seconds: float | None = None,
        timeout_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        config = settings.get_classifier_config()
        self.service = service or openai_service
        self.breaker = breaker or ai_circuit_breaker
        self.max_attempts = max_attempts or config["max_attempts"]
        self.base_delay_seconds = (
            base_delay_seconds if base_delay_seconds is not None else config["base_delay_seconds"]
        )
        self.timeout_seconds = timeout_seconds or config["timeout_seconds"]
        self._sleep = sleep

    async def classify(self, items: list[ClassificationItem]) -> ClassificationBatch:
        if not items:
            return ClassificationBatch(results=[], outcome=Outcome.SUCCESS)
        if len(items) > MAX_BATCH_SIZE:
            raise ValueError(f"Sub-batch of {len(items)} exceeds limit of {MAX_BATCH_SIZE}")

        admission = await self.breaker.allow_request()
        if admission is None:
            logger.warning("Classifier circuit open, using fallback scores", batch_size=len(items))
            return self._fallback_batch(items, Outcome.DEGRADED, "circuit_open", attempts=0)

        try:
            return await self._classify_with_retry(items, admission)
        finally:
            await self.breaker.release(admission)

    async def _classify_with_retry(
        self, items: list[ClassificationItem], admission: Admission
    ) -> ClassificationBatch:
        user_message = self._build_user_message(items)
        last_error: str | None = None
        attempt = 0

        for attempt in range(1, self.max_attempts + 1):
            try:
                raw = await asyncio.wait_for(
                    self.service.complete(SYSTEM_MESSAGE, user_message, model=settings.OPENAI_MODEL),
                    timeout=self.timeout_seconds,
                )
                records = self.parse_reply(raw)
                results, missing = self._align(records, items)
            except TimeoutError:
                last_error = f"timeout after {self.timeout_seconds}s"
            except OpenAIServiceError as e:
                last_error = str(e)
                if not e.recoverable:
                    logger.error("Classifier call not retryable", error=last_error, api_error=e.api_error)
                    break
            except ClassifierReplyError as e:
                last_error = f"malformed reply: {e}"
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                await self.breaker.record_success(admission)
                if missing:
                    logger.warning(
                        "Classifier reply missing records",
                        batch_size=len(items),
                        missing_count=missing,
                        attempt=attempt,
                    )
                return ClassificationBatch(
                    results=results,
                    outcome=Outcome.DEGRADED if missing else Outcome.SUCCESS,
                    reason=f"{missing} records missing from reply" if missing else None,
                    attempts=attempt,
                )

            logger.warning(
                "Classifier attempt failed",
                attempt=attempt,
                max_attempts=self.max_attempts,
                batch_size=len(items),
                error=last_error,
            )
            if attempt < self.max_attempts:
                await self._sleep(self.base_delay_seconds * 2 ** (attempt - 1))

        await self.breaker.record_failure(admission, last_error)
        logger.error(
            "Classifier failed after all attempts, using fallback scores",
            attempts=attempt,
            batch_size=len(items),
            final_error=last_error,
        )
        return self._fallback_batch(
            items, Outcome.FAILED, f"classifier failed: {last_error}", attempts=attempt
        )

    def _fallback_batch(
        self, items: list[ClassificationItem], outcome: Outcome, reason: str, attempts: int
    ) -> ClassificationBatch:
        return ClassificationBatch(
            results=[fallback_result(item.id, reason) for item in items],
            outcome=outcome,
            reason=reason,
            attempts=attempts,
            fallback=True,
        )

    def _build_user_message(self, items: list[ClassificationItem]) -> str:
        lines = [
            f'{index}. [ID: {item.id}] [{item.timestamp.isoformat()}] {item.author}: '
            f"{json.dumps(item.text)}"
            for index, item in enumerate(items, start=1)
        ]
        return "Messages to analyze:\n" + "\n".join(lines)

    @staticmethod
    def parse_reply(raw: str) -> list[dict[str, Any]]:
        """
        Pull the list of score records out of a reply.

        Accepts {"results": [...]}, a bare array, or an array embedded in
        surrounding text.
        """
        if not raw or not raw.strip():
            raise ClassifierReplyError("empty reply")

        try:
            parsed: Any = json.loads(raw)
        except json.JSONDecodeError:
            match = _ARRAY_PATTERN.search(raw)
            if not match:
                raise ClassifierReplyError("no JSON array found") from None
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError as e:
                raise ClassifierReplyError(f"invalid JSON array: {e}") from e

        if isinstance(parsed, dict):
            candidates = [parsed.get(key) for key in ("results", "scores", "messages")]
            candidates += [value for value in parsed.values() if isinstance(value, list)]
            parsed = next((value for value in candidates if isinstance(value, list)), None)

        if not isinstance(parsed, list):
            raise ClassifierReplyError("reply does not contain a list of records")

        records = [record for record in parsed if isinstance(record, dict)]
        if not records:
            raise ClassifierReplyError("reply contains no records")
        return records

    @staticmethod
    def _align(
        records: list[dict[str, Any]], items: list[ClassificationItem]
    ) -> tuple[list[ScoreResult], int]:
        """Match records to inputs by id; unmatched inputs get an unusable record."""
        by_id: dict[str, dict[str, Any]] = {}
        for record in records:
            record_id = record.get("messageId", record.get("message_id", record.get("id")))
            if record_id is not None:
                by_id.setdefault(str(record_id).strip(), record)

        positional = not by_id and len(records) == len(items)
        results: list[ScoreResult] = []
        missing = 0
        for index, item in enumerate(items):
            record = records[index] if positional else by_id.get(item.id)
            if record is None:
                missing += 1
                results.append(
                    ScoreResult(
                        message_id=item.id,
                        sentiment_score=None,
                        confidence=None,
                        note="missing from classifier reply",
                    )
                )
                continue
            results.append(
                ScoreResult(
                    message_id=item.id,
                    sentiment_score=record.get("sentimentScore", record.get("score")),
                    confidence=record.get("confidence"),
                    note=record.get("reasoning"),
                )
            )
        return results, missing
