"""
Sanitization of raw classifier output.

Nothing in here raises on bad data: every input comes back as a usable,
in-range result tagged with what had to be corrected.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from app.features.team_health.domain.models import ScoreResult

NEUTRAL_SCORE = 0.0
DEFAULT_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.1
UNKNOWN_MESSAGE_ID = "unknown"


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    sanitized: float
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ResultValidation:
    is_valid: bool
    sanitized_result: ScoreResult
    errors: list[str] = field(default_factory=list)
    fallback: bool = False


@dataclass(slots=True)
class ValidationStats:
    total: int = 0
    valid_count: int = 0
    invalid_count: int = 0
    sanitized_count: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BatchValidation:
    results: list[ScoreResult]
    stats: ValidationStats


def _as_finite_number(raw: Any) -> float | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    value = float(raw)
    return value if math.isfinite(value) else None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def fallback_result(message_id: str, note: str) -> ScoreResult:
    """Neutral, low-confidence result used whenever a message cannot be scored."""
    return ScoreResult(
        message_id=message_id,
        sentiment_score=NEUTRAL_SCORE,
        confidence=FALLBACK_CONFIDENCE,
        note=note,
    )


class ScoreValidator:
    def __init__(self):
        self.min_score = -1.0
        self.max_score = 1.0
        self.min_confidence = 0.0
        self.max_confidence = 1.0

    def validate_score(self, raw: Any) -> ValidationResult:
        value = _as_finite_number(raw)
        if value is None:
            return ValidationResult(
                is_valid=False,
                sanitized=NEUTRAL_SCORE,
                errors=["Sentiment score must be a finite number"],
            )

        if value < self.min_score or value > self.max_score:
            return ValidationResult(
                is_valid=False,
                sanitized=_clamp(value, self.min_score, self.max_score),
                errors=[
                    f"Sentiment score {value} is outside valid range "
                    f"[{self.min_score}, {self.max_score}]"
                ],
            )
        return ValidationResult(is_valid=True, sanitized=value)

    def validate_confidence(self, raw: Any) -> ValidationResult:
        value = _as_finite_number(raw)
        if value is None:
            return ValidationResult(
                is_valid=False,
                sanitized=DEFAULT_CONFIDENCE,
                errors=["Confidence must be a finite number"],
            )

        if value < self.min_confidence or value > self.max_confidence:
            return ValidationResult(
                is_valid=False,
                sanitized=_clamp(value, self.min_confidence, self.max_confidence),
                errors=[
                    f"Confidence {value} is outside valid range "
                    f"[{self.min_confidence}, {self.max_confidence}]"
                ],
            )
        return ValidationResult(is_valid=True, sanitized=value)

    def validate_result(self, result: ScoreResult | None) -> ResultValidation:
        """
        Sanitize one result.

        A missing message id or an unusable score replaces the whole result
        with the neutral fallback; out-of-range values are clamped.
        """
        if result is None:
            return ResultValidation(
                is_valid=False,
                sanitized_result=fallback_result(UNKNOWN_MESSAGE_ID, "Missing result"),
                errors=["Result is missing"],
                fallback=True,
            )

        errors: list[str] = []
        message_id = result.message_id.strip() if isinstance(result.message_id, str) else ""
        if not message_id:
            errors.append("Message ID is required and must be a non-empty string")

        score = self.validate_score(result.sentiment_score)
        confidence = self.validate_confidence(result.confidence)
        errors.extend(score.errors)
        errors.extend(confidence.errors)

        structural = not message_id or _as_finite_number(result.sentiment_score) is None
        if structural:
            return ResultValidation(
                is_valid=False,
                sanitized_result=fallback_result(
                    message_id or UNKNOWN_MESSAGE_ID, "; ".join(errors)
                ),
                errors=errors,
                fallback=True,
            )

        return ResultValidation(
            is_valid=not errors,
            sanitized_result=ScoreResult(
                message_id=message_id,
                sentiment_score=score.sanitized,
                confidence=confidence.sanitized,
                note=result.note if isinstance(result.note, str) else None,
            ),
            errors=errors,
        )

    def validate_batch(self, results: list[ScoreResult | None]) -> BatchValidation:
        stats = ValidationStats(total=len(results))
        sanitized_results: list[ScoreResult] = []

        for index, result in enumerate(results):
            validation = self.validate_result(result)
            sanitized = validation.sanitized_result

            if validation.is_valid:
                stats.valid_count += 1
            else:
                stats.invalid_count += 1
                stats.errors.append(f"Result {index}: {', '.join(validation.errors)}")

            if result is None or (
                sanitized.sentiment_score != result.sentiment_score
                or sanitized.confidence != result.confidence
            ):
                stats.sanitized_count += 1

            sanitized_results.append(sanitized)

        return BatchValidation(results=sanitized_results, stats=stats)

    def set_score_range(self, minimum: float, maximum: float) -> None:
        if minimum >= maximum:
            raise ValueError("Minimum score must be less than maximum score")
        if maximum - minimum < 0.1:
            raise ValueError("Score range must be at least 0.1")
        if minimum < -1.0 or maximum > 1.0:
            raise ValueError("Score range must be within [-1, 1]")
        self.min_score = minimum
        self.max_score = maximum

    def set_confidence_range(self, minimum: float, maximum: float) -> None:
        if minimum >= maximum:
            raise ValueError("Minimum confidence must be less than maximum confidence")
        if minimum < 0 or maximum > 1:
            raise ValueError("Confidence range must be within [0, 1]")
        self.min_confidence = minimum
        self.max_confidence = maximum


score_validator = ScoreValidator()
