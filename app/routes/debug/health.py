"""Debug-only health detail endpoints."""

from fastapi import APIRouter

from app.features.team_health.jobs.sentiment_sweep_job import sentiment_sweep_job
from app.features.team_health.jobs.weekly_insights_job import weekly_insights_job
from app.features.team_health.pipeline.scoring.circuit_breaker import ai_circuit_breaker
from app.features.team_health.repository.insight_repository import WEEKS_INDEX_KEY
from app.features.team_health.repository.message_repository import UNSCORED_KEY
from app.services import redis_store

router = APIRouter()


@router.get("/health/team-health")
async def team_health_status():
    """Store round trip with index sizes, breaker state and job status."""
    return {
        "redis": await redis_store.health_check(
            index_keys={"unscored_backlog": UNSCORED_KEY, "insight_weeks": WEEKS_INDEX_KEY}
        ),
        "circuit_breaker": ai_circuit_breaker.snapshot().to_dict(),
        "jobs": {
            "sentiment_sweep": sentiment_sweep_job.get_job_status(),
            "weekly_insights": weekly_insights_job.get_job_status(),
            "sentiment_sweep_health": sentiment_sweep_job.health_check(),
        },
    }
