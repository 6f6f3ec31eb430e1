"""Application entrypoint for the FastAPI service."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from kivaw.config import config
from kivaw.core.scoring import get_scoring_config
from kivaw.jobs import setup_all_jobs, shutdown_scheduler, start_scheduler
from kivaw.logging import get_logger, setup_logging
from kivaw.storage import close_engine, get_session_factory, init_models

setup_logging(config.log_level)
logger = get_logger(__name__)


async def verify_admin_token(
    authorization: str | None = Header(None, alias="Authorization"),
) -> None:
    """Verify admin token for protected endpoints.

    Args:
        authorization: Authorization header value

    Raises:
        HTTPException: If token is invalid or missing
    """
    if not config.admin_token:
        raise HTTPException(
            status_code=503,
            detail="Admin endpoints not configured (ADMIN_TOKEN not set)",
        )

    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    token = authorization.removeprefix("Bearer ").strip()
    if token != config.admin_token:
        raise HTTPException(status_code=403, detail="Invalid admin token")


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One database session per request."""
    async with get_session_factory()() as session:
        yield session


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting application")

    await init_models()
    get_scoring_config()

    start_scheduler()
    setup_all_jobs()

    yield

    logger.info("Shutting down application")
    shutdown_scheduler()
    await close_engine()


app = FastAPI(
    title="Kivaw Recommendations",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True}


@app.get("/recommendations")
async def get_recommendations(
    state: str | None = Query(None),
    mode: str | None = Query(None),
    focus: str = Query(...),
    limit: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Ranked recommendations for a state/mode/focus context."""
    from kivaw.core.recommender import UnifiedRecommender

    recommender = UnifiedRecommender(session, candidate_limit=config.recs_candidate_limit)
    items = await recommender.recommend(state, mode, focus, limit or config.recs_default_limit)
    return {"items": [item.to_dict() for item in items]}


@app.get("/admin/recommendations/debug")
async def debug_recommendations(
    state: str | None = Query(None),
    mode: str | None = Query(None),
    focus: str = Query(...),
    limit: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
    _: None = Depends(verify_admin_token),
) -> dict:
    """Recommendations with per-item score breakdowns.

    Requires admin token in Authorization header.
    """
    from kivaw.core.contracts import RecommendationContext
    from kivaw.core.recommender import UnifiedRecommender

    recommender = UnifiedRecommender(session, candidate_limit=config.recs_candidate_limit)
    items = await recommender.recommend_with_breakdown(
        state, mode, focus, limit or config.recs_default_limit
    )
    return {
        "context": RecommendationContext.build(state, mode, focus).to_dict(),
        "items": [item.to_dict() for item in items],
    }


class RssIngestPayload(BaseModel):
    """Payload for a manual RSS ingestion run."""

    urls: list[str] | None = None
    max_feeds: int | None = Field(None, alias="maxFeeds")
    per_feed_limit: int | None = Field(None, alias="perFeedLimit")

    model_config = {"populate_by_name": True}


@app.post("/admin/ingest/rss")
async def trigger_rss_ingest(
    payload: RssIngestPayload | None = None,
    _: None = Depends(verify_admin_token),
) -> dict:
    """Run RSS ingestion now, for the given URLs or the configured sources.

    Requires admin token in Authorization header.
    """
    from kivaw.jobs import run_rss_ingest

    payload = payload or RssIngestPayload()
    logger.info("Admin triggered RSS ingest")

    try:
        report = await run_rss_ingest(
            urls=payload.urls,
            max_feeds=payload.max_feeds,
            per_feed_limit=payload.per_feed_limit,
        )
    except Exception as e:
        logger.exception(f"Admin RSS ingest failed: {e}")
        raise HTTPException(status_code=500, detail=f"Ingest failed: {str(e)[:200]}")

    return {"ok": report.status != "failed", **report.to_dict()}


class ProviderSyncPayload(BaseModel):
    """Payload for a manual provider sync."""

    query: str | None = None
    limit: int = 20


@app.post("/admin/providers/{provider}/sync")
async def trigger_provider_sync(
    provider: str,
    payload: ProviderSyncPayload | None = None,
    _: None = Depends(verify_admin_token),
) -> dict:
    """Fetch one provider into the content cache.

    A disabled provider answers with `disabled: true` and no items.
    Requires admin token in Authorization header.
    """
    from kivaw.jobs import run_provider_sync
    from kivaw.providers.adapters import PROVIDERS

    if provider not in PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

    payload = payload or ProviderSyncPayload()
    logger.info(f"Admin triggered {provider} sync")

    try:
        outcome = await run_provider_sync(provider, query=payload.query, limit=payload.limit)
    except Exception as e:
        logger.exception(f"Admin {provider} sync failed: {e}")
        raise HTTPException(status_code=500, detail=f"Sync failed: {str(e)[:200]}")

    return {"ok": outcome.error is None, **outcome.to_dict()}


class ProviderTogglePayload(BaseModel):
    """Payload for switching a provider on or off."""

    enabled: bool


@app.put("/admin/providers/{provider}")
async def set_provider_enabled(
    provider: str,
    payload: ProviderTogglePayload,
    session: AsyncSession = Depends(get_session),
    _: None = Depends(verify_admin_token),
) -> dict:
    """Switch a provider on or off."""
    from kivaw.providers.adapters import PROVIDERS
    from kivaw.storage import SourcesRepo

    if provider not in PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

    await SourcesRepo(session).set_provider_enabled(provider, payload.enabled)
    return {"provider": provider, "enabled": payload.enabled}


@app.get("/admin/stats")
async def get_stats(
    session: AsyncSession = Depends(get_session),
    _: None = Depends(verify_admin_token),
) -> dict:
    """Counts of stored content and provider switches.

    Requires admin token in Authorization header.
    """
    from kivaw.providers.adapters import PROVIDERS
    from kivaw.storage import CatalogRepo, ExternalCacheRepo, FeedItemsRepo, RunsRepo, SourcesRepo

    cache_repo = ExternalCacheRepo(session)
    settings = await SourcesRepo(session).list_provider_settings()
    runs = await RunsRepo(session).recent_runs(limit=5)

    return {
        "catalog_items": await CatalogRepo(session).count_items(),
        "feed_items": await FeedItemsRepo(session).count_items(),
        "cache": {
            "total": await cache_repo.count(),
            "tag_rows": await cache_repo.count_tags(),
            "by_provider": {p: await cache_repo.count(p) for p in [*PROVIDERS, "rss"]},
        },
        "providers": {p: settings.get(p, False) for p in PROVIDERS},
        "recent_runs": [
            {
                "job": run.job_name,
                "status": run.status,
                "started_at": run.started_at.isoformat(),
                "finished_at": run.finished_at.isoformat() if run.finished_at else None,
            }
            for run in runs
        ],
    }


@app.get("/admin/scoring/weights")
async def get_scoring_weights(
    _: None = Depends(verify_admin_token),
) -> dict:
    """The active scoring constants, including the state/mode table."""
    return get_scoring_config().to_dict()


def main() -> None:
    """Run the API server."""
    logger.info(f"Starting FastAPI server on {config.host}:{config.port}")
    uvicorn.run(
        "kivaw.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
