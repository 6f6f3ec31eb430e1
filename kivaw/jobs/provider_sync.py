"""External provider sync into the content cache."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kivaw.config import config
from kivaw.content.normalizers import tag_item
from kivaw.core.contracts import Disabled, NormalizedContentItem, ProviderFailure
from kivaw.logging import get_logger
from kivaw.providers.adapters import PROVIDERS, build_provider
from kivaw.storage import ExternalCacheRepo, RunsRepo, SourcesRepo, get_session_factory

logger = get_logger(__name__)


@dataclass
class SyncOutcome:
    """Result of syncing one provider."""

    provider: str
    started_at: datetime
    finished_at: datetime | None = None
    disabled: bool = False
    error: str | None = None
    fetched: int = 0
    upserted: int = 0
    tag_rows: int = 0
    errors: int = 0
    items: list[NormalizedContentItem] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def status(self) -> str:
        if self.error:
            return "failed"
        return "partial" if self.errors else "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "disabled": self.disabled,
            "error": self.error,
            "fetched": self.fetched,
            "upserted": self.upserted,
            "tag_rows": self.tag_rows,
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
            "items": [
                {"provider": i.provider, "provider_id": i.provider_id, "title": i.title}
                for i in self.items
            ],
        }


async def store_items(session: AsyncSession, items: list[NormalizedContentItem]) -> tuple[int, int, int]:
    """Upsert items into the cache and rewrite their tags.

    Overrides stored for an item are merged into its inferred tags; topical
    tags are stored with the item.

    Returns:
        (upserted, tag rows written, per-item errors)
    """
    cache_repo = ExternalCacheRepo(session)
    ids = await cache_repo.upsert(items)

    tag_rows = 0
    errors = 0
    for cache_id, item in zip(ids, items):
        try:
            overrides = await cache_repo.get_tag_overrides(item.provider, item.provider_id)
            tagged = tag_item(item, overrides)
            tag_rows += await cache_repo.replace_tags(cache_id, tagged.tags, topics=tagged.topics)
        except Exception as e:
            logger.error(f"Error tagging {item.identity_key}: {e}")
            errors += 1

    return len(ids), tag_rows, errors


async def run_provider_sync(
    provider: str,
    query: str | None = None,
    limit: int = 20,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> SyncOutcome:
    """Fetch one provider and store its items with mode/focus tags.

    A disabled provider returns an empty outcome without touching the store.

    Args:
        provider: Registered provider name
        query: Search query, provider default when None
        limit: Maximum items to fetch (1-40)
        session_factory: Session factory, the application one by default

    Returns:
        SyncOutcome with counts and fetched items

    Raises:
        KeyError: If the provider is not registered
    """
    if provider not in PROVIDERS:
        raise KeyError(provider)

    outcome = SyncOutcome(provider=provider, started_at=datetime.now(timezone.utc))
    session_factory = session_factory or get_session_factory()

    async with session_factory() as session:
        adapter = build_provider(provider, SourcesRepo(session).is_provider_enabled)
        try:
            result = await adapter.fetch_result(query, limit)
        finally:
            await adapter.close()

        if isinstance(result, Disabled):
            logger.warning(f"Provider sync skipped: {provider} is disabled")
            outcome.disabled = True
            outcome.finished_at = datetime.now(timezone.utc)
            return outcome

        runs_repo = RunsRepo(session)
        run = await runs_repo.start_run(f"provider_sync:{provider}")

        if isinstance(result, ProviderFailure):
            logger.error(f"Provider sync failed for {provider}: {result.message}")
            outcome.error = result.message[:500]
        else:
            outcome.items = list(result.items)
            outcome.fetched = len(result.items)
            logger.info(f"Fetched {outcome.fetched} items from {provider}")
            try:
                outcome.upserted, outcome.tag_rows, outcome.errors = await store_items(
                    session, outcome.items
                )
            except Exception as e:
                logger.exception(f"Storing {provider} items failed: {e}")
                await session.rollback()
                outcome.error = str(e)[:500]

        outcome.finished_at = datetime.now(timezone.utc)
        await runs_repo.finish_run(run, outcome.status, outcome.to_dict() | {"items": outcome.fetched})

    logger.info(
        f"Provider sync {provider} finished: upserted={outcome.upserted}, "
        f"tag_rows={outcome.tag_rows}, errors={outcome.errors}, "
        f"duration={outcome.duration_seconds:.1f}s"
    )
    return outcome


async def run_all_provider_syncs() -> list[SyncOutcome]:
    """Sync every registered provider with its default query."""
    if not config.provider_sync_enabled:
        logger.info("Provider sync skipped: PROVIDER_SYNC_ENABLED=false")
        return []

    outcomes = []
    for provider in PROVIDERS:
        try:
            outcomes.append(await run_provider_sync(provider))
        except Exception as e:
            logger.exception(f"Provider sync crashed for {provider}: {e}")
    return outcomes
