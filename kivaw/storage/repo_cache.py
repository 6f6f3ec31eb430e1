"""Repository for the external content cache and its mode/focus tags."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kivaw.core.contracts import FOCUSES, MODES, NormalizedContentItem, TagResult
from kivaw.logging import get_logger
from kivaw.storage.json_utils import load_str_list, safe_json_dumps, safe_json_loads
from kivaw.storage.models import ContentTag, ExternalContentCache, TagOverride

logger = get_logger(__name__)


@dataclass
class CachedItem:
    """A cached item together with its stored tag set."""

    id: int
    item: NormalizedContentItem
    fetched_at: datetime
    tags: TagResult
    topics: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: ExternalContentCache) -> "CachedItem":
        raw = safe_json_loads(row.raw_json)
        item = NormalizedContentItem(
            provider=row.provider,
            provider_id=row.provider_id,
            type=row.type,
            title=row.title,
            description=row.description,
            image_url=row.image_url,
            url=row.url,
            raw=raw if isinstance(raw, dict) else {},
        )
        tags = TagResult(
            modes=frozenset(tag.mode for tag in row.tags),
            focus=frozenset(tag.focus for tag in row.tags),
        )
        return cls(
            id=row.id,
            item=item,
            fetched_at=row.fetched_at,
            tags=tags,
            topics=load_str_list(row.topics_json),
        )


class ExternalCacheRepo:
    """Repository for external cache operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(
        self,
        items: list[NormalizedContentItem],
        fetched_at: datetime | None = None,
    ) -> list[int]:
        """Insert or fully replace items keyed by (provider, provider_id).

        Args:
            items: Normalized items to store
            fetched_at: Fetch time to record, now by default

        Returns:
            Stored row ids in input order
        """
        if not items:
            return []

        fetched_at = fetched_at or datetime.now(timezone.utc)

        for item in items:
            values = {
                "type": item.type,
                "title": item.title,
                "description": item.description,
                "image_url": item.image_url,
                "url": item.url,
                "raw_json": safe_json_dumps(item.raw),
                "fetched_at": fetched_at,
            }
            stmt = sqlite_insert(ExternalContentCache).values(
                provider=item.provider,
                provider_id=item.provider_id,
                **values,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["provider", "provider_id"],
                set_=values,
            )
            await self.session.execute(stmt)

        await self.session.commit()
        self.session.expire_all()

        ids = []
        for item in items:
            result = await self.session.execute(
                select(ExternalContentCache.id).where(
                    ExternalContentCache.provider == item.provider,
                    ExternalContentCache.provider_id == item.provider_id,
                )
            )
            ids.append(result.scalar_one())

        logger.debug(f"Upserted {len(items)} cache items")
        return ids

    async def get(self, provider: str, provider_id: str) -> CachedItem | None:
        stmt = (
            select(ExternalContentCache)
            .options(selectinload(ExternalContentCache.tags))
            .where(
                ExternalContentCache.provider == provider,
                ExternalContentCache.provider_id == provider_id,
            )
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return CachedItem.from_row(row) if row else None

    async def get_by_tag_filter(
        self,
        mode: str | None = None,
        focus: str | None = None,
        limit: int | None = None,
    ) -> list[CachedItem]:
        """List cached items having a tag row that matches the filter.

        When both `mode` and `focus` are given an item must carry that exact
        pair. Each returned item has its full tag set, newest fetch first.

        Args:
            mode: Mode to require, or None
            focus: Focus to require, or None
            limit: Maximum items to return

        Returns:
            Matching cached items
        """
        stmt = select(ExternalContentCache).options(selectinload(ExternalContentCache.tags))

        if mode is not None or focus is not None:
            tag_filter = select(ContentTag.cache_id)
            if mode is not None:
                tag_filter = tag_filter.where(ContentTag.mode == mode)
            if focus is not None:
                tag_filter = tag_filter.where(ContentTag.focus == focus)
            stmt = stmt.where(ExternalContentCache.id.in_(tag_filter))

        stmt = stmt.order_by(ExternalContentCache.fetched_at.desc(), ExternalContentCache.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return [CachedItem.from_row(row) for row in result.scalars().all()]

    async def replace_tags(
        self,
        cache_id: int,
        tags: TagResult,
        topics: list[str] | None = None,
    ) -> int:
        """Replace all tag rows of a cached item in one transaction.

        Args:
            cache_id: Cached item id
            tags: Full tag set; one row is written per (mode, focus) pair
            topics: Topical tags to store alongside, unchanged when None

        Returns:
            Number of rows written
        """
        pairs = tags.pairs()
        try:
            await self.session.execute(delete(ContentTag).where(ContentTag.cache_id == cache_id))
            self.session.add_all(
                ContentTag(cache_id=cache_id, mode=mode, focus=focus) for mode, focus in pairs
            )
            if topics is not None:
                await self.session.execute(
                    update(ExternalContentCache)
                    .where(ExternalContentCache.id == cache_id)
                    .values(topics_json=safe_json_dumps(topics, default="[]"))
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        return len(pairs)

    async def get_tag_overrides(self, provider: str, provider_id: str) -> TagResult | None:
        """Collect manual overrides for an item, ignoring unknown labels.

        Returns:
            Override tags, or None when no override row exists
        """
        stmt = select(TagOverride).where(
            TagOverride.provider == provider,
            TagOverride.provider_id == provider_id,
        )
        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())
        if not rows:
            return None

        modes = {row.mode for row in rows if row.mode in MODES}
        focus = {row.focus for row in rows if row.focus in FOCUSES}
        return TagResult(modes=frozenset(modes), focus=frozenset(focus))

    async def add_tag_override(
        self,
        provider: str,
        provider_id: str,
        mode: str | None = None,
        focus: str | None = None,
    ) -> TagOverride:
        override = TagOverride(
            provider=provider,
            provider_id=provider_id,
            mode=mode,
            focus=focus,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(override)
        await self.session.commit()
        return override

    async def count(self, provider: str | None = None) -> int:
        stmt = select(func.count()).select_from(ExternalContentCache)
        if provider:
            stmt = stmt.where(ExternalContentCache.provider == provider)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def count_tags(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(ContentTag))
        return result.scalar() or 0
