"""Repository for ingested feed entries."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from kivaw.logging import get_logger
from kivaw.storage.models import FeedItem

logger = get_logger(__name__)

_UPDATABLE_COLUMNS = (
    "external_id",
    "url",
    "title",
    "summary",
    "author",
    "image_url",
    "published_at",
    "ingested_at",
    "tags_json",
    "is_discoverable",
    "score",
    "metadata_json",
)


class FeedItemsRepo:
    """Repository for feed item operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_many(self, rows: list[dict[str, Any]], commit: bool = True) -> int:
        """Upsert feed rows keyed by (source_type, source_item_id).

        Args:
            rows: Column dicts for FeedItem
            commit: Commit now; False leaves the rows in the caller's transaction

        Returns:
            Number of rows written
        """
        if not rows:
            return 0

        for row in rows:
            stmt = sqlite_insert(FeedItem).values(**row)
            stmt = stmt.on_conflict_do_update(
                index_elements=["source_type", "source_item_id"],
                set_={column: row[column] for column in _UPDATABLE_COLUMNS if column in row},
            )
            await self.session.execute(stmt)

        if commit:
            await self.session.commit()
        return len(rows)

    async def get_by_source_item(self, source_type: str, source_item_id: str) -> FeedItem | None:
        stmt = select(FeedItem).where(
            FeedItem.source_type == source_type,
            FeedItem.source_item_id == source_item_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_recent(self, limit: int = 50) -> list[FeedItem]:
        stmt = (
            select(FeedItem)
            .where(FeedItem.is_discoverable.is_(True))
            .order_by(FeedItem.published_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_items(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(FeedItem))
        return result.scalar() or 0
