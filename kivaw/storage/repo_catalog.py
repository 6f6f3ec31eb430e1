"""Repository for the internal content catalog."""

from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from kivaw.logging import get_logger
from kivaw.storage.json_utils import safe_json_dumps
from kivaw.storage.models import CatalogItem

logger = get_logger(__name__)


class CatalogRepo:
    """Repository for curated catalog items."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_item(self, item_id: str) -> CatalogItem | None:
        result = await self.session.execute(select(CatalogItem).where(CatalogItem.id == item_id))
        return result.scalar_one_or_none()

    async def list_by_kinds(self, kinds: list[str], limit: int = 200) -> list[CatalogItem]:
        """List catalog items of the given kinds, newest first.

        Args:
            kinds: Kinds to include (matched case-insensitively)
            limit: Maximum items to return

        Returns:
            Catalog rows
        """
        if not kinds:
            return []

        stmt = (
            select(CatalogItem)
            .where(func.lower(CatalogItem.kind).in_([k.lower() for k in kinds]))
            .order_by(CatalogItem.created_at.desc(), CatalogItem.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_universal_by_kinds(
        self,
        kinds: list[str],
        exclude_ids: set[str] | None = None,
        limit: int = 50,
    ) -> list[CatalogItem]:
        """List items without state tags in the given kinds, newest first."""
        if not kinds or limit <= 0:
            return []

        stmt = select(CatalogItem).where(
            func.lower(CatalogItem.kind).in_([k.lower() for k in kinds]),
            or_(CatalogItem.state_tags_json.in_(["[]", ""]), CatalogItem.state_tags_json.is_(None)),
        )
        if exclude_ids:
            stmt = stmt.where(CatalogItem.id.not_in(exclude_ids))
        stmt = stmt.order_by(CatalogItem.created_at.desc(), CatalogItem.id).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def upsert_item(
        self,
        item_id: str,
        kind: str,
        title: str,
        state_tags: list[str] | None = None,
        focus_tags: list[str] | None = None,
        usage_tags: list[str] | None = None,
        byline: str | None = None,
        meta: str | None = None,
        image_url: str | None = None,
        url: str | None = None,
        source: str | None = None,
        external_id: str | None = None,
        created_at: datetime | None = None,
    ) -> CatalogItem:
        """Insert or replace a catalog item (idempotent).

        Args:
            item_id: Catalog id
            kind: Content kind (video, book, playlist, ...)
            title: Display title
            state_tags: States the item suits; empty means every state
            focus_tags: Focus labels
            usage_tags: Mode labels
            byline: Author/creator line
            meta: Short meta line
            image_url: Artwork URL
            url: Link URL
            source: Origin provider, when imported
            external_id: Origin provider id, when imported
            created_at: Creation time, now by default

        Returns:
            Stored CatalogItem
        """
        values = {
            "kind": kind,
            "title": title,
            "state_tags_json": safe_json_dumps(state_tags or [], default="[]"),
            "focus_tags_json": safe_json_dumps(focus_tags or [], default="[]"),
            "usage_tags_json": safe_json_dumps(usage_tags or [], default="[]"),
            "byline": byline,
            "meta": meta,
            "image_url": image_url,
            "url": url,
            "source": source,
            "external_id": external_id,
            "created_at": created_at or datetime.now(timezone.utc),
        }
        stmt = sqlite_insert(CatalogItem).values(id=item_id, **values)
        stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=values)
        await self.session.execute(stmt)
        await self.session.commit()
        self.session.expire_all()

        item = await self.get_item(item_id)
        return item  # type: ignore

    async def count_items(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(CatalogItem))
        return result.scalar() or 0
