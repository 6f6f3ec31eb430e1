"""Repository for provider switches and configured feed sources."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from kivaw.logging import get_logger
from kivaw.storage.models import ProviderSetting, RssSource

logger = get_logger(__name__)


class SourcesRepo:
    """Repository for provider settings and RSS sources."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def is_provider_enabled(self, provider: str) -> bool:
        """Whether a provider is switched on. Providers without a row are off."""
        stmt = select(ProviderSetting.enabled).where(ProviderSetting.provider == provider)
        result = await self.session.execute(stmt)
        return bool(result.scalar_one_or_none())

    async def set_provider_enabled(self, provider: str, enabled: bool) -> None:
        now = datetime.now(timezone.utc)
        stmt = sqlite_insert(ProviderSetting).values(
            provider=provider, enabled=enabled, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["provider"],
            set_={"enabled": enabled, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.commit()
        logger.info(f"Provider {provider} enabled={enabled}")

    async def list_provider_settings(self) -> dict[str, bool]:
        result = await self.session.execute(select(ProviderSetting))
        return {row.provider: row.enabled for row in result.scalars().all()}

    async def list_active_feed_urls(self, limit: int) -> list[str]:
        """Active feed URLs, highest weight first."""
        stmt = (
            select(RssSource.url)
            .where(RssSource.active.is_(True))
            .order_by(RssSource.weight.desc(), RssSource.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_feed_source(
        self,
        url: str,
        title: str | None = None,
        weight: int = 0,
        active: bool = True,
    ) -> RssSource:
        source = RssSource(
            url=url,
            title=title,
            weight=weight,
            active=active,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(source)
        await self.session.commit()
        return source
