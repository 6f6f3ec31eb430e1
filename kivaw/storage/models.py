"""SQLAlchemy ORM models for Kivaw."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kivaw.storage.db import Base


class ExternalContentCache(Base):
    """Normalized items fetched from external providers."""

    __tablename__ = "external_content_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String, nullable=False)
    provider_id: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    raw_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    topics_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    fetched_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    tags: Mapped[list["ContentTag"]] = relationship(
        "ContentTag", back_populates="cache_item", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("provider", "provider_id", name="uq_external_cache_provider_id"),
        CheckConstraint(
            "type IN ('watch', 'read', 'listen', 'event')", name="ck_external_cache_type"
        ),
        Index("ix_external_cache_fetched_at", "fetched_at"),
    )


class ContentTag(Base):
    """One (mode, focus) pair for a cached item."""

    __tablename__ = "content_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cache_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("external_content_cache.id", ondelete="CASCADE"), nullable=False
    )
    mode: Mapped[str] = mapped_column(String, nullable=False)
    focus: Mapped[str] = mapped_column(String, nullable=False)

    cache_item: Mapped["ExternalContentCache"] = relationship(
        "ExternalContentCache", back_populates="tags"
    )

    __table_args__ = (
        UniqueConstraint("cache_id", "mode", "focus", name="uq_content_tags_pair"),
        Index("ix_content_tags_mode_focus", "mode", "focus"),
    )


class TagOverride(Base):
    """Manually curated labels added on top of inferred tags."""

    __tablename__ = "tag_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String, nullable=False)
    provider_id: Mapped[str] = mapped_column(String, nullable=False)
    mode: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    focus: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_tag_overrides_provider_id", "provider", "provider_id"),)


class CatalogItem(Base):
    """Curated internal catalog entry."""

    __tablename__ = "content_items"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    external_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    byline: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    meta: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    state_tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    focus_tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    usage_tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    source: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_content_items_kind", "kind"),
        Index("ix_content_items_created_at", "created_at"),
    )


class FeedItem(Base):
    """Syndicated feed entry kept for discovery."""

    __tablename__ = "feed_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_type: Mapped[str] = mapped_column(String, nullable=False)
    source_item_id: Mapped[str] = mapped_column(String, nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    is_discoverable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    __table_args__ = (
        UniqueConstraint("source_type", "source_item_id", name="uq_feed_items_source_item"),
        Index("ix_feed_items_published_at", "published_at"),
    )


class ProviderSetting(Base):
    """On/off switch per external provider."""

    __tablename__ = "provider_settings"

    provider: Mapped[str] = mapped_column(String, primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class RssSource(Base):
    """Configured feed to ingest."""

    __tablename__ = "rss_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    title: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class IngestionRun(Base):
    """One execution of an ingestion or sync job."""

    __tablename__ = "ingestion_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    details_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'ok', 'partial', 'failed')", name="ck_ingestion_runs_status"
        ),
        Index("ix_ingestion_runs_job_started", "job_name", "started_at"),
    )
