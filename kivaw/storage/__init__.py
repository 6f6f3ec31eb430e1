"""Storage module for database operations."""

from kivaw.storage.db import Base, close_engine, get_engine, get_session_factory, init_models
from kivaw.storage.json_utils import load_str_list, safe_json_dumps, safe_json_loads
from kivaw.storage.models import (
    CatalogItem,
    ContentTag,
    ExternalContentCache,
    FeedItem,
    IngestionRun,
    ProviderSetting,
    RssSource,
    TagOverride,
)
from kivaw.storage.repo_cache import CachedItem, ExternalCacheRepo
from kivaw.storage.repo_catalog import CatalogRepo
from kivaw.storage.repo_feed_items import FeedItemsRepo
from kivaw.storage.repo_runs import RunsRepo
from kivaw.storage.repo_sources import SourcesRepo

__all__ = [
    # Database
    "Base",
    "get_engine",
    "get_session_factory",
    "init_models",
    "close_engine",
    # JSON utilities
    "safe_json_dumps",
    "safe_json_loads",
    "load_str_list",
    # Models
    "ExternalContentCache",
    "ContentTag",
    "TagOverride",
    "CatalogItem",
    "FeedItem",
    "ProviderSetting",
    "RssSource",
    "IngestionRun",
    # Repositories
    "CachedItem",
    "ExternalCacheRepo",
    "CatalogRepo",
    "FeedItemsRepo",
    "RunsRepo",
    "SourcesRepo",
]
