"""Unified recommendations over the internal catalog and the external cache.

Internal items are filtered by the kinds a focus maps to, scored,
state-filtered and picked round-robin across kinds. Cached external items
are scored with the same engine. Both pools are merged, deduplicated by
identity and ranked by score, then recency.
"""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from kivaw.core.contracts import (
    MODES,
    Candidate,
    RecommendationContext,
    RecommendedItem,
    ScoredCandidate,
    State,
)
from kivaw.core.diversity import select_diverse
from kivaw.core.scoring import ScoringConfig, get_scoring_config, score_candidates
from kivaw.logging import get_logger
from kivaw.storage.json_utils import load_str_list
from kivaw.storage.models import CatalogItem
from kivaw.storage.repo_cache import CachedItem, ExternalCacheRepo
from kivaw.storage.repo_catalog import CatalogRepo

logger = get_logger(__name__)

MIN_LIMIT = 1
MAX_LIMIT = 50
DEFAULT_LIMIT = 12
DEFAULT_CANDIDATE_LIMIT = 200

# Catalog kinds eligible for each focus. A focus missing here has no content.
FOCUS_KINDS: dict[str, tuple[str, ...]] = {
    "music": ("playlist", "music"),
    "watch": ("video", "movie"),
    "read": ("book",),
    "move": ("activity",),
    "create": ("video", "activity"),
    "reset": ("playlist", "book"),
}

EXTERNAL_KINDS: dict[str, str] = {
    "watch": "visual",
    "read": "book",
    "listen": "audio",
    "event": "event",
}

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _lower_set(values: list[str]) -> frozenset[str]:
    return frozenset(v.lower() for v in values)


def catalog_candidate(row: CatalogItem) -> Candidate:
    """Scoring view of a catalog row; mode labels come from its usage tags."""
    source = row.source or "internal"
    aliases = frozenset({f"{row.source}_{row.external_id}"}) if row.source and row.external_id else frozenset()
    return Candidate(
        candidate_id=row.id,
        kind=row.kind.lower(),
        title=row.title,
        modes=_lower_set(load_str_list(row.usage_tags_json)) & MODES,
        focuses=_lower_set(load_str_list(row.focus_tags_json)),
        state_tags=_lower_set(load_str_list(row.state_tags_json)),
        timestamp=row.created_at,
        provider=None,
        source=source,
        url=row.url,
        image_url=row.image_url,
        byline=row.byline,
        aliases=aliases,
    )


def cached_candidate(cached: CachedItem) -> Candidate:
    """Scoring view of a cached external item. External items suit every state."""
    item = cached.item
    author = item.raw.get("author")
    return Candidate(
        candidate_id=item.identity_key,
        kind=EXTERNAL_KINDS.get(item.type, "other"),
        title=item.title,
        modes=cached.tags.modes,
        focuses=cached.tags.focus,
        timestamp=cached.fetched_at,
        provider=item.provider,
        source=item.provider,
        url=item.url,
        image_url=item.image_url,
        byline=author if isinstance(author, str) else None,
        raw=item.raw,
    )


def _timestamp_key(scored: ScoredCandidate) -> datetime:
    ts = scored.candidate.timestamp
    if ts is None:
        return _OLDEST
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def merge_ranked(
    pools: list[list[ScoredCandidate]],
    limit: int,
) -> list[ScoredCandidate]:
    """Merge pools in order, drop later duplicates, rank and truncate.

    Two candidates are duplicates when their identity keys overlap, so the
    first pool wins. Ranking is score descending, then newest first.
    """
    seen: set[str] = set()
    merged: list[ScoredCandidate] = []
    for pool in pools:
        for scored in pool:
            keys = scored.candidate.identity_keys
            if keys & seen:
                continue
            seen |= keys
            merged.append(scored)

    merged.sort(key=lambda s: (s.score, _timestamp_key(s)), reverse=True)
    return merged[:limit]


def clamp_limit(limit: int | None, default: int = DEFAULT_LIMIT) -> int:
    if limit is None:
        return default
    return max(MIN_LIMIT, min(int(limit), MAX_LIMIT))


class UnifiedRecommender:
    """Ranks internal and external content for a context.

    One instance is bound to one session; it holds no state between calls.
    """

    def __init__(
        self,
        session: AsyncSession,
        scoring: ScoringConfig | None = None,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    ) -> None:
        self.catalog = CatalogRepo(session)
        self.cache = ExternalCacheRepo(session)
        self.scoring = scoring or get_scoring_config()
        self.candidate_limit = candidate_limit

    async def recommend(
        self,
        state: str | None,
        mode: str | None,
        focus: str | None,
        limit: int | None = DEFAULT_LIMIT,
        now: datetime | None = None,
    ) -> list[RecommendedItem]:
        """Ranked recommendations for a context.

        Args:
            state: User state; empty means blank
            mode: Requested mode
            focus: Requested focus; a focus with no kind mapping yields []
            limit: Maximum items (1-50)
            now: Reference time for freshness, current time by default

        Returns:
            Recommended items, best first
        """
        ranked = await self.rank(RecommendationContext.build(state, mode, focus), limit, now)
        return [RecommendedItem.from_scored(s) for s in ranked]

    async def recommend_with_breakdown(
        self,
        state: str | None,
        mode: str | None,
        focus: str | None,
        limit: int | None = DEFAULT_LIMIT,
        now: datetime | None = None,
    ) -> list[RecommendedItem]:
        """Same as `recommend`, with each item's score breakdown attached."""
        ranked = await self.rank(RecommendationContext.build(state, mode, focus), limit, now)
        return [RecommendedItem.from_scored(s, with_breakdown=True) for s in ranked]

    async def rank(
        self,
        context: RecommendationContext,
        limit: int | None = DEFAULT_LIMIT,
        now: datetime | None = None,
    ) -> list[ScoredCandidate]:
        limit = clamp_limit(limit)
        now = now or datetime.now(timezone.utc)

        kinds = FOCUS_KINDS.get(context.focus)
        if not kinds:
            logger.info(f"No content kinds mapped for focus '{context.focus}'")
            return []

        internal = await self._internal_pool(context, kinds, limit, now)
        external = await self._external_pool(context, now)

        ranked = merge_ranked([internal, external], limit)
        logger.debug(
            f"Recommendations for {context.to_dict()}: internal={len(internal)} "
            f"external={len(external)} returned={len(ranked)}"
        )
        return ranked

    async def _internal_pool(
        self,
        context: RecommendationContext,
        kinds: tuple[str, ...],
        limit: int,
        now: datetime,
    ) -> list[ScoredCandidate]:
        rows = await self.catalog.list_by_kinds(list(kinds), limit=self.candidate_limit)
        scored = score_candidates(
            (catalog_candidate(row) for row in rows), context, self.scoring, now
        )

        if context.state == State.BLANK.value:
            eligible = scored
        else:
            eligible = [
                s for s in scored
                if s.candidate.is_universal or context.state in s.candidate.state_tags
            ]

        picked = select_diverse(eligible, limit)

        if len(picked) < limit:
            picked.extend(await self._universal_fallback(context, kinds, picked, limit, now))

        return picked

    async def _universal_fallback(
        self,
        context: RecommendationContext,
        kinds: tuple[str, ...],
        picked: list[ScoredCandidate],
        limit: int,
        now: datetime,
    ) -> list[ScoredCandidate]:
        """Universal items in the same kinds, newest first, not already picked."""
        rows = await self.catalog.list_universal_by_kinds(
            list(kinds),
            exclude_ids={s.candidate.candidate_id for s in picked},
            limit=limit - len(picked),
        )
        if rows:
            logger.debug(f"Topping up {len(picked)} internal picks with {len(rows)} universal items")
        return score_candidates(
            (catalog_candidate(row) for row in rows), context, self.scoring, now
        )

    async def _external_pool(
        self,
        context: RecommendationContext,
        now: datetime,
    ) -> list[ScoredCandidate]:
        try:
            cached = await self.cache.get_by_tag_filter(
                mode=context.mode or None,
                focus=context.focus,
                limit=self.candidate_limit,
            )
            if not cached:
                cached = await self.cache.get_by_tag_filter(
                    focus=context.focus,
                    limit=self.candidate_limit,
                )
        except Exception as e:
            logger.exception(f"External recommendations unavailable: {e}")
            return []

        return score_candidates(
            (cached_candidate(c) for c in cached), context, self.scoring, now
        )
