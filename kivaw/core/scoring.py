"""Candidate scoring against a recommendation context.

Scores are additive: mode match, focus match, state/mode compatibility,
freshness and provider popularity. All constants live in `ScoringConfig`
so the tables can be swapped per call or loaded from a JSON file.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

from kivaw.core.contracts import Candidate, RecommendationContext, ScoreBreakdown, ScoredCandidate
from kivaw.logging import get_logger

logger = get_logger(__name__)

DEFAULT_STATE_MODE_WEIGHTS: dict[str, dict[str, float]] = {
    "blank": {"reset": 20, "comfort": 15, "reflect": 10, "beauty": 5},
    "destructive": {"reflect": 20, "reset": 15, "comfort": 10, "logic": 5},
    "expansive": {"beauty": 20, "logic": 15, "reflect": 10, "faith": 5},
    "minimize": {"reset": 20, "comfort": 15, "reflect": 10, "beauty": 5},
}

# (max age in days, points), checked in order
DEFAULT_FRESHNESS_TIERS: tuple[tuple[int, float], ...] = ((7, 10.0), (30, 5.0), (90, 2.0))

# (exclusive vote-count threshold, bonus), checked in order
DEFAULT_VOTE_COUNT_BONUS: tuple[tuple[int, float], ...] = ((1000, 3.0), (500, 2.0), (100, 1.0))


@dataclass(frozen=True)
class PopularityRule:
    """Where a provider keeps its rating and vote count, and how to scale the rating."""

    rating_path: tuple[str, ...]
    count_path: tuple[str, ...]
    rating_multiplier: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "rating_path": list(self.rating_path),
            "count_path": list(self.count_path),
            "rating_multiplier": self.rating_multiplier,
        }


DEFAULT_POPULARITY_RULES: dict[str, PopularityRule] = {
    "tmdb": PopularityRule(("vote_average",), ("vote_count",), 1.0),
    # 0-5 ratings are doubled onto the 0-10 scale
    "google_books": PopularityRule(
        ("volumeInfo", "averageRating"), ("volumeInfo", "ratingsCount"), 2.0
    ),
    "open_library": PopularityRule(("ratings_average",), ("ratings_count",), 2.0),
}


def _parse_state_mode_weights(raw: Mapping[str, Mapping[str, Any]]) -> dict[str, dict[str, float]]:
    """Validate a state -> mode -> weight table. Weights must be non-negative numbers."""
    table: dict[str, dict[str, float]] = {}
    for state, weights in raw.items():
        row: dict[str, float] = {}
        for mode, weight in weights.items():
            value = float(weight)
            if value < 0:
                raise ValueError(f"Negative weight for state '{state}', mode '{mode}': {value}")
            row[mode] = value
        table[state] = row
    return table


@dataclass(frozen=True)
class ScoringConfig:
    """Tunable scoring constants."""

    mode_match_points: float = 50.0
    focus_match_points: float = 25.0
    state_mode_weights: Mapping[str, Mapping[str, float]] = field(
        default_factory=lambda: DEFAULT_STATE_MODE_WEIGHTS
    )
    freshness_tiers: tuple[tuple[int, float], ...] = DEFAULT_FRESHNESS_TIERS
    vote_count_bonus: tuple[tuple[int, float], ...] = DEFAULT_VOTE_COUNT_BONUS
    popularity_cap: float = 15.0
    popularity_rules: Mapping[str, PopularityRule] = field(
        default_factory=lambda: DEFAULT_POPULARITY_RULES
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoringConfig":
        """Build a config from a plain dict, keeping defaults for missing keys."""
        defaults = cls()
        rules = dict(defaults.popularity_rules)
        for provider, rule in (data.get("popularity_rules") or {}).items():
            rules[provider] = PopularityRule(
                rating_path=tuple(rule["rating_path"]),
                count_path=tuple(rule["count_path"]),
                rating_multiplier=float(rule.get("rating_multiplier", 1.0)),
            )

        config = cls(
            mode_match_points=float(data.get("mode_match_points", defaults.mode_match_points)),
            focus_match_points=float(data.get("focus_match_points", defaults.focus_match_points)),
            state_mode_weights=_parse_state_mode_weights(
                data.get("state_mode_weights", defaults.state_mode_weights)
            ),
            freshness_tiers=tuple(
                (int(days), float(points))
                for days, points in data.get("freshness_tiers", defaults.freshness_tiers)
            ),
            vote_count_bonus=tuple(
                (int(threshold), float(bonus))
                for threshold, bonus in data.get("vote_count_bonus", defaults.vote_count_bonus)
            ),
            popularity_cap=float(data.get("popularity_cap", defaults.popularity_cap)),
            popularity_rules=rules,
        )
        for name in ("mode_match_points", "focus_match_points", "popularity_cap"):
            if getattr(config, name) < 0:
                raise ValueError(f"{name} must not be negative")
        return config

    @classmethod
    def from_json(cls, path: str | Path) -> "ScoringConfig":
        """Load a config from a JSON file."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        logger.info(f"Loaded scoring config from {path}")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode_match_points": self.mode_match_points,
            "focus_match_points": self.focus_match_points,
            "state_mode_weights": {
                state: dict(weights) for state, weights in self.state_mode_weights.items()
            },
            "freshness_tiers": [list(tier) for tier in self.freshness_tiers],
            "vote_count_bonus": [list(tier) for tier in self.vote_count_bonus],
            "popularity_cap": self.popularity_cap,
            "popularity_rules": {
                provider: rule.to_dict() for provider, rule in self.popularity_rules.items()
            },
        }


DEFAULT_SCORING = ScoringConfig()


def load_scoring_config(path: str | None = None) -> ScoringConfig:
    """Return the configured scoring constants, or the defaults when no file is set."""
    if path is None:
        from kivaw.config import config

        path = config.scoring_config_path
    if not path:
        return DEFAULT_SCORING
    return ScoringConfig.from_json(path)


_active_scoring: ScoringConfig | None = None


def get_scoring_config() -> ScoringConfig:
    """Process-wide scoring config, loaded on first use."""
    global _active_scoring
    if _active_scoring is None:
        _active_scoring = load_scoring_config()
    return _active_scoring


def set_scoring_config(scoring: ScoringConfig | None) -> None:
    """Replace the process-wide scoring config; None reloads it on next use."""
    global _active_scoring
    _active_scoring = scoring


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp strictly, returning an aware UTC datetime.

    Accepts datetimes, ISO 8601 strings (with or without `Z`) and RFC 2822
    strings. Naive values are taken as UTC. Anything else yields None,
    never the current time.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError, IndexError):
                return None
            if parsed is None:
                return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def freshness_points(
    timestamp: Any,
    now: datetime | None = None,
    config: ScoringConfig = DEFAULT_SCORING,
) -> float:
    """Points for recency; an item exactly at a tier boundary gets that tier."""
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return 0.0

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    age = now - parsed
    for max_days, points in config.freshness_tiers:
        if age <= timedelta(days=max_days):
            return points
    return 0.0


def _lookup(data: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    current: Any = data
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def popularity_points(
    provider: str | None,
    raw: Mapping[str, Any] | None,
    config: ScoringConfig = DEFAULT_SCORING,
) -> float:
    """Provider-specific popularity signal, clamped to `[0, popularity_cap]`."""
    rule = config.popularity_rules.get(provider or "")
    if rule is None or not raw:
        return 0.0

    points = 0.0
    rating = _as_number(_lookup(raw, rule.rating_path))
    if rating is not None:
        points += rating * rule.rating_multiplier

    count = _as_number(_lookup(raw, rule.count_path))
    if count is not None:
        for threshold, bonus in config.vote_count_bonus:
            if count > threshold:
                points += bonus
                break

    return max(0.0, min(points, config.popularity_cap))


def state_weight(
    state: str,
    modes: Iterable[str],
    config: ScoringConfig = DEFAULT_SCORING,
) -> float:
    """Sum of state/mode compatibility weights over the candidate's modes."""
    weights = config.state_mode_weights.get(state) or {}
    return max(0.0, float(sum(weights.get(mode, 0) for mode in modes)))


def score(
    candidate: Candidate,
    context: RecommendationContext,
    config: ScoringConfig = DEFAULT_SCORING,
    now: datetime | None = None,
) -> ScoreBreakdown:
    """Score one candidate. Pure given the same inputs and `now`."""
    return ScoreBreakdown(
        mode_match=config.mode_match_points if context.mode in candidate.modes else 0.0,
        focus_match=config.focus_match_points if context.focus in candidate.focuses else 0.0,
        state_weight=state_weight(context.state, candidate.modes, config),
        freshness=freshness_points(candidate.timestamp, now, config),
        popularity=popularity_points(candidate.provider, candidate.raw, config),
    )


def score_candidates(
    candidates: Iterable[Candidate],
    context: RecommendationContext,
    config: ScoringConfig = DEFAULT_SCORING,
    now: datetime | None = None,
) -> list[ScoredCandidate]:
    """Score candidates against one shared `now`."""
    now = now or datetime.now(timezone.utc)
    return [
        ScoredCandidate(candidate=c, breakdown=score(c, context, config, now))
        for c in candidates
    ]
