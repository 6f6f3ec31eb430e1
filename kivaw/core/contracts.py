"""Domain contracts and type definitions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from itertools import product
from typing import Any, Protocol


class State(str, Enum):
    """User emotional state."""

    BLANK = "blank"
    DESTRUCTIVE = "destructive"
    EXPANSIVE = "expansive"
    MINIMIZE = "minimize"


class Mode(str, Enum):
    """Emotional / use-case label attached to content."""

    RESET = "reset"
    BEAUTY = "beauty"
    LOGIC = "logic"
    FAITH = "faith"
    REFLECT = "reflect"
    COMFORT = "comfort"


class Focus(str, Enum):
    """Activity label attached to content."""

    WATCH = "watch"
    READ = "read"
    CREATE = "create"
    MOVE = "move"
    MUSIC = "music"
    REFLECT = "reflect"
    RESET = "reset"


class ContentType(str, Enum):
    """Provider-level content type."""

    WATCH = "watch"
    READ = "read"
    LISTEN = "listen"
    EVENT = "event"


STATES = frozenset(s.value for s in State)
MODES = frozenset(m.value for m in Mode)
FOCUSES = frozenset(f.value for f in Focus)


@dataclass(frozen=True)
class NormalizedContentItem:
    """Provider-agnostic content record.

    Identity is `(provider, provider_id)`. `raw` keeps the provider payload
    for popularity scoring and is excluded from equality.
    """

    provider: str
    provider_id: str
    type: str
    title: str
    description: str | None = None
    image_url: str | None = None
    url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def identity_key(self) -> str:
        return f"{self.provider}_{self.provider_id}"


@dataclass(frozen=True)
class TagResult:
    """Inferred mode and focus labels for one item."""

    modes: frozenset[str]
    focus: frozenset[str]

    def pairs(self) -> list[tuple[str, str]]:
        """Cartesian product of modes and focuses, sorted for stable writes."""
        return sorted(product(self.modes, self.focus))

    def to_dict(self) -> dict[str, list[str]]:
        return {"modes": sorted(self.modes), "focus": sorted(self.focus)}


@dataclass(frozen=True)
class RecommendationContext:
    """The user-supplied context a recommendation is computed for."""

    state: str
    mode: str
    focus: str

    @classmethod
    def build(
        cls,
        state: str | None,
        mode: str | None,
        focus: str | None,
    ) -> "RecommendationContext":
        """Create a context from raw input, lowercasing and trimming values.

        A missing or empty state becomes `blank`.
        """
        clean_state = (state or "").strip().lower() or State.BLANK.value
        return cls(
            state=clean_state,
            mode=(mode or "").strip().lower(),
            focus=(focus or "").strip().lower(),
        )

    def to_dict(self) -> dict[str, str]:
        return {"state": self.state, "mode": self.mode, "focus": self.focus}


@dataclass(frozen=True)
class Candidate:
    """Scoring view over an internal catalog row or a cached external item."""

    candidate_id: str
    kind: str
    title: str
    modes: frozenset[str] = frozenset()
    focuses: frozenset[str] = frozenset()
    state_tags: frozenset[str] = frozenset()
    timestamp: datetime | None = None
    provider: str | None = None
    source: str = "internal"
    url: str | None = None
    image_url: str | None = None
    byline: str | None = None
    # Other ids the same content is known by, e.g. "tmdb_movie:550"
    aliases: frozenset[str] = frozenset()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_universal(self) -> bool:
        """True when the item carries no state tags."""
        return not self.state_tags

    @property
    def identity_keys(self) -> frozenset[str]:
        return self.aliases | {self.candidate_id}


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-component score for one candidate."""

    mode_match: float = 0.0
    focus_match: float = 0.0
    state_weight: float = 0.0
    freshness: float = 0.0
    popularity: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.mode_match
            + self.focus_match
            + self.state_weight
            + self.freshness
            + self.popularity
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "mode_match": self.mode_match,
            "focus_match": self.focus_match,
            "state_weight": self.state_weight,
            "freshness": self.freshness,
            "popularity": self.popularity,
            "total": self.total,
        }


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with its score breakdown."""

    candidate: Candidate
    breakdown: ScoreBreakdown

    @property
    def score(self) -> float:
        return self.breakdown.total


@dataclass
class RecommendedItem:
    """One ranked recommendation returned to callers."""

    id: str
    title: str
    kind: str
    source: str
    score: float
    url: str | None = None
    image_url: str | None = None
    byline: str | None = None
    focus_tags: list[str] = field(default_factory=list)
    state_tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    breakdown: ScoreBreakdown | None = None

    @classmethod
    def from_scored(cls, scored: ScoredCandidate, with_breakdown: bool = False) -> "RecommendedItem":
        """Build the output record for a scored candidate."""
        candidate = scored.candidate
        return cls(
            id=candidate.candidate_id,
            title=candidate.title,
            kind=candidate.kind,
            source=candidate.source,
            score=scored.score,
            url=candidate.url,
            image_url=candidate.image_url,
            byline=candidate.byline,
            focus_tags=sorted(candidate.focuses),
            state_tags=sorted(candidate.state_tags),
            created_at=candidate.timestamp,
            breakdown=scored.breakdown if with_breakdown else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "source": self.source,
            "score": self.score,
            "url": self.url,
            "image_url": self.image_url,
            "byline": self.byline,
            "focus_tags": self.focus_tags,
            "state_tags": self.state_tags,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if self.breakdown is not None:
            data["breakdown"] = self.breakdown.to_dict()
        return data


# Provider fetch outcome: exactly one of the three variants below.


@dataclass(frozen=True)
class Disabled:
    """The provider is switched off in provider settings."""

    provider: str


@dataclass(frozen=True)
class ProviderFailure:
    """The provider call failed; `message` describes why."""

    provider: str
    message: str


@dataclass(frozen=True)
class Success:
    """The provider returned normalized items."""

    provider: str
    items: tuple[NormalizedContentItem, ...] = ()


ProviderResult = Disabled | ProviderFailure | Success


class ContentProvider(Protocol):
    """Interface implemented by every external provider adapter."""

    name: str

    async def fetch_result(self, query: str | None, limit: int) -> ProviderResult:
        """Fetch items, reporting disabled/error/success explicitly."""
        ...

    async def fetch(self, query: str | None, limit: int) -> list[NormalizedContentItem]:
        """Fetch items, collapsing disabled and error outcomes to an empty list."""
        ...
