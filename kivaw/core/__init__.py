"""Core module containing domain types, classification and scoring."""

from kivaw.core.contracts import (
    Candidate,
    ContentType,
    Disabled,
    Focus,
    Mode,
    NormalizedContentItem,
    ProviderFailure,
    ProviderResult,
    RecommendationContext,
    RecommendedItem,
    ScoreBreakdown,
    ScoredCandidate,
    State,
    Success,
    TagResult,
)
from kivaw.core.diversity import select_diverse
from kivaw.core.keywords import STOPWORDS, extract_keywords
from kivaw.core.scoring import DEFAULT_SCORING, ScoringConfig, get_scoring_config, load_scoring_config, score
from kivaw.core.tagging import (
    classify,
    infer_focus,
    infer_modes,
    merge_with_overrides,
    normalize_tag,
    normalize_tags,
)

__all__ = [
    # Contracts/Types
    "Candidate",
    "ContentType",
    "Disabled",
    "Focus",
    "Mode",
    "NormalizedContentItem",
    "ProviderFailure",
    "ProviderResult",
    "RecommendationContext",
    "RecommendedItem",
    "ScoreBreakdown",
    "ScoredCandidate",
    "State",
    "Success",
    "TagResult",
    # Classification
    "classify",
    "infer_focus",
    "infer_modes",
    "merge_with_overrides",
    "normalize_tag",
    "normalize_tags",
    "extract_keywords",
    "STOPWORDS",
    # Scoring
    "DEFAULT_SCORING",
    "ScoringConfig",
    "get_scoring_config",
    "load_scoring_config",
    "score",
    "select_diverse",
]
