"""
Feed Ranking Service for explore content
Implements weighted scoring, diversity deferral, cursor pagination and explainability
"""

from .engine import FeedRankingEngine
from .scorer import FeedScorer
from .diversification import DiversityWindowDiversifier
from .explainability import FeedExplainabilityEngine
from .models import (
    ContentItem,
    EngagementCounts,
    RankedPage,
    RankedResult,
    RankOptions,
    ScoreBreakdown,
    TrustTier,
    ViewerContext,
)
from .errors import (
    FeedRankingError,
    InvalidCursorError,
    InvalidOptionsError,
    MalformedItemError,
    RankingConfigError,
)

__version__ = "1.0.0"
__all__ = [
    "FeedRankingEngine",
    "FeedScorer",
    "DiversityWindowDiversifier",
    "FeedExplainabilityEngine",
    "ContentItem",
    "EngagementCounts",
    "RankedPage",
    "RankedResult",
    "RankOptions",
    "ScoreBreakdown",
    "TrustTier",
    "ViewerContext",
    "FeedRankingError",
    "InvalidCursorError",
    "InvalidOptionsError",
    "MalformedItemError",
    "RankingConfigError",
]
