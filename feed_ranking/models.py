"""
Data models for the feed ranking engine.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Mapping, Optional, Tuple


class TrustTier(str, Enum):
    """Publishing partner standing"""
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    PREMIUM = "premium"


@dataclass(frozen=True)
class EngagementCounts:
    views: int = 0
    unique_viewers: int = 0
    completions: int = 0
    saves: int = 0
    shares: int = 0

    def to_dict(self) -> dict:
        return {
            "views": self.views,
            "unique_viewers": self.unique_viewers,
            "completions": self.completions,
            "saves": self.saves,
            "shares": self.shares,
        }


@dataclass(frozen=True)
class ContentItem:
    """Eligible explore content, already moderation/visibility filtered"""
    id: str
    published_at: datetime
    partner_trust_tier: TrustTier = TrustTier.UNVERIFIED
    quality_score: float = 0.0
    engagement: EngagementCounts = field(default_factory=EngagementCounts)
    geo_tags: FrozenSet[str] = frozenset()
    category_tags: FrozenSet[str] = frozenset()
    boost_weight: float = 0.0

    @property
    def is_boosted(self) -> bool:
        return self.boost_weight > 0

    @property
    def tags(self) -> FrozenSet[str]:
        return self.category_tags | self.geo_tags

    @property
    def diversity_key(self) -> Tuple[str, FrozenSet[str]]:
        """Partner tier and category combination used by the diversity window"""
        return (self.partner_trust_tier.value, self.category_tags)


@dataclass(frozen=True)
class ViewerContext:
    """Per-request viewer signals"""
    viewer_id: Optional[str] = None
    interest_vector: Mapping[str, float] = field(default_factory=dict)
    location_hint: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "ViewerContext":
        return cls()

    @property
    def is_anonymous(self) -> bool:
        return not self.interest_vector


@dataclass(frozen=True)
class RankOptions:
    page_size: int = 20
    cursor: Optional[str] = None
    diversity_window: int = 4
    now: Optional[datetime] = None  # Request time; defaults to current UTC time


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores as they entered the weighted sum"""
    user_interest: float
    content_quality: float
    local_relevance: float
    recency: float
    partner_trust: float
    base_score: float
    boost_multiplier: float
    final_score: float
    boost_suppressed: bool = False

    def signals(self) -> dict:
        return {
            "user_interest": self.user_interest,
            "content_quality": self.content_quality,
            "local_relevance": self.local_relevance,
            "recency": self.recency,
            "partner_trust": self.partner_trust,
        }

    def to_dict(self) -> dict:
        return {
            "scores": {name: round(value, 4) for name, value in self.signals().items()},
            "base": round(self.base_score, 4),
            "boost_multiplier": round(self.boost_multiplier, 4),
            "final": round(self.final_score, 4),
            "boost_suppressed": self.boost_suppressed,
        }


@dataclass(frozen=True)
class RankedResult:
    item_id: str
    score: float
    rank: int
    breakdown: Optional[ScoreBreakdown] = None

    def to_dict(self) -> dict:
        data = {
            "item_id": self.item_id,
            "score": self.score,
            "rank": self.rank,
        }
        if self.breakdown is not None:
            data["breakdown"] = self.breakdown.to_dict()
        return data


@dataclass(frozen=True)
class RankedPage:
    results: List[RankedResult] = field(default_factory=list)
    next_cursor: Optional[str] = None

    @property
    def item_ids(self) -> List[str]:
        return [r.item_id for r in self.results]

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "next_cursor": self.next_cursor,
        }
