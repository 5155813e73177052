"""
Explainability Engine
Provides transparent explanations for feed ranking decisions
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.config import RankingConfig
from .models import ContentItem, RankedResult, TrustTier, ViewerContext
from .scorer import as_utc

logger = logging.getLogger(__name__)

FACTOR_LABELS = {
    "user_interest": "Matches your interests",
    "content_quality": "Content quality",
    "local_relevance": "Local relevance",
    "recency": "Freshness",
    "partner_trust": "Partner trust",
}


@dataclass
class ExplanationConfig:
    """Configuration for explanation generation"""
    max_matched_tags: int = 3
    show_score_breakdown: bool = True


class FeedExplainabilityEngine:
    """Engine for generating transparent ranking explanations"""

    def __init__(self, ranking_config: Optional[RankingConfig] = None,
                 config: Optional[ExplanationConfig] = None):
        self.ranking_config = ranking_config or RankingConfig()
        self.config = config or ExplanationConfig()

    def explain_recency(self, published_at: datetime, now: datetime) -> str:
        """Generate explanation for recency score"""
        age_hours = (as_utc(now) - as_utc(published_at)).total_seconds() / 3600

        if age_hours < 1:
            return "Just published (< 1 hour ago)"
        elif age_hours < 24:
            return f"Recent ({int(age_hours)} hours ago)"
        elif age_hours < 168:  # 1 week
            days = int(age_hours / 24)
            return f"Published {days} day{'s' if days > 1 else ''} ago"
        else:
            weeks = int(age_hours / 168)
            return f"Published {weeks} week{'s' if weeks > 1 else ''} ago"

    def explain_trust(self, tier: TrustTier) -> str:
        """Generate explanation for partner trust score"""
        tier = TrustTier(tier)
        if tier == TrustTier.PREMIUM:
            return "Premium partner"
        elif tier == TrustTier.VERIFIED:
            return "Verified partner"
        return "Unverified partner"

    def explain_local_relevance(self, item: ContentItem, viewer: ViewerContext) -> str:
        """Generate explanation for local relevance score"""
        if not viewer.location_hint:
            return "No location provided"
        if not item.geo_tags:
            return "Relevant everywhere"
        if viewer.location_hint in item.geo_tags:
            return f"In your area ({viewer.location_hint})"
        return "Outside your area"

    def explain_interest(self, item: ContentItem, viewer: ViewerContext) -> str:
        """Generate explanation for user interest score"""
        if viewer.is_anonymous:
            return "No personalization (anonymous viewer)"

        matched = sorted(
            (tag for tag in item.tags if viewer.interest_vector.get(tag, 0) > 0),
            key=lambda tag: (-viewer.interest_vector[tag], tag),
        )
        if not matched:
            return "No overlap with your interests"

        shown = matched[:self.config.max_matched_tags]
        return f"Matches your interest in {', '.join(shown)}"

    def explain_quality(self, quality_score: float) -> str:
        """Generate explanation for content quality score"""
        if quality_score >= 0.8:
            return "High-quality content"
        elif quality_score >= 0.5:
            return "Good-quality content"
        return "Basic content"

    def explain_result(self, result: RankedResult, item: ContentItem,
                       viewer: ViewerContext, now: datetime) -> Dict[str, Any]:
        """Generate full explanation for a ranked result"""
        if result.breakdown is None:
            return {"item_id": result.item_id, "rank": result.rank, "score": result.score}

        breakdown = result.breakdown
        weights = self.ranking_config.weights
        texts = {
            "user_interest": self.explain_interest(item, viewer),
            "content_quality": self.explain_quality(breakdown.content_quality),
            "local_relevance": self.explain_local_relevance(item, viewer),
            "recency": self.explain_recency(item.published_at, now),
            "partner_trust": self.explain_trust(item.partner_trust_tier),
        }

        factors: List[Dict[str, Any]] = []
        for name, score in breakdown.signals().items():
            factors.append({
                "factor": name,
                "label": FACTOR_LABELS[name],
                "score": round(score, 4),
                "weight": weights[name],
                "contribution": round(weights[name] * score, 4),
                "explanation": texts[name],
            })
        factors.sort(key=lambda f: (-f["contribution"], f["factor"]))

        boost = {
            "active": item.is_boosted and not breakdown.boost_suppressed,
            "multiplier": round(breakdown.boost_multiplier, 4),
            "suppressed": breakdown.boost_suppressed,
        }

        explanation = {
            "item_id": result.item_id,
            "rank": result.rank,
            "score": round(result.score, 4),
            "factors": factors,
            "boost": boost,
            "summary": self.summarize(factors, boost),
        }
        if self.config.show_score_breakdown:
            explanation["breakdown"] = breakdown.to_dict()

        return explanation

    def summarize(self, factors: List[Dict[str, Any]], boost: Dict[str, Any]) -> str:
        """One-line summary led by the strongest factors"""
        leading = [f["explanation"] for f in factors[:2] if f["contribution"] > 0]
        summary = "; ".join(leading) if leading else "Ranked by default ordering"
        if boost["active"]:
            summary += " (promoted)"
        return summary
