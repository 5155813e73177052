"""
Feed Scoring Engine
Implements weighted scoring:
0.35·S_interest + 0.25·S_quality + 0.20·S_local + 0.10·S_recency + 0.10·S_trust
then multiplied by (1 + boost_weight) for actively boosted content
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from core.config import RankingConfig
from .models import ContentItem, ScoreBreakdown, TrustTier, ViewerContext

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class OrderKey(NamedTuple):
    """Sort key of the total feed order"""
    score: float
    published_at: datetime
    item_id: str


@dataclass(frozen=True)
class ScoredItem:
    item: ContentItem
    breakdown: ScoreBreakdown
    published_at: datetime  # UTC-normalized

    @property
    def item_id(self) -> str:
        return self.item.id

    @property
    def score(self) -> float:
        return self.breakdown.final_score

    @property
    def order_key(self) -> OrderKey:
        return OrderKey(self.score, self.published_at, self.item.id)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC, convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def order_sort_key(key: OrderKey, epsilon: float = 1e-9) -> Tuple[float, int, str]:
    """
    Ascending sort key of the total feed order.

    Scores are snapped to the epsilon grid so equality stays transitive;
    scores in the same grid cell tie and fall through to published_at
    descending, then id ascending.
    """
    score = round(key.score / epsilon) if epsilon > 0 else key.score
    published_us = (as_utc(key.published_at) - EPOCH) // timedelta(microseconds=1)
    return (-score, -published_us, key.item_id)


def compare_order_keys(a: OrderKey, b: OrderKey, epsilon: float = 1e-9) -> int:
    """Negative when `a` comes first in the feed, positive when `b` does"""
    key_a = order_sort_key(a, epsilon)
    key_b = order_sort_key(b, epsilon)
    if key_a == key_b:
        return 0
    return -1 if key_a < key_b else 1


class FeedScorer:
    """Five-factor feed scorer with pool-relative normalization"""

    def __init__(self, config: Optional[RankingConfig] = None):
        self.config = config or RankingConfig()

    def calculate_interest_score(self, tags: frozenset,
                                 interest_keys: Sequence[str],
                                 interest_weights: np.ndarray,
                                 interest_norm: float) -> float:
        """Dot product of viewer affinities with the item's tag indicator vector"""
        if interest_norm == 0 or not tags:
            return 0.0

        indicator = np.fromiter(
            (1.0 if key in tags else 0.0 for key in interest_keys),
            dtype=np.float64,
            count=len(interest_keys),
        )
        return float(np.dot(interest_weights, indicator) / interest_norm)

    def calculate_quality_score(self, quality_score: float) -> float:
        """Externally computed quality, passed through"""
        return max(0.0, min(1.0, quality_score))

    def calculate_local_relevance_score(self, geo_tags: frozenset,
                                        location_hint: Optional[str]) -> float:
        """Geo tag match against the viewer's location hint"""
        if not location_hint:
            return self.config.no_location_score
        if not geo_tags:
            return self.config.untagged_content_score
        if location_hint in geo_tags:
            return self.config.local_match_score
        return self.config.local_mismatch_score

    def calculate_recency_score(self, published_at: datetime, now: datetime) -> float:
        """Half-life decay: the score halves every recency_half_life_days"""
        age_days = (as_utc(now) - as_utc(published_at)).total_seconds() / SECONDS_PER_DAY
        age_days = max(0.0, age_days)  # Future timestamps count as brand new
        return 0.5 ** (age_days / self.config.recency_half_life_days)

    def calculate_trust_score(self, tier: TrustTier) -> float:
        """Fixed ordinal trust scale from configuration"""
        return self.config.trust_scores[TrustTier(tier).value]

    def calculate_boost_multiplier(self, boost_weight: float) -> float:
        if boost_weight and boost_weight > 0:
            return 1.0 + boost_weight
        return 1.0

    def normalize_scores(self, scores: List[float]) -> List[float]:
        """Min-max normalization of scores to [0,1] within the pool"""
        if not scores:
            return scores

        min_score = min(scores)
        max_score = max(scores)

        if max_score == min_score:
            # Nothing to spread; keep values on the [0,1] scale
            return [max(0.0, min(1.0, score)) for score in scores]

        return [(score - min_score) / (max_score - min_score) for score in scores]

    def weighted_sum(self, signals: Dict[str, float]) -> float:
        weights = self.config.weights
        return sum(weights[name] * signals[name] for name in weights)

    def score_items(self, items: Sequence[ContentItem], viewer: ViewerContext,
                    now: datetime) -> List[ScoredItem]:
        """Compute sub-scores, composite and boosted scores for the pool"""
        if not items:
            return []

        interest_keys = sorted(viewer.interest_vector)
        interest_weights = np.array(
            [float(viewer.interest_vector[key]) for key in interest_keys], dtype=np.float64
        )
        interest_norm = float(np.linalg.norm(interest_weights)) if interest_keys else 0.0

        raw: Dict[str, List[float]] = {
            "user_interest": [],
            "content_quality": [],
            "local_relevance": [],
            "recency": [],
            "partner_trust": [],
        }
        for item in items:
            raw["user_interest"].append(self.calculate_interest_score(
                item.tags, interest_keys, interest_weights, interest_norm
            ))
            raw["content_quality"].append(self.calculate_quality_score(item.quality_score))
            raw["local_relevance"].append(
                self.calculate_local_relevance_score(item.geo_tags, viewer.location_hint)
            )
            raw["recency"].append(self.calculate_recency_score(item.published_at, now))
            raw["partner_trust"].append(self.calculate_trust_score(item.partner_trust_tier))

        for signal in self.config.pool_normalized_signals:
            raw[signal] = self.normalize_scores(raw[signal])

        scored = []
        for i, item in enumerate(items):
            signals = {name: values[i] for name, values in raw.items()}
            base_score = self.weighted_sum(signals)
            multiplier = self.calculate_boost_multiplier(item.boost_weight)

            breakdown = ScoreBreakdown(
                base_score=base_score,
                boost_multiplier=multiplier,
                final_score=base_score * multiplier,
                **signals,
            )
            scored.append(ScoredItem(item=item, breakdown=breakdown,
                                     published_at=as_utc(item.published_at)))

        logger.info(f"Scored {len(scored)} items for "
                    f"{'anonymous viewer' if viewer.is_anonymous else 'viewer ' + str(viewer.viewer_id)}")
        return scored

    def sort_scored(self, scored: List[ScoredItem]) -> List[ScoredItem]:
        """Total order: score desc, published_at desc, id asc"""
        epsilon = self.config.score_epsilon
        return sorted(scored, key=lambda s: order_sort_key(s.order_key, epsilon))

    def apply_boost_limit(self, ranked: List[ScoredItem]) -> Tuple[List[ScoredItem], int]:
        """
        Limit boosted items to 1 per 1/boost_ratio_limit organic items.

        Walks the ordered sequence; a boosted item over the limit loses its
        boost and counts as organic. The result is re-sorted.

        Returns:
            Tuple of (results, boosts_suppressed)
        """
        limit = self.config.boost_ratio_limit
        if not ranked or limit is None:
            return ranked, 0

        boosted_count = 0
        organic_count = 0
        suppressed = 0
        limited = []

        for scored in ranked:
            if not scored.item.is_boosted:
                organic_count += 1
                limited.append(scored)
                continue

            allowed = 1 + int(organic_count * limit)
            if boosted_count < allowed:
                boosted_count += 1
                limited.append(scored)
                continue

            breakdown = replace(
                scored.breakdown,
                boost_multiplier=1.0,
                final_score=scored.breakdown.base_score,
                boost_suppressed=True,
            )
            limited.append(replace(scored, breakdown=breakdown))
            organic_count += 1
            suppressed += 1
            logger.debug(f"Boost suppressed for {scored.item_id}: "
                         f"{boosted_count} boosted / {organic_count} organic")

        if suppressed:
            logger.info(f"Boost limit: suppressed {suppressed} boosts")
            limited = self.sort_scored(limited)

        return limited, suppressed

    def score_and_rank(self, items: Sequence[ContentItem], viewer: ViewerContext,
                       now: datetime) -> Tuple[List[ScoredItem], Dict[str, int]]:
        """Score, order and apply the boost limit"""
        summary = {"scored": 0, "boosted": 0, "boosts_suppressed": 0}
        if not items:
            return [], summary

        scored = self.score_items(items, viewer, now)
        ranked = self.sort_scored(scored)
        ranked, suppressed = self.apply_boost_limit(ranked)

        summary["scored"] = len(ranked)
        summary["boosted"] = sum(1 for s in ranked if s.item.is_boosted and not s.breakdown.boost_suppressed)
        summary["boosts_suppressed"] = suppressed
        return ranked, summary
