"""
Configuration Module for Feed Ranking
Immutable ranking weights and constants with environment variable support
"""

import os
import logging
from dataclasses import dataclass, fields
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

KNOWN_SIGNALS = (
    "user_interest",
    "content_quality",
    "local_relevance",
    "recency",
    "partner_trust",
)


@dataclass(frozen=True)
class RankingConfig:
    """Configuration for feed ranking behavior"""

    # Scoring weights (must sum to 1.0)
    user_interest_weight: float = 0.35
    content_quality_weight: float = 0.25
    local_relevance_weight: float = 0.20
    recency_weight: float = 0.10
    partner_trust_weight: float = 0.10

    # Partner trust scale
    unverified_trust_score: float = 0.2
    verified_trust_score: float = 0.6
    premium_trust_score: float = 1.0

    # Local relevance
    local_match_score: float = 1.0
    local_mismatch_score: float = 0.0
    untagged_content_score: float = 0.5  # No geo tags: globally relevant
    no_location_score: float = 0.5      # Viewer gave no location hint

    # Recency decay
    recency_half_life_days: float = 14.0

    # Ordering
    score_epsilon: float = 1e-9
    pool_normalized_signals: Tuple[str, ...] = ("user_interest",)

    # Diversity
    diversity_cap: int = 2
    default_diversity_window: int = 4

    # Paging
    default_page_size: int = 20

    # Boosts: at most 1 boosted item per 1/limit organic items (None disables)
    boost_ratio_limit: Optional[float] = None

    @property
    def weights(self) -> dict:
        return {
            "user_interest": self.user_interest_weight,
            "content_quality": self.content_quality_weight,
            "local_relevance": self.local_relevance_weight,
            "recency": self.recency_weight,
            "partner_trust": self.partner_trust_weight,
        }

    @property
    def trust_scores(self) -> dict:
        return {
            "unverified": self.unverified_trust_score,
            "verified": self.verified_trust_score,
            "premium": self.premium_trust_score,
        }

    @classmethod
    def from_env(cls) -> "RankingConfig":
        """Load configuration from environment variables"""
        defaults = cls()
        overrides = {}

        for f in fields(cls):
            env_name = f"FEED_RANKING_{f.name.upper()}"
            raw = os.getenv(env_name)
            if raw is None:
                continue

            current = getattr(defaults, f.name)
            if f.name == "pool_normalized_signals":
                overrides[f.name] = _parse_list(raw, current)
            elif f.name == "boost_ratio_limit":
                overrides[f.name] = _parse_optional_float(raw, current)
            elif isinstance(current, int):
                overrides[f.name] = _parse_int(raw, current)
            else:
                overrides[f.name] = _parse_float(raw, current)

        config = cls(**overrides)

        logger.info(f"RankingConfig loaded from environment: "
                   f"weights={config.weights}, "
                   f"half_life={config.recency_half_life_days}d, "
                   f"diversity_cap={config.diversity_cap}")

        return config

    def validation_errors(self) -> list:
        """Collect human-readable validation errors"""
        errors = []

        weights = self.weights
        for name, weight in weights.items():
            if weight < 0:
                errors.append(f"{name} weight must be non-negative, got {weight}")

        total_weight = sum(weights.values())
        if abs(total_weight - 1.0) > 0.001:
            errors.append(f"Ranking weights must sum to 1.0, got {total_weight:.3f}")

        for tier, score in self.trust_scores.items():
            if not (0.0 <= score <= 1.0):
                errors.append(f"{tier} trust score must be 0-1, got {score}")

        for name in ("local_match_score", "local_mismatch_score",
                     "untagged_content_score", "no_location_score"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                errors.append(f"{name} must be 0-1, got {value}")

        if self.recency_half_life_days <= 0:
            errors.append(f"recency_half_life_days must be positive, got {self.recency_half_life_days}")

        if self.score_epsilon < 0:
            errors.append(f"score_epsilon must be non-negative, got {self.score_epsilon}")

        unknown = [s for s in self.pool_normalized_signals if s not in KNOWN_SIGNALS]
        if unknown:
            errors.append(f"Unknown pool_normalized_signals: {unknown}")

        if self.diversity_cap < 1:
            errors.append(f"diversity_cap must be >= 1, got {self.diversity_cap}")

        if self.default_diversity_window < 1:
            errors.append(f"default_diversity_window must be >= 1, got {self.default_diversity_window}")

        if self.default_page_size < 1:
            errors.append(f"default_page_size must be >= 1, got {self.default_page_size}")

        if self.boost_ratio_limit is not None and not (0.0 < self.boost_ratio_limit <= 1.0):
            errors.append(f"boost_ratio_limit must be in (0, 1], got {self.boost_ratio_limit}")

        return errors

    def validate(self) -> bool:
        """Validate configuration values"""
        errors = self.validation_errors()

        if errors:
            for error in errors:
                logger.error(f"Config validation error: {error}")
            return False

        return True

    def to_dict(self) -> dict:
        """Convert config to dictionary"""
        return {
            "scoring_weights": self.weights,
            "trust_scores": self.trust_scores,
            "local_relevance": {
                "match": self.local_match_score,
                "mismatch": self.local_mismatch_score,
                "untagged_content": self.untagged_content_score,
                "no_location": self.no_location_score,
            },
            "recency": {
                "half_life_days": self.recency_half_life_days,
            },
            "ordering": {
                "score_epsilon": self.score_epsilon,
                "pool_normalized_signals": list(self.pool_normalized_signals),
            },
            "diversity": {
                "cap": self.diversity_cap,
                "default_window": self.default_diversity_window,
            },
            "paging": {
                "default_page_size": self.default_page_size,
            },
            "boost": {
                "ratio_limit": self.boost_ratio_limit,
            },
        }


# ==========================================================================
# HELPER FUNCTIONS
# ==========================================================================

def _parse_int(value: Optional[str], default: int) -> int:
    """Parse integer from environment variable"""
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid integer value: {value}, using default {default}")
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    """Parse float from environment variable"""
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid float value: {value}, using default {default}")
        return default


def _parse_optional_float(value: Optional[str], default: Optional[float]) -> Optional[float]:
    """Parse float, treating 'none'/'off'/empty as disabled"""
    if value is None:
        return default
    if value.strip().lower() in ("", "none", "off", "disabled"):
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid float value: {value}, using default {default}")
        return default


def _parse_list(value: Optional[str], default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Parse comma-separated list from environment variable"""
    if value is None:
        return default
    return tuple(part.strip() for part in value.split(",") if part.strip())


# ==========================================================================
# GLOBAL CONFIG INSTANCE
# ==========================================================================

_config: Optional[RankingConfig] = None


def get_ranking_config() -> RankingConfig:
    """Get global ranking config instance (singleton)"""
    global _config

    if _config is None:
        _config = RankingConfig.from_env()

        if not _config.validate():
            logger.error("Configuration validation failed, using defaults")
            _config = RankingConfig()  # Fallback to defaults

    return _config


def reload_config() -> RankingConfig:
    """Reload configuration from environment"""
    global _config
    _config = None
    return get_ranking_config()
