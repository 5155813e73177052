"""
Configuration Module
Centralized configuration for feed ranking
"""

from .ranking_config import (
    RankingConfig,
    get_ranking_config,
    reload_config,
)

__all__ = [
    "RankingConfig",
    "get_ranking_config",
    "reload_config",
]
