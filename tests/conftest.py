"""
Shared fixtures for feed ranking tests
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.config import ranking_config
from feed_ranking import ContentItem, TrustTier, ViewerContext

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_item(item_id, days_old=0.0, tier=TrustTier.VERIFIED, quality=0.5,
              geo=(), categories=("apartments",), boost=0.0):
    return ContentItem(
        id=item_id,
        published_at=NOW - timedelta(days=days_old),
        partner_trust_tier=tier,
        quality_score=quality,
        geo_tags=frozenset(geo),
        category_tags=frozenset(categories),
        boost_weight=boost,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture(autouse=True)
def fresh_ranking_config(monkeypatch):
    """Isolate the global config singleton per test"""
    monkeypatch.setattr(ranking_config, "_config", None)


@pytest.fixture
def mixed_pool():
    """Twelve items across tiers, categories, locations, ages and boosts"""
    return [
        make_item("c-01", days_old=0.5, tier=TrustTier.PREMIUM, quality=0.92,
                  geo=("sandton",), categories=("apartments", "luxury")),
        make_item("c-02", days_old=3, tier=TrustTier.VERIFIED, quality=0.71,
                  geo=("rosebank",), categories=("houses",)),
        make_item("c-03", days_old=10, tier=TrustTier.UNVERIFIED, quality=0.40,
                  categories=("expert_tips",)),
        make_item("c-04", days_old=1, tier=TrustTier.VERIFIED, quality=0.66,
                  geo=("sandton",), categories=("apartments",), boost=0.5),
        make_item("c-05", days_old=20, tier=TrustTier.PREMIUM, quality=0.88,
                  geo=("cape_town",), categories=("luxury",)),
        make_item("c-06", days_old=2, tier=TrustTier.UNVERIFIED, quality=0.35,
                  geo=("sandton",), categories=("houses",)),
        make_item("c-07", days_old=7, tier=TrustTier.VERIFIED, quality=0.58,
                  categories=("inspiration",)),
        make_item("c-08", days_old=0.1, tier=TrustTier.PREMIUM, quality=0.77,
                  geo=("midrand",), categories=("developments",)),
        make_item("c-09", days_old=30, tier=TrustTier.VERIFIED, quality=0.95,
                  geo=("sandton",), categories=("apartments", "luxury")),
        make_item("c-10", days_old=4, tier=TrustTier.UNVERIFIED, quality=0.21,
                  geo=("soweto",), categories=("houses",)),
        make_item("c-11", days_old=6, tier=TrustTier.PREMIUM, quality=0.64,
                  categories=("developments",), boost=0.2),
        make_item("c-12", days_old=14, tier=TrustTier.VERIFIED, quality=0.50,
                  geo=("rosebank",), categories=("apartments",)),
    ]


@pytest.fixture
def sandton_viewer():
    return ViewerContext(
        viewer_id="viewer-42",
        interest_vector={"apartments": 0.9, "luxury": 0.6, "sandton": 0.8, "houses": 0.2},
        location_hint="sandton",
    )
