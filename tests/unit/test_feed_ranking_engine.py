"""
Unit tests for feed_ranking/engine.py
Tests determinism, paging, anonymous degradation, boosts and diversity
"""

import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from core.config import RankingConfig
from feed_ranking import (
    ContentItem,
    FeedRankingEngine,
    InvalidCursorError,
    InvalidOptionsError,
    RankedPage,
    RankOptions,
    RankingConfigError,
    TrustTier,
    ViewerContext,
)


@pytest.fixture
def engine():
    return FeedRankingEngine()


def _ids(page):
    return [r.item_id for r in page.results]


class TestDeterminism:
    """Repeated calls give identical output"""

    def test_same_inputs_same_output(self, engine, mixed_pool, sandton_viewer, now):
        """Order, scores and cursor match across calls"""
        options = RankOptions(page_size=5, diversity_window=4, now=now)

        first = engine.rank(mixed_pool, sandton_viewer, options)
        second = engine.rank(mixed_pool, sandton_viewer, options)

        assert first.to_dict() == second.to_dict()
        assert first.next_cursor == second.next_cursor

    def test_input_order_does_not_matter(self, engine, mixed_pool, sandton_viewer, now):
        """Shuffled pool produces the same ranking"""
        options = RankOptions(page_size=12, diversity_window=4, now=now)

        forward = engine.rank(mixed_pool, sandton_viewer, options)
        backward = engine.rank(list(reversed(mixed_pool)), sandton_viewer, options)

        assert _ids(forward) == _ids(backward)

    def test_concurrent_calls_are_independent(self, engine, mixed_pool, sandton_viewer, now):
        """Parallel requests sharing one engine agree"""
        options = RankOptions(page_size=6, diversity_window=3, now=now)

        with ThreadPoolExecutor(max_workers=8) as pool:
            pages = list(pool.map(lambda _: engine.rank(mixed_pool, sandton_viewer, options), range(16)))

        expected = pages[0].to_dict()
        assert all(page.to_dict() == expected for page in pages)

    def test_sub_epsilon_chain_independent_of_input_order(self, engine, now):
        """Scores chained less than epsilon apart still yield one order"""
        items = [
            ContentItem(id=item_id, published_at=now - timedelta(microseconds=offset),
                        partner_trust_tier=TrustTier.VERIFIED, quality_score=0.5 + offset * 2.4e-9,
                        category_tags=frozenset({"apartments"}))
            for offset, item_id in enumerate(["a", "b", "c"])
        ]
        options = RankOptions(page_size=3, diversity_window=1, now=now)

        orders = {tuple(_ids(engine.rank(list(perm), None, options))) for perm in itertools.permutations(items)}

        assert len(orders) == 1


class TestRanks:
    """Rank numbering on a page"""

    def test_ranks_are_contiguous(self, engine, mixed_pool, sandton_viewer, now):
        """Ranks are exactly 0..k-1"""
        page = engine.rank(mixed_pool, sandton_viewer, RankOptions(page_size=7, diversity_window=4, now=now))

        assert [r.rank for r in page.results] == list(range(7))
        assert len(set(_ids(page))) == 7

    def test_second_page_ranks_restart(self, engine, mixed_pool, sandton_viewer, now):
        """Rank is a position within the returned page"""
        first = engine.rank(mixed_pool, sandton_viewer, RankOptions(page_size=5, diversity_window=4, now=now))
        second = engine.rank(mixed_pool, sandton_viewer,
                             RankOptions(page_size=5, cursor=first.next_cursor, diversity_window=4))

        assert [r.rank for r in second.results] == list(range(5))


class TestAnonymousViewer:
    """Non-personalized ordering"""

    def test_interest_contributes_zero(self, engine, mixed_pool, now):
        """Empty interest vector gives UserInterest 0 for every item"""
        page = engine.rank(mixed_pool, ViewerContext.anonymous(),
                           RankOptions(page_size=12, diversity_window=1, now=now))

        assert all(r.breakdown.user_interest == 0.0 for r in page.results)

    def test_order_equals_sum_without_interest_term(self, engine, mixed_pool, now):
        """Ranking matches quality+local+recency+trust alone"""
        trust = {"unverified": 0.2, "verified": 0.6, "premium": 1.0}

        def expected(item):
            age_days = (now - item.published_at).total_seconds() / 86400
            base = (
                0.25 * item.quality_score
                + 0.20 * 0.5
                + 0.10 * 0.5 ** (age_days / 14)
                + 0.10 * trust[item.partner_trust_tier.value]
            )
            return base * (1 + item.boost_weight)

        page = engine.rank(mixed_pool, ViewerContext.anonymous(),
                           RankOptions(page_size=12, diversity_window=1, now=now))

        by_id = {item.id: item for item in mixed_pool}
        for result in page.results:
            assert result.score == pytest.approx(expected(by_id[result.item_id]))

        manual = sorted(mixed_pool, key=lambda it: (-expected(it), -it.published_at.timestamp(), it.id))
        assert _ids(page) == [item.id for item in manual]

    def test_none_viewer_is_anonymous(self, engine, mixed_pool, now):
        """Omitting the viewer ranks anonymously"""
        options = RankOptions(page_size=12, diversity_window=4, now=now)

        assert _ids(engine.rank(mixed_pool, None, options)) == \
            _ids(engine.rank(mixed_pool, ViewerContext.anonymous(), options))


class TestBoost:
    """Paid boost amplification"""

    def test_boosted_twin_ranks_first(self, engine, item_factory, now):
        """Boosted item scores strictly higher than its unboosted twin"""
        organic = item_factory("a-organic", days_old=2, quality=0.6)
        boosted = item_factory("z-boosted", days_old=2, quality=0.6, boost=0.3)

        page = engine.rank([organic, boosted], ViewerContext.anonymous(),
                           RankOptions(page_size=10, diversity_window=1, now=now))
        scores = {r.item_id: r.score for r in page.results}

        assert scores["z-boosted"] > scores["a-organic"]
        assert scores["z-boosted"] == pytest.approx(scores["a-organic"] * 1.3)
        assert _ids(page) == ["z-boosted", "a-organic"]

    def test_boost_survives_diversity_pass(self, engine, item_factory, now):
        """Same combination twins keep their relative order"""
        organic = item_factory("a-organic", days_old=1, quality=0.7)
        boosted = item_factory("z-boosted", days_old=1, quality=0.7, boost=0.1)

        page = engine.rank([organic, boosted], ViewerContext.anonymous(),
                           RankOptions(page_size=10, diversity_window=4, now=now))

        assert _ids(page).index("z-boosted") < _ids(page).index("a-organic")


class TestDiversity:
    """Sliding-window cap in the served order"""

    def test_dominant_combination_is_spread(self, engine, item_factory, now):
        """8 of 10 share a combination; minority items are pulled into the first window"""
        dominant = [
            item_factory(f"dom-{i}", days_old=i * 0.1, tier=TrustTier.VERIFIED,
                         quality=0.9, categories=("apartments",))
            for i in range(8)
        ]
        minority = [
            item_factory("min-houses", days_old=5, tier=TrustTier.VERIFIED,
                         quality=0.2, categories=("houses",)),
            item_factory("min-premium", days_old=5, tier=TrustTier.PREMIUM,
                         quality=0.1, categories=("apartments",)),
        ]

        page = engine.rank(dominant + minority, ViewerContext.anonymous(),
                           RankOptions(page_size=10, diversity_window=4, now=now))
        ids = _ids(page)

        assert sorted(ids) == sorted(i.id for i in dominant + minority)
        assert set(ids[2:4]) == {"min-houses", "min-premium"}
        # Every window the minority items can reach stays within the cap
        for start in range(0, 3):
            window = ids[start:start + 4]
            assert sum(1 for i in window if i.startswith("dom-")) <= 2

    def test_all_windows_capped_when_satisfiable(self, engine, item_factory, now):
        """6/4 split of two combinations yields no window over the cap"""
        apartments = [
            item_factory(f"apt-{i}", days_old=i * 0.1, quality=0.9, categories=("apartments",))
            for i in range(6)
        ]
        houses = [
            item_factory(f"house-{i}", days_old=i * 0.1, quality=0.3, categories=("houses",))
            for i in range(4)
        ]

        page = engine.rank(apartments + houses, ViewerContext.anonymous(),
                           RankOptions(page_size=10, diversity_window=4, now=now))
        ids = _ids(page)

        for start in range(len(ids) - 3):
            window = ids[start:start + 4]
            assert sum(1 for i in window if i.startswith("apt-")) <= 2
            assert sum(1 for i in window if i.startswith("house-")) <= 2


class TestPagination:
    """Cursor based paging over a snapshot"""

    @pytest.fixture
    def deferred_pool(self, item_factory):
        """Three apartments and one house; the third apartment is deferred past page 1"""
        return [
            item_factory("a1", days_old=1, quality=0.9),
            item_factory("a2", days_old=1, quality=0.8),
            item_factory("a3", days_old=1, quality=0.7),
            item_factory("b1", days_old=1, quality=0.6, categories=("houses",)),
        ]

    def test_insertions_do_not_skip_deferred_items(self, engine, deferred_pool, item_factory, now):
        """Content added between pages cannot push a deferred item out of the feed"""
        first = engine.rank(deferred_pool, None, RankOptions(page_size=3, diversity_window=4, now=now))
        grown = deferred_pool + [
            item_factory("x", days_old=1, quality=0.85, categories=("developments",)),
            item_factory("y", days_old=1, quality=0.84, categories=("inspiration",)),
        ]

        second = engine.rank(grown, None, RankOptions(page_size=3, cursor=first.next_cursor, diversity_window=4))

        assert _ids(first) == ["a1", "a2", "b1"]
        assert _ids(second) == ["a3"]
        assert second.next_cursor is None

    def test_insertions_after_frontier_are_served(self, engine, deferred_pool, item_factory, now):
        """New items ranked below the frontier appear on later pages exactly once"""
        first = engine.rank(deferred_pool, None, RankOptions(page_size=3, diversity_window=4, now=now))
        grown = deferred_pool + [item_factory("z", days_old=1, quality=0.1, categories=("expert_tips",))]

        second = engine.rank(grown, None, RankOptions(page_size=3, cursor=first.next_cursor, diversity_window=4))

        served = _ids(first) + _ids(second)
        assert sorted(served) == ["a1", "a2", "a3", "b1", "z"]
        assert second.next_cursor is None

    def test_pages_cover_full_sequence(self, engine, mixed_pool, sandton_viewer, now):
        """Concatenated pages equal the single-page ranking with no repeats"""
        full = engine.rank(mixed_pool, sandton_viewer, RankOptions(page_size=100, diversity_window=4, now=now))

        collected = []
        options = RankOptions(page_size=5, diversity_window=4, now=now)
        pages = 0
        while True:
            page = engine.rank(mixed_pool, sandton_viewer, options)
            collected.extend(_ids(page))
            pages += 1
            if page.next_cursor is None:
                break
            options = RankOptions(page_size=5, cursor=page.next_cursor, diversity_window=4)

        assert pages == 3
        assert collected == _ids(full)
        assert len(collected) == len(set(collected))
        assert full.next_cursor is None

    def test_cursor_pins_request_time(self, engine, mixed_pool, sandton_viewer, now):
        """Page 2 is scored at page 1's request time"""
        first = engine.rank(mixed_pool, sandton_viewer, RankOptions(page_size=4, diversity_window=4, now=now))
        later = now + timedelta(days=60)

        second = engine.rank(mixed_pool, sandton_viewer,
                             RankOptions(page_size=4, cursor=first.next_cursor, diversity_window=4, now=later))
        full = engine.rank(mixed_pool, sandton_viewer, RankOptions(page_size=8, diversity_window=4, now=now))

        assert _ids(first) + _ids(second) == _ids(full)

    def test_cursor_survives_removed_item(self, engine, mixed_pool, now):
        """Removing the last served item does not duplicate or skip later items"""
        viewer = ViewerContext.anonymous()
        options = RankOptions(page_size=4, diversity_window=1, now=now)

        first = engine.rank(mixed_pool, viewer, options)
        expected_second = engine.rank(
            mixed_pool, viewer, RankOptions(page_size=4, cursor=first.next_cursor, diversity_window=1)
        )

        last_served = first.results[-1].item_id
        shrunk = [item for item in mixed_pool if item.id != last_served]
        second = engine.rank(shrunk, viewer,
                             RankOptions(page_size=4, cursor=first.next_cursor, diversity_window=1))

        assert _ids(second) == _ids(expected_second)
        assert not set(_ids(second)) & set(_ids(first))

    def test_request_time(self, engine, mixed_pool, now):
        """Cursor snapshot wins over options.now"""
        first = engine.rank(mixed_pool, None, RankOptions(page_size=4, diversity_window=4, now=now))
        later = now + timedelta(days=3)

        assert engine.request_time(RankOptions(now=later)) == later
        assert engine.request_time(RankOptions(cursor=first.next_cursor, now=later)) == now
        assert engine.request_time(RankOptions()).tzinfo is not None

    def test_rank_all_walks_every_page(self, engine, mixed_pool, sandton_viewer, now):
        """rank_all returns the full sequence with global positions"""
        results = engine.rank_all(mixed_pool, sandton_viewer, page_size=5, diversity_window=4, now=now)
        full = engine.rank(mixed_pool, sandton_viewer, RankOptions(page_size=100, diversity_window=4, now=now))

        assert [r.item_id for r in results] == _ids(full)
        assert [r.rank for r in results] == list(range(len(mixed_pool)))


class TestEmptyAndMalformed:
    """Empty pools and bad records"""

    def test_empty_pool(self, engine, sandton_viewer):
        """Empty pool returns no results and no cursor"""
        page = engine.rank([], sandton_viewer, RankOptions(page_size=10, diversity_window=4))

        assert page == RankedPage(results=[], next_cursor=None)
        assert page.to_dict() == {"results": [], "next_cursor": None}

    def test_item_without_id_is_skipped(self, engine, item_factory, now, caplog):
        """Malformed item is logged and skipped, the rest is ranked"""
        bad = ContentItem(id="", published_at=now)
        good = item_factory("good", quality=0.8)

        with caplog.at_level(logging.WARNING):
            page = engine.rank([bad, good], None, RankOptions(page_size=10, diversity_window=4, now=now))

        assert _ids(page) == ["good"]
        assert "malformed" in caplog.text.lower()

    def test_duplicate_ids_keep_first(self, engine, item_factory, now, caplog):
        """Repeated id keeps the first occurrence"""
        first = item_factory("dup", quality=0.1)
        second = item_factory("dup", quality=0.9)

        with caplog.at_level(logging.WARNING):
            page = engine.rank([first, second], None, RankOptions(page_size=10, diversity_window=4, now=now))

        assert _ids(page) == ["dup"]
        assert page.results[0].breakdown.content_quality == pytest.approx(0.1)
        assert "duplicate" in caplog.text.lower()


class TestOptionValidation:
    """Caller errors are rejected before scoring"""

    @pytest.mark.parametrize("options", [
        RankOptions(page_size=0, diversity_window=4),
        RankOptions(page_size=-3, diversity_window=4),
        RankOptions(page_size=10, diversity_window=0),
        RankOptions(page_size=10, diversity_window=-1),
        RankOptions(page_size="10", diversity_window=4),
        RankOptions(page_size=True, diversity_window=4),
        RankOptions(page_size=2.5, diversity_window=4),
    ])
    def test_invalid_options_rejected(self, engine, mixed_pool, options):
        """Non-positive or non-integer sizes raise InvalidOptionsError"""
        engine.scorer = MagicMock()

        with pytest.raises(InvalidOptionsError):
            engine.rank(mixed_pool, None, options)

        engine.scorer.score_and_rank.assert_not_called()

    def test_invalid_options_rejected_for_empty_pool(self, engine):
        """Validation happens even when there is nothing to rank"""
        with pytest.raises(InvalidOptionsError):
            engine.rank([], None, RankOptions(page_size=0, diversity_window=4))

    def test_bad_cursor_rejected(self, engine, mixed_pool):
        """Undecodable cursor raises InvalidCursorError"""
        with pytest.raises(InvalidCursorError):
            engine.rank(mixed_pool, None, RankOptions(page_size=5, cursor="not-a-cursor!!", diversity_window=4))

    def test_invalid_options_are_value_errors(self):
        """Callers can catch ValueError"""
        assert issubclass(InvalidOptionsError, ValueError)
        assert issubclass(InvalidCursorError, InvalidOptionsError)

    def test_default_options(self, engine, mixed_pool):
        """Missing options use the configured defaults"""
        page = engine.rank(mixed_pool, None)

        assert len(page.results) == len(mixed_pool)
        assert page.next_cursor is None


class TestEngineConfig:
    """Engine construction"""

    def test_invalid_config_rejected(self):
        """Weights that do not sum to 1.0 are refused"""
        with pytest.raises(RankingConfigError) as exc_info:
            FeedRankingEngine(RankingConfig(user_interest_weight=0.9))

        assert any("sum to 1.0" in error for error in exc_info.value.errors)

    def test_alternate_weights(self, item_factory, now):
        """Substituted weights change the ordering without patching globals"""
        fresh = item_factory("fresh", days_old=0, quality=0.2)
        polished = item_factory("polished", days_old=40, quality=1.0)
        options = RankOptions(page_size=10, diversity_window=1, now=now)

        default_ids = _ids(FeedRankingEngine().rank([fresh, polished], None, options))
        recency_first = FeedRankingEngine(RankingConfig(
            user_interest_weight=0.0,
            content_quality_weight=0.1,
            local_relevance_weight=0.1,
            recency_weight=0.7,
            partner_trust_weight=0.1,
        ))

        assert default_ids == ["polished", "fresh"]
        assert _ids(recency_first.rank([fresh, polished], None, options)) == ["fresh", "polished"]
