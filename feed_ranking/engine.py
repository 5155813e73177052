"""
Feed Ranking Engine
Orders an eligible content pool for one viewer: scoring, total ordering,
diversity deferral and cursor pagination
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from core.config import RankingConfig
from .diversification import DiversificationConfig, DiversityWindowDiversifier
from .errors import InvalidOptionsError, RankingConfigError
from .models import ContentItem, RankedPage, RankedResult, RankOptions, ViewerContext
from .pagination import FeedCursor, build_next_cursor, decode_cursor, encode_cursor, resume_candidates
from .scorer import FeedScorer

logger = logging.getLogger(__name__)


class FeedRankingEngine:
    """Stateless feed ranker; safe to share across concurrent requests"""

    def __init__(self, config: Optional[RankingConfig] = None):
        self.config = config or RankingConfig()

        errors = self.config.validation_errors()
        if errors:
            raise RankingConfigError(errors)

        self.scorer = FeedScorer(self.config)

    def default_options(self) -> RankOptions:
        return RankOptions(
            page_size=self.config.default_page_size,
            diversity_window=self.config.default_diversity_window,
        )

    def validate_options(self, options: RankOptions) -> Optional[FeedCursor]:
        """Reject malformed options before any scoring; returns the decoded cursor"""
        for name in ("page_size", "diversity_window"):
            value = getattr(options, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidOptionsError(f"{name} must be a positive integer, got {value!r}")

        if options.now is not None and not isinstance(options.now, datetime):
            raise InvalidOptionsError(f"now must be a datetime, got {options.now!r}")

        if options.cursor is None:
            return None
        return decode_cursor(options.cursor)

    def request_time(self, options: RankOptions) -> datetime:
        """Instant a page is scored at: the cursor snapshot, options.now, or now"""
        return self._request_time(options, self.validate_options(options))

    @staticmethod
    def _request_time(options: RankOptions, cursor: Optional[FeedCursor]) -> datetime:
        if cursor is not None:
            return cursor.snapshot_at
        return options.now or datetime.now(timezone.utc)

    def _well_formed(self, items: Sequence[ContentItem]) -> List[ContentItem]:
        """Drop items without id/published_at and repeated ids"""
        seen = set()
        kept = []
        for item in items:
            if not item.id or item.published_at is None:
                logger.warning(f"Skipping malformed content item: id={item.id!r}")
                continue
            if item.id in seen:
                logger.warning(f"Skipping duplicate content item: id={item.id!r}")
                continue
            seen.add(item.id)
            kept.append(item)
        return kept

    def rank(self, items: Sequence[ContentItem], viewer: Optional[ViewerContext] = None,
             options: Optional[RankOptions] = None) -> RankedPage:
        """
        Rank an eligible pool and return one page.

        Args:
            items: Content already filtered for moderation/visibility/expiry
            viewer: Viewer signals; None ranks for an anonymous viewer
            options: Page size, cursor, diversity window and request time

        Returns:
            RankedPage with up to page_size results and the next cursor

        Raises:
            InvalidOptionsError: non-positive page_size/diversity_window or a bad cursor
        """
        options = options or self.default_options()
        cursor = self.validate_options(options)
        viewer = viewer or ViewerContext.anonymous()

        pool = self._well_formed(items)
        if not pool:
            return RankedPage(results=[], next_cursor=None)

        now = self._request_time(options, cursor)

        ranked, summary = self.scorer.score_and_rank(pool, viewer, now)
        epsilon = self.config.score_epsilon
        candidates = resume_candidates(ranked, cursor, epsilon)

        diversifier = DiversityWindowDiversifier(DiversificationConfig(
            window=options.diversity_window,
            cap=self.config.diversity_cap,
        ))
        history = cursor.window_keys if cursor is not None else ()
        sequence = diversifier.diversify(candidates, history=history)

        page = sequence[:options.page_size]
        rest = sequence[options.page_size:]

        results = [
            RankedResult(
                item_id=scored.item_id,
                score=scored.score,
                rank=position,
                breakdown=scored.breakdown,
            )
            for position, scored in enumerate(page)
        ]

        following = build_next_cursor(cursor, page, rest, now, options.diversity_window, epsilon)
        next_cursor = encode_cursor(following) if following is not None else None

        logger.info(f"Ranked {summary['scored']} items "
                    f"(boosted={summary['boosted']}, suppressed={summary['boosts_suppressed']}): "
                    f"served {len(page)} of {len(sequence)} remaining, "
                    f"more={next_cursor is not None}")

        return RankedPage(results=results, next_cursor=next_cursor)

    def rank_all(self, items: Sequence[ContentItem], viewer: Optional[ViewerContext] = None,
                 page_size: Optional[int] = None, diversity_window: Optional[int] = None,
                 now: Optional[datetime] = None) -> List[RankedResult]:
        """Walk every page and return the full ranked sequence"""
        options = RankOptions(
            page_size=page_size or self.config.default_page_size,
            diversity_window=diversity_window or self.config.default_diversity_window,
            now=now or datetime.now(timezone.utc),
        )

        results: List[RankedResult] = []
        while True:
            page = self.rank(items, viewer, options)
            offset = len(results)
            results.extend(
                RankedResult(r.item_id, r.score, offset + r.rank, r.breakdown)
                for r in page.results
            )
            if page.next_cursor is None:
                return results
            options = RankOptions(
                page_size=options.page_size,
                cursor=page.next_cursor,
                diversity_window=options.diversity_window,
                now=options.now,
            )
