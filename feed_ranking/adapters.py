"""
Adapters from content repository rows to ranking value objects.

All presence/parse checks happen here so the engine only sees typed items.
"""
import logging
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from schemas.content_schemas import ContentRow, ViewerProfile
from .errors import MalformedItemError
from .models import ContentItem, EngagementCounts, TrustTier, ViewerContext

logger = logging.getLogger(__name__)


def content_item_from_row(row: Mapping[str, Any]) -> ContentItem:
    """Build a ContentItem from a loosely typed row, raising MalformedItemError"""
    row_id = row.get("id") if isinstance(row, Mapping) else None
    try:
        parsed = ContentRow.model_validate(row)
    except (ValidationError, TypeError, ValueError) as exc:
        raise MalformedItemError(f"Malformed content row {row_id!r}: {exc}", row_id=row_id) from exc

    return ContentItem(
        id=parsed.id,
        published_at=parsed.published_at,
        partner_trust_tier=TrustTier(parsed.partner_trust_tier),
        quality_score=parsed.quality_score,
        engagement=EngagementCounts(**parsed.engagement.model_dump()),
        geo_tags=frozenset(parsed.geo_tags),
        category_tags=frozenset(parsed.category_tags),
        boost_weight=parsed.boost_weight,
    )


def content_items_from_rows(rows: Iterable[Mapping[str, Any]]) -> List[ContentItem]:
    """Adapt a batch, skipping malformed rows so one bad record cannot fail a page"""
    items = []
    skipped = 0

    for row in rows:
        try:
            items.append(content_item_from_row(row))
        except MalformedItemError as exc:
            skipped += 1
            logger.warning(f"Skipping content row: {exc}")

    if skipped:
        logger.info(f"Adapted {len(items)} content rows, skipped {skipped} malformed")

    return items


def viewer_context_from_profile(profile: Optional[Mapping[str, Any]]) -> ViewerContext:
    """Build a ViewerContext; a missing or unusable profile yields the anonymous viewer"""
    if not profile:
        return ViewerContext.anonymous()

    try:
        parsed = ViewerProfile.model_validate(profile)
    except (ValidationError, TypeError, ValueError) as exc:
        logger.warning(f"Unusable viewer profile, ranking anonymously: {exc}")
        return ViewerContext.anonymous()

    return ViewerContext(
        viewer_id=parsed.viewer_id,
        interest_vector=dict(parsed.interest_vector),
        location_hint=parsed.location_hint,
    )
