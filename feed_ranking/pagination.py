"""
Cursor pagination for ranked feeds.

A cursor is URL-safe base64 over a small JSON document holding the frontier
sort key (the served item that comes last in the total order), the request
time the pages are scored at, the ids of snapshot items that the diversity
pass deferred behind the frontier but has not served yet, and the diversity
keys of the last served positions.
"""
import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, List, Optional, Sequence, Tuple

from .errors import InvalidCursorError
from .scorer import OrderKey, ScoredItem, as_utc, compare_order_keys

DiversityKey = Tuple[str, FrozenSet[str]]


@dataclass(frozen=True)
class FeedCursor:
    score: float
    published_at: datetime
    item_id: str
    snapshot_at: datetime
    deferred_ids: Tuple[str, ...] = ()
    window_keys: Tuple[DiversityKey, ...] = ()

    @property
    def order_key(self) -> OrderKey:
        return OrderKey(self.score, self.published_at, self.item_id)

    @classmethod
    def after(cls, scored: ScoredItem, snapshot_at: datetime,
              deferred_ids: Sequence[str] = (),
              window_keys: Sequence[DiversityKey] = ()) -> "FeedCursor":
        return cls(
            score=scored.score,
            published_at=scored.published_at,
            item_id=scored.item_id,
            snapshot_at=as_utc(snapshot_at),
            deferred_ids=tuple(deferred_ids),
            window_keys=tuple(window_keys),
        )


def encode_cursor(cursor: FeedCursor) -> str:
    payload = {
        "s": repr(cursor.score),
        "p": cursor.published_at.isoformat(),
        "i": cursor.item_id,
        "t": cursor.snapshot_at.isoformat(),
        "d": list(cursor.deferred_ids),
        "w": [[tier, sorted(categories)] for tier, categories in cursor.window_keys],
    }
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _decode_window_keys(value) -> Tuple[DiversityKey, ...]:
    if not isinstance(value, list):
        raise ValueError("window keys must be a list")
    keys = []
    for entry in value:
        if (not isinstance(entry, list) or len(entry) != 2
                or not isinstance(entry[0], str) or not isinstance(entry[1], list)):
            raise ValueError(f"bad window key: {entry!r}")
        keys.append((entry[0], frozenset(str(tag) for tag in entry[1])))
    return tuple(keys)


def decode_cursor(token: str) -> FeedCursor:
    """Decode a cursor token, raising InvalidCursorError on any malformation"""
    if not isinstance(token, str) or not token:
        raise InvalidCursorError("Cursor must be a non-empty string")

    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursorError(f"Cursor is not valid base64 JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise InvalidCursorError("Cursor payload must be an object")

    try:
        deferred = payload.get("d", [])
        if not isinstance(deferred, list):
            raise ValueError("deferred ids must be a list")
        return FeedCursor(
            score=float(payload["s"]),
            published_at=as_utc(datetime.fromisoformat(payload["p"])),
            item_id=str(payload["i"]),
            snapshot_at=as_utc(datetime.fromisoformat(payload["t"])),
            deferred_ids=tuple(str(item_id) for item_id in deferred),
            window_keys=_decode_window_keys(payload.get("w", [])),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidCursorError(f"Cursor payload is incomplete: {exc}") from exc


def resume_candidates(ranked: Sequence[ScoredItem], cursor: Optional[FeedCursor],
                      epsilon: float = 1e-9) -> List[ScoredItem]:
    """
    Items still to be served after `cursor`, in total order.

    These are the items whose sort key follows the frontier plus the deferred
    items of the snapshot that are still in the pool. Items inserted between
    requests with a key ahead of the frontier belong to pages already served
    and are left out.
    """
    if cursor is None:
        return list(ranked)

    deferred = set(cursor.deferred_ids)
    frontier = cursor.order_key
    return [
        scored for scored in ranked
        if scored.item_id in deferred or compare_order_keys(scored.order_key, frontier, epsilon) > 0
    ]


def build_next_cursor(cursor: Optional[FeedCursor], page: Sequence[ScoredItem],
                rest: Sequence[ScoredItem], snapshot_at: datetime,
                window: int, epsilon: float = 1e-9) -> Optional[FeedCursor]:
    """
    Cursor for the page after `page`, or None when `rest` is empty.

    Args:
        cursor: Cursor the page was resumed from, if any
        page: Items served on this page, in output order
        rest: Diversified candidates not served yet
        snapshot_at: Request time the pages are scored at
        window: Diversity window; its last window - 1 keys are carried over
    """
    if not page or not rest:
        return None

    frontier = cursor.order_key if cursor is not None else None
    frontier_item = None
    for scored in page:
        if frontier is None or compare_order_keys(scored.order_key, frontier, epsilon) > 0:
            frontier = scored.order_key
            frontier_item = scored

    deferred_ids = [
        scored.item_id for scored in rest
        if compare_order_keys(scored.order_key, frontier, epsilon) < 0
    ]

    history = list(cursor.window_keys) if cursor is not None else []
    history.extend(scored.item.diversity_key for scored in page)
    window_keys = history[-(window - 1):] if window > 1 else []

    if frontier_item is None:
        # Whole page was deferred items; the frontier does not move
        return FeedCursor(
            score=cursor.score,
            published_at=cursor.published_at,
            item_id=cursor.item_id,
            snapshot_at=as_utc(snapshot_at),
            deferred_ids=tuple(deferred_ids),
            window_keys=tuple(window_keys),
        )
    return FeedCursor.after(frontier_item, snapshot_at, deferred_ids, window_keys)
