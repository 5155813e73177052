"""
Sliding-window Diversification
Keeps a single partner tier/category combination from dominating any
viewport-sized window of the feed, deferring items instead of dropping them
"""

import heapq
import logging
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence

from .scorer import ScoredItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiversificationConfig:
    """Configuration for diversification engine"""
    window: int = 4  # Consecutive output positions checked together
    cap: int = 2     # Max occurrences of one combination inside a window


def diversity_key(scored: ScoredItem) -> Hashable:
    return scored.item.diversity_key


class DiversityWindowDiversifier:
    """Greedy sliding-window deferral over an already ordered sequence"""

    def __init__(self, config: Optional[DiversificationConfig] = None,
                 key_fn: Callable[[Any], Hashable] = diversity_key):
        self.config = config or DiversificationConfig()
        self.key_fn = key_fn

    def diversify(self, ranked: Sequence[Any], history: Sequence[Hashable] = ()) -> List[Any]:
        """
        Reorder so no combination exceeds the cap within any window.

        At each position the first remaining candidate (in input order) whose
        combination appears fewer than `cap` times among the previous
        `window - 1` outputs is placed. When every remaining candidate would
        violate the window, the first one is placed anyway so the pass always
        terminates and keeps every item.

        Args:
            ranked: Candidates in total order
            history: Combination keys of the outputs already served before
                `ranked[0]`, oldest first; seeds the sliding window

        Candidates are queued per combination and only the queue heads sit in
        a heap ordered by input position, so each placement inspects at most
        (window - 1) // cap blocked heads.
        """
        window = self.config.window
        cap = self.config.cap

        if not ranked or window <= cap:
            return list(ranked)

        queues: Dict[Hashable, deque] = {}
        for position, candidate in enumerate(ranked):
            queues.setdefault(self.key_fn(candidate), deque()).append((position, candidate))
        heads = [(queue[0][0], key) for key, queue in queues.items()]
        heapq.heapify(heads)

        recent: deque = deque(maxlen=window - 1)
        recent_counts: Counter = Counter()
        for key in list(history)[-(window - 1):]:
            recent.append(key)
            recent_counts[key] += 1

        output: List[Any] = []
        deferred = 0
        forced = 0

        while heads:
            blocked = []
            chosen = None
            while heads:
                head = heapq.heappop(heads)
                if recent_counts[head[1]] < cap:
                    chosen = head
                    break
                blocked.append(head)

            if chosen is None:
                chosen = blocked.pop(0)
                forced += 1
            elif blocked:
                deferred += 1

            for head in blocked:
                heapq.heappush(heads, head)

            key = chosen[1]
            queue = queues[key]
            _, item = queue.popleft()
            if queue:
                heapq.heappush(heads, (queue[0][0], key))

            if len(recent) == recent.maxlen:
                recent_counts[recent[0]] -= 1
            recent.append(key)
            recent_counts[key] += 1
            output.append(item)

        if deferred or forced:
            logger.debug(f"Diversity window={window} cap={cap}: "
                         f"{deferred} placements skipped ahead, {forced} forced at tail")

        return output

    def count_window_violations(self, sequence: Sequence[Any]) -> int:
        """Number of windows in which some combination exceeds the cap"""
        window = self.config.window
        cap = self.config.cap
        keys = [self.key_fn(s) for s in sequence]

        if len(keys) < window:
            windows = [keys] if keys else []
        else:
            windows = [keys[i:i + window] for i in range(len(keys) - window + 1)]

        return sum(1 for w in windows if max(Counter(w).values()) > cap)

    def analyze_diversity(self, sequence: Sequence[ScoredItem]) -> Dict[str, Any]:
        """Analyze diversity metrics of an ordered sequence"""
        if not sequence:
            return {}

        keys = [self.key_fn(s) for s in sequence]
        distribution = Counter(keys)
        tiers = Counter(s.item.partner_trust_tier.value for s in sequence)

        return {
            'total_results': len(sequence),
            'unique_combinations': len(distribution),
            'combination_diversity_ratio': len(distribution) / len(sequence),
            'largest_combination_share': round(max(distribution.values()) / len(sequence), 3),
            'tier_distribution': dict(tiers),
            'window_violations': self.count_window_violations(sequence),
        }
