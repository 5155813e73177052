"""
Main CLI for the explore feed ranking service
"""

import argparse
import json
import logging
import os
from dataclasses import replace
from datetime import datetime
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from core.config import get_ranking_config
from feed_ranking import (
    FeedExplainabilityEngine,
    FeedRankingEngine,
    FeedRankingError,
    RankOptions,
)
from feed_ranking.adapters import content_items_from_rows, viewer_context_from_profile


def _init_logging():
    """Initialize logging after ensuring logs directory exists"""
    log_dir = os.getenv("FEED_RANKING_LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.path.join(log_dir, 'feed_ranking.log'), encoding='utf-8')
        ]
    )


logger = logging.getLogger(__name__)


def _load_json(path):
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def _parse_now(value):
    if value is None:
        return None
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def build_parser():
    ap = argparse.ArgumentParser("Explore Feed Ranking")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # Rank command
    p_rank = sub.add_parser("rank", help="Rank a JSON dump of eligible content rows")
    p_rank.add_argument("--items", required=True, help="JSON file with a list of content rows")
    p_rank.add_argument("--viewer", help="JSON file with the viewer profile (omit for anonymous)", default=None)
    p_rank.add_argument("--page-size", type=int, default=None, help="Results per page")
    p_rank.add_argument("--cursor", default=None, help="Cursor returned by the previous page")
    p_rank.add_argument("--diversity-window", type=int, default=None, help="Diversity window size")
    p_rank.add_argument("--now", default=None, help="Request time (ISO 8601), defaults to current time")
    p_rank.add_argument("--explain", action="store_true", help="Include per-item explanations")

    # Config command
    sub.add_parser("config", help="Show effective ranking configuration")

    return ap


def main(argv=None):
    args = build_parser().parse_args(argv)
    _init_logging()

    config = get_ranking_config()

    try:
        if args.cmd == "config":
            print(json.dumps(config.to_dict(), indent=2))
            return 0

        if args.cmd == "rank":
            rows = _load_json(args.items)
            if not isinstance(rows, list):
                print("Error: --items must contain a JSON list of content rows")
                return 1

            items = content_items_from_rows(rows)
            viewer = viewer_context_from_profile(_load_json(args.viewer) if args.viewer else None)

            options = RankOptions(
                page_size=args.page_size if args.page_size is not None else config.default_page_size,
                cursor=args.cursor,
                diversity_window=(args.diversity_window if args.diversity_window is not None
                                  else config.default_diversity_window),
                now=_parse_now(args.now),
            )

            engine = FeedRankingEngine(config)
            now = engine.request_time(options)
            page = engine.rank(items, viewer, replace(options, now=now))
            output = page.to_dict()

            if args.explain:
                explainer = FeedExplainabilityEngine(config)
                by_id = {}
                for item in items:
                    by_id.setdefault(item.id, item)  # Engine keeps the first duplicate
                output["explanations"] = [
                    explainer.explain_result(result, by_id[result.item_id], viewer, now)
                    for result in page.results
                ]

            print(json.dumps(output, indent=2, default=str))
            return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        print("\nInterrupted")
    except (FeedRankingError, OSError, ValueError) as e:
        logger.error(f"Command failed: {e}")
        print(f"✗ Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
