"""Trending feed and cold-start fallback based on recent completions."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable

from .config import POOL_MULTIPLIER, TIMEFRAME_DAYS
from .models import RecommendationCandidate, RecommendationOptions, SourceType, Timeframe, rank_candidates
from .stores import CatalogService, InteractionLogStore, ItemFilter

logger = logging.getLogger(__name__)


def timeframe_start(timeframe: Timeframe | str, now: datetime) -> datetime | None:
    """Start of the trailing window, or None for all time."""
    days = TIMEFRAME_DAYS[Timeframe(timeframe).value]
    if days is None:
        return None
    return now - timedelta(days=days)


def interaction_counts(interactions: InteractionLogStore, item_ids: Iterable[str]) -> Counter:
    """Total number of interactions of any kind per item."""
    ids = list(item_ids)
    counts: Counter = Counter({item_id: 0 for item_id in ids})
    for record in interactions.get_interactions_for_items(ids):
        counts[record.content_id] += 1
    return counts


class PopularityRecommender:
    """Ranks catalog items by completions inside a trailing time window."""

    def __init__(self, catalog: CatalogService, interactions: InteractionLogStore):
        self.catalog = catalog
        self.interactions = interactions

    def recommend(
        self,
        options: RecommendationOptions,
        now: datetime | None = None,
        seen: frozenset[str] | set[str] = frozenset(),
    ) -> list[RecommendationCandidate]:
        """
        Rank items by completions inside the options' timeframe.

        Args:
            options: Request options (limit, timeframe, exclusions, genre filter)
            now: End of the window (default: current time)
            seen: Items the requesting user already interacted with, if any
        """
        since = timeframe_start(options.timeframe, now or datetime.now())
        item_filter = ItemFilter(
            genre_ids=options.include_genres or None,
            exclude_ids=frozenset(options.exclude_ids | set(seen)),
        )

        counts = self.interactions.count_completed_by_item(since)
        ranked_ids = sorted(counts, key=lambda content_id: (-counts[content_id], content_id))

        # Walk completed items best-first, one bounded catalog fetch at a time
        candidates: list[RecommendationCandidate] = []
        batch_size = options.limit * POOL_MULTIPLIER
        for start in range(0, len(ranked_ids), batch_size):
            for item in self.catalog.get_items_by_ids(ranked_ids[start:start + batch_size]):
                if item_filter.matches(item):
                    candidates.append(
                        RecommendationCandidate(item.id, float(counts[item.id]), SourceType.POPULAR)
                    )
            if len(candidates) >= options.limit:
                break

        shortfall = options.limit - len(candidates)
        if shortfall > 0:
            # Backfill with never-completed items in id order; at most len(counts)
            # of the fetched items can be ones already scored
            pool = self.catalog.query_items(item_filter, limit=shortfall + len(counts))
            backfill = [item for item in pool if item.id not in counts][:shortfall]
            candidates.extend(RecommendationCandidate(item.id, 0.0, SourceType.POPULAR) for item in backfill)

        logger.debug(
            f"Popularity: {len(ranked_ids)} completed items since {since or 'all time'}, "
            f"{len(candidates)} candidates"
        )
        return rank_candidates(candidates)[:options.limit]
