"""
Discovery recommendations outside the user's usual genres.

Surfaces highly rated items from genres missing from the user's top
preferences. Users who have explored every genre instead get quality items
that are not already mainstream.
"""

from __future__ import annotations

import logging
from datetime import datetime

from .config import DISCOVERY_MIN_RATING, DISCOVERY_TOP_GENRES, POOL_MULTIPLIER
from .models import RecommendationCandidate, RecommendationOptions, SourceType, Strategy, rank_candidates
from .popularity import PopularityRecommender, interaction_counts
from .profile import load_user_preferences, preferred_genres
from .stores import CatalogService, InteractionLogStore, ItemFilter

logger = logging.getLogger(__name__)


def discovery_route(top_genres: list[str], all_genres: set[str]) -> Strategy:
    """
    Decide how to serve discovery for a user.

    - No preferred genres: nothing to discover away from, use popularity
    - Some catalog genres outside the top preferences: discovery
    - Every catalog genre already preferred: inverse popularity
    """
    if not top_genres:
        return Strategy.POPULAR
    if set(all_genres) - set(top_genres):
        return Strategy.DISCOVERY
    return Strategy.INVERSE_POPULARITY


class DiscoveryRecommender:
    def __init__(
        self,
        catalog: CatalogService,
        interactions: InteractionLogStore,
        popularity: PopularityRecommender | None = None,
        top_n_genres: int = DISCOVERY_TOP_GENRES,
        min_rating: float = DISCOVERY_MIN_RATING,
    ):
        self.catalog = catalog
        self.interactions = interactions
        self.popularity = popularity or PopularityRecommender(catalog, interactions)
        self.top_n_genres = top_n_genres
        self.min_rating = min_rating

    def recommend(
        self,
        user_id: str,
        options: RecommendationOptions,
        now: datetime | None = None,
    ) -> list[RecommendationCandidate]:
        prefs, seen = load_user_preferences(user_id, self.catalog, self.interactions)
        top_genres = preferred_genres(prefs, self.top_n_genres)
        all_genres = self.catalog.get_all_genres()
        excluded = frozenset(seen | options.exclude_ids)

        route = discovery_route(top_genres, all_genres)
        if route == Strategy.POPULAR:
            logger.info(f"User {user_id} has no preferred genres, falling back to popularity")
            return self.popularity.recommend(options, now=now, seen=seen)
        if route == Strategy.INVERSE_POPULARITY:
            logger.info(f"User {user_id} has explored every genre, using inverse popularity")
            return self.highly_rated_unpopular(excluded, options)

        discovery_genres = frozenset(all_genres - set(top_genres))
        pool = self.catalog.query_items(
            ItemFilter(
                genre_ids=discovery_genres,
                min_rating=self.min_rating,
                exclude_ids=excluded,
                order_by="rating",
            ),
            limit=options.limit * POOL_MULTIPLIER,
        )

        candidates = [
            RecommendationCandidate(item.id, item.average_rating, SourceType.DISCOVERY)
            for item in pool
            if not options.include_genres or item.genre_ids & options.include_genres
        ]
        logger.debug(
            f"Discovery: {len(discovery_genres)} unexplored genres, {len(candidates)} candidates for {user_id}"
        )
        return rank_candidates(candidates)[:options.limit]

    def highly_rated_unpopular(
        self,
        excluded: frozenset[str],
        options: RecommendationOptions,
    ) -> list[RecommendationCandidate]:
        """
        Items rated >= min_rating, by rating descending then least interacted first.

        Every item tied with the last admitted rating is ranked, so the
        interaction-count tie-break sees the whole tied group before the cut.
        """
        pool = self.catalog.query_items(
            ItemFilter(min_rating=self.min_rating, exclude_ids=excluded, order_by="rating")
        )
        pool = [
            item for item in pool
            if not options.include_genres or item.genre_ids & options.include_genres
        ]
        if len(pool) > options.limit:
            cutoff = pool[options.limit - 1].average_rating
            pool = [item for item in pool if item.average_rating >= cutoff]

        counts = interaction_counts(self.interactions, [item.id for item in pool])

        ranked = sorted(pool, key=lambda item: (-item.average_rating, counts[item.id], item.id))
        return [
            RecommendationCandidate(item.id, item.average_rating, SourceType.DISCOVERY)
            for item in ranked[:options.limit]
        ]
