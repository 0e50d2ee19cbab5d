"""
Content-attribute recommender.

Scores unseen items by how often their genres, directors and actors appear
among the user's favorites. No embeddings, just weighted feature matching.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .config import ATTRIBUTE_CAPS, CONTENT_WEIGHTS, POOL_MULTIPLIER
from .models import (
    ContentItem,
    RecommendationCandidate,
    RecommendationOptions,
    SourceType,
    Strategy,
    rank_candidates,
)
from .popularity import PopularityRecommender
from .profile import UserPreferences, load_user_preferences
from .stores import CatalogService, InteractionLogStore, ItemFilter

logger = logging.getLogger(__name__)

SCORING_MODES = ("weighted", "normalized")


@dataclass(frozen=True)
class AttributeConfig:
    """Configuration for scoring one attribute class."""
    name: str                # e.g. "genre"
    item_field: str          # attribute set on ContentItem, e.g. "genre_ids"
    counts_attr: str         # favorite counts on UserPreferences
    weight: float            # points per favorite occurrence
    cap: Optional[float]     # upper bound on the class contribution


ATTRIBUTE_CONFIGS = [
    AttributeConfig('genre', 'genre_ids', 'genre_counts', CONTENT_WEIGHTS['genre'], ATTRIBUTE_CAPS.get('genre')),
    AttributeConfig('director', 'director_ids', 'director_counts', CONTENT_WEIGHTS['director'], ATTRIBUTE_CAPS.get('director')),
    AttributeConfig('actor', 'actor_ids', 'actor_counts', CONTENT_WEIGHTS['actor'], ATTRIBUTE_CAPS.get('actor')),
]


def content_route(n_favorites: int) -> Strategy:
    """Users without favorites have no attribute signal."""
    if n_favorites == 0:
        return Strategy.POPULAR
    return Strategy.CONTENT_BASED


def _score_attribute(item: ContentItem, prefs: UserPreferences, config: AttributeConfig) -> float:
    counts = getattr(prefs, config.counts_attr)
    total = sum(counts.get(value, 0) * config.weight for value in getattr(item, config.item_field))
    if config.cap is not None:
        total = min(total, config.cap)
    return total


def weighted_score(
    item: ContentItem,
    prefs: UserPreferences,
    attribute_configs: list[AttributeConfig] = ATTRIBUTE_CONFIGS,
) -> float:
    """Sum of favorite-count * weight over genre, director and actor matches."""
    return sum(_score_attribute(item, prefs, config) for config in attribute_configs)


def normalized_score(item: ContentItem, prefs: UserPreferences) -> float:
    """Matched genre-vector weight divided by the item's genre count."""
    if not item.genre_ids:
        return 0.0
    matched = sum(prefs.genre_vector.get(genre, 0.0) for genre in item.genre_ids)
    return matched / len(item.genre_ids)


class ContentRecommender:
    def __init__(
        self,
        catalog: CatalogService,
        interactions: InteractionLogStore,
        popularity: PopularityRecommender | None = None,
        attribute_configs: list[AttributeConfig] | None = None,
    ):
        self.catalog = catalog
        self.interactions = interactions
        self.popularity = popularity or PopularityRecommender(catalog, interactions)
        self.attribute_configs = attribute_configs or ATTRIBUTE_CONFIGS

    def _candidate_pool(
        self,
        prefs: UserPreferences,
        excluded: frozenset[str],
        require_genre_overlap: bool,
        pool_size: int,
    ) -> list[ContentItem]:
        queries = [ItemFilter(genre_ids=frozenset(prefs.genres), exclude_ids=excluded)]
        if not require_genre_overlap:
            queries.append(ItemFilter(director_ids=frozenset(prefs.directors), exclude_ids=excluded))
            queries.append(ItemFilter(actor_ids=frozenset(prefs.actors), exclude_ids=excluded))

        pool: dict[str, ContentItem] = {}
        for item_filter in queries:
            for item in self.catalog.query_items(item_filter, limit=pool_size):
                pool.setdefault(item.id, item)
        return [pool[item_id] for item_id in sorted(pool)]

    def score_item(self, item: ContentItem, prefs: UserPreferences, mode: str = "weighted") -> float:
        if mode == "weighted":
            return weighted_score(item, prefs, self.attribute_configs)
        if mode == "normalized":
            return normalized_score(item, prefs)
        raise ValueError(f"Unknown scoring mode: {mode} (expected one of {SCORING_MODES})")

    def recommend(
        self,
        user_id: str,
        options: RecommendationOptions,
        require_genre_overlap: bool = True,
        mode: str = "weighted",
        now: datetime | None = None,
    ) -> list[RecommendationCandidate]:
        """
        Generate content-based recommendations.

        Args:
            user_id: Target user
            options: Request options (limit, exclusions, genre filter)
            require_genre_overlap: Drop items sharing no genre with the favorites.
                Relaxed when the results are blended with popularity.
            mode: "weighted" (favorite counts) or "normalized" (genre vector)
            now: Reference time for the popularity fallback
        """
        if mode not in SCORING_MODES:
            raise ValueError(f"Unknown scoring mode: {mode} (expected one of {SCORING_MODES})")

        prefs, seen = load_user_preferences(user_id, self.catalog, self.interactions)

        if content_route(prefs.n_favorites) == Strategy.POPULAR:
            logger.info(f"User {user_id} has no favorites, falling back to popularity")
            return self.popularity.recommend(options, now=now, seen=seen)

        excluded = frozenset(seen | options.exclude_ids)
        pool = self._candidate_pool(
            prefs, excluded, require_genre_overlap, options.limit * POOL_MULTIPLIER
        )

        candidates = []
        for item in pool:
            if options.include_genres and not (item.genre_ids & options.include_genres):
                continue
            if require_genre_overlap and not any(g in prefs.genres for g in item.genre_ids):
                continue

            score = self.score_item(item, prefs, mode)
            if score > 0:
                candidates.append(RecommendationCandidate(item.id, score, SourceType.CONTENT_BASED))

        logger.debug(
            f"Content-based: {prefs.n_favorites} favorites, {len(pool)} pooled, "
            f"{len(candidates)} scored for {user_id}"
        )
        return rank_candidates(candidates)[:options.limit]
