"""
"Because you watched X" recommendations.

Scores are on an absolute 0-100 scale: up to 50 points for genre overlap,
a flat 30 for a shared director and up to 20 for shared actors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import (
    DEFAULT_LIMIT,
    POOL_MULTIPLIER,
    SIMILAR_ACTOR_FULL_MATCH,
    SIMILAR_ACTOR_POINTS,
    SIMILAR_DIRECTOR_BONUS,
    SIMILAR_GENRE_POINTS,
    SIMILAR_MIN_SCORE,
)
from .errors import NotFound
from .models import ContentItem, RecommendationCandidate, SourceType, rank_candidates
from .stores import CatalogService, InteractionLogStore, ItemFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemSimilarity:
    genre_score: float
    director_bonus: float
    actor_score: float

    @property
    def total(self) -> float:
        return self.genre_score + self.director_bonus + self.actor_score


def item_similarity_score(seed: ContentItem, candidate: ContentItem) -> ItemSimilarity:
    genre_score = 0.0
    if seed.genre_ids:
        shared_genres = len(seed.genre_ids & candidate.genre_ids)
        genre_score = (shared_genres / len(seed.genre_ids)) * SIMILAR_GENRE_POINTS

    director_bonus = SIMILAR_DIRECTOR_BONUS if seed.director_ids & candidate.director_ids else 0.0

    shared_actors = len(seed.actor_ids & candidate.actor_ids)
    actor_score = min((shared_actors / SIMILAR_ACTOR_FULL_MATCH) * SIMILAR_ACTOR_POINTS, SIMILAR_ACTOR_POINTS)

    return ItemSimilarity(genre_score, director_bonus, actor_score)


class SimilarItemsRecommender:
    def __init__(self, catalog: CatalogService, interactions: InteractionLogStore):
        self.catalog = catalog
        self.interactions = interactions

    def recommend(
        self,
        seed_id: str,
        user_id: str | None = None,
        limit: int = DEFAULT_LIMIT,
        exclude_ids: frozenset[str] = frozenset(),
        min_score: float = SIMILAR_MIN_SCORE,
    ) -> list[RecommendationCandidate]:
        """
        Find items similar to a seed item.

        Raises:
            NotFound: If the seed item is not in the catalog
        """
        seed = self.catalog.get_item_by_id(seed_id)
        if seed is None:
            raise NotFound(f"Content with ID {seed_id} not found")

        excluded = {seed.id, *exclude_ids}
        if user_id is not None:
            excluded.update(r.content_id for r in self.interactions.get_user_interactions(user_id))

        item_filter = ItemFilter(
            genre_ids=seed.genre_ids or None,
            exclude_ids=frozenset(excluded),
            media_type=seed.media_type,
        )
        pool = self.catalog.query_items(item_filter, limit=limit * POOL_MULTIPLIER)

        candidates = []
        for item in pool:
            total = item_similarity_score(seed, item).total
            if total >= min_score:
                candidates.append(RecommendationCandidate(item.id, total, SourceType.SIMILAR))

        logger.debug(f"Similar to {seed_id}: {len(candidates)}/{len(pool)} above {min_score}")
        return rank_candidates(candidates)[:limit]
