"""
Collaborative filtering recommender.

Finds users with similar taste and recommends items they rated highly.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime

from .config import COLLAB_MIN_PEER_RATING, COLLAB_MIN_RATINGS, POOL_MULTIPLIER, RATING_SCALE_MAX
from .models import (
    InteractionKind,
    InteractionRecord,
    RecommendationCandidate,
    RecommendationOptions,
    SimilarityEdge,
    SourceType,
    Strategy,
    UserHistory,
    rank_candidates,
)
from .popularity import PopularityRecommender
from .profile import build_history
from .similarity import find_similar_users
from .stores import CatalogService, InteractionLogStore

logger = logging.getLogger(__name__)


def collaborative_route(n_ratings: int, min_ratings: int = COLLAB_MIN_RATINGS) -> Strategy:
    """Cold-start users are routed to popularity."""
    if n_ratings < min_ratings:
        return Strategy.POPULAR
    return Strategy.COLLABORATIVE


class CollaborativeRecommender:
    def __init__(
        self,
        catalog: CatalogService,
        interactions: InteractionLogStore,
        popularity: PopularityRecommender | None = None,
    ):
        self.catalog = catalog
        self.interactions = interactions
        self.popularity = popularity or PopularityRecommender(catalog, interactions)

    def find_peers(self, history: UserHistory) -> list[SimilarityEdge]:
        """Similarity edges for every user who co-rated the target's items."""
        if not history.ratings:
            return []

        records = self.interactions.get_interactions_for_items(
            sorted(history.ratings), kinds=[InteractionKind.RATE]
        )

        by_user: dict[str, list[InteractionRecord]] = defaultdict(list)
        for record in records:
            if record.user_id != history.user_id:
                by_user[record.user_id].append(record)

        peer_ratings = {
            peer: build_history(peer, peer_records).ratings
            for peer, peer_records in by_user.items()
        }
        return find_similar_users(history.ratings, peer_ratings, target_user_id=history.user_id)

    def score_from_peers(
        self,
        edges: list[SimilarityEdge],
        excluded: set[str],
    ) -> dict[str, float]:
        """
        Accumulate coefficient * (rating / 5) over peer ratings >= 4.0.

        Contributions from several peers on the same item add up.
        """
        item_scores: dict[str, float] = defaultdict(float)

        for edge in edges:
            peer_records = self.interactions.get_user_interactions(
                edge.peer_user_id, kinds=[InteractionKind.RATE]
            )
            peer_ratings = build_history(edge.peer_user_id, peer_records).ratings

            for content_id, rating in peer_ratings.items():
                if content_id in excluded or rating < COLLAB_MIN_PEER_RATING:
                    continue
                item_scores[content_id] += edge.coefficient * (rating / RATING_SCALE_MAX)

        return dict(item_scores)

    def recommend(
        self,
        user_id: str,
        options: RecommendationOptions,
        now: datetime | None = None,
    ) -> list[RecommendationCandidate]:
        """Generate collaborative recommendations."""
        history = build_history(user_id, self.interactions.get_user_interactions(user_id))

        if collaborative_route(history.n_ratings) == Strategy.POPULAR:
            logger.info(
                f"User {user_id} has {history.n_ratings} ratings "
                f"(min: {COLLAB_MIN_RATINGS}), falling back to popularity"
            )
            return self.popularity.recommend(options, now=now, seen=history.seen)

        edges = self.find_peers(history)
        if not edges:
            logger.info(f"No similar users found for {user_id}")
            return []

        excluded = history.seen | options.exclude_ids
        item_scores = self.score_from_peers(edges, excluded)

        ranked_ids = sorted(item_scores, key=lambda content_id: (-item_scores[content_id], content_id))

        # Resolve the best-scored items against the catalog one bounded batch at a time
        candidates = []
        batch_size = options.limit * POOL_MULTIPLIER
        for start in range(0, len(ranked_ids), batch_size):
            for item in self.catalog.get_items_by_ids(ranked_ids[start:start + batch_size]):
                if options.include_genres and not (item.genre_ids & options.include_genres):
                    continue
                candidates.append(RecommendationCandidate(item.id, item_scores[item.id], SourceType.COLLABORATIVE))
            if len(candidates) >= options.limit:
                break

        logger.debug(f"Collaborative: {len(edges)} peers produced {len(candidates)} candidates for {user_id}")
        return rank_candidates(candidates)[:options.limit]
