"""
Recommendation engine facade.

Composes the individual strategies over a catalog and an interaction log and
applies the shared error contract: a missing seed item raises NotFound, any
other collaborator failure is logged and yields an empty list.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Hashable

from .cache import RecommendationCache
from .collaborative import CollaborativeRecommender
from .config import MAX_WORKERS
from .content import ContentRecommender
from .discovery import DiscoveryRecommender
from .errors import NotFound, UpstreamUnavailable
from .item_similarity import SimilarItemsRecommender
from .merger import merge_candidates
from .models import RecommendationCandidate, RecommendationOptions, Strategy
from .popularity import PopularityRecommender
from .stores import CatalogService, InteractionLogStore

logger = logging.getLogger(__name__)

USER_STRATEGIES = {
    Strategy.PERSONALIZED,
    Strategy.COLLABORATIVE,
    Strategy.CONTENT_BASED,
    Strategy.DISCOVERY,
}


class RecommendationEngine:
    """Entry point for every recommendation strategy."""

    def __init__(
        self,
        catalog: CatalogService,
        interactions: InteractionLogStore,
        cache: RecommendationCache | None = None,
        clock: Callable[[], datetime] | None = None,
        max_workers: int = MAX_WORKERS,
    ):
        self.catalog = catalog
        self.interactions = interactions
        self.cache = cache
        self._clock = clock
        self._max_workers = max_workers

        self.popularity = PopularityRecommender(catalog, interactions)
        self.collaborative = CollaborativeRecommender(catalog, interactions, self.popularity)
        self.content = ContentRecommender(catalog, interactions, self.popularity)
        self.similar = SimilarItemsRecommender(catalog, interactions)
        self.discovery = DiscoveryRecommender(catalog, interactions, self.popularity)

    def _now(self) -> datetime:
        return self._clock() if self._clock else datetime.now()

    def _run(
        self,
        strategy: Strategy,
        user_id: str | None,
        params: Hashable,
        compute: Callable[[], list[RecommendationCandidate]],
    ) -> list[RecommendationCandidate]:
        """Serve from cache if possible, otherwise compute under the error contract."""
        key = None
        if self.cache is not None:
            key = RecommendationCache.make_key(user_id, strategy.value, params)
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit for {strategy.value} ({user_id})")
                return cached

        try:
            result = compute()
        except NotFound:
            raise
        except UpstreamUnavailable as e:
            logger.warning(f"{strategy.value} recommendations unavailable for {user_id}: {e}")
            return []
        except Exception as e:
            logger.error(f"Error getting {strategy.value} recommendations for {user_id}: {e}", exc_info=True)
            return []

        if key is not None:
            self.cache.set(key, result)
        return result

    def get_collaborative_recommendations(
        self, user_id: str, options: RecommendationOptions | None = None
    ) -> list[RecommendationCandidate]:
        options = options or RecommendationOptions()
        return self._run(
            Strategy.COLLABORATIVE, user_id, options.cache_key(),
            lambda: self.collaborative.recommend(user_id, options, now=self._now()),
        )

    def get_content_based_recommendations(
        self,
        user_id: str,
        options: RecommendationOptions | None = None,
        mode: str = "weighted",
    ) -> list[RecommendationCandidate]:
        options = options or RecommendationOptions()
        return self._run(
            Strategy.CONTENT_BASED, user_id, (mode, options.cache_key()),
            lambda: self.content.recommend(user_id, options, mode=mode, now=self._now()),
        )

    def get_similar_content_recommendations(
        self,
        seed_id: str,
        user_id: str | None = None,
        options: RecommendationOptions | None = None,
    ) -> list[RecommendationCandidate]:
        """
        "Because you watched" recommendations for a seed item.

        Raises:
            NotFound: If the seed item is not in the catalog
        """
        options = options or RecommendationOptions()
        return self._run(
            Strategy.SIMILAR, user_id, (seed_id, options.cache_key()),
            lambda: self.similar.recommend(
                seed_id, user_id=user_id, limit=options.limit, exclude_ids=options.exclude_ids
            ),
        )

    def get_popular_recommendations(
        self,
        options: RecommendationOptions | None = None,
        user_id: str | None = None,
    ) -> list[RecommendationCandidate]:
        """Trending items; when a user is given, items they have seen are left out."""
        options = options or RecommendationOptions()

        def compute():
            seen = set()
            if user_id is not None:
                seen = {r.content_id for r in self.interactions.get_user_interactions(user_id)}
            return self.popularity.recommend(options, now=self._now(), seen=seen)

        return self._run(Strategy.POPULAR, user_id, options.cache_key(), compute)

    def get_discovery_recommendations(
        self, user_id: str, options: RecommendationOptions | None = None
    ) -> list[RecommendationCandidate]:
        options = options or RecommendationOptions()
        return self._run(
            Strategy.DISCOVERY, user_id, options.cache_key(),
            lambda: self.discovery.recommend(user_id, options, now=self._now()),
        )

    def get_personalized_recommendations(
        self, user_id: str, options: RecommendationOptions | None = None
    ) -> list[RecommendationCandidate]:
        """
        Blend collaborative and content-based results for a user.

        Users without any interactions get the popularity feed. Otherwise both
        strategies run concurrently and their candidates are merged, keeping
        the best-scoring entry per item.
        """
        options = options or RecommendationOptions()

        def compute():
            now = self._now()
            if not self.interactions.get_user_interactions(user_id):
                logger.info(f"User {user_id} has no interactions, serving popular items")
                return self.popularity.recommend(options, now=now)

            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                collab_future = executor.submit(self.collaborative.recommend, user_id, options, now)
                content_future = executor.submit(
                    self.content.recommend, user_id, options,
                    require_genre_overlap=False, now=now,
                )
                collab = collab_future.result()
                content = content_future.result()

            logger.debug(
                f"Personalized: {len(collab)} collaborative + {len(content)} content-based for {user_id}"
            )
            return merge_candidates(collab, content, limit=options.limit)

        return self._run(Strategy.PERSONALIZED, user_id, options.cache_key(), compute)

    def get_recommendations(
        self,
        strategy: Strategy | str,
        user_id: str | None = None,
        seed_item_id: str | None = None,
        options: RecommendationOptions | None = None,
    ) -> list[RecommendationCandidate]:
        """
        Dispatch a request to one strategy.

        Raises:
            ValueError: Unknown strategy, or a required user/seed id is missing
            NotFound: The seed item of a "similar" request does not exist
        """
        try:
            strategy = Strategy(strategy)
        except ValueError:
            raise ValueError(f"Unknown strategy: {strategy}") from None

        if strategy in USER_STRATEGIES and not user_id:
            raise ValueError(f"Strategy '{strategy.value}' requires a user_id")

        if strategy == Strategy.PERSONALIZED:
            return self.get_personalized_recommendations(user_id, options)
        if strategy == Strategy.COLLABORATIVE:
            return self.get_collaborative_recommendations(user_id, options)
        if strategy == Strategy.CONTENT_BASED:
            return self.get_content_based_recommendations(user_id, options)
        if strategy == Strategy.DISCOVERY:
            return self.get_discovery_recommendations(user_id, options)
        if strategy == Strategy.POPULAR:
            return self.get_popular_recommendations(options, user_id=user_id)
        if strategy == Strategy.SIMILAR:
            if not seed_item_id:
                raise ValueError("Strategy 'similar' requires a seed_item_id")
            return self.get_similar_content_recommendations(seed_item_id, user_id, options)

        raise ValueError(f"Strategy '{strategy.value}' cannot be requested directly")

    def invalidate_user(self, user_id: str) -> int:
        """Drop cached results for a user after new interactions are recorded."""
        if self.cache is None:
            return 0
        return self.cache.invalidate_user(user_id)

    def serialize(self, candidates: list[RecommendationCandidate]) -> list[dict[str, Any]]:
        """Attach catalog fields to candidates; items no longer in the catalog are dropped."""
        items = {item.id: item for item in self.catalog.get_items_by_ids(c.content_id for c in candidates)}
        results = []
        for candidate in candidates:
            item = items.get(candidate.content_id)
            if item is None:
                logger.debug(f"Dropping {candidate.content_id}: no longer in catalog")
                continue
            results.append({
                **item.to_dict(),
                "recommendationType": candidate.source_type.value,
                "score": candidate.score,
            })
        return results
