"""Hybrid merge and deduplication of candidate lists."""

from __future__ import annotations

from typing import Iterable

from .models import RecommendationCandidate, rank_candidates


def _preference_key(candidate: RecommendationCandidate) -> tuple[float, int]:
    # Higher score first, then the higher-priority source
    return (-candidate.score, candidate.source_type.priority)


def merge_candidates(
    *candidate_lists: Iterable[RecommendationCandidate],
    limit: int | None = None,
) -> list[RecommendationCandidate]:
    """
    Merge candidate lists, keeping one entry per content id.

    Duplicates keep the highest score; equal scores keep the source with the
    higher priority (collaborative > content_based > similar > discovery >
    popular). The result is sorted by score descending, then content id, and
    does not depend on the order of the input lists.
    """
    best: dict[str, RecommendationCandidate] = {}
    for candidates in candidate_lists:
        for candidate in candidates:
            current = best.get(candidate.content_id)
            if current is None or _preference_key(candidate) < _preference_key(current):
                best[candidate.content_id] = candidate

    merged = rank_candidates(list(best.values()))
    return merged if limit is None else merged[:limit]
