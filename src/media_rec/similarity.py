"""
User-user similarity over sparse rating vectors.

Peers must share a minimum number of co-rated items before a Pearson
correlation is computed over those items.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.sparse import csr_matrix

from .config import MAX_PEERS, MIN_COMMON_ITEMS, SIMILARITY_THRESHOLD
from .models import SimilarityEdge

logger = logging.getLogger(__name__)


def pearson(v1: Sequence[float], v2: Sequence[float]) -> float:
    """
    Pearson correlation between two equal-length vectors.

    Returns 0.0 for empty or zero-variance input instead of raising.
    The result is clipped to [-1, 1] to absorb floating point drift.
    """
    a = np.asarray(v1, dtype=np.float64)
    b = np.asarray(v2, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Vectors must have the same length ({a.size} != {b.size})")
    if a.size == 0:
        return 0.0

    da = a - a.mean()
    db = b - b.mean()

    numerator = float(np.dot(da, db))
    denominator = float(np.sqrt(np.dot(da, da) * np.dot(db, db)))
    if denominator == 0:
        return 0.0

    return float(np.clip(numerator / denominator, -1.0, 1.0))


def pearson_from_maps(ratings_a: dict[str, float], ratings_b: dict[str, float]) -> tuple[float, int]:
    """
    Correlate two content_id -> rating maps over their common items.

    Returns:
        (coefficient, number of common items)
    """
    common = sorted(set(ratings_a) & set(ratings_b))
    if not common:
        return 0.0, 0
    coefficient = pearson(
        [ratings_a[c] for c in common],
        [ratings_b[c] for c in common],
    )
    return coefficient, len(common)


def _overlap_counts(target_ratings: dict[str, float], peers: list[str],
                    peer_ratings: dict[str, dict[str, float]]) -> np.ndarray:
    """
    Count co-rated items between the target and each peer.

    Builds a binary peers x items CSR matrix restricted to the target's items
    and multiplies it by the target's indicator vector.
    """
    item_index = {content_id: idx for idx, content_id in enumerate(sorted(target_ratings))}

    rows: list[int] = []
    cols: list[int] = []
    for row, peer in enumerate(peers):
        for content_id in peer_ratings[peer]:
            col = item_index.get(content_id)
            if col is not None:
                rows.append(row)
                cols.append(col)

    shape = (len(peers), len(item_index))
    overlap_matrix = csr_matrix(
        (np.ones(len(rows), dtype=np.float32), (rows, cols)),
        shape=shape,
    )
    # Duplicate (row, col) pairs are summed by scipy; clamp back to binary
    overlap_matrix.data[:] = 1.0

    target_vec = np.ones(len(item_index), dtype=np.float32)
    return np.asarray(overlap_matrix @ target_vec).ravel()


def find_similar_users(
    target_ratings: dict[str, float],
    peer_ratings: dict[str, dict[str, float]],
    min_common: int = MIN_COMMON_ITEMS,
    threshold: float = SIMILARITY_THRESHOLD,
    k: int = MAX_PEERS,
    target_user_id: str | None = None,
) -> list[SimilarityEdge]:
    """
    Find the peers whose ratings correlate with the target's.

    Args:
        target_ratings: Target user's content_id -> rating
        peer_ratings: peer_user_id -> (content_id -> rating)
        min_common: Peers with fewer co-rated items are rejected
        threshold: Minimum coefficient (exclusive)
        k: Maximum number of peers returned
        target_user_id: Skipped if present in peer_ratings

    Returns:
        SimilarityEdges sorted by coefficient descending, then peer id
    """
    peers = sorted(p for p in peer_ratings if p != target_user_id)
    if not target_ratings or not peers:
        return []

    overlaps = _overlap_counts(target_ratings, peers, peer_ratings)

    edges: list[SimilarityEdge] = []
    for peer, overlap in zip(peers, overlaps):
        if overlap < min_common:
            continue
        coefficient, _ = pearson_from_maps(target_ratings, peer_ratings[peer])
        if coefficient > threshold:
            edges.append(SimilarityEdge(peer_user_id=peer, coefficient=coefficient))

    edges.sort(key=lambda e: (-e.coefficient, e.peer_user_id))
    logger.debug(f"Similarity: {len(edges)}/{len(peers)} peers above threshold {threshold}")
    return edges[:k]
