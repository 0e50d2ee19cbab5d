"""
Configuration constants for the media recommendation engine.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables where noted.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_number(key, default, min_val, cast):
    """Read a numeric override, clamping to ``min_val`` and falling back on junk."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        val = cast(raw)
    except ValueError:
        logger.warning(f"Ignoring {key}='{raw}', keeping default {default}")
        return default
    if val < min_val:
        logger.warning(f"Clamping {key}={val} up to {min_val}")
        return min_val
    return val


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    return _env_number(key, default, min_val, float)


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    return _env_number(key, default, min_val, int)


# Database Configuration (SQLite collaborator)
DB_PATH = Path(os.environ.get("MEDIA_REC_DB", "data/media_rec.db"))

# User-User Similarity
SIMILARITY_THRESHOLD = _get_float_env("MEDIA_REC_SIMILARITY_THRESHOLD", 0.3, min_val=-1.0)
MIN_COMMON_ITEMS = _get_int_env("MEDIA_REC_MIN_COMMON_ITEMS", 3, min_val=1)
MAX_PEERS = _get_int_env("MEDIA_REC_MAX_PEERS", 10, min_val=1)

# Collaborative Filtering
COLLAB_MIN_RATINGS = 3       # Below this the user is cold-start
COLLAB_MIN_PEER_RATING = 4.0  # Only peer ratings at or above this count
RATING_SCALE_MAX = 5.0

# Favorites / Preference Extraction
FAVORITE_MIN_RATING = 4.0
DEFAULT_COMPLETED_RATING = 3.5  # Rating assumed for completed-but-unrated items
STATUS_WEIGHT_COMPLETED = 1.0
STATUS_WEIGHT_OTHER = 0.8

# Content-Attribute Scoring (per favorite occurrence)
CONTENT_WEIGHTS = {
    'genre': 8.0,
    'director': 15.0,
    'actor': 6.0,
}

# Per-class score caps for content scoring (None = unbounded)
ATTRIBUTE_CAPS = {
    'genre': None,
    'director': 45.0,  # three favorite-director occurrences
    'actor': 30.0,     # five favorite-actor occurrences
}

# Item-Item ("because you watched") Scoring, absolute 0-100 scale
SIMILAR_GENRE_POINTS = 50.0
SIMILAR_DIRECTOR_BONUS = 30.0
SIMILAR_ACTOR_POINTS = 20.0
SIMILAR_ACTOR_FULL_MATCH = 3  # Shared actors needed for full actor points
SIMILAR_MIN_SCORE = 50.0

# Discovery
DISCOVERY_TOP_GENRES = 5
DISCOVERY_MIN_RATING = 4.0

# Popularity windows in days (None = all time)
TIMEFRAME_DAYS = {
    'week': 7,
    'month': 30,
    'year': 365,
    'all': None,
}

# Request Defaults
DEFAULT_LIMIT = 10
# Candidate pool fetched per request is limit * POOL_MULTIPLIER
POOL_MULTIPLIER = _get_int_env("MEDIA_REC_POOL_MULTIPLIER", 20, min_val=1)
MAX_WORKERS = _get_int_env("MEDIA_REC_MAX_WORKERS", 2, min_val=1)

# Result Cache
CACHE_TTL_SECONDS = _get_float_env("MEDIA_REC_CACHE_TTL", 300.0, min_val=0.0)
CACHE_MAX_ENTRIES = _get_int_env("MEDIA_REC_CACHE_MAX_ENTRIES", 1000, min_val=1)
