import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from .models import (
    ContentItem,
    InteractionKind,
    InteractionRecord,
    UserHistory,
    WatchStatus,
)
from .config import (
    FAVORITE_MIN_RATING,
    DEFAULT_COMPLETED_RATING,
    STATUS_WEIGHT_COMPLETED,
    STATUS_WEIGHT_OTHER,
    DISCOVERY_TOP_GENRES,
)

logger = logging.getLogger(__name__)


@dataclass
class UserPreferences:
    """Aggregated attribute preferences from a user's favorite items."""
    user_id: str
    n_favorites: int = 0

    # Weighted sums of rating * status weight
    genres: dict[str, float] = field(default_factory=dict)
    directors: dict[str, float] = field(default_factory=dict)
    actors: dict[str, float] = field(default_factory=dict)

    # Favorite occurrence counts
    genre_counts: dict[str, int] = field(default_factory=dict)
    director_counts: dict[str, int] = field(default_factory=dict)
    actor_counts: dict[str, int] = field(default_factory=dict)

    # Genre weights normalized to sum to 1
    genre_vector: dict[str, float] = field(default_factory=dict)

    @property
    def has_signal(self) -> bool:
        return self.n_favorites > 0


def _record_order(indexed: tuple[int, InteractionRecord]) -> tuple:
    index, record = indexed
    # Untimestamped records sort first; log order breaks ties
    ts = record.timestamp or datetime.min
    return (record.timestamp is not None, ts, index)


def build_history(user_id: str, interactions: list[InteractionRecord]) -> UserHistory:
    """
    Fold a user's interaction log into their latest rating and status per item.

    When an item has several rate or list_status records the most recent
    one wins.
    """
    history = UserHistory(user_id=user_id)

    for _, record in sorted(enumerate(interactions), key=_record_order):
        if record.user_id != user_id:
            continue
        history.seen.add(record.content_id)

        if record.kind == InteractionKind.RATE and record.value is not None:
            history.ratings[record.content_id] = float(record.value)
        elif record.kind == InteractionKind.LIST_STATUS and record.status is not None:
            history.statuses[record.content_id] = WatchStatus(record.status)

    return history


def favorite_weights(history: UserHistory) -> dict[str, float]:
    """
    Return content_id -> weight for every favorite item.

    Favorites are items rated >= 4.0 or marked completed. A completed item
    without a rating counts with the default rating.
    """
    weights: dict[str, float] = {}
    for content_id in sorted(set(history.ratings) | set(history.statuses)):
        rating = history.ratings.get(content_id)
        status = history.statuses.get(content_id)
        completed = status == WatchStatus.COMPLETED

        if not completed and (rating is None or rating < FAVORITE_MIN_RATING):
            continue

        if rating is None:
            rating = DEFAULT_COMPLETED_RATING
        status_weight = STATUS_WEIGHT_COMPLETED if completed else STATUS_WEIGHT_OTHER
        weights[content_id] = rating * status_weight

    return weights


def _normalize(weights: dict[str, float]) -> dict[str, float]:
    total = sum(w for w in weights.values() if w > 0)
    if total <= 0:
        return {}
    return {key: w / total for key, w in weights.items() if w > 0}


def build_preferences(history: UserHistory, items: dict[str, ContentItem]) -> UserPreferences:
    """
    Build weighted genre/director/actor maps from the user's favorites.

    Args:
        history: Folded interaction history
        items: content_id -> ContentItem for (at least) the favorite items

    Returns:
        UserPreferences; empty when the user has no favorites in the catalog
    """
    prefs = UserPreferences(user_id=history.user_id)

    genres: dict[str, float] = defaultdict(float)
    directors: dict[str, float] = defaultdict(float)
    actors: dict[str, float] = defaultdict(float)
    genre_counts: dict[str, int] = defaultdict(int)
    director_counts: dict[str, int] = defaultdict(int)
    actor_counts: dict[str, int] = defaultdict(int)

    for content_id, weight in favorite_weights(history).items():
        item = items.get(content_id)
        if item is None:
            logger.debug(f"Favorite {content_id} missing from catalog, skipping")
            continue

        prefs.n_favorites += 1
        for genre in item.genre_ids:
            genres[genre] += weight
            genre_counts[genre] += 1
        for director in item.director_ids:
            directors[director] += weight
            director_counts[director] += 1
        for actor in item.actor_ids:
            actors[actor] += weight
            actor_counts[actor] += 1

    prefs.genres = dict(genres)
    prefs.directors = dict(directors)
    prefs.actors = dict(actors)
    prefs.genre_counts = dict(genre_counts)
    prefs.director_counts = dict(director_counts)
    prefs.actor_counts = dict(actor_counts)
    prefs.genre_vector = _normalize(prefs.genres)

    return prefs


def load_user_preferences(user_id: str, catalog, interactions) -> tuple[UserPreferences, set[str]]:
    """
    Derive a user's preferences from the stores on every call.

    Returns:
        (UserPreferences, ids of every item the user has interacted with)
    """
    history = build_history(user_id, interactions.get_user_interactions(user_id))
    favorites = catalog.get_items_by_ids(sorted(favorite_weights(history)))
    prefs = build_preferences(history, {item.id: item for item in favorites})
    return prefs, history.seen


def preferred_genres(prefs: UserPreferences, n: int = DISCOVERY_TOP_GENRES) -> list[str]:
    """Top-n genres by weight; ties broken by genre id."""
    ranked = sorted(prefs.genres.items(), key=lambda x: (-x[1], x[0]))
    return [genre for genre, weight in ranked[:n] if weight > 0]
