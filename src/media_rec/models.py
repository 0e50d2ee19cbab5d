"""Data model shared by every recommendation strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from .config import DEFAULT_LIMIT


class InteractionKind(str, Enum):
    VIEW = "view"
    RATE = "rate"
    LIST_STATUS = "list_status"
    COMMENT = "comment"


class WatchStatus(str, Enum):
    WATCHING = "watching"
    COMPLETED = "completed"
    PLAN_TO_WATCH = "plan_to_watch"
    DROPPED = "dropped"


class MediaType(str, Enum):
    MOVIE = "movie"
    SHOW = "show"


class Timeframe(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


class SourceType(str, Enum):
    """Strategy that produced a candidate."""

    COLLABORATIVE = "collaborative"
    CONTENT_BASED = "content_based"
    SIMILAR = "similar"
    DISCOVERY = "discovery"
    POPULAR = "popular"

    @property
    def priority(self) -> int:
        """Lower value wins when two sources tie on score."""
        return _SOURCE_PRIORITY[self]


_SOURCE_PRIORITY = {
    SourceType.COLLABORATIVE: 0,
    SourceType.CONTENT_BASED: 1,
    SourceType.SIMILAR: 2,
    SourceType.DISCOVERY: 3,
    SourceType.POPULAR: 4,
}


class Strategy(str, Enum):
    """Strategies a caller can request, plus the internal fallback routes."""

    PERSONALIZED = "personalized"
    COLLABORATIVE = "collaborative"
    CONTENT_BASED = "content_based"
    SIMILAR = "similar"
    POPULAR = "popular"
    DISCOVERY = "discovery"
    INVERSE_POPULARITY = "inverse_popularity"


@dataclass(frozen=True)
class InteractionRecord:
    """A single append-only entry in the interaction log."""

    user_id: str
    content_id: str
    kind: InteractionKind
    value: float | None = None
    status: WatchStatus | None = None
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ContentItem:
    """Catalog snapshot of a movie or show."""

    id: str
    media_type: MediaType
    title: str = ""
    genre_ids: frozenset[str] = frozenset()
    director_ids: frozenset[str] = frozenset()
    actor_ids: frozenset[str] = frozenset()
    average_rating: float = 0.0
    release_date: date | None = None

    def __post_init__(self) -> None:
        # Accept any iterable for attribute sets
        for name in ("genre_ids", "director_ids", "actor_ids"):
            value = getattr(self, name)
            if not isinstance(value, frozenset):
                object.__setattr__(self, name, frozenset(value or ()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mediaType": self.media_type.value,
            "title": self.title,
            "genreIds": sorted(self.genre_ids),
            "directorIds": sorted(self.director_ids),
            "actorIds": sorted(self.actor_ids),
            "averageRating": self.average_rating,
            "releaseDate": self.release_date.isoformat() if self.release_date else None,
        }


@dataclass(frozen=True)
class SimilarityEdge:
    """Peer user and their correlation with the target user (request-scoped)."""

    peer_user_id: str
    coefficient: float


@dataclass(frozen=True)
class RecommendationCandidate:
    content_id: str
    score: float
    source_type: SourceType

    def sort_key(self) -> tuple[float, str]:
        return (-self.score, self.content_id)


@dataclass(frozen=True)
class RecommendationOptions:
    limit: int = DEFAULT_LIMIT
    timeframe: Timeframe = Timeframe.MONTH
    exclude_ids: frozenset[str] = frozenset()
    include_genres: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")
        object.__setattr__(self, "timeframe", Timeframe(self.timeframe))
        object.__setattr__(self, "exclude_ids", frozenset(self.exclude_ids or ()))
        object.__setattr__(self, "include_genres", frozenset(self.include_genres or ()))

    def cache_key(self) -> tuple:
        return (
            self.limit,
            self.timeframe.value,
            tuple(sorted(self.exclude_ids)),
            tuple(sorted(self.include_genres)),
        )


@dataclass
class UserHistory:
    """Latest rating/status per item plus everything the user has touched."""

    user_id: str
    ratings: dict[str, float] = field(default_factory=dict)
    statuses: dict[str, WatchStatus] = field(default_factory=dict)
    seen: set[str] = field(default_factory=set)

    @property
    def n_ratings(self) -> int:
        return len(self.ratings)


def rank_candidates(candidates: list[RecommendationCandidate]) -> list[RecommendationCandidate]:
    """Sort by score descending, then content id, for reproducible output."""
    return sorted(candidates, key=RecommendationCandidate.sort_key)
