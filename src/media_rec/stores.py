"""
Collaborator interfaces consumed by the engine, plus in-memory implementations.

The engine only reads through these methods; it never writes to either store.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol, Sequence

from .models import (
    ContentItem,
    InteractionKind,
    InteractionRecord,
    MediaType,
    WatchStatus,
)

logger = logging.getLogger(__name__)

ORDERINGS = ("id", "rating")


@dataclass(frozen=True)
class ItemFilter:
    """
    Catalog query filter.

    Attribute filters match items whose set intersects the given ids;
    ``None`` disables a filter. Results come back ordered by ``order_by``:
    "id" ascending, or "rating" (average rating descending, then id).
    """

    genre_ids: frozenset[str] | None = None
    director_ids: frozenset[str] | None = None
    actor_ids: frozenset[str] | None = None
    min_rating: float | None = None
    exclude_ids: frozenset[str] = frozenset()
    media_type: MediaType | None = None
    order_by: str = "id"

    def __post_init__(self) -> None:
        if self.order_by not in ORDERINGS:
            raise ValueError(f"Unknown ordering: {self.order_by} (expected one of {ORDERINGS})")

    def matches(self, item: ContentItem) -> bool:
        if item.id in self.exclude_ids:
            return False
        if self.media_type is not None and item.media_type != self.media_type:
            return False
        if self.min_rating is not None and item.average_rating < self.min_rating:
            return False
        if self.genre_ids is not None and not (item.genre_ids & self.genre_ids):
            return False
        if self.director_ids is not None and not (item.director_ids & self.director_ids):
            return False
        if self.actor_ids is not None and not (item.actor_ids & self.actor_ids):
            return False
        return True

    def sort_key(self, item: ContentItem) -> tuple:
        if self.order_by == "rating":
            return (-item.average_rating, item.id)
        return (item.id,)


class CatalogService(Protocol):
    def get_item_by_id(self, item_id: str) -> ContentItem | None: ...

    def get_items_by_ids(self, item_ids: Iterable[str]) -> list[ContentItem]: ...

    def query_items(self, item_filter: ItemFilter, limit: int | None = None) -> list[ContentItem]: ...

    def get_all_genres(self) -> set[str]: ...


class InteractionLogStore(Protocol):
    def get_user_interactions(
        self, user_id: str, kinds: Sequence[InteractionKind] | None = None
    ) -> list[InteractionRecord]: ...

    def get_interactions_for_items(
        self, item_ids: Iterable[str], kinds: Sequence[InteractionKind] | None = None
    ) -> list[InteractionRecord]: ...

    def count_completed_since(self, item_id: str, since: datetime | None) -> int: ...

    def count_completed_by_item(self, since: datetime | None) -> dict[str, int]: ...


class InMemoryCatalog:
    """Dict-backed catalog."""

    def __init__(self, items: Iterable[ContentItem] = ()):
        self._items: dict[str, ContentItem] = {item.id: item for item in items}

    def get_item_by_id(self, item_id: str) -> ContentItem | None:
        return self._items.get(item_id)

    def get_items_by_ids(self, item_ids: Iterable[str]) -> list[ContentItem]:
        return [self._items[i] for i in dict.fromkeys(item_ids) if i in self._items]

    def query_items(self, item_filter: ItemFilter, limit: int | None = None) -> list[ContentItem]:
        results = sorted(
            (item for item in self._items.values() if item_filter.matches(item)),
            key=item_filter.sort_key,
        )
        return results if limit is None else results[:limit]

    def get_all_genres(self) -> set[str]:
        genres: set[str] = set()
        for item in self._items.values():
            genres.update(item.genre_ids)
        return genres


def _completed_since(record: InteractionRecord, since: datetime | None) -> bool:
    if record.kind != InteractionKind.LIST_STATUS or record.status != WatchStatus.COMPLETED:
        return False
    # Untimestamped completions only count for the unbounded window
    return since is None or (record.timestamp is not None and record.timestamp >= since)


class InMemoryInteractionLog:
    """List-backed append-only interaction log."""

    def __init__(self, records: Iterable[InteractionRecord] = ()):
        self._records: list[InteractionRecord] = []
        self._by_user: dict[str, list[InteractionRecord]] = defaultdict(list)
        self._by_item: dict[str, list[InteractionRecord]] = defaultdict(list)
        for record in records:
            self.append(record)

    def append(self, record: InteractionRecord) -> None:
        self._records.append(record)
        self._by_user[record.user_id].append(record)
        self._by_item[record.content_id].append(record)

    def get_user_interactions(
        self, user_id: str, kinds: Sequence[InteractionKind] | None = None
    ) -> list[InteractionRecord]:
        records = self._by_user.get(user_id, [])
        if kinds is None:
            return list(records)
        wanted = set(kinds)
        return [r for r in records if r.kind in wanted]

    def get_interactions_for_items(
        self, item_ids: Iterable[str], kinds: Sequence[InteractionKind] | None = None
    ) -> list[InteractionRecord]:
        wanted = set(kinds) if kinds is not None else None
        results = []
        for item_id in dict.fromkeys(item_ids):
            for record in self._by_item.get(item_id, []):
                if wanted is None or record.kind in wanted:
                    results.append(record)
        return results

    def count_completed_since(self, item_id: str, since: datetime | None) -> int:
        return sum(1 for record in self._by_item.get(item_id, []) if _completed_since(record, since))

    def count_completed_by_item(self, since: datetime | None) -> dict[str, int]:
        """Completions per item inside the window; items without any are omitted."""
        counts: dict[str, int] = defaultdict(int)
        for record in self._records:
            if _completed_since(record, since):
                counts[record.content_id] += 1
        return dict(counts)
