from datetime import datetime

import pytest

from media_rec import collaborative
from media_rec.collaborative import CollaborativeRecommender, collaborative_route
from media_rec.engine import RecommendationEngine
from media_rec.models import (
    ContentItem,
    InteractionKind,
    InteractionRecord,
    MediaType,
    RecommendationOptions,
    SourceType,
    Strategy,
    WatchStatus,
)
from media_rec.similarity import pearson
from media_rec.stores import InMemoryCatalog, InMemoryInteractionLog

NOW = datetime(2024, 6, 1)


def _item(item_id, genres=("drama",)):
    return ContentItem(item_id, MediaType.MOVIE, title=item_id.title(), genre_ids=genres)


def _rate(user, item, value):
    return InteractionRecord(user, item, InteractionKind.RATE, value=value)


def _completed(user, item, ts=NOW):
    return InteractionRecord(user, item, InteractionKind.LIST_STATUS, status=WatchStatus.COMPLETED, timestamp=ts)


def _stores():
    catalog = InMemoryCatalog(
        [_item(i) for i in ("m1", "m2", "m3", "x1", "x2", "x3")]
        + [_item("comedy-pick", genres=("comedy",))]
    )
    log = InMemoryInteractionLog([
        _rate("u", "m1", 5), _rate("u", "m2", 1), _rate("u", "m3", 4),
        # Identical taste to u
        _rate("p", "m1", 5), _rate("p", "m2", 1), _rate("p", "m3", 4),
        _rate("p", "x1", 5), _rate("p", "x2", 4), _rate("p", "x3", 3),
        _rate("p", "comedy-pick", 5),
        # Similar but not identical taste
        _rate("q", "m1", 4), _rate("q", "m2", 2), _rate("q", "m3", 5),
        _rate("q", "x1", 4),
        # Opposite taste
        _rate("r", "m1", 1), _rate("r", "m2", 5), _rate("r", "m3", 1),
        _rate("r", "x3", 5),
    ])
    return catalog, log


def test_collaborative_route_thresholds():
    assert collaborative_route(0) == Strategy.POPULAR
    assert collaborative_route(2) == Strategy.POPULAR
    assert collaborative_route(3) == Strategy.COLLABORATIVE


def test_scores_accumulate_across_peers():
    catalog, log = _stores()
    rec = CollaborativeRecommender(catalog, log)

    results = rec.recommend("u", RecommendationOptions(limit=10), now=NOW)
    scores = {c.content_id: c.score for c in results}

    q_coef = pearson([5, 1, 4], [4, 2, 5])
    assert scores["x1"] == pytest.approx(1.0 * (5 / 5) + q_coef * (4 / 5))
    assert scores["x2"] == pytest.approx(4 / 5)
    # Peer rating of 3 is ignored; r is anti-correlated so never a peer
    assert "x3" not in scores
    assert not {"m1", "m2", "m3"} & set(scores)
    assert all(c.source_type == SourceType.COLLABORATIVE for c in results)
    assert [c.content_id for c in results][0] == "x1"


def test_include_genres_and_exclusions_filter_results():
    catalog, log = _stores()
    rec = CollaborativeRecommender(catalog, log)

    comedy = rec.recommend("u", RecommendationOptions(include_genres={"comedy"}), now=NOW)
    assert [c.content_id for c in comedy] == ["comedy-pick"]

    without_x1 = rec.recommend("u", RecommendationOptions(exclude_ids={"x1"}), now=NOW)
    assert "x1" not in {c.content_id for c in without_x1}


def test_no_similar_users_returns_empty():
    catalog = InMemoryCatalog([_item(i) for i in ("m1", "m2", "m3", "x1")])
    log = InMemoryInteractionLog([
        _rate("u", "m1", 5), _rate("u", "m2", 1), _rate("u", "m3", 4),
        _rate("loner", "x1", 5),
    ])

    assert CollaborativeRecommender(catalog, log).recommend("u", RecommendationOptions(), now=NOW) == []


def test_cold_start_matches_popular_output():
    catalog, log = _stores()
    for user in ("fan1", "fan2"):
        log.append(_completed(user, "x3"))
    log.append(_completed("fan1", "x2"))
    log.append(_rate("newbie", "x2", 5))
    log.append(_rate("newbie", "m1", 4))

    engine = RecommendationEngine(catalog, log, clock=lambda: NOW)
    options = RecommendationOptions(limit=5, timeframe="week")

    collab = engine.get_collaborative_recommendations("newbie", options)
    popular = engine.get_popular_recommendations(options, user_id="newbie")

    assert collab == popular
    assert collab[0].content_id == "x3"
    assert {"x2", "m1"}.isdisjoint(c.content_id for c in collab)


def test_cold_start_user_without_history_gets_global_popular():
    catalog, log = _stores()
    log.append(_completed("fan1", "x2"))

    engine = RecommendationEngine(catalog, log, clock=lambda: NOW)
    options = RecommendationOptions(limit=3)

    assert engine.get_collaborative_recommendations("stranger", options) == engine.get_popular_recommendations(options)


class RecordingCatalog(InMemoryCatalog):
    def __init__(self, items):
        super().__init__(items)
        self.batches = []

    def get_items_by_ids(self, item_ids):
        item_ids = list(item_ids)
        self.batches.append(item_ids)
        return super().get_items_by_ids(item_ids)


def _wide_stores():
    _, log = _stores()
    extras = [_item(f"y{i:02d}") for i in range(30)] + [_item("zz-comedy", genres=("comedy",))]
    catalog = RecordingCatalog(
        [_item(i) for i in ("m1", "m2", "m3", "x1", "x2", "x3")]
        + [_item("comedy-pick", genres=("comedy",))]
        + extras
    )
    for item in extras:
        log.append(_rate("p", item.id, 4))
    return catalog, log


def test_catalog_lookups_stop_once_limit_is_filled(monkeypatch):
    monkeypatch.setattr(collaborative, "POOL_MULTIPLIER", 1)
    catalog, log = _wide_stores()

    results = CollaborativeRecommender(catalog, log).recommend("u", RecommendationOptions(limit=2), now=NOW)

    assert [c.content_id for c in results] == ["x1", "comedy-pick"]
    assert catalog.batches == [["x1", "comedy-pick"]]


def test_catalog_lookups_are_batched_when_filters_reject_top_items(monkeypatch):
    monkeypatch.setattr(collaborative, "POOL_MULTIPLIER", 3)
    catalog, log = _wide_stores()

    results = CollaborativeRecommender(catalog, log).recommend(
        "u", RecommendationOptions(limit=1, include_genres={"comedy"}, exclude_ids={"comedy-pick"}), now=NOW,
    )

    assert [(c.content_id, c.score) for c in results] == [("zz-comedy", pytest.approx(0.8))]
    assert len(catalog.batches) > 1
    assert all(len(batch) <= 3 for batch in catalog.batches)
