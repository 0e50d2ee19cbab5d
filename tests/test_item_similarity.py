import pytest

from media_rec.errors import NotFound
from media_rec.item_similarity import SimilarItemsRecommender, item_similarity_score
from media_rec.models import ContentItem, InteractionKind, InteractionRecord, MediaType, SourceType
from media_rec.stores import InMemoryCatalog, InMemoryInteractionLog


def _item(item_id, genres=(), directors=(), actors=(), media_type=MediaType.MOVIE):
    return ContentItem(item_id, media_type, genre_ids=genres, director_ids=directors, actor_ids=actors)


SEED = _item("seed", genres={"action", "scifi"}, directors={"d1"}, actors={"a1", "a2", "a3"})


def test_score_components_for_close_match():
    candidate = _item("cand", genres={"action", "scifi"}, directors={"d1"}, actors={"a1", "a2", "z9"})

    sim = item_similarity_score(SEED, candidate)

    assert sim.genre_score == pytest.approx(50.0)
    assert sim.director_bonus == pytest.approx(30.0)
    assert sim.actor_score == pytest.approx(40.0 / 3)
    assert sim.total == pytest.approx(93.33, abs=0.01)


def test_actor_points_are_capped():
    candidate = _item("cand", actors={"a1", "a2", "a3"})
    seed = _item("seed", actors={"a1", "a2", "a3", "a4"})

    assert item_similarity_score(seed, candidate).actor_score == pytest.approx(20.0)


def test_seed_without_genres_scores_zero_genre_points():
    seed = _item("seed", directors={"d1"})
    assert item_similarity_score(seed, _item("c", genres={"drama"}, directors={"d1"})).total == pytest.approx(30.0)


def test_recommend_filters_threshold_media_type_and_seen():
    catalog = InMemoryCatalog([
        SEED,
        _item("close", genres={"action", "scifi"}, directors={"d1"}, actors={"a1", "a2"}),
        _item("half-genre", genres={"action"}, directors={"d1"}),
        _item("weak", genres={"action"}),
        _item("show-twin", genres={"action", "scifi"}, directors={"d1"}, media_type=MediaType.SHOW),
        _item("watched", genres={"action", "scifi"}, directors={"d1"}),
        _item("no-genre-overlap", genres={"romance"}, directors={"d1"}, actors={"a1", "a2", "a3"}),
    ])
    log = InMemoryInteractionLog([InteractionRecord("u", "watched", InteractionKind.VIEW)])

    results = SimilarItemsRecommender(catalog, log).recommend("seed", user_id="u")

    assert [c.content_id for c in results] == ["close", "half-genre"]
    assert results[1].score == pytest.approx(55.0)
    assert all(c.source_type == SourceType.SIMILAR for c in results)


def test_threshold_is_inclusive():
    catalog = InMemoryCatalog([SEED, _item("exactly-50", genres={"action", "scifi"})])

    results = SimilarItemsRecommender(catalog, InMemoryInteractionLog()).recommend("seed")

    assert [(c.content_id, c.score) for c in results] == [("exactly-50", 50.0)]


def test_missing_seed_raises_not_found():
    rec = SimilarItemsRecommender(InMemoryCatalog([SEED]), InMemoryInteractionLog())

    with pytest.raises(NotFound) as exc:
        rec.recommend("missing")

    assert exc.value.code == "not_found"
