import pytest

from media_rec.similarity import find_similar_users, pearson, pearson_from_maps


def test_pearson_is_symmetric():
    v1 = [5.0, 3.0, 4.0, 1.0]
    v2 = [4.0, 2.0, 5.0, 2.0]

    assert pearson(v1, v2) == pytest.approx(pearson(v2, v1))


def test_pearson_degenerate_and_identical_vectors():
    assert pearson([1, 1, 1], [2, 2, 2]) == 0
    assert pearson([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
    assert pearson([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)


def test_pearson_handles_empty_and_mismatched_input():
    assert pearson([], []) == 0.0
    with pytest.raises(ValueError):
        pearson([1, 2], [1, 2, 3])


def test_pearson_from_maps_uses_common_items_only():
    a = {"m1": 5, "m2": 4, "m3": 1, "only-a": 2}
    b = {"m1": 5, "m2": 4, "m3": 1, "only-b": 5}

    coefficient, n_common = pearson_from_maps(a, b)

    assert n_common == 3
    assert coefficient == pytest.approx(1.0)
    assert pearson_from_maps({"x": 1}, {"y": 2}) == (0.0, 0)


def test_peers_with_two_common_items_are_rejected():
    target = {"m1": 5, "m2": 1, "m3": 3}
    peers = {
        "two-common": {"m1": 5, "m2": 1, "other": 4},
        "three-common": {"m1": 5, "m2": 1, "m3": 3},
    }

    edges = find_similar_users(target, peers)

    assert [e.peer_user_id for e in edges] == ["three-common"]


def test_threshold_is_exclusive_and_negative_peers_dropped():
    target = {"m1": 5, "m2": 1, "m3": 3, "m4": 4}
    peers = {
        "opposite": {"m1": 1, "m2": 5, "m3": 3, "m4": 2},
        "aligned": {"m1": 4, "m2": 2, "m3": 3, "m4": 4},
    }

    edges = find_similar_users(target, peers, threshold=0.3)
    assert [e.peer_user_id for e in edges] == ["aligned"]

    # A perfect match does not clear a threshold of exactly 1.0
    assert find_similar_users(target, {"clone": dict(target)}, threshold=1.0) == []


def test_edges_sorted_by_coefficient_and_capped():
    target = {"m1": 5, "m2": 1, "m3": 3, "m4": 4}
    peers = {
        "b-clone": dict(target),
        "a-clone": dict(target),
        "close": {"m1": 4, "m2": 2, "m3": 3, "m4": 5},
    }

    edges = find_similar_users(target, peers, k=2)

    assert [e.peer_user_id for e in edges] == ["a-clone", "b-clone"]
    assert all(e.coefficient == pytest.approx(1.0) for e in edges)


def test_target_never_appears_as_its_own_peer():
    target = {"m1": 5, "m2": 1, "m3": 3}

    edges = find_similar_users(target, {"me": dict(target)}, target_user_id="me")

    assert edges == []
