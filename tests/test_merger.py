from media_rec.merger import merge_candidates
from media_rec.models import RecommendationCandidate, SourceType


def _cand(content_id, score, source):
    return RecommendationCandidate(content_id, score, source)


def test_duplicate_keeps_highest_score():
    merged = merge_candidates(
        [_cand("A", 10, SourceType.COLLABORATIVE)],
        [_cand("A", 7, SourceType.CONTENT_BASED)],
    )

    assert merged == [_cand("A", 10, SourceType.COLLABORATIVE)]


def test_equal_scores_keep_higher_priority_source():
    merged = merge_candidates(
        [_cand("A", 5, SourceType.POPULAR)],
        [_cand("A", 5, SourceType.SIMILAR)],
        [_cand("A", 5, SourceType.DISCOVERY)],
    )

    assert merged == [_cand("A", 5, SourceType.SIMILAR)]


def test_result_independent_of_input_order():
    first = [_cand("A", 3, SourceType.CONTENT_BASED), _cand("B", 9, SourceType.POPULAR)]
    second = [_cand("A", 3, SourceType.COLLABORATIVE), _cand("C", 9, SourceType.SIMILAR)]

    forward = merge_candidates(first, second)
    backward = merge_candidates(second, first)

    assert forward == backward
    assert [c.content_id for c in forward] == ["B", "C", "A"]
    assert forward[2].source_type == SourceType.COLLABORATIVE


def test_limit_and_empty_inputs():
    lists = [[_cand(str(i), float(i), SourceType.POPULAR) for i in range(5)]]

    assert [c.content_id for c in merge_candidates(*lists, limit=2)] == ["4", "3"]
    assert merge_candidates() == []
    assert merge_candidates([], []) == []
