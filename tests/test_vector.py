import pytest

from rynk.services.vector import cosine_similarity, search_embeddings


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([0, 0], [1, 1]) == 0.0


def test_dimension_mismatch_raises():
    with pytest.raises(ValueError):
        cosine_similarity([1, 2], [1, 2, 3])


def test_search_embeddings_ranks_and_filters():
    rows = [
        {"id": "far", "vector": [0, 1]},
        {"id": "close", "vector": [1, 0.1]},
        {"id": "mid", "vector": [1, 1]},
        {"id": "wrong-dim", "vector": [1, 0, 0]},
    ]
    ranked = search_embeddings([1, 0], rows, limit=5, min_score=0.3)
    assert [r["id"] for r in ranked] == ["close", "mid"]
    assert ranked[0]["score"] > ranked[1]["score"]


def test_search_embeddings_limit():
    rows = [{"id": str(i), "vector": [1, i / 10]} for i in range(5)]
    assert len(search_embeddings([1, 0], rows, limit=2)) == 2
