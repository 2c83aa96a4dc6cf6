import asyncio
import json

import pytest

from agentassist.models.knowledge_models import Chunk, Document
from agentassist.services.embedding_service import EmbeddingTask
from agentassist.services.knowledge_store import KnowledgeStore
from agentassist.services.retrieval_service import RetrievalService
from agentassist.utils.text_utils import cosine_similarity

from conftest import FakeEmbeddingService, unit_vector

QUERY = "how do refunds work"


def build_service(chunks, **embedding_kwargs):
    """chunks: list of (text, score against the query)"""
    vectors = {text: unit_vector(score) for text, score in chunks}
    vectors[QUERY] = [1.0, 0.0]
    embeddings = FakeEmbeddingService(vectors=vectors, **embedding_kwargs)
    store = KnowledgeStore(embeddings, chunk_size=500, chunk_overlap=0)
    for text, _ in chunks:
        asyncio.run(store.ingest(Document(name=f"{text}.txt"), text))
    return RetrievalService(store, threshold=0.45), embeddings


def search(service, query=QUERY, limit=3):
    return asyncio.run(service.search(query, limit))


def test_empty_store_returns_nothing():
    service, embeddings = build_service([])

    assert search(service) == []
    assert embeddings.calls == []


def test_results_below_threshold_are_excluded():
    service, _ = build_service([("weak", 0.40), ("strong", 0.50)])

    results = search(service, limit=1)

    assert [r.text for r in results] == ["strong"]
    assert results[0].score == pytest.approx(0.50)


def test_only_weak_matches_gives_empty_result():
    service, _ = build_service([("weak", 0.40), ("weaker", 0.10)])
    assert search(service) == []


def test_threshold_is_strict():
    service, _ = build_service([("edge", 0.45)])
    service.threshold = cosine_similarity([1.0, 0.0], unit_vector(0.45))
    assert search(service) == []


def test_results_sorted_by_score_descending():
    service, _ = build_service([("medium", 0.6), ("best", 0.9), ("low", 0.2)])

    results = search(service, limit=5)

    assert [r.text for r in results] == ["best", "medium"]
    assert [round(r.score, 6) for r in results] == [0.9, 0.6]
    assert results[0].doc_name == "best.txt"


def test_limit_caps_result_count():
    service, _ = build_service([("a", 0.9), ("b", 0.8), ("c", 0.7), ("d", 0.6)])
    assert len(search(service, limit=2)) == 2


def test_ties_keep_insertion_order():
    service, _ = build_service([("first", 0.7), ("second", 0.7), ("third", 0.7)])

    results = search(service)

    assert [r.text for r in results] == ["first", "second", "third"]


def test_query_is_embedded_with_query_intent():
    service, embeddings = build_service([("doc", 0.9)])

    search(service)

    assert embeddings.calls[-1] == (QUERY, EmbeddingTask.QUERY)


def test_query_embedding_failure_returns_empty():
    service, _ = build_service([("doc", 0.9)], fail_queries=True)
    assert search(service) == []


def test_blank_query_and_zero_limit_return_empty():
    service, _ = build_service([("doc", 0.9)])

    assert search(service, query="   ") == []
    assert search(service, limit=0) == []


def test_zero_vector_chunks_are_skipped():
    service, _ = build_service([("doc", 0.9)])
    service.store.embedding_service.vectors["blank"] = [0.0, 0.0]
    asyncio.run(service.store.ingest(Document(name="blank.txt"), "blank"))

    assert [r.text for r in search(service)] == ["doc"]


def test_query_with_other_dimension_matches_nothing():
    service, _ = build_service([("doc", 0.9)])
    service.store.embedding_service.vectors[QUERY] = [1.0, 0.0, 0.0]

    assert search(service) == []


def test_mixed_dimension_snapshot_returns_only_matching_chunks(tmp_path):
    db_path = tmp_path / "knowledge.json"
    chunks = [
        Chunk(doc_id="d1", doc_name="flat.txt", chunk_index=0, text="flat", embedding=unit_vector(0.9)),
        Chunk(doc_id="d2", doc_name="deep.txt", chunk_index=0, text="deep", embedding=[1.0, 0.0, 0.0]),
    ]
    db_path.write_text(
        json.dumps({"documents": [], "chunks": [c.model_dump() for c in chunks]}),
        encoding="utf-8",
    )
    embeddings = FakeEmbeddingService(vectors={QUERY: [1.0, 0.0]})
    service = RetrievalService(KnowledgeStore(embeddings, db_path=db_path), threshold=0.45)

    results = search(service)

    assert [r.text for r in results] == ["flat"]
