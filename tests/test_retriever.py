"""Tests for retrieval, grounded answering and the store cache."""
import pytest

from ragchain.errors import BlankInputError, ConfigurationError, NotFoundError
from ragchain.rag.models import SourceKind
from ragchain.rag.retriever import Retriever, StoreCache, build_prompt, resolve_min_score
from ragchain.rag.store_faiss import FAISSVectorStore

SKY_QUESTION = "What color is the sky?"


@pytest.fixture
def filled_store(pipeline, store, docs_dir):
    pipeline.ingest_folder(docs_dir, SourceKind.TEXT, store)
    return store


@pytest.fixture
def retriever(embedding_model, chat_model):
    return Retriever(embedding_model, chat_model)


def test_relevant_segment_ranks_first(retriever, filled_store):
    retrieval = retriever.retrieve(SKY_QUESTION, filled_store, max_results=3, min_score=0.0)

    assert len(retrieval.sources) == 3
    assert retrieval.sources[0].segment.metadata["file_name"] == "sky.txt"
    scores = [source.score for source in retrieval.sources]
    assert scores == sorted(scores, reverse=True)


def test_min_score_filters_weak_matches(retriever, filled_store):
    retrieval = retriever.retrieve(SKY_QUESTION, filled_store, max_results=3, min_score=0.5)

    assert [s.segment.metadata["file_name"] for s in retrieval.sources] == ["sky.txt"]
    assert retrieval.information == "The sky is blue. Clouds drift across the sky."


def test_information_joins_sources_with_blank_lines(retriever, filled_store):
    retrieval = retriever.retrieve(SKY_QUESTION, filled_store, max_results=2, min_score=0.0)

    assert retrieval.information == "\n\n".join(s.text for s in retrieval.sources)


def test_unset_min_score_uses_default(retriever, filled_store):
    retrieval = retriever.retrieve(SKY_QUESTION, filled_store)

    assert retrieval.min_score == 0.7
    assert retrieval.max_results == 3
    assert all(source.score >= 0.7 for source in retrieval.sources)


@pytest.mark.parametrize("min_score", [1.5, -1.01])
def test_min_score_out_of_range(retriever, filled_store, min_score):
    with pytest.raises(ConfigurationError):
        retriever.retrieve(SKY_QUESTION, filled_store, min_score=min_score)


def test_resolve_min_score():
    assert resolve_min_score(None) == 0.7
    assert resolve_min_score(0.0) == 0.0
    assert resolve_min_score(-1.0) == -1.0


@pytest.mark.parametrize("question", ["", "   "])
def test_blank_question_is_rejected(retriever, filled_store, embedding_model, question):
    calls_before = embedding_model.calls

    with pytest.raises(BlankInputError):
        retriever.retrieve(question, filled_store)
    assert embedding_model.calls == calls_before


def test_answer_reports_sources_and_usage(retriever, filled_store, chat_model):
    answer = retriever.answer(SKY_QUESTION, filled_store, max_results=3, min_score=0.5)

    assert answer.text == "reply 1"
    assert answer.token_usage.total_tokens == 18
    [call] = chat_model.calls
    assert call["prompt"] == build_prompt(
        SKY_QUESTION, "The sky is blue. Clouds drift across the sky."
    )
    assert call["prior_messages"] == []

    result = answer.to_dict()
    assert result["response"] == "reply 1"
    assert result["token_usage"] == {
        "prompt_tokens": 11,
        "completion_tokens": 7,
        "total_tokens": 18,
    }
    [source] = result["sources"]
    assert source["file_name"] == "sky.txt"
    assert source["full_path"].endswith("sky.txt")
    assert source["url"] is None
    assert source["score"] >= 0.5


def test_unrelated_question_still_reaches_backend(retriever, filled_store, chat_model):
    question = "How do rockets reach orbit?"

    answer = retriever.answer(question, filled_store, max_results=3, min_score=0.99)

    assert answer.sources == []
    assert answer.text == "reply 1"
    assert chat_model.calls[0]["prompt"] == build_prompt(question, "")


def test_answer_requires_chat_model(embedding_model, filled_store):
    with pytest.raises(ConfigurationError):
        Retriever(embedding_model).answer(SKY_QUESTION, filled_store)


def test_empty_store_answers_without_context(retriever, chat_model):
    answer = retriever.answer(SKY_QUESTION, FAISSVectorStore(), min_score=-1.0)

    assert answer.sources == []
    assert chat_model.calls[0]["prompt"].endswith("information:\n")


class TestStoreCache:
    def test_reuses_store_until_marked_stale(self, filled_store, store_path):
        filled_store.serialize(store_path)
        cache = StoreCache()

        first = cache.get(store_path, get_latest=False)
        assert cache.get(store_path, get_latest=False) is first

        cache.mark_stale(store_path)
        reloaded = cache.get(store_path, get_latest=False)
        assert reloaded is not first
        assert len(reloaded) == len(filled_store)

    def test_get_latest_always_reloads(self, filled_store, store_path):
        filled_store.serialize(store_path)
        cache = StoreCache()

        first = cache.get(store_path)

        assert cache.get(store_path) is not first

    def test_other_path_does_not_invalidate(self, filled_store, store_path, tmp_path):
        filled_store.serialize(store_path)
        cache = StoreCache()
        first = cache.get(store_path, get_latest=False)

        cache.mark_stale(tmp_path / "other.store")

        assert cache.get(store_path, get_latest=False) is first

    def test_switching_paths_reloads(self, filled_store, store_path, tmp_path):
        other_path = tmp_path / "other.store"
        filled_store.serialize(store_path)
        FAISSVectorStore().serialize(other_path)
        cache = StoreCache()

        cache.get(store_path, get_latest=False)
        other = cache.get(other_path, get_latest=False)

        assert len(other) == 0

    def test_missing_snapshot(self, tmp_path):
        with pytest.raises(NotFoundError):
            StoreCache().get(tmp_path / "missing.store")
