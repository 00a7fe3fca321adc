"""Retrieval-augmented question answering over a vector store.

Handles:
- Query embedding generation
- Vector search with result and score bounds
- Grounding-context assembly
- Completion backend invocation and source/token reporting
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Dict, Any, Optional, Union
import structlog

from ragchain import config
from ragchain.chat_models import ChatModel
from ragchain.errors import BlankInputError, ConfigurationError
from ragchain.rag.embeddings import EmbeddingModel
from ragchain.rag.models import (
    TextSegment,
    TokenUsage,
    FILE_NAME,
    FULL_PATH,
    ABSOLUTE_DIRECTORY_PATH,
    URL,
)
from ragchain.rag.store_faiss import FAISSVectorStore

logger = structlog.get_logger()

CONTEXT_SEPARATOR = "\n\n"

PROMPT_TEMPLATE = "{question}\n\nAnswer using the following information:\n{context}"


@dataclass
class RetrievedSource:
    """A retrieved segment with its similarity score."""

    segment: TextSegment
    score: float

    @property
    def text(self) -> str:
        return self.segment.text

    def to_dict(self) -> Dict[str, Any]:
        metadata = self.segment.metadata
        return {
            "file_name": metadata.get(FILE_NAME),
            "full_path": metadata.get(FULL_PATH),
            "absolute_directory_path": metadata.get(ABSOLUTE_DIRECTORY_PATH),
            "url": metadata.get(URL),
            "score": self.score,
            "text": self.segment.text,
        }


@dataclass
class Retrieval:
    """Segments found for a question and the context built from them."""

    question: str
    sources: List[RetrievedSource]
    max_results: int
    min_score: float

    @property
    def information(self) -> str:
        return CONTEXT_SEPARATOR.join(source.text for source in self.sources)


@dataclass
class Answer:
    """A grounded answer with its sources and token accounting."""

    text: str
    sources: List[RetrievedSource]
    token_usage: TokenUsage = field(default_factory=TokenUsage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.text,
            "sources": [source.to_dict() for source in self.sources],
            "token_usage": self.token_usage.to_dict(),
        }


class StoreCache:
    """Holds the most recently loaded store for one caller scope.

    A cached store is reused until it is marked stale, a different path is
    requested, or the caller asks for the latest snapshot.
    """

    def __init__(self):
        self._path: Optional[Path] = None
        self._store: Optional[FAISSVectorStore] = None
        self.stale = True

    def get(self, path: Union[str, Path], get_latest: bool = True) -> FAISSVectorStore:
        """Return the store for path, reloading it from disk when needed."""
        path = Path(path)
        if get_latest or self.stale or self._store is None or self._path != path:
            self._store = FAISSVectorStore.load(path)
            self._path = path
            self.stale = False
            logger.debug("store_cache_reloaded", path=str(path))
        return self._store

    def mark_stale(self, path: Union[str, Path] = None) -> None:
        """Force the next get() to reload (only if path matches, when given)."""
        if path is None or self._path == Path(path):
            self.stale = True


def resolve_min_score(min_score: Optional[float]) -> float:
    """Apply the default score floor and validate the range."""
    if min_score is None:
        min_score = config.DEFAULT_MIN_SCORE
    if not -1.0 <= min_score <= 1.0:
        raise ConfigurationError(f"min_score must be within [-1, 1], got {min_score}")
    return min_score


class Retriever:
    """Semantic retriever and answer generator for the RAG pipeline."""

    def __init__(
        self,
        embedding_model: EmbeddingModel,
        chat_model: Optional[ChatModel] = None,
        max_results: int = None,
    ):
        """Initialize the retriever.

        Args:
            embedding_model: Adapter used to embed questions
            chat_model: Completion backend (required for answer())
            max_results: Default number of results (default from config)
        """
        self.embedding_model = embedding_model
        self.chat_model = chat_model
        self.max_results = max_results or config.RETRIEVAL_MAX_RESULTS

    def retrieve(
        self,
        question: str,
        store: FAISSVectorStore,
        max_results: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> Retrieval:
        """Retrieve the segments most relevant to a question.

        Args:
            question: User question
            store: Store to search
            max_results: Maximum results (default: retriever default)
            min_score: Minimum cosine similarity (None: config.DEFAULT_MIN_SCORE)

        Returns:
            Retrieval with sources sorted by relevance (best first)

        Raises:
            BlankInputError: If the question is blank
            ConfigurationError: If the bounds are invalid
            BackendFailureError: If embedding the question fails
        """
        if not question or not question.strip():
            raise BlankInputError("Question is blank")

        max_results = self.max_results if max_results is None else max_results
        min_score = resolve_min_score(min_score)

        logger.info(
            "retrieval_started",
            question_length=len(question),
            max_results=max_results,
            min_score=min_score,
        )

        query_vector = self.embedding_model.embed(question)
        matches = store.find_relevant(query_vector, max_results, min_score)
        sources = [RetrievedSource(segment=s, score=score) for s, score in matches]

        logger.info(
            "retrieval_completed",
            results_returned=len(sources),
            top_score=sources[0].score if sources else None,
        )
        return Retrieval(
            question=question,
            sources=sources,
            max_results=max_results,
            min_score=min_score,
        )

    def answer(
        self,
        question: str,
        store: FAISSVectorStore,
        max_results: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> Answer:
        """Answer a question grounded in the store's most relevant segments.

        The backend is invoked even when nothing clears min_score; it then
        receives an empty context.

        Returns:
            Answer with response text, sources and token usage
        """
        if self.chat_model is None:
            raise ConfigurationError("A chat model is required to answer questions")

        retrieval = self.retrieve(question, store, max_results, min_score)
        prompt = build_prompt(question, retrieval.information)

        completion = self.chat_model.generate(prompt)

        logger.info(
            "answer_generated",
            sources=len(retrieval.sources),
            context_length=len(retrieval.information),
            response_length=len(completion.text),
            total_tokens=completion.token_usage.total_tokens,
        )
        return Answer(
            text=completion.text,
            sources=retrieval.sources,
            token_usage=completion.token_usage,
        )


def build_prompt(question: str, context: str) -> str:
    """Combine a question with its grounding context."""
    return PROMPT_TEMPLATE.format(question=question, context=context)
