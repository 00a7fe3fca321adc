"""Embedding model adapters.

An adapter maps text to a fixed-length float32 vector. Its dimension is fixed
for its lifetime and must match any vector store it writes into.
"""
from typing import Optional, Protocol, runtime_checkable
import httpx
import numpy as np
import structlog

from ragchain import config
from ragchain.errors import BackendFailureError
from ragchain.llm_client import OllamaClient, OpenAIClient, lookup

logger = structlog.get_logger()

# Text embedded once to discover a model's output dimension
DIMENSION_SAMPLE = "test"


@runtime_checkable
class EmbeddingModel(Protocol):
    """Anything that can turn text into a fixed-length vector."""

    @property
    def dimension(self) -> int:
        ...

    def embed(self, text: str) -> np.ndarray:
        ...


def to_vector(values) -> np.ndarray:
    """Convert a sequence of numbers to a 1-D float32 vector."""
    return np.asarray(values, dtype=np.float32).reshape(-1)


class _RemoteEmbeddingModel:
    """Shared dimension detection for HTTP-backed adapters."""

    backend_name = "embedding"

    def __init__(self, model: str, dimension: Optional[int] = None):
        self.model = model
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        """Embedding dimension, detected by embedding a sample string once."""
        if self._dimension is None:
            logger.info("detecting_embedding_dimension", model=self.model)
            self._dimension = len(self._embed(DIMENSION_SAMPLE))
            logger.info("embedding_dimension_detected", dimension=self._dimension)
        return self._dimension

    def embed(self, text: str) -> np.ndarray:
        """Embed text.

        Raises:
            BackendFailureError: If the backend call fails or returns nothing
        """
        vector = self._embed(text)
        if self._dimension is None:
            self._dimension = len(vector)
        return vector

    def _embed(self, text: str) -> np.ndarray:
        try:
            values = self._request(text)
        except httpx.HTTPError as e:
            raise BackendFailureError(self.backend_name, "embed", str(e)) from e

        if values is not None and not isinstance(values, list):
            raise BackendFailureError(self.backend_name, "embed", "malformed response")
        if not values:
            raise BackendFailureError(
                self.backend_name, "embed", "empty embedding returned"
            )
        try:
            return to_vector(values)
        except (TypeError, ValueError) as e:
            raise BackendFailureError(
                self.backend_name, "embed", f"malformed response: {e}"
            ) from e

    def _request(self, text: str):
        raise NotImplementedError


class OllamaEmbeddingModel(_RemoteEmbeddingModel):
    """Embeddings from an Ollama server."""

    backend_name = "ollama"

    def __init__(
        self,
        model: str = None,
        client: Optional[OllamaClient] = None,
        dimension: Optional[int] = None,
    ):
        super().__init__(model or config.EMBEDDING_MODEL, dimension)
        self.client = client or OllamaClient()

    def _request(self, text: str):
        response = self.client.embeddings(prompt=text, model=self.model)
        return lookup(response, "embedding")


class OpenAIEmbeddingModel(_RemoteEmbeddingModel):
    """Embeddings from an OpenAI-compatible API."""

    backend_name = "openai"

    def __init__(
        self,
        model: str = None,
        client: Optional[OpenAIClient] = None,
        dimension: Optional[int] = None,
    ):
        super().__init__(model or config.EMBEDDING_MODEL, dimension)
        self.client = client or OpenAIClient()

    def _request(self, text: str):
        response = self.client.embeddings(text=text, model=self.model)
        return lookup(response, "data", 0, "embedding")
