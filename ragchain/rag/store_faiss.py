"""FAISS vector store for semantic search.

Handles:
- Record bookkeeping (store-assigned ids, segments, raw vectors)
- Exact cosine similarity search over an inner-product index
- Dimension checking
- Single-file snapshot persistence
"""
import json
import os
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple, Optional, Dict, Any, Iterator, Union
import numpy as np
import faiss
import structlog

from ragchain.errors import (
    ConfigurationError,
    CorruptSnapshotError,
    DimensionMismatchError,
    NotFoundError,
)
from ragchain.rag.models import TextSegment

logger = structlog.get_logger()

SNAPSHOT_FORMAT = "ragchain.vector-store.v1"

PathLike = Union[str, Path]


@dataclass(frozen=True)
class EmbeddingRecord:
    """A stored vector with the segment it was computed from."""

    id: str
    vector: np.ndarray
    segment: TextSegment


class FAISSVectorStore:
    """In-memory vector store with exact cosine search and file snapshots."""

    def __init__(self, dimension: Optional[int] = None):
        """Initialize an empty vector store.

        Args:
            dimension: Vector dimension (fixed by the first added vector if omitted)
        """
        self.dimension: Optional[int] = None
        self.index: Optional[faiss.Index] = None
        self._records: List[EmbeddingRecord] = []

        if dimension is not None:
            self._init_index(dimension)

    def _init_index(self, dimension: int) -> None:
        if dimension <= 0:
            raise ConfigurationError(f"Dimension must be positive, got {dimension}")
        self.dimension = dimension
        # Inner product over L2-normalised vectors is cosine similarity
        self.index = faiss.IndexFlatIP(dimension)
        logger.debug("faiss_index_initialized", dimension=dimension)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> Iterator[EmbeddingRecord]:
        return iter(self._records)

    def _check_dimension(self, vector: np.ndarray) -> None:
        if self.dimension is not None and vector.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, vector.shape[0])

    @staticmethod
    def _normalized(vector: np.ndarray) -> np.ndarray:
        matrix = np.array([vector], dtype=np.float32)
        faiss.normalize_L2(matrix)
        return matrix

    def add(
        self, vector, segment: TextSegment, record_id: Optional[str] = None
    ) -> str:
        """Add a vector and its segment.

        Args:
            vector: Embedding vector
            segment: Segment the vector was computed from
            record_id: Explicit id (only used when restoring snapshots)

        Returns:
            The record id

        Raises:
            DimensionMismatchError: If the vector size differs from the store's
        """
        vector = np.asarray(vector, dtype=np.float32).reshape(-1)
        if self.index is None:
            self._init_index(vector.shape[0])
        self._check_dimension(vector)

        record = EmbeddingRecord(
            id=record_id if record_id is not None else uuid.uuid4().hex,
            vector=vector,
            segment=segment,
        )
        self.index.add(self._normalized(vector))
        self._records.append(record)
        return record.id

    def add_all(self, vectors: List[Any], segments: List[TextSegment]) -> List[str]:
        """Add several vectors, checking every dimension before adding any."""
        if len(vectors) != len(segments):
            raise ValueError(
                f"Got {len(vectors)} vectors for {len(segments)} segments"
            )
        arrays = [np.asarray(v, dtype=np.float32).reshape(-1) for v in vectors]
        expected = self.dimension
        for array in arrays:
            if expected is None:
                expected = array.shape[0]
            if array.shape[0] != expected:
                raise DimensionMismatchError(expected, array.shape[0])

        ids = [self.add(array, segment) for array, segment in zip(arrays, segments)]
        logger.info("vectors_added", count=len(ids), total_vectors=len(self))
        return ids

    def find_relevant(
        self, query_vector, max_results: int, min_score: float = -1.0
    ) -> List[Tuple[TextSegment, float]]:
        """Find the segments most similar to a query vector.

        Args:
            query_vector: Query embedding
            max_results: Maximum number of matches to return
            min_score: Lowest cosine similarity to keep

        Returns:
            (segment, score) pairs, highest score first, earlier records first on ties

        Raises:
            ConfigurationError: If max_results is not positive
            DimensionMismatchError: If the query size differs from the store's
        """
        if max_results <= 0:
            raise ConfigurationError(
                f"max_results must be positive, got {max_results}"
            )
        if not self._records:
            return []

        query = np.asarray(query_vector, dtype=np.float32).reshape(-1)
        self._check_dimension(query)

        total = len(self._records)
        scores, positions = self.index.search(self._normalized(query), total)

        matches = [
            (int(position), float(score))
            for position, score in zip(positions[0].tolist(), scores[0].tolist())
            if position >= 0 and score >= min_score
        ]
        matches.sort(key=lambda m: (-m[1], m[0]))

        results = [
            (self._records[position].segment, score)
            for position, score in matches[:max_results]
        ]

        logger.info(
            "vector_search_completed",
            max_results=max_results,
            min_score=min_score,
            results_found=len(results),
        )
        return results

    def to_snapshot(self) -> Dict[str, Any]:
        """Build the JSON-serialisable snapshot of every record."""
        return {
            "format": SNAPSHOT_FORMAT,
            "dimension": self.dimension,
            "records": [
                {
                    "id": record.id,
                    "embedding": [float(x) for x in record.vector],
                    "text": record.segment.text,
                    "metadata": dict(record.segment.metadata),
                }
                for record in self._records
            ],
        }

    def serialize(self, path: PathLike) -> None:
        """Write the store to a single snapshot file.

        The file is written to a temporary sibling and renamed into place.

        Raises:
            NotFoundError: If the parent directory does not exist
        """
        path = Path(path)
        if not path.parent.exists():
            raise NotFoundError("Store directory", path.parent)

        payload = json.dumps(self.to_snapshot(), sort_keys=True, separators=(",", ":"))

        fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.info("store_serialized", path=str(path), vector_count=len(self))

    @classmethod
    def from_snapshot(cls, data: Any, path: PathLike = "<memory>") -> "FAISSVectorStore":
        """Rebuild a store from a parsed snapshot.

        Raises:
            CorruptSnapshotError: If the snapshot is malformed
        """
        if not isinstance(data, dict) or data.get("format") != SNAPSHOT_FORMAT:
            raise CorruptSnapshotError(path, "unrecognised snapshot format")

        dimension = data.get("dimension")
        records = data.get("records")
        if not isinstance(records, list):
            raise CorruptSnapshotError(path, "missing record list")
        if dimension is not None and (not isinstance(dimension, int) or dimension <= 0):
            raise CorruptSnapshotError(path, f"invalid dimension {dimension!r}")

        store = cls(dimension=dimension)
        seen = set()
        for position, raw in enumerate(records):
            try:
                record_id = raw["id"]
                vector = np.asarray(raw["embedding"], dtype=np.float32)
                segment = TextSegment(text=raw["text"], metadata=dict(raw["metadata"]))
            except (KeyError, TypeError, ValueError) as e:
                raise CorruptSnapshotError(path, f"bad record {position}: {e}") from e

            if not isinstance(record_id, str) or not record_id or record_id in seen:
                raise CorruptSnapshotError(path, f"bad record id at {position}")
            if vector.ndim != 1 or vector.shape[0] != store.dimension:
                raise CorruptSnapshotError(
                    path, f"record {position} does not match dimension {dimension}"
                )
            seen.add(record_id)
            store.add(vector, segment, record_id=record_id)

        return store

    @classmethod
    def load(cls, path: PathLike) -> "FAISSVectorStore":
        """Load a store from a snapshot file.

        Raises:
            NotFoundError: If the file does not exist
            CorruptSnapshotError: If the file cannot be parsed
        """
        path = Path(path)
        if not path.is_file():
            raise NotFoundError("Store snapshot", path)

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorruptSnapshotError(path, str(e)) from e

        store = cls.from_snapshot(data, path)

        logger.info(
            "store_loaded",
            path=str(path),
            dimension=store.dimension,
            vector_count=len(store),
        )
        return store

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store.

        Returns:
            Dictionary with store statistics
        """
        return {
            "initialized": self.index is not None,
            "vector_count": len(self),
            "dimension": self.dimension,
        }


def create_store(path: PathLike, dimension: Optional[int] = None) -> FAISSVectorStore:
    """Create an empty store and write its snapshot to path."""
    store = FAISSVectorStore(dimension=dimension)
    store.serialize(path)
    logger.info("store_created", path=str(path))
    return store
