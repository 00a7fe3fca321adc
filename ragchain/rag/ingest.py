"""Ingest pipeline for adding documents to a vector store.

Orchestrates:
- Document loading (text, PDF, URL)
- Text splitting
- Embedding generation
- Vector storage
- Folder walking with per-file failure isolation
"""
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Callable, List, Optional, Union
import structlog

from ragchain.errors import (
    BlankInputError,
    DimensionMismatchError,
    DocumentLoadError,
    NotFoundError,
    UnsupportedSourceKindError,
)
from ragchain.rag.chunker import TextSplitter
from ragchain.rag.embeddings import EmbeddingModel
from ragchain.rag.loader import DocumentLoader
from ragchain.rag.models import Document, SourceKind
from ragchain.rag.store_faiss import FAISSVectorStore

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int, Path], None]


@dataclass
class IngestResult:
    """Outcome of ingesting one source."""

    source: str
    source_kind: str
    segments_added: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FolderIngestResult:
    """Outcome of ingesting a directory tree."""

    folder: str
    source_kind: str
    files_found: int = 0
    files_processed: int = 0
    files_ingested: int = 0
    files_skipped: int = 0
    segments_added: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class IngestPipeline:
    """Pipeline for loading, splitting and embedding sources into a store."""

    def __init__(
        self,
        splitter: TextSplitter,
        embedding_model: EmbeddingModel,
        loader: Optional[DocumentLoader] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            splitter: Splitter applied to every loaded document
            embedding_model: Adapter producing segment vectors
            loader: Document loader (default: DocumentLoader())
        """
        self.splitter = splitter
        self.embedding_model = embedding_model
        self.loader = loader or DocumentLoader()

        logger.debug(
            "ingest_pipeline_initialized",
            chunk_size=splitter.chunk_size,
            chunk_overlap=splitter.chunk_overlap,
        )

    def ingest(self, document: Document, store: FAISSVectorStore) -> int:
        """Split, embed and store an already loaded document.

        Every segment is embedded before any is added, so a failure leaves the
        store untouched.

        Returns:
            Number of segments added

        Raises:
            BlankInputError: If the document is blank
            DimensionMismatchError: If the adapter's vectors do not fit the store
            BackendFailureError: If embedding fails
        """
        segments = self.splitter.split(document)

        if store.dimension is not None and self.embedding_model.dimension != store.dimension:
            raise DimensionMismatchError(store.dimension, self.embedding_model.dimension)

        vectors = [self.embedding_model.embed(segment.text) for segment in segments]
        store.add_all(vectors, segments)
        return len(segments)

    def ingest_document(
        self,
        source: Union[str, Path],
        source_kind,
        store: FAISSVectorStore,
    ) -> IngestResult:
        """Load a single file or URL and add it to the store.

        Args:
            source: File path or URL
            source_kind: SourceKind (or its name)
            store: Store receiving the segments

        Returns:
            IngestResult with the number of segments added
        """
        kind = SourceKind.parse(source_kind)
        logger.info("ingesting_document", source=str(source), source_kind=kind.value)

        document = self.loader.load(source, kind)
        added = self.ingest(document, store)

        logger.info("document_ingested", source=str(source), segments_added=added)
        return IngestResult(
            source=str(source), source_kind=kind.value, segments_added=added
        )

    def discover_files(self, folder: Path) -> List[Path]:
        """Discover all regular files below folder, in a stable order.

        Raises:
            NotFoundError: If the folder doesn't exist
        """
        if not folder.is_dir():
            raise NotFoundError("Folder", folder)

        files = sorted(p for p in folder.rglob("*") if p.is_file())
        logger.info("files_discovered", count=len(files), folder=str(folder))
        return files

    def ingest_folder(
        self,
        folder: Union[str, Path],
        source_kind,
        store: FAISSVectorStore,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> FolderIngestResult:
        """Ingest every file in a directory tree.

        Blank or unparseable files are logged and skipped; other errors fail
        the call. Files ingested before a failure stay in the store.

        Args:
            folder: Directory to walk recursively
            source_kind: TEXT or PDF
            store: Store receiving the segments
            progress_callback: Optional callback function(current, total, file_path)

        Returns:
            FolderIngestResult with found/processed/ingested/skipped counts
        """
        kind = SourceKind.parse(source_kind)
        if kind is SourceKind.URL:
            raise UnsupportedSourceKindError(
                kind.value, details={"reason": "folders contain files, not URLs"}
            )

        folder = Path(folder)
        files = self.discover_files(folder)
        result = FolderIngestResult(
            folder=str(folder), source_kind=kind.value, files_found=len(files)
        )

        for idx, file_path in enumerate(files, 1):
            if progress_callback:
                progress_callback(idx, len(files), file_path)

            logger.info("processing_file", number=idx, file_name=file_path.name)
            result.files_processed += 1
            try:
                document = self.loader.load(file_path, kind)
                added = self.ingest(document, store)
            except (BlankInputError, DocumentLoadError) as e:
                logger.warning(
                    "file_skipped",
                    path=str(file_path),
                    error_kind=e.kind,
                    error=str(e),
                )
                result.files_skipped += 1
                continue

            result.files_ingested += 1
            result.segments_added += added

        logger.info("folder_ingested", **result.to_dict())
        return result
