"""Pytest configuration and fixtures for ragchain tests."""
import re
from typing import Dict, List, Optional

import numpy as np
import pytest

from ragchain.errors import BackendFailureError
from ragchain.operations import OperationContext
from ragchain.rag.chunker import TextSplitter
from ragchain.rag.ingest import IngestPipeline
from ragchain.rag.models import ChatMessage, Completion, TokenUsage
from ragchain.rag.store_faiss import FAISSVectorStore

WORD_PATTERN = re.compile(r"[a-z0-9]+")

# Shared across instances so that every model maps a word to the same slot
_VOCABULARY: Dict[str, int] = {}


class BagOfWordsEmbeddingModel:
    """Deterministic bag-of-words embedding: each distinct word gets one dimension."""

    def __init__(self, dimension: int = 1024):
        self._dimension = dimension
        self.calls = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> np.ndarray:
        self.calls += 1
        vector = np.zeros(self._dimension, dtype=np.float32)
        for word in WORD_PATTERN.findall(text.lower()):
            slot = _VOCABULARY.setdefault(word, len(_VOCABULARY))
            vector[slot % self._dimension] += 1.0
        return vector


class RecordingChatModel:
    """Completion backend that records its calls and replies from a script."""

    def __init__(self, replies: Optional[List[str]] = None, usage: TokenUsage = None):
        self.replies = list(replies or [])
        self.usage = usage or TokenUsage(prompt_tokens=11, completion_tokens=7)
        self.calls = []

    def generate(self, prompt: str, prior_messages: Optional[List[ChatMessage]] = None):
        self.calls.append({"prompt": prompt, "prior_messages": list(prior_messages or [])})
        text = self.replies.pop(0) if self.replies else f"reply {len(self.calls)}"
        return Completion(text=text, token_usage=self.usage)


class FailingChatModel:
    """Completion backend that always fails."""

    def generate(self, prompt, prior_messages=None):
        raise BackendFailureError("fake", "chat", "connection refused")


def make_pdf(path, text: str) -> None:
    """Write a one-page PDF that shows text in Helvetica."""
    stream = f"BT /F1 12 Tf 72 712 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Resources << /Font << /F1 5 0 R >> >> /Contents 4 0 R >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref_offset,
    )
    path.write_bytes(bytes(out))


@pytest.fixture
def embedding_model():
    return BagOfWordsEmbeddingModel()


@pytest.fixture
def chat_model():
    return RecordingChatModel()


@pytest.fixture
def char_splitter():
    """Splitter measuring size in characters."""
    return TextSplitter(chunk_size=200, chunk_overlap=20, length_function=len)


@pytest.fixture
def pipeline(char_splitter, embedding_model):
    return IngestPipeline(char_splitter, embedding_model)


@pytest.fixture
def store():
    return FAISSVectorStore()


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "docs.store"


@pytest.fixture
def docs_dir(tmp_path):
    """Directory with three text files (one nested) and one empty file."""
    root = tmp_path / "docs"
    (root / "nested").mkdir(parents=True)
    (root / "sky.txt").write_text("The sky is blue. Clouds drift across the sky.")
    (root / "grass.txt").write_text("The grass is green. Cows eat the grass.")
    (root / "nested" / "sea.txt").write_text("The sea is deep. Fish swim in the sea.")
    (root / "empty.txt").write_text("   \n")
    return root


@pytest.fixture
def operation_context(embedding_model, chat_model):
    return OperationContext(
        embedding_model=embedding_model,
        chat_model=chat_model,
        length_function=len,
    )
