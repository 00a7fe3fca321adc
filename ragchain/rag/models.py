"""Data types shared by the RAG pipeline and conversation memory."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any

from ragchain.errors import UnsupportedSourceKindError

# Metadata keys attached to documents and their segments
FILE_NAME = "file_name"
FULL_PATH = "full_path"
ABSOLUTE_DIRECTORY_PATH = "absolute_directory_path"
URL = "url"
SEGMENT_INDEX = "index"


class SourceKind(str, Enum):
    """Kinds of source the ingestion pipeline accepts."""

    TEXT = "text"
    PDF = "pdf"
    URL = "url"

    @classmethod
    def parse(cls, value: Any) -> "SourceKind":
        """Resolve a SourceKind from an enum member or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise UnsupportedSourceKindError(value)


class Role(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Document:
    """Raw text extracted from one source plus string metadata."""

    text: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TextSegment:
    """A piece of a document; the unit of embedding and retrieval."""

    text: str
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "metadata": dict(self.metadata)}


@dataclass(frozen=True)
class ChatMessage:
    """A role-tagged message in a conversation."""

    role: Role
    text: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "ChatMessage":
        return cls(role=Role(data["role"]), text=data["text"])


@dataclass
class TokenUsage:
    """Token accounting reported by a completion backend.

    Fields are None when the backend does not report them.
    """

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    def __post_init__(self):
        if (
            self.total_tokens is None
            and self.prompt_tokens is not None
            and self.completion_tokens is not None
        ):
            self.total_tokens = self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> Dict[str, Optional[int]]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class Completion:
    """Text produced by a completion backend."""

    text: str
    token_usage: TokenUsage = field(default_factory=TokenUsage)


def messages_to_payload(messages: List[ChatMessage]) -> List[Dict[str, str]]:
    """Convert chat messages to the role/content dicts chat APIs expect."""
    return [{"role": m.role.value, "content": m.text} for m in messages]
