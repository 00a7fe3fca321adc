"""Completion backends: prompt (plus prior messages) in, text out."""
from enum import Enum
from typing import Any, List, Optional, Protocol, runtime_checkable
import httpx
import structlog

from ragchain import config
from ragchain.errors import BackendFailureError, ConfigurationError
from ragchain.llm_client import OllamaClient, OpenAIClient, lookup
from ragchain.rag.embeddings import (
    EmbeddingModel,
    OllamaEmbeddingModel,
    OpenAIEmbeddingModel,
)
from ragchain.rag.models import (
    ChatMessage,
    Completion,
    Role,
    TokenUsage,
    messages_to_payload,
)

logger = structlog.get_logger()


class LLMProvider(str, Enum):
    """Model providers a backend can be created for."""

    OLLAMA = "ollama"
    OPENAI = "openai"

    @classmethod
    def parse(cls, value: Any) -> "LLMProvider":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unsupported LLM provider: {value}") from None


@runtime_checkable
class ChatModel(Protocol):
    """A completion backend."""

    def generate(
        self, prompt: str, prior_messages: Optional[List[ChatMessage]] = None
    ) -> Completion:
        ...


def _build_messages(
    prompt: str, prior_messages: Optional[List[ChatMessage]]
) -> List[dict]:
    messages = list(prior_messages or [])
    messages.append(ChatMessage(Role.USER, prompt))
    return messages_to_payload(messages)


def reply_text(backend: str, content: Any) -> str:
    """Validate the text extracted from a chat reply."""
    if content is not None and not isinstance(content, str):
        raise BackendFailureError(backend, "chat", "malformed response")
    if not content:
        raise BackendFailureError(backend, "chat", "empty response")
    return content


def token_count(value: Any) -> Optional[int]:
    """A reported token counter, or None when absent or not an integer."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


class OllamaChatModel:
    """Chat completions from an Ollama server."""

    backend_name = "ollama"

    def __init__(
        self,
        model: str = None,
        client: Optional[OllamaClient] = None,
        temperature: Optional[float] = None,
    ):
        self.model = model or config.CHAT_MODEL
        self.client = client or OllamaClient()
        self.temperature = config.TEMPERATURE if temperature is None else temperature

    def generate(
        self, prompt: str, prior_messages: Optional[List[ChatMessage]] = None
    ) -> Completion:
        """Generate a reply to prompt, continuing prior_messages.

        Raises:
            BackendFailureError: If the request fails or the reply is empty
        """
        messages = _build_messages(prompt, prior_messages)
        try:
            data = self.client.chat(
                messages, model=self.model, temperature=self.temperature
            )
        except httpx.HTTPError as e:
            raise BackendFailureError(self.backend_name, "chat", str(e)) from e

        text = reply_text(self.backend_name, lookup(data, "message", "content"))
        usage = TokenUsage(
            prompt_tokens=token_count(data.get("prompt_eval_count")),
            completion_tokens=token_count(data.get("eval_count")),
        )
        return Completion(text=text, token_usage=usage)


class OpenAIChatModel:
    """Chat completions from an OpenAI-compatible API."""

    backend_name = "openai"

    def __init__(
        self,
        model: str = None,
        client: Optional[OpenAIClient] = None,
        temperature: Optional[float] = None,
    ):
        self.model = model or config.CHAT_MODEL
        self.client = client or OpenAIClient()
        self.temperature = config.TEMPERATURE if temperature is None else temperature

    def generate(
        self, prompt: str, prior_messages: Optional[List[ChatMessage]] = None
    ) -> Completion:
        messages = _build_messages(prompt, prior_messages)
        try:
            data = self.client.chat(
                messages, model=self.model, temperature=self.temperature
            )
        except httpx.HTTPError as e:
            raise BackendFailureError(self.backend_name, "chat", str(e)) from e

        text = reply_text(
            self.backend_name, lookup(data, "choices", 0, "message", "content")
        )
        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        return Completion(
            text=text,
            token_usage=TokenUsage(
                prompt_tokens=token_count(usage.get("prompt_tokens")),
                completion_tokens=token_count(usage.get("completion_tokens")),
                total_tokens=token_count(usage.get("total_tokens")),
            ),
        )


def create_chat_model(provider: Any = None, model: str = None) -> ChatModel:
    """Create the completion backend for a provider (default from config)."""
    provider = LLMProvider.parse(provider or config.LLM_PROVIDER)
    if provider is LLMProvider.OPENAI:
        return OpenAIChatModel(model=model)
    return OllamaChatModel(model=model)


def create_embedding_model(provider: Any = None, model: str = None) -> EmbeddingModel:
    """Create the embedding adapter for a provider (default from config)."""
    provider = LLMProvider.parse(provider or config.LLM_PROVIDER)
    if provider is LLMProvider.OPENAI:
        return OpenAIEmbeddingModel(model=model)
    return OllamaEmbeddingModel(model=model)
