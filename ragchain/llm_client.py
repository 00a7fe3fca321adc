"""Synchronous HTTP clients for Ollama and OpenAI-compatible model APIs.

The clients only speak JSON over HTTP and return the decoded response body.
Transport failures surface as ``httpx.HTTPError``; turning them into pipeline
errors is left to the model adapters.
"""
from typing import Any, Dict, List, Optional, Union
import httpx
import structlog

from ragchain import config

logger = structlog.get_logger()


class _JSONClient:
    """Posts JSON payloads to one API and returns the decoded reply."""

    provider = "llm"

    def __init__(
        self,
        base_url: str,
        timeout: float = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL
            timeout: Request timeout in seconds (defaults to config.REQUEST_TIMEOUT)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.transport = transport

    def headers(self) -> Dict[str, str]:
        return {}

    def post(self, path: str, payload: Dict[str, Any]) -> Dict:
        """POST payload to path and return the decoded JSON object.

        Raises:
            httpx.HTTPError: On connection failures, non-2xx responses and
                replies that are not a JSON object (httpx.DecodingError)
        """
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers(),
                transport=self.transport,
            ) as client:
                response = client.post(path, json=payload)
                response.raise_for_status()
                try:
                    data = response.json()
                except ValueError as e:
                    raise httpx.DecodingError(
                        f"malformed response: {e}", request=response.request
                    ) from e
                if not isinstance(data, dict):
                    raise httpx.DecodingError(
                        f"malformed response: expected a JSON object, got "
                        f"{type(data).__name__}",
                        request=response.request,
                    )
                return data

        except httpx.ConnectError as e:
            logger.error(
                f"{self.provider}_connection_error",
                path=path,
                error=str(e),
                base_url=self.base_url,
            )
            raise
        except httpx.HTTPError as e:
            logger.error(
                f"{self.provider}_http_error",
                path=path,
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise


class OllamaClient(_JSONClient):
    """Client for the Ollama chat and embedding endpoints."""

    provider = "ollama"

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(base_url or config.OLLAMA_BASE_URL, timeout, transport)

    def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Request a complete (non-streamed) chat reply.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to config.CHAT_MODEL)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' and the prompt_eval_count/eval_count
            token counters
        """
        model = model or config.CHAT_MODEL
        payload = {"model": model, "messages": messages, "stream": False}
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        logger.info("ollama_chat_request", model=model, message_count=len(messages))
        data = self.post("/api/chat", payload)
        logger.info(
            "ollama_chat_response",
            model=model,
            response_length=len(str(lookup(data, "message", "content") or "")),
        )
        return data

    def embeddings(self, prompt: str, model: str = None) -> Dict:
        """Embed a text prompt; the reply carries an 'embedding' list."""
        model = model or config.EMBEDDING_MODEL

        logger.debug("ollama_embedding_request", model=model, prompt_length=len(prompt))
        data = self.post("/api/embeddings", {"model": model, "prompt": prompt})
        embedding = lookup(data, "embedding")
        logger.debug(
            "ollama_embedding_response",
            model=model,
            dimension=len(embedding) if isinstance(embedding, list) else None,
        )
        return data


class OpenAIClient(_JSONClient):
    """Client for OpenAI-compatible chat completion and embedding endpoints."""

    provider = "openai"

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(base_url or config.OPENAI_BASE_URL, timeout, transport)
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY

    def headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Request a chat completion.

        Returns:
            Response dict with 'choices' and, if reported, 'usage'
        """
        model = model or config.CHAT_MODEL
        payload = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature

        logger.info("openai_chat_request", model=model, message_count=len(messages))
        return self.post("/v1/chat/completions", payload)

    def embeddings(self, text: str, model: str = None) -> Dict:
        """Embed text; the reply carries a 'data' list of embedding objects."""
        model = model or config.EMBEDDING_MODEL
        return self.post("/v1/embeddings", {"model": model, "input": text})


def lookup(data: Any, *path: Union[str, int]) -> Any:
    """Follow keys and list indexes through a decoded reply.

    Returns None as soon as the reply's shape differs from path.
    """
    for key in path:
        if isinstance(key, int):
            if not isinstance(data, list) or not -len(data) <= key < len(data):
                return None
            data = data[key]
        else:
            if not isinstance(data, dict):
                return None
            data = data.get(key)
    return data
