"""Embedding and generation clients with error translation.

Both clients expose the same two capabilities used by the pipeline:

- ``embed(text) -> list[float]``
- ``generate(prompt, temperature, max_output_tokens) -> str``

Transport failures never escape as ``httpx`` exceptions: a rejected
credential becomes ``LLMUnauthorizedError``, everything else becomes
``LLMTransientError``.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import structlog

from askdocs import config
from askdocs.errors import LLMTransientError, LLMUnauthorizedError

logger = structlog.get_logger()

UNAUTHORIZED_STATUS_CODES = (401, 403)


class BaseLLMClient:
    """Shared HTTP plumbing for the model clients."""

    provider = "base"

    def __init__(
        self,
        base_url: str,
        chat_model: str = None,
        embedding_model: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL
            chat_model: Generation model (defaults to config.CHAT_MODEL)
            embedding_model: Embedding model (defaults to config.EMBEDDING_MODEL)
            timeout: Request timeout in seconds (defaults to config.REQUEST_TIMEOUT)
            transport: Optional httpx transport, used to stub the service
        """
        self.base_url = base_url.rstrip("/")
        self.chat_model = chat_model or config.CHAT_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {}

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            LLMUnauthorizedError: On HTTP 401/403
            LLMTransientError: On any other transport, HTTP or decoding error,
                or a body that isn't a JSON object
        """
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(
                    method, url, json=payload, headers=self._headers()
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code in UNAUTHORIZED_STATUS_CODES:
                logger.error(
                    "llm_unauthorized",
                    provider=self.provider,
                    status_code=status_code,
                    url=url,
                )
                raise LLMUnauthorizedError(
                    f"{self.provider} rejected the credential (HTTP {status_code})"
                ) from e
            logger.error(
                "llm_http_error",
                provider=self.provider,
                status_code=status_code,
                url=url,
            )
            raise LLMTransientError(
                f"{self.provider} request failed with HTTP {status_code}"
            ) from e

        except httpx.HTTPError as e:
            logger.error(
                "llm_connection_error",
                provider=self.provider,
                error=str(e),
                error_type=type(e).__name__,
                url=url,
            )
            raise LLMTransientError(f"{self.provider} is unreachable: {e}") from e

        except ValueError as e:
            logger.error("llm_invalid_response", provider=self.provider, url=url)
            raise LLMTransientError(f"{self.provider} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise self._malformed(f"a JSON {type(data).__name__} instead of an object")
        return data

    def _malformed(self, detail: str) -> LLMTransientError:
        """Log a reply of the wrong shape and build the error to raise."""
        logger.error("llm_malformed_response", provider=self.provider, detail=detail)
        return LLMTransientError(f"{self.provider} returned a malformed reply: {detail}")

    def _vector(self, values: Any) -> List[float]:
        """Convert an embedding array, rejecting anything but a list of numbers."""
        if not isinstance(values, list):
            raise self._malformed(f"embedding of type {type(values).__name__}")
        try:
            return [float(x) for x in values]
        except (TypeError, ValueError) as e:
            raise self._malformed(f"non-numeric embedding value ({e})") from e

    def _content(self, message: Any) -> str:
        """Text of a chat message object; a missing content is empty."""
        if not isinstance(message, dict):
            raise self._malformed(f"chat message of type {type(message).__name__}")
        content = message.get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise self._malformed(f"chat content of type {type(content).__name__}")
        return content

    def _names(self, items: Any, key: str) -> List[str]:
        """Model names from a model listing."""
        if items is None:
            return []
        if not isinstance(items, list) or not all(
            isinstance(item, dict) and isinstance(item.get(key), str) for item in items
        ):
            raise self._malformed(f"model list without {key!r} entries")
        return [item[key] for item in items]




class OllamaClient(BaseLLMClient):
    """Async client for interacting with the Ollama API."""

    provider = "ollama"

    def __init__(self, base_url: str = None, **kwargs):
        super().__init__(base_url or config.OLLAMA_BASE_URL, **kwargs)

    async def embed(self, text: str) -> List[float]:
        """Generate the embedding vector for a text.

        Raises:
            LLMUnauthorizedError: If the service rejects the call
            LLMTransientError: On any other failure, including an empty embedding
        """
        logger.debug(
            "ollama_embedding_request",
            model=self.embedding_model,
            prompt_length=len(text),
        )

        data = await self._request(
            "POST",
            "/api/embeddings",
            {"model": self.embedding_model, "prompt": text},
        )
        embedding = self._vector(data.get("embedding") or [])

        if not embedding:
            raise LLMTransientError("Empty embedding returned from Ollama")

        logger.debug(
            "ollama_embedding_response",
            model=self.embedding_model,
            dimension=len(embedding),
        )
        return embedding

    async def generate(
        self, prompt: str, temperature: float, max_output_tokens: int
    ) -> str:
        """Send a single-turn chat completion request.

        Args:
            prompt: Complete prompt (instructions, context and question)
            temperature: Sampling temperature
            max_output_tokens: Cap on generated tokens (Ollama ``num_predict``)

        Returns:
            Generated text
        """
        payload = {
            "model": self.chat_model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_output_tokens,
            },
        }

        logger.info(
            "ollama_chat_request",
            model=self.chat_model,
            prompt_length=len(prompt),
        )

        data = await self._request("POST", "/api/chat", payload)
        content = self._content(data.get("message"))

        logger.info(
            "ollama_chat_response",
            model=self.chat_model,
            response_length=len(content),
        )
        return content

    async def list_models(self) -> List[str]:
        """List all available Ollama models."""
        data = await self._request("GET", "/api/tags")
        return self._names(data.get("models"), "name")


class OpenAIClient(BaseLLMClient):
    """Async client for OpenAI-compatible APIs (bearer-token auth)."""

    provider = "openai"

    def __init__(self, api_key: str = None, base_url: str = None, **kwargs):
        super().__init__(base_url or config.OPENAI_BASE_URL, **kwargs)
        self.api_key = api_key if api_key is not None else load_api_key()

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise LLMUnauthorizedError(
                f"No OpenAI API key configured. Set OPENAI_API_KEY or add it "
                f"to the {config.OPENAI_API_KEY_FILE.name} file"
            )
        return {"Authorization": f"Bearer {self.api_key}"}

    async def embed(self, text: str) -> List[float]:
        """Generate the embedding vector for a text.

        The response may carry several ``data`` entries; their vectors are
        concatenated into one.
        """
        data = await self._request(
            "POST",
            "/embeddings",
            {"model": self.embedding_model, "input": text},
        )
        entries = data.get("data") or []
        if not isinstance(entries, list) or not all(isinstance(d, dict) for d in entries):
            raise self._malformed("embedding data that isn't a list of objects")
        vector = [x for datum in entries for x in self._vector(datum.get("embedding") or [])]
        if not vector:
            raise LLMTransientError("Empty embedding returned from OpenAI")
        return vector

    async def generate(
        self, prompt: str, temperature: float, max_output_tokens: int
    ) -> str:
        payload = {
            "model": self.chat_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_output_tokens,
        }

        logger.info(
            "openai_chat_request",
            model=self.chat_model,
            prompt_length=len(prompt),
        )

        data = await self._request("POST", "/chat/completions", payload)
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise self._malformed("completion without choices")
        return self._content(choices[0].get("message"))

    async def list_models(self) -> List[str]:
        data = await self._request("GET", "/models")
        return self._names(data.get("data"), "id")


def load_api_key(path: Path = None) -> str:
    """Return the OpenAI API key from the environment or the key file."""
    if config.OPENAI_API_KEY:
        return config.OPENAI_API_KEY.strip()

    path = path or config.OPENAI_API_KEY_FILE
    if path.exists():
        return path.read_text(encoding="utf-8").strip()
    return ""


def create_llm_client(provider: str = None, **kwargs) -> BaseLLMClient:
    """Build the client for the configured provider.

    Args:
        provider: "ollama" or "openai" (default from config.LLM_PROVIDER)
        **kwargs: Passed to the client constructor

    Raises:
        ValueError: For an unknown provider
    """
    provider = (provider or config.LLM_PROVIDER).lower()
    if provider == "ollama":
        return OllamaClient(**kwargs)
    if provider == "openai":
        return OpenAIClient(**kwargs)
    raise ValueError(f"Unknown LLM provider: {provider}")
