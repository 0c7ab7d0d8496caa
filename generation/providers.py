# generation/providers.py
"""
LLM provider clients.

Both providers are called over plain HTTPS with httpx and a bounded
timeout. Responses are normalized into GenerationResult regardless of
source.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

_logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================

ANTHROPIC_MESSAGES_ENDPOINT = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OPENAI_CHAT_ENDPOINT = "https://api.openai.com/v1/chat/completions"


# =============================================================================
# Exceptions
# =============================================================================


class GenerationError(Exception):
    """Raised when the AI provider fails or returns an error."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class GenerationDisabledError(GenerationError):
    """Raised when no API key is configured for the provider."""

    def __init__(self, message: str):
        super().__init__(message, status_code=503)


# =============================================================================
# Result
# =============================================================================


@dataclass
class GenerationResult:
    """Normalized provider response."""
    text: str
    model: str
    provider: str
    usage: dict = field(default_factory=dict)


# =============================================================================
# Providers
# =============================================================================


class AIProvider(ABC):
    """
    Abstract base class for LLM providers.

    Args:
        api_key: Provider API key
        model: Model identifier
        max_tokens: Output token cap
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.transport = transport

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Provider identifier (e.g., 'anthropic', 'openai')."""
        pass

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    def _build_request(self, system: str, content: str) -> tuple[str, dict, dict]:
        """Return (url, headers, json payload)."""
        pass

    @abstractmethod
    def _parse_response(self, data: dict) -> GenerationResult:
        pass

    async def generate(self, system: str, content: str) -> GenerationResult:
        """
        Send a system instruction and user content to the model.

        Raises:
            GenerationDisabledError: If no API key is configured
            GenerationError: On transport errors, timeouts or non-200 responses
        """
        if not self.is_configured:
            raise GenerationDisabledError(f"{self.source_name} API key is not configured")

        url, headers, payload = self._build_request(system, content)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            _logger.error(f"{self.source_name} request timed out after {self.timeout}s")
            raise GenerationError(f"{self.source_name} request timed out", status_code=504) from e
        except httpx.HTTPError as e:
            _logger.error(f"{self.source_name} request failed: {e}")
            raise GenerationError(f"{self.source_name} request failed: {e}") from e

        # Handle errors
        if response.status_code != 200:
            error_detail = response.text
            try:
                error_json = response.json()
                error_detail = error_json.get("error", {}).get("message", response.text)
            except (ValueError, AttributeError):
                pass
            _logger.error(
                f"{self.source_name} API error",
                extra={"status_code": response.status_code, "detail": error_detail},
            )
            raise GenerationError(f"{self.source_name} API error: {error_detail}")

        try:
            return self._parse_response(response.json())
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"Unexpected {self.source_name} response: {e}") from e


class AnthropicProvider(AIProvider):
    """Anthropic Messages API."""

    @property
    def source_name(self) -> str:
        return "anthropic"

    def _build_request(self, system: str, content: str) -> tuple[str, dict, dict]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": content}],
        }
        return ANTHROPIC_MESSAGES_ENDPOINT, headers, payload

    def _parse_response(self, data: dict) -> GenerationResult:
        text = "".join(
            block.get("text", "")
            for block in data["content"]
            if block.get("type") == "text"
        )
        return GenerationResult(
            text=text,
            model=data.get("model", self.model),
            provider=self.source_name,
            usage=data.get("usage") or {},
        )


class OpenAIProvider(AIProvider):
    """OpenAI Chat Completions API."""

    @property
    def source_name(self) -> str:
        return "openai"

    def _build_request(self, system: str, content: str) -> tuple[str, dict, dict]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
        }
        return OPENAI_CHAT_ENDPOINT, headers, payload

    def _parse_response(self, data: dict) -> GenerationResult:
        return GenerationResult(
            text=data["choices"][0]["message"]["content"] or "",
            model=data.get("model", self.model),
            provider=self.source_name,
            usage=data.get("usage") or {},
        )


_PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def get_provider(config, transport: Optional[httpx.AsyncBaseTransport] = None) -> AIProvider:
    """
    Build the provider selected in AppConfig.

    Raises:
        ValueError: If the provider name is unknown
    """
    if config.ai_provider not in _PROVIDERS:
        raise ValueError(
            f"Unknown AI provider: {config.ai_provider}. "
            f"Available: {list(_PROVIDERS.keys())}"
        )

    if config.ai_provider == "openai":
        model = config.openai_model
    else:
        model = config.anthropic_model

    return _PROVIDERS[config.ai_provider](
        api_key=config.ai_api_key,
        model=model,
        max_tokens=config.ai_max_tokens,
        timeout=config.ai_timeout_seconds,
        transport=transport,
    )
