# generation/__init__.py
"""
Job-application content generation.

Provides:
- Task instructions (bullets, resume, cover letter, interview
  questions, compensation and company insights)
- Anthropic and OpenAI providers over httpx
- A service that meters every call through the ledger
"""

from generation.instructions import GenerationTask
from generation.providers import (
    AIProvider,
    AnthropicProvider,
    GenerationDisabledError,
    GenerationError,
    GenerationResult,
    OpenAIProvider,
    get_provider,
)
from generation.service import GenerationService, InvalidGenerationRequest

__all__ = [
    "AIProvider",
    "AnthropicProvider",
    "GenerationDisabledError",
    "GenerationError",
    "GenerationResult",
    "GenerationService",
    "GenerationTask",
    "InvalidGenerationRequest",
    "OpenAIProvider",
    "get_provider",
]
