# generation/service.py
"""
Metered generation.

The provider is only called after the ledger has accepted a usage
increment for the requesting user.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool

from generation.instructions import (
    JSON_TASKS,
    GenerationTask,
    build_user_content,
    get_instruction,
)
from generation.providers import AIProvider, GenerationDisabledError
from ledger.service import Ledger

_logger = logging.getLogger(__name__)

MAX_JOB_DESCRIPTION_CHARS = 20_000


class InvalidGenerationRequest(Exception):
    """The client sent input the model cannot work with."""
    pass


def _parse_structured(text: str) -> Optional[dict]:
    """Best-effort JSON extraction; models sometimes wrap JSON in code fences."""
    candidate = text.strip()
    if candidate.startswith("```"):
        candidate = candidate.strip("`")
        if candidate.startswith("json"):
            candidate = candidate[len("json"):]
    try:
        parsed = json.loads(candidate)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class GenerationService:
    """
    Run a generation task for a user, metered by the ledger.

    Args:
        ledger: Account/Usage Ledger
        provider: Configured LLM provider
    """

    def __init__(self, ledger: Ledger, provider: AIProvider):
        self.ledger = ledger
        self.provider = provider

    async def generate(
        self,
        user_id: str,
        task: GenerationTask,
        job_description: Optional[str],
        resume: Optional[str] = None,
    ) -> dict:
        """
        Validate input, consume one generation, then call the provider.

        Raises:
            InvalidGenerationRequest: Empty or oversized job description
            GenerationDisabledError: Provider has no API key (nothing consumed)
            QuotaExceeded: User is out of generations (provider not called)
            GenerationError: Provider failed after usage was consumed
        """
        _logger.info(
            f"Generation request: task={task.value} "
            f"job_description_length={len(job_description) if job_description else 0}"
        )

        if not job_description or not job_description.strip():
            raise InvalidGenerationRequest("Job description cannot be empty")
        if len(job_description) > MAX_JOB_DESCRIPTION_CHARS:
            raise InvalidGenerationRequest(
                f"Job description exceeds {MAX_JOB_DESCRIPTION_CHARS} characters"
            )
        if not self.provider.is_configured:
            raise GenerationDisabledError("API key not configured")

        account = await run_in_threadpool(self.ledger.increment_usage, user_id)

        result = await self.provider.generate(
            get_instruction(task),
            build_user_content(job_description.strip(), resume),
        )

        response = {
            "task": task.value,
            "provider": result.provider,
            "model": result.model,
            "content": result.text,
            "usage": {
                "usageCount": account.usage_count,
                "tier": account.tier.value,
            },
        }
        if task in JSON_TASKS:
            response["data"] = _parse_structured(result.text)
        return response
