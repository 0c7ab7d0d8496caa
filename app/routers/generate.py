# app/routers/generate.py
"""
Generation endpoints.

POST /api/create-bullets   - resume bullets from a job description
POST /api/generate/{task}  - any GenerationTask

Both meter through the ledger before the AI provider is called.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.dependencies import get_generation_service
from auth.middleware import get_authenticated_subject
from generation.instructions import GenerationTask
from generation.service import GenerationService

router = APIRouter(prefix="/api", tags=["generation"])


class GenerateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_description: Optional[str] = Field(default=None)
    resume: Optional[str] = Field(default=None, max_length=20_000)


@router.post("/create-bullets")
async def create_bullets(
    request: GenerateRequest,
    subject: str = Depends(get_authenticated_subject),
    service: GenerationService = Depends(get_generation_service),
):
    """Write resume bullet points for a job description."""
    return await service.generate(
        subject,
        GenerationTask.BULLETS,
        request.job_description,
        request.resume,
    )


@router.post("/generate/{task}")
async def generate(
    task: GenerationTask,
    request: GenerateRequest,
    subject: str = Depends(get_authenticated_subject),
    service: GenerationService = Depends(get_generation_service),
):
    """Run a generation task for the authenticated user."""
    return await service.generate(subject, task, request.job_description, request.resume)
