"""AI-assisted metadata endpoints for the catalog admin.

Provides:
  - POST /ai/generate-description: structured movie metadata for a title
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from slowapi.util import get_remote_address

from app.core.security import extract_token
from app.metadata.service import GenerationService
from app.schemas.generation import GenerateDescriptionRequest, GenerationResult

router = APIRouter(prefix="/ai", tags=["ai"])


def get_generation_service(request: Request) -> GenerationService:
    """The process-wide service built in the app lifespan."""
    return request.app.state.generation_service


@router.post("/generate-description", response_model=GenerationResult)
async def generate_description(
    request: Request,
    body: GenerateDescriptionRequest,
    service: GenerationService = Depends(get_generation_service),
    authorization: str | None = Header(None, description="Bearer <token>"),
    x_auth_token: str | None = Header(None),
):
    """Generate description, summary, category, year, director, cast, rating and tags.

    Admin only. Tries each configured backend in order until one answers.
    """
    return await service.handle(
        title=body.title,
        token=extract_token(authorization, x_auth_token),
        client_key=get_remote_address(request),
    )
