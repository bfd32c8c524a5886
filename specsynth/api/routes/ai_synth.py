"""AI synthesis endpoints.

  GET  /ai-synth                      list, filterable by handle/confidence/model
  POST /ai-synth                      generate for a handle
  GET  /ai-synth/{handle}             read one
  PUT  /ai-synth/{handle}/refresh     re-synthesize in place
  GET  /ai-synth/{handle}/sources     source links with weights
  GET  /ai-synth/{handle}/markdown    rendered document

Service errors are mapped to status codes in api.app.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from specsynth.db.session import get_session
from specsynth.llm.client import LLMGateway, get_gateway
from specsynth.schemas import (
    AISynthGenerate,
    AISynthListResponse,
    AISynthRefresh,
    AISynthResponse,
    SourceLinkSummary,
)
from specsynth.services.synthesis import AISynthService
from specsynth.utils.logging import log, get_logger

MODULE = "ai_synth"
logger = get_logger()

router = APIRouter()


def get_synth_service(
    session: AsyncSession = Depends(get_session),
    gateway: LLMGateway = Depends(get_gateway),
) -> AISynthService:
    return AISynthService(session, gateway)


@router.get("", response_model=AISynthListResponse)
async def list_syntheses(
    shopify_handle: Optional[str] = Query(None, description="Filter by product handle"),
    confidence: Optional[int] = Query(None, ge=1, le=3, description="Filter by confidence (1-3)"),
    ai_model: Optional[str] = Query(None, description="Filter by model name"),
    service: AISynthService = Depends(get_synth_service),
):
    """List syntheses, most recently updated first."""
    syntheses = await service.list_syntheses(
        shopify_handle=shopify_handle, confidence=confidence, ai_model=ai_model,
    )
    log.debug(logger, MODULE, "list", "Syntheses listed",
              total=len(syntheses), shopify_handle=shopify_handle,
              confidence=confidence, ai_model=ai_model)
    return AISynthListResponse(syntheses=syntheses, total=len(syntheses))


@router.post("", response_model=AISynthResponse, status_code=201)
async def generate_synthesis(
    body: AISynthGenerate,
    service: AISynthService = Depends(get_synth_service),
):
    """Generate the synthesis for a product. 409 if one already exists."""
    return await service.generate(body.shopify_handle, body.ai_model, body.confidence)


@router.get("/{shopify_handle}", response_model=AISynthResponse)
async def get_synthesis(
    shopify_handle: str,
    service: AISynthService = Depends(get_synth_service),
):
    return await service.get(shopify_handle)


@router.put("/{shopify_handle}/refresh", response_model=AISynthResponse)
async def refresh_synthesis(
    shopify_handle: str,
    body: Optional[AISynthRefresh] = None,
    service: AISynthService = Depends(get_synth_service),
):
    """Re-synthesize from the current published sources."""
    body = body or AISynthRefresh()
    return await service.refresh(shopify_handle, body.ai_model, body.confidence)


@router.get("/{shopify_handle}/sources", response_model=list[SourceLinkSummary])
async def get_synthesis_sources(
    shopify_handle: str,
    service: AISynthService = Depends(get_synth_service),
):
    return await service.get_sources(shopify_handle)


@router.get("/{shopify_handle}/markdown", response_class=PlainTextResponse)
async def get_synthesis_markdown(
    shopify_handle: str,
    service: AISynthService = Depends(get_synth_service),
):
    markdown = await service.get_markdown(shopify_handle)
    return PlainTextResponse(markdown, media_type="text/markdown")
