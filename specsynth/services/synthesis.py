"""Synthesis orchestration: generate, refresh, get, list, sources.

Per handle the lifecycle is:

  NONE ──generate──▶ PRESENT ──refresh──▶ PRESENT (new content)

generate fails if a synthesis already exists, refresh fails if none does.
Both read the current published sources as a snapshot, then:

  1 source   → passthrough: copy the source verbatim, no LLM call
  ≥2 sources → invoke_synthesis(): prompt → gateway → parse → validate

The LLM call happens between the read and the write, outside any open
transaction. The write itself (specification row + associations +
synthesis record + source rows) is one transaction: it commits together
or not at all.
"""

import asyncio
from collections import Counter
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from specsynth.db.models import AISynthesis
from specsynth.db.repositories import AISynthRepository, SpecificationRepository, UserDirectory
from specsynth.errors import (
    AIUserNotFoundError,
    NoSourcesError,
    SynthesisAlreadyExistsError,
    SynthesisNotFoundError,
)
from specsynth.llm.client import get_gateway
from specsynth.llm.invoker import CompletionGateway, invoke_synthesis
from specsynth.schemas.api import AISynthResponse, SourceLinkSummary
from specsynth.schemas.domain import SourceSpecification, SpecificationDraft, SynthesisRequest
from specsynth.services.markdown import render_markdown
from specsynth.services.sources import compute_contributions, fetch_sources
from specsynth.services.transformer import to_response, to_source_summary
from specsynth.utils.logging import log, get_logger, log_context

MODULE = "synthesis"
logger = get_logger()


def _most_common(values: Sequence[Optional[int]]) -> Optional[int]:
    """Majority value ignoring None; ties go to the first one seen."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    counts = Counter(present)
    best = max(counts.values())
    return next(v for v in present if counts[v] == best)


def passthrough(source: SourceSpecification) -> SpecificationDraft:
    """Single-source synthesis: the source, copied field for field."""
    return SpecificationDraft(
        shopify_handle=source.shopify_handle,
        product_type_id=source.product_type_id,
        product_brand_id=source.product_brand_id,
        grind_id=source.grind_id,
        nicotine_level_id=source.nicotine_level_id,
        moisture_level_id=source.moisture_level_id,
        experience_level_id=source.experience_level_id,
        is_fermented=source.is_fermented,
        is_oral_tobacco=source.is_oral_tobacco,
        is_artisan=source.is_artisan,
        star_rating=source.star_rating,
        rating_boost=0,
        review=source.review,
        tasting_note_ids=list(source.tasting_note_ids),
        cure_ids=list(source.cure_ids),
        tobacco_type_ids=list(source.tobacco_type_ids),
    )


async def synthesize_specifications(
    sources: Sequence[SourceSpecification],
    gateway: CompletionGateway,
    *,
    model: Optional[str] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> SpecificationDraft:
    """Combine sources into one draft (owner and status still unset).

    Raises:
        NoSourcesError: sources is empty.
        Anything invoke_synthesis raises on the multi-source path.
    """
    if not sources:
        raise NoSourcesError("No specifications provided", operation="synthesize")

    if len(sources) == 1:
        log.info(logger, MODULE, "passthrough", "Single source, copying without LLM",
                 shopify_handle=sources[0].shopify_handle, source_id=sources[0].id)
        return passthrough(sources[0])

    result = await invoke_synthesis(sources, gateway, model=model, cancel_event=cancel_event)

    # The model does not pick product type/brand; take the sources' majority.
    return SpecificationDraft(
        shopify_handle=sources[0].shopify_handle,
        product_type_id=_most_common([s.product_type_id for s in sources]),
        product_brand_id=_most_common([s.product_brand_id for s in sources]),
        grind_id=result.grind_id,
        nicotine_level_id=result.nicotine_level_id,
        moisture_level_id=result.moisture_level_id,
        experience_level_id=result.experience_level_id,
        is_fermented=result.is_fermented,
        is_oral_tobacco=result.is_oral_tobacco,
        is_artisan=result.is_artisan,
        star_rating=result.star_rating,
        rating_boost=0,
        review=result.review,
        tasting_note_ids=list(result.tasting_note_ids),
        cure_ids=list(result.cure_ids),
        tobacco_type_ids=list(result.tobacco_type_ids),
        confidence_level=result.confidence_level,
        ai_model=model or gateway.model,
    )


def _recorded_model(
    request: SynthesisRequest,
    draft: SpecificationDraft,
    previous: Optional[AISynthesis] = None,
) -> Optional[str]:
    """Override, else the model that wrote this content, else what was stored."""
    if request.ai_model:
        return request.ai_model
    if draft.ai_model:
        return draft.ai_model
    return previous.ai_model if previous is not None else None


def _recorded_confidence(
    request: SynthesisRequest,
    draft: SpecificationDraft,
    previous: Optional[AISynthesis] = None,
) -> Optional[int]:
    """Override, else the model's own level, else what was stored.

    Passthrough reports no level, so a refresh keeps the stored one.
    """
    if request.confidence is not None:
        return request.confidence
    if draft.confidence_level is not None:
        return draft.confidence_level
    return previous.confidence if previous is not None else None


class AISynthService:
    """Use cases over one AsyncSession.

    Repositories and the gateway are injected; defaults are the SQLAlchemy
    repositories bound to the session and the environment-configured
    gateway.
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[CompletionGateway] = None,
        *,
        specifications: Optional[SpecificationRepository] = None,
        syntheses: Optional[AISynthRepository] = None,
        users: Optional[UserDirectory] = None,
    ):
        self.session = session
        self.gateway = gateway if gateway is not None else get_gateway()
        self.specifications = specifications or SpecificationRepository(session)
        self.syntheses = syntheses or AISynthRepository(session)
        self.users = users or UserDirectory(session)

    async def _ai_user_id(self, shopify_handle: str, operation: str) -> str:
        user = await self.users.find_ai_user()
        if user is None:
            log.error(logger, MODULE, "ai_user_missing", "AI system user not found",
                      shopify_handle=shopify_handle, operation=operation)
            raise AIUserNotFoundError("AI system user not found",
                                      shopify_handle=shopify_handle, operation=operation)
        return user.id

    async def _prepare(
        self,
        shopify_handle: str,
        operation: str,
        ai_model: Optional[str],
        confidence: Optional[int],
        cancel_event: Optional[asyncio.Event],
    ) -> tuple[SynthesisRequest, SpecificationDraft]:
        """Read sources and reference data, then synthesize."""
        sources = await fetch_sources(self.specifications, shopify_handle)
        request = SynthesisRequest(
            shopify_handle=shopify_handle, sources=tuple(sources),
            ai_model=ai_model, confidence=confidence,
        )
        user_id = await self._ai_user_id(shopify_handle, operation)
        status_id = await self.specifications.published_status_id()

        # Release the read transaction before the (slow) LLM call.
        await self.session.commit()

        draft = await synthesize_specifications(
            request.sources, self.gateway, model=request.ai_model, cancel_event=cancel_event,
        )
        draft.user_id = user_id
        draft.status_id = status_id
        return request, draft

    async def generate(
        self,
        shopify_handle: str,
        ai_model: Optional[str] = None,
        confidence: Optional[int] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AISynthResponse:
        """Create the synthesis for a handle.

        Raises:
            SynthesisAlreadyExistsError: a synthesis exists (also when a
                concurrent generate commits first).
            NoSourcesError, AIUserNotFoundError, ReferenceDataError,
            LLM errors: see module docs.
        """
        with log_context(shopify_handle=shopify_handle, operation="generate"):
            return await self._generate(shopify_handle, ai_model, confidence, cancel_event)

    async def _generate(
        self,
        shopify_handle: str,
        ai_model: Optional[str],
        confidence: Optional[int],
        cancel_event: Optional[asyncio.Event],
    ) -> AISynthResponse:
        log.info(logger, MODULE, "generate_start", "Generating AI synthesis",
                 shopify_handle=shopify_handle, ai_model=ai_model, confidence=confidence)

        if await self.syntheses.exists(shopify_handle):
            log.warning(logger, MODULE, "generate_failed", "AI synthesis already exists",
                        shopify_handle=shopify_handle)
            raise SynthesisAlreadyExistsError(
                f"AI synthesis already exists for product: {shopify_handle}",
                shopify_handle=shopify_handle, operation="generate",
            )

        request, draft = await self._prepare(
            shopify_handle, "generate", ai_model, confidence, cancel_event,
        )
        contributions = compute_contributions(request.sources)

        try:
            spec = await self.specifications.create(draft)
            await self.syntheses.create(
                specification_id=spec.id,
                shopify_handle=shopify_handle,
                ai_model=_recorded_model(request, draft),
                confidence=_recorded_confidence(request, draft),
                contributions=contributions,
            )
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if await self.syntheses.exists(shopify_handle):
                log.warning(logger, MODULE, "generate_failed",
                            "AI synthesis created concurrently, write rolled back",
                            shopify_handle=shopify_handle)
                raise SynthesisAlreadyExistsError(
                    f"AI synthesis already exists for product: {shopify_handle}",
                    shopify_handle=shopify_handle, operation="generate",
                ) from e
            raise
        except Exception as e:
            await self.session.rollback()
            log.error(logger, MODULE, "generate_failed", "AI synthesis write failed",
                      error=str(e), error_type=type(e).__name__, shopify_handle=shopify_handle)
            raise

        ai_synth = await self.syntheses.find_by_handle(shopify_handle)
        log.info(logger, MODULE, "generate_done", "AI synthesis generated",
                 shopify_handle=shopify_handle, specification_id=ai_synth.specification_id,
                 sources=len(request.sources), mode="passthrough" if len(request.sources) == 1 else "llm",
                 confidence=ai_synth.confidence)
        return to_response(ai_synth)

    async def refresh(
        self,
        shopify_handle: str,
        ai_model: Optional[str] = None,
        confidence: Optional[int] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AISynthResponse:
        """Re-synthesize from the current sources, replacing content in place.

        The synthesized specification keeps its id and source rows are
        replaced. Model and confidence follow the override, else the new
        model output; a passthrough without overrides keeps the stored ones.

        Raises:
            SynthesisNotFoundError: no synthesis for the handle.
        """
        with log_context(shopify_handle=shopify_handle, operation="refresh"):
            return await self._refresh(shopify_handle, ai_model, confidence, cancel_event)

    async def _refresh(
        self,
        shopify_handle: str,
        ai_model: Optional[str],
        confidence: Optional[int],
        cancel_event: Optional[asyncio.Event],
    ) -> AISynthResponse:
        log.info(logger, MODULE, "refresh_start", "Refreshing AI synthesis",
                 shopify_handle=shopify_handle, ai_model=ai_model, confidence=confidence)

        existing = await self.syntheses.find_by_handle(shopify_handle)
        if existing is None:
            log.warning(logger, MODULE, "refresh_failed", "AI synthesis not found",
                        shopify_handle=shopify_handle)
            raise SynthesisNotFoundError(
                f"AI synthesis not found for product: {shopify_handle}",
                shopify_handle=shopify_handle, operation="refresh",
            )

        request, draft = await self._prepare(
            shopify_handle, "refresh", ai_model, confidence, cancel_event,
        )
        contributions = compute_contributions(request.sources)

        try:
            await self.specifications.update(existing.specification_id, draft)
            await self.syntheses.update(
                existing,
                ai_model=_recorded_model(request, draft, existing),
                confidence=_recorded_confidence(request, draft, existing),
                contributions=contributions,
            )
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            log.error(logger, MODULE, "refresh_failed", "AI synthesis write failed",
                      error=str(e), error_type=type(e).__name__, shopify_handle=shopify_handle)
            raise

        ai_synth = await self.syntheses.find_by_handle(shopify_handle)
        log.info(logger, MODULE, "refresh_done", "AI synthesis refreshed",
                 shopify_handle=shopify_handle, specification_id=ai_synth.specification_id,
                 sources=len(request.sources), mode="passthrough" if len(request.sources) == 1 else "llm",
                 confidence=ai_synth.confidence)
        return to_response(ai_synth)

    async def get(self, shopify_handle: str) -> AISynthResponse:
        ai_synth = await self.syntheses.find_by_handle(shopify_handle)
        if ai_synth is None:
            raise SynthesisNotFoundError(
                f"AI synthesis not found for product: {shopify_handle}",
                shopify_handle=shopify_handle, operation="get",
            )
        return to_response(ai_synth)

    async def list_syntheses(
        self,
        shopify_handle: Optional[str] = None,
        confidence: Optional[int] = None,
        ai_model: Optional[str] = None,
    ) -> list[AISynthResponse]:
        rows = await self.syntheses.find_many(
            shopify_handle=shopify_handle, confidence=confidence, ai_model=ai_model,
        )
        return [to_response(row) for row in rows]

    async def get_sources(self, shopify_handle: str) -> list[SourceLinkSummary]:
        """Source links of a synthesis; empty when the handle has none."""
        return [to_source_summary(s) for s in await self.syntheses.get_sources(shopify_handle)]

    async def get_markdown(self, shopify_handle: str) -> str:
        return render_markdown(await self.get(shopify_handle))
