"""Repositories over the SQLAlchemy models.

Each repository wraps one AsyncSession and never commits: the caller owns
the transaction, so a synthesis write (specification + associations +
synthesis record + source rows) commits or rolls back as one unit.

Reads that feed the response transformer eager-load everything it touches.
Async sessions cannot lazy-load, so a missing option shows up as an error
rather than an extra query.
"""

import os
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from specsynth.db.models import (
    AISynthesis,
    AISynthSource,
    Specification,
    SpecificationStatus,
    SpecCure,
    SpecTastingNote,
    SpecTobaccoType,
    User,
)
from specsynth.errors import ReferenceDataError
from specsynth.schemas.domain import SourceContribution, SourceSpecification, SpecificationDraft
from specsynth.utils.logging import log, get_logger

MODULE = "db.repositories"
logger = get_logger()

AI_USER_ROLE = os.getenv("AI_USER_ROLE", "AI")
PUBLISHED_STATUS = "published"

SPEC_LINKS = (
    selectinload(Specification.tasting_note_links),
    selectinload(Specification.cure_links),
    selectinload(Specification.tobacco_type_links),
)

SPEC_FULL = (
    selectinload(Specification.product_type),
    selectinload(Specification.product_brand),
    selectinload(Specification.grind),
    selectinload(Specification.nicotine_level),
    selectinload(Specification.moisture_level),
    selectinload(Specification.experience_level),
    selectinload(Specification.status),
    selectinload(Specification.user),
    selectinload(Specification.tasting_note_links).selectinload(SpecTastingNote.tasting_note),
    selectinload(Specification.cure_links).selectinload(SpecCure.cure),
    selectinload(Specification.tobacco_type_links).selectinload(SpecTobaccoType.tobacco_type),
)

SOURCE_SPEC_SUMMARY = (
    selectinload(Specification.user),
    selectinload(Specification.status),
)

AI_SYNTH_FULL = (
    selectinload(AISynthesis.specification).options(*SPEC_FULL),
    selectinload(AISynthesis.sources).selectinload(AISynthSource.source_spec).options(*SOURCE_SPEC_SUMMARY),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _unique(ids: Iterable[int]) -> list[int]:
    """De-duplicate, keeping first occurrence order."""
    seen: list[int] = []
    for i in ids:
        if i not in seen:
            seen.append(i)
    return seen


def _sync_links(collection: list, ids: Sequence[int], key: str, factory: Callable[[int], object]) -> None:
    """Make an association collection hold exactly ids.

    Existing rows that stay are kept as-is; only removed/added ids touch
    the database (delete-orphan handles removals).
    """
    wanted = _unique(ids)
    for link in list(collection):
        if getattr(link, key) not in wanted:
            collection.remove(link)
    present = {getattr(link, key) for link in collection}
    for i in wanted:
        if i not in present:
            collection.append(factory(i))


def to_source(spec: Specification) -> SourceSpecification:
    """Snapshot an ORM row (with links loaded) as an immutable source."""
    return SourceSpecification(
        id=spec.id,
        shopify_handle=spec.shopify_handle,
        user_id=spec.user_id,
        product_type_id=spec.product_type_id,
        product_brand_id=spec.product_brand_id,
        grind_id=spec.grind_id,
        nicotine_level_id=spec.nicotine_level_id,
        moisture_level_id=spec.moisture_level_id,
        experience_level_id=spec.experience_level_id,
        is_fermented=bool(spec.is_fermented),
        is_oral_tobacco=bool(spec.is_oral_tobacco),
        is_artisan=bool(spec.is_artisan),
        star_rating=spec.star_rating,
        review=spec.review,
        tasting_note_ids=tuple(link.tasting_note_id for link in spec.tasting_note_links),
        cure_ids=tuple(link.cure_id for link in spec.cure_links),
        tobacco_type_ids=tuple(link.tobacco_type_id for link in spec.tobacco_type_links),
    )


class SpecificationRepository:
    """Reads published sources; writes synthesized specifications."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_published_by_handle(self, shopify_handle: str) -> list[SourceSpecification]:
        """Published user specifications for a handle, oldest first.

        Specifications that are themselves synthesis outputs are excluded,
        so a refresh never feeds on its own previous result.
        """
        synthesized = select(AISynthesis.specification_id)
        result = await self.session.execute(
            select(Specification)
            .join(Specification.status)
            .where(
                Specification.shopify_handle == shopify_handle,
                SpecificationStatus.name == PUBLISHED_STATUS,
                Specification.id.not_in(synthesized),
            )
            .options(*SPEC_LINKS)
            .order_by(Specification.id.asc())
            .execution_options(populate_existing=True)
        )
        return [to_source(spec) for spec in result.scalars().all()]

    async def published_status_id(self) -> int:
        result = await self.session.execute(
            select(SpecificationStatus.id).where(SpecificationStatus.name == PUBLISHED_STATUS)
        )
        status_id = result.scalar_one_or_none()
        if status_id is None:
            raise ReferenceDataError(f"Specification status '{PUBLISHED_STATUS}' not found")
        return status_id

    async def create(self, draft: SpecificationDraft) -> Specification:
        spec = Specification(
            **draft.row_fields(),
            tasting_note_links=[SpecTastingNote(tasting_note_id=i) for i in _unique(draft.tasting_note_ids)],
            cure_links=[SpecCure(cure_id=i) for i in _unique(draft.cure_ids)],
            tobacco_type_links=[SpecTobaccoType(tobacco_type_id=i) for i in _unique(draft.tobacco_type_ids)],
        )
        self.session.add(spec)
        await self.session.flush()
        log.debug(logger, MODULE, "spec_created", "Specification row written",
                  specification_id=spec.id, shopify_handle=spec.shopify_handle)
        return spec

    async def update(self, specification_id: int, draft: SpecificationDraft) -> Specification:
        """Overwrite a specification row and its associations in place."""
        result = await self.session.execute(
            select(Specification)
            .where(Specification.id == specification_id)
            .options(*SPEC_LINKS)
            .execution_options(populate_existing=True)
        )
        spec = result.scalar_one()

        for field, value in draft.row_fields().items():
            setattr(spec, field, value)
        spec.updated_at = _now()

        _sync_links(spec.tasting_note_links, draft.tasting_note_ids, "tasting_note_id",
                    lambda i: SpecTastingNote(tasting_note_id=i))
        _sync_links(spec.cure_links, draft.cure_ids, "cure_id",
                    lambda i: SpecCure(cure_id=i))
        _sync_links(spec.tobacco_type_links, draft.tobacco_type_ids, "tobacco_type_id",
                    lambda i: SpecTobaccoType(tobacco_type_id=i))

        await self.session.flush()
        log.debug(logger, MODULE, "spec_updated", "Specification row updated",
                  specification_id=spec.id)
        return spec


class AISynthRepository:
    """AI synthesis records and their source rows, keyed by handle."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_handle(self, shopify_handle: str) -> Optional[AISynthesis]:
        result = await self.session.execute(
            select(AISynthesis)
            .where(AISynthesis.shopify_handle == shopify_handle)
            .options(*AI_SYNTH_FULL)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def exists(self, shopify_handle: str) -> bool:
        result = await self.session.execute(
            select(AISynthesis.id).where(AISynthesis.shopify_handle == shopify_handle)
        )
        return result.scalar_one_or_none() is not None

    async def find_many(
        self,
        shopify_handle: Optional[str] = None,
        confidence: Optional[int] = None,
        ai_model: Optional[str] = None,
    ) -> list[AISynthesis]:
        query = select(AISynthesis).options(*AI_SYNTH_FULL)
        if shopify_handle:
            query = query.where(AISynthesis.shopify_handle == shopify_handle)
        if confidence is not None:
            query = query.where(AISynthesis.confidence == confidence)
        if ai_model:
            query = query.where(AISynthesis.ai_model == ai_model)
        query = query.order_by(AISynthesis.updated_at.desc(), AISynthesis.id.desc())

        result = await self.session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def create(
        self,
        *,
        specification_id: int,
        shopify_handle: str,
        ai_model: Optional[str],
        confidence: Optional[int],
        contributions: Sequence[SourceContribution],
    ) -> AISynthesis:
        """Insert the record and its source rows. Flushes, so a duplicate
        handle raises IntegrityError here."""
        ai_synth = AISynthesis(
            specification_id=specification_id,
            shopify_handle=shopify_handle,
            ai_model=ai_model,
            confidence=confidence,
            sources=[AISynthSource(**c.model_dump()) for c in contributions],
        )
        self.session.add(ai_synth)
        await self.session.flush()
        return ai_synth

    async def update(
        self,
        ai_synth: AISynthesis,
        *,
        ai_model: Optional[str],
        confidence: Optional[int],
        contributions: Sequence[SourceContribution],
    ) -> AISynthesis:
        """Set model/confidence and replace every source row."""
        ai_synth.ai_model = ai_model
        ai_synth.confidence = confidence
        ai_synth.updated_at = _now()
        ai_synth.sources = [AISynthSource(**c.model_dump()) for c in contributions]
        await self.session.flush()
        return ai_synth

    async def get_sources(self, shopify_handle: str) -> list[AISynthSource]:
        result = await self.session.execute(
            select(AISynthSource)
            .join(AISynthSource.ai_synth)
            .where(AISynthesis.shopify_handle == shopify_handle)
            .options(selectinload(AISynthSource.source_spec).options(*SOURCE_SPEC_SUMMARY))
            .order_by(AISynthSource.id.asc())
        )
        return list(result.scalars().all())


class UserDirectory:
    """Lookup of the system AI account. Read-only: it is never created here."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_ai_user(self) -> Optional[User]:
        result = await self.session.execute(
            select(User)
            .where(User.role == AI_USER_ROLE)
            .order_by(User.created_at.asc(), User.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()
