"""Projection of persisted syntheses into the API read shape.

Pure functions over ORM rows that the repository already loaded (see
AI_SYNTH_FULL). No queries, no side effects.
"""

from typing import Optional

from specsynth.db.models import AISynthesis, AISynthSource, Specification, User
from specsynth.schemas.api import (
    AISynthResponse,
    EnumRef,
    SourceLink,
    SourceLinkSummary,
    SourceSpecSummary,
    SpecificationResponse,
    UserRef,
)


def _enum(row) -> Optional[EnumRef]:
    if row is None:
        return None
    return EnumRef(id=row.id, name=row.name)


def _enums(rows) -> list[EnumRef]:
    return [EnumRef(id=r.id, name=r.name) for r in rows if r is not None]


def _user(user: Optional[User]) -> Optional[UserRef]:
    if user is None:
        return None
    return UserRef(id=user.id, name=user.name, email=user.email)


def _number(value) -> Optional[float]:
    return float(value) if value is not None else None


def to_specification(spec: Specification) -> SpecificationResponse:
    return SpecificationResponse(
        id=spec.id,
        shopify_handle=spec.shopify_handle,
        product_brand=_enum(spec.product_brand),
        product_type=_enum(spec.product_type),
        grind=_enum(spec.grind),
        nicotine_level=_enum(spec.nicotine_level),
        moisture_level=_enum(spec.moisture_level),
        experience_level=_enum(spec.experience_level),
        is_fermented=bool(spec.is_fermented),
        is_oral_tobacco=bool(spec.is_oral_tobacco),
        is_artisan=bool(spec.is_artisan),
        star_rating=spec.star_rating,
        rating_boost=spec.rating_boost or 0,
        review=spec.review,
        status=_enum(spec.status),
        user=_user(spec.user),
        tasting_notes=_enums(link.tasting_note for link in spec.tasting_note_links),
        cures=_enums(link.cure for link in spec.cure_links),
        tobacco_types=_enums(link.tobacco_type for link in spec.tobacco_type_links),
    )


def to_source_link(source: AISynthSource) -> SourceLink:
    return SourceLink(
        specification_id=source.source_spec_id,
        weight_factor=_number(source.weight_factor),
        contribution_score=_number(source.contribution_score),
    )


def to_response(ai_synth: AISynthesis) -> AISynthResponse:
    """Synthesis record + specification + sources → AISynthResponse.

    ai_model and confidence stay None when the record has none
    (e.g. a single-source passthrough without an override).
    """
    return AISynthResponse(
        id=ai_synth.id,
        shopify_handle=ai_synth.shopify_handle,
        ai_model=ai_synth.ai_model or None,
        confidence=ai_synth.confidence,
        specification=to_specification(ai_synth.specification),
        sources=[to_source_link(s) for s in ai_synth.sources],
        created_at=ai_synth.created_at,
        updated_at=ai_synth.updated_at,
    )


def to_source_summary(source: AISynthSource) -> SourceLinkSummary:
    spec = source.source_spec
    return SourceLinkSummary(
        specification_id=source.source_spec_id,
        weight_factor=_number(source.weight_factor),
        contribution_score=_number(source.contribution_score),
        specification=SourceSpecSummary(
            id=spec.id,
            user=_user(spec.user),
            status=_enum(spec.status),
            created_at=spec.created_at,
            updated_at=spec.updated_at,
        ),
    )
