"""In-process data passed between the selector, orchestrator and repositories."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceSpecification(BaseModel):
    """Point-in-time snapshot of one user's published specification."""

    model_config = ConfigDict(frozen=True)

    id: int
    shopify_handle: str
    user_id: str
    product_type_id: Optional[int] = None
    product_brand_id: Optional[int] = None
    grind_id: int
    nicotine_level_id: int
    moisture_level_id: int
    experience_level_id: int
    is_fermented: bool = False
    is_oral_tobacco: bool = False
    is_artisan: bool = False
    star_rating: int
    review: Optional[str] = None
    tasting_note_ids: tuple[int, ...] = ()
    cure_ids: tuple[int, ...] = ()
    tobacco_type_ids: tuple[int, ...] = ()


class SynthesisRequest(BaseModel):
    """Inputs of one generate/refresh run: the source snapshot plus overrides."""

    model_config = ConfigDict(frozen=True)

    shopify_handle: str
    sources: tuple[SourceSpecification, ...]
    ai_model: Optional[str] = None
    confidence: Optional[int] = Field(None, ge=1, le=3)


class SourceContribution(BaseModel):
    """Audit weight of one source within a synthesis."""

    model_config = ConfigDict(frozen=True)

    source_spec_id: int
    weight_factor: float = 1.0
    contribution_score: float


class SpecificationDraft(BaseModel):
    """Specification row (plus associations) about to be written.

    confidence_level is only set on the LLM path. Passthrough leaves it
    None rather than inventing one.
    """

    shopify_handle: str
    product_type_id: Optional[int] = None
    product_brand_id: Optional[int] = None
    grind_id: int
    nicotine_level_id: int
    moisture_level_id: int
    experience_level_id: int
    is_fermented: bool
    is_oral_tobacco: bool
    is_artisan: bool
    star_rating: int
    rating_boost: int = 0
    review: Optional[str] = None
    user_id: Optional[str] = None
    status_id: Optional[int] = None
    tasting_note_ids: list[int] = Field(default_factory=list)
    cure_ids: list[int] = Field(default_factory=list)
    tobacco_type_ids: list[int] = Field(default_factory=list)
    confidence_level: Optional[int] = None
    ai_model: Optional[str] = None

    def row_fields(self) -> dict:
        """Columns of the specifications table."""
        return self.model_dump(exclude={
            "tasting_note_ids", "cure_ids", "tobacco_type_ids",
            "confidence_level", "ai_model",
        })
