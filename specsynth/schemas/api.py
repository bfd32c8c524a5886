"""Pydantic schemas for API requests/responses."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime


class AISynthGenerate(BaseModel):
    """Request body for generating a synthesis."""
    shopify_handle: str = Field(..., description="Product handle to synthesize")
    ai_model: Optional[str] = Field(None, description="Model name to use and record")
    confidence: Optional[int] = Field(None, ge=1, le=3, description="Confidence override (1-3)")

    @field_validator("shopify_handle")
    @classmethod
    def handle_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("shopify_handle must not be empty")
        return v.strip()


class AISynthRefresh(BaseModel):
    """Request body for refreshing a synthesis."""
    ai_model: Optional[str] = None
    confidence: Optional[int] = Field(None, ge=1, le=3)


class EnumRef(BaseModel):
    """A resolved enum row."""
    id: int
    name: str


class UserRef(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class SpecificationResponse(BaseModel):
    """The synthesized specification with enum labels resolved."""
    id: int
    shopify_handle: str
    product_brand: Optional[EnumRef] = None
    product_type: Optional[EnumRef] = None
    grind: Optional[EnumRef] = None
    nicotine_level: Optional[EnumRef] = None
    moisture_level: Optional[EnumRef] = None
    experience_level: Optional[EnumRef] = None
    is_fermented: bool = False
    is_oral_tobacco: bool = False
    is_artisan: bool = False
    star_rating: Optional[int] = None
    rating_boost: int = 0
    review: Optional[str] = None
    status: Optional[EnumRef] = None
    user: Optional[UserRef] = None
    tasting_notes: list[EnumRef] = []
    cures: list[EnumRef] = []
    tobacco_types: list[EnumRef] = []


class SourceLink(BaseModel):
    """One source's weight inside a synthesis."""
    specification_id: int
    weight_factor: Optional[float] = None
    contribution_score: Optional[float] = None


class AISynthResponse(BaseModel):
    """Full synthesis read shape."""
    id: int
    shopify_handle: str
    ai_model: Optional[str] = None
    confidence: Optional[int] = None
    specification: SpecificationResponse
    sources: list[SourceLink] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SourceSpecSummary(BaseModel):
    id: int
    user: Optional[UserRef] = None
    status: Optional[EnumRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SourceLinkSummary(SourceLink):
    """Source link plus who wrote the source and its state."""
    specification: SourceSpecSummary


class AISynthListResponse(BaseModel):
    """Filtered list of syntheses."""
    syntheses: list[AISynthResponse]
    total: int
