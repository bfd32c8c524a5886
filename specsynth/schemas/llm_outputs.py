"""Pydantic schema for the synthesis LLM output.

The model's reply is untrusted. It is parsed into a plain dict, checked
field by field in llm.validators, and only then turned into this model.
Downstream code can trust every instance of SynthesisOutput.
"""

from pydantic import BaseModel, ConfigDict, Field


class SynthesisOutput(BaseModel):
    """One synthesized specification as produced by the model."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    review: str = Field(..., min_length=1, description="Combined review text")
    star_rating: int = Field(..., ge=1, le=5)
    grind_id: int
    nicotine_level_id: int
    moisture_level_id: int
    experience_level_id: int
    is_fermented: bool
    is_oral_tobacco: bool
    is_artisan: bool
    tasting_note_ids: list[int] = Field(default_factory=list)
    cure_ids: list[int] = Field(default_factory=list)
    tobacco_type_ids: list[int] = Field(default_factory=list)
    confidence_level: int = Field(
        ..., ge=1, le=3,
        description="1=low, 2=medium, 3=high agreement between sources",
    )
