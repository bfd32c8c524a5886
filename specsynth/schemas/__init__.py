"""Pydantic schemas for structured data validation.

This package contains:
- api.py: Request/response schemas for the REST API
- domain.py: Snapshots and drafts passed between services and repositories
- llm_outputs.py: Schema for validated LLM output

LLM output is validated BEFORE it is turned into a SynthesisOutput, so
every instance downstream code sees is already trusted.
"""

from specsynth.schemas.llm_outputs import SynthesisOutput

from specsynth.schemas.domain import (
    SourceSpecification,
    SynthesisRequest,
    SourceContribution,
    SpecificationDraft,
)

from specsynth.schemas.api import (
    AISynthGenerate,
    AISynthRefresh,
    EnumRef,
    UserRef,
    SpecificationResponse,
    SourceLink,
    AISynthResponse,
    SourceSpecSummary,
    SourceLinkSummary,
    AISynthListResponse,
)

__all__ = [
    # LLM outputs
    "SynthesisOutput",
    # Domain
    "SourceSpecification",
    "SynthesisRequest",
    "SourceContribution",
    "SpecificationDraft",
    # API
    "AISynthGenerate",
    "AISynthRefresh",
    "EnumRef",
    "UserRef",
    "SpecificationResponse",
    "SourceLink",
    "AISynthResponse",
    "SourceSpecSummary",
    "SourceLinkSummary",
    "AISynthListResponse",
]
