"""Prompts for specification synthesis.

Several users can publish a specification for the same product. They
rarely agree: one calls the grind "fine", another "medium"; ratings drift
by a star or two; tasting notes overlap only partially. Synthesis asks the
model to read every source and produce one canonical specification.

## What the model sees

SYSTEM: the exact JSON shape to return plus guidance on how to combine
sources. The shape mirrors SynthesisOutput; llm.validators enforces it.

USER: a recap of the sources, one numbered block per source, in the order
the repository returned them. Every field is always rendered, including
empty ones ("No review provided", "[]"), so the model never has to guess
whether a value was missing or just left out of the prompt.

## Determinism

build_user_prompt() is a pure function of the ordered source list. The
same sources in the same order always produce byte-identical text, which
keeps prompts reproducible in logs and tests.
"""

from typing import Sequence

from specsynth.schemas.domain import SourceSpecification


SYNTHESIS_SYSTEM = """You are an expert tobacco product analyst. Your job is to synthesize multiple user specifications for the same product into a single, coherent specification.

You must respond ONLY with valid JSON matching this exact structure:
{
  "review": "string - comprehensive review text combining insights from all sources",
  "star_rating": number - 1-5 integer rating,
  "grind_id": number - most appropriate grind ID,
  "nicotine_level_id": number - most appropriate nicotine level ID,
  "moisture_level_id": number - most appropriate moisture level ID,
  "experience_level_id": number - most appropriate experience level ID,
  "is_fermented": boolean,
  "is_oral_tobacco": boolean,
  "is_artisan": boolean,
  "tasting_note_ids": [array of relevant tasting note IDs],
  "cure_ids": [array of relevant cure IDs],
  "tobacco_type_ids": [array of relevant tobacco type IDs],
  "confidence_level": number - 1-3 scale (1=low, 2=medium, 3=high confidence)
}

Guidelines:
- Synthesize review text into a coherent, comprehensive product description
- Choose the most common/appropriate enum values based on user consensus
- Include all relevant tasting notes, cures, and tobacco types mentioned
- Only use IDs that appear in the sources
- Rate confidence based on user agreement and data quality"""


SYNTHESIS_SOURCE = """Source {index}:
Review: "{review}"
Rating: {star_rating}/5
Grind ID: {grind_id}
Nicotine Level ID: {nicotine_level_id}
Moisture Level ID: {moisture_level_id}
Experience Level ID: {experience_level_id}
Fermented: {is_fermented}
Oral Tobacco: {is_oral_tobacco}
Artisan: {is_artisan}
Tasting Note IDs: {tasting_note_ids}
Cure IDs: {cure_ids}
Tobacco Type IDs: {tobacco_type_ids}"""


SYNTHESIS_USER = """Product: {shopify_handle}
Total specifications to synthesize: {count}

{sources}

Synthesize these specifications into a single, comprehensive specification."""


NO_REVIEW = "No review provided"


def _id_list(ids: Sequence[int]) -> str:
    return "[" + ", ".join(str(i) for i in ids) + "]"


def _flag(value: bool) -> str:
    return "true" if value else "false"


def build_system_prompt() -> str:
    return SYNTHESIS_SYSTEM


def build_source_block(index: int, source: SourceSpecification) -> str:
    """Render one source. index is 1-based."""
    return SYNTHESIS_SOURCE.format(
        index=index,
        review=source.review or NO_REVIEW,
        star_rating=source.star_rating,
        grind_id=source.grind_id,
        nicotine_level_id=source.nicotine_level_id,
        moisture_level_id=source.moisture_level_id,
        experience_level_id=source.experience_level_id,
        is_fermented=_flag(source.is_fermented),
        is_oral_tobacco=_flag(source.is_oral_tobacco),
        is_artisan=_flag(source.is_artisan),
        tasting_note_ids=_id_list(source.tasting_note_ids),
        cure_ids=_id_list(source.cure_ids),
        tobacco_type_ids=_id_list(source.tobacco_type_ids),
    )


def build_user_prompt(sources: Sequence[SourceSpecification]) -> str:
    """Recap every source in fetch order.

    Raises:
        ValueError: if sources is empty.
    """
    if not sources:
        raise ValueError("build_user_prompt requires at least one source")

    blocks = "\n\n".join(
        build_source_block(i, source) for i, source in enumerate(sources, start=1)
    )
    return SYNTHESIS_USER.format(
        shopify_handle=sources[0].shopify_handle,
        count=len(sources),
        sources=blocks,
    )
