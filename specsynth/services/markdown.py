"""Markdown rendering of a synthesized specification.

Takes the transformed AISynthResponse, so it is pure: no I/O, and the same
response always renders the same document.
"""

from datetime import datetime
from typing import Optional

from specsynth.schemas.api import AISynthResponse, EnumRef

CONFIDENCE_LABELS = {3: "High", 2: "Medium", 1: "Low"}
CONFIDENCE_CONTEXT = {
    3: "High confidence - sources largely agree",
    2: "Medium confidence - sources partly agree",
    1: "Low confidence - sources disagree or are sparse",
}


def confidence_label(level: Optional[int]) -> str:
    """1-3 → Low/Medium/High. Absent confidence is unknown, not maximal."""
    return CONFIDENCE_LABELS.get(level, "Unknown")


def confidence_context(level: Optional[int]) -> str:
    return CONFIDENCE_CONTEXT.get(level, "Confidence not reported for this synthesis")


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "Unknown"
    return f"{value:%B} {value.day}, {value.year}"


def _name(ref: Optional[EnumRef]) -> str:
    return ref.name if ref else "-"


def _names(refs: list[EnumRef]) -> str:
    return ", ".join(r.name for r in refs) if refs else "-"


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


def render_markdown(synth: AISynthResponse) -> str:
    spec = synth.specification
    model = synth.ai_model or "Unknown"
    label = confidence_label(synth.confidence)
    generated = format_date(synth.created_at)

    lines = [
        f"# {spec.shopify_handle}",
        "",
        "> **AI Analysis**  ",
        f"> **Model:** {model} | **Confidence:** {label} | **Generated:** {generated}",
        "",
        f"**Rating:** {spec.star_rating or 0}/5 stars",
        "",
    ]

    if spec.review:
        lines += ["## Review", "", spec.review, ""]

    lines += [
        "## Characteristics",
        "",
        "| **Attribute** | **Value** |",
        "|:--------------|:----------|",
        f"| Brand | {_name(spec.product_brand)} |",
        f"| Type | {_name(spec.product_type)} |",
        f"| Grind | {_name(spec.grind)} |",
        f"| Nicotine Level | {_name(spec.nicotine_level)} |",
        f"| Moisture Level | {_name(spec.moisture_level)} |",
        f"| Experience Level | {_name(spec.experience_level)} |",
        f"| Fermented | {_yes_no(spec.is_fermented)} |",
        f"| Oral Tobacco | {_yes_no(spec.is_oral_tobacco)} |",
        f"| Artisan | {_yes_no(spec.is_artisan)} |",
        f"| Tasting Notes | {_names(spec.tasting_notes)} |",
        f"| Cures | {_names(spec.cures)} |",
        f"| Tobacco Types | {_names(spec.tobacco_types)} |",
        "",
        "## AI Generation Details",
        "",
        "| **Attribute** | **Value** |",
        "|:--------------|:----------|",
        f"| Model | {model} |",
        f"| Confidence Level | {label} |",
        f"| Confidence Context | {confidence_context(synth.confidence)} |",
        f"| Sources | {len(synth.sources)} |",
        f"| Generated | {generated} |",
        f"| Last Updated | {format_date(synth.updated_at)} |",
        "",
        "---",
        "",
        f"*AI specification synthesized from {len(synth.sources)} user specifications*",
        "",
    ]
    return "\n".join(lines)
