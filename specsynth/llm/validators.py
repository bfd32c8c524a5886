"""Field validation for synthesis output.

The parsed completion is an untyped dict. validate_synthesis() checks every
field explicitly before a SynthesisOutput is built, so a bad value is
reported by name instead of as a generic schema error. All-or-nothing:
the first violation raises, nothing is partially accepted.

Numbers: JSON has no int type, so 4 and 4.0 are both accepted as 4.
Booleans are rejected where integers are expected (True is an int in
Python, not in the schema), and so is 3.5.
"""

from typing import Any

from pydantic import ValidationError

from specsynth.errors import SpecSynthError
from specsynth.schemas.llm_outputs import SynthesisOutput
from specsynth.utils.logging import log, get_logger

MODULE = "llm.validators"
logger = get_logger()

ATTRIBUTE_ID_FIELDS = (
    "grind_id",
    "nicotine_level_id",
    "moisture_level_id",
    "experience_level_id",
)
FLAG_FIELDS = ("is_fermented", "is_oral_tobacco", "is_artisan")
ID_SET_FIELDS = ("tasting_note_ids", "cure_ids", "tobacco_type_ids")


class SynthesisValidationError(SpecSynthError):
    """A field of the model's output is missing or out of range."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Invalid synthesis data: {field} {message}")
        self.field = field


def _as_int(value: Any):
    """Return value as int if it is an integral JSON number, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _int_in_range(data: dict, field: str, low: int, high: int) -> int:
    value = _as_int(data.get(field))
    if value is None or not low <= value <= high:
        raise SynthesisValidationError(field, f"must be an integer {low}-{high}")
    return value


def validate_synthesis(data: Any) -> SynthesisOutput:
    """Validate a parsed completion and build the typed result.

    Raises:
        SynthesisValidationError: naming the first offending field.
    """
    if not isinstance(data, dict):
        raise SynthesisValidationError("document", "must be a JSON object")

    review = data.get("review")
    if not isinstance(review, str) or not review.strip():
        raise SynthesisValidationError("review", "must be a non-empty string")

    clean = {
        "review": review,
        "star_rating": _int_in_range(data, "star_rating", 1, 5),
        "confidence_level": _int_in_range(data, "confidence_level", 1, 3),
    }

    for field in ATTRIBUTE_ID_FIELDS:
        value = _as_int(data.get(field))
        if value is None:
            raise SynthesisValidationError(field, "must be an integer id")
        clean[field] = value

    for field in FLAG_FIELDS:
        value = data.get(field)
        if not isinstance(value, bool):
            raise SynthesisValidationError(field, "must be a boolean")
        clean[field] = value

    for field in ID_SET_FIELDS:
        value = data.get(field, [])
        if not isinstance(value, list):
            raise SynthesisValidationError(field, "must be a list of integer ids")
        ids = []
        for item in value:
            item_id = _as_int(item)
            if item_id is None:
                raise SynthesisValidationError(field, "must be a list of integer ids")
            if item_id not in ids:
                ids.append(item_id)
        clean[field] = ids

    try:
        return SynthesisOutput.model_validate(clean)
    except ValidationError as e:
        # Unreachable while the checks above mirror the schema
        log.error(logger, MODULE, "schema_mismatch",
                  "Validated synthesis rejected by schema", error=str(e))
        raise SynthesisValidationError("document", f"failed schema validation: {e}") from e
