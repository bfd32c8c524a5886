"""JSON extraction from LLM completions.

Models are told to answer with bare JSON but sometimes wrap it in a
markdown fence or add a sentence around it. extract_json() finds the JSON
value in such text. It never repairs JSON: a malformed object fails.
"""

import json
import re
from typing import Any

from specsynth.utils.logging import log, get_logger

MODULE = "llm.parser"
logger = get_logger()

CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)

_decoder = json.JSONDecoder()


class JSONExtractionError(Exception):
    """No JSON value could be read from the completion."""

    def __init__(self, message: str, raw_output: str):
        super().__init__(message)
        self.raw_output = raw_output


def _loads(text: str):
    try:
        return True, json.loads(text)
    except json.JSONDecodeError:
        return False, None


def _embedded_object(text: str):
    """First '{' from which a complete JSON object decodes."""
    for brace in re.finditer(r"\{", text):
        try:
            value, _ = _decoder.raw_decode(text, brace.start())
        except json.JSONDecodeError:
            continue
        return True, value
    return False, None


def extract_json(raw: str) -> Any:
    """Return the JSON value carried by a completion.

    Tried in order: the whole text, the first ``` fence, then the first
    object embedded in surrounding prose.

    Raises:
        JSONExtractionError: none of the above decodes.
    """
    text = raw.strip()

    found, value = _loads(text)
    if found:
        return value

    fence = CODE_FENCE.search(text)
    if fence:
        found, value = _loads(fence.group(1))
        if found:
            return value

    found, value = _embedded_object(text)
    if found:
        log.debug(logger, MODULE, "extracted_embedded", "JSON object found inside prose",
                  raw_length=len(text))
        return value

    raise JSONExtractionError(
        f"Could not extract valid JSON from LLM output ({len(text)} chars)",
        raw_output=raw,
    )
