"""Synthesis invocation: prompt, call, parse, validate.

  1. PROMPT: build system + user prompts from the sources
  2. INVOKE: one gateway call (the gateway owns retry/backoff)
  3. PARSE: extract the JSON object from the completion
  4. VALIDATE: field-by-field checks, then the typed SynthesisOutput

Parse and validation failures are final. The model is not re-prompted:
a malformed answer to a fixed prompt is a defect to surface, not a
transient condition.
"""

import asyncio
import time
from typing import Optional, Protocol, Sequence

from specsynth.errors import NoSourcesError, SpecSynthError
from specsynth.llm.parser import JSONExtractionError, extract_json
from specsynth.llm.validators import SynthesisValidationError, validate_synthesis
from specsynth.prompts.synthesis import build_system_prompt, build_user_prompt
from specsynth.schemas.domain import SourceSpecification
from specsynth.schemas.llm_outputs import SynthesisOutput
from specsynth.utils.logging import log, get_logger

MODULE = "llm.invoker"
logger = get_logger()


class CompletionGateway(Protocol):
    model: str

    async def generate_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        *,
        model: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str: ...


class InvalidModelJSONError(SpecSynthError):
    """The completion did not contain a JSON object."""

    def __init__(self, message: str, raw_output: Optional[str] = None):
        super().__init__(message)
        self.raw_output = raw_output


async def invoke_synthesis(
    sources: Sequence[SourceSpecification],
    gateway: CompletionGateway,
    *,
    model: Optional[str] = None,
    temperature: float = 0.3,
    max_tokens: int = 2048,
    cancel_event: Optional[asyncio.Event] = None,
) -> SynthesisOutput:
    """Synthesize sources into one validated SynthesisOutput.

    Raises:
        NoSourcesError: sources is empty (no gateway call is made).
        InvalidModelJSONError: completion is not a JSON object.
        SynthesisValidationError: a field is missing or out of range.
        LLMGatewayError subclasses: from the gateway.
    """
    if not sources:
        raise NoSourcesError("No source specifications provided for synthesis",
                             operation="synthesize")

    handle = sources[0].shopify_handle
    system_prompt = build_system_prompt()
    user_prompt = build_user_prompt(sources)

    log.info(logger, MODULE, "synthesis_start", "Requesting AI synthesis",
             shopify_handle=handle, sources=len(sources),
             prompt_length=len(user_prompt))

    _t0 = time.monotonic()
    raw = await gateway.generate_completion(
        system_prompt,
        user_prompt,
        temperature,
        max_tokens,
        model=model,
        cancel_event=cancel_event,
    )
    latency_ms = int((time.monotonic() - _t0) * 1000)

    try:
        parsed = extract_json(raw)
    except JSONExtractionError as e:
        log.error(logger, MODULE, "parse_failed", "AI synthesis returned invalid JSON",
                  error=str(e), shopify_handle=handle, raw=raw[:200])
        raise InvalidModelJSONError(f"AI synthesis returned invalid JSON: {e}",
                                    raw_output=raw) from e

    if not isinstance(parsed, dict):
        log.error(logger, MODULE, "parse_failed", "AI synthesis JSON is not an object",
                  shopify_handle=handle, json_type=type(parsed).__name__)
        raise InvalidModelJSONError("AI synthesis returned invalid JSON: expected an object",
                                    raw_output=raw)

    try:
        result = validate_synthesis(parsed)
    except SynthesisValidationError as e:
        log.error(logger, MODULE, "validation_failed", "AI synthesis failed validation",
                  error=str(e), field=e.field, shopify_handle=handle)
        raise

    log.info(logger, MODULE, "synthesis_done", "AI synthesis validated",
             shopify_handle=handle, latency_ms=latency_ms,
             star_rating=result.star_rating, confidence_level=result.confidence_level)
    return result
