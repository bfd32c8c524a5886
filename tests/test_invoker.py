"""Tests for JSON extraction, output validation and the synthesis invoker."""

import json

import pytest

from specsynth.errors import NoSourcesError
from specsynth.llm.client import LLMRetriesExhaustedError
from specsynth.llm.backoff import UpstreamError
from specsynth.llm.invoker import InvalidModelJSONError, invoke_synthesis
from specsynth.llm.parser import JSONExtractionError, extract_json
from specsynth.llm.validators import SynthesisValidationError, validate_synthesis

from conftest import StubGateway, make_source, synthesis_json, synthesis_payload


# --- extract_json ---

def test_extract_plain_json():
    assert extract_json('{"a": 1}') == {"a": 1}


def test_extract_fenced_json():
    assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}


def test_extract_with_preamble():
    raw = 'Here is the synthesis:\n{"review": "has {braces} inside", "n": 2}\nThanks!'
    assert extract_json(raw) == {"review": "has {braces} inside", "n": 2}


def test_extract_garbage():
    with pytest.raises(JSONExtractionError) as exc_info:
        extract_json("I cannot help with that.")
    assert exc_info.value.raw_output == "I cannot help with that."


# --- validate_synthesis ---

def test_validate_accepts_payload():
    output = validate_synthesis(synthesis_payload())
    assert output.star_rating == 4
    assert output.tasting_note_ids == [1, 5]
    assert output.confidence_level == 2


def test_validate_accepts_integral_floats():
    output = validate_synthesis(synthesis_payload(star_rating=4.0, grind_id=2.0))
    assert output.star_rating == 4
    assert output.grind_id == 2


def test_validate_keeps_review_text_as_received():
    output = validate_synthesis(synthesis_payload(review="  Balanced.\n"))
    assert output.review == "  Balanced.\n"


def test_validate_deduplicates_ids():
    output = validate_synthesis(synthesis_payload(cure_ids=[2, 2, 1]))
    assert output.cure_ids == [2, 1]


@pytest.mark.parametrize("value", [0, 6, 3.5, True, "4", None])
def test_validate_rejects_star_rating(value):
    with pytest.raises(SynthesisValidationError) as exc_info:
        validate_synthesis(synthesis_payload(star_rating=value))
    assert exc_info.value.field == "star_rating"
    assert str(exc_info.value).startswith("Invalid synthesis data: star_rating")


@pytest.mark.parametrize("value", [0, 4])
def test_validate_rejects_confidence(value):
    with pytest.raises(SynthesisValidationError) as exc_info:
        validate_synthesis(synthesis_payload(confidence_level=value))
    assert exc_info.value.field == "confidence_level"


@pytest.mark.parametrize("value", ["", "   ", None, 5])
def test_validate_rejects_review(value):
    with pytest.raises(SynthesisValidationError) as exc_info:
        validate_synthesis(synthesis_payload(review=value))
    assert exc_info.value.field == "review"


def test_validate_rejects_missing_attribute():
    payload = synthesis_payload()
    del payload["moisture_level_id"]
    with pytest.raises(SynthesisValidationError) as exc_info:
        validate_synthesis(payload)
    assert exc_info.value.field == "moisture_level_id"


def test_validate_rejects_non_boolean_flag():
    with pytest.raises(SynthesisValidationError) as exc_info:
        validate_synthesis(synthesis_payload(is_artisan="yes"))
    assert exc_info.value.field == "is_artisan"


def test_validate_rejects_bad_id_list():
    with pytest.raises(SynthesisValidationError) as exc_info:
        validate_synthesis(synthesis_payload(tobacco_type_ids=[1, "two"]))
    assert exc_info.value.field == "tobacco_type_ids"


# --- invoke_synthesis ---

@pytest.mark.asyncio
async def test_invoke_empty_sources_makes_no_call():
    gateway = StubGateway(response=synthesis_json())
    with pytest.raises(NoSourcesError):
        await invoke_synthesis([], gateway)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_invoke_returns_validated_output():
    gateway = StubGateway(response=synthesis_json(review="Great.", star_rating=5))
    sources = [make_source(1), make_source(2, star_rating=5)]

    result = await invoke_synthesis(sources, gateway, model="override-model")

    assert result.review == "Great."
    assert result.star_rating == 5
    assert len(gateway.calls) == 1
    call = gateway.calls[0]
    assert call["model"] == "override-model"
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 2048
    assert "Total specifications to synthesize: 2" in call["user_prompt"]


@pytest.mark.asyncio
async def test_invoke_accepts_fenced_completion():
    gateway = StubGateway(response="```json\n" + synthesis_json() + "\n```")
    result = await invoke_synthesis([make_source(1), make_source(2)], gateway)
    assert result.confidence_level == 2


@pytest.mark.asyncio
async def test_invoke_invalid_json():
    gateway = StubGateway(response="Sorry, no JSON today")
    with pytest.raises(InvalidModelJSONError) as exc_info:
        await invoke_synthesis([make_source(1), make_source(2)], gateway)
    assert exc_info.value.raw_output == "Sorry, no JSON today"
    assert len(gateway.calls) == 1


@pytest.mark.asyncio
async def test_invoke_json_array_rejected():
    gateway = StubGateway(response=json.dumps([synthesis_payload()]))
    with pytest.raises(InvalidModelJSONError):
        await invoke_synthesis([make_source(1), make_source(2)], gateway)


@pytest.mark.asyncio
async def test_invoke_validation_error_propagates():
    gateway = StubGateway(response=synthesis_json(star_rating=6))
    with pytest.raises(SynthesisValidationError):
        await invoke_synthesis([make_source(1), make_source(2)], gateway)


@pytest.mark.asyncio
async def test_invoke_gateway_error_propagates():
    error = LLMRetriesExhaustedError(UpstreamError("overloaded_error", "Overloaded", 529), attempts=3)
    gateway = StubGateway(error=error)
    with pytest.raises(LLMRetriesExhaustedError):
        await invoke_synthesis([make_source(1), make_source(2)], gateway)
