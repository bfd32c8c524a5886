"""LLM invocation package.

  from specsynth.llm import LLMGateway, invoke_synthesis

  gateway = LLMGateway()
  result = await invoke_synthesis(sources, gateway)

Architecture:
  backoff.py    → pure retry policy (classify, should_retry, backoff_delay)
  client.py     → LLMGateway: one completion call with bounded retry
  parser.py     → JSON extraction from raw LLM output
  validators.py → field-by-field validation of the untrusted output
  invoker.py    → prompt → call → parse → validate

Retry lives in exactly one place (the gateway). Parse and validation
failures are final.
"""

from specsynth.llm.backoff import (
    ErrorClass,
    RetryState,
    UpstreamError,
    backoff_delay,
    classify,
    should_retry,
)

from specsynth.llm.client import (
    LLMGateway,
    LLMGatewayError,
    LLMConfigurationError,
    LLMUpstreamError,
    LLMEmptyResponseError,
    LLMRetriesExhaustedError,
    LLMCancelledError,
    get_gateway,
)

from specsynth.llm.parser import extract_json, JSONExtractionError

from specsynth.llm.validators import validate_synthesis, SynthesisValidationError

from specsynth.llm.invoker import (
    CompletionGateway,
    InvalidModelJSONError,
    invoke_synthesis,
)

__all__ = [
    # Backoff
    "ErrorClass",
    "RetryState",
    "UpstreamError",
    "backoff_delay",
    "classify",
    "should_retry",
    # Gateway
    "LLMGateway",
    "LLMGatewayError",
    "LLMConfigurationError",
    "LLMUpstreamError",
    "LLMEmptyResponseError",
    "LLMRetriesExhaustedError",
    "LLMCancelledError",
    "get_gateway",
    # Parser
    "extract_json",
    "JSONExtractionError",
    # Validators
    "validate_synthesis",
    "SynthesisValidationError",
    # Invoker
    "CompletionGateway",
    "InvalidModelJSONError",
    "invoke_synthesis",
]
