"""LLM gateway.

One call, "create completion", against a messages-style completion API:

  POST {LLM_API_URL}/messages
  {model, max_tokens, temperature, system, messages: [{role: "user", content}]}

Failures are decoded from {error: {type, message}} and run through the
backoff policy (llm.backoff). Transient failures are retried up to
LLM_MAX_ATTEMPTS times with exponential backoff; everything else is raised
immediately. The caller gets either a non-empty completion string or an
exception, never a partial result.

  gateway = LLMGateway()
  text = await gateway.generate_completion(system, user)
"""

import asyncio
import os
import time
from typing import Awaitable, Callable, Optional

import httpx

from specsynth.errors import SpecSynthError
from specsynth.llm.backoff import (
    ErrorClass,
    RetryState,
    UpstreamError,
    backoff_delay,
    classify,
    should_retry,
)
from specsynth.utils.logging import log, get_logger

MODULE = "llm.client"
logger = get_logger()

LLM_API_URL = os.getenv("LLM_API_URL", "https://api.anthropic.com/v1")
LLM_API_KEY = os.getenv("LLM_API_KEY", os.getenv("ANTHROPIC_API_KEY", ""))
LLM_API_VERSION = os.getenv("LLM_API_VERSION", "2023-06-01")
LLM_MODEL = os.getenv("LLM_MODEL", "claude-3-5-sonnet-20241022")
LLM_MAX_ATTEMPTS = int(os.getenv("LLM_MAX_ATTEMPTS", "3"))
LLM_RETRY_BASE_MS = float(os.getenv("LLM_RETRY_BASE_MS", "1000"))
LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", "60"))

Sleep = Callable[[float], Awaitable[None]]


class LLMGatewayError(SpecSynthError):
    """Base for gateway failures."""


class LLMConfigurationError(LLMGatewayError):
    """No API key configured."""


class LLMUpstreamError(LLMGatewayError):
    """Provider returned a fatal (non-retryable) error."""

    def __init__(self, error: UpstreamError):
        super().__init__(f"LLM API error: {error}")
        self.upstream = error


class LLMEmptyResponseError(LLMGatewayError):
    """Provider answered 2xx with no text content."""


class LLMRetriesExhaustedError(LLMGatewayError):
    """Every attempt failed with a transient error."""

    def __init__(self, error: UpstreamError, attempts: int):
        super().__init__(f"LLM API failed after {attempts} attempts. Last error: {error}")
        self.upstream = error
        self.attempts = attempts


class LLMCancelledError(LLMGatewayError):
    """The caller's cancellation signal fired before a completion arrived."""


class LLMGateway:
    """Retrying client for the completion endpoint.

    Args:
        client: httpx.AsyncClient to send requests with. Defaults to a new
            client per call. Tests pass one built on httpx.MockTransport.
        sleep: coroutine used for backoff waits (default asyncio.sleep).
        rand: jitter source for backoff_delay.
    """

    def __init__(
        self,
        *,
        api_url: str = LLM_API_URL,
        api_key: Optional[str] = None,
        api_version: str = LLM_API_VERSION,
        model: str = LLM_MODEL,
        max_attempts: int = LLM_MAX_ATTEMPTS,
        retry_base_ms: float = LLM_RETRY_BASE_MS,
        timeout_s: float = LLM_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        rand: Optional[Callable[[], float]] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = LLM_API_KEY if api_key is None else api_key
        self.api_version = api_version
        self.model = model
        self.max_attempts = max(1, max_attempts)
        self.retry_base_ms = retry_base_ms
        self.timeout_s = timeout_s
        self._client = client
        self._sleep = sleep
        self._rand = rand

    def _headers(self) -> dict:
        if not self.api_key:
            raise LLMConfigurationError("LLM_API_KEY environment variable not set")
        return {
            "content-type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
        }

    async def generate_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        *,
        model: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """Return the text of the first content block.

        Raises:
            LLMConfigurationError: no API key.
            LLMUpstreamError: fatal provider error (e.g. invalid_request_error).
            LLMEmptyResponseError: 2xx with no content.
            LLMRetriesExhaustedError: transient failures used up the budget.
            LLMCancelledError: cancel_event was set.
        """
        headers = self._headers()
        payload = {
            "model": model or self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }

        if self._client is not None:
            return await self._run(self._client, headers, payload, cancel_event)
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            return await self._run(client, headers, payload, cancel_event)

    async def _run(
        self,
        client: httpx.AsyncClient,
        headers: dict,
        payload: dict,
        cancel_event: Optional[asyncio.Event],
    ) -> str:
        state = RetryState()

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise LLMCancelledError("LLM call cancelled before attempt "
                                        f"{state.attempt + 1}")

            _t0 = time.monotonic()
            text, error = await self._attempt(client, headers, payload)
            latency_ms = int((time.monotonic() - _t0) * 1000)

            if error is None:
                log.debug(logger, MODULE, "completion_done", "LLM completion received",
                          model=payload["model"], attempt=state.attempt + 1,
                          latency_ms=latency_ms, length=len(text))
                return text

            classification = classify(error)
            if not should_retry(classification, state.attempt, self.max_attempts):
                log.error(logger, MODULE, "completion_failed", "LLM completion failed",
                          error=error.message, error_type=error.type,
                          status=error.status, attempt=state.attempt + 1,
                          classification=classification.value)
                if classification is ErrorClass.FATAL:
                    raise LLMUpstreamError(error)
                raise LLMRetriesExhaustedError(error, attempts=state.attempt + 1)

            delay_ms = self._delay_ms(state.attempt)
            log.warning(logger, MODULE, "completion_retry", "Transient LLM failure, backing off",
                        error_type=error.type, status=error.status,
                        attempt=state.attempt + 1, delay_ms=int(delay_ms))
            await self._wait(delay_ms / 1000, cancel_event)
            state = state.advance(error)

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        headers: dict,
        payload: dict,
    ) -> tuple[str, Optional[UpstreamError]]:
        """One HTTP round trip. Returns (text, None) or ("", failure)."""
        try:
            resp = await client.post(
                f"{self.api_url}/messages",
                json=payload,
                headers=headers,
                timeout=self.timeout_s,
            )
        except httpx.TransportError as e:
            return "", UpstreamError(type="network_error", message=str(e) or type(e).__name__)

        if not resp.is_success:
            return "", _decode_error(resp)

        try:
            data = resp.json()
        except ValueError:
            return "", UpstreamError(type="api_error", message="Undecodable response body",
                                     status=resp.status_code)

        content = data.get("content") if isinstance(data, dict) else None
        if not content:
            raise LLMEmptyResponseError("LLM API returned empty response")
        text = content[0].get("text") if isinstance(content[0], dict) else None
        if not text:
            raise LLMEmptyResponseError("LLM API returned empty response")
        return text, None

    def _delay_ms(self, attempt_index: int) -> float:
        if self._rand is None:
            return backoff_delay(attempt_index, self.retry_base_ms)
        return backoff_delay(attempt_index, self.retry_base_ms, rand=self._rand)

    async def _wait(self, seconds: float, cancel_event: Optional[asyncio.Event]) -> None:
        """Sleep for the backoff, waking early if cancel_event fires."""
        if cancel_event is None:
            await self._sleep(seconds)
            return
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()
        if cancel_event.is_set():
            raise LLMCancelledError("LLM call cancelled during backoff")
        sleeper.result()


def _decode_error(resp: httpx.Response) -> UpstreamError:
    """Read {error: {type, message}} from a non-2xx response."""
    error_type = "api_error"
    message = f"HTTP {resp.status_code}: {resp.reason_phrase}"
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error_type = body["error"].get("type") or error_type
        message = body["error"].get("message") or message
    return UpstreamError(type=error_type, message=message, status=resp.status_code)


_default_gateway: Optional[LLMGateway] = None


def get_gateway() -> LLMGateway:
    """Gateway configured from the environment. FastAPI dependency."""
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = LLMGateway()
        log.debug(logger, MODULE, "gateway_init", "LLM gateway created",
                  api_url=_default_gateway.api_url, model=_default_gateway.model,
                  max_attempts=_default_gateway.max_attempts)
    return _default_gateway
