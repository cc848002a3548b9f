from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

FAILURE_UNCONFIGURED = "unconfigured"
FAILURE_QUOTA = "quota"
FAILURE_INVALID_CREDENTIAL = "invalid_credential"
FAILURE_NETWORK = "network"
FAILURE_EMPTY = "empty"
FAILURE_PROVIDER = "provider_error"

FAILURE_REASONS = {
    FAILURE_UNCONFIGURED,
    FAILURE_QUOTA,
    FAILURE_INVALID_CREDENTIAL,
    FAILURE_NETWORK,
    FAILURE_EMPTY,
    FAILURE_PROVIDER,
}

DEFAULT_RETRIES = 3
DEFAULT_BASE_DELAY_SECONDS = 2.0


@dataclass(frozen=True)
class AIResult:
    ok: bool
    text: str = ""
    failure: str | None = None
    detail: str = ""
    attempts: int = 1

    @classmethod
    def success(cls, text: str, attempts: int = 1) -> "AIResult":
        return cls(ok=True, text=text, attempts=attempts)

    @classmethod
    def failed(cls, failure: str, detail: str = "", attempts: int = 1) -> "AIResult":
        if failure not in FAILURE_REASONS:
            raise ValueError(f"unknown failure reason: {failure}")
        return cls(ok=False, failure=failure, detail=detail, attempts=attempts)


class ProviderError(Exception):
    def __init__(self, failure: str, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.failure = failure
        self.detail = detail
        self.status_code = status_code


def _provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


def classify_provider_failure(status_code: int, message: str) -> str:
    lowered = message.lower()
    if status_code == 429 or "quota" in lowered or "resource_exhausted" in lowered:
        return FAILURE_QUOTA
    if status_code in {401, 403} or "api key" in lowered:
        return FAILURE_INVALID_CREDENTIAL
    return FAILURE_PROVIDER


def _coerce_gemini_text(response_json: dict[str, Any]) -> str:
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        return ""
    parts: list[str] = []
    for item in content.get("parts") or []:
        if isinstance(item, dict):
            text_value = item.get("text")
            if isinstance(text_value, str):
                parts.append(text_value)
    return "".join(parts).strip()


class GeminiGateway:
    """Single-request client for the Gemini ``generateContent`` endpoint.

    Rate-limit and quota failures are retried ``retries`` times, sleeping
    ``base_delay`` seconds first and doubling after each attempt. Every
    other failure is returned immediately as a failed :class:`AIResult`.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float = 30.0,
        retries: int = DEFAULT_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self.base_delay = base_delay
        self._sleep = sleep

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _call(self, prompt: str) -> str:
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            with httpx.Client(timeout=httpx.Timeout(self.timeout_seconds, connect=8.0)) as client:
                response = client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise ProviderError(FAILURE_NETWORK, "Model provider timed out.") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(FAILURE_NETWORK, f"Failed to reach model provider: {exc}") from exc

        if response.status_code >= 400:
            message = _provider_error_message(response)
            failure = classify_provider_failure(response.status_code, message)
            raise ProviderError(failure, message, response.status_code)

        try:
            completion = response.json()
        except ValueError as exc:
            raise ProviderError(FAILURE_PROVIDER, "Model provider returned invalid JSON.") from exc
        return _coerce_gemini_text(completion if isinstance(completion, dict) else {})

    def generate(self, prompt: str) -> AIResult:
        if not self.configured:
            logger.warning("model call skipped: GEMINI_API_KEY is not configured")
            return AIResult.failed(FAILURE_UNCONFIGURED, "Model API key is not configured.", attempts=0)

        delay = self.base_delay
        attempt = 0
        while True:
            attempt += 1
            try:
                text = self._call(prompt)
            except ProviderError as exc:
                retries_left = self.retries - (attempt - 1)
                if exc.failure == FAILURE_QUOTA and retries_left > 0:
                    logger.info(
                        "rate limit hit, retrying in %.1fs (%d retries left)",
                        delay,
                        retries_left,
                    )
                    self._sleep(delay)
                    delay *= 2
                    continue
                logger.error("model call failed (%s): %s", exc.failure, exc.detail)
                return AIResult.failed(exc.failure, exc.detail, attempts=attempt)
            if not text:
                return AIResult.failed(FAILURE_EMPTY, "Model returned an empty response.", attempts=attempt)
            return AIResult.success(text, attempts=attempt)
