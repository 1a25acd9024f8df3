"""Anthropic Messages API client used for every chain step."""
from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Optional

import requests

from CELLMIND.analysis.chain import GenerationRequest
from CELLMIND.config.settings import Settings
from CELLMIND.interfaces.collaborators import CredentialStore
from CELLMIND.interfaces.errors import (
    CompletionError,
    HttpCompletionError,
    MalformedResponseError,
    MissingApiKeyError,
    TransportCompletionError,
)

logger = logging.getLogger(__name__)


class CompletionClient:
    """Sends one single-message completion request per call. Never retries."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.anthropic.com/v1/messages",
        anthropic_version: str = "2023-06-01",
        timeout: Optional[float] = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise MissingApiKeyError()
        self.api_key = api_key
        self.api_url = api_url
        self.anthropic_version = anthropic_version
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings, credential_store: Optional[CredentialStore] = None) -> "CompletionClient":
        api_key = (credential_store.get() if credential_store else None) or settings.anthropic_api_key
        if not api_key:
            raise MissingApiKeyError()
        return cls(
            api_key=api_key,
            api_url=settings.api_url,
            anthropic_version=settings.anthropic_version,
            timeout=settings.request_timeout,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.anthropic_version,
            "content-type": "application/json",
        }

    def _request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(self.api_url, headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Completion request failed before a response arrived: %s", exc)
            raise TransportCompletionError(exc) from exc

        logger.debug("Completion API answered %s", response.status_code)
        if response.status_code != 200:
            raise HttpCompletionError(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError("body is not JSON", response.text) from exc

    @staticmethod
    def _response_text(data: Any) -> str:
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, list) or not content:
            raise MalformedResponseError("no content blocks", str(data))
        first = content[0]
        text = first.get("text") if isinstance(first, dict) else None
        if not isinstance(text, str):
            raise MalformedResponseError("first content block has no text", str(data))
        return text

    def complete(self, request: GenerationRequest) -> str:
        logger.info(
            "Sending prompt to %s (%d chars, max_tokens=%d, temperature=%s)",
            request.model_id,
            len(request.prompt_text),
            request.max_tokens,
            request.temperature,
        )
        data = self._request(request.to_payload())
        return self._response_text(data)


class RetryingCompletionClient:
    """Caller-side retry policy: bounded exponential backoff on transient failures."""

    RETRYABLE_STATUS = 429

    def __init__(
        self,
        inner: CompletionClient,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.inner = inner
        self.max_retries = max(0, max_retries)
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter = jitter
        self.sleep = sleep

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-indexed), capped at max_delay_seconds."""
        delay = self.base_delay_seconds * (2**attempt)
        return min(delay, self.max_delay_seconds)

    def is_retryable(self, error: CompletionError) -> bool:
        if isinstance(error, TransportCompletionError):
            return True
        if isinstance(error, HttpCompletionError):
            return error.status_code >= 500 or error.status_code == self.RETRYABLE_STATUS
        return False

    def complete(self, request: GenerationRequest) -> str:
        for attempt in range(self.max_retries + 1):
            try:
                return self.inner.complete(request)
            except CompletionError as exc:
                if attempt >= self.max_retries or not self.is_retryable(exc):
                    raise
                delay = self.calculate_delay(attempt)
                if self.jitter:
                    delay += random.uniform(0, 1)
                logger.warning(
                    "Completion attempt %d/%d failed (%s); retrying in %.2fs",
                    attempt + 1,
                    self.max_retries + 1,
                    exc,
                    delay,
                )
                self.sleep(delay)
        raise AssertionError("unreachable")
