"""
Completion Client
-----------------
Blocking text-completion client for OpenAI-compatible chat APIs.
API keys are never exposed to the LLM.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import os

import httpx


class LLMClientError(Exception):
    """A completion request failed (network, HTTP status, or response shape)."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class APIConfig:
    """Configuration for a completion endpoint."""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"  # Environment variable name (NOT the actual key)
    timeout_seconds: float = 60.0
    temperature: float = 0.0
    headers: Dict[str, str] = field(default_factory=dict)


class CompletionClient:
    """
    Chat-completions client exposing the planner's complete(prompt) call.

    Rules:
    - API key loaded from environment only
    - One request per complete() call, no retries
    - Every failure raises LLMClientError
    """

    def __init__(self, config: Optional[APIConfig] = None, transport: Optional[httpx.BaseTransport] = None):
        self.config = config or APIConfig()
        self._logger = logging.getLogger("followme.api.client")
        self._transport = transport

        self._api_key = os.getenv(self.config.api_key_env)
        if not self._api_key:
            self._logger.warning(f"API key not found: {self.config.api_key_env}")

    @property
    def is_configured(self) -> bool:
        return self._api_key is not None

    def _get_headers(self) -> Dict[str, str]:
        """Build request headers with authentication."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "followme/1.0",
        }
        headers.update(self.config.headers)

        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        return headers

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "temperature": self.config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

    def complete(self, prompt: str) -> str:
        """Send one prompt and return the first choice's message text."""
        if not self.is_configured:
            raise LLMClientError(f"API key not configured: {self.config.api_key_env}")

        url = f"{self.config.base_url.rstrip('/')}/chat/completions"
        start_time = datetime.now()

        try:
            with httpx.Client(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                response = client.post(url, json=self._payload(prompt), headers=self._get_headers())
        except httpx.TimeoutException as e:
            raise LLMClientError("Request timed out") from e
        except httpx.HTTPError as e:
            raise LLMClientError(f"Network error: {e}") from e

        response_time = (datetime.now() - start_time).total_seconds() * 1000
        self._logger.debug(f"Completion request took {response_time:.0f}ms (status {response.status_code})")

        if response.status_code == 429:
            raise LLMClientError("Rate limit exceeded", response.status_code)
        if response.status_code in (401, 403):
            raise LLMClientError("Authentication failed", response.status_code)
        if response.status_code != 200:
            raise LLMClientError(f"Unexpected status: {response.status_code}", response.status_code)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMClientError(f"Malformed completion response: {e}", response.status_code) from e

        if not isinstance(content, str):
            raise LLMClientError("Completion content is not text", response.status_code)
        return content


def create_client_from_settings(settings) -> CompletionClient:
    """Build a client from infra.config.LLMSettings."""
    return CompletionClient(APIConfig(
        base_url=settings.base_url,
        model=settings.model,
        api_key_env=settings.api_key_env,
        timeout_seconds=settings.timeout_seconds,
        temperature=settings.temperature,
    ))
