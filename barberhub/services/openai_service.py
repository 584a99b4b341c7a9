import logging
from typing import Any, Optional

import httpx

from ..config import (
    HTTP_TIMEOUT_SECONDS,
    OPENAI_API_KEY,
    OPENAI_API_URL,
    OPENAI_MODEL,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
    RETRY_TIME_BUDGET,
)
from ..shared.retry import retry_async

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class OpenAIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OpenAIRetryableError(OpenAIError):
    """Rate limit or server error from the completions endpoint"""


class OpenAIService:
    """Minimal chat-completions client with tool calling"""

    def __init__(
        self,
        api_key: Optional[str] = OPENAI_API_KEY,
        api_url: str = OPENAI_API_URL,
        model: str = OPENAI_MODEL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: int = RETRY_MAX_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.transport = transport
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def chat(self, messages: list[dict], tools: Optional[list[dict]] = None) -> dict[str, Any]:
        """Return the first choice's message (content and optional tool_calls)"""
        if not self.api_key:
            raise OpenAIError("OPENAI_API_KEY not configured")

        body: dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"

        async def attempt():
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = await client.post(
                    self.api_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
            if response.status_code in RETRYABLE_STATUS:
                raise OpenAIRetryableError(
                    f"OpenAI returned {response.status_code}", response.status_code
                )
            if response.status_code != 200:
                logger.error(f"❌ OpenAI request failed: {response.status_code} {response.text}")
                raise OpenAIError(f"OpenAI returned {response.status_code}", response.status_code)
            return response.json()

        data = await retry_async(
            attempt,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            time_budget=RETRY_TIME_BUDGET,
            retry_on=(httpx.TransportError, OpenAIRetryableError),
            description="openai chat completion",
        )
        choices = data.get("choices") or []
        if not choices:
            raise OpenAIError("OpenAI response has no choices")
        return choices[0].get("message") or {}
