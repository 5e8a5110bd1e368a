"""OpenAI-compatible chat completions engine."""

import logging

import httpx

from recording_processor.llm.interface import TextGenerationEngine
from recording_processor.utils.classify import (
    classify_request_error,
    classify_response,
)
from recording_processor.utils.errors import FatalWorkerError

logger = logging.getLogger(__name__)

PROVIDER = "openai"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIChatEngine(TextGenerationEngine):
    """Text generation via the ``/chat/completions`` endpoint.

    Args:
        api_key: API key for bearer authentication.
        model: Model name sent with every request.
        base_url: API base URL; any OpenAI-compatible server works.
        timeout: Seconds to wait for a completion.
        client: Optional shared AsyncClient.
    """

    provider_name = PROVIDER

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def complete(self, system_prompt: str, user_content: str) -> str:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "response_format": {"type": "json_object"},
        }
        url = f"{self._base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, headers=headers, json=payload, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.RequestError as exc:
            raise classify_request_error(exc, PROVIDER, "chat completion") from exc

        if not response.is_success:
            raise classify_response(response, PROVIDER, "chat completion")

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise FatalWorkerError(
                f"Chat completion response has unexpected shape: {exc}",
                provider=PROVIDER,
                status_code=response.status_code,
            ) from exc

        if not isinstance(content, str):
            raise FatalWorkerError(
                "Chat completion returned no message content",
                provider=PROVIDER,
                status_code=response.status_code,
            )

        usage = body.get("usage") or {}
        logger.info(
            "Chat completion finished (model=%s, total_tokens=%s)",
            self._model,
            usage.get("total_tokens", "?"),
        )
        return content
