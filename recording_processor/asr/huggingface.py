"""Hugging Face inference endpoint speech-to-text engine.

Posts the raw audio body to a dedicated Whisper-style inference endpoint and
reads ``{"text": ...}`` back. Scaled-to-zero endpoints answer 503 while the
model loads, which is classified as transient.
"""

import logging

import httpx

from recording_processor.asr.interface import SpeechToTextEngine
from recording_processor.utils.classify import (
    classify_request_error,
    classify_response,
)
from recording_processor.utils.errors import FatalWorkerError

logger = logging.getLogger(__name__)

PROVIDER = "huggingface"


class HuggingFaceEndpointEngine(SpeechToTextEngine):
    """Speech-to-text via a Hugging Face inference endpoint.

    Args:
        endpoint_url: Full URL of the deployed endpoint.
        api_key: Hugging Face access token.
        timeout: Seconds to wait for a single transcription request.
        client: Optional shared AsyncClient (tests inject a mock transport).
    """

    provider_name = PROVIDER

    def __init__(
        self,
        endpoint_url: str,
        api_key: str,
        timeout: float = 300.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not endpoint_url:
            raise ValueError("endpoint_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        self._endpoint_url = endpoint_url
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def transcribe(self, audio: bytes, content_type: str) -> str:
        """Send one transcription request.

        Raises:
            TransientWorkerError: Endpoint overloaded, loading, or unreachable.
            FatalWorkerError: Any other non-2xx or a malformed body.
        """
        headers = {**self._headers(), "Content-Type": content_type or "audio/m4a"}
        try:
            if self._client is not None:
                response = await self._client.post(
                    self._endpoint_url,
                    headers=headers,
                    content=audio,
                    timeout=self._timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(
                        self._endpoint_url, headers=headers, content=audio
                    )
        except httpx.RequestError as exc:
            raise classify_request_error(exc, PROVIDER, "transcription") from exc

        if not response.is_success:
            raise classify_response(response, PROVIDER, "transcription")

        try:
            body = response.json()
        except ValueError as exc:
            raise FatalWorkerError(
                "Transcription response is not JSON",
                provider=PROVIDER,
                status_code=response.status_code,
            ) from exc

        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise FatalWorkerError(
                "Transcription response has no 'text' field",
                provider=PROVIDER,
                status_code=response.status_code,
            )

        logger.info("Transcribed %d bytes into %d characters", len(audio), len(text))
        return text

    async def warm_up(self) -> bool:
        """Ping the endpoint so a scaled-to-zero deployment starts loading."""
        try:
            if self._client is not None:
                response = await self._client.get(
                    self._endpoint_url, headers=self._headers()
                )
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.get(
                        self._endpoint_url, headers=self._headers()
                    )
        except httpx.RequestError as exc:
            logger.warning("Speech-to-text warm-up failed: %s", exc)
            return False

        if response.is_success:
            logger.info("Speech-to-text endpoint is ready")
            return True

        logger.warning(
            "Speech-to-text warm-up returned %d: %s",
            response.status_code,
            response.text[:200],
        )
        return False
