"""Abstract speech-to-text engine interface.

Concrete implementations (e.g., HuggingFaceEndpointEngine) subclass
SpeechToTextEngine. Engines raise TransientWorkerError for conditions that
can clear on retry and FatalWorkerError for everything else; retrying is the
caller's job.
"""

from abc import ABC, abstractmethod


class SpeechToTextEngine(ABC):
    """Abstract base class for speech-to-text engine implementations."""

    provider_name: str = "unknown"

    @abstractmethod
    async def transcribe(self, audio: bytes, content_type: str) -> str:
        """Transcribe raw audio bytes and return the plain-text transcript.

        Args:
            audio: Raw bytes of the uploaded file.
            content_type: MIME type identifying the audio codec.

        Returns:
            Transcript text exactly as the worker produced it.
        """

    async def warm_up(self) -> bool:
        """Ask the endpoint to load its model ahead of real traffic.

        Returns:
            True when the endpoint reports ready. Engines without a
            warm-up concept are always ready.
        """
        return True
