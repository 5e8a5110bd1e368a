"""Abstract text-generation engine interface.

Engines return the raw message content; parsing and validating it is the
analysis stage's job so that malformed output is reported separately from
communication failures.
"""

from abc import ABC, abstractmethod


class TextGenerationEngine(ABC):
    """Abstract base class for chat-style text generation engines."""

    provider_name: str = "unknown"

    @abstractmethod
    async def complete(self, system_prompt: str, user_content: str) -> str:
        """Run one chat completion and return the assistant message content.

        Raises:
            TransientWorkerError: Endpoint overloaded or unreachable.
            FatalWorkerError: Any other failure to obtain a message.
        """
