"""Text-generation engine registry keyed by provider name."""

from recording_processor.llm.interface import TextGenerationEngine
from recording_processor.llm.openai_chat import OpenAIChatEngine
from recording_processor.utils.errors import FatalWorkerError

LLM_ENGINES: dict[str, type[TextGenerationEngine]] = {
    "openai": OpenAIChatEngine,
}


def get_llm_engine(provider: str, **kwargs: object) -> TextGenerationEngine:
    """Create a text-generation engine instance by provider name.

    Raises:
        FatalWorkerError: If the provider name is not registered.
    """
    engine_cls = LLM_ENGINES.get(provider)
    if not engine_cls:
        available = ", ".join(sorted(LLM_ENGINES.keys()))
        raise FatalWorkerError(
            f"Unknown text-generation provider: '{provider}'. Available: {available}",
            provider=provider,
        )
    return engine_cls(**kwargs)
