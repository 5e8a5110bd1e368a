"""Speech-to-text engine registry with configuration-driven provider selection.

Maps provider name strings to engine classes. Use get_stt_engine() to
instantiate an engine by name with engine-specific configuration.
"""

from recording_processor.asr.huggingface import HuggingFaceEndpointEngine
from recording_processor.asr.interface import SpeechToTextEngine
from recording_processor.utils.errors import FatalWorkerError

STT_ENGINES: dict[str, type[SpeechToTextEngine]] = {
    "huggingface": HuggingFaceEndpointEngine,
}


def get_stt_engine(provider: str, **kwargs: object) -> SpeechToTextEngine:
    """Create a speech-to-text engine instance by provider name.

    Args:
        provider: Provider name (e.g., "huggingface").
        **kwargs: Engine-specific configuration passed to the constructor.

    Returns:
        An initialized SpeechToTextEngine instance.

    Raises:
        FatalWorkerError: If the provider name is not registered.
    """
    engine_cls = STT_ENGINES.get(provider)
    if not engine_cls:
        available = ", ".join(sorted(STT_ENGINES.keys()))
        raise FatalWorkerError(
            f"Unknown speech-to-text provider: '{provider}'. Available: {available}",
            provider=provider,
        )
    return engine_cls(**kwargs)
