"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from recording_processor.utils.retry import RetryPolicy


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


@dataclass
class PipelineConfig:
    """Settings for the pipeline and the clients it builds.

    Empty strings mean "not configured"; clients raise on construction
    when a value they need is missing.
    """

    s3_endpoint: str = ""
    s3_bucket: str = "audio"
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    supabase_url: str = ""
    supabase_key: str = ""
    stt_provider: str = "huggingface"
    stt_endpoint_url: str = ""
    stt_api_key: str = ""
    stt_timeout: float = 300.0
    llm_provider: str = "openai"
    llm_api_key: str = ""
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_timeout: float = 120.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Build a config from the process environment."""
        return cls(
            s3_endpoint=os.environ.get("S3_ENDPOINT", ""),
            s3_bucket=os.environ.get("S3_BUCKET", "audio"),
            s3_access_key_id=os.environ.get("S3_ACCESS_KEY_ID", ""),
            s3_secret_access_key=os.environ.get("S3_SECRET_ACCESS_KEY", ""),
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            stt_provider=os.environ.get("STT_PROVIDER", "huggingface"),
            stt_endpoint_url=os.environ.get("STT_ENDPOINT_URL", ""),
            stt_api_key=os.environ.get("HUGGINGFACE_API_KEY", ""),
            stt_timeout=_env_float("STT_TIMEOUT", 300.0),
            llm_provider=os.environ.get("LLM_PROVIDER", "openai"),
            llm_api_key=os.environ.get("OPENAI_API_KEY", ""),
            llm_base_url=os.environ.get(
                "OPENAI_BASE_URL", "https://api.openai.com/v1"
            ),
            llm_model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
            llm_timeout=_env_float("LLM_TIMEOUT", 120.0),
            retry_policy=RetryPolicy(
                max_attempts=_env_int("RETRY_MAX_ATTEMPTS", 3),
                base_delay=_env_float("RETRY_BASE_DELAY", 1.0),
                max_delay=_env_float("RETRY_MAX_DELAY", 30.0),
            ),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )
