"""Configuration module for the video RAG service."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

DEFAULT_CAPTION_LANGUAGES = "en,en-US,en-GB,en-IN,hi,ta,te,bn,gu,kn,ml,mr,pa,ur"


def _split_languages(raw: str) -> list[str]:
    return [code.strip() for code in raw.split(",") if code.strip()]


class VideoRAGConfig(BaseModel):
    """Configuration for the video RAG service.

    This configuration class manages all settings for transcript acquisition,
    chunking, embedding, question answering and storage. All settings can be
    overridden via environment variables.
    """

    # Embedding settings
    embedding_provider: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_PROVIDER", "openai")
    )
    embedding_base_url: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_BASE_URL", "https://api.openai.com/v1"
        )
    )
    embedding_api_key: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_API_KEY")
        or os.getenv("OPENAI_API_KEY", "")
    )
    embedding_model: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_MODEL_CHOICE", "text-embedding-3-small"
        )
    )
    embedding_concurrency: int = Field(
        default_factory=lambda: int(os.getenv("EMBEDDING_CONCURRENCY", "5"))
    )

    # Chat model settings
    llm_model: str = Field(default_factory=lambda: os.getenv("LLM_CHOICE") or "gpt-4o-mini")
    llm_base_url: str = Field(
        default_factory=lambda: os.getenv("LLM_BASE_URL") or "https://api.openai.com/v1"
    )
    llm_api_key: str = Field(
        default_factory=lambda: os.getenv("LLM_API_KEY")
        or os.getenv("OPENAI_API_KEY", "")
    )

    # Transcript acquisition settings
    transcript_strategy: str = Field(
        default_factory=lambda: os.getenv("TRANSCRIPT_STRATEGY", "captions")
    )
    caption_languages: list[str] = Field(
        default_factory=lambda: _split_languages(
            os.getenv("CAPTION_LANGUAGES", DEFAULT_CAPTION_LANGUAGES)
        )
    )
    sarvam_api_key: str = Field(default_factory=lambda: os.getenv("SARVAM_API_KEY", ""))
    sarvam_base_url: str = Field(
        default_factory=lambda: os.getenv("SARVAM_BASE_URL", "https://api.sarvam.ai")
    )
    sarvam_model: str = Field(
        default_factory=lambda: os.getenv("SARVAM_MODEL", "saaras:v2.5")
    )
    audio_chunk_seconds: int = Field(
        default_factory=lambda: int(os.getenv("AUDIO_CHUNK_SECONDS", "29"))
    )
    transcription_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("TRANSCRIPTION_TIMEOUT_SECONDS", "60"))
    )
    subprocess_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SUBPROCESS_TIMEOUT_SECONDS", "300"))
    )
    temp_dir: str | None = Field(default_factory=lambda: os.getenv("TEMP_DIR") or None)

    # Chunking settings (word-based)
    chunk_target_words: int = Field(
        default_factory=lambda: int(os.getenv("CHUNK_TARGET_WORDS", "500"))
    )
    chunk_overlap_words: int = Field(
        default_factory=lambda: int(os.getenv("CHUNK_OVERLAP_WORDS", "50"))
    )

    # Retrieval settings
    relevance_threshold: float = Field(
        default_factory=lambda: float(os.getenv("RELEVANCE_THRESHOLD", "0.7"))
    )
    qa_top_k: int = Field(default_factory=lambda: int(os.getenv("QA_TOP_K", "5")))
    search_min_score: float = Field(
        default_factory=lambda: float(os.getenv("SEARCH_MIN_SCORE", "0.3"))
    )

    # Storage settings
    storage_backend: str = Field(
        default_factory=lambda: os.getenv("STORAGE_BACKEND", "memory")
    )
    supabase_url: str = Field(default_factory=lambda: os.getenv("SUPABASE_URL", ""))
    supabase_key: str = Field(
        default_factory=lambda: os.getenv("SUPABASE_SERVICE_KEY", "")
    )

    @property
    def audio_transcription_available(self) -> bool:
        """Whether the alternate transcription provider is configured."""
        return bool(self.sarvam_api_key)


def get_config() -> VideoRAGConfig:
    """Get validated configuration instance.

    Returns:
        VideoRAGConfig: Validated configuration object with all settings.

    Raises:
        ValidationError: If environment variables hold invalid values.
    """
    return VideoRAGConfig()
