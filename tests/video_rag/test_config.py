"""Unit tests for video RAG configuration."""

import pytest

from src.video_rag.config import VideoRAGConfig, get_config

ENV_KEYS = [
    "EMBEDDING_PROVIDER",
    "EMBEDDING_BASE_URL",
    "EMBEDDING_API_KEY",
    "OPENAI_API_KEY",
    "EMBEDDING_MODEL_CHOICE",
    "EMBEDDING_CONCURRENCY",
    "LLM_CHOICE",
    "TRANSCRIPT_STRATEGY",
    "CAPTION_LANGUAGES",
    "SARVAM_API_KEY",
    "SARVAM_MODEL",
    "AUDIO_CHUNK_SECONDS",
    "CHUNK_TARGET_WORDS",
    "CHUNK_OVERLAP_WORDS",
    "RELEVANCE_THRESHOLD",
    "QA_TOP_K",
    "SEARCH_MIN_SCORE",
    "STORAGE_BACKEND",
]


@pytest.mark.unit
class TestVideoRAGConfig:
    """Test suite for VideoRAGConfig class."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Remove config variables so defaults are observable."""
        for key in ENV_KEYS:
            monkeypatch.delenv(key, raising=False)

    def test_config_with_defaults(self) -> None:
        """Test config creation with default values."""
        config = VideoRAGConfig()

        assert config.embedding_provider == "openai"
        assert config.embedding_model == "text-embedding-3-small"
        assert config.embedding_concurrency == 5
        assert config.llm_model == "gpt-4o-mini"
        assert config.transcript_strategy == "captions"
        assert config.sarvam_model == "saaras:v2.5"
        assert config.audio_chunk_seconds == 29
        assert config.chunk_target_words == 500
        assert config.chunk_overlap_words == 50
        assert config.relevance_threshold == 0.7
        assert config.qa_top_k == 5
        assert config.search_min_score == 0.3
        assert config.storage_backend == "memory"

    def test_default_caption_languages_start_with_english(self) -> None:
        """Test the caption language priority list."""
        config = VideoRAGConfig()

        assert config.caption_languages[:4] == ["en", "en-US", "en-GB", "en-IN"]
        assert "hi" in config.caption_languages
        assert "ur" in config.caption_languages

    def test_config_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test config loads from environment variables."""
        monkeypatch.setenv("EMBEDDING_PROVIDER", "ollama")
        monkeypatch.setenv("CAPTION_LANGUAGES", "fr, de ,,es")
        monkeypatch.setenv("RELEVANCE_THRESHOLD", "0.5")
        monkeypatch.setenv("QA_TOP_K", "3")
        monkeypatch.setenv("STORAGE_BACKEND", "supabase")

        config = VideoRAGConfig()

        assert config.embedding_provider == "ollama"
        assert config.caption_languages == ["fr", "de", "es"]
        assert config.relevance_threshold == 0.5
        assert config.qa_top_k == 3
        assert config.storage_backend == "supabase"

    def test_embedding_api_key_falls_back_to_openai_key(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test OPENAI_API_KEY is used when EMBEDDING_API_KEY is unset."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")

        assert VideoRAGConfig().embedding_api_key == "sk-openai"

        monkeypatch.setenv("EMBEDDING_API_KEY", "sk-embedding")
        assert VideoRAGConfig().embedding_api_key == "sk-embedding"

    def test_audio_transcription_available(self) -> None:
        """Test audio transcription availability follows the Sarvam key."""
        assert VideoRAGConfig(sarvam_api_key="").audio_transcription_available is False
        assert VideoRAGConfig(sarvam_api_key="key").audio_transcription_available is True

    def test_get_config_returns_instance(self) -> None:
        """Test get_config helper."""
        assert isinstance(get_config(), VideoRAGConfig)
