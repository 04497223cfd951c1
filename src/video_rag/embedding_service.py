"""Embedding service for generating text embeddings via OpenAI-compatible APIs."""

import math

import openai
from openai import AsyncOpenAI

from src.utils.logging import get_logger

from .config import VideoRAGConfig
from .errors import EmbeddingProviderError, ProviderResponseError

logger = get_logger(__name__)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity between two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        ValueError: If the vectors have different lengths.

    Examples:
        >>> cosine_similarity([1.0, 0.0], [1.0, 0.0])
        1.0
        >>> cosine_similarity([1.0, 0.0], [0.0, 0.0])
        0.0
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


class EmbeddingService:
    """Service for generating text embeddings.

    Supports OpenAI and Ollama (or any other OpenAI-compatible endpoint).
    Questions and transcript chunks must be embedded with the same model so
    their vectors are comparable.
    """

    def __init__(self, config: VideoRAGConfig, client: AsyncOpenAI | None = None):
        """Initialize embedding service with configuration.

        Args:
            config: Configuration object with embedding provider settings.
            client: Pre-built client to reuse (created from config if omitted).
        """
        self.config = config
        self.client = client or self._get_client()
        logger.info(
            "embedding_service_initialized",
            provider=config.embedding_provider,
            model=config.embedding_model,
            base_url=config.embedding_base_url,
        )

    @property
    def model(self) -> str:
        return self.config.embedding_model

    def _get_client(self) -> AsyncOpenAI:
        if self.config.embedding_provider == "ollama":
            # Ollama ignores the key but the client requires one
            return AsyncOpenAI(
                base_url=self.config.embedding_base_url,
                api_key="ollama",
            )
        return AsyncOpenAI(
            base_url=self.config.embedding_base_url,
            api_key=self.config.embedding_api_key,
        )

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text content to embed.

        Returns:
            Embedding vector as a list of floats.

        Raises:
            EmbeddingProviderError: On transport, auth or quota failures.
            ProviderResponseError: If the response carries no usable vector.
        """
        try:
            response = await self.client.embeddings.create(
                input=text,
                model=self.config.embedding_model,
            )
        except openai.OpenAIError as e:
            logger.exception(
                "embedding_failed",
                text_length=len(text),
                error_type=type(e).__name__,
            )
            raise EmbeddingProviderError(f"Failed to generate embedding: {e}") from e

        embedding = _validate_embedding(response)
        logger.debug(
            "embedding_generated",
            text_length=len(text),
            embedding_dim=len(embedding),
        )
        return embedding


def _validate_embedding(response) -> list[float]:
    data = getattr(response, "data", None)
    if not data:
        raise ProviderResponseError("Embedding response contained no data")

    vector = getattr(data[0], "embedding", None)
    if not isinstance(vector, list) or not vector:
        raise ProviderResponseError("Embedding response contained no vector")
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in vector):
        raise ProviderResponseError("Embedding vector contains non-numeric values")
    return [float(x) for x in vector]
