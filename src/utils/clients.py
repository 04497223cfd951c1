"""Client initialization utilities.

Provides functions for initializing external service clients
(OpenAI-compatible embeddings, HTTP, Supabase) shared by the services.
"""

import httpx
from openai import AsyncOpenAI
from supabase import Client, create_client

from src.video_rag.config import VideoRAGConfig


def get_embedding_client(config: VideoRAGConfig) -> AsyncOpenAI:
    """Build the OpenAI-compatible embedding client.

    Raises:
        ValueError: If a non-Ollama provider has no API key configured.
    """
    if config.embedding_provider == "ollama":
        return AsyncOpenAI(base_url=config.embedding_base_url, api_key="ollama")

    if not config.embedding_api_key:
        raise ValueError("EMBEDDING_API_KEY or OPENAI_API_KEY environment variable is required")
    return AsyncOpenAI(base_url=config.embedding_base_url, api_key=config.embedding_api_key)


def get_supabase_client(config: VideoRAGConfig) -> Client | None:
    """Build the Supabase client when the Supabase backend is selected.

    Raises:
        ValueError: If the backend is supabase but credentials are missing.
    """
    if config.storage_backend != "supabase":
        return None
    if not config.supabase_url or not config.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables are required"
        )
    return create_client(config.supabase_url, config.supabase_key)


def get_app_clients(
    config: VideoRAGConfig,
) -> tuple[AsyncOpenAI, httpx.AsyncClient, Client | None]:
    """Initialize and return embedding, HTTP and (optional) Supabase clients.

    Examples:
        >>> embedding_client, http_client, supabase = get_app_clients(get_config())
    """
    return (
        get_embedding_client(config),
        httpx.AsyncClient(follow_redirects=True),
        get_supabase_client(config),
    )
