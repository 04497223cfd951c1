"""Main pipeline orchestrator for video ingestion and question answering."""

import asyncio
import time

import httpx
from openai import AsyncOpenAI
from supabase import Client

from src.utils.logging import get_logger

from .audio_service import AudioService
from .chunking_service import ChunkingService
from .config import VideoRAGConfig, get_config
from .embedding_service import EmbeddingService
from .errors import EmptyTranscriptError
from .memory_storage import InMemoryStorageService
from .qa_service import QAService
from .repository import AnalysisRepository
from .schemas import (
    AnalysisResult,
    AnalysisStatus,
    Chunk,
    ChunkWithEmbedding,
    EnhancedQAResult,
    NewAnalysis,
    QAResult,
    QuestionRecord,
    SearchResult,
    VideoAnalysis,
)
from .storage_service import SupabaseStorageService
from .transcript_acquirer import TranscriptAcquirer
from .transcription_service import TranscriptionService
from .youtube_service import YouTubeService

logger = get_logger(__name__)


def build_storage(
    config: VideoRAGConfig, supabase_client: Client | None = None
) -> AnalysisRepository:
    """Create the storage backend selected by STORAGE_BACKEND.

    Raises:
        ValueError: If the backend name is unknown.
    """
    if config.storage_backend == "supabase":
        return SupabaseStorageService(config, client=supabase_client)
    if config.storage_backend == "memory":
        return InMemoryStorageService()
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")


class VideoAnalysisPipeline:
    """Coordinates acquisition, chunking, embedding, storage and QA.

    Every collaborator can be injected; anything omitted is built from the
    configuration. An HTTP client created here is owned by the pipeline and
    closed by ``aclose()``.
    """

    def __init__(
        self,
        config: VideoRAGConfig | None = None,
        *,
        storage: AnalysisRepository | None = None,
        acquirer: TranscriptAcquirer | None = None,
        chunking_service: ChunkingService | None = None,
        embedding_service: EmbeddingService | None = None,
        qa_service: QAService | None = None,
        http_client: httpx.AsyncClient | None = None,
        openai_client: AsyncOpenAI | None = None,
        supabase_client: Client | None = None,
    ):
        """Initialize pipeline with all required services.

        Args:
            config: Configuration object. If None, loads from environment.
        """
        self.config = config or get_config()
        self._owns_http_client = http_client is None and acquirer is None
        self.http_client = http_client
        if self._owns_http_client:
            self.http_client = httpx.AsyncClient(follow_redirects=True)

        self.storage = storage or build_storage(self.config, supabase_client)
        self.chunking_service = chunking_service or ChunkingService(self.config)
        self.embedding_service = embedding_service or EmbeddingService(
            self.config, client=openai_client
        )
        self.acquirer = acquirer or self._build_acquirer()
        self.qa_service = qa_service or QAService(
            self.config, self.storage, self.embedding_service
        )

        logger.info(
            "pipeline_initialized",
            storage_backend=type(self.storage).__name__,
            transcript_strategy=self.config.transcript_strategy,
            embedding_model=self.config.embedding_model,
        )

    def _build_acquirer(self) -> TranscriptAcquirer:
        audio_service = AudioService(self.config)
        return TranscriptAcquirer(
            self.config,
            YouTubeService(self.config, http_client=self.http_client),
            audio_service,
            TranscriptionService(self.config, self.http_client, audio_service),
        )

    async def aclose(self) -> None:
        if self._owns_http_client and self.http_client is not None:
            await self.http_client.aclose()

    async def ingest_video(
        self, video_url: str, user_id: int, strategy: str | None = None
    ) -> AnalysisResult:
        """Ingest a video: acquire, chunk, embed and store it.

        Args:
            video_url: YouTube URL.
            user_id: Owner of the new analysis.
            strategy: Transcript strategy override ("captions" or "audio").

        Returns:
            AnalysisResult for the completed analysis.

        Raises:
            InvalidUrlError, NoCaptionsAvailableError, VideoUnavailableError,
            AudioDownloadError, TranscriptionError: From acquisition; no
                analysis is created.
            EmptyTranscriptError: If the transcript text is blank.
            EmbeddingProviderError: If a chunk cannot be embedded. The
                analysis is left in the error state with chunks stored so far.
        """
        started = time.perf_counter()
        logger.info("ingestion_started", video_url=video_url, user_id=user_id)

        acquisition = await self.acquirer.acquire(video_url, strategy=strategy)
        video_info = acquisition.video_info
        transcript = acquisition.transcript

        if not transcript.text.strip():
            raise EmptyTranscriptError(
                "Transcript is empty. The video may not have any spoken content."
            )

        analysis = await self.storage.create_analysis(
            NewAnalysis(
                video_id=video_info.video_id,
                video_title=video_info.title,
                channel_name=video_info.channel_name,
                video_url=video_url,
                transcript=transcript.text,
                status=AnalysisStatus.PROCESSING,
            ),
            user_id,
        )

        chunks = self.chunking_service.chunk_transcript(transcript)
        try:
            stored = await self._embed_and_store(analysis.id, chunks)
        except Exception as e:
            logger.exception(
                "ingestion_failed",
                analysis_id=analysis.id,
                video_id=video_info.video_id,
                error_type=type(e).__name__,
            )
            try:
                await self.storage.update_analysis_status(
                    analysis.id, AnalysisStatus.ERROR, error_message=str(e)
                )
            except Exception as status_error:
                logger.error(
                    "analysis_status_update_failed",
                    analysis_id=analysis.id,
                    error_type=type(status_error).__name__,
                    error=str(status_error),
                )
            raise

        analysis = await self.storage.update_analysis_status(
            analysis.id, AnalysisStatus.COMPLETED
        )

        processing_time_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "ingestion_completed",
            analysis_id=analysis.id,
            video_id=video_info.video_id,
            chunks=len(stored),
            source=transcript.source,
            processing_time_ms=processing_time_ms,
        )
        return AnalysisResult(
            analysis_id=analysis.id,
            video_id=analysis.video_id,
            video_title=analysis.video_title,
            channel_name=analysis.channel_name,
            video_url=analysis.video_url,
            transcript=analysis.transcript,
            status=analysis.status,
            chunks=stored,
            segments=transcript.segments,
            processing_time_ms=processing_time_ms,
            embedding_model=self.embedding_service.model,
        )

    async def _embed_and_store(
        self, analysis_id: int, chunks: list[Chunk]
    ) -> list[ChunkWithEmbedding]:
        """Embed and persist chunks with bounded concurrency.

        All tasks settle before the first failure is re-raised. Results are
        returned in chunk order regardless of completion order.
        """
        semaphore = asyncio.Semaphore(max(1, self.config.embedding_concurrency))

        async def process(chunk: Chunk) -> ChunkWithEmbedding:
            async with semaphore:
                embedding = await self.embedding_service.embed_text(chunk.content)
                return await self.storage.create_chunk(
                    ChunkWithEmbedding(
                        **chunk.model_dump(),
                        analysis_id=analysis_id,
                        embedding=embedding,
                    )
                )

        results = await asyncio.gather(
            *(process(chunk) for chunk in chunks), return_exceptions=True
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.warning(
                "chunk_processing_failed",
                analysis_id=analysis_id,
                failed=len(errors),
                stored=len(results) - len(errors),
            )
            raise errors[0]
        return list(results)

    async def ask_question(self, analysis_id: int, question: str) -> QAResult:
        return await self.qa_service.answer_question(analysis_id, question)

    async def ask_question_with_citations(
        self, analysis_id: int, question: str
    ) -> EnhancedQAResult:
        return await self.qa_service.answer_with_citations(analysis_id, question)

    async def semantic_search(
        self, analysis_id: int, query: str, limit: int = 10
    ) -> list[SearchResult]:
        return await self.qa_service.semantic_search(analysis_id, query, limit=limit)

    async def get_analysis(self, analysis_id: int) -> VideoAnalysis | None:
        return await self.storage.get_analysis(analysis_id)

    async def list_analyses(self, user_id: int) -> list[VideoAnalysis]:
        return await self.storage.list_analyses(user_id)

    async def get_question_history(self, analysis_id: int) -> list[QuestionRecord]:
        return await self.qa_service.get_question_history(analysis_id)
