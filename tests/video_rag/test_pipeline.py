"""Unit tests for the video analysis pipeline."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.video_rag.chunking_service import ChunkingService
from src.video_rag.config import VideoRAGConfig
from src.video_rag.errors import (
    EmbeddingProviderError,
    EmptyTranscriptError,
    NoCaptionsAvailableError,
)
from src.video_rag.memory_storage import InMemoryStorageService
from src.video_rag.pipeline import VideoAnalysisPipeline, build_storage
from src.video_rag.schemas import (
    AcquisitionResult,
    AnalysisStatus,
    QAResult,
    Transcript,
    VideoInfo,
)
from src.video_rag.storage_service import SupabaseStorageService

VIDEO_URL = "https://www.youtube.com/watch?v=abc123"


def acquisition(text: str) -> AcquisitionResult:
    return AcquisitionResult(
        video_info=VideoInfo(video_id="abc123", title="Intro to ML", channel_name="ML Channel"),
        transcript=Transcript(video_id="abc123", text=text),
    )


@pytest.mark.unit
class TestVideoAnalysisPipeline:
    """Test suite for VideoAnalysisPipeline class."""

    @pytest.fixture
    def config(self) -> VideoRAGConfig:
        """Create test configuration with small chunks."""
        return VideoRAGConfig(
            chunk_target_words=10,
            chunk_overlap_words=2,
            embedding_concurrency=2,
            embedding_model="text-embedding-3-small",
        )

    @pytest.fixture
    def storage(self) -> InMemoryStorageService:
        return InMemoryStorageService()

    @pytest.fixture
    def acquirer(self) -> MagicMock:
        """Create mock acquirer returning a 40-word transcript."""
        mock_acquirer = MagicMock()
        text = " ".join(f"word{i}" for i in range(40))
        mock_acquirer.acquire = AsyncMock(return_value=acquisition(text))
        return mock_acquirer

    @pytest.fixture
    def embedding_service(self) -> MagicMock:
        """Create mock embedding service."""
        service = MagicMock()
        service.model = "text-embedding-3-small"
        service.embed_text = AsyncMock(return_value=[0.1, 0.2, 0.3])
        return service

    @pytest.fixture
    def qa_service(self) -> MagicMock:
        """Create mock QA service."""
        service = MagicMock()
        service.answer_question = AsyncMock(
            return_value=QAResult(question="q", answer="a")
        )
        service.answer_with_citations = AsyncMock()
        service.semantic_search = AsyncMock(return_value=[])
        service.get_question_history = AsyncMock(return_value=[])
        return service

    @pytest.fixture
    def pipeline(
        self,
        config: VideoRAGConfig,
        storage: InMemoryStorageService,
        acquirer: MagicMock,
        embedding_service: MagicMock,
        qa_service: MagicMock,
    ) -> VideoAnalysisPipeline:
        """Create pipeline with mocked providers."""
        return VideoAnalysisPipeline(
            config,
            storage=storage,
            acquirer=acquirer,
            chunking_service=ChunkingService(config),
            embedding_service=embedding_service,
            qa_service=qa_service,
        )

    @pytest.mark.asyncio
    async def test_ingest_video_success(
        self, pipeline: VideoAnalysisPipeline, storage: InMemoryStorageService
    ) -> None:
        """Test a full ingestion stores every chunk and completes."""
        result = await pipeline.ingest_video(VIDEO_URL, user_id=7)

        assert result.status == AnalysisStatus.COMPLETED
        assert result.video_title == "Intro to ML"
        assert result.embedding_model == "text-embedding-3-small"
        # 40 words, window 10, step 8 -> starts 0, 8, 16, 24, 32
        assert [c.chunk_index for c in result.chunks] == [0, 1, 2, 3, 4]

        analysis = await storage.get_analysis(result.analysis_id)
        assert analysis.status == AnalysisStatus.COMPLETED
        assert analysis.user_id == 7
        assert len(await storage.get_chunks(result.analysis_id)) == 5

    @pytest.mark.asyncio
    async def test_chunk_order_survives_out_of_order_completion(
        self, pipeline: VideoAnalysisPipeline, embedding_service: MagicMock
    ) -> None:
        """Test results keep chunk order when later chunks finish first."""

        async def embed(text: str) -> list[float]:
            # Earlier chunks (lower word numbers) take longer
            first_word = int(text.split()[0].removeprefix("word"))
            await asyncio.sleep(0.001 * (40 - first_word))
            return [float(first_word), 1.0]

        embedding_service.embed_text.side_effect = embed

        result = await pipeline.ingest_video(VIDEO_URL, user_id=1)

        assert [c.chunk_index for c in result.chunks] == [0, 1, 2, 3, 4]
        assert [c.embedding[0] for c in result.chunks] == [0.0, 8.0, 16.0, 24.0, 32.0]

    @pytest.mark.asyncio
    async def test_embedding_concurrency_is_bounded(
        self, pipeline: VideoAnalysisPipeline, embedding_service: MagicMock
    ) -> None:
        """Test no more than embedding_concurrency calls run at once."""
        in_flight = 0
        peak = 0

        async def embed(text: str) -> list[float]:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return [1.0]

        embedding_service.embed_text.side_effect = embed

        await pipeline.ingest_video(VIDEO_URL, user_id=1)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_embedding_failure_marks_analysis_error(
        self,
        pipeline: VideoAnalysisPipeline,
        storage: InMemoryStorageService,
        embedding_service: MagicMock,
    ) -> None:
        """Test a failed chunk sets the error status and keeps stored chunks."""

        async def embed(text: str) -> list[float]:
            if text.startswith("word16"):
                raise EmbeddingProviderError("quota exceeded")
            return [1.0]

        embedding_service.embed_text.side_effect = embed

        with pytest.raises(EmbeddingProviderError, match="quota exceeded"):
            await pipeline.ingest_video(VIDEO_URL, user_id=1)

        analysis = (await storage.list_analyses(1))[0]
        assert analysis.status == AnalysisStatus.ERROR
        assert analysis.error_message == "quota exceeded"
        stored = await storage.get_chunks(analysis.id)
        assert [c.chunk_index for c in stored] == [0, 1, 3, 4]

    @pytest.mark.asyncio
    async def test_status_update_failure_keeps_original_error(
        self,
        pipeline: VideoAnalysisPipeline,
        storage: InMemoryStorageService,
        embedding_service: MagicMock,
    ) -> None:
        """Test the embedding error surfaces even if recording it fails."""
        embedding_service.embed_text.side_effect = EmbeddingProviderError("quota exceeded")

        with patch.object(
            storage,
            "update_analysis_status",
            AsyncMock(side_effect=RuntimeError("storage offline")),
        ):
            with pytest.raises(EmbeddingProviderError, match="quota exceeded"):
                await pipeline.ingest_video(VIDEO_URL, user_id=1)

    @pytest.mark.asyncio
    async def test_empty_transcript_creates_no_analysis(
        self,
        pipeline: VideoAnalysisPipeline,
        storage: InMemoryStorageService,
        acquirer: MagicMock,
    ) -> None:
        """Test blank transcripts are rejected before persistence."""
        acquirer.acquire.return_value = acquisition("   ")

        with pytest.raises(EmptyTranscriptError):
            await pipeline.ingest_video(VIDEO_URL, user_id=1)

        assert await storage.list_analyses(1) == []

    @pytest.mark.asyncio
    async def test_acquisition_errors_propagate(
        self,
        pipeline: VideoAnalysisPipeline,
        storage: InMemoryStorageService,
        acquirer: MagicMock,
    ) -> None:
        """Test acquisition failures surface without creating an analysis."""
        acquirer.acquire.side_effect = NoCaptionsAvailableError("no captions")

        with pytest.raises(NoCaptionsAvailableError):
            await pipeline.ingest_video(VIDEO_URL, user_id=1)

        assert await storage.list_analyses(1) == []

    @pytest.mark.asyncio
    async def test_reingest_creates_new_analysis(
        self, pipeline: VideoAnalysisPipeline, storage: InMemoryStorageService
    ) -> None:
        """Test the same URL can be ingested twice."""
        first = await pipeline.ingest_video(VIDEO_URL, user_id=1)
        second = await pipeline.ingest_video(VIDEO_URL, user_id=1)

        assert first.analysis_id != second.analysis_id
        assert len(await storage.list_analyses(1)) == 2

    @pytest.mark.asyncio
    async def test_strategy_is_forwarded(
        self, pipeline: VideoAnalysisPipeline, acquirer: MagicMock
    ) -> None:
        """Test the transcript strategy override reaches the acquirer."""
        await pipeline.ingest_video(VIDEO_URL, user_id=1, strategy="audio")

        acquirer.acquire.assert_awaited_once_with(VIDEO_URL, strategy="audio")

    @pytest.mark.asyncio
    async def test_question_methods_delegate(
        self, pipeline: VideoAnalysisPipeline, qa_service: MagicMock
    ) -> None:
        """Test QA methods delegate to the QA service."""
        result = await pipeline.ask_question(1, "q")
        await pipeline.ask_question_with_citations(1, "q")
        await pipeline.semantic_search(1, "query", limit=3)
        await pipeline.get_question_history(1)

        assert result.answer == "a"
        qa_service.answer_question.assert_awaited_once_with(1, "q")
        qa_service.answer_with_citations.assert_awaited_once_with(1, "q")
        qa_service.semantic_search.assert_awaited_once_with(1, "query", limit=3)
        qa_service.get_question_history.assert_awaited_once_with(1)


@pytest.mark.unit
class TestBuildStorage:
    """Test suite for storage backend selection."""

    def test_memory_backend(self) -> None:
        assert isinstance(
            build_storage(VideoRAGConfig(storage_backend="memory")), InMemoryStorageService
        )

    def test_supabase_backend(self) -> None:
        config = VideoRAGConfig(
            storage_backend="supabase",
            supabase_url="https://test.supabase.co",
            supabase_key="test_key",
        )
        with patch("src.video_rag.storage_service.create_client") as mock_create:
            storage = build_storage(config)

        assert isinstance(storage, SupabaseStorageService)
        mock_create.assert_called_once_with("https://test.supabase.co", "test_key")

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown storage backend"):
            build_storage(VideoRAGConfig(storage_backend="sqlite"))
