"""Unit tests for QA service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.video_rag.config import VideoRAGConfig
from src.video_rag.embedding_service import cosine_similarity
from src.video_rag.errors import (
    AnalysisNotFoundError,
    ChatProviderError,
    NoContentIndexedError,
)
from src.video_rag.memory_storage import InMemoryStorageService
from src.video_rag.qa_service import (
    INSUFFICIENT_CONTEXT_ANSWER,
    NO_RELEVANT_CONTENT_ANSWER,
    QAService,
    compute_confidence,
    format_timestamp,
)
from src.video_rag.schemas import ChunkWithEmbedding, NewAnalysis

ML_QUESTION = [1.0, 0.0, 0.0]


def make_agent(output: str = "grounded answer") -> MagicMock:
    agent = MagicMock()
    agent.run = AsyncMock(return_value=MagicMock(output=output))
    return agent


@pytest.mark.unit
class TestQAService:
    """Test suite for QAService class."""

    @pytest.fixture
    def config(self) -> VideoRAGConfig:
        """Create test configuration."""
        return VideoRAGConfig(relevance_threshold=0.7, qa_top_k=5, search_min_score=0.3)

    @pytest.fixture
    def storage(self) -> InMemoryStorageService:
        """Create empty in-memory storage."""
        return InMemoryStorageService()

    @pytest.fixture
    def embedding_service(self) -> MagicMock:
        """Create mock embedding service returning the question vector."""
        service = MagicMock()
        service.embed_text = AsyncMock(return_value=ML_QUESTION)
        return service

    @pytest.fixture
    def answer_agent(self) -> MagicMock:
        return make_agent()

    @pytest.fixture
    def citation_agent(self) -> MagicMock:
        return make_agent("cited answer [1]")

    @pytest.fixture
    def qa_service(
        self,
        config: VideoRAGConfig,
        storage: InMemoryStorageService,
        embedding_service: MagicMock,
        answer_agent: MagicMock,
        citation_agent: MagicMock,
    ) -> QAService:
        """Create QA service with mocked providers."""
        return QAService(
            config,
            storage,
            embedding_service,
            answer_agent=answer_agent,
            citation_agent=citation_agent,
        )

    async def seed(
        self, storage: InMemoryStorageService, chunks: list[tuple[str, list[float]]]
    ) -> int:
        """Store an analysis with the given (content, embedding) chunks."""
        analysis = await storage.create_analysis(
            NewAnalysis(
                video_id="abc123",
                video_title="Intro to ML",
                channel_name="ML Channel",
                video_url="https://youtu.be/abc123",
                transcript=" ".join(content for content, _ in chunks),
            ),
            user_id=1,
        )
        for index, (content, embedding) in enumerate(chunks):
            await storage.create_chunk(
                ChunkWithEmbedding(
                    analysis_id=analysis.id,
                    chunk_index=index,
                    content=content,
                    word_count=len(content.split()),
                    embedding=embedding,
                    start_seconds=index * 60.0,
                    end_seconds=index * 60.0 + 59.0,
                )
            )
        return analysis.id

    @pytest.mark.asyncio
    async def test_answers_from_relevant_chunks(
        self,
        qa_service: QAService,
        storage: InMemoryStorageService,
        answer_agent: MagicMock,
    ) -> None:
        """Test the ML-types scenario: only relevant chunks reach the prompt."""
        analysis_id = await self.seed(
            storage,
            [
                ("Cooking pasta needs salted water.", [0.0, 1.0, 0.0]),
                ("There are three types of machine learning: supervised, "
                 "unsupervised and reinforcement learning.", [0.95, 0.1, 0.0]),
                ("Supervised learning uses labelled data.", [0.8, 0.3, 0.0]),
            ],
        )

        result = await qa_service.answer_question(
            analysis_id, "What are the main types of machine learning?"
        )

        assert result.answer == "grounded answer"
        prompt = answer_agent.run.call_args.args[0]
        assert "three types of machine learning" in prompt
        assert "Supervised learning uses labelled data" in prompt
        assert "Cooking pasta" not in prompt
        # Highest score first
        assert prompt.index("three types") < prompt.index("labelled data")

        history = await storage.get_questions(analysis_id)
        assert [q.answer for q in history] == ["grounded answer"]

    @pytest.mark.asyncio
    async def test_no_relevant_chunks_skips_chat_call(
        self,
        qa_service: QAService,
        storage: InMemoryStorageService,
        answer_agent: MagicMock,
    ) -> None:
        """Test the canned answer is returned without calling the model."""
        analysis_id = await self.seed(
            storage,
            [("Cooking pasta needs salted water.", [0.0, 1.0, 0.0])],
        )

        result = await qa_service.answer_question(analysis_id, "What is gradient descent?")

        assert result.answer == NO_RELEVANT_CONTENT_ANSWER
        answer_agent.run.assert_not_called()
        assert await storage.get_questions(analysis_id) == []

    @pytest.mark.asyncio
    async def test_threshold_is_strict(
        self,
        config: VideoRAGConfig,
        qa_service: QAService,
        storage: InMemoryStorageService,
        embedding_service: MagicMock,
        answer_agent: MagicMock,
    ) -> None:
        """Test a chunk scoring exactly the threshold is excluded."""
        config.relevance_threshold = cosine_similarity([1.0, 0.0], [1.0, 1.0])
        embedding_service.embed_text.return_value = [1.0, 0.0]
        analysis_id = await self.seed(storage, [("borderline", [1.0, 1.0])])

        result = await qa_service.answer_question(analysis_id, "question")

        assert result.answer == NO_RELEVANT_CONTENT_ANSWER
        answer_agent.run.assert_not_called()

    @pytest.mark.asyncio
    async def test_top_k_limits_context(
        self,
        config: VideoRAGConfig,
        qa_service: QAService,
        storage: InMemoryStorageService,
        answer_agent: MagicMock,
    ) -> None:
        """Test at most qa_top_k chunks are used."""
        config.qa_top_k = 2
        analysis_id = await self.seed(
            storage,
            [(f"relevant chunk {i}", [1.0, 0.01 * i, 0.0]) for i in range(4)],
        )

        await qa_service.answer_question(analysis_id, "question")

        prompt = answer_agent.run.call_args.args[0]
        assert "relevant chunk 0" in prompt
        assert "relevant chunk 1" in prompt
        assert "relevant chunk 2" not in prompt

    @pytest.mark.asyncio
    async def test_no_chunks_raises(
        self, qa_service: QAService, storage: InMemoryStorageService
    ) -> None:
        """Test asking an analysis without chunks."""
        analysis_id = await self.seed(storage, [])

        with pytest.raises(NoContentIndexedError):
            await qa_service.answer_question(analysis_id, "anything?")

    @pytest.mark.asyncio
    async def test_mismatched_embeddings_are_skipped(
        self,
        qa_service: QAService,
        storage: InMemoryStorageService,
        answer_agent: MagicMock,
    ) -> None:
        """Test chunks with the wrong dimension are ignored."""
        analysis_id = await self.seed(
            storage,
            [("old model chunk", [1.0, 0.0]), ("good chunk", [1.0, 0.0, 0.0])],
        )

        await qa_service.answer_question(analysis_id, "question")

        prompt = answer_agent.run.call_args.args[0]
        assert "good chunk" in prompt
        assert "old model chunk" not in prompt

    @pytest.mark.asyncio
    async def test_blank_model_answer_is_replaced(
        self, qa_service: QAService, storage: InMemoryStorageService, answer_agent: MagicMock
    ) -> None:
        """Test answers are never empty."""
        answer_agent.run.return_value = MagicMock(output="   ")
        analysis_id = await self.seed(storage, [("relevant", [1.0, 0.0, 0.0])])

        result = await qa_service.answer_question(analysis_id, "question")

        assert result.answer == INSUFFICIENT_CONTEXT_ANSWER

    @pytest.mark.asyncio
    async def test_chat_failure_is_wrapped(
        self, qa_service: QAService, storage: InMemoryStorageService, answer_agent: MagicMock
    ) -> None:
        """Test model errors raise ChatProviderError and nothing is stored."""
        answer_agent.run.side_effect = RuntimeError("rate limited")
        analysis_id = await self.seed(storage, [("relevant", [1.0, 0.0, 0.0])])

        with pytest.raises(ChatProviderError):
            await qa_service.answer_question(analysis_id, "question")
        assert await storage.get_questions(analysis_id) == []

    @pytest.mark.asyncio
    async def test_answer_with_citations(
        self,
        qa_service: QAService,
        storage: InMemoryStorageService,
        citation_agent: MagicMock,
    ) -> None:
        """Test citations, timestamps, history and confidence."""
        long_text = "machine learning " * 20
        analysis_id = await self.seed(
            storage,
            [("unrelated", [0.0, 1.0, 0.0]), (long_text, [1.0, 0.0, 0.0])],
        )
        await storage.create_question(analysis_id, "earlier question?", "earlier answer")

        result = await qa_service.answer_with_citations(analysis_id, "What is ML?")

        assert result.answer == "cited answer [1]"
        assert result.analysis_id == analysis_id
        assert len(result.citations) == 1
        citation = result.citations[0]
        assert citation.chunk_index == 1
        assert citation.text == long_text[:150] + "..."
        assert citation.start_seconds == 60.0
        assert citation.relevance_score == pytest.approx(1.0)
        # (1.0 + 1/5 * 0.1) * 100 capped at 95
        assert result.confidence == 95.0

        prompt = citation_agent.run.call_args.args[0]
        assert "[1] (1:00 - 1:59)" in prompt
        assert "Previous conversation" in prompt
        assert "Q: earlier question?" in prompt

    @pytest.mark.asyncio
    async def test_answer_with_citations_unknown_analysis(self, qa_service: QAService) -> None:
        """Test citations require an existing analysis."""
        with pytest.raises(AnalysisNotFoundError):
            await qa_service.answer_with_citations(404, "question")

    @pytest.mark.asyncio
    async def test_answer_with_citations_nothing_relevant(
        self, qa_service: QAService, storage: InMemoryStorageService, citation_agent: MagicMock
    ) -> None:
        """Test the canned answer carries zero confidence."""
        analysis_id = await self.seed(storage, [("unrelated", [0.0, 1.0, 0.0])])

        result = await qa_service.answer_with_citations(analysis_id, "question")

        assert result.answer == NO_RELEVANT_CONTENT_ANSWER
        assert result.citations == []
        assert result.confidence == 0.0
        citation_agent.run.assert_not_called()

    @pytest.mark.asyncio
    async def test_semantic_search(
        self, qa_service: QAService, storage: InMemoryStorageService
    ) -> None:
        """Test search keeps scores >= 0.3, best first, up to limit."""
        analysis_id = await self.seed(
            storage,
            [
                ("weak", [0.2, 0.98, 0.0]),
                ("strong", [1.0, 0.0, 0.0]),
                ("medium", [0.5, 0.87, 0.0]),
                ("orthogonal", [0.0, 0.0, 1.0]),
            ],
        )

        results = await qa_service.semantic_search(analysis_id, "query", limit=10)
        assert [r.chunk.content for r in results] == ["strong", "medium"]
        assert results[0].citation.text == "strong..."

        limited = await qa_service.semantic_search(analysis_id, "query", limit=1)
        assert [r.chunk.content for r in limited] == ["strong"]

    @pytest.mark.asyncio
    async def test_semantic_search_without_chunks(
        self, qa_service: QAService, embedding_service: MagicMock
    ) -> None:
        """Test searching an empty analysis returns no results."""
        assert await qa_service.semantic_search(99, "query") == []
        embedding_service.embed_text.assert_not_called()


@pytest.mark.unit
class TestHelpers:
    """Test suite for formatting helpers."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "0:00"), (59.9, "0:59"), (60, "1:00"), (125.7, "2:05"), (3725, "62:05")],
    )
    def test_format_timestamp(self, seconds: float, expected: str) -> None:
        assert format_timestamp(seconds) == expected

    def test_confidence(self) -> None:
        """Test confidence from citation scores."""
        assert compute_confidence([]) == 0.0
        assert compute_confidence([0.8]) == pytest.approx((0.8 + 0.02) * 100)
        assert compute_confidence([0.75] * 5) == pytest.approx(85.0)
        assert compute_confidence([0.99] * 5) == 95.0
