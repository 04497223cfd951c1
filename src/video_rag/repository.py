"""Abstract repository interface for analysis storage."""

from abc import ABC, abstractmethod

from .schemas import (
    AnalysisStatus,
    ChunkWithEmbedding,
    NewAnalysis,
    QuestionRecord,
    VideoAnalysis,
)


class AnalysisRepository(ABC):
    """Abstract base class defining the analysis storage contract.

    Concrete backends (in-memory, Supabase) implement this interface so the
    pipeline and QA services never depend on a specific database.
    """

    @abstractmethod
    async def create_analysis(self, fields: NewAnalysis, user_id: int) -> VideoAnalysis:
        """Persist a new analysis and return it with its assigned ID."""

    @abstractmethod
    async def get_analysis(self, analysis_id: int) -> VideoAnalysis | None:
        """Retrieve an analysis by ID. Returns None if not found."""

    @abstractmethod
    async def list_analyses(self, user_id: int) -> list[VideoAnalysis]:
        """List a user's analyses, newest first."""

    @abstractmethod
    async def update_analysis_status(
        self,
        analysis_id: int,
        status: AnalysisStatus,
        error_message: str | None = None,
    ) -> VideoAnalysis:
        """Move an analysis to a new status.

        Raises:
            AnalysisNotFoundError: If the analysis does not exist.
            InvalidStatusTransitionError: If the status would move backwards.
        """

    @abstractmethod
    async def create_chunk(self, chunk: ChunkWithEmbedding) -> ChunkWithEmbedding:
        """Store a chunk. Upserts on (analysis_id, chunk_index)."""

    @abstractmethod
    async def get_chunks(self, analysis_id: int) -> list[ChunkWithEmbedding]:
        """Chunks of an analysis ordered by chunk_index."""

    @abstractmethod
    async def create_question(
        self, analysis_id: int, question: str, answer: str
    ) -> QuestionRecord:
        """Store a question/answer pair."""

    @abstractmethod
    async def get_questions(self, analysis_id: int) -> list[QuestionRecord]:
        """Question records of an analysis, newest first."""
