"""In-memory analysis storage, the default backend for local runs and tests."""

import asyncio
from datetime import UTC, datetime

from src.utils.logging import get_logger

from .errors import AnalysisNotFoundError, InvalidStatusTransitionError
from .repository import AnalysisRepository
from .schemas import (
    AnalysisStatus,
    ChunkWithEmbedding,
    NewAnalysis,
    QuestionRecord,
    VideoAnalysis,
)

logger = get_logger(__name__)


class InMemoryStorageService(AnalysisRepository):
    """Dict-backed storage with auto-increment IDs.

    Data lives only as long as the process. A lock serializes writes so
    concurrent chunk tasks cannot hand out the same ID.
    """

    def __init__(self):
        self._analyses: dict[int, VideoAnalysis] = {}
        self._chunks: dict[tuple[int, int], ChunkWithEmbedding] = {}
        self._questions: dict[int, QuestionRecord] = {}
        self._next_analysis_id = 1
        self._next_chunk_id = 1
        self._next_question_id = 1
        self._lock = asyncio.Lock()
        logger.info("storage_service_initialized", backend="memory")

    async def create_analysis(self, fields: NewAnalysis, user_id: int) -> VideoAnalysis:
        async with self._lock:
            analysis = VideoAnalysis(
                **fields.model_dump(),
                id=self._next_analysis_id,
                user_id=user_id,
            )
            self._analyses[analysis.id] = analysis
            self._next_analysis_id += 1

        logger.info("analysis_created", analysis_id=analysis.id, video_id=analysis.video_id)
        return analysis

    async def get_analysis(self, analysis_id: int) -> VideoAnalysis | None:
        return self._analyses.get(analysis_id)

    async def list_analyses(self, user_id: int) -> list[VideoAnalysis]:
        analyses = [a for a in self._analyses.values() if a.user_id == user_id]
        return sorted(analyses, key=lambda a: (a.created_at, a.id), reverse=True)

    async def update_analysis_status(
        self,
        analysis_id: int,
        status: AnalysisStatus,
        error_message: str | None = None,
    ) -> VideoAnalysis:
        async with self._lock:
            current = self._analyses.get(analysis_id)
            if current is None:
                raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
            if not current.status.can_transition_to(status):
                raise InvalidStatusTransitionError(
                    f"Cannot move analysis {analysis_id} from "
                    f"{current.status.value} to {status.value}"
                )
            updated = current.model_copy(
                update={
                    "status": status,
                    "error_message": error_message,
                    "updated_at": datetime.now(UTC),
                }
            )
            self._analyses[analysis_id] = updated

        logger.info("analysis_status_updated", analysis_id=analysis_id, status=status.value)
        return updated

    async def create_chunk(self, chunk: ChunkWithEmbedding) -> ChunkWithEmbedding:
        key = (chunk.analysis_id, chunk.chunk_index)
        async with self._lock:
            existing = self._chunks.get(key)
            if existing is not None:
                chunk_id = existing.id
            else:
                chunk_id = self._next_chunk_id
                self._next_chunk_id += 1
            stored = chunk.model_copy(update={"id": chunk_id})
            self._chunks[key] = stored
        return stored

    async def get_chunks(self, analysis_id: int) -> list[ChunkWithEmbedding]:
        chunks = [c for c in self._chunks.values() if c.analysis_id == analysis_id]
        return sorted(chunks, key=lambda c: c.chunk_index)

    async def create_question(
        self, analysis_id: int, question: str, answer: str
    ) -> QuestionRecord:
        async with self._lock:
            record = QuestionRecord(
                id=self._next_question_id,
                analysis_id=analysis_id,
                question=question,
                answer=answer,
            )
            self._questions[record.id] = record
            self._next_question_id += 1
        return record

    async def get_questions(self, analysis_id: int) -> list[QuestionRecord]:
        questions = [q for q in self._questions.values() if q.analysis_id == analysis_id]
        return sorted(questions, key=lambda q: (q.created_at, q.id), reverse=True)
