"""Storage service for managing analyses, chunks and questions in Supabase."""

from datetime import UTC, datetime
from typing import Any

from supabase import Client, create_client

from src.utils.logging import get_logger

from .config import VideoRAGConfig
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

ANALYSES_TABLE = "video_analyses"
CHUNKS_TABLE = "video_chunks"
QUESTIONS_TABLE = "video_questions"


def _analysis_from_row(row: dict[str, Any]) -> VideoAnalysis:
    return VideoAnalysis.model_validate(row)


def _chunk_from_row(row: dict[str, Any]) -> ChunkWithEmbedding:
    data = dict(row)
    # pgvector columns come back as their text form, e.g. "[0.1,0.2]"
    embedding = data.get("embedding")
    if isinstance(embedding, str):
        stripped = embedding.strip("[] ")
        data["embedding"] = [float(x) for x in stripped.split(",")] if stripped else []
    return ChunkWithEmbedding.model_validate(data)


class SupabaseStorageService(AnalysisRepository):
    """Service for storing analyses and transcript chunks in Supabase.

    Chunk writes upsert on (analysis_id, chunk_index), so re-running an
    ingestion for the same analysis never duplicates chunks.
    """

    def __init__(self, config: VideoRAGConfig, client: Client | None = None):
        """Initialize storage service with configuration.

        Args:
            config: Configuration object with Supabase credentials.
            client: Pre-built Supabase client (created from config if omitted).
        """
        self.config = config
        self.client: Client = client or create_client(
            config.supabase_url,
            config.supabase_key,
        )
        logger.info(
            "storage_service_initialized",
            backend="supabase",
            supabase_url=config.supabase_url,
        )

    async def create_analysis(self, fields: NewAnalysis, user_id: int) -> VideoAnalysis:
        """Insert a new analysis row.

        Raises:
            Exception: If database operation fails.
        """
        try:
            now = datetime.now(UTC).isoformat()
            data = {
                **fields.model_dump(mode="json"),
                "user_id": user_id,
                "created_at": now,
                "updated_at": now,
            }
            response = self.client.table(ANALYSES_TABLE).insert(data).execute()
            analysis = _analysis_from_row(response.data[0])
            logger.info("analysis_created", analysis_id=analysis.id, video_id=analysis.video_id)
            return analysis

        except Exception as e:
            logger.exception(
                "analysis_create_failed",
                video_id=fields.video_id,
                error_type=type(e).__name__,
            )
            raise

    async def get_analysis(self, analysis_id: int) -> VideoAnalysis | None:
        response = (
            self.client.table(ANALYSES_TABLE)
            .select("*")
            .eq("id", analysis_id)
            .execute()
        )
        if not response.data:
            logger.debug("analysis_not_found", analysis_id=analysis_id)
            return None
        return _analysis_from_row(response.data[0])

    async def list_analyses(self, user_id: int) -> list[VideoAnalysis]:
        response = (
            self.client.table(ANALYSES_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [_analysis_from_row(row) for row in response.data]

    async def update_analysis_status(
        self,
        analysis_id: int,
        status: AnalysisStatus,
        error_message: str | None = None,
    ) -> VideoAnalysis:
        """Update analysis processing status.

        Args:
            analysis_id: Analysis to update.
            status: New status.
            error_message: Error message if failed (optional).

        Raises:
            AnalysisNotFoundError: If the analysis does not exist.
            InvalidStatusTransitionError: If the status would move backwards.
        """
        current = await self.get_analysis(analysis_id)
        if current is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        if not current.status.can_transition_to(status):
            raise InvalidStatusTransitionError(
                f"Cannot move analysis {analysis_id} from "
                f"{current.status.value} to {status.value}"
            )

        try:
            data = {
                "status": status.value,
                "error_message": error_message,
                "updated_at": datetime.now(UTC).isoformat(),
            }
            response = (
                self.client.table(ANALYSES_TABLE)
                .update(data)
                .eq("id", analysis_id)
                .execute()
            )
            logger.info("analysis_status_updated", analysis_id=analysis_id, status=status.value)
            if response.data:
                return _analysis_from_row(response.data[0])
            return current.model_copy(update={"status": status, "error_message": error_message})

        except Exception as e:
            logger.exception(
                "status_update_failed",
                analysis_id=analysis_id,
                error_type=type(e).__name__,
            )
            raise

    async def create_chunk(self, chunk: ChunkWithEmbedding) -> ChunkWithEmbedding:
        """Upsert a transcript chunk with its embedding.

        Raises:
            Exception: If database operation fails.
        """
        try:
            data = chunk.model_dump(exclude={"id"})
            response = (
                self.client.table(CHUNKS_TABLE)
                .upsert(data, on_conflict="analysis_id,chunk_index")
                .execute()
            )
            logger.debug(
                "chunk_saved",
                analysis_id=chunk.analysis_id,
                chunk_index=chunk.chunk_index,
            )
            if response.data:
                return chunk.model_copy(update={"id": response.data[0].get("id")})
            return chunk

        except Exception as e:
            logger.exception(
                "chunk_save_failed",
                analysis_id=chunk.analysis_id,
                chunk_index=chunk.chunk_index,
                error_type=type(e).__name__,
            )
            raise

    async def get_chunks(self, analysis_id: int) -> list[ChunkWithEmbedding]:
        response = (
            self.client.table(CHUNKS_TABLE)
            .select("*")
            .eq("analysis_id", analysis_id)
            .order("chunk_index")
            .execute()
        )
        return [_chunk_from_row(row) for row in response.data]

    async def create_question(
        self, analysis_id: int, question: str, answer: str
    ) -> QuestionRecord:
        try:
            data = {
                "analysis_id": analysis_id,
                "question": question,
                "answer": answer,
                "created_at": datetime.now(UTC).isoformat(),
            }
            response = self.client.table(QUESTIONS_TABLE).insert(data).execute()
            record = QuestionRecord.model_validate(response.data[0])
            logger.info("question_saved", analysis_id=analysis_id, question_id=record.id)
            return record

        except Exception as e:
            logger.exception(
                "question_save_failed",
                analysis_id=analysis_id,
                error_type=type(e).__name__,
            )
            raise

    async def get_questions(self, analysis_id: int) -> list[QuestionRecord]:
        response = (
            self.client.table(QUESTIONS_TABLE)
            .select("*")
            .eq("analysis_id", analysis_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [QuestionRecord.model_validate(row) for row in response.data]
