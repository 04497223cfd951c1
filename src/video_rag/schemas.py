"""Pydantic schemas for the video RAG service."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field


class AnalysisStatus(str, Enum):
    """Processing status of a video analysis.

    Transitions only move forward: pending -> processing -> completed, and
    pending/processing -> error. Completed and error are terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    def can_transition_to(self, new_status: "AnalysisStatus") -> bool:
        """Check whether moving from this status to ``new_status`` is allowed."""
        allowed = {
            AnalysisStatus.PENDING: {
                AnalysisStatus.PROCESSING,
                AnalysisStatus.COMPLETED,
                AnalysisStatus.ERROR,
            },
            AnalysisStatus.PROCESSING: {AnalysisStatus.COMPLETED, AnalysisStatus.ERROR},
            AnalysisStatus.COMPLETED: set(),
            AnalysisStatus.ERROR: set(),
        }
        return new_status in allowed[self]


class VideoInfo(BaseModel):
    """YouTube video metadata.

    Metadata is best-effort: fields that cannot be fetched fall back to
    placeholder values instead of failing acquisition.
    """

    video_id: str
    title: str
    channel_name: str
    duration_seconds: int = 0
    description: str = ""

    @computed_field
    @property
    def url(self) -> str:
        """Canonical watch URL derived from video_id."""
        return f"https://www.youtube.com/watch?v={self.video_id}"


class TranscriptSegment(BaseModel):
    """Single time-aligned transcript segment.

    Times are in seconds relative to the start of the video.
    """

    start: float
    end: float
    text: str
    speaker_id: str | None = None

    @computed_field
    @property
    def duration(self) -> float:
        """Segment duration in seconds."""
        return round(self.end - self.start, 3)


class Transcript(BaseModel):
    """Full video transcript.

    ``segments`` is empty when the provider returns plain text only.
    """

    video_id: str
    text: str
    segments: list[TranscriptSegment] = Field(default_factory=list)
    language: str = "unknown"
    source: str = "captions"  # captions or audio
    provider: str = "youtube_captions"
    model: str | None = None
    chunks_processed: int = 1

    @computed_field
    @property
    def word_count(self) -> int:
        """Number of whitespace-separated words in the transcript."""
        return len(self.text.split())


class AcquisitionResult(BaseModel):
    """Video metadata plus transcript returned by the acquirer."""

    video_info: VideoInfo
    transcript: Transcript


class NewAnalysis(BaseModel):
    """Fields needed to create a video analysis record."""

    video_id: str
    video_title: str
    channel_name: str
    video_url: str
    transcript: str
    status: AnalysisStatus = AnalysisStatus.PROCESSING


class VideoAnalysis(NewAnalysis):
    """Persisted video analysis record."""

    id: int
    user_id: int
    error_message: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Chunk(BaseModel):
    """Word-bounded transcript chunk.

    Start and end times are only known when the transcript carried segments.
    """

    chunk_index: int
    content: str
    word_count: int
    start_seconds: float | None = None
    end_seconds: float | None = None


class ChunkWithEmbedding(Chunk):
    """Chunk with embedding vector.

    Extends Chunk with the owning analysis and the embedding used for
    similarity search. (analysis_id, chunk_index) identifies a stored chunk.
    """

    analysis_id: int
    embedding: list[float]
    id: int | None = None


class QuestionRecord(BaseModel):
    """Question/answer pair stored for an analysis."""

    id: int
    analysis_id: int
    question: str
    answer: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Citation(BaseModel):
    """Reference to a transcript chunk backing an answer."""

    chunk_index: int
    text: str
    start_seconds: float | None = None
    end_seconds: float | None = None
    relevance_score: float


class QAResult(BaseModel):
    """Answer to a question about a video."""

    question: str
    answer: str


class EnhancedQAResult(QAResult):
    """Answer with citations and a confidence score (0-95)."""

    analysis_id: int
    citations: list[Citation] = Field(default_factory=list)
    confidence: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SearchResult(BaseModel):
    """Chunk ranked by semantic similarity to a query."""

    chunk: ChunkWithEmbedding
    relevance_score: float
    citation: Citation


class AnalysisResult(BaseModel):
    """Result of ingesting a video.

    Summary of the stored analysis together with its embedded chunks.
    """

    analysis_id: int
    video_id: str
    video_title: str
    channel_name: str
    video_url: str
    transcript: str
    status: AnalysisStatus
    chunks: list[ChunkWithEmbedding] = Field(default_factory=list)
    segments: list[TranscriptSegment] = Field(default_factory=list)
    processing_time_ms: int = 0
    embedding_model: str = ""
