"""Chunking service for overlapping word-window transcript segmentation."""

from src.utils.logging import get_logger

from .config import VideoRAGConfig
from .schemas import Chunk, Transcript

logger = get_logger(__name__)


def _window_bounds(
    word_count: int, target_words: int, overlap_words: int
) -> list[tuple[int, int]]:
    if target_words <= 0:
        raise ValueError("target_words must be positive")
    if overlap_words < 0 or overlap_words >= target_words:
        raise ValueError("overlap_words must be in [0, target_words)")

    step = target_words - overlap_words
    bounds = []
    start = 0
    while start < word_count:
        end = min(start + target_words, word_count)
        bounds.append((start, end))
        if end >= word_count:
            break
        start += step
    return bounds


def chunk_text(text: str, target_words: int = 500, overlap_words: int = 50) -> list[str]:
    """Split text into overlapping windows of whitespace-separated words.

    Windows hold ``target_words`` words and each starts
    ``target_words - overlap_words`` words after the previous one. The last
    window may be shorter. Text shorter than one window yields one chunk.

    Args:
        text: Text to split.
        target_words: Words per chunk.
        overlap_words: Words shared by neighbouring chunks.

    Returns:
        Chunk strings in order; empty for blank text.

    Raises:
        ValueError: If overlap_words is negative or not below target_words.

    Examples:
        >>> [len(c.split()) for c in chunk_text(" ".join(["w"] * 1200))]
        [500, 500, 300]
    """
    words = text.split()
    return [
        " ".join(words[start:end])
        for start, end in _window_bounds(len(words), target_words, overlap_words)
    ]


class ChunkingService:
    """Service for chunking transcripts into overlapping word windows.

    When the transcript carries time-aligned segments, each chunk is tagged
    with the start time of its first word and the end time of its last word
    so answers can cite timestamps.
    """

    def __init__(self, config: VideoRAGConfig):
        """Initialize chunking service with configuration.

        Args:
            config: Configuration object with chunk size and overlap.
        """
        self.config = config
        logger.info(
            "chunking_service_initialized",
            target_words=config.chunk_target_words,
            overlap_words=config.chunk_overlap_words,
        )

    def chunk_transcript(self, transcript: Transcript) -> list[Chunk]:
        """Chunk a transcript, preserving timestamps when segments are known.

        Args:
            transcript: Transcript to chunk.

        Returns:
            List of Chunk objects with contiguous zero-based indexes.
        """
        words = transcript.text.split()
        word_times = self._word_times(transcript, len(words))
        bounds = _window_bounds(
            len(words), self.config.chunk_target_words, self.config.chunk_overlap_words
        )

        chunks = []
        for index, (start, end) in enumerate(bounds):
            start_seconds = end_seconds = None
            if word_times:
                start_seconds = word_times[start][0]
                end_seconds = word_times[end - 1][1]
            chunks.append(
                Chunk(
                    chunk_index=index,
                    content=" ".join(words[start:end]),
                    word_count=end - start,
                    start_seconds=start_seconds,
                    end_seconds=end_seconds,
                )
            )

        logger.info(
            "chunking_completed",
            video_id=transcript.video_id,
            words=len(words),
            chunks_created=len(chunks),
        )
        return chunks

    def _word_times(
        self, transcript: Transcript, word_count: int
    ) -> list[tuple[float, float]] | None:
        """Map every transcript word to its segment's (start, end).

        Returns None when segment words don't line up with the transcript
        text, e.g. plain-text transcripts with no segments.
        """
        if not transcript.segments:
            return None

        times: list[tuple[float, float]] = []
        for segment in transcript.segments:
            times.extend((segment.start, segment.end) for _ in segment.text.split())

        if len(times) != word_count:
            logger.debug(
                "segment_word_mismatch",
                video_id=transcript.video_id,
                segment_words=len(times),
                transcript_words=word_count,
            )
            return None
        return times
