"""Speech-to-text transcription via the Sarvam AI API.

Audio longer than the provider's safe window is split into chunks that are
transcribed independently and stitched back together in order.
"""

import asyncio
import time
from pathlib import Path

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.utils.logging import get_logger

from .audio_service import AudioChunk, AudioService
from .config import VideoRAGConfig
from .errors import ProviderResponseError, TranscriptionError
from .schemas import Transcript, TranscriptSegment

logger = get_logger(__name__)

PROVIDER_NAME = "sarvam_ai"


class SarvamDiarizedEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transcript: str = ""
    start_time_seconds: float | None = None
    end_time_seconds: float | None = None
    speaker_id: str | None = None


class SarvamDiarizedTranscript(BaseModel):
    model_config = ConfigDict(extra="ignore")

    entries: list[SarvamDiarizedEntry] = Field(default_factory=list)


class SarvamTranscriptionResponse(BaseModel):
    """Typed view of the speech-to-text-translate response body."""

    model_config = ConfigDict(extra="ignore")

    transcript: str = ""
    language_code: str | None = None
    diarized_transcript: SarvamDiarizedTranscript | None = None

    def to_segments(self) -> list[TranscriptSegment]:
        """Convert diarized entries with a start time into segments."""
        if not self.diarized_transcript:
            return []

        segments = []
        for entry in self.diarized_transcript.entries:
            text = entry.transcript.strip()
            if not text or entry.start_time_seconds is None:
                continue
            start = round(entry.start_time_seconds, 2)
            end = entry.end_time_seconds if entry.end_time_seconds is not None else start
            segments.append(
                TranscriptSegment(
                    start=start,
                    end=round(max(end, start), 2),
                    text=text,
                    speaker_id=entry.speaker_id or "unknown",
                )
            )
        return segments


def parse_transcription_response(payload: object) -> SarvamTranscriptionResponse:
    """Validate a raw provider payload.

    Raises:
        ProviderResponseError: If the payload does not match the expected shape.
    """
    try:
        return SarvamTranscriptionResponse.model_validate(payload)
    except ValidationError as e:
        raise ProviderResponseError(
            f"Unexpected transcription response shape: {e.error_count()} validation errors"
        ) from e


class TranscriptionService:
    """Service for transcribing downloaded audio with Sarvam AI.

    Each provider call uses an explicit timeout. In chunked mode a failed
    chunk is skipped and the time offset still advances, so one bad chunk
    costs one gap in the transcript rather than the whole video.
    """

    def __init__(
        self,
        config: VideoRAGConfig,
        http_client: httpx.AsyncClient,
        audio_service: AudioService,
    ):
        """Initialize transcription service.

        Args:
            config: Configuration with Sarvam credentials and timeouts.
            http_client: Shared async HTTP client.
            audio_service: Service used to probe and split audio files.
        """
        self.config = config
        self.http_client = http_client
        self.audio_service = audio_service
        logger.info(
            "transcription_service_initialized",
            provider=PROVIDER_NAME,
            model=config.sarvam_model,
            api_key_present=bool(config.sarvam_api_key),
        )

    def is_available(self) -> bool:
        return self.config.audio_transcription_available

    async def transcribe_file(self, audio_path: Path, video_id: str) -> Transcript:
        """Transcribe a single audio file that fits in the provider window.

        Args:
            audio_path: WAV file to upload.
            video_id: Video the audio belongs to.

        Returns:
            Transcript with segments relative to the start of this file.

        Raises:
            TranscriptionError: On transport errors, timeouts or non-2xx responses.
            ProviderResponseError: If the response body has an unexpected shape.
        """
        started = time.perf_counter()
        audio_bytes = await asyncio.to_thread(audio_path.read_bytes)
        files = {"file": ("audio.wav", audio_bytes, "audio/wav")}
        data = {"model": self.config.sarvam_model, "with_diarization": "true"}

        try:
            response = await self.http_client.post(
                f"{self.config.sarvam_base_url}/speech-to-text-translate",
                headers={"api-subscription-key": self.config.sarvam_api_key},
                files=files,
                data=data,
                timeout=self.config.transcription_timeout_seconds,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TranscriptionError(
                f"Transcription timed out after {self.config.transcription_timeout_seconds:.0f}s"
            ) from e
        except httpx.HTTPStatusError as e:
            raise TranscriptionError(
                f"Sarvam API error: {e.response.status_code} - {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Sarvam AI transcription failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderResponseError("Transcription response is not valid JSON") from e

        parsed = parse_transcription_response(payload)
        elapsed = time.perf_counter() - started
        logger.info(
            "audio_file_transcribed",
            video_id=video_id,
            path=audio_path.name,
            characters=len(parsed.transcript),
            seconds=round(elapsed, 2),
        )

        return Transcript(
            video_id=video_id,
            text=parsed.transcript.strip(),
            segments=parsed.to_segments(),
            language=parsed.language_code or "unknown",
            source="audio",
            provider=PROVIDER_NAME,
            model=self.config.sarvam_model,
            chunks_processed=1,
        )

    async def transcribe_audio(self, audio_path: Path, video_id: str) -> Transcript:
        """Transcribe a full audio track, chunking it when it is too long.

        Raises:
            TranscriptionError: If the duration is unknown or nothing was transcribed.
        """
        duration = await self.audio_service.get_duration(audio_path)
        logger.info("audio_duration_probed", video_id=video_id, duration=round(duration, 2))
        if duration <= 0:
            raise TranscriptionError("Could not determine audio duration or file is corrupted")

        if duration > self.config.audio_chunk_seconds:
            chunks = await self.audio_service.split_audio(audio_path, duration)
            transcript = await self.transcribe_chunks(chunks, video_id)
        else:
            transcript = await self.transcribe_file(audio_path, video_id)

        if not transcript.text.strip():
            raise TranscriptionError("Transcript generation returned empty result")
        return transcript

    async def transcribe_chunks(self, chunks: list[AudioChunk], video_id: str) -> Transcript:
        """Transcribe chunks in order and stitch the results.

        Segment timestamps are shifted by the chunk's offset. The offset
        advances by each chunk's probed duration, or its nominal duration if
        probing fails, including for chunks whose transcription failed.
        """
        texts: list[str] = []
        segments: list[TranscriptSegment] = []
        language = "unknown"
        offset = 0.0
        succeeded = 0

        for chunk in chunks:
            actual = await self.audio_service.get_duration(chunk.path)
            chunk_duration = actual if actual > 0 else chunk.duration_seconds

            try:
                result = await self.transcribe_file(chunk.path, video_id)
            except (TranscriptionError, ProviderResponseError) as e:
                logger.warning(
                    "audio_chunk_transcription_failed",
                    video_id=video_id,
                    chunk=chunk.index + 1,
                    total=len(chunks),
                    error=str(e),
                )
                offset += chunk_duration
                continue

            if result.text:
                texts.append(result.text)
                succeeded += 1
                segments.extend(
                    segment.model_copy(
                        update={
                            "start": round(segment.start + offset, 2),
                            "end": round(segment.end + offset, 2),
                        }
                    )
                    for segment in result.segments
                )
            if language == "unknown" and result.language != "unknown":
                language = result.language

            offset += chunk_duration

        text = " ".join(texts)
        logger.info(
            "chunked_transcription_completed",
            video_id=video_id,
            successful_chunks=succeeded,
            total_chunks=len(chunks),
            words=len(text.split()),
        )
        return Transcript(
            video_id=video_id,
            text=text,
            segments=segments,
            language=language,
            source="audio",
            provider=PROVIDER_NAME,
            model=self.config.sarvam_model,
            chunks_processed=succeeded,
        )
