"""Transcript acquisition: caption scraping or audio transcription."""

import asyncio

from src.utils.logging import get_logger

from .audio_service import AudioService
from .config import VideoRAGConfig
from .errors import TranscriptionError
from .schemas import AcquisitionResult, Transcript
from .transcription_service import TranscriptionService
from .youtube_service import YouTubeService, placeholder_video_info, require_video_id

logger = get_logger(__name__)

CAPTIONS = "captions"
AUDIO = "audio"
STRATEGIES = (CAPTIONS, AUDIO)


class TranscriptAcquirer:
    """Obtains metadata and a transcript for a YouTube URL.

    Metadata and transcript are fetched concurrently. The caption path is
    the default; the audio path downloads the track and transcribes it for
    higher-fidelity or multilingual transcripts.
    """

    def __init__(
        self,
        config: VideoRAGConfig,
        youtube_service: YouTubeService,
        audio_service: AudioService,
        transcription_service: TranscriptionService,
    ):
        self.config = config
        self.youtube_service = youtube_service
        self.audio_service = audio_service
        self.transcription_service = transcription_service

    async def acquire(self, video_url: str, strategy: str | None = None) -> AcquisitionResult:
        """Acquire video info and transcript.

        Args:
            video_url: Any supported YouTube URL shape.
            strategy: "captions" or "audio"; defaults to the configured strategy.

        Returns:
            AcquisitionResult with metadata and transcript (segments may be empty).

        Raises:
            InvalidUrlError: If the URL is not a recognized YouTube URL.
            NoCaptionsAvailableError: If no caption track could be fetched.
            VideoUnavailableError: If the video is private, restricted or blocked.
            AudioDownloadError: If the audio track cannot be downloaded.
            TranscriptionError: If audio transcription yields nothing.
            ValueError: If the strategy name is unknown.
        """
        video_id = require_video_id(video_url)
        strategy = strategy or self.config.transcript_strategy
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown transcript strategy: {strategy}")

        logger.info("acquisition_started", video_id=video_id, strategy=strategy)

        if strategy == AUDIO:
            transcript_task = self.transcribe_from_audio(video_id)
        else:
            transcript_task = self.youtube_service.get_captions(video_id)

        # Both branches settle before a transcript failure propagates
        video_info, transcript = await asyncio.gather(
            self.youtube_service.get_video_info(video_id),
            transcript_task,
            return_exceptions=True,
        )
        if isinstance(transcript, BaseException):
            raise transcript
        if isinstance(video_info, BaseException):
            logger.warning(
                "video_info_failed",
                video_id=video_id,
                error_type=type(video_info).__name__,
            )
            video_info = placeholder_video_info(video_id)

        logger.info(
            "acquisition_completed",
            video_id=video_id,
            source=transcript.source,
            words=transcript.word_count,
            segments=len(transcript.segments),
        )
        return AcquisitionResult(video_info=video_info, transcript=transcript)

    async def transcribe_from_audio(self, video_id: str) -> Transcript:
        """Download audio into a scoped workspace and transcribe it.

        The workspace, including any chunk files, is removed afterwards.
        """
        if not self.transcription_service.is_available():
            raise TranscriptionError(
                "Audio transcription is not configured. Please set SARVAM_API_KEY."
            )

        async with self.audio_service.workspace() as workspace:
            audio_path = await self.audio_service.download_audio(video_id, workspace)
            return await self.transcription_service.transcribe_audio(audio_path, video_id)
