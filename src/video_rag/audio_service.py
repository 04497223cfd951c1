"""Audio download and splitting via yt-dlp, ffprobe and ffmpeg subprocesses."""

import asyncio
import math
import shutil
import sys
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from src.utils.logging import get_logger

from .config import VideoRAGConfig
from .errors import AudioDownloadError, TranscriptionError, VideoUnavailableError
from .youtube_service import watch_url

logger = get_logger(__name__)

_UNAVAILABLE_MARKERS = (
    "private video",
    "video unavailable",
    "sign in to confirm your age",
    "age-restricted",
    "not available in your country",
    "blocked it in your country",
    "members-only",
)


class CommandTimeoutError(Exception):
    """Raised when a subprocess exceeds its wall-clock timeout."""


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


@dataclass
class AudioChunk:
    """Chunk file cut from a longer audio track."""

    index: int
    path: Path
    duration_seconds: float


async def run_command(args: list[str], timeout: float) -> CommandResult:
    """Run a subprocess and wait for it, killing it on timeout.

    Args:
        args: Program and arguments.
        timeout: Wall-clock timeout in seconds.

    Returns:
        CommandResult with decoded output.

    Raises:
        CommandTimeoutError: If the process did not finish in time.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError as e:
        process.kill()
        await process.wait()
        raise CommandTimeoutError(f"{args[0]} timed out after {timeout:.0f}s") from e

    return CommandResult(
        returncode=process.returncode or 0,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class AudioService:
    """Service for downloading audio tracks and cutting them into chunks.

    All files are written inside a temporary workspace that is removed when
    the ``workspace()`` context exits, whether processing succeeded or not.
    """

    def __init__(self, config: VideoRAGConfig):
        """Initialize audio service with configuration.

        Args:
            config: Configuration with chunk length and subprocess timeout.
        """
        self.config = config
        self.chunk_seconds = config.audio_chunk_seconds
        self.timeout = config.subprocess_timeout_seconds

    @asynccontextmanager
    async def workspace(self) -> AsyncIterator[Path]:
        """Temporary directory for audio files, always removed on exit."""
        path = Path(tempfile.mkdtemp(prefix="video-rag-", dir=self.config.temp_dir))
        logger.debug("audio_workspace_created", path=str(path))
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)
            logger.info("audio_workspace_cleaned", path=str(path))

    async def download_audio(self, video_id: str, workspace: Path) -> Path:
        """Download the best audio track as 16 kHz mono WAV.

        Args:
            video_id: YouTube video ID.
            workspace: Directory to write into.

        Returns:
            Path to the downloaded WAV file.

        Raises:
            VideoUnavailableError: If the video is private, age-restricted or blocked.
            AudioDownloadError: For any other download failure.
        """
        output_template = str(workspace / f"{video_id}.%(ext)s")
        args = [
            sys.executable, "-m", "yt_dlp",
            "--no-playlist",
            "--no-warnings",
            "--no-progress",
            "-f", "bestaudio/best",
            "-x",
            "--audio-format", "wav",
            "--postprocessor-args", "ffmpeg:-ar 16000 -ac 1",
            "--print", "after_move:filepath",
            "-o", output_template,
            watch_url(video_id),
        ]

        logger.info("audio_download_started", video_id=video_id)
        try:
            result = await run_command(args, timeout=self.timeout)
        except CommandTimeoutError as e:
            raise AudioDownloadError(f"Audio download timed out: {e}") from e

        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip()
            lowered = message.lower()
            if any(marker in lowered for marker in _UNAVAILABLE_MARKERS):
                raise VideoUnavailableError(
                    "This video is private, age-restricted or blocked and cannot be processed."
                )
            logger.error(
                "audio_download_failed",
                video_id=video_id,
                returncode=result.returncode,
                stderr=message[-500:],
            )
            raise AudioDownloadError(
                "Failed to download video audio. This could be due to video "
                "restrictions, geo-blocking, or YouTube anti-bot measures."
            )

        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        audio_path = Path(lines[-1]) if lines else workspace / f"{video_id}.wav"
        if not audio_path.exists() or audio_path.stat().st_size == 0:
            raise AudioDownloadError("Downloaded audio file is missing or empty")

        logger.info(
            "audio_download_completed",
            video_id=video_id,
            size_mb=round(audio_path.stat().st_size / 1024 / 1024, 2),
        )
        return audio_path

    async def get_duration(self, audio_path: Path) -> float:
        """Probe audio duration in seconds; 0.0 when it cannot be determined."""
        args = [
            "ffprobe", "-v", "quiet",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(audio_path),
        ]
        try:
            result = await run_command(args, timeout=self.timeout)
            return float(result.stdout.strip())
        except (CommandTimeoutError, OSError, ValueError) as e:
            logger.warning(
                "audio_duration_unknown",
                path=str(audio_path),
                error_type=type(e).__name__,
            )
            return 0.0

    async def split_audio(self, audio_path: Path, duration: float) -> list[AudioChunk]:
        """Split audio into sequential chunks of ``chunk_seconds``.

        Args:
            audio_path: Source WAV file.
            duration: Total duration in seconds.

        Returns:
            Chunks in playback order. A single chunk pointing at the source
            file when the audio already fits in one window.

        Raises:
            TranscriptionError: If any chunk cannot be cut.
        """
        if duration <= self.chunk_seconds:
            return [AudioChunk(0, audio_path, duration)]

        chunk_count = math.ceil(duration / self.chunk_seconds)
        logger.info(
            "audio_split_started",
            duration=round(duration, 1),
            chunk_count=chunk_count,
            chunk_seconds=self.chunk_seconds,
        )

        chunks: list[AudioChunk] = []
        for i in range(chunk_count):
            start = i * self.chunk_seconds
            chunk_path = audio_path.with_name(f"{audio_path.stem}_chunk_{i + 1:03d}.wav")
            args = [
                "ffmpeg", "-v", "error", "-y",
                "-i", str(audio_path),
                "-ss", str(start),
                "-t", str(self.chunk_seconds),
                "-c", "copy",
                str(chunk_path),
            ]
            try:
                result = await run_command(args, timeout=self.timeout)
            except CommandTimeoutError as e:
                raise TranscriptionError(f"Splitting audio timed out: {e}") from e

            if (
                result.returncode != 0
                or not chunk_path.exists()
                or chunk_path.stat().st_size == 0
            ):
                logger.error(
                    "audio_chunk_failed",
                    chunk=i + 1,
                    stderr=result.stderr.strip()[-500:],
                )
                raise TranscriptionError("Failed to split audio into chunks")

            chunks.append(
                AudioChunk(
                    index=i,
                    path=chunk_path,
                    duration_seconds=min(float(self.chunk_seconds), duration - start),
                )
            )

        logger.info("audio_split_completed", chunk_count=len(chunks))
        return chunks
