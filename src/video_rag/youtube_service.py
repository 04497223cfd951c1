"""YouTube service for parsing URLs, fetching captions and video metadata.

Captions and metadata are fetched through ordered lists of strategies. Each
strategy exposes the same ``attempt(video_id)`` contract and reports failure
as a result instead of raising, so fallbacks are a list edit rather than a
chain of nested try/except blocks.
"""

import asyncio
import html
import re
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

import httpx
import yt_dlp
from pydantic import BaseModel
from youtube_transcript_api import (
    AgeRestricted,
    CouldNotRetrieveTranscript,
    TranscriptsDisabled,
    VideoUnavailable,
    VideoUnplayable,
    YouTubeTranscriptApi,
)

from src.utils.logging import get_logger

from .config import VideoRAGConfig
from .errors import InvalidUrlError, NoCaptionsAvailableError, VideoUnavailableError
from .schemas import Transcript, TranscriptSegment, VideoInfo

logger = get_logger(__name__)

T = TypeVar("T")

_VIDEO_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([^&\n?#]+)"),
    re.compile(r"youtube\.com/embed/([^&\n?#]+)"),
    re.compile(r"youtube\.com/v/([^&\n?#]+)"),
]

_TITLE_PATTERNS = [
    re.compile(r'<meta name="title" content="([^"]+)"'),
    re.compile(r"<title>([^<]+)</title>"),
]

_CHANNEL_PATTERNS = [
    re.compile(r'<link itemprop="name" content="([^"]+)">'),
    re.compile(r'"author":"([^"]+)"'),
]

PLACEHOLDER_CHANNEL = "YouTube Channel"


def extract_video_id(url: str) -> str | None:
    """Extract the video ID from a YouTube URL.

    Supports youtube.com/watch?v=, youtu.be/, youtube.com/embed/ and
    youtube.com/v/ URLs.

    Args:
        url: YouTube video URL.

    Returns:
        The video ID, or None if the URL matches none of the known shapes.

    Examples:
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://example.com/abc") is None
        True
    """
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match and match.group(1):
            return match.group(1)
    return None


def require_video_id(url: str) -> str:
    """Extract the video ID or raise InvalidUrlError."""
    video_id = extract_video_id(url)
    if not video_id:
        raise InvalidUrlError(f"Invalid YouTube URL: {url}")
    return video_id


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def placeholder_video_info(video_id: str) -> VideoInfo:
    return VideoInfo(
        video_id=video_id,
        title=f"YouTube Video {video_id}",
        channel_name=PLACEHOLDER_CHANNEL,
    )


class StrategyResult(BaseModel, Generic[T]):
    """Outcome of a single strategy attempt: a value or an error description."""

    strategy: str
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None


# ==============================================================================
# Caption strategies
# ==============================================================================


class CaptionStrategy(ABC):
    """Fetches caption cues for a video through youtube-transcript-api."""

    name = "captions"

    def __init__(self, api: YouTubeTranscriptApi):
        self.api = api

    @abstractmethod
    def _fetch(self, video_id: str):
        """Blocking fetch returning a FetchedTranscript, or None if no track."""

    async def attempt(self, video_id: str) -> StrategyResult[Transcript]:
        """Try to fetch captions for a video.

        Raises:
            VideoUnavailableError: If the video itself cannot be accessed.
            NoCaptionsAvailableError: If the uploader disabled captions.
        """
        try:
            fetched = await asyncio.to_thread(self._fetch, video_id)
        except VideoUnavailable as e:
            raise VideoUnavailableError(
                "This video is private or unavailable. Please use a public video."
            ) from e
        except (AgeRestricted, VideoUnplayable) as e:
            raise VideoUnavailableError(
                "This video is age-restricted or cannot be played. "
                "Please use a public video."
            ) from e
        except TranscriptsDisabled as e:
            raise NoCaptionsAvailableError(
                "Captions are disabled for this video. Please choose a video with captions."
            ) from e
        except CouldNotRetrieveTranscript as e:
            return StrategyResult[Transcript](strategy=self.name, error=type(e).__name__)
        except Exception as e:
            logger.warning(
                "caption_strategy_error",
                strategy=self.name,
                video_id=video_id,
                error_type=type(e).__name__,
            )
            return StrategyResult[Transcript](strategy=self.name, error=str(e))

        if fetched is None:
            return StrategyResult[Transcript](strategy=self.name, error="no caption track")

        segments = []
        for snippet in fetched.snippets:
            text = " ".join(snippet.text.split())
            if not text:
                continue
            segments.append(
                TranscriptSegment(
                    start=float(snippet.start),
                    end=float(snippet.start) + float(snippet.duration),
                    text=text,
                )
            )

        if not segments:
            return StrategyResult[Transcript](strategy=self.name, error="empty captions")

        transcript = Transcript(
            video_id=video_id,
            text=" ".join(segment.text for segment in segments),
            segments=segments,
            language=getattr(fetched, "language_code", None) or "unknown",
            source="captions",
            provider="youtube_captions",
        )
        return StrategyResult[Transcript](strategy=self.name, value=transcript)


class AutoLanguageCaptionStrategy(CaptionStrategy):
    """Uses the first caption track listed for the video, whatever its language."""

    name = "auto"

    def _fetch(self, video_id: str):
        transcript = next(iter(self.api.list(video_id)), None)
        if transcript is None:
            return None
        return transcript.fetch()


class LanguageCaptionStrategy(CaptionStrategy):
    """Fetches the caption track for one specific language code."""

    def __init__(self, api: YouTubeTranscriptApi, language: str):
        super().__init__(api)
        self.language = language
        self.name = f"lang:{language}"

    def _fetch(self, video_id: str):
        return self.api.fetch(video_id, languages=[self.language])


def build_caption_strategies(
    api: YouTubeTranscriptApi, languages: list[str]
) -> list[CaptionStrategy]:
    """Auto-detection first, then one strategy per priority language."""
    strategies: list[CaptionStrategy] = [AutoLanguageCaptionStrategy(api)]
    strategies.extend(LanguageCaptionStrategy(api, language) for language in languages)
    return strategies


# ==============================================================================
# Metadata strategies
# ==============================================================================


class MetadataStrategy(ABC):
    """Fetches video metadata; failures are reported, never raised."""

    name = "metadata"

    @abstractmethod
    async def attempt(self, video_id: str) -> StrategyResult[VideoInfo]:
        """Try to fetch metadata for a video."""


class YtDlpMetadataStrategy(MetadataStrategy):
    """Reads title, channel and duration from yt-dlp's info extraction."""

    name = "yt_dlp"

    def _extract(self, video_id: str) -> dict | None:
        ydl_opts = {"quiet": True, "no_warnings": True, "skip_download": True}
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(watch_url(video_id), download=False)

    async def attempt(self, video_id: str) -> StrategyResult[VideoInfo]:
        try:
            info = await asyncio.to_thread(self._extract, video_id)
        except Exception as e:
            return StrategyResult[VideoInfo](strategy=self.name, error=str(e))

        if not info:
            return StrategyResult[VideoInfo](strategy=self.name, error="no info returned")

        placeholder = placeholder_video_info(video_id)
        video_info = VideoInfo(
            video_id=video_id,
            title=info.get("title") or placeholder.title,
            channel_name=info.get("channel") or info.get("uploader") or PLACEHOLDER_CHANNEL,
            duration_seconds=int(info.get("duration") or 0),
            description=info.get("description") or "",
        )
        return StrategyResult[VideoInfo](strategy=self.name, value=video_info)


class PageMetadataStrategy(MetadataStrategy):
    """Scrapes title and channel name from the watch page's meta tags."""

    name = "page"

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    async def attempt(self, video_id: str) -> StrategyResult[VideoInfo]:
        try:
            response = await self.http_client.get(watch_url(video_id), timeout=15.0)
            response.raise_for_status()
        except httpx.HTTPError as e:
            return StrategyResult[VideoInfo](strategy=self.name, error=str(e))

        page = response.text
        title = _first_match(_TITLE_PATTERNS, page)
        if not title:
            return StrategyResult[VideoInfo](strategy=self.name, error="title not found")

        title = title.replace(" - YouTube", "").strip()
        channel_name = _first_match(_CHANNEL_PATTERNS, page) or PLACEHOLDER_CHANNEL
        video_info = VideoInfo(video_id=video_id, title=title, channel_name=channel_name)
        return StrategyResult[VideoInfo](strategy=self.name, value=video_info)


def _first_match(patterns: list[re.Pattern], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return html.unescape(match.group(1).strip())
    return None


# ==============================================================================
# Service
# ==============================================================================


class YouTubeService:
    """Service for fetching YouTube captions and metadata.

    Caption strategies are tried in order until one returns non-empty cues.
    Metadata strategies are tried in order and degrade to placeholder values.
    """

    def __init__(
        self,
        config: VideoRAGConfig,
        http_client: httpx.AsyncClient | None = None,
        transcript_api: YouTubeTranscriptApi | None = None,
    ):
        """Initialize YouTube service with configuration.

        Args:
            config: Configuration object with caption language priorities.
            http_client: Shared HTTP client used for page metadata scraping.
            transcript_api: youtube-transcript-api client (created if omitted).
        """
        self.config = config
        api = transcript_api or YouTubeTranscriptApi()
        self.caption_strategies: list[CaptionStrategy] = build_caption_strategies(
            api, config.caption_languages
        )
        self.metadata_strategies: list[MetadataStrategy] = [YtDlpMetadataStrategy()]
        if http_client is not None:
            self.metadata_strategies.append(PageMetadataStrategy(http_client))

        logger.info(
            "youtube_service_initialized",
            caption_strategies=[s.name for s in self.caption_strategies],
            metadata_strategies=[s.name for s in self.metadata_strategies],
        )

    async def get_captions(self, video_id: str) -> Transcript:
        """Fetch captions, falling back through the configured languages.

        Args:
            video_id: YouTube video ID.

        Returns:
            Transcript built from the first non-empty caption track.

        Raises:
            NoCaptionsAvailableError: If every strategy fails.
            VideoUnavailableError: If the video is private or unavailable.
        """
        logger.info("fetching_captions", video_id=video_id)
        failures: list[str] = []

        for strategy in self.caption_strategies:
            result = await strategy.attempt(video_id)
            if result.ok:
                logger.info(
                    "captions_fetched",
                    video_id=video_id,
                    strategy=result.strategy,
                    segments=len(result.value.segments),
                    language=result.value.language,
                )
                return result.value
            failures.append(f"{result.strategy}: {result.error}")
            logger.debug(
                "caption_strategy_failed",
                video_id=video_id,
                strategy=result.strategy,
                error=result.error,
            )

        logger.warning("captions_unavailable", video_id=video_id, attempts=len(failures))
        raise NoCaptionsAvailableError(
            "No captions are available for this video. "
            "Please try a different video that has captions enabled."
        )

    async def get_video_info(self, video_id: str) -> VideoInfo:
        """Fetch video metadata, never failing.

        Args:
            video_id: YouTube video ID.

        Returns:
            VideoInfo from the first successful strategy, or placeholders.
        """
        for strategy in self.metadata_strategies:
            result = await strategy.attempt(video_id)
            if result.ok:
                logger.info(
                    "video_info_fetched",
                    video_id=video_id,
                    strategy=result.strategy,
                    title=result.value.title,
                )
                return result.value
            logger.warning(
                "video_info_strategy_failed",
                video_id=video_id,
                strategy=result.strategy,
                error=result.error,
            )

        return placeholder_video_info(video_id)
