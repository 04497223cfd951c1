"""Error taxonomy for the video RAG service.

Acquisition errors are user-correctable and surfaced verbatim. Provider errors
abort the enclosing operation without rolling back persisted state.
"""


class VideoRAGError(Exception):
    """Base class for all video RAG errors."""


class InvalidUrlError(VideoRAGError):
    """Raised when no YouTube video ID can be parsed from a URL."""


class NoCaptionsAvailableError(VideoRAGError):
    """Raised when no caption track could be fetched for a video."""


class VideoUnavailableError(VideoRAGError):
    """Raised for private, age-restricted, removed or geo-blocked videos."""


class AudioDownloadError(VideoRAGError):
    """Raised when the audio track of a video cannot be downloaded."""


class TranscriptionError(VideoRAGError):
    """Raised when audio transcription produces no usable transcript."""


class EmbeddingProviderError(VideoRAGError):
    """Raised on embedding provider transport or quota failures."""


class ChatProviderError(VideoRAGError):
    """Raised when the chat-completion provider call fails."""


class ProviderResponseError(VideoRAGError):
    """Raised when a provider response does not have the expected shape."""


class NoContentIndexedError(VideoRAGError):
    """Raised when an analysis has no stored chunks to search."""


class EmptyTranscriptError(VideoRAGError):
    """Raised when acquisition succeeds but the transcript text is blank."""


class AnalysisNotFoundError(VideoRAGError):
    """Raised when an analysis ID does not exist in storage."""


class InvalidStatusTransitionError(VideoRAGError):
    """Raised when an analysis status would move backwards."""
