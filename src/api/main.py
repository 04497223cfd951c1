"""FastAPI application for the video RAG service.

Provides endpoints to ingest YouTube videos, list analyses, ask questions
(plain or with citations) and run semantic search over a video.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Literal

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.utils.clients import get_app_clients
from src.utils.logging import get_logger
from src.video_rag.config import get_config
from src.video_rag.errors import (
    AnalysisNotFoundError,
    EmptyTranscriptError,
    InvalidUrlError,
    NoCaptionsAvailableError,
    NoContentIndexedError,
    VideoRAGError,
    VideoUnavailableError,
)
from src.video_rag.pipeline import VideoAnalysisPipeline
from src.video_rag.schemas import (
    AnalysisResult,
    QuestionRecord,
    SearchResult,
    VideoAnalysis,
)

logger = get_logger(__name__)

ERROR_STATUS_CODES: dict[type[VideoRAGError], int] = {
    InvalidUrlError: 400,
    NoCaptionsAvailableError: 400,
    EmptyTranscriptError: 400,
    VideoUnavailableError: 404,
    AnalysisNotFoundError: 404,
    NoContentIndexedError: 404,
}


def status_code_for(error: VideoRAGError) -> int:
    """HTTP status for a service error; 500 for provider and internal errors."""
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


# ==============================================================================
# Lifespan Management
# ==============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for the FastAPI application.

    Builds clients and the pipeline once and stores them on ``app.state``.
    """
    logger.info("application_startup_started")

    try:
        config = get_config()
        embedding_client, http_client, supabase = get_app_clients(config)
        app.state.http_client = http_client
        app.state.pipeline = VideoAnalysisPipeline(
            config,
            http_client=http_client,
            openai_client=embedding_client,
            supabase_client=supabase,
        )
        logger.info(
            "application_startup_completed",
            storage_backend=config.storage_backend,
            transcript_strategy=config.transcript_strategy,
        )
    except Exception:
        logger.exception("application_startup_failed")
        raise

    yield  # Application runs here

    logger.info("application_shutdown_started")
    await app.state.http_client.aclose()
    logger.info("application_shutdown_completed")


# ==============================================================================
# FastAPI Application Setup
# ==============================================================================

app = FastAPI(
    title="Video RAG API",
    description="Ask questions about YouTube videos using their transcripts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VideoRAGError)
async def video_rag_error_handler(request: Request, exc: VideoRAGError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
    else:
        logger.info(
            "request_rejected",
            path=request.url.path,
            status_code=status_code,
            error_type=type(exc).__name__,
        )
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


def get_pipeline(request: Request) -> VideoAnalysisPipeline:
    return request.app.state.pipeline


# ==============================================================================
# Request Models
# ==============================================================================


class IngestRequest(BaseModel):
    """Request model for video ingestion."""

    url: str
    user_id: int
    strategy: Literal["captions", "audio"] | None = None


class QuestionRequest(BaseModel):
    """Request model for asking a question."""

    question: str = Field(min_length=1)
    enhanced: bool = False


# ==============================================================================
# API Endpoints
# ==============================================================================


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint.

    Returns:
        Health status and timestamp.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": {
            "pipeline": getattr(request.app.state, "pipeline", None) is not None,
            "http_client": getattr(request.app.state, "http_client", None) is not None,
        },
    }


@app.post(
    "/api/video-analyses",
    response_model=AnalysisResult,
    response_model_exclude={"chunks": {"__all__": {"embedding"}}},
)
async def create_video_analysis(
    body: IngestRequest,
    pipeline: VideoAnalysisPipeline = Depends(get_pipeline),
):
    """Ingest a YouTube video and index its transcript."""
    logger.info("ingest_request_started", user_id=body.user_id, strategy=body.strategy)
    return await pipeline.ingest_video(body.url, body.user_id, strategy=body.strategy)


@app.get("/api/video-analyses", response_model=list[VideoAnalysis])
async def list_video_analyses(
    user_id: int = Query(...),
    pipeline: VideoAnalysisPipeline = Depends(get_pipeline),
):
    return await pipeline.list_analyses(user_id)


@app.get("/api/video-analyses/{analysis_id}", response_model=VideoAnalysis)
async def get_video_analysis(
    analysis_id: int,
    pipeline: VideoAnalysisPipeline = Depends(get_pipeline),
):
    analysis = await pipeline.get_analysis(analysis_id)
    if analysis is None:
        raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
    return analysis


@app.post("/api/video-analyses/{analysis_id}/questions")
async def ask_video_question(
    analysis_id: int,
    body: QuestionRequest,
    pipeline: VideoAnalysisPipeline = Depends(get_pipeline),
):
    """Answer a question about an analyzed video.

    With ``enhanced`` the answer carries citations and a confidence score.
    """
    if await pipeline.get_analysis(analysis_id) is None:
        raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")

    if body.enhanced:
        return await pipeline.ask_question_with_citations(analysis_id, body.question)
    return await pipeline.ask_question(analysis_id, body.question)


@app.get(
    "/api/video-analyses/{analysis_id}/questions",
    response_model=list[QuestionRecord],
)
async def list_video_questions(
    analysis_id: int,
    pipeline: VideoAnalysisPipeline = Depends(get_pipeline),
):
    return await pipeline.get_question_history(analysis_id)


@app.get(
    "/api/video-analyses/{analysis_id}/search",
    response_model=list[SearchResult],
    response_model_exclude={"__all__": {"chunk": {"embedding"}}},
)
async def search_video(
    analysis_id: int,
    query: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    pipeline: VideoAnalysisPipeline = Depends(get_pipeline),
):
    return await pipeline.semantic_search(analysis_id, query, limit=limit)
