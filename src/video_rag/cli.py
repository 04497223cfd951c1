"""Command-line interface for ingesting videos and asking questions."""

import argparse
import asyncio
import sys

from src.utils.logging import get_logger

from .config import get_config
from .errors import VideoRAGError
from .pipeline import VideoAnalysisPipeline
from .qa_service import format_timestamp
from .transcript_acquirer import STRATEGIES

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Video RAG - Ask questions about YouTube videos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest a video and ask questions in the same run (memory backend)
  python -m src.video_rag.cli ingest https://youtu.be/dQw4w9WgXcQ \\
      --question "What is the video about?"

  # Transcribe the audio track instead of using captions
  python -m src.video_rag.cli ingest https://youtu.be/dQw4w9WgXcQ --strategy audio

  # Ask a stored analysis with citations (STORAGE_BACKEND=supabase)
  python -m src.video_rag.cli ask 42 "What are the key points?" --enhanced

  # Search a stored analysis
  python -m src.video_rag.cli search 42 "neural networks" --limit 5
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest a YouTube video")
    ingest.add_argument("url", help="YouTube video URL")
    ingest.add_argument("--user-id", type=int, default=1, help="Owner user ID (default: 1)")
    ingest.add_argument(
        "--strategy",
        choices=STRATEGIES,
        help="Transcript strategy (default: TRANSCRIPT_STRATEGY or captions)",
    )
    ingest.add_argument(
        "--question",
        action="append",
        default=[],
        help="Question to ask after ingestion (repeatable)",
    )

    ask = subparsers.add_parser("ask", help="Ask a question about an analysis")
    ask.add_argument("analysis_id", type=int)
    ask.add_argument("question")
    ask.add_argument("--enhanced", action="store_true", help="Answer with citations")

    search = subparsers.add_parser("search", help="Semantic search within an analysis")
    search.add_argument("analysis_id", type=int)
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=10)

    return parser


def _print_banner(title: str) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


async def _ingest(pipeline: VideoAnalysisPipeline, args: argparse.Namespace) -> None:
    result = await pipeline.ingest_video(args.url, args.user_id, strategy=args.strategy)

    _print_banner("Ingestion Results")
    print(f"Analysis ID: {result.analysis_id}")
    print(f"Title: {result.video_title}")
    print(f"Channel: {result.channel_name}")
    print(f"Transcript words: {len(result.transcript.split())}")
    print(f"Chunks stored: {len(result.chunks)}")
    print(f"Processing time: {result.processing_time_ms} ms")
    print("=" * 60 + "\n")

    for question in args.question:
        answer = await pipeline.ask_question(result.analysis_id, question)
        print(f"Q: {answer.question}")
        print(f"A: {answer.answer}\n")


async def _ask(pipeline: VideoAnalysisPipeline, args: argparse.Namespace) -> None:
    if not args.enhanced:
        result = await pipeline.ask_question(args.analysis_id, args.question)
        print(f"\nQ: {result.question}\nA: {result.answer}\n")
        return

    result = await pipeline.ask_question_with_citations(args.analysis_id, args.question)
    print(f"\nQ: {result.question}\nA: {result.answer}")
    print(f"Confidence: {result.confidence:.0f}%")
    for number, citation in enumerate(result.citations, start=1):
        when = ""
        if citation.start_seconds is not None:
            when = f" @ {format_timestamp(citation.start_seconds)}"
        print(f"  [{number}]{when} ({citation.relevance_score:.2f}) {citation.text}")
    print()


async def _search(pipeline: VideoAnalysisPipeline, args: argparse.Namespace) -> None:
    results = await pipeline.semantic_search(args.analysis_id, args.query, limit=args.limit)
    _print_banner(f"Search Results ({len(results)})")
    for result in results:
        print(f"#{result.chunk.chunk_index} ({result.relevance_score:.2f}) {result.citation.text}")
    print("=" * 60 + "\n")


COMMANDS = {"ingest": _ingest, "ask": _ask, "search": _search}


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Process exit code: 0 on success, 1 on a handled failure.
    """
    args = build_parser().parse_args(argv)
    config = get_config()
    logger.info("cli_started", command=args.command, storage_backend=config.storage_backend)

    pipeline = VideoAnalysisPipeline(config)
    try:
        await COMMANDS[args.command](pipeline, args)
    except VideoRAGError as e:
        logger.warning("cli_command_failed", command=args.command, error_type=type(e).__name__)
        print(f"\n❌ {e}")
        return 1
    finally:
        await pipeline.aclose()

    logger.info("cli_completed", command=args.command)
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
