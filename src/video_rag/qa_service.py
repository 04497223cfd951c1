"""Question answering over stored transcript chunks.

Retrieval is brute-force cosine similarity over every chunk of one analysis,
followed by a single grounded chat call on the best-scoring excerpts.
"""

from pydantic_ai import Agent

from src.utils.logging import get_logger

from .answer_agent import build_answer_agent
from .config import VideoRAGConfig
from .embedding_service import EmbeddingService, cosine_similarity
from .errors import AnalysisNotFoundError, ChatProviderError, NoContentIndexedError
from .repository import AnalysisRepository
from .schemas import (
    ChunkWithEmbedding,
    Citation,
    EnhancedQAResult,
    QAResult,
    QuestionRecord,
    SearchResult,
)

logger = get_logger(__name__)

NO_RELEVANT_CONTENT_ANSWER = (
    "I couldn't find relevant information in the video transcript to answer "
    "your question. Please try rephrasing or ask about a different topic from the video."
)

INSUFFICIENT_CONTEXT_ANSWER = (
    "The video transcript does not contain enough information to answer this question."
)

CITATION_EXCERPT_CHARS = 150
SEARCH_EXCERPT_CHARS = 200
HISTORY_TURNS = 3
MAX_CONFIDENCE = 95.0


def format_timestamp(seconds: float) -> str:
    """Format seconds as m:ss.

    Examples:
        >>> format_timestamp(125.7)
        '2:05'
    """
    minutes, remainder = divmod(int(seconds), 60)
    return f"{minutes}:{remainder:02d}"


def compute_confidence(scores: list[float]) -> float:
    """Confidence (0-95) from citation similarities.

    Mean similarity plus a bonus of up to 0.1 for having several relevant
    chunks, scaled to a percentage and capped at 95.
    """
    if not scores:
        return 0.0
    average = sum(scores) / len(scores)
    bonus = min(len(scores) / 5, 1.0) * 0.1
    return min((average + bonus) * 100, MAX_CONFIDENCE)


def _excerpt(text: str, limit: int) -> str:
    return text[:limit] + "..."


def _citation(chunk: ChunkWithEmbedding, score: float, limit: int) -> Citation:
    return Citation(
        chunk_index=chunk.chunk_index,
        text=_excerpt(chunk.content, limit),
        start_seconds=chunk.start_seconds,
        end_seconds=chunk.end_seconds,
        relevance_score=score,
    )


class QAService:
    """Answers questions about an analyzed video.

    Chunks are ranked by cosine similarity to the question embedding; the
    top ``qa_top_k`` chunks scoring strictly above ``relevance_threshold``
    form the context. With no surviving chunk the service returns a canned
    answer without calling the chat model.
    """

    def __init__(
        self,
        config: VideoRAGConfig,
        storage: AnalysisRepository,
        embedding_service: EmbeddingService,
        answer_agent: Agent | None = None,
        citation_agent: Agent | None = None,
    ):
        """Initialize QA service.

        Args:
            config: Configuration with retrieval thresholds and chat model.
            storage: Repository holding analyses, chunks and questions.
            embedding_service: Service used to embed questions.
            answer_agent: Agent for plain answers (built from config if omitted).
            citation_agent: Agent for cited answers (built from config if omitted).
        """
        self.config = config
        self.storage = storage
        self.embedding_service = embedding_service
        self.answer_agent = answer_agent or build_answer_agent(config)
        self.citation_agent = citation_agent or build_answer_agent(
            config, with_citations=True
        )

    # ==========================================================================
    # Retrieval
    # ==========================================================================

    def rank_chunks(
        self, query_embedding: list[float], chunks: list[ChunkWithEmbedding]
    ) -> list[tuple[ChunkWithEmbedding, float]]:
        """Score chunks against a query embedding, best first.

        Chunks with an empty or mismatched embedding are skipped. The sort is
        stable, so equal scores keep chunk order.
        """
        scored = []
        for chunk in chunks:
            if not chunk.embedding or len(chunk.embedding) != len(query_embedding):
                logger.warning(
                    "chunk_embedding_skipped",
                    analysis_id=chunk.analysis_id,
                    chunk_index=chunk.chunk_index,
                    embedding_dim=len(chunk.embedding),
                    query_dim=len(query_embedding),
                )
                continue
            scored.append((chunk, cosine_similarity(query_embedding, chunk.embedding)))

        return sorted(scored, key=lambda pair: pair[1], reverse=True)

    async def retrieve(
        self, analysis_id: int, question: str
    ) -> list[tuple[ChunkWithEmbedding, float]]:
        """Top-k chunks scoring strictly above the relevance threshold.

        Raises:
            NoContentIndexedError: If the analysis has no stored chunks.
        """
        chunks = await self.storage.get_chunks(analysis_id)
        if not chunks:
            raise NoContentIndexedError("No content found for this analysis")

        query_embedding = await self.embedding_service.embed_text(question)
        ranked = self.rank_chunks(query_embedding, chunks)
        relevant = [
            (chunk, score)
            for chunk, score in ranked[: self.config.qa_top_k]
            if score > self.config.relevance_threshold
        ]

        logger.info(
            "chunks_retrieved",
            analysis_id=analysis_id,
            total_chunks=len(chunks),
            relevant_chunks=len(relevant),
            top_score=round(ranked[0][1], 4) if ranked else None,
        )
        return relevant

    async def _run_agent(self, agent: Agent, prompt: str, analysis_id: int) -> str:
        try:
            result = await agent.run(prompt)
        except Exception as e:
            logger.exception(
                "answer_generation_failed",
                analysis_id=analysis_id,
                error_type=type(e).__name__,
            )
            raise ChatProviderError(f"Failed to generate answer: {e}") from e

        answer = (result.output or "").strip()
        return answer or INSUFFICIENT_CONTEXT_ANSWER

    # ==========================================================================
    # Question answering
    # ==========================================================================

    async def answer_question(self, analysis_id: int, question: str) -> QAResult:
        """Answer a question from the analysis' transcript.

        Args:
            analysis_id: Analysis to search.
            question: Natural-language question.

        Returns:
            QAResult; the canned not-found answer when nothing is relevant.

        Raises:
            NoContentIndexedError: If the analysis has no stored chunks.
            EmbeddingProviderError: If the question cannot be embedded.
            ChatProviderError: If the chat call fails.
        """
        logger.info("question_received", analysis_id=analysis_id, question_length=len(question))

        relevant = await self.retrieve(analysis_id, question)
        if not relevant:
            logger.info("no_relevant_chunks", analysis_id=analysis_id)
            return QAResult(question=question, answer=NO_RELEVANT_CONTENT_ANSWER)

        context = "\n\n".join(chunk.content for chunk, _ in relevant)
        prompt = (
            "Based on the following video transcript excerpts, please answer this question:\n\n"
            f"Question: {question}\n\n"
            f"Transcript Context:\n{context}\n\n"
            "Answer:"
        )
        answer = await self._run_agent(self.answer_agent, prompt, analysis_id)

        await self.storage.create_question(analysis_id, question, answer)
        logger.info("question_answered", analysis_id=analysis_id, context_chunks=len(relevant))
        return QAResult(question=question, answer=answer)

    async def answer_with_citations(
        self, analysis_id: int, question: str
    ) -> EnhancedQAResult:
        """Answer a question with numbered citations and a confidence score.

        The last few question/answer records of the analysis are added to the
        prompt so follow-up questions can be resolved.

        Raises:
            AnalysisNotFoundError: If the analysis does not exist.
            NoContentIndexedError: If the analysis has no stored chunks.
            ChatProviderError: If the chat call fails.
        """
        analysis = await self.storage.get_analysis(analysis_id)
        if analysis is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")

        relevant = await self.retrieve(analysis_id, question)
        if not relevant:
            return EnhancedQAResult(
                analysis_id=analysis_id,
                question=question,
                answer=NO_RELEVANT_CONTENT_ANSWER,
            )

        blocks = []
        citations = []
        for number, (chunk, score) in enumerate(relevant, start=1):
            time_info = ""
            if chunk.start_seconds is not None and chunk.end_seconds is not None:
                time_info = (
                    f" ({format_timestamp(chunk.start_seconds)} - "
                    f"{format_timestamp(chunk.end_seconds)})"
                )
            blocks.append(f"[{number}]{time_info}: {chunk.content}")
            citations.append(_citation(chunk, score, CITATION_EXCERPT_CHARS))

        context = "Relevant information from the video:\n\n" + "\n\n".join(blocks)

        history = await self.storage.get_questions(analysis_id)
        if history:
            # Stored newest first; the prompt reads oldest first
            turns = reversed(history[:HISTORY_TURNS])
            context += "\n\nPrevious conversation:\n" + "\n\n".join(
                f"Q: {turn.question}\nA: {turn.answer}" for turn in turns
            )

        prompt = f"Context: {context}\n\nQuestion: {question}"
        answer = await self._run_agent(self.citation_agent, prompt, analysis_id)
        await self.storage.create_question(analysis_id, question, answer)

        confidence = compute_confidence([c.relevance_score for c in citations])
        logger.info(
            "question_answered_with_citations",
            analysis_id=analysis_id,
            citations=len(citations),
            confidence=round(confidence, 1),
        )
        return EnhancedQAResult(
            analysis_id=analysis_id,
            question=question,
            answer=answer,
            citations=citations,
            confidence=confidence,
        )

    async def semantic_search(
        self, analysis_id: int, query: str, limit: int = 10
    ) -> list[SearchResult]:
        """Rank an analysis' chunks by similarity to a free-text query.

        Returns:
            Up to ``limit`` results scoring at least ``search_min_score``,
            best first; empty when the analysis has no chunks.
        """
        chunks = await self.storage.get_chunks(analysis_id)
        if not chunks:
            return []

        query_embedding = await self.embedding_service.embed_text(query)
        results = [
            SearchResult(
                chunk=chunk,
                relevance_score=score,
                citation=_citation(chunk, score, SEARCH_EXCERPT_CHARS),
            )
            for chunk, score in self.rank_chunks(query_embedding, chunks)
            if score >= self.config.search_min_score
        ][:limit]

        logger.info(
            "semantic_search_completed",
            analysis_id=analysis_id,
            results=len(results),
            limit=limit,
        )
        return results

    async def get_question_history(self, analysis_id: int) -> list[QuestionRecord]:
        return await self.storage.get_questions(analysis_id)
