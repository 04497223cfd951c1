"""Grounded answer agent.

Defines the Pydantic AI agent that answers questions strictly from retrieved
transcript excerpts.
"""

from pydantic_ai import Agent
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from .config import VideoRAGConfig

# ==============================================================================
# System Prompts
# ==============================================================================

GROUNDED_ANSWER_PROMPT = """You are a helpful assistant that answers questions about a YouTube video using only excerpts from its transcript.

Rules:
- Answer ONLY from the provided transcript context.
- If the context does not contain enough information to answer, say so plainly instead of guessing.
- Be concise and specific. Quote short phrases from the context when it helps.
"""

CITATION_ANSWER_PROMPT = """You are an expert assistant that answers questions about a YouTube video using only numbered excerpts from its transcript.

Rules:
- Answer ONLY from the provided excerpts. Never add outside knowledge.
- Refer to excerpts by their number, e.g. [1] or [2], and mention their timestamps when given.
- Use the previous conversation only to understand follow-up questions.
- If the excerpts do not contain enough information, say so plainly instead of guessing.
"""


# ==============================================================================
# Model and Agent Construction
# ==============================================================================


def get_model(config: VideoRAGConfig) -> OpenAIChatModel:
    """Get the configured chat model.

    Args:
        config: Configuration with LLM_CHOICE, LLM_BASE_URL and LLM_API_KEY.

    Returns:
        OpenAIChatModel for any OpenAI-compatible endpoint.
    """
    provider = OpenAIProvider(
        base_url=config.llm_base_url,
        api_key=config.llm_api_key or "ollama",
    )
    return OpenAIChatModel(config.llm_model, provider=provider)


def build_answer_agent(config: VideoRAGConfig, *, with_citations: bool = False) -> Agent:
    """Build a text-output agent for grounded answers.

    Args:
        config: Configuration used to build the model.
        with_citations: Use the numbered-excerpt prompt instead of the plain one.
    """
    prompt = CITATION_ANSWER_PROMPT if with_citations else GROUNDED_ANSWER_PROMPT
    return Agent(get_model(config), system_prompt=prompt, retries=1)
