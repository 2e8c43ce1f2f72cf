"""
Vector-similarity context injection for simple chat prompts.
"""

from typing import Protocol, TypedDict

from logging_utils import get_logger
from steps.prompts import VECTOR_CONTEXT_EXAMPLE, VECTOR_CONTEXT_HEADER

logger = get_logger(__name__)


class SearchHit(TypedDict):
    content: str
    similarity: float


class VectorSearch(Protocol):
    """Anything that can rank stored snippets against a query."""

    async def search(self, query: str) -> list[SearchHit]:
        ...


def format_context(hits: list[SearchHit]) -> str:
    examples = "\n\n".join(
        VECTOR_CONTEXT_EXAMPLE.format(
            index=i + 1,
            similarity=hit["similarity"],
            content=hit["content"],
        )
        for i, hit in enumerate(hits)
    )
    return f"{VECTOR_CONTEXT_HEADER}\n\n{examples}"


async def augment_with_context(prompt: str, search: VectorSearch | None) -> str:
    """
    Append ranked examples from the vector store to prompt.

    Search failures are logged and the prompt goes out unchanged.
    """
    if search is None:
        return prompt

    try:
        hits = await search.search(prompt)
    except Exception as e:
        logger.warning(f"Vector search error, continuing without context: {e}")
        return prompt

    if not hits:
        return prompt

    logger.info(f"Adding {len(hits)} vector search example(s) to prompt")
    return f"{prompt}\n\n{format_context(hits)}"
