"""
Common utilities shared across step modules.

Contains:
- Dependencies dataclass for dependency injection
- RunOptions, the per-run snapshot of user toggles
- dispatch(), the single path every model call goes through
"""

from dataclasses import dataclass
from typing import Any, Protocol

from config import AppConfig
from llm import ChatRequest
from logging_utils import get_logger
from state import Role, StepResult
from steps.context import VectorSearch
from steps.parsing import parse_response
from steps.prompts import format_for_role
from steps.safety import check_code_safety

logger = get_logger(__name__)


class ChatTransport(Protocol):
    async def chat(self, request: ChatRequest) -> str:
        ...


@dataclass
class Dependencies:
    """
    All external dependencies for step functions.

    Injected once when the orchestrator is built, passed to all steps.
    Makes testing easy - just fake these.
    """
    config: AppConfig
    llm: ChatTransport
    vector_search: VectorSearch | None = None
    store: Any = None


@dataclass(frozen=True)
class RunOptions:
    """User toggles captured when a run starts; later changes don't leak in."""
    auto_debug: bool = False
    thinking_mode: bool = False
    system_prompt: str = ""
    validation_score: int | None = None


async def dispatch(
    deps: Dependencies,
    message: str,
    role: Role,
    step_index: int,
    options: RunOptions,
) -> StepResult:
    """
    Format, send, and parse one model call.

    Args:
        deps: Injected dependencies.
        message: Prompt body before role formatting.
        role: Role of the call; also the transport mode tag.
        step_index: Position of this call within its run.
        options: Run toggles (system prompt, prior validation score).

    Returns:
        Immutable StepResult with parsed code, chunks, and safety warnings.
    """
    llm_config = deps.config.llm
    request = ChatRequest(
        message=format_for_role(
            message,
            role.value,
            model_name=llm_config.model_name or llm_config.model,
            system_prompt=options.system_prompt,
        ),
        mode=role.value,
        session_id=llm_config.session_id,
        validation_score=options.validation_score,
        model=llm_config.model or None,
    )

    raw = await deps.llm.chat(request)
    parsed = parse_response(raw, chunk_size=deps.config.workflow.chunk_chars)

    warnings: tuple[str, ...] = ()
    if parsed.code:
        warnings = check_code_safety(parsed.code).warnings
        for warning in warnings:
            logger.warning(f"Step {step_index} ({role.value}) code: {warning}")

    return StepResult(
        step_index=step_index,
        role=role,
        raw_text=raw,
        response=parsed.response,
        extracted_code=parsed.code,
        code_chunks=tuple(parsed.code_chunks),
        warnings=warnings,
    )
