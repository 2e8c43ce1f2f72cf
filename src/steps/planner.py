"""
Step planning: ask the model how big a task is and how many steps it needs.
"""

import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llm import ChatRequest, TransportError
from logging_utils import get_logger
from state import Role
from steps.common import Dependencies
from steps.parsing import unwrap_envelope
from steps.prompts import PROMPT_TOKEN_INFO

logger = get_logger(__name__)


class TokenEstimate(BaseModel):
    """Token budget and step count reported by the model."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    token_limit: int = Field(alias="tokenLimit", gt=0)
    steps: int = Field(gt=0)


def find_json_object(text: str) -> str | None:
    """
    Return the first balanced {...} span in text, or None.

    Braces inside JSON string literals are ignored so prose such as
    'use {"a": "}"}' still yields the whole object.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False

        for i in range(start, len(text)):
            char = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]

        # Unbalanced from this brace; try the next opening brace
        start = text.find("{", start + 1)

    return None


def parse_token_estimate(text: str, default: TokenEstimate) -> TokenEstimate:
    """Parse a planner reply, degrading to default on anything unusable."""
    span = find_json_object(text)
    if span is None:
        logger.debug("Planner reply has no JSON object; using default estimate")
        return default

    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse token info: {e}")
        return default

    if not isinstance(data, dict):
        return default

    try:
        return TokenEstimate.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Token info missing or invalid fields: {e.error_count()} error(s)")
        return default


async def estimate_steps(prompt: str, deps: Dependencies) -> TokenEstimate:
    """
    Ask the model for a token budget and step count for prompt.

    Never fails on bad model output or on transport failure: both fall back to
    the configured default (4000 tokens, 1 step).

    Raises:
        ConfigurationError: No provider configured.
    """
    workflow = deps.config.workflow
    default = TokenEstimate(token_limit=workflow.default_token_limit, steps=workflow.default_steps)

    request = ChatRequest(
        message=PROMPT_TOKEN_INFO.format(prompt=prompt),
        mode=Role.QUERY.value,
        session_id=deps.config.llm.session_id,
        model=deps.config.llm.model or None,
    )

    try:
        raw = await deps.llm.chat(request)
    except TransportError as e:
        logger.warning(f"Error getting token limit, using default: {e}")
        return default

    estimate = parse_token_estimate(unwrap_envelope(raw), default)
    logger.debug(f"Token estimate: limit={estimate.token_limit} steps={estimate.steps}")
    return estimate
