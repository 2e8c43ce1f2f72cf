"""
Structured workflow stages: chat, think, code x N, debug.

Each stage is one model call (code runs once per phase) and returns a
partial RunUpdate; the runner in workflow.py decides what comes next.
"""

import re

from state import Role, RunState, RunUpdate
from steps.common import Dependencies, RunOptions, dispatch
from steps.merge import concat_code
from steps.prompts import (
    PROMPT_CODE_FIRST,
    PROMPT_CODE_NEXT,
    PROMPT_THINK,
    PROMPT_WORKFLOW_DEBUG,
)

_STEP_COUNT = re.compile(r"(\d+)\s+steps?", re.IGNORECASE)


def parse_step_count(text: str, default: int = 3) -> int:
    """
    Read a "<N> steps" phrase from the think-stage reply.

    Returns default when no such phrase exists or N is zero.
    """
    match = _STEP_COUNT.search(text)
    if match is None:
        return default
    count = int(match.group(1))
    return count if count > 0 else default


async def chat_stage(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate:
    """Free-form analysis of the request."""
    result = await dispatch(deps, run.initial_prompt, Role.CHAT, len(run.results), options)
    return {"results": run.with_result(result)}


async def think_stage(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate:
    """
    Ask the model to decompose the task.

    Returns:
        RunUpdate with analysis and total_steps taken from the reply.
    """
    result = await dispatch(
        deps,
        PROMPT_THINK.format(prompt=run.initial_prompt),
        Role.THINK,
        len(run.results),
        options,
    )
    steps = parse_step_count(result.response, deps.config.workflow.default_think_steps)
    return {
        "results": run.with_result(result),
        "analysis": result.response,
        "total_steps": steps,
        "current_step": 0,
    }


async def code_stage(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate:
    """
    Implement the next phase.

    Code is concatenated, not merged: every phase prompt already carries the
    code so far and asks for the next phase only.
    """
    phase = run.current_step + 1

    if phase == 1:
        message = PROMPT_CODE_FIRST.format(prompt=run.initial_prompt, analysis=run.analysis)
    else:
        message = PROMPT_CODE_NEXT.format(
            prompt=run.initial_prompt,
            analysis=run.analysis,
            code=run.accumulated_code,
            step=phase,
        )

    result = await dispatch(deps, message, Role.CODE, len(run.results), options)

    accumulated = run.accumulated_code
    if result.extracted_code:
        accumulated = concat_code(accumulated, result.extracted_code)

    return {
        "results": run.with_result(result),
        "accumulated_code": accumulated,
        "current_step": phase,
    }


async def debug_stage(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate:
    """
    Debug the fully accumulated code.

    Returns:
        RunUpdate with final_code: the debugged code, or the accumulated code
        when the reply carried none.
    """
    result = await dispatch(
        deps,
        PROMPT_WORKFLOW_DEBUG.format(code=run.accumulated_code),
        Role.DEBUG,
        len(run.results),
        options,
    )
    return {
        "results": run.with_result(result),
        "final_code": result.extracted_code or run.accumulated_code,
        "debugged": True,
    }
