"""
Simple multi-step generation: planning, per-step generation, final debug.
"""

from state import Role, RunState, RunUpdate
from steps.common import Dependencies, RunOptions, dispatch
from steps.context import augment_with_context
from steps.merge import merge_code
from steps.planner import estimate_steps
from steps.prompts import PROMPT_CONTINUE_STEP, PROMPT_DEBUG_REQUEST, PROMPT_FINAL_DEBUG


async def plan_run(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate:
    """
    Ask the planner how many steps the prompt needs.

    Returns:
        RunUpdate with total_steps (at least 1), current_step and token_limit.
    """
    estimate = await estimate_steps(run.initial_prompt, deps)
    return {
        "total_steps": estimate.steps if estimate.steps > 1 else 1,
        "current_step": 0,
        "token_limit": estimate.token_limit,
    }


async def generate_step(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate:
    """
    Run the step at run.current_step.

    Step 0 sends the user's prompt (plus vector context when enabled). Later
    steps embed the accumulated code and ask only for the next part. Code from
    later steps is merged, or replaces the accumulated code in auto-debug mode.

    Returns:
        RunUpdate with results and accumulated_code.
    """
    step = run.current_step

    if step == 0:
        message = run.initial_prompt
        if deps.config.modules.is_active("vector"):
            message = await augment_with_context(message, deps.vector_search)
    else:
        message = PROMPT_CONTINUE_STEP.format(
            prompt=run.initial_prompt,
            step=step + 1,
            total_steps=run.total_steps,
            code=run.accumulated_code,
        )

    role = Role.THINK if options.thinking_mode else Role.CHAT
    result = await dispatch(deps, message, role, step, options)

    accumulated = run.accumulated_code
    code = result.extracted_code
    if code:
        if step == 0:
            accumulated = code
        elif options.auto_debug:
            # Auto-debug output is treated as a complete replacement
            accumulated = code
        else:
            accumulated = merge_code(accumulated, code)

    return {
        "results": run.with_result(result),
        "accumulated_code": accumulated,
    }


async def final_debug(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate:
    """
    One Debug-role call over the accumulated code after the last step.

    The debug reply is kept in results; accumulated_code is left as it was.
    """
    result = await dispatch(
        deps,
        PROMPT_FINAL_DEBUG.format(code=run.accumulated_code),
        Role.DEBUG,
        run.current_step + 1,
        options,
    )
    return {
        "results": run.with_result(result),
        "debugged": True,
    }


async def debug_selection(run: RunState, deps: Dependencies, options: RunOptions) -> RunUpdate:
    """
    On-demand debug of the code carried in run.accumulated_code.

    Returns:
        RunUpdate whose final_code is the debugged code if the reply had any.
    """
    result = await dispatch(
        deps,
        PROMPT_DEBUG_REQUEST.format(code=run.accumulated_code),
        Role.DEBUG,
        0,
        options,
    )
    return {
        "results": run.with_result(result),
        "final_code": result.extracted_code or run.accumulated_code,
        "debugged": True,
    }
