"""
Workflow: Explicit state machines for orchestration runs.

Two runners share one skeleton:
- MultiStepRunner: plan, then N generation steps, then an optional debug pass
- StructuredRunner: Chat -> Think -> Code x N -> Debug -> Done

The structured workflow is a stage registry plus router functions, so the
control flow is data. Runners check the cancel token before every dispatch,
apply step updates to an immutable RunState, and report progress as events.
"""

from enum import Enum, auto
from typing import Awaitable, Callable

from config import ConfigurationError
from events import (
    ChatCompleted,
    CodeCompleted,
    DebugCompleted,
    EventSink,
    PlanReady,
    RunCancelled,
    RunCompleted,
    RunFailed,
    RunStarted,
    StepCompleted,
    ThinkCompleted,
    WorkflowEvent,
    null_sink,
)
from logging_utils import LoggerAdapter, get_logger
from state import CancelToken, RunState, RunStatus, RunUpdate
from steps import (
    Dependencies,
    RunOptions,
    chat_stage,
    code_stage,
    debug_selection,
    debug_stage,
    final_debug,
    generate_step,
    plan_run,
    think_stage,
)

logger = get_logger(__name__)


class Stage(Enum):
    CHAT = auto()
    THINK = auto()
    CODE = auto()
    DEBUG = auto()
    DONE = auto()


# Type alias for stage functions
StageFunction = Callable[[RunState, Dependencies, RunOptions], Awaitable[RunUpdate]]


# =============================================================================
# Stage Registry
# =============================================================================

STAGES: dict[Stage, StageFunction] = {
    Stage.CHAT: chat_stage,
    Stage.THINK: think_stage,
    Stage.CODE: code_stage,
    Stage.DEBUG: debug_stage,
}

STAGE_STATUS: dict[Stage, RunStatus] = {
    Stage.CHAT: RunStatus.CHATTING,
    Stage.THINK: RunStatus.THINKING,
    Stage.CODE: RunStatus.GENERATING,
    Stage.DEBUG: RunStatus.DEBUGGING,
}


# =============================================================================
# Routing Logic
# =============================================================================

def route_initial(run: RunState) -> Stage:
    """Structured runs always open with a chat."""
    return Stage.CHAT


def route_after_chat(run: RunState) -> Stage:
    return Stage.THINK


def route_after_think(run: RunState) -> Stage:
    return Stage.CODE


def route_after_code(run: RunState) -> Stage:
    """Keep coding until every phase ran; debug only if there is code."""
    if run.current_step < run.total_steps:
        return Stage.CODE
    if run.accumulated_code:
        return Stage.DEBUG
    return Stage.DONE


def route_after_debug(run: RunState) -> Stage:
    return Stage.DONE


# Routing table: maps each stage to its router function
ROUTERS: dict[Stage, Callable[[RunState], Stage]] = {
    Stage.CHAT: route_after_chat,
    Stage.THINK: route_after_think,
    Stage.CODE: route_after_code,
    Stage.DEBUG: route_after_debug,
}


def stage_event(stage: Stage, run: RunState) -> WorkflowEvent:
    """Progress event for a stage that just finished."""
    result = run.last_result
    response = result.response if result else ""
    code = result.extracted_code if result else None

    if stage is Stage.CHAT:
        return ChatCompleted(run_id=run.id, response=response)
    if stage is Stage.THINK:
        return ThinkCompleted(run_id=run.id, response=response, steps=run.total_steps)
    if stage is Stage.CODE:
        return CodeCompleted(
            run_id=run.id,
            response=response,
            code=code,
            step=run.current_step,
            total_steps=run.total_steps,
        )
    if stage is Stage.DEBUG:
        return DebugCompleted(run_id=run.id, response=response, code=code)
    raise ValueError(f"No event for stage {stage}")


# =============================================================================
# Runners
# =============================================================================

class _Runner:
    """Shared start/fail/cancel/complete handling."""

    def __init__(self, deps: Dependencies, sink: EventSink | None = None, verbose: bool = True):
        """
        Args:
            deps: External dependencies (config, LLM, vector search).
            sink: Receives progress events.
            verbose: Log stage transitions.
        """
        self.deps = deps
        self.sink = sink or null_sink
        self._runner_log = LoggerAdapter(logger, verbose=verbose)
        self.log = self._runner_log

    def _emit(self, event: WorkflowEvent) -> None:
        self.sink(event)

    def _start(self, run: RunState) -> None:
        self.log = self._runner_log.for_run(run.id)
        self.log(f"Started ({run.mode.value})")
        self._emit(RunStarted(run_id=run.id, mode=run.mode, prompt=run.initial_prompt))
        if not self.deps.config.llm.is_configured:
            raise ConfigurationError(
                f"LLM provider '{self.deps.config.llm.provider}' is not configured"
            )

    def _cancel(self, run: RunState, token: CancelToken) -> RunState:
        self.log(f"Cancelled: {token.reason}")
        run = run.apply_update({"status": RunStatus.CANCELLED})
        self._emit(RunCancelled(run_id=run.id, partial_code=run.output_code))
        return run

    def _fail(self, run: RunState, error: Exception) -> RunState:
        self.log.exception(f"Failed during {run.status.value}: {error}")
        if not run.is_finished:
            run = run.apply_update({"status": RunStatus.ERROR, "error": str(error)})
        self._emit(RunFailed(run_id=run.id, error=str(error), partial_code=run.output_code))
        return run

    def _complete(self, run: RunState) -> RunState:
        run = run.apply_update({"status": RunStatus.COMPLETE, "final_code": run.output_code})
        self.log(f"Complete after {len(run.results)} call(s)")
        self._emit(RunCompleted(run_id=run.id, final_code=run.final_code))
        return run


class StructuredRunner(_Runner):
    """
    Executes the structured workflow state machine.

    Usage:
        deps = Dependencies(config=config, llm=llm)
        runner = StructuredRunner(deps, sink=channel)
        final_run = await runner.run(RunState(initial_prompt=prompt, mode=RunMode.STRUCTURED))
    """

    async def run(
        self,
        run: RunState,
        options: RunOptions | None = None,
        token: CancelToken | None = None,
    ) -> RunState:
        """
        Execute stages until Done, failure, or cancellation.

        Returns:
            The run in a terminal status.
        """
        options = options or RunOptions()
        token = token or CancelToken()

        try:
            self._start(run)
            stage = route_initial(run)

            while stage is not Stage.DONE:
                if token.cancelled:
                    return self._cancel(run, token)

                run = run.apply_update({"status": STAGE_STATUS[stage]})
                if stage is Stage.CODE:
                    self.log(f"Stage: CODE {run.current_step + 1}/{run.total_steps}")
                else:
                    self.log(f"Stage: {stage.name}")

                update = await STAGES[stage](run, self.deps, options)
                run = run.apply_update(update)
                self._emit(stage_event(stage, run))

                stage = ROUTERS[stage](run)
        except Exception as e:
            return self._fail(run, e)

        return self._complete(run)


class MultiStepRunner(_Runner):
    """
    Executes the simple multi-step workflow.

    The planner decides total_steps; each step sees the code accumulated so
    far. With auto-debug on, one debug call follows the last step.
    """

    async def run(
        self,
        run: RunState,
        options: RunOptions | None = None,
        token: CancelToken | None = None,
    ) -> RunState:
        options = options or RunOptions()
        token = token or CancelToken()

        try:
            self._start(run)
            if token.cancelled:
                return self._cancel(run, token)

            run = run.apply_update({"status": RunStatus.AWAITING_PLAN})
            run = run.apply_update(await plan_run(run, self.deps, options))
            run = run.apply_update({"status": RunStatus.GENERATING})
            self.log(f"Plan: {run.total_steps} step(s), token limit {run.token_limit}")
            self._emit(PlanReady(
                run_id=run.id,
                token_limit=run.token_limit,
                total_steps=run.total_steps,
            ))

            while True:
                if token.cancelled:
                    return self._cancel(run, token)

                self.log(f"Step {run.current_step + 1}/{run.total_steps}")
                run = run.apply_update(await generate_step(run, self.deps, options))

                result = run.last_result
                self._emit(StepCompleted(
                    run_id=run.id,
                    step=run.current_step + 1,
                    total_steps=run.total_steps,
                    response=result.response,
                    code=result.extracted_code,
                    code_chunks=result.code_chunks,
                ))

                if run.current_step >= run.total_steps - 1:
                    run = run.apply_update({"multi_step_complete": True})
                    break
                run = run.apply_update({"current_step": run.current_step + 1})

            if (
                options.auto_debug
                and run.accumulated_code
                and self.deps.config.modules.is_active("debug")
            ):
                if token.cancelled:
                    return self._cancel(run, token)

                self.log("Final debug pass")
                run = run.apply_update({"status": RunStatus.DEBUGGING})
                run = run.apply_update(await final_debug(run, self.deps, options))
                self._emit(stage_event(Stage.DEBUG, run))
        except Exception as e:
            return self._fail(run, e)

        return self._complete(run)


class DebugRunner(_Runner):
    """Single on-demand debug call over run.accumulated_code."""

    async def run(
        self,
        run: RunState,
        options: RunOptions | None = None,
        token: CancelToken | None = None,
    ) -> RunState:
        options = options or RunOptions()
        token = token or CancelToken()

        try:
            self._start(run)
            if token.cancelled:
                return self._cancel(run, token)

            run = run.apply_update({"status": RunStatus.DEBUGGING})
            run = run.apply_update(await debug_selection(run, self.deps, options))
            self._emit(stage_event(Stage.DEBUG, run))
        except Exception as e:
            return self._fail(run, e)

        return self._complete(run)


# =============================================================================
# Workflow Visualization (for debugging)
# =============================================================================

def describe_workflow() -> list[str]:
    """Text lines describing the structured stage graph."""
    lines = [f"{stage.name} -> (depends on run)" for stage in ROUTERS]
    lines.append("Terminal: DONE")
    return lines
