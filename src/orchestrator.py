"""
Orchestrator: the facade a host UI or CLI talks to.

Owns the user toggles, picks simple or structured mode for each prompt, and
makes sure at most one run is in flight: starting a new run cancels the
previous one and waits for it to reach its cancellation boundary first.

Usage:
    deps = Dependencies(config=config, llm=LLMClient(config.llm))
    orchestrator = Orchestrator(deps, sink=channel)
    run = await orchestrator.submit("Write a fibonacci function")
"""

import asyncio
from typing import Iterable

from automation import AutomationQueue, AutomationResult
from automation import run_automation as drive_automation
from events import EventSink
from logging_utils import get_logger
from state import CancelToken, RunMode, RunState, RunStatus
from steps import Dependencies, RunOptions
from storage import InteractionLog, KeyValueStore
from workflow import DebugRunner, MultiStepRunner, StructuredRunner

logger = get_logger(__name__)


class Orchestrator:
    """
    Runs prompts through the workflow that matches the enabled modules.

    Toggles (auto-debug, thinking mode, system prompt) are read when a run
    starts; flipping them mid-run affects only later runs.
    """

    def __init__(
        self,
        deps: Dependencies,
        sink: EventSink | None = None,
        verbose: bool = True,
        interaction_log: InteractionLog | None = None,
    ):
        """
        Args:
            deps: External dependencies (config, LLM, vector search, store).
            sink: Receives progress events from every run.
            verbose: Log stage transitions.
            interaction_log: Where completed runs are recorded. Defaults to
                one over deps.store when that is a KeyValueStore.
        """
        self.deps = deps
        self.sink = sink
        self.verbose = verbose

        if interaction_log is None and isinstance(deps.store, KeyValueStore):
            interaction_log = InteractionLog(deps.store)
        self.interaction_log = interaction_log

        self.auto_debug = False
        self.thinking_mode = False
        self.system_prompt = ""
        self.validation_score: int | None = None
        self.last_run: RunState | None = None

        self._task: asyncio.Task | None = None
        self._token: CancelToken | None = None
        self._automation_token: CancelToken | None = None

    # =========================================================================
    # Toggles
    # =========================================================================

    def set_auto_debug(self, enabled: bool) -> None:
        self.auto_debug = enabled

    def set_thinking_mode(self, enabled: bool) -> None:
        self.thinking_mode = enabled

    def set_system_prompt(self, prompt: str) -> None:
        self.system_prompt = prompt

    def submit_validation_score(self, score: int) -> None:
        """
        Rate the most recent result from 0 to 10.

        The score is stored on the last run, overwrites the latest
        interaction-log entry, and rides along on later requests.

        Raises:
            ValueError: score is not an integer within 0..10.
        """
        if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 10:
            raise ValueError(f"Validation score must be an integer from 0 to 10, got {score!r}")

        self.validation_score = score
        if self.last_run is not None:
            self.last_run = self.last_run.apply_update({"validation_score": score})
        if self.interaction_log is not None:
            self.interaction_log.set_latest_score(score)
        logger.info(f"Validation score set to {score}")

    def _options(self) -> RunOptions:
        return RunOptions(
            auto_debug=self.auto_debug,
            thinking_mode=self.thinking_mode,
            system_prompt=self.system_prompt,
            validation_score=self.validation_score,
        )

    # =========================================================================
    # Runs
    # =========================================================================

    @property
    def is_processing(self) -> bool:
        return self._task is not None and not self._task.done()

    async def submit(self, prompt: str) -> RunState:
        """Run prompt in structured mode if chat/think/code/debug are all on, else simple."""
        if self.deps.config.modules.structured_workflow:
            return await self.run_structured(prompt)
        return await self.run_simple(prompt)

    async def run_simple(self, prompt: str) -> RunState:
        runner = MultiStepRunner(self.deps, sink=self.sink, verbose=self.verbose)
        return await self._execute(runner, RunState(initial_prompt=prompt, mode=RunMode.SIMPLE))

    async def run_structured(self, prompt: str) -> RunState:
        runner = StructuredRunner(self.deps, sink=self.sink, verbose=self.verbose)
        return await self._execute(runner, RunState(initial_prompt=prompt, mode=RunMode.STRUCTURED))

    async def request_debug(self, selected_code: str | None = None) -> RunState:
        """
        One debug call on selected_code, or on the last run's code.

        Raises:
            ValueError: There is no code to debug.
        """
        code = selected_code
        if not code and self.last_run is not None:
            code = self.last_run.output_code
        if not code:
            raise ValueError("No code to debug")

        runner = DebugRunner(self.deps, sink=self.sink, verbose=self.verbose)
        run = RunState(initial_prompt="Debug request", accumulated_code=code)
        return await self._execute(runner, run, record=False)

    def cancel(self, reason: str = "cancelled by user") -> None:
        """Stop the active run and any automation at their next boundary."""
        if self._token is not None:
            self._token.cancel(reason)
        if self._automation_token is not None:
            self._automation_token.cancel(reason)

    async def _supersede(self) -> None:
        while self.is_processing:
            logger.info("New run requested; cancelling the active run")
            self._token.cancel("superseded by a new run")
            await asyncio.wait({self._task})

    async def _execute(self, runner, run: RunState, record: bool = True) -> RunState:
        await self._supersede()

        token = CancelToken()
        self._token = token
        self._task = asyncio.ensure_future(runner.run(run, self._options(), token))

        final = await self._task
        self.last_run = final

        if record and final.status is RunStatus.COMPLETE and self.interaction_log is not None:
            self.interaction_log.log(
                prompt=final.initial_prompt,
                code=final.final_code,
                validated=self.validation_score is not None,
                score=self.validation_score or 0,
                debugged=final.debugged,
            )
        return final

    # =========================================================================
    # Automation
    # =========================================================================

    async def run_automation(
        self,
        prompts: Iterable[str],
        infinite_loop: bool = False,
        delay_s: float | None = None,
    ) -> AutomationResult:
        """
        Submit prompts one after another; loop forever if infinite_loop.

        cancel() (or stop_automation()) ends the loop before the next dequeue.
        """
        if delay_s is None:
            delay_s = self.deps.config.workflow.automation_delay_s

        token = CancelToken()
        self._automation_token = token
        try:
            return await drive_automation(
                self.submit,
                AutomationQueue(prompts, infinite_loop=infinite_loop),
                stop_token=token,
                delay_s=delay_s,
            )
        finally:
            self._automation_token = None

    def stop_automation(self) -> None:
        if self._automation_token is not None:
            self._automation_token.cancel("automation stopped")
