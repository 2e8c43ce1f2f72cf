"""
Events: progress messages emitted by the orchestrator.

Runners never call UI code directly. They emit frozen event objects into a
sink (any callable taking one event). Two sinks ship here:
- EventChannel: an asyncio.Queue that consumers iterate until a terminal event
- WorkflowCallbacks: routes events to per-stage callbacks
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Union

from state import RunMode, RunStatus


@dataclass(frozen=True)
class RunStarted:
    run_id: str
    mode: RunMode
    prompt: str


@dataclass(frozen=True)
class PlanReady:
    run_id: str
    token_limit: int
    total_steps: int


@dataclass(frozen=True)
class StepCompleted:
    """One simple-mode generation step finished; step is 1-based."""
    run_id: str
    step: int
    total_steps: int
    response: str
    code: str | None
    code_chunks: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChatCompleted:
    run_id: str
    response: str


@dataclass(frozen=True)
class ThinkCompleted:
    run_id: str
    response: str
    steps: int


@dataclass(frozen=True)
class CodeCompleted:
    """One structured-mode code phase finished; step is 1-based."""
    run_id: str
    response: str
    code: str | None
    step: int
    total_steps: int


@dataclass(frozen=True)
class DebugCompleted:
    run_id: str
    response: str
    code: str | None


@dataclass(frozen=True)
class RunFailed:
    run_id: str
    error: str
    partial_code: str | None = None


@dataclass(frozen=True)
class RunCancelled:
    run_id: str
    partial_code: str | None = None


@dataclass(frozen=True)
class RunCompleted:
    run_id: str
    final_code: str | None
    status: RunStatus = RunStatus.COMPLETE


WorkflowEvent = Union[
    RunStarted,
    PlanReady,
    StepCompleted,
    ChatCompleted,
    ThinkCompleted,
    CodeCompleted,
    DebugCompleted,
    RunFailed,
    RunCancelled,
    RunCompleted,
]

TERMINAL_EVENTS = (RunFailed, RunCancelled, RunCompleted)

EventSink = Callable[[WorkflowEvent], None]


def null_sink(event: WorkflowEvent) -> None:
    """Sink that drops everything."""


class EventChannel:
    """
    Queue-backed sink.

    Usage:
        channel = EventChannel()
        orchestrator = Orchestrator(deps, sink=channel)
        task = asyncio.create_task(orchestrator.submit("..."))
        async for event in channel:
            render(event)
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[WorkflowEvent] = asyncio.Queue()

    def __call__(self, event: WorkflowEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> WorkflowEvent:
        return await self._queue.get()

    def drain(self) -> list[WorkflowEvent]:
        """Everything queued so far, without waiting."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, TERMINAL_EVENTS):
                return


@dataclass
class WorkflowCallbacks:
    """
    Sink that fans events out to per-stage callbacks.

    Mirrors the host-UI callback surface: chat/think/code/debug progress, an
    error callback, and a completion callback receiving the final code or None.
    """
    on_chat: Optional[Callable[[str], None]] = None
    on_think: Optional[Callable[[str, int], None]] = None
    on_code: Optional[Callable[[str, Optional[str], int, int], None]] = None
    on_debug: Optional[Callable[[str, Optional[str]], None]] = None
    on_step: Optional[Callable[[StepCompleted], None]] = None
    on_error: Optional[Callable[[str], None]] = None
    on_complete: Optional[Callable[[Optional[str]], None]] = None
    on_cancel: Optional[Callable[[Optional[str]], None]] = None

    def __call__(self, event: WorkflowEvent) -> None:
        if isinstance(event, ChatCompleted) and self.on_chat:
            self.on_chat(event.response)
        elif isinstance(event, ThinkCompleted) and self.on_think:
            self.on_think(event.response, event.steps)
        elif isinstance(event, CodeCompleted) and self.on_code:
            self.on_code(event.response, event.code, event.step, event.total_steps)
        elif isinstance(event, DebugCompleted) and self.on_debug:
            self.on_debug(event.response, event.code)
        elif isinstance(event, StepCompleted) and self.on_step:
            self.on_step(event)
        elif isinstance(event, RunFailed) and self.on_error:
            self.on_error(event.error)
        elif isinstance(event, RunCancelled) and self.on_cancel:
            self.on_cancel(event.partial_code)
        elif isinstance(event, RunCompleted) and self.on_complete:
            self.on_complete(event.final_code)
