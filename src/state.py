"""
RunState: Single source of truth for one orchestration run.

Each user prompt (or automation entry) gets its own RunState. Runners never
mutate it in place: step functions return partial updates and the runner
applies them with apply_update(), which also enforces the run invariants.

Design:
- RunState is frozen (immutable) to prevent accidental mutation
- All updates create new instances via apply_update()
- Status moves forward only; Error and Cancelled are absorbing
- current_step never exceeds total_steps
"""

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TypedDict


class InvalidTransitionError(ValueError):
    """An update would break a RunState invariant."""


class RunStatus(str, Enum):
    """Lifecycle of a run, in the order it is allowed to move."""
    IDLE = "idle"
    AWAITING_PLAN = "awaiting_plan"
    CHATTING = "chatting"
    THINKING = "thinking"
    GENERATING = "generating"
    DEBUGGING = "debugging"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETE, RunStatus.ERROR, RunStatus.CANCELLED})

_STATUS_ORDER = [
    RunStatus.IDLE,
    RunStatus.AWAITING_PLAN,
    RunStatus.CHATTING,
    RunStatus.THINKING,
    RunStatus.GENERATING,
    RunStatus.DEBUGGING,
    RunStatus.COMPLETE,
]


class RunMode(str, Enum):
    SIMPLE = "simple"
    STRUCTURED = "structured"


class Role(str, Enum):
    """Semantic purpose of a model call; doubles as the transport mode tag."""
    QUERY = "query"
    CHAT = "chat"
    THINK = "think"
    CODE = "code"
    DEBUG = "debug"


@dataclass(frozen=True)
class StepResult:
    """Output of one model call within a run."""
    step_index: int
    role: Role
    raw_text: str
    response: str
    extracted_code: str | None = None
    code_chunks: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


class RunUpdate(TypedDict, total=False):
    """
    Partial state update returned by step functions.

    Step functions return what changed rather than mutating the run.
    """
    status: RunStatus
    total_steps: int
    current_step: int
    token_limit: int
    accumulated_code: str
    final_code: str | None
    analysis: str
    results: tuple[StepResult, ...]
    validation_score: int | None
    debugged: bool
    multi_step_complete: bool
    error: str | None


@dataclass(frozen=True)
class RunState:
    """
    Immutable state for a single run.

    A run is created when a prompt is submitted and is logically finished once
    its status is Complete, Error or Cancelled.
    """

    # === Identification (set once at start) ===
    initial_prompt: str = ""
    mode: RunMode = RunMode.SIMPLE
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    # === Step Accounting ===
    total_steps: int = 1
    current_step: int = 0
    token_limit: int | None = None
    multi_step_complete: bool = False

    # === Outputs ===
    accumulated_code: str = ""
    final_code: str | None = None
    analysis: str = ""
    results: tuple[StepResult, ...] = ()

    # === Control Flow ===
    status: RunStatus = RunStatus.IDLE
    validation_score: int | None = None
    debugged: bool = False
    error: str | None = None

    def apply_update(self, update: RunUpdate) -> "RunState":
        """
        Apply a partial update to the run.

        Args:
            update: Dictionary of field names to new values.

        Returns:
            New RunState with updates applied.

        Raises:
            InvalidTransitionError: The update breaks a run invariant.
        """
        unknown = [
            key for key in update
            if key not in self.__dataclass_fields__ or key in ("id", "initial_prompt", "mode")
        ]
        if unknown:
            raise InvalidTransitionError(f"Cannot update fields: {unknown}")

        if "status" in update:
            _check_transition(self.status, update["status"])

        new_state = replace(self, **update)

        if new_state.total_steps < 1:
            raise InvalidTransitionError(f"total_steps must be >= 1, got {new_state.total_steps}")
        if not 0 <= new_state.current_step <= new_state.total_steps:
            raise InvalidTransitionError(
                f"current_step {new_state.current_step} outside 0..{new_state.total_steps}"
            )
        if new_state.validation_score is not None and not 0 <= new_state.validation_score <= 10:
            raise InvalidTransitionError(
                f"validation_score must be within 0..10, got {new_state.validation_score}"
            )

        return new_state

    def with_result(self, result: StepResult) -> tuple[StepResult, ...]:
        """Results tuple with one more entry appended."""
        return self.results + (result,)

    @property
    def last_result(self) -> StepResult | None:
        return self.results[-1] if self.results else None

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    @property
    def output_code(self) -> str | None:
        """Best code this run has produced so far, or None."""
        return self.final_code or self.accumulated_code or None


def _check_transition(current: RunStatus, target: RunStatus) -> None:
    if current.is_terminal:
        if current == target:
            return
        raise InvalidTransitionError(f"Run already {current.value}; cannot move to {target.value}")
    if target in (RunStatus.ERROR, RunStatus.CANCELLED):
        return
    if _STATUS_ORDER.index(target) < _STATUS_ORDER.index(current):
        raise InvalidTransitionError(f"Cannot move from {current.value} back to {target.value}")


class CancelToken:
    """
    Cooperative stop flag shared between a caller and a running loop.

    Loops check ``cancelled`` at their dispatch boundaries; ``wait`` lets a
    loop sleep until either a timeout or a stop request, whichever is first.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout; returns True if cancelled."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
