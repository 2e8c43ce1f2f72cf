"""
Automation: run a list of prompts back to back, once or forever.

Usage:
    queue = AutomationQueue(["Write a parser", "Add tests"], infinite_loop=True)
    stop = CancelToken()
    result = await run_automation(orchestrator.submit, queue, stop_token=stop)
"""

import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from logging_utils import get_logger
from state import CancelToken

logger = get_logger(__name__)

PromptDispatcher = Callable[[str], Awaitable[Any]]


@dataclass
class Automation:
    """A saved, named prompt sequence."""
    name: str
    prompts: list[str] = field(default_factory=list)
    infinite_loop: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> dict:
        data = asdict(self)
        data["infiniteLoop"] = data.pop("infinite_loop")
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Automation":
        """Accepts both infiniteLoop and infinite_loop keys."""
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex[:12]),
            name=str(data.get("name", "")),
            prompts=[str(p) for p in data.get("prompts", [])],
            infinite_loop=bool(data.get("infiniteLoop", data.get("infinite_loop", False))),
        )


class AutomationQueue:
    """
    Ordered prompts awaiting dispatch.

    In infinite-loop mode the queue behaves as a ring: the runner re-appends
    each dispatched prompt to the tail with requeue().
    """

    def __init__(self, prompts: Iterable[str] = (), infinite_loop: bool = False):
        self._items: deque[str] = deque(prompts)
        self.infinite_loop = infinite_loop

    def next(self) -> str | None:
        """Pop the head, or None when empty."""
        if not self._items:
            return None
        return self._items.popleft()

    def requeue(self, prompt: str) -> None:
        self._items.append(prompt)

    def items(self) -> list[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)


# Dispatches remembered per infinite-loop automation
LOOP_HISTORY = 10


@dataclass
class AutomationResult:
    """
    Prompts dispatched and their results, oldest first.

    With a limit set only the newest entries are kept; count still covers
    every dispatch.
    """
    dispatched: list[str] = field(default_factory=list)
    results: list[Any] = field(default_factory=list)
    count: int = 0
    stopped: bool = False
    limit: int | None = None

    def record(self, prompt: str, result: Any) -> None:
        self.count += 1
        self.dispatched.append(prompt)
        self.results.append(result)
        if self.limit is not None and len(self.results) > self.limit:
            del self.dispatched[0]
            del self.results[0]


async def run_automation(
    dispatch: PromptDispatcher,
    queue: AutomationQueue | Iterable[str],
    infinite_loop: bool | None = None,
    stop_token: CancelToken | None = None,
    delay_s: float = 2.0,
    history: int = LOOP_HISTORY,
) -> AutomationResult:
    """
    Feed queued prompts to dispatch, one at a time.

    Each dispatch is awaited to completion before the next dequeue. The stop
    token is checked before every dequeue, so an in-flight prompt is never
    interrupted. In infinite-loop mode the dispatched prompt goes back to the
    tail and the loop sleeps delay_s (waking early on stop).

    Args:
        dispatch: Async callable that runs one prompt.
        queue: AutomationQueue, or plain prompts to build one from.
        infinite_loop: Overrides the queue's own flag when given.
        stop_token: Cooperative stop signal.
        delay_s: Pause between infinite-loop iterations.
        history: Dispatches kept on the result in infinite-loop mode.

    Returns:
        AutomationResult listing dispatched prompts and their results in
        order; an infinite loop keeps only the last `history` of them.
    """
    if not isinstance(queue, AutomationQueue):
        queue = AutomationQueue(queue, infinite_loop=bool(infinite_loop))
    elif infinite_loop is not None:
        queue.infinite_loop = infinite_loop

    stop_token = stop_token or CancelToken()
    outcome = AutomationResult(limit=history if queue.infinite_loop else None)

    while True:
        if stop_token.cancelled:
            logger.info(f"Automation stopped with {len(queue)} prompt(s) queued")
            outcome.stopped = True
            break

        prompt = queue.next()
        if prompt is None:
            break

        logger.info(f"Automation dispatch #{outcome.count + 1}: {prompt[:60]}")
        result = await dispatch(prompt)
        outcome.record(prompt, result)

        if queue.infinite_loop:
            queue.requeue(prompt)
            await stop_token.wait(delay_s)

    return outcome
