"""
Tests for automation.py module.

Tests:
- Automation serialization
- AutomationQueue
- run_automation (sequential, infinite loop, stop handling)
"""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from automation import LOOP_HISTORY, Automation, AutomationQueue, AutomationResult, run_automation
from state import CancelToken


def recorder():
    calls = []

    async def dispatch(prompt):
        calls.append(prompt)
        return f"result:{prompt}"

    return calls, dispatch


# =============================================================================
# Test Automation
# =============================================================================

class TestAutomation:
    """Tests for the saved automation record."""

    def test_to_dict_uses_camel_case_loop_flag(self):
        automation = Automation(name="nightly", prompts=["A", "B"], infinite_loop=True, id="abc")
        assert automation.to_dict() == {
            "name": "nightly",
            "prompts": ["A", "B"],
            "infiniteLoop": True,
            "id": "abc",
        }

    def test_from_dict_accepts_both_spellings(self):
        camel = Automation.from_dict({"id": "1", "name": "a", "prompts": ["x"], "infiniteLoop": True})
        snake = Automation.from_dict({"id": "2", "name": "b", "prompts": [], "infinite_loop": True})
        assert camel.infinite_loop and snake.infinite_loop
        assert camel.prompts == ["x"]

    def test_from_dict_fills_missing_id(self):
        automation = Automation.from_dict({"name": "no id"})
        assert len(automation.id) == 12
        assert automation.prompts == []
        assert automation.infinite_loop is False

    def test_round_trip(self):
        original = Automation(name="n", prompts=["p1", "p2"])
        assert Automation.from_dict(original.to_dict()) == original


# =============================================================================
# Test AutomationQueue
# =============================================================================

class TestAutomationQueue:
    """Tests for the prompt queue."""

    def test_fifo_order(self):
        queue = AutomationQueue(["A", "B"])
        assert queue.next() == "A"
        assert queue.next() == "B"
        assert queue.next() is None

    def test_requeue_goes_to_tail(self):
        queue = AutomationQueue(["A", "B"])
        queue.requeue(queue.next())
        assert queue.items() == ["B", "A"]

    def test_len_and_bool(self):
        queue = AutomationQueue()
        assert len(queue) == 0
        assert not queue
        queue.requeue("x")
        assert len(queue) == 1
        assert queue


# =============================================================================
# Test run_automation
# =============================================================================

class TestRunAutomation:
    """Tests for the automation driver."""

    @pytest.mark.asyncio
    async def test_sequential_runs_each_once(self):
        calls, dispatch = recorder()
        queue = AutomationQueue(["A", "B"])

        outcome = await run_automation(dispatch, queue)

        assert calls == ["A", "B"]
        assert outcome.dispatched == ["A", "B"]
        assert outcome.results == ["result:A", "result:B"]
        assert outcome.count == 2
        assert not outcome.stopped
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_accepts_plain_prompt_list(self):
        calls, dispatch = recorder()
        outcome = await run_automation(dispatch, ["only"])
        assert calls == ["only"]
        assert outcome.dispatched == ["only"]

    @pytest.mark.asyncio
    async def test_dispatch_awaited_before_next(self):
        order = []

        async def dispatch(prompt):
            order.append(f"start {prompt}")
            await asyncio.sleep(0.01)
            order.append(f"end {prompt}")

        await run_automation(dispatch, ["A", "B"])

        assert order == ["start A", "end A", "start B", "end B"]

    @pytest.mark.asyncio
    async def test_infinite_loop_stopped_during_dispatch(self):
        stop = CancelToken()
        calls = []

        async def dispatch(prompt):
            calls.append(prompt)
            stop.cancel("user stop")

        queue = AutomationQueue(["A"], infinite_loop=True)
        outcome = await asyncio.wait_for(
            run_automation(dispatch, queue, stop_token=stop, delay_s=0.0),
            timeout=2,
        )

        assert calls == ["A"]
        assert queue.items() == ["A"]
        assert outcome.stopped

    @pytest.mark.asyncio
    async def test_infinite_loop_cycles(self):
        stop = CancelToken()
        calls = []

        async def dispatch(prompt):
            calls.append(prompt)
            if len(calls) == 3:
                stop.cancel()

        outcome = await asyncio.wait_for(
            run_automation(dispatch, ["A", "B"], infinite_loop=True, stop_token=stop, delay_s=0.0),
            timeout=2,
        )

        assert calls == ["A", "B", "A"]
        assert outcome.stopped

    @pytest.mark.asyncio
    async def test_stop_wakes_loop_delay(self):
        stop = CancelToken()
        calls = []

        async def dispatch(prompt):
            calls.append(prompt)

        async def stop_soon():
            await asyncio.sleep(0.05)
            stop.cancel()

        asyncio.ensure_future(stop_soon())
        outcome = await asyncio.wait_for(
            run_automation(dispatch, ["A"], infinite_loop=True, stop_token=stop, delay_s=10.0),
            timeout=2,
        )

        assert calls == ["A"]
        assert outcome.stopped

    @pytest.mark.asyncio
    async def test_stopped_before_start(self):
        stop = CancelToken()
        stop.cancel()
        calls, dispatch = recorder()

        outcome = await run_automation(dispatch, ["A"], stop_token=stop)

        assert calls == []
        assert outcome.stopped

    @pytest.mark.asyncio
    async def test_override_flag(self):
        calls, dispatch = recorder()
        queue = AutomationQueue(["A"], infinite_loop=True)

        await run_automation(dispatch, queue, infinite_loop=False)

        assert calls == ["A"]
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_long_loop_keeps_bounded_history(self):
        stop = CancelToken()
        calls = []

        async def dispatch(prompt):
            calls.append(prompt)
            if len(calls) == 500:
                stop.cancel()
            return "x" * 1000

        outcome = await asyncio.wait_for(
            run_automation(dispatch, ["A"], infinite_loop=True, stop_token=stop, delay_s=0.0),
            timeout=10,
        )

        assert outcome.count == 500
        assert len(outcome.results) == LOOP_HISTORY
        assert len(outcome.dispatched) == LOOP_HISTORY
        assert outcome.stopped

    @pytest.mark.asyncio
    async def test_history_size_configurable(self):
        stop = CancelToken()
        seen = []

        async def dispatch(prompt):
            seen.append(prompt)
            if len(seen) == 5:
                stop.cancel()
            return len(seen)

        outcome = await run_automation(
            dispatch, ["A", "B"], infinite_loop=True, stop_token=stop, delay_s=0.0, history=2,
        )

        assert outcome.dispatched == ["B", "A"]
        assert outcome.results == [4, 5]
        assert outcome.count == 5


# =============================================================================
# Test AutomationResult
# =============================================================================

class TestAutomationResult:
    """Tests for dispatch bookkeeping."""

    def test_unbounded_by_default(self):
        outcome = AutomationResult()
        for i in range(50):
            outcome.record("p", i)
        assert outcome.count == 50
        assert len(outcome.results) == 50

    def test_limit_drops_oldest(self):
        outcome = AutomationResult(limit=3)
        for i in range(6):
            outcome.record(f"p{i}", i)
        assert outcome.dispatched == ["p3", "p4", "p5"]
        assert outcome.results == [3, 4, 5]
        assert outcome.count == 6


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
