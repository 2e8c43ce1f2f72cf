"""
Tests for state.py module.

Tests:
- RunStatus ordering and terminal states
- RunState.apply_update invariants
- StepResult
- CancelToken
"""

import asyncio
import os
import sys
from dataclasses import FrozenInstanceError

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from state import (
    CancelToken,
    InvalidTransitionError,
    Role,
    RunMode,
    RunState,
    RunStatus,
    StepResult,
    TERMINAL_STATUSES,
)


def _result(index=0, code=None):
    return StepResult(step_index=index, role=Role.CHAT, raw_text="raw", response="raw", extracted_code=code)


# =============================================================================
# Test RunStatus
# =============================================================================

class TestRunStatus:
    """Tests for RunStatus enum."""

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {RunStatus.COMPLETE, RunStatus.ERROR, RunStatus.CANCELLED}
        for status in RunStatus:
            assert status.is_terminal == (status in TERMINAL_STATUSES)

    def test_values_are_strings(self):
        assert RunStatus.AWAITING_PLAN.value == "awaiting_plan"
        assert RunStatus("complete") is RunStatus.COMPLETE


# =============================================================================
# Test RunState
# =============================================================================

class TestRunState:
    """Tests for RunState dataclass."""

    def test_defaults(self):
        run = RunState(initial_prompt="hello")
        assert run.mode is RunMode.SIMPLE
        assert run.total_steps == 1
        assert run.current_step == 0
        assert run.accumulated_code == ""
        assert run.status is RunStatus.IDLE
        assert run.validation_score is None
        assert run.debugged is False
        assert len(run.id) == 12

    def test_ids_are_unique(self):
        assert RunState().id != RunState().id

    def test_is_frozen(self):
        run = RunState()
        with pytest.raises(FrozenInstanceError):
            run.status = RunStatus.COMPLETE

    def test_apply_update_returns_new_instance(self):
        run = RunState(initial_prompt="p")
        updated = run.apply_update({"total_steps": 3, "accumulated_code": "x = 1"})

        assert updated is not run
        assert updated.total_steps == 3
        assert updated.accumulated_code == "x = 1"
        assert run.total_steps == 1
        assert updated.id == run.id

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidTransitionError):
            RunState().apply_update({"nonsense": 1})

    def test_identity_fields_rejected(self):
        run = RunState(initial_prompt="p")
        for key, value in (("id", "x"), ("initial_prompt", "q"), ("mode", RunMode.STRUCTURED)):
            with pytest.raises(InvalidTransitionError):
                run.apply_update({key: value})

    def test_property_names_rejected(self):
        with pytest.raises(InvalidTransitionError):
            RunState().apply_update({"output_code": "x"})

    def test_current_step_bounded_by_total(self):
        run = RunState().apply_update({"total_steps": 2})
        run = run.apply_update({"current_step": 2})
        assert run.current_step == 2
        with pytest.raises(InvalidTransitionError):
            run.apply_update({"current_step": 3})
        with pytest.raises(InvalidTransitionError):
            run.apply_update({"current_step": -1})

    def test_total_steps_at_least_one(self):
        with pytest.raises(InvalidTransitionError):
            RunState().apply_update({"total_steps": 0})

    def test_validation_score_range(self):
        run = RunState()
        assert run.apply_update({"validation_score": 0}).validation_score == 0
        assert run.apply_update({"validation_score": 10}).validation_score == 10
        with pytest.raises(InvalidTransitionError):
            run.apply_update({"validation_score": 11})

    def test_with_result_and_last_result(self):
        run = RunState()
        assert run.last_result is None

        run = run.apply_update({"results": run.with_result(_result(0))})
        run = run.apply_update({"results": run.with_result(_result(1, "code"))})

        assert len(run.results) == 2
        assert run.last_result.step_index == 1

    def test_output_code_prefers_final(self):
        run = RunState()
        assert run.output_code is None
        run = run.apply_update({"accumulated_code": "draft"})
        assert run.output_code == "draft"
        run = run.apply_update({"final_code": "final"})
        assert run.output_code == "final"


# =============================================================================
# Test Status Transitions
# =============================================================================

class TestStatusTransitions:
    """Tests for monotonic status movement."""

    def test_forward_moves_allowed(self):
        run = RunState()
        for status in (
            RunStatus.AWAITING_PLAN,
            RunStatus.GENERATING,
            RunStatus.DEBUGGING,
            RunStatus.COMPLETE,
        ):
            run = run.apply_update({"status": status})
        assert run.is_finished

    def test_same_status_allowed(self):
        run = RunState().apply_update({"status": RunStatus.GENERATING})
        assert run.apply_update({"status": RunStatus.GENERATING}).status is RunStatus.GENERATING

    def test_backward_move_rejected(self):
        run = RunState().apply_update({"status": RunStatus.DEBUGGING})
        with pytest.raises(InvalidTransitionError):
            run.apply_update({"status": RunStatus.GENERATING})

    @pytest.mark.parametrize("status", [
        RunStatus.IDLE,
        RunStatus.AWAITING_PLAN,
        RunStatus.CHATTING,
        RunStatus.THINKING,
        RunStatus.GENERATING,
        RunStatus.DEBUGGING,
    ])
    def test_error_and_cancel_reachable_from_any_active_status(self, status):
        run = RunState().apply_update({"status": status})
        assert run.apply_update({"status": RunStatus.ERROR}).status is RunStatus.ERROR
        assert run.apply_update({"status": RunStatus.CANCELLED}).status is RunStatus.CANCELLED

    @pytest.mark.parametrize("terminal", [RunStatus.COMPLETE, RunStatus.ERROR, RunStatus.CANCELLED])
    def test_terminal_statuses_are_absorbing(self, terminal):
        run = RunState().apply_update({"status": terminal})
        for other in RunStatus:
            if other is terminal:
                continue
            with pytest.raises(InvalidTransitionError):
                run.apply_update({"status": other})

    def test_non_status_updates_allowed_after_terminal(self):
        run = RunState().apply_update({"status": RunStatus.COMPLETE})
        assert run.apply_update({"validation_score": 8}).validation_score == 8


# =============================================================================
# Test CancelToken
# =============================================================================

class TestCancelToken:
    """Tests for CancelToken."""

    def test_starts_uncancelled(self):
        token = CancelToken()
        assert not token.cancelled
        assert token.reason is None

    def test_cancel_keeps_first_reason(self):
        token = CancelToken()
        token.cancel("superseded")
        token.cancel("again")
        assert token.cancelled
        assert token.reason == "superseded"

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        token = CancelToken()
        assert await token.wait(0.01) is False

    @pytest.mark.asyncio
    async def test_wait_wakes_on_cancel(self):
        token = CancelToken()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel()

        asyncio.ensure_future(cancel_soon())
        assert await asyncio.wait_for(token.wait(10), timeout=2) is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
