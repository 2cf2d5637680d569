"""Tests for the appointment status workflow."""

import pytest

from salonbook.domain.scheduling.errors import AlreadyInStatus, BlockImmutable, InvalidTransition
from salonbook.domain.scheduling.state_machine import (
    ALLOWED_TRANSITIONS,
    STATUSES,
    TERMINAL_STATUSES,
    assert_transition,
    can_transition,
)


class TestTransitionMap:
    def test_every_target_is_a_known_status(self):
        for current, targets in ALLOWED_TRANSITIONS.items():
            assert current in STATUSES
            assert targets <= set(STATUSES)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {"done", "no_show"}

    @pytest.mark.parametrize(
        "current,target",
        [
            ("new", "confirmed"),
            ("confirmed", "waiting"),
            ("confirmed", "done"),
            ("waiting", "no_show"),
            ("waiting", "canceled"),
            ("canceled", "new"),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        assert_transition(current, target)


class TestAssertTransition:
    def test_same_status_is_already_in_status(self):
        with pytest.raises(AlreadyInStatus):
            assert_transition("confirmed", "confirmed")

    def test_done_is_terminal(self):
        with pytest.raises(InvalidTransition):
            assert_transition("done", "waiting")

    def test_no_skipping_ahead_from_new(self):
        with pytest.raises(InvalidTransition):
            assert_transition("new", "done")

    def test_block_may_only_be_canceled(self):
        assert_transition("confirmed", "canceled", appointment_type="block")
        with pytest.raises(BlockImmutable):
            assert_transition("confirmed", "waiting", appointment_type="block")
