"""Unit tests for the pure batch lifecycle rules in retro_fantasy.batches."""

from __future__ import annotations

import pytest

from retro_fantasy.batches import (
    COMPLETED,
    FAILED,
    IN_PROGRESS,
    PENDING,
    TERMINAL_STATUSES,
    VALID_STATUSES,
    can_transition,
)


class TestCanTransition:
    @pytest.mark.parametrize("current,target", [
        (PENDING, IN_PROGRESS),
        (IN_PROGRESS, COMPLETED),
        (PENDING, FAILED),
        (IN_PROGRESS, FAILED),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target) is True

    @pytest.mark.parametrize("current,target", [
        (PENDING, COMPLETED),
        (IN_PROGRESS, PENDING),
        (COMPLETED, IN_PROGRESS),
        (COMPLETED, FAILED),
        (FAILED, IN_PROGRESS),
        (FAILED, COMPLETED),
        (IN_PROGRESS, IN_PROGRESS),
    ])
    def test_rejected(self, current, target):
        assert can_transition(current, target) is False

    def test_unknown_target(self):
        assert can_transition(PENDING, "archived") is False

    def test_terminal_states_have_no_exits(self):
        for terminal in TERMINAL_STATUSES:
            for target in VALID_STATUSES:
                assert can_transition(terminal, target) is False

    def test_nothing_returns_to_pending(self):
        for current in VALID_STATUSES:
            assert can_transition(current, PENDING) is False
