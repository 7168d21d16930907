# tests/test_confirmation.py
from __future__ import annotations

from riverflow.services.confirmation import AlertConfirmationTracker
from riverflow.services.types import AlertStatus, LiveSession

T0 = 1000.0


def _tracker(window_ms: int = 5000) -> AlertConfirmationTracker:
    return AlertConfirmationTracker(LiveSession(), window_ms)


class TestAlertConfirmation:
    def test_normal_never_confirms(self):
        t = _tracker()
        assert t.update("n", AlertStatus.NORMAL, T0) is False
        assert t.update("n", AlertStatus.NORMAL, T0 + 60) is False
        assert t.state("n") is None

    def test_confirms_after_window(self):
        t = _tracker()
        assert t.update("n", AlertStatus.DANGER, T0) is False
        assert t.update("n", AlertStatus.DANGER, T0 + 4.999) is False
        assert t.update("n", AlertStatus.DANGER, T0 + 5.0) is True

    def test_confirmation_is_sticky_while_status_holds(self):
        t = _tracker()
        t.update("n", AlertStatus.WARNING, T0)
        assert t.update("n", AlertStatus.WARNING, T0 + 6) is True
        assert t.update("n", AlertStatus.WARNING, T0 + 600) is True

    def test_status_change_restarts_timer(self):
        t = _tracker()
        t.update("n", AlertStatus.WARNING, T0)
        assert t.update("n", AlertStatus.WARNING, T0 + 6) is True
        # warning -> danger: new timer, not confirmed yet
        assert t.update("n", AlertStatus.DANGER, T0 + 7) is False
        assert t.state("n").start_time == T0 + 7
        assert t.update("n", AlertStatus.DANGER, T0 + 11.9) is False
        assert t.update("n", AlertStatus.DANGER, T0 + 12) is True

    def test_brief_warning_inside_window_restarts_danger_timer(self):
        t = _tracker()
        assert t.update("n", AlertStatus.DANGER, T0) is False
        assert t.update("n", AlertStatus.WARNING, T0 + 2) is False
        assert t.update("n", AlertStatus.DANGER, T0 + 3) is False
        assert t.state("n").start_time == T0 + 3
        # 5 s after the first danger is not enough
        assert t.update("n", AlertStatus.DANGER, T0 + 5) is False
        assert t.update("n", AlertStatus.DANGER, T0 + 7.9) is False
        assert t.update("n", AlertStatus.DANGER, T0 + 8) is True

    def test_back_to_normal_drops_timer(self):
        t = _tracker()
        t.update("n", AlertStatus.DANGER, T0)
        t.update("n", AlertStatus.NORMAL, T0 + 3)
        assert t.state("n") is None
        # starts over
        assert t.update("n", AlertStatus.DANGER, T0 + 4) is False
        assert t.update("n", AlertStatus.DANGER, T0 + 8) is False
        assert t.update("n", AlertStatus.DANGER, T0 + 9) is True

    def test_nodes_are_independent(self):
        t = _tracker()
        t.update("a", AlertStatus.DANGER, T0)
        t.update("b", AlertStatus.DANGER, T0 + 4)
        assert t.update("a", AlertStatus.DANGER, T0 + 5) is True
        assert t.update("b", AlertStatus.DANGER, T0 + 5) is False

    def test_zero_window_confirms_immediately(self):
        t = _tracker(window_ms=0)
        assert t.update("n", AlertStatus.WARNING, T0) is True
