# riverflow/services/confirmation.py
from __future__ import annotations

import logging
from typing import Optional

from riverflow.services.types import AlertStatus, AlertTimerState, LiveSession

log = logging.getLogger("alerts")


class AlertConfirmationTracker:
    """
    Turns a per-reading severity into a "confirmed" flag.

    States per node:
      no timer                      -> NoAlert
      timer, confirmed=False        -> ActiveUnconfirmed(status, start)
      timer, confirmed=True         -> ActiveConfirmed(status, start)

    A non-normal status must hold for `window_s` before it is confirmed. Any
    change of status restarts the timer; going back to normal drops it.
    Callers must serialize updates for the same node (LiveSession.lock_for).
    """

    def __init__(self, session: LiveSession, window_ms: int = 5000) -> None:
        self.session = session
        self.window_s = max(0, int(window_ms)) / 1000.0

    def update(self, node_id: str, status: AlertStatus, now: float) -> bool:
        timers = self.session.alert_timers

        if status == AlertStatus.NORMAL:
            if timers.pop(node_id, None) is not None:
                log.info("alert cleared: %s", node_id)
            return False

        st = timers.get(node_id)
        if st is None or st.status != status:
            if st is not None:
                log.info("alert changed: %s %s -> %s (timer restarted)", node_id, st.status.value, status.value)
            st = AlertTimerState(status=status, start_time=now)
            timers[node_id] = st

        if not st.confirmed and now - st.start_time >= self.window_s:
            st.confirmed = True
            log.warning("alert confirmed: %s [%s] after %.1fs", node_id, status.value, now - st.start_time)

        return st.confirmed

    def state(self, node_id: str) -> Optional[AlertTimerState]:
        return self.session.alert_timers.get(node_id)
