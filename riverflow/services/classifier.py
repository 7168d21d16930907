# riverflow/services/classifier.py
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

from riverflow.services.types import AlertStatus, ThresholdProfile

log = logging.getLogger("alerts")

DEFAULT_PROFILE = ThresholdProfile(warning_level=3.5, danger_level=4.5)


def classify(water_level: float, profile: ThresholdProfile) -> AlertStatus:
    """
    Map a water level onto a severity band.
    Pure and total: bad numbers (NaN, inf, negative, non-numeric) come back as
    NORMAL with a warning in the log.
    """
    try:
        wl = float(water_level)
    except (TypeError, ValueError):
        log.warning("anomalous water level %r: treated as normal", water_level)
        return AlertStatus.NORMAL

    if not math.isfinite(wl) or wl < 0:
        log.warning("anomalous water level %r: treated as normal", water_level)
        return AlertStatus.NORMAL

    if wl >= profile.danger_level:
        return AlertStatus.DANGER
    if wl >= profile.warning_level:
        return AlertStatus.WARNING
    return AlertStatus.NORMAL


class ThresholdResolver:
    """
    Resolves a ThresholdProfile per node from the `alerts` config section.

    alerts:
      policy: absolute          # or "relative"
      warning_level: 3.5        # default profile (absolute)
      danger_level: 4.5
      relative_warning_pct: 70  # relative policy: % of the node threshold
      relative_danger_pct: 90
      nodes:
        "Purok 10 River": { warning_level: 3.0, danger_level: 4.0 }   # absolute
        "Bridge 2":       { threshold: 5.0 }                           # relative

    A node with no usable entry gets the default profile.
    """

    def __init__(self, alerts_cfg: Optional[Dict[str, Any]] = None) -> None:
        cfg = alerts_cfg or {}
        self.policy = str(cfg.get("policy", "absolute")).strip().lower()
        self.default = ThresholdProfile(
            warning_level=float(cfg.get("warning_level", DEFAULT_PROFILE.warning_level)),
            danger_level=float(cfg.get("danger_level", DEFAULT_PROFILE.danger_level)),
        )
        self.warning_pct = float(cfg.get("relative_warning_pct", 70))
        self.danger_pct = float(cfg.get("relative_danger_pct", 90))
        self._nodes: Dict[str, Dict[str, Any]] = dict(cfg.get("nodes", {}) or {})
        self._cache: Dict[str, ThresholdProfile] = {}

    def profile_for(self, node_id: str) -> ThresholdProfile:
        prof = self._cache.get(node_id)
        if prof is None:
            prof = self._resolve(node_id)
            self._cache[node_id] = prof
        return prof

    def _resolve(self, node_id: str) -> ThresholdProfile:
        entry = self._nodes.get(node_id) or {}
        if self.policy == "relative":
            threshold = entry.get("threshold")
            if threshold is None or float(threshold) <= 0:
                log.debug("no threshold for node '%s': default profile", node_id)
                return self.default
            t = float(threshold)
            return ThresholdProfile(
                warning_level=t * self.warning_pct / 100.0,
                danger_level=t * self.danger_pct / 100.0,
            )

        if "warning_level" in entry and "danger_level" in entry:
            return ThresholdProfile(
                warning_level=float(entry["warning_level"]),
                danger_level=float(entry["danger_level"]),
            )
        return self.default
