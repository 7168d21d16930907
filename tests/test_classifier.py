# tests/test_classifier.py
from __future__ import annotations

import math

import pytest

from riverflow.services.classifier import DEFAULT_PROFILE, ThresholdResolver, classify
from riverflow.services.types import AlertStatus, ThresholdProfile


class TestClassify:
    @pytest.mark.parametrize(
        "level, expected",
        [
            (0.0, AlertStatus.NORMAL),
            (3.49, AlertStatus.NORMAL),
            (3.5, AlertStatus.WARNING),
            (4.49, AlertStatus.WARNING),
            (4.5, AlertStatus.DANGER),
            (10.0, AlertStatus.DANGER),
        ],
    )
    def test_default_profile_boundaries(self, level, expected):
        assert classify(level, DEFAULT_PROFILE) == expected

    @pytest.mark.parametrize("level", [math.nan, math.inf, -math.inf, -0.5, "abc", None])
    def test_anomalous_values_are_normal(self, level, caplog):
        caplog.set_level("WARNING", logger="alerts")
        assert classify(level, DEFAULT_PROFILE) == AlertStatus.NORMAL
        assert "anomalous water level" in caplog.text

    def test_custom_profile(self):
        prof = ThresholdProfile(warning_level=1.0, danger_level=2.0)
        assert classify(0.99, prof) == AlertStatus.NORMAL
        assert classify(1.0, prof) == AlertStatus.WARNING
        assert classify(2.0, prof) == AlertStatus.DANGER


class TestThresholdResolver:
    def test_unknown_node_gets_default(self):
        r = ThresholdResolver({})
        assert r.profile_for("nowhere") == DEFAULT_PROFILE

    def test_absolute_per_node_override(self):
        r = ThresholdResolver({
            "policy": "absolute",
            "nodes": {"Bridge 2": {"warning_level": 2.0, "danger_level": 3.0}},
        })
        assert r.profile_for("Bridge 2") == ThresholdProfile(2.0, 3.0)
        assert r.profile_for("Other") == DEFAULT_PROFILE

    def test_relative_policy(self):
        r = ThresholdResolver({
            "policy": "relative",
            "nodes": {"Bridge 2": {"threshold": 5.0}},
        })
        prof = r.profile_for("Bridge 2")
        assert prof.warning_level == pytest.approx(3.5)
        assert prof.danger_level == pytest.approx(4.5)
        # no threshold -> conservative default
        assert r.profile_for("Other") == DEFAULT_PROFILE

    def test_configured_default_levels(self):
        r = ThresholdResolver({"warning_level": 1.5, "danger_level": 2.5})
        assert r.profile_for("x") == ThresholdProfile(1.5, 2.5)
