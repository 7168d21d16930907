# riverflow/core/errors.py
from __future__ import annotations


class ReadingValidationError(ValueError):
    """Inbound reading is missing fields or has malformed values (HTTP 400)."""


class TransientStorageError(RuntimeError):
    """Durable store call failed; the next throttle window retries."""


class SnapshotCorruptionError(ValueError):
    """Live-state snapshot file exists but cannot be parsed."""
