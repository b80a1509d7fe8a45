"""
Scheduling errors.

ValidationError is always surfaced to the caller and never retried.
ComputationUnavailable marks a calibration pre-condition or fitter failure
and carries a machine-readable reason.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for scheduler errors."""


class ValidationError(SchedulingError, ValueError):
    """Malformed input: rating, weight vector, or policy bounds."""


class ComputationUnavailable(SchedulingError):
    """External weight fitting cannot run or produced unusable output."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason)
