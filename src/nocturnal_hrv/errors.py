"""
Nocturnal HRV - Errors

Every failure path returns control to the caller with an identifiable reason.
Metric engines report absence as None; these exceptions cover the session level.
"""
from __future__ import annotations

from typing import Optional


class AnalysisError(Exception):
    """Base class for analysis failures."""


class InvalidInput(AnalysisError, ValueError):
    """Malformed series, e.g. non-monotonic timestamps."""


class InsufficientData(AnalysisError):
    """A measured quantity (clean beats by default) failed a metric's threshold.

    `limit` reads 'need' for minimums and 'max' for ceilings.
    """

    def __init__(
        self,
        metric: str,
        available: float,
        required: float,
        detail: Optional[str] = None,
        unit: str = 'clean beats',
        limit: str = 'need',
    ):
        self.metric = metric
        self.available = available
        self.required = required
        self.unit = unit
        message = f"{metric}: {available:g} {unit}, {limit} {required:g}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class NoQualifyingWindow(AnalysisError):
    """No candidate window classified as organized recovery.

    The window selector reports this as None; raised only by callers that
    want to treat it as an error.
    """


class AnalysisTimeout(AnalysisError):
    """Caller-imposed time budget exceeded between pipeline stages."""

    def __init__(self, stage: str, elapsed: float, budget: float):
        self.stage = stage
        self.elapsed = elapsed
        self.budget = budget
        super().__init__(f"budget {budget:.2f}s exceeded before {stage} ({elapsed:.2f}s elapsed)")
