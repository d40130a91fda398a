"""
Nocturnal HRV - Recording Verification

Data-quality gate applied to a whole recording before analysis. Rejects
recordings too short, too sparse, too noisy or with sensor dropouts, and
warns when artifact levels are elevated but acceptable, when the RR level
drifts across the night, or when ectopic and out-of-range beats pile up.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from .artifacts import artifact_mask, artifact_percentage, detect_artifacts
from .errors import InsufficientData, InvalidInput
from .types import ArtifactFlag, ArtifactType, HRVConfig, RRSeries

logger = logging.getLogger(__name__)

RHYTHM_ARTIFACTS = (ArtifactType.ECTOPIC, ArtifactType.MISSED, ArtifactType.EXTRA)


class RejectionReason(str, Enum):
    EMPTY = 'empty'
    TOO_SHORT = 'too_short'
    TOO_FEW_POINTS = 'too_few_points'
    EXCESSIVE_ARTIFACTS = 'excessive_artifacts'
    EXCESSIVE_GAPS = 'excessive_gaps'


@dataclass(frozen=True)
class FailedCheck:
    """Measured value and threshold of one rejected quality check."""
    metric: str
    measured: float
    threshold: float
    unit: str
    limit: str = 'need'  # 'need' = minimum, 'max' = ceiling


@dataclass(frozen=True)
class VerificationResult:
    is_valid: bool
    errors: List[RejectionReason] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    artifact_percentage: float = 0.0
    clean_beat_count: int = 0
    failed_checks: Dict[RejectionReason, FailedCheck] = field(default_factory=dict)
    rr_drift_ms: Optional[float] = None
    ectopy_count: int = 0
    out_of_range_count: int = 0

    def raise_for_errors(self):
        """Raise the session-level exception matching the first rejection, with its own numbers."""
        if self.is_valid:
            return
        reason = self.errors[0]
        reasons = ', '.join(r.value for r in self.errors)
        check = self.failed_checks.get(reason)

        if reason in (RejectionReason.EMPTY, RejectionReason.EXCESSIVE_GAPS) or check is None:
            message = f"Recording rejected: {reasons}"
            if check is not None:
                message = f"{message} ({check.metric} {check.measured:g} {check.unit}, {check.limit} {check.threshold:g})"
            raise InvalidInput(message)

        raise InsufficientData(
            check.metric,
            check.measured,
            check.threshold,
            reasons,
            unit=check.unit,
            limit=check.limit,
        )


def rr_drift(rr: np.ndarray) -> Optional[float]:
    """Mean RR of the last tenth minus the first tenth (at least 10 beats each)."""
    chunk = max(10, len(rr) // 10)
    if len(rr) < 2 * chunk:
        return None
    return float(np.mean(rr[-chunk:]) - np.mean(rr[:chunk]))


def verify_series(
    series: RRSeries,
    flags: Optional[Sequence[ArtifactFlag]] = None,
    config: Optional[HRVConfig] = None,
) -> VerificationResult:
    """
    Check a recording is fit for analysis.

    Args:
        series: Recording to check
        flags: Precomputed artifact flags (detected here if None)
        config: Quality thresholds

    Returns:
        VerificationResult listing every rejection reason found
    """
    cfg = config or HRVConfig()
    if len(series) == 0:
        return VerificationResult(is_valid=False, errors=[RejectionReason.EMPTY])

    if flags is None:
        flags = detect_artifacts(series, cfg)

    errors: List[RejectionReason] = []
    warnings: List[str] = []
    failed: Dict[RejectionReason, FailedCheck] = {}
    n = len(series)

    duration_min = series.duration_ms / 60000.0
    if duration_min < cfg.min_recording_minutes:
        errors.append(RejectionReason.TOO_SHORT)
        failed[RejectionReason.TOO_SHORT] = FailedCheck(
            'recording_duration', round(duration_min, 2), cfg.min_recording_minutes, 'minutes'
        )

    if n < cfg.analysis_min_beats:
        errors.append(RejectionReason.TOO_FEW_POINTS)
        failed[RejectionReason.TOO_FEW_POINTS] = FailedCheck('recording', n, cfg.analysis_min_beats, 'beats')

    pct = artifact_percentage(flags)
    if pct > cfg.max_artifact_rate * 100.0:
        errors.append(RejectionReason.EXCESSIVE_ARTIFACTS)
        failed[RejectionReason.EXCESSIVE_ARTIFACTS] = FailedCheck(
            'artifact_rate', round(pct, 2), cfg.max_artifact_rate * 100.0, '% of beats', 'max'
        )
    elif pct > cfg.artifact_warning_rate * 100.0:
        warnings.append(f"Elevated artifact rate {pct:.1f}%")

    if n > 1:
        # Gap = silence between one beat's end and the next beat's start
        gaps = series.t_ms[1:] - (series.t_ms[:-1] + series.rr_ms[:-1])
        longest = int(np.max(gaps))
        if longest > cfg.max_gap_ms:
            errors.append(RejectionReason.EXCESSIVE_GAPS)
            failed[RejectionReason.EXCESSIVE_GAPS] = FailedCheck('longest_gap', longest, cfg.max_gap_ms, 'ms', 'max')
            warnings.append(f"Longest gap {longest} ms")

    mask = artifact_mask(flags)
    drift = rr_drift(series.rr_ms[~mask].astype(float))
    if drift is not None and abs(drift) > cfg.drift_warning_ms:
        warnings.append(f"RR drift {drift:+.0f} ms between first and last tenth, possible electrode movement")

    ectopy = sum(1 for f in flags if f.type in RHYTHM_ARTIFACTS)
    if ectopy > cfg.ectopy_warning_rate * n or ectopy > cfg.ectopy_warning_count:
        warnings.append(f"Elevated ectopy: {ectopy} beats ({ectopy / n * 100.0:.1f}%)")

    rr = series.rr_ms
    too_low = int(np.count_nonzero(rr < cfg.min_rr_ms))
    too_high = int(np.count_nonzero(rr > cfg.max_rr_ms))
    out_of_range = too_low + too_high
    if out_of_range > cfg.out_of_range_warning_rate * n:
        warnings.append(
            f"Out-of-range intervals {out_of_range / n * 100.0:.1f}% ({too_low} low, {too_high} high)"
        )

    result = VerificationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        artifact_percentage=pct,
        clean_beat_count=n - int(np.count_nonzero(mask)),
        failed_checks=failed,
        rr_drift_ms=drift,
        ectopy_count=ectopy,
        out_of_range_count=out_of_range,
    )

    if errors:
        logger.warning(f"Recording rejected: {[e.value for e in errors]} ({duration_min:.1f} min, {n} beats)")
    for w in warnings:
        logger.debug(w)
    return result
