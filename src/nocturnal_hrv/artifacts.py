"""
Nocturnal HRV - Artifact Detection and Correction

Flags physiologically implausible or rhythm-breaking RR intervals.

Rules:
- Outside [min_rr_ms, max_rr_ms] -> technical artifact
- Relative deviation from the median of neighboring in-bound beats above
  ectopic_threshold -> ectopic / missed / extra depending on direction and size

The first and last beats have no full neighborhood; the comparison window
is one-sided there (forward-only at the start, backward-only at the end).

Usage:
    from nocturnal_hrv.artifacts import detect_artifacts, correct_artifacts

    flags = detect_artifacts(series)
    corrected = correct_artifacts(series, flags, method='cubic_spline')
"""
from __future__ import annotations

import logging
import warnings
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from scipy.interpolate import CubicSpline

from .types import ArtifactFlag, ArtifactType, HRVConfig, RRSeries, CLEAN

logger = logging.getLogger(__name__)


# =============================================================================
# Detection
# =============================================================================

def local_median(values: np.ndarray, half_width: int) -> np.ndarray:
    """
    Median of up to half_width neighbors on each side, excluding the point itself.

    NaN entries are ignored, so out-of-bound beats never shape the baseline.
    Rows with no usable neighbor come back as NaN.
    """
    n = len(values)
    pad = np.full(half_width, np.nan)
    padded = np.concatenate([pad, values.astype(float), pad])
    windows = sliding_window_view(padded, 2 * half_width + 1)
    neighbors = np.delete(windows, half_width, axis=1)
    with warnings.catch_warnings():
        # All-NaN rows are expected for isolated beats
        warnings.simplefilter('ignore', RuntimeWarning)
        med = np.nanmedian(neighbors, axis=1)
    return med[:n]


def detect_artifacts(series: RRSeries, config: Optional[HRVConfig] = None) -> List[ArtifactFlag]:
    """
    Flag each beat of the series.

    Total function: always returns one flag per point, never raises.

    Args:
        series: RR series to scan
        config: Thresholds (defaults if None)

    Returns:
        List of ArtifactFlag aligned with series indices
    """
    cfg = config or HRVConfig()
    n = len(series)
    if n == 0:
        return []

    rr = series.rr_ms.astype(float)
    in_bounds = (rr >= cfg.min_rr_ms) & (rr <= cfg.max_rr_ms)

    med = local_median(np.where(in_bounds, rr, np.nan), cfg.artifact_neighbor_beats)
    has_baseline = np.isfinite(med) & (med > 0)
    deviation = np.zeros(n)
    np.divide(np.abs(rr - med), med, out=deviation, where=has_baseline)

    rhythm_break = in_bounds & has_baseline & (deviation > cfg.ectopic_threshold)

    flags: List[ArtifactFlag] = []
    for i in range(n):
        if not in_bounds[i]:
            flags.append(ArtifactFlag(True, ArtifactType.TECHNICAL, 1.0))
        elif rhythm_break[i]:
            if rr[i] < med[i] * cfg.extra_ratio:
                kind = ArtifactType.EXTRA
            elif rr[i] > med[i] * cfg.missed_ratio:
                kind = ArtifactType.MISSED
            else:
                kind = ArtifactType.ECTOPIC
            confidence = min(1.0, float(deviation[i]) / (2 * cfg.ectopic_threshold))
            flags.append(ArtifactFlag(True, kind, round(confidence, 4)))
        else:
            flags.append(CLEAN)

    n_artifacts = int(np.count_nonzero(~in_bounds | rhythm_break))
    if n_artifacts:
        logger.debug(
            f"Flagged {n_artifacts}/{n} beats "
            f"({int(np.count_nonzero(~in_bounds))} technical)"
        )
    return flags


# =============================================================================
# Helpers shared by analyzers
# =============================================================================

def artifact_mask(flags: Sequence[ArtifactFlag], start: int = 0, end: Optional[int] = None) -> np.ndarray:
    """Boolean is_artifact array for flags[start:end]."""
    subset = flags[start:end]
    return np.fromiter((f.is_artifact for f in subset), dtype=bool, count=len(subset))


def artifact_percentage(flags: Sequence[ArtifactFlag], start: int = 0, end: Optional[int] = None) -> float:
    """Percentage of beats in [start, end) flagged as artifacts."""
    mask = artifact_mask(flags, start, end)
    if len(mask) == 0:
        return 0.0
    return float(np.count_nonzero(mask)) / len(mask) * 100.0


def clean_beats(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    start: int,
    end: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Clean beats of the half-open index range [start, end).

    Returns:
        (t_ms, rr_ms, hr) arrays restricted to non-artifact beats,
        rr as float, hr NaN where not measured
    """
    start = max(0, start)
    end = min(len(series), end)
    if end <= start:
        empty = np.array([], dtype=float)
        return empty, empty, empty
    keep = ~artifact_mask(flags, start, end)
    return (
        series.t_ms[start:end][keep].astype(float),
        series.rr_ms[start:end][keep].astype(float),
        series.hr[start:end][keep],
    )


# =============================================================================
# Correction
# =============================================================================

class CorrectionMethod(str, Enum):
    NONE = 'none'
    DELETION = 'deletion'
    LINEAR = 'linear'
    CUBIC_SPLINE = 'cubic_spline'
    MEDIAN = 'median'


def correct_artifacts(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    method: str = CorrectionMethod.CUBIC_SPLINE,
    config: Optional[HRVConfig] = None,
) -> np.ndarray:
    """
    Replace flagged intervals using the chosen method.

    Interpolating methods work over beat index and keep the series length;
    deletion drops flagged beats. Beats before the first or after the last
    clean beat take the nearest clean value.

    Args:
        series: Source series
        flags: Flags from detect_artifacts
        method: One of CorrectionMethod values
        config: For the median window width

    Returns:
        Corrected RR values (float ms)
    """
    cfg = config or HRVConfig()
    method = CorrectionMethod(method)
    rr = series.rr_ms.astype(float)
    bad = artifact_mask(flags)

    if method == CorrectionMethod.NONE or not bad.any():
        return rr
    if method == CorrectionMethod.DELETION:
        return rr[~bad]

    good_idx = np.flatnonzero(~bad)
    bad_idx = np.flatnonzero(bad)
    if len(good_idx) == 0:
        logger.warning("No clean beats to correct from, returning series unchanged")
        return rr

    corrected = rr.copy()
    corrected[bad_idx] = np.interp(bad_idx, good_idx, rr[good_idx])

    if method == CorrectionMethod.CUBIC_SPLINE and len(good_idx) >= 4:
        interior = bad_idx[(bad_idx > good_idx[0]) & (bad_idx < good_idx[-1])]
        if len(interior):
            spline = CubicSpline(good_idx, rr[good_idx])
            corrected[interior] = spline(interior)

    elif method == CorrectionMethod.MEDIAN:
        half = cfg.correction_median_window // 2
        clean_only = np.where(bad, np.nan, rr)
        for i in bad_idx:
            lo, hi = max(0, i - half), min(len(rr), i + half + 1)
            neighborhood = clean_only[lo:hi]
            if np.any(np.isfinite(neighborhood)):
                corrected[i] = float(np.nanmedian(neighborhood))

    logger.debug(f"Corrected {len(bad_idx)} beats using {method.value}")
    return corrected
