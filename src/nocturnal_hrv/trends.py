"""
Nocturnal HRV - Multi-Night Trends

Follows one subject's nightly results over time.

Baseline:
- Mean of the nights in the preceding 7 days (at least 3 nights)
- Tonight's deviation as percent of that baseline, banded at +/-10 and +/-20%

Decline detectors over nightly RMSSD, thresholds in units of the
smallest detectable difference (SDD):
- EWMA tracks a gradual slide; warning and action levels
- CUSUM accumulates a persistent drop and alerts sooner
Both restart after a gap in recordings longer than max_gap_days.

Usage:
    from nocturnal_hrv.trends import results_to_nightly_frame, detect_ewma_alerts

    nights = results_to_nightly_frame(results)
    ewma, alerts = detect_ewma_alerts(
        ts=nights.index,
        x=nights['rmssd'].to_numpy(),
        baseline=45.0,
        sdd=smallest_detectable_difference(nights['rmssd']),
    )
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .result import HRVAnalysisResult
from .types import HRVConfig

logger = logging.getLogger(__name__)


@dataclass
class TrendAlert:
    """Single alert from a trend detector."""
    timestamp: pd.Timestamp
    value: float
    level: str  # 'warning' or 'action'
    detector: str  # 'ewma' or 'cusum'
    context: Optional[str] = None


class DeviationInterpretation(str, Enum):
    SIGNIFICANTLY_BELOW = 'significantly_below'
    BELOW = 'below'
    WITHIN_NORMAL = 'within_normal'
    ABOVE = 'above'
    SIGNIFICANTLY_ABOVE = 'significantly_above'
    INSUFFICIENT = 'insufficient'


# =============================================================================
# Nightly table and baseline
# =============================================================================

def results_to_nightly_frame(results: Iterable[HRVAnalysisResult]) -> pd.DataFrame:
    """Per-night metrics indexed by window start, sorted by time."""
    rows = []
    for r in results:
        rows.append({
            'ts': pd.Timestamp(r.window_start),
            'rmssd': r.time_domain.rmssd,
            'sdnn': r.time_domain.sdnn,
            'mean_hr': r.time_domain.mean_hr,
            'lf_hf_ratio': r.frequency_domain.lf_hf_ratio if r.frequency_domain else np.nan,
            'dfa_alpha1': r.nonlinear.dfa_alpha1 if r.nonlinear else np.nan,
            'stress_index': r.ans_metrics.stress_index,
            'readiness_score': r.ans_metrics.readiness_score,
            'artifact_percentage': r.artifact_percentage,
            'organized': r.is_organized_recovery,
        })
    if not rows:
        return pd.DataFrame(columns=['rmssd']).rename_axis('ts')
    return pd.DataFrame(rows).set_index('ts').sort_index()


def rolling_baseline(values: pd.Series, config: Optional[HRVConfig] = None) -> pd.Series:
    """
    Baseline for each night from the nights strictly before it.

    Args:
        values: Metric indexed by DatetimeIndex
        config: baseline_window_days look-back and baseline_min_samples

    Returns:
        Series aligned with values; NaN until enough prior nights exist
    """
    cfg = config or HRVConfig()
    values = values.sort_index()
    return values.rolling(
        f'{cfg.baseline_window_days}D', closed='left', min_periods=cfg.baseline_min_samples
    ).mean()


def baseline_deviation(value: float, baseline: Optional[float]) -> Optional[float]:
    """Percent deviation of value from baseline."""
    if baseline is None or not np.isfinite(baseline) or baseline == 0:
        return None
    return (value - baseline) / baseline * 100.0


def interpret_deviation(deviation: Optional[float]) -> DeviationInterpretation:
    if deviation is None:
        return DeviationInterpretation.INSUFFICIENT
    if deviation < -20:
        return DeviationInterpretation.SIGNIFICANTLY_BELOW
    if deviation < -10:
        return DeviationInterpretation.BELOW
    if deviation > 20:
        return DeviationInterpretation.SIGNIFICANTLY_ABOVE
    if deviation > 10:
        return DeviationInterpretation.ABOVE
    return DeviationInterpretation.WITHIN_NORMAL


def smallest_detectable_difference(values: Iterable[float]) -> Optional[float]:
    """SDD = 2.77 * TE, typical error from night-to-night differences."""
    x = np.asarray(list(values), dtype=float)
    x = x[np.isfinite(x)]
    if len(x) < 3:
        return None
    typical_error = np.std(np.diff(x), ddof=1) / np.sqrt(2)
    return float(2.77 * typical_error)


# =============================================================================
# Gap handling
# =============================================================================

def gap_resets(ts: pd.DatetimeIndex, max_gap_days: float) -> np.ndarray:
    """True for each night that follows a recording gap longer than max_gap_days."""
    if len(ts) == 0:
        return np.zeros(0, dtype=bool)
    gaps = pd.Series(ts).diff().dt.total_seconds().to_numpy() / 86400.0
    return np.nan_to_num(gaps, nan=0.0) > max_gap_days


# =============================================================================
# EWMA
# =============================================================================

def compute_ewma_with_gaps(
    ts: pd.DatetimeIndex,
    x: np.ndarray,
    lam: float,
    max_gap_days: float,
    baseline: float
) -> pd.Series:
    """
    Nightly EWMA, restarted from the baseline after a recording gap.

    Args:
        ts: Night timestamps, ascending
        x: Nightly values (e.g. RMSSD)
        lam: Weight of the newest night
        max_gap_days: Gap that restarts the average
        baseline: Starting level, and the level after each restart

    Returns:
        EWMA indexed by ts
    """
    resets = gap_resets(ts, max_gap_days)
    smoothed = np.empty(len(x))
    level = baseline
    for i, value in enumerate(x):
        if resets[i]:
            level = baseline
        level = lam * value + (1.0 - lam) * level
        smoothed[i] = level
    return pd.Series(smoothed, index=ts)


def detect_ewma_alerts(
    ts: pd.DatetimeIndex,
    x: np.ndarray,
    baseline: float,
    sdd: float,
    lam: float = 0.2,
    max_gap_days: float = 3.0,
    min_nights: int = 5,
    warning_mult: float = 1.0,
    action_mult: float = 2.0
) -> Tuple[pd.Series, List[TrendAlert]]:
    """
    Flag a gradual nightly decline.

    A night alerts once the EWMA falls to baseline - warning_mult * sdd
    (warning) or baseline - action_mult * sdd (action). Nights within the
    first min_nights of a run, counted from the start or the last gap,
    never alert.

    Returns:
        (EWMA series, alerts in night order)
    """
    ewma = compute_ewma_with_gaps(ts, x, lam, max_gap_days, baseline)
    resets = gap_resets(ts, max_gap_days)
    # Position of each night within its gap-free run, starting at 1
    run_id = np.cumsum(resets)
    run_position = np.arange(len(x)) - np.searchsorted(run_id, run_id, side='left') + 1

    levels = (
        ('action', baseline - action_mult * sdd, action_mult),
        ('warning', baseline - warning_mult * sdd, warning_mult),
    )
    alerts: List[TrendAlert] = []
    for i, value in enumerate(ewma.to_numpy()):
        if run_position[i] < min_nights:
            continue
        for level, threshold, mult in levels:
            if value <= threshold:
                alerts.append(TrendAlert(
                    timestamp=ts[i],
                    value=float(value),
                    level=level,
                    detector='ewma',
                    context=f'EWMA {value:.1f} <= {threshold:.1f} (baseline - {mult} x SDD)',
                ))
                break

    if alerts:
        logger.info(f"EWMA raised {len(alerts)} alerts over {len(x)} nights")
    return ewma, alerts


# =============================================================================
# CUSUM
# =============================================================================

def detect_cusum_alerts(
    ts: pd.DatetimeIndex,
    x: np.ndarray,
    baseline: float,
    sdd: float,
    max_gap_days: float = 3.0,
    k_mult: float = 0.5,
    h_mult: float = 4.0,
    reset_on_recovery_n: int = 3
) -> Tuple[pd.Series, List[TrendAlert]]:
    """
    One-sided downward CUSUM for a persistent nightly drop.

        s_t = max(0, s_(t-1) + (baseline - x_t) - k)    alert when s_t >= h

    k = k_mult * sdd, h = h_mult * sdd. The sum restarts at zero after a
    gap (that night is not scored), after an alert, and after
    reset_on_recovery_n consecutive nights at or above baseline - sdd / 2.

    Returns:
        (CUSUM series, alerts in night order)
    """
    k = k_mult * sdd
    h = h_mult * sdd
    recovered_level = baseline - 0.5 * sdd
    resets = gap_resets(ts, max_gap_days)

    cusum = np.zeros(len(x))
    alerts: List[TrendAlert] = []
    total = 0.0
    recovered_run = 0

    for i, value in enumerate(x):
        if resets[i]:
            total, recovered_run = 0.0, 0
            continue

        total = max(0.0, total + (baseline - value) - k)
        recovered_run = recovered_run + 1 if value >= recovered_level else 0
        if recovered_run >= reset_on_recovery_n:
            total, recovered_run = 0.0, 0

        cusum[i] = total
        if total >= h:
            alerts.append(TrendAlert(
                timestamp=ts[i],
                value=float(total),
                level='action',
                detector='cusum',
                context=f'CUSUM {total:.1f} >= {h:.1f} ({h_mult} x SDD)',
            ))
            total = 0.0

    if alerts:
        logger.info(f"CUSUM raised {len(alerts)} alerts over {len(x)} nights")
    return pd.Series(cusum, index=ts), alerts
