"""
Nocturnal HRV - Time Domain Metrics

Statistics over the clean beats of an analysis window: mean RR, SDNN,
RMSSD, SDSD, pNN50, heart rate summary and the HRV triangular index.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .artifacts import clean_beats
from .types import ArtifactFlag, HRVConfig, RRSeries, TimeDomainMetrics

logger = logging.getLogger(__name__)


def compute_time_domain(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    window_start: int,
    window_end: int,
    config: Optional[HRVConfig] = None,
) -> Optional[TimeDomainMetrics]:
    """
    Time-domain HRV over clean beats in [window_start, window_end).

    Args:
        series: Full recording
        flags: Artifact flags aligned with series
        window_start: First index (inclusive)
        window_end: Last index (exclusive)
        config: Minimum beat counts and HR windowing

    Returns:
        TimeDomainMetrics, or None if fewer than time_domain_min_beats clean beats
    """
    cfg = config or HRVConfig()
    _, rr, hr = clean_beats(series, flags, window_start, window_end)

    if len(rr) < max(2, cfg.time_domain_min_beats):
        logger.debug(f"Time domain: {len(rr)} clean beats < {cfg.time_domain_min_beats}")
        return None

    diffs = np.diff(rr)
    mean_hr, sd_hr, min_hr, max_hr = heart_rate_stats(rr, hr, cfg)

    return TimeDomainMetrics(
        mean_rr=float(np.mean(rr)),
        sdnn=float(np.std(rr)),
        rmssd=float(np.sqrt(np.mean(diffs ** 2))),
        sdsd=float(np.std(diffs)),
        pnn50=float(np.count_nonzero(np.abs(diffs) > 50.0)) / len(diffs) * 100.0,
        mean_hr=mean_hr,
        sd_hr=sd_hr,
        min_hr=min_hr,
        max_hr=max_hr,
        beat_count=len(rr),
        triangular_index=triangular_index(rr, cfg.triangular_bin_ms, cfg.triangular_min_beats),
    )


def triangular_index(rr: np.ndarray, bin_ms: float = 7.8125, min_beats: int = 20) -> Optional[float]:
    """Beat count divided by the height of the tallest RR histogram bin."""
    if len(rr) < min_beats:
        return None
    lo = np.floor(rr.min() / bin_ms) * bin_ms
    n_bins = int(np.floor((rr.max() - lo) / bin_ms)) + 1
    counts = np.bincount(((rr - lo) // bin_ms).astype(int), minlength=n_bins)
    tallest = counts.max()
    if tallest == 0:
        return None
    return float(len(rr)) / float(tallest)


def rolling_heart_rates(rr: np.ndarray, config: HRVConfig) -> np.ndarray:
    """
    Heart rate over rolling time windows of clean beats.

    Each window starts every hr_window_step_beats beats and extends until it
    covers hr_window_ms. Windows with too few beats or implausible rates
    are discarded.
    """
    n = len(rr)
    if n == 0:
        return np.array([])

    cum = np.cumsum(rr)
    starts = np.arange(0, n, config.hr_window_step_beats)
    base = cum[starts] - rr[starts]
    ends = np.searchsorted(cum, base + config.hr_window_ms, side='left')
    ends = np.minimum(ends, n - 1)

    counts = ends - starts + 1
    durations = cum[ends] - base
    valid = (counts >= config.hr_window_min_beats) & (durations > 0)

    rates = counts[valid] / durations[valid] * 60000.0
    plausible = (rates >= config.hr_min_bpm) & (rates <= config.hr_max_bpm)
    return rates[plausible]


def plausible_sensor_hr(hr: Optional[np.ndarray], config: HRVConfig) -> np.ndarray:
    """Sensor-reported HR values that are present and within [hr_min_bpm, hr_max_bpm]."""
    if hr is None:
        return np.array([])
    hr = np.asarray(hr, dtype=float)
    keep = np.isfinite(hr) & (hr >= config.hr_min_bpm) & (hr <= config.hr_max_bpm)
    return hr[keep]


def heart_rate_stats(rr: np.ndarray, hr: np.ndarray, config: HRVConfig):
    """
    (mean, sd, min, max) heart rate.

    Prefers sensor-reported HR when every clean beat has a plausible one;
    otherwise derives it from rolling RR windows, falling back to 60000 / mean RR.
    """
    measured = plausible_sensor_hr(hr, config)
    if len(measured) and len(measured) == len(rr):
        samples = measured
    else:
        samples = rolling_heart_rates(rr, config)

    if len(samples) == 0:
        fallback = 60000.0 / float(np.mean(rr))
        return fallback, 0.0, fallback, fallback

    return (
        float(np.mean(samples)),
        float(np.std(samples)),
        float(np.min(samples)),
        float(np.max(samples)),
    )
