"""
Nocturnal HRV - Autonomic Indices

Derived scalar indices over a caller-supplied list of clean RR values:
- Baevsky stress index (histogram mode amplitude over spread)
- Respiration rate (dominant RR oscillation in the respiratory band)
- PNS / SNS indices (z-scores against normative resting values)
- Readiness score (1-10)

Every function returns None for undefined or degenerate input.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from scipy.signal import periodogram

from .types import ANSMetrics, HRVConfig, NonlinearMetrics, TimeDomainMetrics

logger = logging.getLogger(__name__)


# Normative resting values (healthy adults, supine): (mean, sd)
PNS_NORMS = {
    'mean_rr': (926.0, 90.0),
    'rmssd': (42.0, 19.0),
    'sd1': (29.0, 13.0),
}
SNS_NORMS = {
    'mean_hr': (66.0, 9.0),
    'stress_index': (100.0, 50.0),
    'sd2': (65.0, 20.0),
}


# =============================================================================
# Stress Index
# =============================================================================

def compute_stress_index(rr: np.ndarray, config: Optional[HRVConfig] = None) -> Optional[float]:
    """
    Baevsky stress index SI = AMo / (2 * Mo * MxDMn).

    AMo is the modal bin share (%), Mo the modal bin centre (s) and MxDMn
    the RR range (s), from a histogram with stress_bin_ms bins.
    """
    cfg = config or HRVConfig()
    rr = np.asarray(rr, dtype=float)
    if len(rr) < cfg.stress_min_beats:
        return None

    lo, hi = float(rr.min()), float(rr.max())
    mxdmn = (hi - lo) / 1000.0
    if mxdmn <= 0:
        return None

    bin_ms = cfg.stress_bin_ms
    counts = np.bincount(((rr - lo) // bin_ms).astype(int))
    modal = int(np.argmax(counts))
    mo = (lo + modal * bin_ms + bin_ms / 2.0) / 1000.0
    amo = counts[modal] / len(rr) * 100.0
    if mo <= 0:
        return None

    return float(amo / (2.0 * mo * mxdmn))


# =============================================================================
# Respiration
# =============================================================================

def compute_respiration_rate(rr: np.ndarray, config: Optional[HRVConfig] = None) -> Optional[float]:
    """
    Breathing rate (breaths/min) from respiratory sinus arrhythmia.

    The RR series is placed on its own cumulative time axis, resampled,
    zero padded to a power of two and Hann windowed; the periodogram peak
    inside respiration_band_hz is the breathing frequency.
    """
    cfg = config or HRVConfig()
    rr = np.asarray(rr, dtype=float)
    if len(rr) < cfg.respiration_min_beats or np.std(rr) == 0:
        return None

    t = np.cumsum(rr) / 1000.0
    grid = np.arange(t[0], t[-1], 1.0 / cfg.resample_hz)
    if len(grid) < cfg.min_resampled_points:
        return None
    signal = np.interp(grid, t, rr)

    nfft = int(2 ** np.ceil(np.log2(len(signal))))
    freqs, psd = periodogram(signal, fs=cfg.resample_hz, window='hann', nfft=nfft, detrend='constant')

    lo, hi = cfg.respiration_band_hz
    band = (freqs >= lo) & (freqs <= hi)
    if not band.any() or np.max(psd[band]) <= 0:
        return None

    breaths = float(freqs[band][np.argmax(psd[band])] * 60.0)
    min_bpm, max_bpm = cfg.respiration_valid_bpm
    if not (min_bpm <= breaths <= max_bpm):
        logger.debug(f"Respiration {breaths:.1f}/min outside plausible range")
        return None
    return breaths


# =============================================================================
# Balance Indices
# =============================================================================

def _z(value: float, norm) -> float:
    mean, sd = norm
    return (value - mean) / sd


def compute_pns_index(mean_rr: float, rmssd: float, sd1: float) -> float:
    """Parasympathetic index: mean z-score of mean RR, RMSSD and SD1."""
    return (
        _z(mean_rr, PNS_NORMS['mean_rr'])
        + _z(rmssd, PNS_NORMS['rmssd'])
        + _z(sd1, PNS_NORMS['sd1'])
    ) / 3.0


def compute_sns_index(mean_hr: float, stress_index: float, sd2: float) -> float:
    """Sympathetic index: mean z-score of HR, stress index and inverted SD2."""
    return (
        _z(mean_hr, SNS_NORMS['mean_hr'])
        + _z(stress_index, SNS_NORMS['stress_index'])
        - _z(sd2, SNS_NORMS['sd2'])
    ) / 3.0


def compute_readiness_score(
    rmssd: float,
    alpha1: Optional[float] = None,
    pns_index: Optional[float] = None,
    sns_index: Optional[float] = None,
    baseline_rmssd: Optional[float] = None,
) -> float:
    """
    Recovery readiness on a 1-10 scale, 5 = neutral.

    RMSSD is judged against the personal baseline when given, otherwise
    against absolute thresholds. alpha1 in the organized band and
    parasympathetic dominance raise the score.
    """
    score = 5.0

    if baseline_rmssd is not None and baseline_rmssd > 0:
        ratio = rmssd / baseline_rmssd
        if 0.85 <= ratio <= 1.15:
            score += 2.0
        elif 0.70 <= ratio <= 1.30:
            score += 1.0
        elif ratio < 0.60 or ratio > 1.50:
            score -= 2.0
    else:
        if rmssd > 50:
            score += 1.5
        elif rmssd > 30:
            score += 0.5
        elif rmssd < 20:
            score -= 1.5

    if alpha1 is not None:
        if 0.75 <= alpha1 <= 1.0:
            score += 2.0
        elif 0.5 <= alpha1 <= 1.25:
            score += 0.5
        else:
            score -= 1.0

    if pns_index is not None and sns_index is not None:
        balance = pns_index - sns_index
        if balance >= 1.0:
            score += 1.5
        elif balance >= 0:
            score += 0.5
        elif balance >= -1.0:
            score -= 0.5
        else:
            score -= 1.5

    return max(1.0, min(10.0, score))


def compute_ans_metrics(
    rr: np.ndarray,
    time_domain: TimeDomainMetrics,
    nonlinear: Optional[NonlinearMetrics] = None,
    config: Optional[HRVConfig] = None,
    baseline_rmssd: Optional[float] = None,
) -> ANSMetrics:
    """All autonomic indices for one window's clean beats."""
    stress = compute_stress_index(rr, config)
    respiration = compute_respiration_rate(rr, config)

    pns = sns = None
    if nonlinear is not None:
        pns = compute_pns_index(time_domain.mean_rr, time_domain.rmssd, nonlinear.sd1)
        if stress is not None:
            sns = compute_sns_index(time_domain.mean_hr, stress, nonlinear.sd2)

    readiness = compute_readiness_score(
        rmssd=time_domain.rmssd,
        alpha1=nonlinear.dfa_alpha1 if nonlinear else None,
        pns_index=pns,
        sns_index=sns,
        baseline_rmssd=baseline_rmssd,
    )

    return ANSMetrics(
        stress_index=stress,
        respiration_rate=respiration,
        pns_index=pns,
        sns_index=sns,
        readiness_score=readiness,
    )
