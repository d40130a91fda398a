"""
Nocturnal HRV - Frequency Domain Metrics

Spectral power of the RR tachogram in the standard VLF / LF / HF bands.

Pipeline:
    1. Place each clean beat at its interval midpoint (t_ms + rr_ms / 2)
    2. Linearly interpolate onto an even 4 Hz grid (bridges artifact gaps)
    3. Welch PSD: Hann window, 256-sample segments, 50% overlap, linear detrend
    4. Integrate PSD * df over each band

Bands (Hz): VLF [0.003, 0.04), LF [0.04, 0.15), HF [0.15, 0.40]
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.signal import welch

from .artifacts import clean_beats
from .types import ArtifactFlag, FrequencyDomainMetrics, HRVConfig, RRSeries

logger = logging.getLogger(__name__)


def resample_tachogram(t_ms: np.ndarray, rr: np.ndarray, fs: float) -> np.ndarray:
    """Evenly sampled RR signal (ms) at fs Hz from beat midpoints."""
    mid_s = (t_ms + rr / 2.0) / 1000.0
    if len(mid_s) < 2 or mid_s[-1] <= mid_s[0]:
        return np.array([])
    grid = np.arange(mid_s[0], mid_s[-1], 1.0 / fs)
    return np.interp(grid, mid_s, rr)


def power_spectrum(signal: np.ndarray, fs: float, segment: int) -> Tuple[np.ndarray, np.ndarray]:
    """Welch PSD in ms^2/Hz; a single Hann segment when the signal is shorter than one."""
    nperseg = min(segment, len(signal))
    return welch(
        signal,
        fs=fs,
        window='hann',
        nperseg=nperseg,
        noverlap=nperseg // 2,
        detrend='linear',
        scaling='density',
    )


def band_power(freqs: np.ndarray, psd: np.ndarray, band: Sequence[float], inclusive_upper: bool = False) -> float:
    lo, hi = band
    upper = freqs <= hi if inclusive_upper else freqs < hi
    mask = (freqs >= lo) & upper
    if not mask.any():
        return 0.0
    df = freqs[1] - freqs[0] if len(freqs) > 1 else 0.0
    return float(np.sum(psd[mask]) * df)


def band_peak(freqs: np.ndarray, psd: np.ndarray, band: Sequence[float], inclusive_upper: bool = False) -> Optional[float]:
    lo, hi = band
    upper = freqs <= hi if inclusive_upper else freqs < hi
    mask = (freqs >= lo) & upper
    if not mask.any() or np.max(psd[mask]) <= 0:
        return None
    return float(freqs[mask][np.argmax(psd[mask])])


def compute_frequency_domain(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    window_start: int,
    window_end: int,
    config: Optional[HRVConfig] = None,
) -> Optional[FrequencyDomainMetrics]:
    """
    Spectral HRV over clean beats in [window_start, window_end).

    Returns:
        FrequencyDomainMetrics, or None for short or sparse windows
    """
    cfg = config or HRVConfig()
    t, rr, _ = clean_beats(series, flags, window_start, window_end)

    if len(rr) < cfg.frequency_min_beats:
        logger.debug(f"Frequency domain: {len(rr)} clean beats < {cfg.frequency_min_beats}")
        return None

    signal = resample_tachogram(t, rr, cfg.resample_hz)
    if len(signal) < cfg.min_resampled_points:
        logger.debug(f"Frequency domain: {len(signal)} resampled points < {cfg.min_resampled_points}")
        return None
    if np.ptp(signal) == 0:
        logger.debug("Frequency domain: flat tachogram, no spectrum")
        return None

    freqs, psd = power_spectrum(signal, cfg.resample_hz, cfg.welch_segment)

    lf = band_power(freqs, psd, cfg.lf_band)
    hf = band_power(freqs, psd, cfg.hf_band, inclusive_upper=True)

    window_span_ms = t[-1] + rr[-1] - t[0]
    vlf = band_power(freqs, psd, cfg.vlf_band) if window_span_ms >= cfg.vlf_min_duration_ms else None

    total = (vlf or 0.0) + lf + hf
    lf_hf = lf + hf

    return FrequencyDomainMetrics(
        lf=lf,
        hf=hf,
        total_power=total,
        vlf=vlf,
        lf_hf_ratio=lf / hf if hf > 0 else None,
        lf_nu=lf / lf_hf * 100.0 if lf_hf > 0 else None,
        hf_nu=hf / lf_hf * 100.0 if lf_hf > 0 else None,
        lf_peak_hz=band_peak(freqs, psd, cfg.lf_band),
        hf_peak_hz=band_peak(freqs, psd, cfg.hf_band, inclusive_upper=True),
    )
