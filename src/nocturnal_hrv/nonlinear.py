"""
Nocturnal HRV - Nonlinear Metrics

Poincaré dispersions, sample/approximate entropy and DFA exponents.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .artifacts import clean_beats
from .dfa import dfa
from .types import ArtifactFlag, HRVConfig, NonlinearMetrics, RRSeries

logger = logging.getLogger(__name__)

# Rows of the template-distance matrix processed per block
_BLOCK = 256


# =============================================================================
# Poincaré
# =============================================================================

def poincare(rr: np.ndarray):
    """(SD1, SD2) from successive-difference and total variance."""
    diffs = np.diff(rr)
    sd1_sq = np.var(diffs) / 2.0
    sd2_sq = max(0.0, 2.0 * np.var(rr) - sd1_sq)
    return float(np.sqrt(sd1_sq)), float(np.sqrt(sd2_sq))


# =============================================================================
# Entropy
# =============================================================================

def _match_counts(x: np.ndarray, m: int, r: float, n_templates: int, include_self: bool) -> np.ndarray:
    """Per-template count of templates of length m within Chebyshev distance r."""
    templates = np.lib.stride_tricks.sliding_window_view(x, m)[:n_templates]
    counts = np.zeros(n_templates, dtype=np.int64)
    for lo in range(0, n_templates, _BLOCK):
        block = templates[lo:lo + _BLOCK]
        dist = np.max(np.abs(block[:, None, :] - templates[None, :, :]), axis=2)
        within = dist <= r
        if not include_self:
            rows = np.arange(len(block))
            within[rows, lo + rows] = False
        counts[lo:lo + len(block)] = within.sum(axis=1)
    return counts


def sample_entropy(rr: np.ndarray, m: int = 2, r_factor: float = 0.2) -> Optional[float]:
    """
    SampEn = -ln(A / B), B = matches of length m, A = matches of length m+1.

    Self-matches excluded; both lengths use the same N - m templates.
    """
    n = len(rr)
    sd = np.std(rr, ddof=1) if n > 1 else 0.0
    if n <= m + 1 or sd == 0:
        return None
    r = r_factor * sd
    n_templates = n - m
    b = _match_counts(rr, m, r, n_templates, include_self=False).sum()
    a = _match_counts(rr, m + 1, r, n_templates, include_self=False).sum()
    if a == 0 or b == 0:
        return None
    return float(-np.log(a / b))


def approximate_entropy(rr: np.ndarray, m: int = 2, r_factor: float = 0.2) -> Optional[float]:
    """ApEn = phi(m) - phi(m+1), self-matches included."""
    n = len(rr)
    sd = np.std(rr, ddof=1) if n > 1 else 0.0
    if n <= m + 1 or sd == 0:
        return None
    r = r_factor * sd

    def phi(length: int) -> float:
        n_templates = n - length + 1
        counts = _match_counts(rr, length, r, n_templates, include_self=True)
        return float(np.mean(np.log(counts / n_templates)))

    return phi(m) - phi(m + 1)


def central_span(rr: np.ndarray, max_beats: int) -> np.ndarray:
    """Contiguous middle max_beats of rr (entropy cost grows with N^2)."""
    if len(rr) <= max_beats:
        return rr
    offset = (len(rr) - max_beats) // 2
    return rr[offset:offset + max_beats]


# =============================================================================
# Analyzer
# =============================================================================

def compute_nonlinear(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    window_start: int,
    window_end: int,
    config: Optional[HRVConfig] = None,
) -> Optional[NonlinearMetrics]:
    """
    Nonlinear HRV over clean beats in [window_start, window_end).

    Returns:
        NonlinearMetrics, or None if fewer than nonlinear_min_beats clean beats
    """
    cfg = config or HRVConfig()
    _, rr, _ = clean_beats(series, flags, window_start, window_end)

    if len(rr) < cfg.nonlinear_min_beats:
        logger.debug(f"Nonlinear: {len(rr)} clean beats < {cfg.nonlinear_min_beats}")
        return None

    sd1, sd2 = poincare(rr)

    entropy_rr = central_span(rr, cfg.entropy_max_beats)
    if len(entropy_rr) < len(rr):
        logger.debug(f"Entropy on central {len(entropy_rr)} of {len(rr)} beats")

    fractal = dfa(rr, cfg)

    return NonlinearMetrics(
        sd1=sd1,
        sd2=sd2,
        sd1_sd2_ratio=sd1 / sd2 if sd2 > 0 else None,
        sample_entropy=sample_entropy(entropy_rr, cfg.entropy_m, cfg.entropy_r_factor),
        approximate_entropy=approximate_entropy(entropy_rr, cfg.entropy_m, cfg.entropy_r_factor),
        dfa_alpha1=fractal.alpha1 if fractal else None,
        dfa_alpha2=fractal.alpha2 if fractal else None,
        dfa_alpha1_r2=fractal.alpha1_r2 if fractal else None,
    )
