"""
Nocturnal HRV - Detrended Fluctuation Analysis

Single DFA implementation shared by window selection and the nonlinear
analyzer, so the alpha1 that picks a window is the alpha1 reported for it.

Procedure:
    y(k) = cumsum(rr - mean(rr))
    split y into non-overlapping boxes of n beats (from the start)
    remove a least-squares line from each box
    F(n) = sqrt(sum(residual^2) / (boxes * n))
    alpha = slope of log10 F(n) against log10 n
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from .types import DFAResult, HRVConfig

logger = logging.getLogger(__name__)


def fluctuation(profile: np.ndarray, box_size: int) -> float:
    """Root-mean-square residual of per-box linear detrending."""
    n_boxes = len(profile) // box_size
    if n_boxes == 0:
        return 0.0
    boxes = profile[:n_boxes * box_size].reshape(n_boxes, box_size)

    x = np.arange(box_size, dtype=float)
    xc = x - x.mean()
    centered = boxes - boxes.mean(axis=1, keepdims=True)
    slopes = centered @ xc / np.dot(xc, xc)
    residuals = centered - slopes[:, None] * xc[None, :]

    return float(np.sqrt(np.sum(residuals ** 2) / (n_boxes * box_size)))


def scaling_exponent(profile: np.ndarray, box_sizes: np.ndarray) -> Optional[Tuple[float, float]]:
    """
    Fit log10 F(n) against log10 n.

    Returns:
        (alpha, r2) or None if fewer than 3 scales or a fluctuation is zero
    """
    if len(box_sizes) < 3:
        return None

    f = np.array([fluctuation(profile, int(n)) for n in box_sizes])
    if np.any(f <= 0) or not np.all(np.isfinite(f)):
        return None

    log_n = np.log10(box_sizes.astype(float))
    log_f = np.log10(f)
    slope, intercept = np.polyfit(log_n, log_f, 1)

    predicted = slope * log_n + intercept
    ss_res = np.sum((log_f - predicted) ** 2)
    ss_tot = np.sum((log_f - log_f.mean()) ** 2)
    r2 = 1 - (ss_res / ss_tot) if ss_tot > 0 else 0.0

    return float(slope), float(min(1.0, max(0.0, r2)))


def dfa(rr: np.ndarray, config: Optional[HRVConfig] = None, long_range: bool = True) -> Optional[DFAResult]:
    """
    Short-term (alpha1) and long-term (alpha2) DFA exponents.

    Args:
        rr: Clean RR intervals in ms, in beat order
        config: Box-size ranges and beat minimums (defaults if None)
        long_range: Also fit alpha2 (window scanning only needs alpha1)

    Returns:
        DFAResult, or None when alpha1 is undefined (too few beats or
        degenerate fluctuations). alpha2 is None on its own when the
        series is too short for long-range scales.
    """
    cfg = config or HRVConfig()
    rr = np.asarray(rr, dtype=float)
    n = len(rr)

    if n < cfg.dfa_min_beats:
        return None

    profile = np.cumsum(rr - rr.mean())

    max_box1 = min(cfg.dfa_alpha1_max_box, n // 4)
    sizes1 = np.arange(cfg.dfa_alpha1_min_box, max_box1 + 1)
    short = scaling_exponent(profile, sizes1)
    if short is None:
        logger.debug(f"DFA alpha1 undefined for {n} beats")
        return None
    alpha1, alpha1_r2 = short

    alpha2 = alpha2_r2 = None
    if long_range and n >= cfg.dfa_alpha2_min_beats:
        max_box2 = min(cfg.dfa_alpha2_max_box, n // 4)
        sizes2 = np.arange(cfg.dfa_alpha2_min_box, max_box2 + 1, cfg.dfa_alpha2_box_step)
        long = scaling_exponent(profile, sizes2)
        if long is not None:
            alpha2, alpha2_r2 = long

    return DFAResult(alpha1=alpha1, alpha1_r2=alpha1_r2, alpha2=alpha2, alpha2_r2=alpha2_r2)
