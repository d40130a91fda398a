"""
Nocturnal HRV - Analysis Window Selection

Finds the sub-window of a long recording that best represents organized
autonomic recovery.

Algorithm:
1. Search region = [sleep_start_ms, wake_time_ms) when given, else the recording
2. Slide fixed-duration candidates across the region on a fixed time step
3. Skip candidates with too few clean beats or too many artifacts
4. For each remaining candidate: mean HR, HR coefficient of variation,
   DFA alpha1 over its clean RR values
5. Classify by alpha1 band, gated on LF/HF or HR CV; only organized_recovery
   candidates are scored:
       recovery_score = 1 / (1 + w * hr_cv) * position_factor
6. Highest score wins, earliest start on ties; None if nothing is organized

Candidates are index ranges over the series' shared arrays, located by
binary search on t_ms; clean counts come from one prefix sum.

Usage:
    from nocturnal_hrv.window import find_best_window

    window = find_best_window(series, flags, sleep_start_ms=0, wake_time_ms=8 * 3600_000)
    if window is None:
        ...  # analyze the full recording instead
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .artifacts import artifact_mask
from .dfa import dfa
from .errors import InsufficientData
from .frequency import compute_frequency_domain
from .time_domain import plausible_sensor_hr
from .types import (
    AnalysisWindow,
    ArtifactFlag,
    DFAResult,
    HRVConfig,
    PeakCapacity,
    RRSeries,
    WindowClassification,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowCandidate:
    """One evaluated step of the sliding search."""
    start_index: int
    end_index: int
    start_ms: int
    end_ms: int
    clean_beats: int
    mean_hr: float
    hr_stability: float
    rmssd: float
    sdnn: float
    relative_position: float
    classification: WindowClassification
    dfa: Optional[DFAResult] = None
    lf_hf_ratio: Optional[float] = None

    @property
    def alpha1(self) -> Optional[float]:
        return self.dfa.alpha1 if self.dfa else None


@dataclass(frozen=True)
class WindowSelection:
    """Outcome of a search: the chosen window (or None) and what was looked at."""
    window: Optional[AnalysisWindow]
    reason: str
    search_start_ms: int
    search_end_ms: int
    candidates: Tuple[WindowCandidate, ...] = ()

    @property
    def candidates_evaluated(self) -> int:
        return len(self.candidates)


# =============================================================================
# Search Region
# =============================================================================

def search_region(
    series: RRSeries,
    sleep_start_ms: Optional[int] = None,
    wake_time_ms: Optional[int] = None,
) -> Tuple[int, int]:
    """
    [start_ms, end_ms) to search: sleep hints clipped to the recording.

    Hints outside the recording, or a wake time not after the start, are
    ignored in favour of the recording bounds.
    """
    rec_start = int(series.t_ms[0]) if len(series) else 0
    rec_end = series.end_ms

    start = rec_start
    if sleep_start_ms is not None:
        if rec_start <= sleep_start_ms < rec_end:
            start = int(sleep_start_ms)
        else:
            logger.warning(f"Sleep start {sleep_start_ms} outside recording [{rec_start}, {rec_end}), ignored")

    end = rec_end
    if wake_time_ms is not None:
        if wake_time_ms > start:
            end = int(min(wake_time_ms, rec_end))
        else:
            logger.warning(f"Wake time {wake_time_ms} not after search start {start}, ignored")

    return start, end


# =============================================================================
# Scoring
# =============================================================================

def classify_alpha1(alpha1: Optional[float], config: HRVConfig) -> WindowClassification:
    """Map a DFA alpha1 onto the physiological bands."""
    if alpha1 is None:
        return WindowClassification.INSUFFICIENT
    if config.organized_alpha1_min <= alpha1 <= config.organized_alpha1_max:
        return WindowClassification.ORGANIZED_RECOVERY
    if config.flexible_alpha1_min <= alpha1 < config.organized_alpha1_min:
        return WindowClassification.FLEXIBLE_UNCONSOLIDATED
    return WindowClassification.HIGH_VARIABILITY


def classify_window(
    alpha1: Optional[float],
    lf_hf_ratio: Optional[float],
    hr_cv: float,
    config: HRVConfig,
) -> WindowClassification:
    """
    Classify a candidate from alpha1 plus the autonomic balance gate.

    An in-band alpha1 counts as organized only when LF/HF <= organized_max_lf_hf
    (an undefined ratio passes) or HR CV < organized_max_hr_cv; otherwise the
    window is high_variability. Without alpha1, HR CV alone decides.
    """
    if alpha1 is None:
        if hr_cv < config.organized_max_hr_cv:
            return WindowClassification.ORGANIZED_RECOVERY
        return WindowClassification.HIGH_VARIABILITY

    band = classify_alpha1(alpha1, config)
    if band != WindowClassification.ORGANIZED_RECOVERY:
        return band

    balanced = lf_hf_ratio is None or lf_hf_ratio <= config.organized_max_lf_hf
    if balanced or hr_cv < config.organized_max_hr_cv:
        return band
    return WindowClassification.HIGH_VARIABILITY


def position_factor(relative_position: float, config: HRVConfig) -> float:
    """1.0 inside the preferred central band, decaying linearly to edge_position_factor at 0 and 1."""
    lo, hi = config.preferred_position_min, config.preferred_position_max
    edge = config.edge_position_factor
    p = relative_position
    if lo <= p <= hi:
        return 1.0
    if p < lo:
        return edge + (1.0 - edge) * (p / lo) if lo > 0 else 1.0
    return edge + (1.0 - edge) * ((1.0 - p) / (1.0 - hi)) if hi < 1 else 1.0


def recovery_score(hr_stability: float, relative_position: float, config: HRVConfig) -> float:
    stability_factor = 1.0 / (1.0 + config.stability_weight * hr_stability)
    return stability_factor * position_factor(relative_position, config)


def heart_rate_profile(rr: np.ndarray, hr: np.ndarray, config: HRVConfig) -> Tuple[float, float]:
    """(mean HR, coefficient of variation) from measured HR when every beat has a plausible one, else from RR."""
    measured = plausible_sensor_hr(hr, config)
    rates = measured if len(measured) and len(measured) == len(rr) else 60000.0 / rr
    mean = float(np.mean(rates))
    cv = float(np.std(rates) / mean) if mean > 0 else 0.0
    return mean, cv


# =============================================================================
# Candidate Scan
# =============================================================================

def scan_candidates(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    region: Tuple[int, int],
    config: HRVConfig,
) -> List[WindowCandidate]:
    """Evaluate every qualifying candidate window in the region, in start order."""
    start_ms, end_ms = region
    region_length = end_ms - start_ms
    duration = config.window_duration_ms
    if region_length < duration or not len(series):
        return []

    t = series.t_ms
    artifact = artifact_mask(flags)
    clean_prefix = np.concatenate([[0], np.cumsum(~artifact)])

    grid = np.arange(start_ms, end_ms - duration + 1, config.window_step_ms)
    starts = np.searchsorted(t, grid, side='left')
    ends = np.searchsorted(t, grid + duration, side='left')

    candidates = []
    seen = set()
    for si, ei in zip(starts.tolist(), ends.tolist()):
        total = ei - si
        if total <= 0 or (si, ei) in seen:
            continue
        seen.add((si, ei))

        n_clean = int(clean_prefix[ei] - clean_prefix[si])
        if n_clean < config.min_window_clean_beats:
            continue
        if (total - n_clean) / total > config.max_window_artifact_rate:
            continue

        keep = ~artifact[si:ei]
        rr = series.rr_ms[si:ei][keep].astype(float)
        hr = series.hr[si:ei][keep]

        mean_hr, cv = heart_rate_profile(rr, hr, config)
        fractal = dfa(rr, config, long_range=False)
        alpha1 = fractal.alpha1 if fractal else None
        diffs = np.diff(rr)
        relative = min(1.0, max(0.0, (int(t[si]) - start_ms) / region_length))

        # Spectrum only matters for the balance gate of in-band candidates
        lf_hf = None
        if classify_alpha1(alpha1, config) == WindowClassification.ORGANIZED_RECOVERY:
            spectrum = compute_frequency_domain(series, flags, si, ei, config)
            lf_hf = spectrum.lf_hf_ratio if spectrum else None

        candidates.append(WindowCandidate(
            start_index=si,
            end_index=ei,
            start_ms=int(t[si]),
            end_ms=int(t[ei - 1] + series.rr_ms[ei - 1]),
            clean_beats=n_clean,
            mean_hr=mean_hr,
            hr_stability=cv,
            rmssd=float(np.sqrt(np.mean(diffs ** 2))),
            sdnn=float(np.std(rr)),
            relative_position=relative,
            classification=classify_window(alpha1, lf_hf, cv, config),
            dfa=fractal,
            lf_hf_ratio=lf_hf,
        ))

    return candidates


# =============================================================================
# Selection
# =============================================================================

def select_window(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    sleep_start_ms: Optional[int] = None,
    wake_time_ms: Optional[int] = None,
    config: Optional[HRVConfig] = None,
) -> WindowSelection:
    """
    Search for the best organized-recovery window.

    Args:
        series: Full recording
        flags: Artifact flags aligned with series
        sleep_start_ms: Optional recording-relative sleep onset
        wake_time_ms: Optional recording-relative wake time
        config: Window duration/step, thresholds and alpha1 bands

    Returns:
        WindowSelection whose window is None when no candidate is organized
    """
    cfg = config or HRVConfig()
    region = search_region(series, sleep_start_ms, wake_time_ms)
    candidates = scan_candidates(series, flags, region, cfg)

    if not candidates:
        reason = (
            f"No evaluable candidate: region {region[1] - region[0]} ms, "
            f"windows of {cfg.window_duration_ms} ms need >= {cfg.min_window_clean_beats} clean beats"
        )
        logger.info(reason)
        return WindowSelection(None, reason, region[0], region[1])

    best: Optional[WindowCandidate] = None
    best_score = -np.inf
    n_organized = 0
    for cand in candidates:
        if cand.classification != WindowClassification.ORGANIZED_RECOVERY:
            continue
        n_organized += 1
        score = recovery_score(cand.hr_stability, cand.relative_position, cfg)
        # Strict comparison keeps the earliest start on ties
        if score > best_score:
            best, best_score = cand, score

    if best is None:
        reason = (
            f"No organized-recovery window among {len(candidates)} candidates "
            f"(alpha1 outside [{cfg.organized_alpha1_min:.2f}, {cfg.organized_alpha1_max:.2f}] "
            f"or LF/HF > {cfg.organized_max_lf_hf:.1f} with HR CV >= {cfg.organized_max_hr_cv:.2f})"
        )
        logger.info(reason)
        return WindowSelection(None, reason, region[0], region[1], tuple(candidates))

    if best.alpha1 is not None:
        fractal = f"alpha1 {best.alpha1:.3f} (R2 {best.dfa.alpha1_r2:.2f})"
    else:
        fractal = "alpha1 undefined, HR CV proxy"
    reason = (
        f"Organized recovery: {fractal}, "
        f"HR CV {best.hr_stability:.4f}, position {best.relative_position:.2f}, "
        f"score {best_score:.4f}; best of {n_organized} organized / {len(candidates)} candidates"
    )
    logger.debug(reason)

    window = AnalysisWindow(
        start_index=best.start_index,
        end_index=best.end_index,
        start_ms=best.start_ms,
        end_ms=best.end_ms,
        mean_hr=best.mean_hr,
        hr_stability=best.hr_stability,
        classification=WindowClassification.ORGANIZED_RECOVERY,
        selection_reason=reason,
        dfa_alpha1=best.alpha1,
        dfa_alpha1_r2=best.dfa.alpha1_r2 if best.dfa else None,
        recovery_score=float(best_score),
        relative_position=best.relative_position,
    )
    return WindowSelection(window, reason, region[0], region[1], tuple(candidates))


def find_best_window(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    sleep_start_ms: Optional[int] = None,
    wake_time_ms: Optional[int] = None,
    config: Optional[HRVConfig] = None,
) -> Optional[AnalysisWindow]:
    """Best organized-recovery window, or None when no candidate qualifies."""
    return select_window(series, flags, sleep_start_ms, wake_time_ms, config).window


# =============================================================================
# Fallback and Peak Capacity
# =============================================================================

def fallback_window(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    selection: WindowSelection,
    config: Optional[HRVConfig] = None,
) -> AnalysisWindow:
    """
    Full-recording window used when the selector found nothing organized.

    No recovery score is assigned; classification records whether any
    candidate could be evaluated at all.
    """
    cfg = config or HRVConfig()
    keep = ~artifact_mask(flags)
    rr = series.rr_ms[keep].astype(float)
    if len(rr) == 0:
        raise InsufficientData('window', 0, 1, 'no clean beats in recording')

    mean_hr, cv = heart_rate_profile(rr, series.hr[keep], cfg)
    fractal = dfa(rr, cfg, long_range=False)

    if selection.candidates_evaluated == 0:
        classification = WindowClassification.FALLBACK_FULL_RECORDING
    else:
        classification = WindowClassification.FALLBACK_NO_QUALIFYING_WINDOW

    logger.warning(f"Using full recording ({len(series)} beats): {selection.reason}")

    return AnalysisWindow(
        start_index=0,
        end_index=len(series),
        start_ms=int(series.t_ms[0]),
        end_ms=series.end_ms,
        mean_hr=mean_hr,
        hr_stability=cv,
        classification=classification,
        selection_reason=selection.reason,
        dfa_alpha1=fractal.alpha1 if fractal else None,
        dfa_alpha1_r2=fractal.alpha1_r2 if fractal else None,
    )


def find_peak_capacity(selection: WindowSelection, config: Optional[HRVConfig] = None) -> Optional[PeakCapacity]:
    """
    Highest sustained RMSSD among the candidates of the same search region.

    A candidate whose RMSSD exceeds both neighbors by spike_ratio is an
    isolated spike (usually residual artifact) and is skipped.
    """
    cfg = config or HRVConfig()
    candidates = selection.candidates
    if not candidates:
        return None

    rmssd = np.array([c.rmssd for c in candidates])
    sustained = np.ones(len(candidates), dtype=bool)
    for i in range(1, len(candidates) - 1):
        left, right = rmssd[i - 1], rmssd[i + 1]
        if left > 0 and right > 0 and rmssd[i] >= cfg.spike_ratio * left and rmssd[i] >= cfg.spike_ratio * right:
            sustained[i] = False

    eligible = np.flatnonzero(sustained)
    peak = candidates[int(eligible[np.argmax(rmssd[eligible])])]

    return PeakCapacity(
        peak_rmssd=peak.rmssd,
        peak_sdnn=peak.sdnn,
        window_start_ms=peak.start_ms,
        window_end_ms=peak.end_ms,
        window_minutes=(peak.end_ms - peak.start_ms) / 60000.0,
        mean_hr=peak.mean_hr,
        relative_position=peak.relative_position,
    )
