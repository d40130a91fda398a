"""
Nocturnal HRV - Analysis Pipeline

Runs one recording through artifact detection, verification, window
selection and every metric engine, then assembles an immutable result.
Batches of independent sessions run sequentially (cooperative yield after
each) or on a thread pool; results are identical either way.

Usage:
    from nocturnal_hrv import analyze_session, analyze_sessions, SessionInput

    result = analyze_session(series, sleep_start_ms=sleep_ms, wake_time_ms=wake_ms)

    outcomes = analyze_sessions(
        [SessionInput('2026-01-01', series)],
        max_workers=4,
        show_progress=True,
    )
    summary = outcomes_to_frame(outcomes)
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional

import pandas as pd
from tqdm import tqdm

from .ans import compute_ans_metrics
from .artifacts import clean_beats, detect_artifacts
from .errors import AnalysisError, AnalysisTimeout, InsufficientData
from .frequency import compute_frequency_domain
from .nonlinear import compute_nonlinear
from .result import AnalysisResultBuilder, HRVAnalysisResult
from .time_domain import compute_time_domain
from .types import HRVConfig, RRSeries
from .verification import verify_series
from .window import fallback_window, find_peak_capacity, select_window

logger = logging.getLogger(__name__)


# =============================================================================
# Single Session
# =============================================================================

class StageBudget:
    """Wall-clock budget checked between pipeline stages."""

    def __init__(self, seconds: Optional[float]):
        self.seconds = seconds
        self.started = time.monotonic()

    def check(self, stage: str):
        if self.seconds is None:
            return
        elapsed = time.monotonic() - self.started
        if elapsed >= self.seconds:
            raise AnalysisTimeout(stage, elapsed, self.seconds)


def analyze_session(
    series: RRSeries,
    sleep_start_ms: Optional[int] = None,
    wake_time_ms: Optional[int] = None,
    config: Optional[HRVConfig] = None,
    budget_seconds: Optional[float] = None,
    analysis_date: Optional[datetime] = None,
    baseline_rmssd: Optional[float] = None,
) -> HRVAnalysisResult:
    """
    Full HRV analysis of one recording.

    Args:
        series: Recording to analyze
        sleep_start_ms: Optional sleep onset (recording-relative)
        wake_time_ms: Optional wake time (recording-relative)
        config: Analysis thresholds (defaults if None)
        budget_seconds: Raise AnalysisTimeout if exceeded between stages
        analysis_date: Timestamp stamped on the result (now if None)
        baseline_rmssd: Personal RMSSD baseline for the readiness score

    Returns:
        HRVAnalysisResult; absent metric groups are listed in result.unavailable

    Raises:
        InvalidInput: Empty recording or sensor dropouts
        InsufficientData: Too short/sparse/noisy, or too few clean beats for time domain
        AnalysisTimeout: budget_seconds exceeded
    """
    cfg = config or HRVConfig()
    budget = StageBudget(budget_seconds)

    budget.check('artifact_detection')
    flags = detect_artifacts(series, cfg)

    budget.check('verification')
    verification = verify_series(series, flags, cfg)
    verification.raise_for_errors()

    budget.check('window_selection')
    selection = select_window(series, flags, sleep_start_ms, wake_time_ms, cfg)
    window = selection.window or fallback_window(series, flags, selection, cfg)

    budget.check('time_domain')
    time_domain = compute_time_domain(series, flags, window.start_index, window.end_index, cfg)
    if time_domain is None:
        _, rr, _ = clean_beats(series, flags, window.start_index, window.end_index)
        raise InsufficientData('time_domain', len(rr), cfg.time_domain_min_beats)

    builder = (
        AnalysisResultBuilder(series, analysis_date)
        .with_window(window)
        .with_artifacts(flags)
        .with_time_domain(time_domain)
    )

    budget.check('frequency_domain')
    builder.with_frequency_domain(
        compute_frequency_domain(series, flags, window.start_index, window.end_index, cfg)
    )

    budget.check('nonlinear')
    nonlinear = compute_nonlinear(series, flags, window.start_index, window.end_index, cfg)
    builder.with_nonlinear(nonlinear)

    budget.check('ans')
    _, rr, _ = clean_beats(series, flags, window.start_index, window.end_index)
    builder.with_ans(compute_ans_metrics(rr, time_domain, nonlinear, cfg, baseline_rmssd))
    builder.with_peak_capacity(find_peak_capacity(selection, cfg))

    result = builder.build()
    logger.info(
        f"Analyzed {len(series)} beats: {window.classification.value} window "
        f"[{window.start_index}, {window.end_index}), RMSSD {time_domain.rmssd:.1f} ms, "
        f"artifacts {result.artifact_percentage:.1f}%"
    )
    return result


# =============================================================================
# Batch
# =============================================================================

@dataclass(frozen=True)
class SessionInput:
    session_id: str
    series: RRSeries
    sleep_start_ms: Optional[int] = None
    wake_time_ms: Optional[int] = None


@dataclass(frozen=True)
class SessionOutcome:
    session_id: str
    result: Optional[HRVAnalysisResult] = None
    error: Optional[AnalysisError] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.result is not None


def _run_session(
    session: SessionInput,
    config: HRVConfig,
    cancel_event: Optional[threading.Event],
    budget_seconds: Optional[float],
    analysis_date: Optional[datetime],
) -> SessionOutcome:
    if cancel_event is not None and cancel_event.is_set():
        return SessionOutcome(session.session_id, cancelled=True)
    try:
        result = analyze_session(
            session.series,
            sleep_start_ms=session.sleep_start_ms,
            wake_time_ms=session.wake_time_ms,
            config=config,
            budget_seconds=budget_seconds,
            analysis_date=analysis_date,
        )
        return SessionOutcome(session.session_id, result=result)
    except AnalysisError as e:
        logger.warning(f"Session {session.session_id}: {type(e).__name__}: {e}")
        return SessionOutcome(session.session_id, error=e)


def analyze_sessions(
    sessions: Iterable[SessionInput],
    config: Optional[HRVConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    max_workers: int = 1,
    show_progress: bool = False,
    budget_seconds: Optional[float] = None,
    analysis_date: Optional[datetime] = None,
    on_session_complete: Optional[Callable[[SessionOutcome], None]] = None,
) -> List[SessionOutcome]:
    """
    Analyze many independent sessions.

    Sequential by default, yielding after each session. Setting cancel_event
    stops the batch before the next session starts; sessions already running
    finish. With max_workers > 1 sessions run on a thread pool.

    Args:
        sessions: Sessions to analyze
        config: Shared analysis config
        cancel_event: Set to cancel remaining sessions
        max_workers: Thread pool size (1 = sequential)
        show_progress: Show a tqdm progress bar
        budget_seconds: Per-session time budget
        analysis_date: Timestamp stamped on every result
        on_session_complete: Called with each finished outcome

    Returns:
        One SessionOutcome per input, in input order
    """
    cfg = config or HRVConfig()
    sessions = list(sessions)
    outcomes: List[Optional[SessionOutcome]] = [None] * len(sessions)

    if max_workers <= 1:
        for i, session in enumerate(tqdm(sessions, desc='Analyzing sessions', disable=not show_progress)):
            outcome = _run_session(session, cfg, cancel_event, budget_seconds, analysis_date)
            if outcome.cancelled and (i == 0 or not outcomes[i - 1].cancelled):
                logger.info(f"Batch cancelled before session {session.session_id}")
            outcomes[i] = outcome
            if on_session_complete is not None and not outcome.cancelled:
                on_session_complete(outcome)
            # Cooperative yield so a host thread is never starved
            time.sleep(0)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(_run_session, session, cfg, cancel_event, budget_seconds, analysis_date): i
                for i, session in enumerate(sessions)
            }
            with tqdm(total=len(sessions), desc='Analyzing sessions', disable=not show_progress) as pbar:
                for future in as_completed(futures):
                    outcome = future.result()
                    outcomes[futures[future]] = outcome
                    if on_session_complete is not None and not outcome.cancelled:
                        on_session_complete(outcome)
                    pbar.update(1)

    done = [o for o in outcomes if o is not None]
    n_ok = sum(1 for o in done if o.ok)
    n_cancelled = sum(1 for o in done if o.cancelled)
    logger.info(f"Batch complete: {n_ok} analyzed, {len(done) - n_ok - n_cancelled} failed, {n_cancelled} cancelled")
    return done


def outcomes_to_frame(outcomes: Iterable[SessionOutcome]) -> pd.DataFrame:
    """One summary row per session."""
    rows = []
    for o in outcomes:
        row = {'session_id': o.session_id}
        if o.result is not None:
            r = o.result
            row.update({
                'status': 'ok',
                'classification': r.window.classification.value,
                'window_start': r.window_start,
                'window_end': r.window_end,
                'rmssd': r.time_domain.rmssd,
                'sdnn': r.time_domain.sdnn,
                'mean_hr': r.time_domain.mean_hr,
                'lf_hf_ratio': r.frequency_domain.lf_hf_ratio if r.frequency_domain else None,
                'dfa_alpha1': r.nonlinear.dfa_alpha1 if r.nonlinear else None,
                'stress_index': r.ans_metrics.stress_index,
                'respiration_rate': r.ans_metrics.respiration_rate,
                'readiness_score': r.ans_metrics.readiness_score,
                'artifact_percentage': r.artifact_percentage,
            })
        elif o.cancelled:
            row['status'] = 'cancelled'
        else:
            row.update({'status': 'error', 'error': f"{type(o.error).__name__}: {o.error}"})
        rows.append(row)
    return pd.DataFrame(rows)
