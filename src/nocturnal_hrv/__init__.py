"""
Nocturnal HRV Analysis Package

Heart-rate-variability analysis of beat-to-beat (RR interval) recordings:
artifact rejection, organized-recovery window selection, time/frequency/
nonlinear metrics and autonomic indices, assembled into one immutable,
JSON-serializable result.

Usage:
    from nocturnal_hrv import RRSeries, HRVConfig, analyze_session

    series = RRSeries.from_rr(rr_values, start_date=recording_start)
    result = analyze_session(series, config=HRVConfig.from_yaml())

Public API:
    - analyze_session / analyze_sessions: Single and batch pipelines
    - detect_artifacts, find_best_window: Pipeline stages
    - compute_time_domain, compute_frequency_domain, compute_nonlinear: Metric engines
    - HRVAnalysisResult: Result record (to_json / from_json)
"""

from .types import (
    HRVConfig,
    RRPoint,
    RRSeries,
    ArtifactFlag,
    ArtifactType,
    AnalysisWindow,
    WindowClassification,
    TimeDomainMetrics,
    FrequencyDomainMetrics,
    NonlinearMetrics,
    ANSMetrics,
    PeakCapacity,
    DFAResult,
)
from .errors import AnalysisError, InsufficientData, InvalidInput, NoQualifyingWindow, AnalysisTimeout
from .artifacts import detect_artifacts, correct_artifacts, artifact_percentage, CorrectionMethod
from .dfa import dfa
from .window import find_best_window, select_window, fallback_window, find_peak_capacity, WindowSelection
from .time_domain import compute_time_domain
from .frequency import compute_frequency_domain
from .nonlinear import compute_nonlinear
from .ans import compute_stress_index, compute_respiration_rate, compute_ans_metrics
from .verification import verify_series, VerificationResult, RejectionReason
from .result import HRVAnalysisResult, AnalysisResultBuilder
from .pipeline import analyze_session, analyze_sessions, outcomes_to_frame, SessionInput, SessionOutcome

__all__ = [
    # Primary API
    'analyze_session',
    'analyze_sessions',
    'outcomes_to_frame',
    'SessionInput',
    'SessionOutcome',
    # Stages
    'detect_artifacts',
    'correct_artifacts',
    'artifact_percentage',
    'CorrectionMethod',
    'verify_series',
    'VerificationResult',
    'RejectionReason',
    'find_best_window',
    'select_window',
    'fallback_window',
    'find_peak_capacity',
    'WindowSelection',
    'dfa',
    'compute_time_domain',
    'compute_frequency_domain',
    'compute_nonlinear',
    'compute_stress_index',
    'compute_respiration_rate',
    'compute_ans_metrics',
    # Types
    'HRVConfig',
    'RRPoint',
    'RRSeries',
    'ArtifactFlag',
    'ArtifactType',
    'AnalysisWindow',
    'WindowClassification',
    'TimeDomainMetrics',
    'FrequencyDomainMetrics',
    'NonlinearMetrics',
    'ANSMetrics',
    'PeakCapacity',
    'DFAResult',
    'HRVAnalysisResult',
    'AnalysisResultBuilder',
    # Errors
    'AnalysisError',
    'InsufficientData',
    'InvalidInput',
    'NoQualifyingWindow',
    'AnalysisTimeout',
]
