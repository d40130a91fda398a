"""
Nocturnal HRV - Type Definitions

Configuration and immutable data model for HRV analysis of beat-to-beat
(RR interval) recordings.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable, Iterator, Sequence

import numpy as np
import yaml
from dotenv import load_dotenv

from .errors import InvalidInput


# =============================================================================
# Configuration
# =============================================================================

CONFIG_ENV_VAR = 'HRV_ANALYSIS_CONFIG'


def default_config_path() -> Path:
    """Config path from HRV_ANALYSIS_CONFIG (.env honoured), else config/hrv_analysis.yaml."""
    load_dotenv()
    override = os.getenv(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return Path(__file__).parent.parent.parent / 'config' / 'hrv_analysis.yaml'


def load_config_yaml(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from YAML file, return empty dict if not found."""
    config_path = Path(path) if path is not None else default_config_path()
    if config_path.exists():
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    return {}


# YAML section -> HRVConfig fields read from it
_YAML_SECTIONS: Dict[str, List[str]] = {
    'artifacts': [
        'min_rr_ms', 'max_rr_ms', 'artifact_neighbor_beats', 'ectopic_threshold',
        'extra_ratio', 'missed_ratio', 'correction_median_window',
    ],
    'window_selection': [
        'window_duration_ms', 'window_step_ms', 'min_window_clean_beats',
        'max_window_artifact_rate', 'organized_alpha1_min', 'organized_alpha1_max',
        'flexible_alpha1_min', 'organized_max_lf_hf', 'organized_max_hr_cv',
        'stability_weight', 'preferred_position_min',
        'preferred_position_max', 'edge_position_factor', 'spike_ratio',
    ],
    'time_domain': [
        'time_domain_min_beats', 'triangular_bin_ms', 'triangular_min_beats',
        'hr_window_ms', 'hr_window_min_beats', 'hr_window_step_beats',
        'hr_min_bpm', 'hr_max_bpm',
    ],
    'frequency_domain': [
        'frequency_min_beats', 'resample_hz', 'welch_segment', 'min_resampled_points',
        'vlf_band', 'lf_band', 'hf_band', 'vlf_min_duration_ms',
    ],
    'nonlinear': [
        'nonlinear_min_beats', 'entropy_m', 'entropy_r_factor', 'entropy_max_beats',
        'dfa_alpha1_min_box', 'dfa_alpha1_max_box', 'dfa_alpha2_min_box',
        'dfa_alpha2_max_box', 'dfa_alpha2_box_step', 'dfa_min_beats', 'dfa_alpha2_min_beats',
    ],
    'ans': [
        'stress_min_beats', 'stress_bin_ms', 'respiration_min_beats',
        'respiration_band_hz', 'respiration_valid_bpm',
    ],
    'verification': [
        'min_recording_minutes', 'analysis_min_beats', 'max_artifact_rate',
        'artifact_warning_rate', 'max_gap_ms', 'drift_warning_ms', 'ectopy_warning_rate',
        'ectopy_warning_count', 'out_of_range_warning_rate',
    ],
    'trends': [
        'baseline_window_days', 'baseline_min_samples',
    ],
}


@dataclass
class HRVConfig:
    """Configuration for artifact rejection, window selection and HRV metrics.

    Loads from config/hrv_analysis.yaml if available, else uses defaults.
    """

    # Artifacts
    min_rr_ms: int = 300  # Physiologic lower bound (200 bpm)
    max_rr_ms: int = 2000  # Physiologic upper bound (30 bpm)
    artifact_neighbor_beats: int = 5  # Neighbors per side for the local median
    ectopic_threshold: float = 0.20  # Relative deviation from local median
    extra_ratio: float = 0.5  # Below this fraction of median = extra beat
    missed_ratio: float = 1.5  # Above this multiple of median = missed beat
    correction_median_window: int = 11  # Beats in median-replacement window

    # Window selection
    window_duration_ms: int = 300_000  # 5 minute candidate windows
    window_step_ms: int = 30_000  # Slide 30 seconds per step
    min_window_clean_beats: int = 120  # Skip candidates with fewer clean beats (5 min at 24 bpm)
    max_window_artifact_rate: float = 0.15  # Skip candidates noisier than this
    organized_alpha1_min: float = 0.75  # Organized recovery band (inclusive)
    organized_alpha1_max: float = 1.0
    flexible_alpha1_min: float = 0.60  # Flexible/unconsolidated band lower edge
    organized_max_lf_hf: float = 1.5  # In-band alpha1 is organized only if LF/HF <= this
    organized_max_hr_cv: float = 0.08  # or HR CV below this; also the proxy when alpha1 is undefined
    stability_weight: float = 10.0  # Penalty per unit HR coefficient of variation
    preferred_position_min: float = 0.30  # Central band of the search region
    preferred_position_max: float = 0.70
    edge_position_factor: float = 0.5  # Position factor at the region edges
    spike_ratio: float = 1.5  # Peak capacity: isolated spike if > both neighbors by this

    # Time domain
    time_domain_min_beats: int = 30
    triangular_bin_ms: float = 7.8125  # 1/128 s, Task Force convention
    triangular_min_beats: int = 20
    hr_window_ms: int = 10_000  # Rolling HR window
    hr_window_min_beats: int = 5
    hr_window_step_beats: int = 5
    hr_min_bpm: float = 30.0
    hr_max_bpm: float = 200.0

    # Frequency domain
    frequency_min_beats: int = 120
    resample_hz: float = 4.0
    welch_segment: int = 256  # 50% overlap, Hann window
    min_resampled_points: int = 64
    vlf_band: Sequence[float] = (0.003, 0.04)
    lf_band: Sequence[float] = (0.04, 0.15)
    hf_band: Sequence[float] = (0.15, 0.40)  # Upper edge inclusive
    vlf_min_duration_ms: int = 600_000  # VLF needs >= 10 minutes

    # Nonlinear
    nonlinear_min_beats: int = 100
    entropy_m: int = 2
    entropy_r_factor: float = 0.2  # Tolerance = factor * SD
    entropy_max_beats: int = 2000  # Entropy is O(N^2); central span beyond this
    dfa_alpha1_min_box: int = 4
    dfa_alpha1_max_box: int = 16
    dfa_alpha2_min_box: int = 16
    dfa_alpha2_max_box: int = 64
    dfa_alpha2_box_step: int = 2
    dfa_min_beats: int = 64
    dfa_alpha2_min_beats: int = 256

    # ANS indices
    stress_min_beats: int = 20
    stress_bin_ms: float = 50.0  # Baevsky histogram bin
    respiration_min_beats: int = 60
    respiration_band_hz: Sequence[float] = (0.15, 0.5)
    respiration_valid_bpm: Sequence[float] = (6.0, 40.0)

    # Verification
    min_recording_minutes: float = 5.0
    analysis_min_beats: int = 300
    max_artifact_rate: float = 0.15
    artifact_warning_rate: float = 0.05
    max_gap_ms: int = 60_000  # Sensor dropout longer than this rejects the recording
    drift_warning_ms: float = 200.0  # Mean RR shift, first vs last tenth (electrode movement)
    ectopy_warning_rate: float = 0.10
    ectopy_warning_count: int = 100
    out_of_range_warning_rate: float = 0.05

    # Trends
    baseline_window_days: int = 7
    baseline_min_samples: int = 3

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> 'HRVConfig':
        """Load config from YAML file, falling back to defaults per field."""
        yaml_config = load_config_yaml(path)
        known = {f.name for f in fields(cls)}

        kwargs = {}
        for section, names in _YAML_SECTIONS.items():
            values = yaml_config.get(section) or {}
            for name in names:
                if name in values and name in known:
                    value = values[name]
                    kwargs[name] = tuple(value) if isinstance(value, list) else value

        return cls(**kwargs)


# =============================================================================
# RR Series
# =============================================================================

def _as_int_array(values: Iterable[float], name: str) -> np.ndarray:
    arr = np.array(values if isinstance(values, np.ndarray) else list(values), dtype=float)
    if arr.ndim != 1:
        raise InvalidInput(f"{name} must be 1-D (got shape {arr.shape})")
    if not np.all(np.isfinite(arr)):
        raise InvalidInput(f"{name} contains non-finite values")
    return np.rint(arr).astype(np.int64)


@dataclass(frozen=True)
class RRPoint:
    """Single beat: recording-relative start time, interval, optional measured HR."""
    t_ms: int
    rr_ms: int
    hr: Optional[float] = None

    @property
    def end_ms(self) -> int:
        return self.t_ms + self.rr_ms


class RRSeries:
    """
    Ordered, immutable beat-to-beat series anchored at an absolute start date.

    Stored as read-only columnar arrays so analysis windows can be expressed
    as index ranges over one shared buffer.
    """

    __slots__ = ('_t_ms', '_rr_ms', '_hr', '_start_date')

    def __init__(
        self,
        t_ms: Iterable[int],
        rr_ms: Iterable[int],
        start_date: datetime,
        hr: Optional[Iterable[Optional[float]]] = None,
    ):
        t = _as_int_array(t_ms, 't_ms')
        rr = _as_int_array(rr_ms, 'rr_ms')

        if len(t) != len(rr):
            raise InvalidInput(f"t_ms and rr_ms must be 1-D of equal length (got {t.shape}, {rr.shape})")

        if hr is None:
            h = np.full(len(t), np.nan)
        else:
            h = np.array([np.nan if v is None else v for v in hr], dtype=float)
            if len(h) != len(t):
                raise InvalidInput(f"hr length {len(h)} does not match series length {len(t)}")
            h[~np.isfinite(h)] = np.nan

        if len(t) > 1:
            decreasing = np.flatnonzero(np.diff(t) < 0)
            if len(decreasing):
                i = int(decreasing[0]) + 1
                raise InvalidInput(f"t_ms not monotonic at index {i}: {t[i - 1]} -> {t[i]}")

        for arr in (t, rr, h):
            arr.setflags(write=False)

        self._t_ms = t
        self._rr_ms = rr
        self._hr = h
        self._start_date = start_date

    @classmethod
    def from_points(cls, points: Iterable[RRPoint], start_date: datetime) -> 'RRSeries':
        points = list(points)
        return cls(
            t_ms=[p.t_ms for p in points],
            rr_ms=[p.rr_ms for p in points],
            hr=[p.hr for p in points],
            start_date=start_date,
        )

    @classmethod
    def from_rr(
        cls,
        rr_values: Iterable[float],
        start_date: datetime,
        hr: Optional[Iterable[Optional[float]]] = None,
    ) -> 'RRSeries':
        """Build a series from consecutive intervals; each beat starts where the last ended."""
        rr = np.asarray(list(rr_values), dtype=float)
        if not np.all(np.isfinite(rr)):
            raise InvalidInput("rr values must be finite")
        rr = np.rint(rr).astype(np.int64)
        t = np.concatenate([[0], np.cumsum(rr)[:-1]]) if len(rr) else np.array([], dtype=np.int64)
        return cls(t_ms=t, rr_ms=rr, start_date=start_date, hr=hr)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def t_ms(self) -> np.ndarray:
        return self._t_ms

    @property
    def rr_ms(self) -> np.ndarray:
        return self._rr_ms

    @property
    def hr(self) -> np.ndarray:
        """Measured HR per beat, NaN where the sensor gave none."""
        return self._hr

    @property
    def start_date(self) -> datetime:
        return self._start_date

    @property
    def has_hr(self) -> bool:
        return bool(np.any(np.isfinite(self._hr)))

    @property
    def points(self) -> List[RRPoint]:
        return list(iter(self))

    @property
    def end_ms(self) -> int:
        if not len(self):
            return 0
        return int(self._t_ms[-1] + self._rr_ms[-1])

    @property
    def duration_ms(self) -> int:
        if not len(self):
            return 0
        return self.end_ms - int(self._t_ms[0])

    def absolute_time(self, offset_ms: float) -> datetime:
        """Map a recording-relative offset to wall-clock time."""
        return self._start_date + timedelta(milliseconds=float(offset_ms))

    def __len__(self) -> int:
        return len(self._t_ms)

    def __iter__(self) -> Iterator[RRPoint]:
        for t, rr, h in zip(self._t_ms, self._rr_ms, self._hr):
            yield RRPoint(int(t), int(rr), None if np.isnan(h) else float(h))

    def __getitem__(self, index: int) -> RRPoint:
        h = self._hr[index]
        return RRPoint(int(self._t_ms[index]), int(self._rr_ms[index]), None if np.isnan(h) else float(h))

    def __repr__(self) -> str:
        return f"RRSeries(beats={len(self)}, duration_ms={self.duration_ms}, start_date={self._start_date!r})"


# =============================================================================
# Artifacts
# =============================================================================

class ArtifactType(str, Enum):
    TECHNICAL = 'technical'  # Outside physiologic bounds
    ECTOPIC = 'ectopic'  # Premature/delayed beat
    MISSED = 'missed'  # Undetected beat, interval roughly doubled
    EXTRA = 'extra'  # Spurious detection, interval split


@dataclass(frozen=True)
class ArtifactFlag:
    is_artifact: bool
    type: Optional[ArtifactType] = None
    confidence: float = 0.0


CLEAN = ArtifactFlag(is_artifact=False)


# =============================================================================
# Analysis Window
# =============================================================================

class WindowClassification(str, Enum):
    ORGANIZED_RECOVERY = 'organized_recovery'
    FLEXIBLE_UNCONSOLIDATED = 'flexible_unconsolidated'
    HIGH_VARIABILITY = 'high_variability'
    INSUFFICIENT = 'insufficient'
    FALLBACK_FULL_RECORDING = 'fallback_full_recording'
    FALLBACK_NO_QUALIFYING_WINDOW = 'fallback_no_qualifying_window'


@dataclass(frozen=True)
class AnalysisWindow:
    """Half-open [start_index, end_index) range into an RRSeries plus selection metadata."""
    start_index: int
    end_index: int
    start_ms: int
    end_ms: int
    mean_hr: float
    hr_stability: float  # Coefficient of variation of HR, lower = steadier
    classification: WindowClassification
    selection_reason: str
    dfa_alpha1: Optional[float] = None
    dfa_alpha1_r2: Optional[float] = None
    recovery_score: Optional[float] = None
    relative_position: Optional[float] = None

    @property
    def is_organized_recovery(self) -> bool:
        return self.classification == WindowClassification.ORGANIZED_RECOVERY

    @property
    def beat_count(self) -> int:
        return self.end_index - self.start_index

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


# =============================================================================
# Metric Records
# =============================================================================

@dataclass(frozen=True)
class DFAResult:
    alpha1: Optional[float]
    alpha1_r2: Optional[float]
    alpha2: Optional[float] = None
    alpha2_r2: Optional[float] = None


@dataclass(frozen=True)
class TimeDomainMetrics:
    mean_rr: float  # ms
    sdnn: float  # ms, population SD
    rmssd: float  # ms
    sdsd: float  # ms
    pnn50: float  # percent of successive differences > 50 ms
    mean_hr: float  # bpm
    sd_hr: float
    min_hr: float
    max_hr: float
    beat_count: int
    triangular_index: Optional[float] = None


@dataclass(frozen=True)
class FrequencyDomainMetrics:
    lf: float  # ms^2
    hf: float  # ms^2
    total_power: float
    vlf: Optional[float] = None  # Only for windows >= 10 minutes
    lf_hf_ratio: Optional[float] = None
    lf_nu: Optional[float] = None
    hf_nu: Optional[float] = None
    lf_peak_hz: Optional[float] = None
    hf_peak_hz: Optional[float] = None


@dataclass(frozen=True)
class NonlinearMetrics:
    sd1: float
    sd2: float
    sd1_sd2_ratio: Optional[float] = None
    sample_entropy: Optional[float] = None
    approximate_entropy: Optional[float] = None
    dfa_alpha1: Optional[float] = None
    dfa_alpha2: Optional[float] = None
    dfa_alpha1_r2: Optional[float] = None


@dataclass(frozen=True)
class ANSMetrics:
    stress_index: Optional[float] = None
    respiration_rate: Optional[float] = None  # breaths/min
    pns_index: Optional[float] = None
    sns_index: Optional[float] = None
    readiness_score: Optional[float] = None  # 1-10


@dataclass(frozen=True)
class PeakCapacity:
    """Highest sustained RMSSD window in the same search region as the analysis window."""
    peak_rmssd: float
    peak_sdnn: float
    window_start_ms: int
    window_end_ms: int
    window_minutes: float
    mean_hr: float
    relative_position: Optional[float] = None
