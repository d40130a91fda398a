"""
Nocturnal HRV - Analysis Result

HRVAnalysisResult is the terminal, immutable record of one analysis run.
It is assembled through AnalysisResultBuilder so no partially populated
result is ever visible, and round-trips losslessly through JSON.

Usage:
    builder = AnalysisResultBuilder(series, analysis_date=now)
    builder.with_window(window).with_artifacts(flags).with_time_domain(td)
    builder.with_frequency_domain(fd)  # None marks the group unavailable
    result = builder.build()

    restored = HRVAnalysisResult.from_json(result.to_json())
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np

from .artifacts import artifact_mask
from .types import (
    ANSMetrics,
    AnalysisWindow,
    ArtifactFlag,
    FrequencyDomainMetrics,
    NonlinearMetrics,
    PeakCapacity,
    RRSeries,
    TimeDomainMetrics,
    WindowClassification,
)

SCHEMA_VERSION = 1

# Reason codes for absent metric groups
INSUFFICIENT_DATA = 'insufficient_data'
NOT_COMPUTED = 'not_computed'


@dataclass(frozen=True)
class HRVAnalysisResult:
    window_start: datetime
    window_end: datetime
    window: AnalysisWindow
    time_domain: TimeDomainMetrics
    ans_metrics: ANSMetrics
    artifact_percentage: float  # percent of window beats flagged
    clean_beat_count: int
    analysis_date: datetime
    frequency_domain: Optional[FrequencyDomainMetrics] = None
    nonlinear: Optional[NonlinearMetrics] = None
    peak_capacity: Optional[PeakCapacity] = None
    unavailable: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}), hash=False)

    @property
    def is_organized_recovery(self) -> bool:
        return self.window.is_organized_recovery

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        window = asdict(self.window)
        window['classification'] = self.window.classification.value
        return {
            'schema_version': SCHEMA_VERSION,
            'window_start': self.window_start.isoformat(),
            'window_end': self.window_end.isoformat(),
            'analysis_date': self.analysis_date.isoformat(),
            'window': window,
            'time_domain': asdict(self.time_domain),
            'frequency_domain': asdict(self.frequency_domain) if self.frequency_domain else None,
            'nonlinear': asdict(self.nonlinear) if self.nonlinear else None,
            'ans_metrics': asdict(self.ans_metrics),
            'peak_capacity': asdict(self.peak_capacity) if self.peak_capacity else None,
            'artifact_percentage': self.artifact_percentage,
            'clean_beat_count': self.clean_beat_count,
            'unavailable': dict(self.unavailable),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'HRVAnalysisResult':
        version = data.get('schema_version', SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise ValueError(f"Unsupported result schema version {version}")

        window = dict(data['window'])
        window['classification'] = WindowClassification(window['classification'])

        def optional(record_type, key):
            value = data.get(key)
            return record_type(**value) if value is not None else None

        return cls(
            window_start=datetime.fromisoformat(data['window_start']),
            window_end=datetime.fromisoformat(data['window_end']),
            analysis_date=datetime.fromisoformat(data['analysis_date']),
            window=AnalysisWindow(**window),
            time_domain=TimeDomainMetrics(**data['time_domain']),
            frequency_domain=optional(FrequencyDomainMetrics, 'frequency_domain'),
            nonlinear=optional(NonlinearMetrics, 'nonlinear'),
            ans_metrics=ANSMetrics(**data['ans_metrics']),
            peak_capacity=optional(PeakCapacity, 'peak_capacity'),
            artifact_percentage=float(data['artifact_percentage']),
            clean_beat_count=int(data['clean_beat_count']),
            unavailable=MappingProxyType(dict(data.get('unavailable') or {})),
        )

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_json(cls, text: str) -> 'HRVAnalysisResult':
        return cls.from_dict(json.loads(text))


class AnalysisResultBuilder:
    """
    Append-only accumulator for one HRVAnalysisResult.

    Each part can be supplied once; build() seals the builder.
    """

    def __init__(self, series: RRSeries, analysis_date: Optional[datetime] = None):
        self._series = series
        self._analysis_date = analysis_date
        self._parts: Dict[str, Any] = {}
        self._unavailable: Dict[str, str] = {}
        self._sealed = False

    def _put(self, name: str, value: Any) -> 'AnalysisResultBuilder':
        if self._sealed:
            raise ValueError("Result already built")
        if name in self._parts:
            raise ValueError(f"{name} already set")
        self._parts[name] = value
        return self

    def mark_unavailable(self, group: str, reason: str) -> 'AnalysisResultBuilder':
        if self._sealed:
            raise ValueError("Result already built")
        if group in self._unavailable:
            raise ValueError(f"{group} already marked unavailable")
        self._unavailable[group] = reason
        return self

    def _put_optional(self, name: str, value: Any) -> 'AnalysisResultBuilder':
        self._put(name, value)
        if value is None and name not in self._unavailable:
            self.mark_unavailable(name, INSUFFICIENT_DATA)
        return self

    def with_window(self, window: AnalysisWindow) -> 'AnalysisResultBuilder':
        return self._put('window', window)

    def with_artifacts(self, flags: Sequence[ArtifactFlag]) -> 'AnalysisResultBuilder':
        if len(flags) != len(self._series):
            raise ValueError(f"{len(flags)} flags for {len(self._series)} beats")
        return self._put('flags', flags)

    def with_time_domain(self, metrics: TimeDomainMetrics) -> 'AnalysisResultBuilder':
        return self._put('time_domain', metrics)

    def with_frequency_domain(self, metrics: Optional[FrequencyDomainMetrics]) -> 'AnalysisResultBuilder':
        return self._put_optional('frequency_domain', metrics)

    def with_nonlinear(self, metrics: Optional[NonlinearMetrics]) -> 'AnalysisResultBuilder':
        return self._put_optional('nonlinear', metrics)

    def with_ans(self, metrics: ANSMetrics) -> 'AnalysisResultBuilder':
        return self._put('ans_metrics', metrics)

    def with_peak_capacity(self, peak: Optional[PeakCapacity]) -> 'AnalysisResultBuilder':
        return self._put_optional('peak_capacity', peak)

    def build(self) -> HRVAnalysisResult:
        if self._sealed:
            raise ValueError("Result already built")
        for required in ('window', 'flags', 'time_domain'):
            if required not in self._parts:
                raise ValueError(f"Cannot build result without {required}")

        window: AnalysisWindow = self._parts['window']
        mask = artifact_mask(self._parts['flags'], window.start_index, window.end_index)
        n_window = len(mask)
        n_flagged = int(np.count_nonzero(mask))

        for group in ('frequency_domain', 'nonlinear', 'peak_capacity'):
            if group not in self._parts and group not in self._unavailable:
                self._unavailable[group] = NOT_COMPUTED

        result = HRVAnalysisResult(
            window_start=self._series.absolute_time(window.start_ms),
            window_end=self._series.absolute_time(window.end_ms),
            window=window,
            time_domain=self._parts['time_domain'],
            ans_metrics=self._parts.get('ans_metrics') or ANSMetrics(),
            artifact_percentage=n_flagged / n_window * 100.0 if n_window else 0.0,
            clean_beat_count=n_window - n_flagged,
            analysis_date=self._analysis_date or datetime.now(timezone.utc),
            frequency_domain=self._parts.get('frequency_domain'),
            nonlinear=self._parts.get('nonlinear'),
            peak_capacity=self._parts.get('peak_capacity'),
            unavailable=MappingProxyType(dict(self._unavailable)),
        )
        self._sealed = True
        return result
