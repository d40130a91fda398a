from datetime import timedelta

import numpy as np
import pandas as pd
import pytest

from nocturnal_hrv import (
    AnalysisResultBuilder,
    AnalysisWindow,
    RRSeries,
    TimeDomainMetrics,
    WindowClassification,
    detect_artifacts,
)
from nocturnal_hrv.trends import (
    DeviationInterpretation,
    baseline_deviation,
    compute_ewma_with_gaps,
    detect_cusum_alerts,
    detect_ewma_alerts,
    interpret_deviation,
    results_to_nightly_frame,
    rolling_baseline,
    smallest_detectable_difference,
)
from synthetic import START


@pytest.fixture
def decline():
    """Two steady weeks at 45 ms, then a week at 30 ms."""
    ts = pd.date_range('2026-01-01', periods=21, freq='D')
    x = np.array([45.0] * 14 + [30.0] * 7)
    return ts, x


def test_ewma_flags_decline(decline):
    ts, x = decline
    z, alerts = detect_ewma_alerts(ts, x, baseline=45.0, sdd=5.0)

    assert z.iloc[13] == pytest.approx(45.0)
    assert z.iloc[14] == pytest.approx(42.0)
    assert [a.level for a in alerts] == ['warning'] * 3 + ['action'] * 3
    assert alerts[0].timestamp == ts[15]
    assert all(a.detector == 'ewma' for a in alerts)


def test_ewma_resets_after_gap():
    ts = pd.DatetimeIndex(['2026-01-01', '2026-01-02', '2026-01-08'])
    z = compute_ewma_with_gaps(ts, np.array([30.0, 30.0, 30.0]), lam=0.5, max_gap_days=3, baseline=50.0)
    assert z.tolist() == pytest.approx([40.0, 35.0, 40.0])


def test_ewma_needs_min_nights(decline):
    ts, x = decline
    _, alerts = detect_ewma_alerts(ts[14:], x[14:], baseline=45.0, sdd=5.0, min_nights=5)
    assert alerts[0].timestamp == ts[18]


def test_cusum_flags_persistent_drop(decline):
    ts, x = decline
    s, alerts = detect_cusum_alerts(ts, x, baseline=45.0, sdd=5.0)

    assert s.iloc[:14].eq(0.0).all()
    assert [a.timestamp for a in alerts] == [ts[15], ts[17], ts[19]]
    assert all(a.level == 'action' for a in alerts)


def test_cusum_quiet_on_stable_nights():
    ts = pd.date_range('2026-01-01', periods=14, freq='D')
    _, alerts = detect_cusum_alerts(ts, np.full(14, 44.0), baseline=45.0, sdd=5.0)
    assert alerts == []


def test_rolling_baseline_uses_prior_nights():
    ts = pd.date_range('2026-01-01', periods=10, freq='D')
    values = pd.Series(np.arange(1.0, 11.0), index=ts)
    baseline = rolling_baseline(values)

    assert baseline.iloc[:3].isna().all()
    assert baseline.iloc[3] == pytest.approx(2.0)
    assert baseline.iloc[7] == pytest.approx(4.0)
    assert baseline.iloc[9] == pytest.approx(6.0)


def test_rolling_baseline_window_from_config(config):
    config.baseline_window_days = 2
    config.baseline_min_samples = 1
    ts = pd.date_range('2026-01-01', periods=5, freq='D')
    baseline = rolling_baseline(pd.Series([10.0, 20.0, 30.0, 40.0, 50.0], index=ts), config)
    assert np.isnan(baseline.iloc[0])
    assert baseline.iloc[1:].tolist() == pytest.approx([10.0, 15.0, 25.0, 35.0])


@pytest.mark.parametrize('deviation, expected', [
    (-25.0, DeviationInterpretation.SIGNIFICANTLY_BELOW),
    (-15.0, DeviationInterpretation.BELOW),
    (0.0, DeviationInterpretation.WITHIN_NORMAL),
    (15.0, DeviationInterpretation.ABOVE),
    (25.0, DeviationInterpretation.SIGNIFICANTLY_ABOVE),
    (None, DeviationInterpretation.INSUFFICIENT),
])
def test_interpret_deviation(deviation, expected):
    assert interpret_deviation(deviation) == expected


def test_baseline_deviation():
    assert baseline_deviation(40.0, 50.0) == pytest.approx(-20.0)
    assert baseline_deviation(40.0, None) is None
    assert baseline_deviation(40.0, float('nan')) is None
    assert interpret_deviation(baseline_deviation(40.0, 50.0)) == DeviationInterpretation.BELOW


def test_smallest_detectable_difference():
    values = [40.0, 42.0, 40.0, 42.0, 40.0]
    expected = 2.77 * np.std([2.0, -2.0, 2.0, -2.0], ddof=1) / np.sqrt(2)
    assert smallest_detectable_difference(values) == pytest.approx(expected)
    assert smallest_detectable_difference([40.0, 41.0]) is None


def night(days, rmssd):
    series = RRSeries.from_rr([1000] * 400, START + timedelta(days=days))
    window = AnalysisWindow(
        start_index=0, end_index=400, start_ms=0, end_ms=400_000, mean_hr=60.0, hr_stability=0.0,
        classification=WindowClassification.FALLBACK_FULL_RECORDING, selection_reason='no candidates',
    )
    return (
        AnalysisResultBuilder(series)
        .with_window(window)
        .with_artifacts(detect_artifacts(series))
        .with_time_domain(TimeDomainMetrics(
            mean_rr=1000.0, sdnn=rmssd, rmssd=rmssd, sdsd=rmssd, pnn50=0.0,
            mean_hr=60.0, sd_hr=0.0, min_hr=60.0, max_hr=60.0, beat_count=400,
        ))
        .build()
    )


def test_nightly_frame_sorted_by_night():
    frame = results_to_nightly_frame([night(1, 42.0), night(0, 45.0)])
    assert frame['rmssd'].tolist() == [45.0, 42.0]
    assert frame.index[0] == pd.Timestamp(START)
    assert not frame['organized'].any()
    assert frame['lf_hf_ratio'].isna().all()


def test_nightly_frame_empty():
    assert results_to_nightly_frame([]).empty
