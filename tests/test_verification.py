import numpy as np
import pytest

from nocturnal_hrv import InsufficientData, InvalidInput, RejectionReason, RRSeries, verify_series
from synthetic import START, make_series


def steady(n, rr=800):
    return np.full(n, rr)


def test_valid_recording(rng):
    result = verify_series(make_series(np.rint(rng.normal(800, 10, 600))))
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []
    assert result.clean_beat_count == 600
    result.raise_for_errors()


def test_empty_recording_is_invalid_input():
    result = verify_series(make_series([]))
    assert result.errors == [RejectionReason.EMPTY]
    with pytest.raises(InvalidInput):
        result.raise_for_errors()


def test_short_recording():
    result = verify_series(make_series(steady(200)))
    assert not result.is_valid
    assert result.errors == [RejectionReason.TOO_SHORT, RejectionReason.TOO_FEW_POINTS]
    with pytest.raises(InsufficientData) as excinfo:
        result.raise_for_errors()
    assert excinfo.value.metric == 'recording_duration'
    assert excinfo.value.available == pytest.approx(160_000 / 60_000, abs=0.01)
    assert excinfo.value.required == 5.0
    assert 'minutes' in str(excinfo.value)


def test_too_few_points_reports_beat_count(config):
    config.min_recording_minutes = 1.0
    result = verify_series(make_series(steady(200)), config=config)
    assert result.errors == [RejectionReason.TOO_FEW_POINTS]
    with pytest.raises(InsufficientData) as excinfo:
        result.raise_for_errors()
    assert excinfo.value.available == 200
    assert excinfo.value.required == 300


def test_long_but_sparse_recording():
    result = verify_series(make_series(steady(250, rr=1500)))
    assert result.errors == [RejectionReason.TOO_FEW_POINTS]


def test_sensor_dropout():
    rr = steady(800)
    t = np.concatenate([[0], np.cumsum(rr[:-1])])
    t[400:] += 120_000
    result = verify_series(RRSeries(t_ms=t, rr_ms=rr, start_date=START))
    assert result.errors == [RejectionReason.EXCESSIVE_GAPS]
    assert any('gap' in w for w in result.warnings)
    with pytest.raises(InvalidInput):
        result.raise_for_errors()


def test_excessive_artifacts(config):
    rr = steady(600)
    rr[::5] = 5000
    result = verify_series(make_series(rr), config=config)
    assert result.errors == [RejectionReason.EXCESSIVE_ARTIFACTS]
    assert result.artifact_percentage == pytest.approx(20.0)
    with pytest.raises(InsufficientData) as excinfo:
        result.raise_for_errors()
    assert excinfo.value.metric == 'artifact_rate'
    assert excinfo.value.available == pytest.approx(20.0)
    assert excinfo.value.required == pytest.approx(15.0)
    assert 'clean beats' not in str(excinfo.value)


def test_elevated_artifacts_warn(config):
    rr = steady(600)
    rr[::10] = 5000
    result = verify_series(make_series(rr), config=config)
    assert result.is_valid
    assert result.artifact_percentage == pytest.approx(10.0)
    assert result.clean_beat_count == 540
    assert any('artifact' in w for w in result.warnings)
    assert result.out_of_range_count == 60
    assert any('Out-of-range' in w and '60 high' in w for w in result.warnings)


def test_thresholds_from_config(config):
    config.max_artifact_rate = 0.05
    rr = steady(600)
    rr[::10] = 5000
    assert verify_series(make_series(rr), config=config).errors == [RejectionReason.EXCESSIVE_ARTIFACTS]


def test_drift_warns(config):
    rr = np.rint(np.linspace(800, 1100, 600))
    result = verify_series(make_series(rr), config=config)
    assert result.is_valid
    assert result.rr_drift_ms > config.drift_warning_ms
    assert any('drift' in w for w in result.warnings)


def test_ectopy_warns(config):
    rr = steady(600)
    rr[::8] = 1000
    result = verify_series(make_series(rr), config=config)
    assert result.is_valid
    assert result.ectopy_count == 75
    assert result.out_of_range_count == 0
    assert any('ectopy' in w for w in result.warnings)
