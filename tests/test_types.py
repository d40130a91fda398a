from datetime import datetime, timedelta

import numpy as np
import pytest

from nocturnal_hrv import HRVConfig, InvalidInput, RRPoint, RRSeries
from nocturnal_hrv.types import CONFIG_ENV_VAR, default_config_path
from synthetic import START, make_series


class TestRRSeries:

    def test_from_rr_accumulates_start_times(self):
        series = make_series([800, 810, 790])
        assert series.t_ms.tolist() == [0, 800, 1610]
        assert series.end_ms == 2400
        assert series.duration_ms == 2400

    def test_from_points_keeps_hr(self):
        points = [RRPoint(0, 1000, 60.0), RRPoint(1000, 1000, None)]
        series = RRSeries.from_points(points, START)
        assert series[0].hr == 60.0
        assert series[1].hr is None
        assert series.points == points
        assert series.has_hr

    def test_end_ms_of_point(self):
        assert RRPoint(t_ms=500, rr_ms=800).end_ms == 1300

    def test_rejects_non_monotonic_times(self):
        with pytest.raises(InvalidInput, match='not monotonic'):
            RRSeries(t_ms=[0, 1000, 900], rr_ms=[1000, 800, 800], start_date=START)

    def test_equal_times_are_allowed(self):
        series = RRSeries(t_ms=[0, 0, 800], rr_ms=[800, 800, 800], start_date=START)
        assert len(series) == 3

    def test_rejects_non_finite_values(self):
        with pytest.raises(InvalidInput):
            make_series([800, float('nan'), 800])

    def test_rejects_mismatched_hr(self):
        with pytest.raises(InvalidInput):
            make_series([800, 800], hr=[75.0])

    def test_arrays_are_read_only(self):
        series = make_series([800, 800, 800])
        with pytest.raises(ValueError):
            series.rr_ms[0] = 1

    def test_does_not_freeze_caller_array(self):
        t = np.array([0, 800], dtype=np.int64)
        RRSeries(t_ms=t, rr_ms=[800, 800], start_date=START)
        t[0] = 5
        assert t[0] == 5

    def test_absolute_time(self):
        series = make_series([800] * 10)
        assert series.absolute_time(90_000) == START + timedelta(seconds=90)


class TestHRVConfig:

    def test_yaml_overrides_defaults(self, tmp_path):
        path = tmp_path / 'hrv.yaml'
        path.write_text(
            "window_selection:\n"
            "  window_duration_ms: 180000\n"
            "  organized_alpha1_min: 0.7\n"
            "frequency_domain:\n"
            "  lf_band: [0.05, 0.15]\n"
        )
        cfg = HRVConfig.from_yaml(path)
        assert cfg.window_duration_ms == 180000
        assert cfg.organized_alpha1_min == 0.7
        assert cfg.lf_band == (0.05, 0.15)
        assert cfg.window_step_ms == HRVConfig().window_step_ms

    def test_missing_file_gives_defaults(self, tmp_path):
        assert HRVConfig.from_yaml(tmp_path / 'absent.yaml') == HRVConfig()

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / 'hrv.yaml'
        path.write_text("artifacts:\n  not_a_field: 3\n  min_rr_ms: 250\n")
        cfg = HRVConfig.from_yaml(path)
        assert cfg.min_rr_ms == 250

    def test_env_var_selects_config_path(self, tmp_path, monkeypatch):
        path = tmp_path / 'custom.yaml'
        path.write_text("time_domain:\n  time_domain_min_beats: 50\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert default_config_path() == path
        assert HRVConfig.from_yaml().time_domain_min_beats == 50

    def test_shipped_config_matches_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert HRVConfig.from_yaml() == HRVConfig()
