"""Shared fixtures: analysis config and synthetic recordings."""
import numpy as np
import pytest

from nocturnal_hrv import HRVConfig
from synthetic import fractional_gaussian_noise, make_series


@pytest.fixture
def config():
    return HRVConfig()


@pytest.fixture
def rng():
    return np.random.default_rng(20260101)


@pytest.fixture(scope='session')
def correlated_hour():
    """One hour of long-range correlated rhythm (alpha1 near 0.9)."""
    rng = np.random.default_rng(42)
    rr = 850.0 + 15.0 * fractional_gaussian_noise(4300, 0.9, rng)
    return make_series(np.rint(rr))


@pytest.fixture(scope='session')
def alternating_hour():
    """One hour of strict beat-to-beat alternation (alpha1 near 0)."""
    n = 4500
    rr = 800 + 20 * (-1) ** np.arange(n)
    return make_series(rr)


@pytest.fixture(scope='session')
def overnight():
    """
    8 h of 800 +/- 20 ms white rhythm with a 10-minute mid-recording
    segment of 900 ms + 5 ms correlated noise.

    Returns:
        (series, segment_start_index, segment_end_index, segment_rr)
    """
    rng = np.random.default_rng(8)
    half_ms = 4 * 3600_000 - 300_000
    n_white = half_ms // 800
    n_segment = 600_000 // 900

    before = rng.normal(800.0, 20.0, n_white)
    segment = 900.0 + 5.0 * fractional_gaussian_noise(n_segment, 0.9, rng)
    after = rng.normal(800.0, 20.0, n_white)

    rr = np.rint(np.concatenate([before, segment, after]))
    series = make_series(rr)
    return series, n_white, n_white + n_segment, rr[n_white:n_white + n_segment]


@pytest.fixture(scope='session')
def slow_correlated_hour():
    """About an hour of the same correlated rhythm at ~39 bpm (bradycardic sleeper)."""
    rng = np.random.default_rng(42)
    rr = 1550.0 + 15.0 * fractional_gaussian_noise(2400, 0.9, rng)
    return make_series(np.rint(rr))
