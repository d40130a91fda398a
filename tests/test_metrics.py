import numpy as np
import pytest

from nocturnal_hrv import (
    compute_frequency_domain,
    compute_nonlinear,
    compute_time_domain,
    detect_artifacts,
    dfa,
)
from nocturnal_hrv.nonlinear import approximate_entropy, sample_entropy
from nocturnal_hrv.time_domain import triangular_index
from synthetic import fractional_gaussian_noise, make_series, sinus_rr


def analyze(fn, rr, config=None, hr=None):
    series = make_series(rr, hr=hr)
    flags = detect_artifacts(series, config)
    return fn(series, flags, 0, len(series), config)


# =============================================================================
# DFA
# =============================================================================

class TestDFA:

    def test_constant_series_undefined(self):
        assert dfa(np.full(500, 800.0)) is None

    def test_too_short_undefined(self, rng):
        assert dfa(rng.normal(800, 20, 63)) is None

    def test_white_noise_near_one_half(self, rng):
        result = dfa(rng.normal(800, 20, 3000))
        assert 0.35 < result.alpha1 < 0.75
        assert 0.0 <= result.alpha1_r2 <= 1.0

    def test_correlated_noise_above_white(self, rng):
        white = dfa(rng.normal(800, 20, 3000)).alpha1
        correlated = dfa(800 + 20 * fractional_gaussian_noise(3000, 0.9, rng)).alpha1
        assert correlated > white + 0.2

    def test_random_walk_steep(self, rng):
        walk = 800 + np.cumsum(rng.normal(0, 2, 3000))
        assert dfa(walk).alpha1 > 1.2

    def test_alternation_flat(self):
        rr = 800 + 20 * (-1) ** np.arange(1000)
        assert dfa(rr).alpha1 < 0.3

    def test_alpha2_needs_long_series(self, rng, config):
        assert dfa(rng.normal(800, 20, 200)).alpha2 is None
        long = dfa(rng.normal(800, 20, 1000))
        assert long.alpha2 is not None
        assert 0.0 <= long.alpha2_r2 <= 1.0
        assert dfa(rng.normal(800, 20, 1000), config, long_range=False).alpha2 is None


# =============================================================================
# Time domain
# =============================================================================

class TestTimeDomain:

    def test_identical_intervals(self):
        td = analyze(compute_time_domain, [800] * 100)
        assert td.rmssd == 0.0
        assert td.sdsd == 0.0
        assert td.sdnn == 0.0
        assert td.pnn50 == 0.0
        assert td.mean_rr == 800.0
        assert td.mean_hr == pytest.approx(75.0)

    def test_known_values(self):
        rr = [800, 860, 800, 860] * 10
        td = analyze(compute_time_domain, rr)
        assert td.mean_rr == pytest.approx(830.0)
        assert td.sdnn == pytest.approx(30.0)
        assert td.rmssd == pytest.approx(60.0)
        assert td.pnn50 == pytest.approx(100.0)

    def test_minimum_beat_count(self, config):
        assert analyze(compute_time_domain, [800] * (config.time_domain_min_beats - 1), config) is None
        td = analyze(compute_time_domain, [800] * (config.time_domain_min_beats + 1), config)
        assert td is not None
        assert td.beat_count == config.time_domain_min_beats + 1

    def test_only_clean_beats_counted(self, config):
        rr = [800] * (config.time_domain_min_beats + 1)
        rr[10] = 5000
        td = analyze(compute_time_domain, rr, config)
        assert td.beat_count == config.time_domain_min_beats
        assert td.rmssd == 0.0

    def test_window_bounds_respected(self):
        rr = [800] * 100 + [1000] * 100
        series = make_series(rr)
        flags = detect_artifacts(series)
        td = compute_time_domain(series, flags, 0, 100)
        assert td.mean_rr == 800.0

    def test_measured_hr_preferred(self):
        td = analyze(compute_time_domain, [800] * 60, hr=[70.0] * 60)
        assert td.mean_hr == 70.0
        assert td.min_hr == td.max_hr == 70.0

    def test_implausible_measured_hr_ignored(self):
        td = analyze(compute_time_domain, [800] * 60, hr=[0.0] * 60)
        assert td.mean_hr == pytest.approx(75.0)
        assert td.min_hr == pytest.approx(75.0)

    def test_partly_implausible_measured_hr_falls_back_to_rr(self):
        hr = [70.0] * 60
        hr[5] = 250.0
        td = analyze(compute_time_domain, [800] * 60, hr=hr)
        assert td.mean_hr == pytest.approx(75.0)

    def test_triangular_index(self):
        rr = np.array([800.0] * 30 + [900.0] * 10)
        assert triangular_index(rr) == pytest.approx(40 / 30)
        assert triangular_index(rr[:10]) is None


# =============================================================================
# Frequency domain
# =============================================================================

class TestFrequencyDomain:

    def test_respiratory_modulation_lands_in_hf(self):
        fd = analyze(compute_frequency_domain, sinus_rr(600, freq_hz=0.25))
        assert fd.hf > fd.lf
        assert fd.hf_peak_hz == pytest.approx(0.25, abs=0.02)
        assert fd.lf_hf_ratio == pytest.approx(fd.lf / fd.hf)
        assert fd.lf_nu + fd.hf_nu == pytest.approx(100.0)

    def test_slow_modulation_lands_in_lf(self):
        fd = analyze(compute_frequency_domain, sinus_rr(600, freq_hz=0.1))
        assert fd.lf > fd.hf
        assert fd.lf_peak_hz == pytest.approx(0.1, abs=0.02)

    def test_vlf_only_for_long_windows(self, rng):
        short = analyze(compute_frequency_domain, rng.normal(1000, 20, 300))
        assert short.vlf is None
        assert short.total_power == pytest.approx(short.lf + short.hf)

        long = analyze(compute_frequency_domain, rng.normal(1000, 20, 700))
        assert long.vlf is not None
        assert long.total_power == pytest.approx(long.vlf + long.lf + long.hf)

    def test_too_few_beats(self, rng, config):
        assert analyze(compute_frequency_domain, rng.normal(1000, 20, config.frequency_min_beats - 1)) is None

    def test_artifact_gap_bridged(self):
        rr = sinus_rr(600, freq_hz=0.25)
        rr[300] = 5000
        fd = analyze(compute_frequency_domain, rr)
        assert fd is not None
        assert fd.hf_peak_hz == pytest.approx(0.25, abs=0.02)

    def test_flat_tachogram_has_no_spectrum(self):
        assert analyze(compute_frequency_domain, [1000] * 300) is None


# =============================================================================
# Nonlinear
# =============================================================================

class TestNonlinear:

    def test_poincare_white_noise(self, rng):
        nl = analyze(compute_nonlinear, np.rint(rng.normal(800, 20, 1500)))
        assert nl.sd1 == pytest.approx(20, rel=0.15)
        assert nl.sd2 == pytest.approx(20, rel=0.15)
        assert 0.8 < nl.sd1_sd2_ratio < 1.2

    def test_entropy_lower_for_regular_rhythm(self, rng):
        noisy = analyze(compute_nonlinear, rng.normal(1000, 20, 600))
        regular = analyze(compute_nonlinear, sinus_rr(600, freq_hz=0.25))
        assert regular.sample_entropy < noisy.sample_entropy
        assert regular.approximate_entropy < noisy.approximate_entropy

    def test_constant_series(self):
        nl = analyze(compute_nonlinear, [800] * 200)
        assert nl.sd1 == 0.0
        assert nl.sd2 == 0.0
        assert nl.sd1_sd2_ratio is None
        assert nl.sample_entropy is None
        assert nl.dfa_alpha1 is None

    def test_minimum_beats(self, rng, config):
        assert analyze(compute_nonlinear, rng.normal(800, 20, config.nonlinear_min_beats - 1)) is None

    def test_dfa_matches_shared_implementation(self, rng):
        rr = np.rint(800 + 20 * fractional_gaussian_noise(800, 0.9, rng))
        nl = analyze(compute_nonlinear, rr)
        reference = dfa(rr.astype(float))
        assert nl.dfa_alpha1 == reference.alpha1
        assert nl.dfa_alpha1_r2 == reference.alpha1_r2
        assert nl.dfa_alpha2 == reference.alpha2

    def test_entropy_capped_to_central_span(self, rng, config):
        config.entropy_max_beats = 300
        rr = np.rint(rng.normal(800, 20, 1000))
        nl = analyze(compute_nonlinear, rr, config)
        assert nl.sample_entropy == pytest.approx(sample_entropy(rr[350:650]))

    def test_entropy_helpers_reject_degenerate(self):
        assert sample_entropy(np.full(50, 800.0)) is None
        assert approximate_entropy(np.array([800.0, 810.0])) is None
