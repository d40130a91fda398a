"""Synthetic RR generators for tests."""
from datetime import datetime

import numpy as np

from nocturnal_hrv import RRSeries

START = datetime(2026, 1, 1, 22, 0, 0)


def fractional_gaussian_noise(n, hurst, rng):
    """Unit-variance fGn by circulant embedding (Davies-Harte)."""
    k = np.arange(n + 1, dtype=float)
    h2 = 2.0 * hurst
    gamma = 0.5 * (np.abs(k - 1) ** h2 - 2.0 * k ** h2 + (k + 1) ** h2)
    row = np.concatenate([gamma, gamma[-2:0:-1]])
    eig = np.clip(np.fft.fft(row).real, 0.0, None)
    m = len(row)
    w = rng.standard_normal(m) + 1j * rng.standard_normal(m)
    return np.fft.fft(np.sqrt(eig / m) * w)[:n].real


def make_series(rr, hr=None):
    return RRSeries.from_rr(rr, START, hr=hr)


def sinus_rr(n_beats, base=1000.0, amplitude=50.0, freq_hz=0.25):
    """RR modulated at freq_hz, sampled at each beat's own start time."""
    rr = np.empty(n_beats)
    t = 0.0
    for i in range(n_beats):
        rr[i] = base + amplitude * np.sin(2 * np.pi * freq_hz * t / 1000.0)
        t += rr[i]
    return rr
