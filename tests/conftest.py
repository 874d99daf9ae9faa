"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from photonlife.core.audio import AudioFeatureSample


@pytest.fixture
def silent_sample() -> AudioFeatureSample:
    """Silence at 120 BPM with empty-but-present band data."""
    return AudioFeatureSample(volume=0.0, tempo=120.0, pitch=440.0, bands=np.zeros(8))


@pytest.fixture
def loud_sample() -> AudioFeatureSample:
    """Full volume, double tempo, strong bands."""
    return AudioFeatureSample(volume=100.0, tempo=240.0, pitch=440.0, bands=np.full(8, 0.9))


@pytest.fixture
def sample_sequence() -> list[AudioFeatureSample]:
    """
    A deterministic, varying sequence of samples.

    Alternates band-driven and fallback (no band) frames.
    """
    samples = []
    for i in range(60):
        t = i / 60.0
        bands = 0.5 + 0.5 * np.sin(np.arange(8) * 0.7 + t * 6.0) if i % 3 else None
        samples.append(
            AudioFeatureSample(
                volume=50.0 + 50.0 * np.sin(t * 4.0),
                tempo=100.0 + 40.0 * t,
                pitch=200.0 + 900.0 * t,
                bands=bands,
            )
        )
    return samples
