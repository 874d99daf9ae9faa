"""
Audio feature intake and band analysis.

Turns a per-frame audio sample (volume, tempo, pitch, frequency bins)
into the three band influences and the rhythm phase that drive the
particle forces and color dynamics.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np

DEFAULT_TEMPO = 120.0
DEFAULT_PITCH = 440.0
TWO_PI = 2.0 * math.pi


def _finite(value: Any, default: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


@dataclass(frozen=True, eq=False)
class AudioFeatureSample:
    """
    One frame of audio analysis supplied by the host.

    Fields are normalised on construction so that a short, missing or
    noisy sample never fails the simulation.
    """

    volume: float = 0.0  # [0, 100]
    tempo: float = DEFAULT_TEMPO  # beats per minute
    pitch: float = DEFAULT_PITCH  # Hz
    bands: np.ndarray = field(default_factory=lambda: np.zeros(0))  # [0, 1] per bin

    def __post_init__(self):
        volume = float(np.clip(_finite(self.volume, 0.0), 0.0, 100.0))
        tempo = _finite(self.tempo, DEFAULT_TEMPO)
        pitch = _finite(self.pitch, DEFAULT_PITCH)

        if self.bands is None:
            bands = np.zeros(0)
        else:
            bands = np.asarray(self.bands, dtype=np.float64).ravel()
            bands = np.clip(np.nan_to_num(bands, nan=0.0, posinf=1.0, neginf=0.0), 0.0, 1.0)
        bands.setflags(write=False)

        object.__setattr__(self, "volume", volume)
        object.__setattr__(self, "tempo", tempo if tempo > 0 else DEFAULT_TEMPO)
        object.__setattr__(self, "pitch", pitch if pitch > 0 else DEFAULT_PITCH)
        object.__setattr__(self, "bands", bands)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AudioFeatureSample":
        """
        Build a sample from a plain mapping.

        Accepts the canonical keys (volume, tempo, pitch, bands) as well as
        the browser analyser's names (bpm, frequency).
        """
        tempo = data.get("tempo", data.get("bpm", DEFAULT_TEMPO))
        bands = data.get("bands", data.get("frequency"))
        return cls(
            volume=data.get("volume", 0.0),
            tempo=tempo,
            pitch=data.get("pitch", DEFAULT_PITCH),
            bands=bands,
        )

    @property
    def intensity(self) -> float:
        """Combined loudness/tempo drive used for trait drift."""
        return (self.volume + self.tempo / 2.0) / 100.0


@dataclass(frozen=True)
class BandInfluence:
    """Smoothed band summary cached on each particle."""

    bass: float = 0.0
    mid: float = 0.0
    treble: float = 0.0
    rhythm_phase: float = 0.0

    @property
    def dominant(self) -> str:
        """Name of the strongest band; ties resolve bass, then mid."""
        values = {"bass": self.bass, "mid": self.mid, "treble": self.treble}
        return max(values, key=values.get)

    @property
    def mean(self) -> float:
        return (self.bass + self.mid + self.treble) / 3.0


class BandAnalyzer:
    """
    Derives bass/mid/treble influence and rhythm phase from a sample.

    The analyzer itself is stateless; callers own the cached result and the
    simulated time it was produced at, and ask `is_due` before refreshing.
    """

    # Pitch ranges (Hz) used when no band data is available.
    LOW_PITCH = 300.0
    HIGH_PITCH = 800.0

    # (bass, mid, treble) weights per pitch range for the fallback estimator.
    _FALLBACK_WEIGHTS = {
        "low": (1.0, 0.3, 0.1),
        "mid": (0.3, 1.0, 0.3),
        "high": (0.1, 0.3, 1.0),
    }

    def __init__(self, refresh_interval: float = 0.033, smoothing: float = 0.0):
        """
        Initialize the analyzer.

        Args:
            refresh_interval: Minimum simulated seconds between refreshes.
            smoothing: Blend factor toward the previous result in [0, 1).
                0.0 returns the raw band values.
        """
        if refresh_interval < 0:
            raise ValueError(f"refresh_interval must be >= 0, got {refresh_interval}")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {smoothing}")
        self.refresh_interval = refresh_interval
        self.smoothing = smoothing

    def is_due(self, last_refresh: float | None, age: float) -> bool:
        if last_refresh is None:
            return True
        return age - last_refresh >= self.refresh_interval

    @staticmethod
    def rhythm_phase(age: float, tempo: float) -> float:
        return (age * (tempo / DEFAULT_TEMPO) * 2.0) % TWO_PI

    def band_levels(self, sample: AudioFeatureSample) -> tuple[float, float, float]:
        """Return raw (bass, mid, treble) levels in [0, 1]."""
        bands = sample.bands
        if len(bands) >= 8:
            bass = float(np.mean(bands[0:2]))
            mid = float(np.mean(bands[3:6]))
            treble = float(np.mean(bands[6:8]))
            return bass, mid, treble

        # No usable band data: estimate from volume gated by pitch range.
        level = sample.volume / 100.0
        if sample.pitch < self.LOW_PITCH:
            weights = self._FALLBACK_WEIGHTS["low"]
        elif sample.pitch <= self.HIGH_PITCH:
            weights = self._FALLBACK_WEIGHTS["mid"]
        else:
            weights = self._FALLBACK_WEIGHTS["high"]
        bass, mid, treble = (min(1.0, level * w) for w in weights)
        return bass, mid, treble

    def analyze(
        self,
        sample: AudioFeatureSample,
        age: float,
        previous: BandInfluence | None = None,
    ) -> BandInfluence:
        """
        Compute the band influence for a particle of the given age.

        Args:
            sample: Current audio sample.
            age: Simulated age of the requesting particle (seconds).
            previous: Last cached result, blended in when smoothing > 0.

        Returns:
            New BandInfluence.
        """
        bass, mid, treble = self.band_levels(sample)
        if previous is not None and self.smoothing > 0:
            keep = self.smoothing
            bass = previous.bass * keep + bass * (1 - keep)
            mid = previous.mid * keep + mid * (1 - keep)
            treble = previous.treble * keep + treble * (1 - keep)

        return BandInfluence(
            bass=bass,
            mid=mid,
            treble=treble,
            rhythm_phase=self.rhythm_phase(age, sample.tempo),
        )
