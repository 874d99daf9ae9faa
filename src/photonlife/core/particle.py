"""
Audio-reactive evolving particle.

Each tick a particle composes three forces:
  - Music force: bass/mid/treble oscillations keyed to the rhythm phase
  - Social force: separation / alignment / cohesion over its neighbors
  - Flow force: the motion archetype selected by its traits

then integrates, reflects off the world bounds, and slowly evolves its
color, energy and traits.
"""

import colorsys
import math
from typing import NamedTuple, Sequence

import numpy as np

from photonlife.config import SimulationConfig
from photonlife.core.audio import TWO_PI, AudioFeatureSample, BandAnalyzer, BandInfluence
from photonlife.core.traits import FlowPattern, TraitSet

EPSILON = 1e-9

# ---------------------------------------------------------------------------
# Force constants
# ---------------------------------------------------------------------------
SEPARATION_RADIUS = 1.0
ALIGNMENT_RADIUS = 2.0
COHESION_RADIUS = 3.0
SEPARATION_WEIGHT = 0.02
ALIGNMENT_WEIGHT = 0.05
COHESION_WEIGHT = 0.002

SPIRAL_SCALE = 0.01
WAVE_AMPLITUDE = 0.005
ATTRACTOR_STRENGTH = 0.01
SWARM_AMPLITUDE = 0.002
HARMONIC_AMPLITUDE = 0.005
GOLDEN_RATIO = 1.618

# Target hues (degrees) for the dominant band.
HUE_TARGETS = {"bass": 240.0, "mid": 120.0, "treble": 0.0}
COLOR_DRIFT_GAIN = 0.02

HIGH_INTENSITY = 0.7
LOW_INTENSITY = 0.3
RICH_ENERGY = 150.0
POOR_ENERGY = 50.0


class Neighborhood(NamedTuple):
    """Frozen view of a particle's neighbors, taken before the update pass."""

    positions: np.ndarray  # (k, 3)
    velocities: np.ndarray  # (k, 3)
    hues: np.ndarray  # (k,)

    @classmethod
    def empty(cls) -> "Neighborhood":
        return cls(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros(0))

    def __len__(self) -> int:
        return len(self.hues)


def hue_delta(source: float, target: float) -> float:
    """Signed shortest angular distance (degrees) from source to target."""
    return (target - source + 180.0) % 360.0 - 180.0


# ---------------------------------------------------------------------------
# Flow patterns
# ---------------------------------------------------------------------------

def attractor_points(age: float) -> np.ndarray:
    """The three time-varying attractor points, shape (3, 3)."""
    offsets = np.arange(3) * (TWO_PI / 3.0)
    return np.stack(
        [
            5.0 * np.cos(age * 0.3 + offsets),
            5.0 * np.sin(age * 0.3 + offsets),
            3.0 * np.sin(age * 0.2 + offsets),
        ],
        axis=1,
    )


def select_attractor(rhythm_phase: float) -> int:
    """Index of the active attractor: the third of the cycle the phase lies in."""
    third = TWO_PI / 3.0
    return min(2, int((rhythm_phase % TWO_PI) // third))


def spiral_force(position: np.ndarray, bands: BandInfluence, age: float) -> np.ndarray:
    radius = (bands.bass + 0.5 * bands.mid) * SPIRAL_SCALE
    angle = age * (1.0 + 2.0 * bands.treble) * 1.5
    return np.array([-math.sin(angle) * radius, math.cos(angle) * radius, bands.bass * 0.002])


def wave_force(position: np.ndarray, bands: BandInfluence, age: float) -> np.ndarray:
    # Higher mids shorten the wavelength; bass speeds up propagation.
    wavelength = 4.0 / (1.0 + 2.0 * bands.mid)
    k = TWO_PI / wavelength
    speed = 1.0 + 3.0 * bands.bass
    weights = 0.25 + np.array([bands.bass, bands.mid, bands.treble])
    return WAVE_AMPLITUDE * weights * np.sin(k * position[[1, 2, 0]] - speed * age)


def attractor_force(position: np.ndarray, bands: BandInfluence, age: float) -> np.ndarray:
    target = attractor_points(age)[select_attractor(bands.rhythm_phase)]
    offset = target - position
    distance = float(np.linalg.norm(offset))
    if distance < EPSILON:
        return np.zeros(3)
    strength = ATTRACTOR_STRENGTH * (1.0 + bands.bass) / (distance + 1.0)
    return offset / distance * strength


def swarm_force(bands: BandInfluence, generation: int) -> np.ndarray:
    phase = bands.rhythm_phase + generation * 0.7 + np.arange(3) * (TWO_PI / 3.0)
    return SWARM_AMPLITUDE * (0.5 + bands.mean) * np.sin(phase)


def harmonic_force(sample: AudioFeatureSample, age: float) -> np.ndarray:
    """Three superposed waves at golden-ratio frequency ratios."""
    volume = sample.volume / 100.0
    pitch = float(np.clip((sample.pitch - 440.0) / 440.0, -1.0, 1.0))
    amplitude = 0.8 + volume * 1.2
    frequency = max(0.1, sample.tempo / 120.0) * 0.5

    wave1 = math.sin(age * frequency) * amplitude
    wave2 = math.cos(age * frequency * GOLDEN_RATIO) * amplitude * 0.5
    wave3 = math.sin(age * frequency * 0.382) * amplitude * 0.3
    return HARMONIC_AMPLITUDE * np.array([wave3 * pitch, (wave1 + wave2) * volume, wave1 * 0.5 * volume])


class Particle:
    """
    One simulated agent.

    Owns its kinematic state, color, traits and energy. Reads neighbor
    state only through the `Neighborhood` snapshot it is handed, and never
    writes to another particle.
    """

    def __init__(
        self,
        position: Sequence[float],
        velocity: Sequence[float],
        traits: TraitSet | None = None,
        base_hue: float = 0.0,
        config: SimulationConfig | None = None,
        analyzer: BandAnalyzer | None = None,
    ):
        self.cfg = config or SimulationConfig()
        self.analyzer = analyzer or BandAnalyzer(
            self.cfg.band_refresh_interval, self.cfg.band_smoothing
        )

        self.position = np.array(position, dtype=np.float64)
        self.velocity = np.array(velocity, dtype=np.float64)
        self.traits = traits or TraitSet()
        self.base_hue = float(base_hue) % 360.0
        self.energy = float(np.clip(self.cfg.initial_energy, self.cfg.energy_min, self.cfg.energy_max))
        self.age = 0.0
        self.generation = 1

        self.band_cache = BandInfluence()
        self.band_refreshed_at: float | None = None
        self.evolution_timer = 0.0

        self.color = np.zeros(3)
        self.refresh_color()

    def __repr__(self) -> str:
        return (
            f"Particle(position={self.position.round(3).tolist()}, "
            f"pattern={self.traits.flow_pattern.value}, generation={self.generation})"
        )

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update(
        self,
        sample: AudioFeatureSample,
        neighbors: Neighborhood,
        dt: float,
        draws: Sequence[float] = (1.0, 1.0, 0.0),
    ) -> bool:
        """
        Advance the particle by one tick.

        Args:
            sample: Audio features for this tick.
            neighbors: Snapshot of neighbor state.
            dt: Simulated seconds since the last tick.
            draws: Three uniforms in [0, 1) from the system's generator:
                color-evolution roll, diffusion roll, neighbor pick.

        Returns:
            True if the periodic evolution trigger fired on this tick.
        """
        self.age += dt
        self.refresh_bands(sample)
        self.drift_traits(sample)

        force = self.music_force() + self.social_force(neighbors) + self.flow_force(sample)
        force = np.nan_to_num(force, nan=0.0, posinf=0.0, neginf=0.0)
        self.integrate(force, dt, self.cfg.max_speed(sample.volume))
        self.apply_bounds()

        color_roll, diffusion_roll, pick_roll = draws
        if color_roll < self.cfg.color_evolution_probability:
            self.evolve_color(neighbors, diffusion_roll, pick_roll)

        self.update_energy(sample)
        return self.advance_evolution(dt)

    def refresh_bands(self, sample: AudioFeatureSample) -> bool:
        if not self.analyzer.is_due(self.band_refreshed_at, self.age):
            return False
        previous = self.band_cache if self.band_refreshed_at is not None else None
        self.band_cache = self.analyzer.analyze(sample, self.age, previous)
        self.band_refreshed_at = self.age
        return True

    def drift_traits(self, sample: AudioFeatureSample):
        step = self.cfg.mutation_step
        intensity = sample.intensity
        if intensity > HIGH_INTENSITY:
            self.traits.nudge("sociability", step)
            self.traits.nudge("color_evolution_rate", step)
        elif intensity < LOW_INTENSITY:
            self.traits.nudge("energy_efficiency", step)

    # ------------------------------------------------------------------
    # Forces
    # ------------------------------------------------------------------

    def music_force(self) -> np.ndarray:
        bands = self.band_cache
        phase = bands.rhythm_phase

        bass = bands.bass * np.array(
            [math.sin(phase) * 0.008, math.cos(phase) * 0.006, math.sin(phase * 0.5) * 0.007]
        )
        # Position inside the phase decorrelates mid and treble across space.
        mid_phase = phase * 2.0 + self.position * 0.15
        mid = bands.mid * np.array([0.004, 0.003, 0.0035]) * np.array(
            [math.sin(mid_phase[0]), math.cos(mid_phase[1]), math.sin(mid_phase[2])]
        )
        treble_phase = phase * 4.0 + self.position * 0.3
        treble = bands.treble * 0.002 * np.array(
            [math.sin(treble_phase[0]), math.cos(treble_phase[1]), math.sin(treble_phase[2])]
        )
        return bass + mid + treble

    def social_force(self, neighbors: Neighborhood) -> np.ndarray:
        force = np.zeros(3)
        if len(neighbors) == 0:
            return force

        offsets = neighbors.positions - self.position
        distances = np.linalg.norm(offsets, axis=1)
        # Coincident neighbors have no direction; they are skipped.
        valid = distances > EPSILON

        close = valid & (distances < SEPARATION_RADIUS)
        if close.any():
            directions = offsets[close] / distances[close, None]
            push = (1.0 - distances[close])[:, None]
            force -= (directions * push).sum(axis=0) * SEPARATION_WEIGHT

        aligned = valid & (distances < ALIGNMENT_RADIUS)
        if aligned.any():
            steer = (neighbors.velocities[aligned] - self.velocity).sum(axis=0)
            force += steer * self.traits.velocity_inheritance * ALIGNMENT_WEIGHT

        cohesive = valid & (distances < COHESION_RADIUS)
        if cohesive.any():
            force += offsets[cohesive].sum(axis=0) * self.traits.sociability * COHESION_WEIGHT

        return force

    def flow_force(self, sample: AudioFeatureSample) -> np.ndarray:
        pattern = self.traits.flow_pattern
        bands = self.band_cache
        if pattern is FlowPattern.SPIRAL:
            return spiral_force(self.position, bands, self.age)
        if pattern is FlowPattern.WAVE:
            return wave_force(self.position, bands, self.age)
        if pattern is FlowPattern.ATTRACTOR:
            return attractor_force(self.position, bands, self.age)
        if pattern is FlowPattern.HARMONIC:
            return harmonic_force(sample, self.age)
        return swarm_force(bands, self.generation)

    # ------------------------------------------------------------------
    # Motion
    # ------------------------------------------------------------------

    def integrate(self, force: np.ndarray, dt: float, max_speed: float):
        self.velocity += force * dt
        speed = float(np.linalg.norm(self.velocity))
        if speed > max_speed:
            self.velocity *= max_speed / speed
        self.position += self.velocity

    def apply_bounds(self):
        """
        Clamp each axis to the world cube, reflecting and damping its velocity.

        Only axes still moving outward are reflected, so a particle placed
        outside the cube with an inward velocity keeps heading back in.
        """
        limit = self.cfg.bounds
        outside = np.abs(self.position) > limit
        if outside.any():
            side = np.sign(self.position)
            outward = outside & (np.sign(self.velocity) == side)
            self.position[outside] = side[outside] * limit
            self.velocity[outward] *= -self.cfg.bounce_damping

    # ------------------------------------------------------------------
    # Color, energy, evolution
    # ------------------------------------------------------------------

    def evolve_color(self, neighbors: Neighborhood, diffusion_roll: float, pick_roll: float):
        target = HUE_TARGETS[self.band_cache.dominant]
        drift = hue_delta(self.base_hue, target) * self.traits.color_evolution_rate * COLOR_DRIFT_GAIN
        hue = self.base_hue + drift

        if len(neighbors) and diffusion_roll < self.cfg.color_diffusion_probability:
            pick = min(int(pick_roll * len(neighbors)), len(neighbors) - 1)
            hue += hue_delta(hue, float(neighbors.hues[pick])) * self.cfg.color_diffusion_weight

        self.base_hue = hue % 360.0
        self.refresh_color()

    def refresh_color(self):
        bands = self.band_cache
        saturation = 0.5 + 0.5 * max(bands.bass, bands.mid, bands.treble)
        lightness = 0.35 + 0.3 * bands.mean
        rgb = colorsys.hls_to_rgb((self.base_hue % 360.0) / 360.0, lightness, saturation)
        self.color = np.clip(np.array(rgb), 0.0, 1.0)

    def update_energy(self, sample: AudioFeatureSample):
        gain = (sample.volume / 100.0) * self.traits.energy_efficiency * 2.0
        self.energy = float(
            np.clip(self.energy + gain - self.cfg.energy_decay, self.cfg.energy_min, self.cfg.energy_max)
        )

    def advance_evolution(self, dt: float) -> bool:
        self.evolution_timer += dt
        if self.evolution_timer <= self.cfg.evolution_period:
            return False

        step = self.cfg.mutation_step
        if self.energy > RICH_ENERGY:
            self.traits.nudge("sociability", step)
        elif self.energy < POOR_ENERGY:
            self.traits.nudge("energy_efficiency", step)
        self.generation += 1
        self.evolution_timer = 0.0
        return True
