"""
Particle system orchestration.

Owns a fixed population of particles and drives one tick per rendered
frame:

    refresh neighbor index (if due)
      -> snapshot neighbor state
      -> update every particle against the snapshot
      -> write position/color into the back buffers and swap

The host renderer reads `positions` and `colors` between ticks.
"""

import dataclasses
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np

from photonlife.config import SimulationConfig
from photonlife.core.audio import AudioFeatureSample, BandAnalyzer
from photonlife.core.neighbors import NeighborIndex
from photonlife.core.particle import Neighborhood, Particle
from photonlife.core.traits import SCALAR_TRAITS, TraitSet

logger = logging.getLogger(__name__)

# Founders sampled when the population inherits its traits.
FOUNDER_COUNT = 4


@dataclass(frozen=True)
class EvolutionEvent:
    """A particle crossing its periodic evolution threshold."""

    particle_index: int
    generation: int
    age: float
    traits: TraitSet


@dataclass
class PopulationStats:
    """Summary of the population at a point in time."""

    count: int
    average_energy: float
    max_generation: int
    dominant_color: str  # hex of the mean color
    mean_traits: dict[str, float] = field(default_factory=dict)


class ParticleSystem:
    """
    Audio-reactive evolving particle population.

    The population size is fixed at initialization; ticks never add or
    remove particles.
    """

    def __init__(self, config: SimulationConfig | None = None, seed: int | None = None):
        """
        Initialize the system and its population.

        Args:
            config: Simulation constants (default: SimulationConfig()).
            seed: Seed for the system's random generator. Every random
                decision in the simulation is drawn from it.
        """
        self.cfg = config or SimulationConfig()
        self.rng = np.random.default_rng(seed)

        self.particles: list[Particle] = []
        self.tick_count = 0
        self.time = 0.0
        self.evolution_log: deque[EvolutionEvent] = deque(maxlen=self.cfg.evolution_log_size)

        self.initialize(self.cfg.population_size, self.cfg.bounds)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, population_size: int, bounds: float):
        """
        (Re)create the population.

        Positions are uniform in the cube [-bounds, bounds]^3. Traits are
        sampled at random, or inherited from a few random founders when
        `inherit_traits` is set.

        Raises:
            ValueError: If population_size <= 0 or bounds <= 0.
        """
        if population_size <= 0:
            raise ValueError(f"population_size must be > 0, got {population_size}")
        if bounds <= 0:
            raise ValueError(f"bounds must be > 0, got {bounds}")

        self.cfg = dataclasses.replace(self.cfg, population_size=population_size, bounds=bounds)
        cfg = self.cfg
        self.analyzer = BandAnalyzer(cfg.band_refresh_interval, cfg.band_smoothing)
        self.neighbor_index = NeighborIndex(
            max_neighbors=cfg.max_neighbors,
            radius=cfg.neighbor_radius,
            refresh_period=cfg.neighbor_refresh_period,
        )

        n = population_size
        positions = self.rng.uniform(-bounds, bounds, size=(n, 3))
        velocities = self.rng.uniform(-cfg.initial_speed, cfg.initial_speed, size=(n, 3))
        hues = self.rng.uniform(0.0, 360.0, size=n)

        if cfg.inherit_traits:
            founders = [TraitSet.random(self.rng) for _ in range(min(n, FOUNDER_COUNT))]
            traits = [
                TraitSet.inherit(founders[int(self.rng.integers(len(founders)))], self.rng, cfg.mutation_step)
                for _ in range(n)
            ]
        else:
            traits = [TraitSet.random(self.rng) for _ in range(n)]

        self.particles = [
            Particle(positions[i], velocities[i], traits[i], hues[i], cfg, self.analyzer)
            for i in range(n)
        ]
        self._order = {id(p): i for i, p in enumerate(self.particles)}

        self._front_positions = np.zeros(n * 3, dtype=np.float32)
        self._front_colors = np.zeros(n * 3, dtype=np.float32)
        self._back_positions = np.zeros(n * 3, dtype=np.float32)
        self._back_colors = np.zeros(n * 3, dtype=np.float32)
        self._write_buffers(self._front_positions, self._front_colors)
        self.neighbor_index.rebuild(positions, 0)

        self.tick_count = 0
        self.time = 0.0
        self.evolution_log = deque(maxlen=cfg.evolution_log_size)
        logger.info(
            "Initialized %d particles (bounds=%.1f, inherit_traits=%s)",
            n, bounds, cfg.inherit_traits,
        )

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(
        self,
        sample: AudioFeatureSample | Mapping[str, Any],
        dt: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Advance every particle by `dt` simulated seconds.

        Args:
            sample: Audio features for this frame (sample or plain dict).
            dt: Frame time in seconds. Non-finite or negative values are
                treated as 0.

        Returns:
            (positions, colors) flat float32 buffers of length 3 * N.
        """
        if not isinstance(sample, AudioFeatureSample):
            sample = AudioFeatureSample.from_dict(sample)
        dt = float(dt) if math.isfinite(dt) and dt > 0 else 0.0

        positions = np.array([p.position for p in self.particles])
        if self.neighbor_index.is_due(self.tick_count):
            self.neighbor_index.rebuild(positions, self.tick_count)
            logger.debug("Rebuilt neighbor index at tick %d", self.tick_count)

        # Frozen neighbor state; particles only read from this during the pass.
        velocities = np.array([p.velocity for p in self.particles])
        hues = np.array([p.base_hue for p in self.particles])
        draws = self.rng.random((len(self.particles), 3))

        def update(i: int) -> bool:
            idx = self.neighbor_index.indices_of(i)
            neighborhood = Neighborhood(positions[idx], velocities[idx], hues[idx])
            return self.particles[i].update(sample, neighborhood, dt, draws[i])

        evolved = [update(i) for i in range(len(self.particles))]

        for i, fired in enumerate(evolved):
            if fired:
                self._record_evolution(i)

        self._write_buffers(self._back_positions, self._back_colors)
        self._front_positions, self._back_positions = self._back_positions, self._front_positions
        self._front_colors, self._back_colors = self._back_colors, self._front_colors

        self.tick_count += 1
        self.time += dt
        return self._front_positions, self._front_colors

    def _write_buffers(self, positions: np.ndarray, colors: np.ndarray):
        for i, p in enumerate(self.particles):
            i3 = i * 3
            positions[i3:i3 + 3] = p.position
            colors[i3:i3 + 3] = p.color

    def _record_evolution(self, index: int):
        p = self.particles[index]
        self.evolution_log.append(EvolutionEvent(index, p.generation, p.age, p.traits.copy()))
        logger.debug("Particle %d reached generation %d", index, p.generation)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def positions(self) -> np.ndarray:
        """Flat (3 * N) float32 position buffer from the last tick."""
        return self._front_positions

    @property
    def colors(self) -> np.ndarray:
        """Flat (3 * N) float32 RGB buffer from the last tick."""
        return self._front_colors

    def __len__(self) -> int:
        return len(self.particles)

    def index_of(self, particle: Particle) -> int:
        try:
            return self._order[id(particle)]
        except KeyError:
            raise ValueError("Particle does not belong to this system") from None

    def neighbors_of(self, particle: Particle | int, radius: float | None = None) -> list[Particle]:
        """
        Neighbors of a particle, nearest first, at most `max_neighbors`.

        Radii up to the index radius are answered from the cached sets.
        A wider radius runs a fresh query on the current positions.

        Args:
            particle: Particle instance or its index.
            radius: Optional search radius (default: the index radius).
        """
        index = int(particle if isinstance(particle, (int, np.integer)) else self.index_of(particle))
        if radius is not None and radius > self.neighbor_index.radius:
            positions = np.array([p.position for p in self.particles])
            found = self.neighbor_index.query(positions, index, radius)
        else:
            found = self.neighbor_index.neighbors_of(index, radius)
        return [self.particles[j] for j in found]

    def stats(self) -> PopulationStats:
        energies = np.array([p.energy for p in self.particles])
        colors = np.array([p.color for p in self.particles])
        mean_rgb = np.clip(colors.mean(axis=0), 0.0, 1.0)
        r, g, b = (int(round(c * 255)) for c in mean_rgb)
        mean_traits = {
            name: float(np.mean([getattr(p.traits, name) for p in self.particles]))
            for name in SCALAR_TRAITS
        }
        return PopulationStats(
            count=len(self.particles),
            average_energy=float(energies.mean()),
            max_generation=max(p.generation for p in self.particles),
            dominant_color=f"#{r:02x}{g:02x}{b:02x}",
            mean_traits=mean_traits,
        )
