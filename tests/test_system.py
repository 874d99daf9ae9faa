"""Tests for ParticleSystem orchestration and population-level invariants."""

import re

import numpy as np
import pytest

from photonlife.config import SimulationConfig
from photonlife.core.audio import AudioFeatureSample
from photonlife.core.particle import Particle
from photonlife.core.traits import CANONICAL_PATTERNS, SCALAR_TRAITS
from photonlife.system import EvolutionEvent, ParticleSystem, PopulationStats

FRAME_DT = 1.0 / 60.0

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _system(n: int = 50, seed: int = 7, **kwargs) -> ParticleSystem:
    return ParticleSystem(SimulationConfig(population_size=n, **kwargs), seed=seed)


def _run(system: ParticleSystem, sample, ticks: int, dt: float = FRAME_DT):
    for _ in range(ticks):
        system.tick(sample, dt)


def _speeds(system: ParticleSystem) -> np.ndarray:
    return np.array([np.linalg.norm(p.velocity) for p in system.particles])


# ---------------------------------------------------------------------------
# Initialisation
# ---------------------------------------------------------------------------

class TestInitialize:
    def test_population_and_buffers(self):
        system = _system(n=40)
        assert len(system) == 40
        assert system.positions.shape == (120,)
        assert system.colors.shape == (120,)
        assert system.positions.dtype == np.float32

    def test_positions_within_bounds(self):
        system = _system(n=200, bounds=5.0)
        assert np.all(np.abs(system.positions) <= 5.0)

    def test_buffers_mirror_particles(self):
        system = _system(n=10)
        for i, p in enumerate(system.particles):
            assert np.allclose(system.positions[i * 3:i * 3 + 3], p.position)
            assert np.allclose(system.colors[i * 3:i * 3 + 3], p.color)

    def test_zero_population_fails_fast(self):
        with pytest.raises(ValueError):
            _system(n=0)

    def test_reinitialize(self):
        system = _system(n=20)
        system.initialize(10, 2.0)
        assert len(system) == 10
        assert system.cfg.population_size == 10
        assert np.all(np.abs(system.positions) <= 2.0)
        assert system.tick_count == 0

    @pytest.mark.parametrize("size,bounds", [(0, 10.0), (-5, 10.0), (10, 0.0)])
    def test_initialize_rejects_bad_arguments(self, size, bounds):
        system = _system(n=5)
        with pytest.raises(ValueError):
            system.initialize(size, bounds)

    def test_inherited_traits(self):
        system = _system(n=100, inherit_traits=True)
        for p in system.particles:
            assert p.traits.flow_pattern in CANONICAL_PATTERNS
            assert all(0.0 <= getattr(p.traits, name) <= 1.0 for name in SCALAR_TRAITS)
        # Founder lineages limit the number of distinct patterns.
        assert len({p.traits.flow_pattern for p in system.particles}) <= 4

    def test_particles_have_independent_traits(self):
        system = _system(n=5)
        system.particles[0].traits.nudge("sociability", 0.3)
        assert system.particles[1].traits is not system.particles[0].traits


# ---------------------------------------------------------------------------
# Invariants over many ticks
# ---------------------------------------------------------------------------

class TestInvariants:
    def test_population_size_constant(self, loud_sample):
        system = _system(n=30)
        _run(system, loud_sample, 50)
        assert len(system) == 30
        assert system.positions.shape == (90,)

    def test_energy_bounds(self, loud_sample, silent_sample):
        system = _system(n=30)
        for sample in (loud_sample, silent_sample):
            for _ in range(150):
                system.tick(sample, FRAME_DT)
                energies = np.array([p.energy for p in system.particles])
                assert np.all((energies >= 10.0) & (energies <= 200.0))

    def test_positions_within_bounds(self, loud_sample):
        system = _system(n=60, bounds=3.0)
        for _ in range(200):
            positions, _ = system.tick(loud_sample, 0.1)
            assert np.all(np.abs(positions) <= 3.0)

    def test_traits_stay_in_unit_range(self, loud_sample, silent_sample):
        system = _system(n=20)
        _run(system, loud_sample, 200, dt=0.05)
        _run(system, AudioFeatureSample(volume=0.0, tempo=20.0), 200, dt=0.05)
        for p in system.particles:
            assert all(0.0 <= getattr(p.traits, name) <= 1.0 for name in SCALAR_TRAITS)

    def test_colors_in_unit_range(self, sample_sequence):
        system = _system(n=40)
        for sample in sample_sequence:
            _, colors = system.tick(sample, FRAME_DT)
        assert np.all((colors >= 0.0) & (colors <= 1.0))

    def test_state_finite(self, sample_sequence):
        system = _system(n=40)
        for sample in sample_sequence * 3:
            positions, colors = system.tick(sample, FRAME_DT)
        assert np.all(np.isfinite(positions))
        assert np.all(np.isfinite(colors))


class TestSpeed:
    def test_silence_respects_base_speed(self, silent_sample):
        system = _system(n=60)
        for _ in range(100):
            system.tick(silent_sample, FRAME_DT)
            assert np.all(_speeds(system) <= 0.1 + 1e-12)

    def test_loud_speed_cap(self, loud_sample):
        system = _system(n=60)
        assert system.cfg.max_speed(loud_sample.volume) == pytest.approx(0.2)
        for _ in range(100):
            system.tick(loud_sample, 0.05)
            assert np.all(_speeds(system) <= 0.2 + 1e-12)

    def test_louder_music_moves_faster(self, loud_sample, silent_sample):
        quiet = _system(n=60, seed=11)
        loud = _system(n=60, seed=11)
        quiet_speeds = []
        loud_speeds = []
        for _ in range(500):
            quiet.tick(silent_sample, 0.05)
            loud.tick(loud_sample, 0.05)
            quiet_speeds.append(_speeds(quiet).mean())
            loud_speeds.append(_speeds(loud).mean())
        assert np.mean(loud_speeds) > np.mean(quiet_speeds)


# ---------------------------------------------------------------------------
# Determinism
# ---------------------------------------------------------------------------

class TestDeterminism:
    def test_same_seed_same_buffers(self, sample_sequence):
        a = _system(n=40, seed=3)
        b = _system(n=40, seed=3)
        for sample in sample_sequence:
            pos_a, col_a = a.tick(sample, FRAME_DT)
            pos_b, col_b = b.tick(sample, FRAME_DT)
            assert np.array_equal(pos_a, pos_b)
            assert np.array_equal(col_a, col_b)

    def test_different_seed_differs(self, loud_sample):
        a = _system(n=20, seed=1)
        b = _system(n=20, seed=2)
        assert not np.array_equal(a.tick(loud_sample, FRAME_DT)[0], b.tick(loud_sample, FRAME_DT)[0])


# ---------------------------------------------------------------------------
# Tick orchestration
# ---------------------------------------------------------------------------

class TestTick:
    def test_accepts_plain_dict(self):
        system = _system(n=10)
        positions, colors = system.tick({"volume": 60, "bpm": 128, "pitch": 500, "frequency": [0.4] * 8}, FRAME_DT)
        assert positions.shape == (30,)
        assert system.tick_count == 1

    def test_short_bands_do_not_fail(self):
        system = _system(n=10)
        system.tick(AudioFeatureSample(volume=50.0, bands=[0.3, 0.2]), FRAME_DT)
        assert system.tick_count == 1

    def test_bad_dt_treated_as_zero(self, loud_sample):
        system = _system(n=10)
        system.tick(loud_sample, float("nan"))
        system.tick(loud_sample, -1.0)
        assert system.time == 0.0
        assert all(p.age == 0.0 for p in system.particles)

    def test_buffers_updated_each_tick(self, loud_sample):
        system = _system(n=20)
        before = system.positions.copy()
        positions, _ = system.tick(loud_sample, FRAME_DT)
        assert not np.array_equal(before, positions)
        for i, p in enumerate(system.particles):
            assert np.allclose(positions[i * 3:i * 3 + 3], p.position, atol=1e-6)

    def test_neighbor_refresh_period(self, silent_sample):
        system = _system(n=20, neighbor_refresh_period=5)
        built = []
        for _ in range(11):
            system.tick(silent_sample, FRAME_DT)
            built.append(system.neighbor_index.built_at_tick)
        assert built == [0] * 5 + [5] * 5 + [10]

    def test_neighbors_of(self, silent_sample):
        system = _system(n=200, bounds=3.0)
        system.tick(silent_sample, FRAME_DT)
        target = system.particles[0]
        neighbors = system.neighbors_of(target)
        assert 0 < len(neighbors) <= 15
        assert target not in neighbors
        assert all(isinstance(n, Particle) for n in neighbors)
        assert system.neighbors_of(0) == neighbors
        assert len(system.neighbors_of(target, radius=1.0)) <= len(neighbors)

    def test_neighbors_before_first_tick(self):
        system = _system(n=200, bounds=2.0)
        assert system.neighbor_index.built_at_tick == 0
        assert 0 < len(system.neighbors_of(0)) <= 15

    def test_first_tick_reuses_initial_index(self, silent_sample):
        system = _system(n=20)
        before = system.neighbor_index.indices_of(3).copy()
        system.tick(silent_sample, FRAME_DT)
        assert system.neighbor_index.built_at_tick == 0
        assert np.array_equal(system.neighbor_index.indices_of(3), before)

    def test_wider_radius_matches_brute_force(self, silent_sample):
        system = _system(n=30, seed=1)
        system.tick(silent_sample, FRAME_DT)
        radius = 8.0
        positions = np.array([p.position for p in system.particles])
        distances = np.linalg.norm(positions - positions[0], axis=1)
        order = [j for j in np.argsort(distances) if j != 0 and distances[j] < radius]
        expected = [system.particles[j] for j in order[:system.cfg.max_neighbors]]

        found = system.neighbors_of(0, radius=radius)
        assert len(found) > 0
        assert found == expected

    def test_neighbors_of_foreign_particle(self):
        system = _system(n=5)
        stranger = _system(n=5, seed=99).particles[0]
        with pytest.raises(ValueError):
            system.neighbors_of(stranger)


# ---------------------------------------------------------------------------
# Evolution history and statistics
# ---------------------------------------------------------------------------

class TestEvolutionLog:
    def test_every_particle_evolves_once(self, silent_sample):
        system = _system(n=12, evolution_period=0.55)
        _run(system, silent_sample, 10, dt=0.1)
        assert len(system.evolution_log) == 12
        assert all(isinstance(e, EvolutionEvent) for e in system.evolution_log)
        assert [e.particle_index for e in system.evolution_log] == list(range(12))
        assert all(e.generation == 2 for e in system.evolution_log)

    def test_generation_monotonic(self, loud_sample):
        system = _system(n=10, evolution_period=0.2)
        previous = [p.generation for p in system.particles]
        for _ in range(30):
            system.tick(loud_sample, 0.1)
            current = [p.generation for p in system.particles]
            assert all(c >= p for c, p in zip(current, previous))
            previous = current

    def test_log_is_bounded(self, silent_sample):
        system = _system(n=20, evolution_period=0.1, evolution_log_size=8)
        _run(system, silent_sample, 20, dt=0.1)
        assert len(system.evolution_log) == 8

    def test_logged_traits_are_snapshots(self, silent_sample):
        system = _system(n=3, evolution_period=0.55)
        _run(system, silent_sample, 6, dt=0.1)
        event = system.evolution_log[0]
        system.particles[event.particle_index].traits.nudge("sociability", 0.5)
        assert event.traits is not system.particles[event.particle_index].traits


class TestStats:
    def test_stats(self, loud_sample):
        system = _system(n=25)
        _run(system, loud_sample, 20)
        stats = system.stats()
        assert isinstance(stats, PopulationStats)
        assert stats.count == 25
        assert 10.0 <= stats.average_energy <= 200.0
        assert stats.max_generation >= 1
        assert re.fullmatch(r"#[0-9a-f]{6}", stats.dominant_color)
        assert set(stats.mean_traits) == set(SCALAR_TRAITS)


class TestConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"population_size": 0},
            {"bounds": -1.0},
            {"neighbor_refresh_period": 0},
            {"color_evolution_probability": 1.5},
            {"energy_min": 300.0},
            {"max_neighbors": -1},
        ],
    )
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            SimulationConfig(**kwargs)

    def test_max_speed_formula(self):
        cfg = SimulationConfig()
        assert cfg.max_speed(0.0) == pytest.approx(0.1)
        assert cfg.max_speed(100.0) == pytest.approx(0.2)

    def test_config_frozen(self):
        cfg = SimulationConfig()
        with pytest.raises(Exception):
            cfg.bounds = 5.0
