"""
Simulation configuration.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SimulationConfig:
    """Constants for a particle system. Not mutable once a system is built."""

    population_size: int = 2000
    bounds: float = 10.0  # half-extent of the world cube

    # Neighbor search
    max_neighbors: int = 15
    neighbor_radius: float = 3.0  # widest flocking radius (cohesion)
    neighbor_refresh_period: int = 5  # ticks between index rebuilds

    # Audio analysis
    band_refresh_interval: float = 0.033  # simulated seconds
    band_smoothing: float = 0.0

    # Traits & evolution
    mutation_step: float = 0.01
    evolution_period: float = 5.0  # simulated seconds between triggers
    inherit_traits: bool = False  # founders' traits inherited instead of sampled

    # Motion
    initial_speed: float = 0.01  # per-axis half-range of initial velocity
    max_speed_base: float = 0.1
    max_speed_volume_gain: float = 1.0  # maxSpeed = base * (1 + gain * volume / 100)
    bounce_damping: float = 0.8

    # Color dynamics
    color_evolution_probability: float = 0.1
    color_diffusion_probability: float = 0.005
    color_diffusion_weight: float = 0.02

    # Energy
    initial_energy: float = 100.0
    energy_min: float = 10.0
    energy_max: float = 200.0
    energy_decay: float = 0.1

    # History
    evolution_log_size: int = 256

    def __post_init__(self):
        if self.population_size <= 0:
            raise ValueError(f"population_size must be > 0, got {self.population_size}")
        for name in ("bounds", "neighbor_radius", "evolution_period", "max_speed_base"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")
        if self.max_neighbors < 0:
            raise ValueError(f"max_neighbors must be >= 0, got {self.max_neighbors}")
        if self.neighbor_refresh_period < 1:
            raise ValueError(
                f"neighbor_refresh_period must be >= 1, got {self.neighbor_refresh_period}"
            )
        if self.band_refresh_interval < 0:
            raise ValueError(
                f"band_refresh_interval must be >= 0, got {self.band_refresh_interval}"
            )
        for name in (
            "color_evolution_probability",
            "color_diffusion_probability",
            "color_diffusion_weight",
            "bounce_damping",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if self.energy_min > self.energy_max:
            raise ValueError(
                f"energy_min ({self.energy_min}) must not exceed energy_max ({self.energy_max})"
            )

    def max_speed(self, volume: float) -> float:
        return self.max_speed_base * (1.0 + self.max_speed_volume_gain * volume / 100.0)
