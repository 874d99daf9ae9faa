"""
Heritable behavioral parameters of a particle.

Every scalar trait lives in [0, 1]. All mutation goes through `nudge`,
which saturates at the range limits, so an out-of-range trait cannot be
produced.
"""

import enum
from dataclasses import dataclass, fields, replace

import numpy as np


class FlowPattern(str, enum.Enum):
    """Motion archetype applied as an extra force term."""

    SWARM = "swarm"
    SPIRAL = "spiral"
    WAVE = "wave"
    ATTRACTOR = "attractor"
    # Golden-ratio wave superposition used by the legacy preset.
    HARMONIC = "harmonic"


# Patterns drawn when traits are sampled at random.
CANONICAL_PATTERNS = (
    FlowPattern.SWARM,
    FlowPattern.SPIRAL,
    FlowPattern.WAVE,
    FlowPattern.ATTRACTOR,
)

SCALAR_TRAITS = (
    "sociability",
    "energy_efficiency",
    "color_evolution_rate",
    "velocity_inheritance",
)


def clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


@dataclass
class TraitSet:
    """A particle's behavioral parameters."""

    flow_pattern: FlowPattern = FlowPattern.SWARM
    sociability: float = 0.5
    energy_efficiency: float = 0.5
    color_evolution_rate: float = 0.5
    velocity_inheritance: float = 0.5

    def __post_init__(self):
        self.flow_pattern = FlowPattern(self.flow_pattern)
        for name in SCALAR_TRAITS:
            setattr(self, name, clamp_unit(getattr(self, name)))

    def nudge(self, name: str, delta: float) -> float:
        """Add `delta` to a scalar trait, saturating at [0, 1]."""
        if name not in SCALAR_TRAITS:
            raise KeyError(f"Unknown trait: {name}")
        value = clamp_unit(getattr(self, name) + delta)
        setattr(self, name, value)
        return value

    def copy(self) -> "TraitSet":
        return replace(self)

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def legacy(cls) -> "TraitSet":
        """Preset reproducing the simple, non-evolving engine."""
        return cls(
            flow_pattern=FlowPattern.HARMONIC,
            sociability=0.0,
            energy_efficiency=0.5,
            color_evolution_rate=0.0,
            velocity_inheritance=0.0,
        )

    @classmethod
    def random(cls, rng: np.random.Generator) -> "TraitSet":
        pattern = CANONICAL_PATTERNS[int(rng.integers(len(CANONICAL_PATTERNS)))]
        return cls(
            flow_pattern=pattern,
            sociability=rng.uniform(0.2, 0.8),
            energy_efficiency=rng.uniform(0.2, 0.8),
            color_evolution_rate=rng.uniform(0.1, 0.9),
            velocity_inheritance=rng.uniform(0.1, 0.9),
        )

    @classmethod
    def inherit(
        cls,
        parent: "TraitSet",
        rng: np.random.Generator,
        step: float = 0.01,
        pattern_flip_probability: float = 0.05,
    ) -> "TraitSet":
        """
        Build a mutated copy of a parent's traits.

        Args:
            parent: Trait set to inherit from.
            rng: Seeded generator supplying the mutation jitter.
            step: Jitter scale; each scalar moves by up to +/- 5 * step.
            pattern_flip_probability: Chance of switching to another
                canonical flow pattern.

        Returns:
            New TraitSet with every scalar clamped to [0, 1].
        """
        child = parent.copy()
        for name in SCALAR_TRAITS:
            child.nudge(name, rng.uniform(-5.0 * step, 5.0 * step))
        if rng.random() < pattern_flip_probability:
            child.flow_pattern = CANONICAL_PATTERNS[int(rng.integers(len(CANONICAL_PATTERNS)))]
        return child
