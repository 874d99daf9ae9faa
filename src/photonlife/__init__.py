"""Audio-reactive evolving particle simulation."""

from photonlife.config import SimulationConfig
from photonlife.core.audio import AudioFeatureSample, BandAnalyzer, BandInfluence
from photonlife.core.neighbors import NeighborIndex
from photonlife.core.particle import Particle
from photonlife.core.traits import FlowPattern, TraitSet
from photonlife.system import EvolutionEvent, ParticleSystem, PopulationStats

__version__ = "0.1.0"
__all__ = [
    "AudioFeatureSample",
    "BandAnalyzer",
    "BandInfluence",
    "EvolutionEvent",
    "FlowPattern",
    "NeighborIndex",
    "Particle",
    "ParticleSystem",
    "PopulationStats",
    "SimulationConfig",
    "TraitSet",
]
