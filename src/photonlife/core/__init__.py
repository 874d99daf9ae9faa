"""Simulation core: audio bands, traits, particles and neighbor search."""

from photonlife.core.audio import AudioFeatureSample, BandAnalyzer, BandInfluence
from photonlife.core.neighbors import NeighborIndex
from photonlife.core.particle import Neighborhood, Particle
from photonlife.core.traits import FlowPattern, TraitSet
