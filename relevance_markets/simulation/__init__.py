"""Simulation infrastructure for multi-epoch settlement experiments."""

from .runner import EpochSimulation, SimulationConfig, SimulationResult

__all__ = [
    "EpochSimulation",
    "SimulationConfig",
    "SimulationResult",
]
