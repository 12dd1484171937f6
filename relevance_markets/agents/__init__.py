"""Participants and simulated reporters."""

from .base import Agent, Reporter
from .honest import HonestReporter, posterior
from .noise import NoiseReporter, NoiseReporterType

__all__ = [
    # Base classes
    "Agent",
    "Reporter",
    # Reporter types
    "HonestReporter",
    "NoiseReporter",
    "NoiseReporterType",
    "posterior",
]
