"""
Noise reporter that reports without regard to any information.

Noise reporters stand in for careless or manipulative participants: the
truth serum should score them below honest reporters, and the consensus
should resist being dragged by them.
"""

from dataclasses import dataclass
from enum import Enum, auto

import numpy as np

from .base import Reporter


class NoiseReporterType(Enum):
    """Types of uninformed reporting."""
    RANDOM = auto()     # Uniformly random belief and meta-prediction
    BIASED = auto()     # Always pushes the same value regardless of the truth


@dataclass
class NoiseReporter(Reporter):
    """
    An uninformed reporter.

    Attributes:
        reporter_type: What kind of noise to produce
        bias_value: For BIASED, the belief always reported
        meta_value: For BIASED, the meta-prediction always reported
    """
    reporter_type: NoiseReporterType = NoiseReporterType.RANDOM
    bias_value: float = 0.9
    meta_value: float = 0.5

    def __post_init__(self):
        if not 0 <= self.bias_value <= 1:
            raise ValueError(f"bias_value must be in [0, 1], got {self.bias_value}")
        if not 0 <= self.meta_value <= 1:
            raise ValueError(f"meta_value must be in [0, 1], got {self.meta_value}")

    def report(self, true_state: int, prior: float, rng: np.random.Generator) -> tuple[float, float]:
        if self.reporter_type == NoiseReporterType.BIASED:
            return self.bias_value, self.meta_value
        return float(rng.uniform(0.05, 0.95)), float(rng.uniform(0.05, 0.95))
