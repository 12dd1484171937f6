"""
Honest reporter: Bayesian updating on a private binary signal.

The reporter sees a signal that matches the true state with probability
`accuracy`, reports its posterior as the belief, and reports as the
meta-prediction the posterior it expects a random other reporter to hold,
given its own signal. This is the truthful equilibrium report under the
common-prior model that the decomposer fits.
"""

from dataclasses import dataclass

import numpy as np

from .base import Reporter


def posterior(prior: float, accuracy: float, signal: int) -> float:
    """P(state = 1 | signal) for a symmetric binary signal."""
    like_one = accuracy if signal == 1 else 1 - accuracy
    like_zero = 1 - accuracy if signal == 1 else accuracy
    return prior * like_one / (prior * like_one + (1 - prior) * like_zero)


@dataclass
class HonestReporter(Reporter):
    """
    Truthful Bayesian reporter.

    Attributes:
        accuracy: Probability the private signal equals the true state
        report_noise: Std dev of Gaussian jitter added to both reports
    """
    accuracy: float = 0.75
    report_noise: float = 0.0

    def __post_init__(self):
        if not 0.5 <= self.accuracy < 1:
            raise ValueError(f"accuracy must be in [0.5, 1), got {self.accuracy}")
        if self.report_noise < 0:
            raise ValueError(f"report_noise must be non-negative, got {self.report_noise}")

    def report(self, true_state: int, prior: float, rng: np.random.Generator) -> tuple[float, float]:
        signal = true_state if rng.random() < self.accuracy else 1 - true_state
        belief = posterior(prior, self.accuracy, signal)

        # Probability another reporter sees signal 1, given my posterior
        p_other_one = belief * self.accuracy + (1 - belief) * (1 - self.accuracy)
        meta = (
            p_other_one * posterior(prior, self.accuracy, 1)
            + (1 - p_other_one) * posterior(prior, self.accuracy, 0)
        )

        if self.report_noise > 0:
            belief += rng.normal(0, self.report_noise)
            meta += rng.normal(0, self.report_noise)
        return float(np.clip(belief, 0.01, 0.99)), float(np.clip(meta, 0.01, 0.99))
