"""
Protocol participants.

An Agent is a registered account with a stake that weights its reports. A
Reporter is a simulated agent that turns a latent true state into a
(belief, meta-prediction) report. Different reporter types (honest, noise)
stand in for truthful and strategic or careless participants.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np


@dataclass
class Agent:
    """
    A registered participant.

    Attributes:
        agent_id: Unique identifier
        stake: Stake weighting the agent's reports (never negative)
        address: Ledger owner key for currency and token balances
    """
    agent_id: str
    stake: float = 0.0
    address: str = ""

    def __post_init__(self):
        if self.stake < 0:
            raise ValueError(f"stake must be non-negative, got {self.stake}")
        if not self.address:
            self.address = self.agent_id

    def add_stake(self, amount: float) -> None:
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        self.stake += amount

    def remove_stake(self, amount: float) -> None:
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        if amount > self.stake:
            raise ValueError(f"cannot remove {amount}, stake is only {self.stake}")
        self.stake -= amount


@dataclass
class Reporter(ABC):
    """
    Abstract simulated agent producing reports.

    Attributes:
        agent_id: Identifier matching a registered Agent
        stake: Stake the simulation registers for this reporter
    """
    agent_id: str
    stake: float = 1.0

    def to_agent(self) -> Agent:
        return Agent(agent_id=self.agent_id, stake=self.stake)

    @abstractmethod
    def report(self, true_state: int, prior: float, rng: np.random.Generator) -> tuple[float, float]:
        """
        Produce a report for one belief in one epoch.

        Args:
            true_state: Latent state of the proposition (0 or 1)
            prior: Common prior probability of state 1
            rng: Random number generator

        Returns:
            Tuple of (belief, meta_prediction), both in [0, 1]
        """
        pass
