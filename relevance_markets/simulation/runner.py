"""
Multi-epoch simulation runner.

Orchestrates the interaction between reporters, beliefs, pools and the
treasury over many epochs, collecting the aggregate, reserve, k and treasury
trajectories for analysis.
"""

from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from ..agents.base import Reporter
from ..markets.curve import TOKEN_UNIT
from ..protocol import Protocol
from ..settlement.orchestrator import EpochReport


@dataclass
class SimulationConfig:
    """
    Configuration for a simulation run.

    Attributes:
        n_epochs: Number of epochs to settle
        n_contents: Number of content items (one belief and one pool each)
        prior: Probability that a content item's latent state is 1
        k_quadratic: Initial curve steepness of every pool
        initial_liquidity: Currency bought into each pool at genesis, atomic units
        treasury_seed: Currency placed in the treasury at genesis, atomic units
        belief_duration: Epochs each belief stays active
        random_seed: Random seed for reproducibility
    """
    n_epochs: int = 20
    n_contents: int = 3
    prior: float = 0.5
    k_quadratic: int = 200
    initial_liquidity: int = 100 * TOKEN_UNIT
    treasury_seed: int = 0
    belief_duration: int = 1_000
    random_seed: int | None = None

    def __post_init__(self):
        if self.n_epochs < 1:
            raise ValueError(f"n_epochs must be positive, got {self.n_epochs}")
        if self.n_contents < 1:
            raise ValueError(f"n_contents must be positive, got {self.n_contents}")
        if not 0 < self.prior < 1:
            raise ValueError(f"prior must be in (0, 1), got {self.prior}")


@dataclass
class SimulationResult:
    """
    Results from a simulation run.
    """
    config: SimulationConfig
    true_states: np.ndarray         # Shape: (n_contents,)
    aggregate_history: np.ndarray   # Shape: (n_epochs + 1, n_contents), row 0 = initial
    reserve_history: np.ndarray     # Shape: (n_epochs + 1, n_contents)
    k_history: np.ndarray           # Shape: (n_epochs + 1, n_contents)
    treasury_history: np.ndarray    # Shape: (n_epochs + 1,)
    agent_scores: dict[str, float]  # Cumulative BTS score per reporter
    reports: list[EpochReport] = field(default_factory=list, repr=False)

    @property
    def final_aggregates(self) -> np.ndarray:
        return self.aggregate_history[-1]


@dataclass
class EpochSimulation:
    """
    Runs reporters through repeated epoch settlement on a fresh Protocol.
    """
    reporters: list[Reporter]
    config: SimulationConfig = field(default_factory=SimulationConfig)

    rng: np.random.Generator = field(default=None, repr=False)
    protocol: Protocol = field(default=None, repr=False)
    true_states: np.ndarray = field(default=None, repr=False)
    belief_ids: list[str] = field(default_factory=list, repr=False)
    content_ids: list[str] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if len(self.reporters) < 2:
            raise ValueError(f"need at least 2 reporters, got {len(self.reporters)}")
        self.rng = np.random.default_rng(self.config.random_seed)

    def setup(self) -> None:
        """
        Build the protocol: factory, treasury, reporters, pools and beliefs.
        """
        cfg = self.config
        self.protocol = Protocol()
        self.protocol.initialize_factory("factory-authority", "pool-authority")
        treasury = self.protocol.initialize_treasury("treasury-authority")
        if cfg.treasury_seed > 0:
            self.protocol.fund(treasury.vault, cfg.treasury_seed)

        for reporter in self.reporters:
            self.protocol.register_agent(reporter.agent_id, stake=reporter.stake)

        self.true_states = self.rng.binomial(1, cfg.prior, size=cfg.n_contents)
        self.content_ids = [f"content-{i}" for i in range(cfg.n_contents)]
        self.belief_ids = []
        for content_id in self.content_ids:
            self.protocol.initialize_pool(content_id, cfg.k_quadratic, content_id, content_id[:8].upper())
            self.protocol.fund("liquidity", cfg.initial_liquidity)
            self.protocol.buy(content_id, "liquidity", cfg.initial_liquidity)
            belief = self.protocol.create_belief(
                content_id, creator="liquidity", initial_value=cfg.prior, duration=cfg.belief_duration
            )
            self.belief_ids.append(belief.belief_id)

    def step(self) -> EpochReport:
        """Collect one round of reports for every belief and settle the epoch."""
        for belief_id, state in zip(self.belief_ids, self.true_states):
            for reporter in self.reporters:
                belief, meta = reporter.report(int(state), self.config.prior, self.rng)
                self.protocol.submit(belief_id, reporter.agent_id, belief, meta)
        return self.protocol.process_epoch()

    def run(self, progress_callback: Callable[[int, int], None] | None = None) -> SimulationResult:
        """
        Run the full simulation.

        Args:
            progress_callback: Optional callback(current_epoch, total_epochs)

        Returns:
            SimulationResult with all collected trajectories
        """
        self.setup()
        aggregates = [self._aggregates()]
        reserves = [self._reserves()]
        ks = [self._ks()]
        treasury = [self.protocol.treasury.vault_balance]
        agent_scores = {r.agent_id: 0.0 for r in self.reporters}
        reports = []

        for epoch in range(self.config.n_epochs):
            report = self.step()
            reports.append(report)
            for settlement in report.processed:
                for agent_id, score in settlement.scores.bts_scores.items():
                    agent_scores[agent_id] += score

            aggregates.append(self._aggregates())
            reserves.append(self._reserves())
            ks.append(self._ks())
            treasury.append(self.protocol.treasury.vault_balance)
            if progress_callback is not None:
                progress_callback(epoch + 1, self.config.n_epochs)

        return SimulationResult(
            config=self.config,
            true_states=self.true_states,
            aggregate_history=np.array(aggregates),
            reserve_history=np.array(reserves, dtype=float),
            k_history=np.array(ks, dtype=float),
            treasury_history=np.array(treasury, dtype=float),
            agent_scores=agent_scores,
            reports=reports,
        )

    def _aggregates(self) -> list[float]:
        return [self.protocol.get_belief(b).previous_aggregate for b in self.belief_ids]

    def _reserves(self) -> list[int]:
        return [self.protocol.get_pool(c).reserve for c in self.content_ids]

    def _ks(self) -> list[int]:
        return [self.protocol.get_pool(c).k_quadratic for c in self.content_ids]
