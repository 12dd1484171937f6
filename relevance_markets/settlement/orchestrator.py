"""
Epoch settlement orchestrator.

One settlement pass per epoch:

1. Expire beliefs whose duration has elapsed.
2. For every active belief with at least two submissions this epoch, build
   stake weights, decompose, score the reports against their leave-one-out
   consensus and overwrite the belief's settled aggregate. Agent stake moves
   from losers to winners in proportion to the disagreement resolved since
   the previous settlement.
3. Collect every pool penalty into the treasury.
4. Fund the reward requests from the treasury, scaled down if it cannot
   cover them all.

Each belief settles independently. A decomposition failure or a rejected
pool call is recorded in the epoch's error list and leaves that belief's
aggregate (or that pool) as it was, while the rest of the epoch proceeds.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..agents.base import Agent
from ..beliefs.book import BeliefBook
from ..beliefs.decomposition import BeliefDecomposer, DecompositionConfig
from ..beliefs.models import Belief, BeliefSubmission
from ..beliefs.scoring import ScoringResult, score_submissions
from ..beliefs.weights import EPSILON_STAKES, calculate_weights
from ..errors import SettlementError
from ..markets.factory import PoolFactory
from ..markets.pool import ContentPool
from ..markets.treasury import ProtocolTreasury
from .redistribution import (
    RedistributionConfig,
    StakeRedistribution,
    allocate_rewards,
    learning_rate,
    redistribute_stakes,
    size_adjustment,
)

logger = logging.getLogger(__name__)


@dataclass
class SettlementConfig:
    """
    Configuration for epoch settlement.

    Attributes:
        decomposition: Decomposer settings and gates
        redistribution: Penalty/reward rate caps
        stake_epsilon: Total stake below which weights fall back to equal
        redistribute_stake: Move agent stake from losers to winners
    """
    decomposition: DecompositionConfig = field(default_factory=DecompositionConfig)
    redistribution: RedistributionConfig = field(default_factory=RedistributionConfig)
    stake_epsilon: float = EPSILON_STAKES
    redistribute_stake: bool = True

    def __post_init__(self):
        if self.stake_epsilon <= 0:
            raise ValueError(f"stake_epsilon must be positive, got {self.stake_epsilon}")


@dataclass
class BeliefSettlement:
    """
    Outcome of settling one belief in one epoch.
    """
    belief_id: str
    content_id: str
    aggregate: float
    previous_aggregate: float
    certainty: float
    decomposition_quality: float
    scores: ScoringResult
    penalty: int = 0
    reward_request: int = 0
    reward: int = 0
    redistribution_occurred: bool = False
    stakes: StakeRedistribution = field(default_factory=StakeRedistribution)

    @property
    def delta(self) -> float:
        return self.aggregate - self.previous_aggregate


@dataclass
class EpochError:
    """A belief-level failure recorded for an epoch."""
    belief_id: str
    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, belief_id: str, exc: SettlementError) -> "EpochError":
        detail = exc.to_dict()
        return cls(belief_id, detail["code"], detail["message"], detail["context"])


@dataclass
class EpochReport:
    """
    Everything a settlement pass produced.
    """
    epoch: int
    processed: list[BeliefSettlement] = field(default_factory=list)
    errors: list[EpochError] = field(default_factory=list)
    expired_beliefs: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def next_epoch(self) -> int:
        return self.epoch + 1

    @property
    def total_penalties(self) -> int:
        return sum(s.penalty for s in self.processed)

    @property
    def total_rewards(self) -> int:
        return sum(s.reward for s in self.processed)


@dataclass
class EpochSettlementOrchestrator:
    """
    Drives settlement across beliefs, pools and the treasury.

    The orchestrator holds no state of its own between epochs; it reads and
    writes the belief book, the pools and the treasury it is given.
    """
    book: BeliefBook
    agents: Mapping[str, Agent]
    factory: PoolFactory | None = None
    treasury: ProtocolTreasury | None = None
    config: SettlementConfig = field(default_factory=SettlementConfig)
    authority: str | None = None

    decomposer: BeliefDecomposer = field(init=False, repr=False)

    def __post_init__(self):
        self.decomposer = BeliefDecomposer(self.config.decomposition)

    def process_epoch(self, epoch: int) -> EpochReport:
        """
        Settle every eligible belief for an epoch.

        Args:
            epoch: Epoch being settled

        Returns:
            EpochReport with processed beliefs, errors, expirations and skips
        """
        logger.info("Processing epoch %d", epoch)
        report = EpochReport(epoch=epoch, expired_beliefs=self.book.expire(epoch))

        for belief in sorted(self.book.active_beliefs(), key=lambda b: b.belief_id):
            if belief.last_processed_epoch is not None and belief.last_processed_epoch >= epoch:
                report.skipped.append(belief.belief_id)
                continue
            submissions = self.book.submissions_for(belief.belief_id, epoch)
            if len(submissions) < 2:
                report.skipped.append(belief.belief_id)
                continue
            try:
                settlement = self._settle_belief(belief, submissions, epoch)
            except SettlementError as exc:
                logger.warning(
                    "Belief %s failed to settle at epoch %d: %s", belief.belief_id, epoch, exc.message
                )
                report.errors.append(EpochError.from_exception(belief.belief_id, exc))
                continue
            report.processed.append(settlement)

        self._collect_penalties(report)
        self._distribute_rewards(report)

        logger.info(
            "Epoch %d settled: %d processed, %d errors, %d expired, penalties=%d rewards=%d",
            epoch, len(report.processed), len(report.errors), len(report.expired_beliefs),
            report.total_penalties, report.total_rewards,
        )
        return report

    def _settle_belief(
        self,
        belief: Belief,
        submissions: list[BeliefSubmission],
        epoch: int,
    ) -> BeliefSettlement:
        stakes = {}
        for submission in submissions:
            agent = self.agents.get(submission.agent_id)
            stakes[submission.agent_id] = agent.stake if agent is not None else 0.0
        weights = calculate_weights(stakes, self.config.stake_epsilon)

        result = self.decomposer.decompose(submissions, weights)
        scores = score_submissions(result, submissions)

        settlement = BeliefSettlement(
            belief_id=belief.belief_id,
            content_id=belief.content_id,
            aggregate=result.aggregate,
            previous_aggregate=belief.previous_aggregate,
            certainty=result.certainty,
            decomposition_quality=result.decomposition_quality,
            scores=scores,
        )

        if self.config.redistribute_stake:
            rate = learning_rate(
                belief.previous_disagreement, result.jensen_shannon_disagreement_entropy
            )
            known = {a: s for a, s in stakes.items() if a in self.agents}
            settlement.stakes = redistribute_stakes(scores, known, rate)
            self._move_stake(settlement.stakes)

        belief.previous_aggregate = result.aggregate
        belief.certainty = result.certainty
        belief.previous_disagreement = result.jensen_shannon_disagreement_entropy
        belief.last_processed_epoch = epoch

        pool = self._pool_for(belief)
        if pool is not None:
            settlement.penalty, settlement.reward_request = size_adjustment(
                settlement.delta,
                settlement.certainty,
                scores.informativeness,
                pool.reserve,
                self.config.redistribution,
            )
        return settlement

    def _move_stake(self, moved: StakeRedistribution) -> None:
        for agent_id, amount in moved.slashes.items():
            self.agents[agent_id].remove_stake(amount)
        for agent_id, amount in moved.rewards.items():
            if amount > 0:
                self.agents[agent_id].add_stake(amount)
        if moved.occurred:
            logger.debug(
                "Moved %.6f stake from %d losers to %d winners (rate %.4f)",
                moved.slashing_pool, len(moved.slashes), len(moved.rewards), moved.learning_rate,
            )

    def _signer(self) -> str:
        return self.authority if self.authority is not None else self.factory.pool_authority

    def _pool_for(self, belief: Belief) -> ContentPool | None:
        if self.factory is None or self.treasury is None:
            return None
        return self.factory.get_pool(belief.content_id)

    def _collect_penalties(self, report: EpochReport) -> None:
        for settlement in report.processed:
            if settlement.penalty <= 0:
                continue
            pool = self.factory.get_pool(settlement.content_id)
            try:
                pool.apply_penalty(
                    settlement.penalty, self._signer(), self.factory, self.treasury
                )
            except SettlementError as exc:
                logger.warning("Penalty on %s rejected: %s", settlement.content_id, exc.message)
                report.errors.append(EpochError.from_exception(settlement.belief_id, exc))
                settlement.penalty = 0
                continue
            settlement.redistribution_occurred = True

    def _distribute_rewards(self, report: EpochReport) -> None:
        requests = {
            s.belief_id: s.reward_request for s in report.processed if s.reward_request > 0
        }
        if not requests:
            return

        available = self.treasury.vault_balance
        allocations = allocate_rewards(requests, available)
        if sum(allocations.values()) < sum(requests.values()):
            logger.warning(
                "Treasury balance %d covers only part of %d requested rewards; scaling down",
                available, sum(requests.values()),
            )

        for settlement in report.processed:
            amount = allocations.get(settlement.belief_id, 0)
            if amount <= 0:
                continue
            pool = self.factory.get_pool(settlement.content_id)
            try:
                pool.apply_reward(amount, self._signer(), self.factory, self.treasury)
            except SettlementError as exc:
                logger.warning("Reward on %s rejected: %s", settlement.content_id, exc.message)
                report.errors.append(EpochError.from_exception(settlement.belief_id, exc))
                continue
            settlement.reward = amount
            settlement.redistribution_occurred = True
