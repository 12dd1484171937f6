"""
Sizing of per-pool penalties and rewards.

A settled belief moves its pool by an amount proportional to the consensus
shift, discounted by how certain the consensus is:

    impact = (aggregate - previous_aggregate) * certainty

- impact < 0: penalty of reserve * min(|impact|, max_penalty_rate)
- impact > 0: reward request of reserve * min(impact * informativeness, max_reward_rate),
  where informativeness is the weight share of agents with a positive truth-serum score
- no shift: optional base skim penalty of reserve * base_skim_rate

Rewards are paid out of the treasury after every penalty of the epoch has been
collected. If the requests exceed the treasury balance they are scaled down
proportionally with floor rounding, so the treasury never goes negative.

Agent stake is redistributed separately, from truth-serum losers to winners,
at a rate set by how much of the previous epoch's disagreement was resolved.
"""

import math
from dataclasses import dataclass, field
from typing import Mapping

from ..beliefs.scoring import ScoringResult

EPSILON_LEARNING = 1e-10


@dataclass
class RedistributionConfig:
    """
    Attributes:
        max_penalty_rate: Cap on the share of reserve removed in one epoch
        max_reward_rate: Cap on the share of reserve added in one epoch
        base_skim_rate: Penalty rate applied when the consensus did not move
    """
    max_penalty_rate: float = 0.10
    max_reward_rate: float = 0.10
    base_skim_rate: float = 0.0

    def __post_init__(self):
        for name in ("max_penalty_rate", "max_reward_rate", "base_skim_rate"):
            value = getattr(self, name)
            if not 0 <= value < 1:
                raise ValueError(f"{name} must be in [0, 1), got {value}")


def size_adjustment(
    delta: float,
    certainty: float,
    informativeness: float,
    reserve: int,
    config: RedistributionConfig,
) -> tuple[int, int]:
    """
    Compute the penalty and the reward request for one pool.

    Args:
        delta: Change in consensus since the previous epoch
        certainty: Certainty of the new consensus, in [0, 1]
        informativeness: Weight share of informative reports, in [0, 1]
        reserve: Current pool reserve, atomic units
        config: Rate caps

    Returns:
        (penalty, reward_request); at most one of them is non-zero
    """
    if reserve <= 0:
        return 0, 0
    impact = delta * certainty
    if delta < 0:
        rate = min(abs(impact), config.max_penalty_rate)
        return math.floor(reserve * rate), 0
    if delta > 0:
        rate = min(impact * informativeness, config.max_reward_rate)
        return 0, math.floor(reserve * rate)
    return math.floor(reserve * config.base_skim_rate), 0


@dataclass
class StakeRedistribution:
    """
    Stake moved between agents for one belief in one epoch.

    Attributes:
        learning_rate: Relative drop in disagreement that sized the slashing pool
        slashes: Stake removed per loser
        rewards: Stake added per winner
    """
    learning_rate: float = 0.0
    slashes: dict[str, float] = field(default_factory=dict)
    rewards: dict[str, float] = field(default_factory=dict)

    @property
    def slashing_pool(self) -> float:
        return math.fsum(self.slashes.values())

    @property
    def occurred(self) -> bool:
        return self.slashing_pool > 0


def learning_rate(
    previous_disagreement: float,
    disagreement: float,
    eps: float = EPSILON_LEARNING,
) -> float:
    """
    Share of the previous epoch's disagreement resolved this epoch, in [0, 1].

    Zero when there was no earlier disagreement to resolve.
    """
    if previous_disagreement < eps:
        return 0.0
    reduction = max(0.0, previous_disagreement - disagreement)
    if reduction <= eps:
        return 0.0
    return min(1.0, reduction / previous_disagreement)


def redistribute_stakes(
    scores: ScoringResult,
    stakes: Mapping[str, float],
    rate: float,
) -> StakeRedistribution:
    """
    Move stake from losers to winners of the truth serum.

    The slashing pool is `rate` times the losers' stake. Each loser gives up a
    share of it proportional to the magnitude of its information score, never
    more than its own stake; the winners split what was collected in
    proportion to their scores. Nothing moves unless there are both winners
    and losers. Agents missing from `stakes` take no part.

    Args:
        scores: Scoring of the belief's participants
        stakes: Current stake per agent
        rate: Learning rate in [0, 1]

    Returns:
        StakeRedistribution whose slashes and rewards sum to the same total
    """
    if not 0 <= rate <= 1:
        raise ValueError(f"rate must be in [0, 1], got {rate}")
    result = StakeRedistribution(learning_rate=rate)
    winners = sorted(a for a in scores.winners if a in stakes)
    losers = sorted(a for a in scores.losers if a in stakes)
    if rate == 0 or not winners or not losers:
        return result

    pool = rate * math.fsum(stakes[a] for a in losers)
    if pool <= 0:
        return result

    loser_weight = math.fsum(abs(scores.information_scores[a]) for a in losers)
    for agent_id in losers:
        if loser_weight > 0:
            share = abs(scores.information_scores[agent_id]) / loser_weight
        else:
            share = 1.0 / len(losers)
        slash = min(pool * share, stakes[agent_id])
        if slash > 0:
            result.slashes[agent_id] = slash

    collected = result.slashing_pool
    winner_weight = math.fsum(abs(scores.information_scores[a]) for a in winners)
    for agent_id in winners:
        if winner_weight > 0:
            share = abs(scores.information_scores[agent_id]) / winner_weight
        else:
            share = 1.0 / len(winners)
        result.rewards[agent_id] = collected * share
    return result


def allocate_rewards(requests: dict[str, int], available: int) -> dict[str, int]:
    """
    Fund reward requests from an available balance.

    Requests are paid in full when the balance allows, otherwise each is
    scaled by available / total with floor rounding.
    """
    total = sum(requests.values())
    if total <= available:
        return dict(requests)
    if available <= 0:
        return {key: 0 for key in requests}
    return {key: amount * available // total for key, amount in requests.items()}
