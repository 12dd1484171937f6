"""Stake-proportional aggregation weights."""

import math
from typing import Mapping

from ..errors import ErrorCode, ValidationError

EPSILON_STAKES = 1e-8


def calculate_weights(stakes: Mapping[str, float], epsilon: float = EPSILON_STAKES) -> dict[str, float]:
    """
    Turn agent stakes into weights that sum to one.

    Each agent's weight is its share of the total stake. When the total is
    effectively zero every agent gets an equal weight.

    Args:
        stakes: Agent id -> stake (non-negative)
        epsilon: Total stake below which the equal-weight fallback applies

    Returns:
        Agent id -> weight
    """
    if not stakes:
        return {}
    for agent_id, stake in stakes.items():
        if not math.isfinite(stake) or stake < 0:
            raise ValidationError(
                ErrorCode.INVALID_WEIGHTS,
                f"Stake for {agent_id} must be finite and non-negative, got {stake}",
                {"agent_id": agent_id, "stake": stake},
            )

    total = math.fsum(stakes.values())
    if total < epsilon:
        equal = 1.0 / len(stakes)
        return {agent_id: equal for agent_id in stakes}
    return {agent_id: stake / total for agent_id, stake in stakes.items()}
