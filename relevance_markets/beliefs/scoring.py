"""
Bayesian Truth Serum scoring against leave-one-out consensus.

Each agent is scored only against what the *other* agents reported, so no
agent can move its own benchmark:

    s_i = KL(b_i || m_-i) - KL(b_i || b_-i) - KL(b_-i || m_i)

where b_-i and m_-i are the leave-one-out aggregate and meta aggregate. The
first two terms form the information score: a report is informative when it
sits closer to the realised consensus than to what others predicted the
consensus would be. The last term is the prediction score: how well the
agent forecast everyone else. Divergences are binary KL in nats on clamped
probabilities.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping

import numpy as np

from .decomposition import DecompositionResult
from .models import BeliefSubmission

EPSILON_PROBABILITY = 1e-10


def binary_kl(p: float | np.ndarray, q: float | np.ndarray, eps: float = EPSILON_PROBABILITY):
    """KL(Bernoulli(p) || Bernoulli(q)) in nats, with clamping."""
    p = np.clip(p, eps, 1 - eps)
    q = np.clip(q, eps, 1 - eps)
    return p * np.log(p / q) + (1 - p) * np.log((1 - p) / (1 - q))


@dataclass
class ScoringResult:
    """
    Per-agent BTS scores for one belief in one epoch.

    Attributes:
        bts_scores: Raw score s_i per agent
        information_scores: Weighted score w_i * s_i per agent
        winners: Agents with a positive score
        losers: Agents with a negative score
        informativeness: Total weight of the winners, in [0, 1]
    """
    bts_scores: dict[str, float] = field(default_factory=dict)
    information_scores: dict[str, float] = field(default_factory=dict)
    winners: set[str] = field(default_factory=set)
    losers: set[str] = field(default_factory=set)
    informativeness: float = 0.0

    @property
    def net_information(self) -> float:
        return float(sum(self.information_scores.values()))


def score_submissions(
    result: DecompositionResult,
    submissions: Iterable[BeliefSubmission],
    weights: Mapping[str, float] | None = None,
) -> ScoringResult:
    """
    Score every participant of a decomposition.

    Args:
        result: Decomposition carrying the leave-one-out outputs
        submissions: The submissions that were decomposed
        weights: Weights to apply (default: the decomposition's own weights)

    Returns:
        ScoringResult
    """
    weights = result.weights if weights is None else weights
    scores = ScoringResult()

    for submission in submissions:
        agent_id = submission.agent_id
        if agent_id not in result.leave_one_out_aggregates:
            continue
        loo_belief = result.leave_one_out_aggregates[agent_id]
        loo_meta = result.leave_one_out_meta_aggregates[agent_id]
        b, m = submission.belief, submission.meta_prediction

        score = float(
            binary_kl(b, loo_meta) - binary_kl(b, loo_belief) - binary_kl(loo_belief, m)
        )
        weight = float(weights.get(agent_id, 0.0))

        scores.bts_scores[agent_id] = score
        scores.information_scores[agent_id] = weight * score
        if score > 0:
            scores.winners.add(agent_id)
            scores.informativeness += weight
        elif score < 0:
            scores.losers.add(agent_id)

    scores.informativeness = min(1.0, scores.informativeness)
    return scores
