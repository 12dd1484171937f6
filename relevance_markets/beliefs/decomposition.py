"""
Belief decomposition: Bayesian-Truth-Serum-style consensus.

Each agent reports a belief b_i (their probability that the proposition holds)
and a meta-prediction m_i (their forecast of what others report). Under a
latent binary-state model the reports are explained by:

    p   common prior, the base rate every agent starts from
    W   2x2 row-stochastic local-expectation matrix; an agent who is
        certain the state is 1 expects others to report w11, one certain
        it is 0 expects w21, so  m_hat(b) = b * w11 + (1 - b) * w21

(p, W) are fitted by weighted maximum likelihood. The objective has three
parts: a Bernoulli cross-entropy of the reported meta-predictions against
m_hat(b_i), a cross-entropy of the beliefs against the prior, and a
stationarity term KL(p || m_hat(p)) which requires that an agent holding only
the prior expects others to report the prior. All of it is computed in the
log domain with logsumexp, so the fit stays finite for beliefs arbitrarily
close to 0 or 1 and for arbitrarily concentrated weights.

The consensus aggregate is the Bayesian posterior that starts from the prior p
and applies each agent's evidence, the likelihood ratio of b_i against p,
with exponent w_i:

    logit(aggregate) = logit(p) + sum w_i (logit(b_i) - logit(p))
                     = sum w_i logit(b_i)            since sum w_i = 1

so it equals the weighted logarithmic pool for every value of the fitted
prior. Unanimous reports at v settle at v, and removing an agent whose
belief is above the aggregate always lowers it.

Diagnostics:
- Jensen-Shannon disagreement (bits): H(sum w_i b_i) - sum w_i H(b_i)
- certainty: 1 - min(1, disagreement)
- decomposition quality: 1 - sum w_i KL(m_i || m_hat_i) in bits, clipped to [0, 1]
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping

import numpy as np
from scipy.optimize import minimize
from scipy.special import entr, expit, log_expit, logit

from ..errors import ErrorCode, QualityError, ValidationError
from .models import BeliefSubmission

logger = logging.getLogger(__name__)

LN2 = math.log(2.0)
NEUTRAL = 0.5


def logsumexp(x: np.ndarray, axis: int | None = None) -> np.ndarray | float:
    """Numerically stable log(sum(exp(x)))."""
    x = np.asarray(x, dtype=float)
    max_x = np.max(x, axis=axis, keepdims=True)
    result = max_x + np.log(np.sum(np.exp(x - max_x), axis=axis, keepdims=True))
    if axis is None:
        return float(result.squeeze())
    return np.squeeze(result, axis=axis)


def binary_entropy_bits(p: np.ndarray | float) -> np.ndarray | float:
    """Entropy of a Bernoulli(p) in bits."""
    return (entr(p) + entr(1.0 - p)) / LN2


@dataclass
class DecompositionConfig:
    """
    Numerical settings and acceptance gates for decomposition.

    Quality only measures how well the fitted meta model m_hat(b) explains the
    reported meta-predictions, in bits. Meta-predictions scattered uniformly
    around a flat model diverge by about 0.28 bits on average, so the default
    gate of 0.3 passes noisy but plausible reports and rejects only sets where
    meta-predictions sit near 0 or 1 against the beliefs.

    Attributes:
        epsilon: Probabilities are clamped to [epsilon, 1 - epsilon]
        quality_threshold: Minimum acceptable decomposition quality
        boundary_epsilon: Distance from 0 or 1 that counts as "at the boundary"
        boundary_mass_limit: Maximum weighted share of beliefs at the boundary
        min_participants: Minimum number of positively weighted agents
        weight_tolerance: Allowed deviation of the weight sum from 1
        logit_bound: Box bound on the fitted logits
        prior_coupling: Strength of the stationarity term
        max_iterations: Optimizer iteration cap
    """
    epsilon: float = 1e-10
    quality_threshold: float = 0.3
    boundary_epsilon: float = 0.02
    boundary_mass_limit: float = 0.8
    min_participants: int = 2
    weight_tolerance: float = 1e-6
    logit_bound: float = 25.0
    prior_coupling: float = 1.0
    max_iterations: int = 500

    def __post_init__(self):
        if not 0 < self.epsilon < 0.5:
            raise ValueError(f"epsilon must be in (0, 0.5), got {self.epsilon}")
        if not 0 <= self.quality_threshold <= 1:
            raise ValueError(f"quality_threshold must be in [0, 1], got {self.quality_threshold}")
        if not 0 <= self.boundary_epsilon < 0.5:
            raise ValueError(f"boundary_epsilon must be in [0, 0.5), got {self.boundary_epsilon}")
        if not 0 < self.boundary_mass_limit <= 1:
            raise ValueError(f"boundary_mass_limit must be in (0, 1], got {self.boundary_mass_limit}")
        if self.min_participants < 2:
            raise ValueError(f"min_participants must be at least 2, got {self.min_participants}")
        if self.weight_tolerance <= 0:
            raise ValueError(f"weight_tolerance must be positive, got {self.weight_tolerance}")
        if self.logit_bound <= 0:
            raise ValueError(f"logit_bound must be positive, got {self.logit_bound}")
        if self.prior_coupling < 0:
            raise ValueError(f"prior_coupling must be non-negative, got {self.prior_coupling}")


@dataclass
class DecompositionResult:
    """
    Output of a full decomposition.
    """
    aggregate: float
    common_prior: float
    local_expectations: np.ndarray          # 2x2, rows sum to 1
    jensen_shannon_disagreement_entropy: float
    certainty: float
    decomposition_quality: float
    agent_meta_predictions: dict[str, float]    # Model-implied m_hat per agent
    leave_one_out_aggregates: dict[str, float]
    leave_one_out_meta_aggregates: dict[str, float]
    weights: dict[str, float] = field(default_factory=dict)
    converged: bool = True

    @property
    def participant_count(self) -> int:
        return len(self.weights)


@dataclass
class LeaveOneOutResult:
    """Decomposition with a single agent excluded."""
    aggregate: float = NEUTRAL
    prior: float = NEUTRAL
    meta_aggregate: float = NEUTRAL


@dataclass
class _Fit:
    prior: float
    local_expectations: np.ndarray
    log_meta_hat: np.ndarray
    log_meta_hat_complement: np.ndarray
    converged: bool


@dataclass
class BeliefDecomposer:
    """
    Pure, stateless consensus estimator.

    Example:
        decomposer = BeliefDecomposer()
        result = decomposer.decompose(submissions, {"a": 0.5, "b": 0.5})
        result.aggregate, result.certainty
    """
    config: DecompositionConfig = field(default_factory=DecompositionConfig)

    def decompose(
        self,
        submissions: Iterable[BeliefSubmission],
        weights: Mapping[str, float],
    ) -> DecompositionResult:
        """
        Fit the latent-state model and aggregate the reports.

        Args:
            submissions: One submission per agent
            weights: Agent id -> weight; keys must match the submitting agents
                and the values must sum to 1

        Returns:
            DecompositionResult

        Raises:
            ValidationError: INVALID_WEIGHTS, INVALID_SUBMISSION or
                INSUFFICIENT_PARTICIPANTS
            QualityError: BOUNDARY_CLUSTERING or QUALITY_TOO_LOW
        """
        by_agent = _index_submissions(submissions)
        self._validate_weights(weights, by_agent)
        weight_sum = math.fsum(weights.values())
        if abs(weight_sum - 1.0) > self.config.weight_tolerance:
            raise ValidationError(
                ErrorCode.INVALID_WEIGHTS,
                f"Weights must sum to 1, got {weight_sum:.8f}",
                {"weight_sum": weight_sum},
            )

        agent_ids, b, m, w = self._participants(by_agent, weights)
        self._check_boundary(b, w)

        fit = self._fit(b, m, w)
        aggregate = self._log_pool(b, w)
        disagreement = self._disagreement(b, w)
        certainty = 1.0 - min(1.0, disagreement)
        quality = self._quality(m, w, fit)

        if quality < self.config.quality_threshold:
            raise QualityError(
                ErrorCode.QUALITY_TOO_LOW,
                f"Decomposition quality {quality:.4f} is below {self.config.quality_threshold}",
                {
                    "quality": quality,
                    "threshold": self.config.quality_threshold,
                    "participant_count": len(agent_ids),
                },
            )

        loo_aggregates = {}
        loo_meta_aggregates = {}
        for i, agent_id in enumerate(agent_ids):
            keep = np.arange(len(agent_ids)) != i
            loo = self._leave_out(b[keep], m[keep], w[keep], fit_prior=False)
            loo_aggregates[agent_id] = loo.aggregate
            loo_meta_aggregates[agent_id] = loo.meta_aggregate

        logger.debug(
            "decomposed %d agents: aggregate=%.4f prior=%.4f quality=%.3f certainty=%.3f",
            len(agent_ids), aggregate, fit.prior, quality, certainty,
        )

        return DecompositionResult(
            aggregate=aggregate,
            common_prior=fit.prior,
            local_expectations=fit.local_expectations,
            jensen_shannon_disagreement_entropy=disagreement,
            certainty=certainty,
            decomposition_quality=quality,
            agent_meta_predictions=dict(zip(agent_ids, np.exp(fit.log_meta_hat).tolist())),
            leave_one_out_aggregates=loo_aggregates,
            leave_one_out_meta_aggregates=loo_meta_aggregates,
            weights=dict(zip(agent_ids, w.tolist())),
            converged=fit.converged,
        )

    def decompose_loo(
        self,
        submissions: Iterable[BeliefSubmission],
        weights: Mapping[str, float],
        exclude_agent_id: str,
    ) -> LeaveOneOutResult:
        """
        Decompose with one agent excluded.

        The weights describe the remaining agents only and are renormalized.
        Fewer than the minimum number of remaining participants gives the
        neutral default rather than an error. The quality and boundary gates
        do not apply to counterfactual fits.

        Args:
            submissions: Submissions including the excluded agent's
            weights: Weights for the remaining agents
            exclude_agent_id: Agent to leave out

        Returns:
            LeaveOneOutResult
        """
        if exclude_agent_id in weights:
            raise ValidationError(
                ErrorCode.INVALID_EXCLUSION,
                f"Weights must not include the excluded agent {exclude_agent_id!r}",
                {"exclude_agent_id": exclude_agent_id},
            )
        by_agent = _index_submissions(submissions)
        if exclude_agent_id not in by_agent:
            raise ValidationError(
                ErrorCode.INVALID_EXCLUSION,
                f"Excluded agent {exclude_agent_id!r} has no submission",
                {"exclude_agent_id": exclude_agent_id},
            )
        remaining = {k: v for k, v in by_agent.items() if k != exclude_agent_id}
        self._validate_weights(weights, remaining)

        positive = [k for k in remaining if weights[k] > 0]
        if len(positive) < self.config.min_participants:
            return LeaveOneOutResult()

        _, b, m, w = self._participants(remaining, weights)
        return self._leave_out(b, m, w, fit_prior=True)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_weights(
        self,
        weights: Mapping[str, float],
        by_agent: Mapping[str, BeliefSubmission],
    ) -> None:
        for agent_id, weight in weights.items():
            if not isinstance(weight, (int, float)) or not math.isfinite(weight) or weight < 0:
                raise ValidationError(
                    ErrorCode.INVALID_WEIGHTS,
                    f"Weight for {agent_id!r} must be finite and non-negative, got {weight!r}",
                    {"agent_id": agent_id, "weight": weight},
                )
        missing = sorted(set(by_agent) - set(weights))
        extra = sorted(set(weights) - set(by_agent))
        if missing or extra:
            raise ValidationError(
                ErrorCode.INVALID_WEIGHTS,
                "Weight keys must match the submitting agents",
                {"missing": missing, "extra": extra},
            )

    def _participants(
        self,
        by_agent: Mapping[str, BeliefSubmission],
        weights: Mapping[str, float],
    ) -> tuple[list[str], np.ndarray, np.ndarray, np.ndarray]:
        """Positively weighted agents in id order, clamped, weights renormalized."""
        agent_ids = sorted(k for k in by_agent if weights[k] > 0)
        if len(agent_ids) < self.config.min_participants:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_PARTICIPANTS,
                f"Need at least {self.config.min_participants} weighted participants, "
                f"got {len(agent_ids)}",
                {"participant_count": len(agent_ids)},
            )
        eps = self.config.epsilon
        b = np.clip([by_agent[k].belief for k in agent_ids], eps, 1 - eps)
        m = np.clip([by_agent[k].meta_prediction for k in agent_ids], eps, 1 - eps)
        w = np.array([weights[k] for k in agent_ids], dtype=float)
        w = w / w.sum()
        return agent_ids, b, m, w

    def _check_boundary(self, b: np.ndarray, w: np.ndarray) -> None:
        eps = self.config.boundary_epsilon
        at_boundary = (b < eps) | (b > 1 - eps)
        mass = float(np.sum(w[at_boundary]))
        if mass > self.config.boundary_mass_limit:
            raise QualityError(
                ErrorCode.BOUNDARY_CLUSTERING,
                f"{mass:.1%} of weighted beliefs lie within {eps} of 0 or 1",
                {"boundary_mass": mass, "threshold": self.config.boundary_mass_limit},
            )

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------

    def _fit(self, b: np.ndarray, m: np.ndarray, w: np.ndarray) -> _Fit:
        """Maximum-likelihood estimate of the common prior and W."""
        log_b, log_nb = np.log(b), np.log1p(-b)
        coupling = self.config.prior_coupling

        def meta_hat(theta, log_x, log_nx):
            log_w11, log_w12 = log_expit(theta[0]), log_expit(-theta[0])
            log_w21, log_w22 = log_expit(theta[1]), log_expit(-theta[1])
            log_yes = logsumexp(np.stack([log_x + log_w11, log_nx + log_w21]), axis=0)
            log_no = logsumexp(np.stack([log_x + log_w12, log_nx + log_w22]), axis=0)
            return log_yes, log_no

        def negative_log_likelihood(theta):
            log_m_hat, log_nm_hat = meta_hat(theta, log_b, log_nb)
            meta_ll = np.sum(w * (m * log_m_hat + (1 - m) * log_nm_hat))

            log_p, log_q = log_expit(theta[2]), log_expit(-theta[2])
            prior_ll = np.sum(w * (b * log_p + (1 - b) * log_q))

            log_mp, log_nmp = meta_hat(theta, np.array([log_p]), np.array([log_q]))
            p = math.exp(log_p)
            stationarity = p * (log_p - log_mp[0]) + (1 - p) * (log_q - log_nmp[0])

            return -meta_ll - prior_ll + coupling * stationarity

        start = np.clip([np.dot(w, m), np.dot(w, m), np.dot(w, b)], 1e-6, 1 - 1e-6)
        bound = self.config.logit_bound
        result = minimize(
            negative_log_likelihood,
            x0=logit(start),
            method="L-BFGS-B",
            bounds=[(-bound, bound)] * 3,
            options={"maxiter": self.config.max_iterations},
        )
        if not result.success:
            logger.debug("decomposition fit did not converge: %s", result.message)

        theta = result.x
        w11, w21 = float(expit(theta[0])), float(expit(theta[1]))
        local_expectations = np.array([
            [w11, float(expit(-theta[0]))],
            [w21, float(expit(-theta[1]))],
        ])
        log_m_hat, log_nm_hat = meta_hat(theta, log_b, log_nb)
        return _Fit(
            prior=float(expit(theta[2])),
            local_expectations=local_expectations,
            log_meta_hat=log_m_hat,
            log_meta_hat_complement=log_nm_hat,
            converged=bool(result.success),
        )

    @staticmethod
    def _log_pool(b: np.ndarray, w: np.ndarray) -> float:
        """Weighted geometric pool of beliefs, normalised in the log domain."""
        log_yes = float(np.dot(w, np.log(b)))
        log_no = float(np.dot(w, np.log1p(-b)))
        return math.exp(log_yes - logsumexp(np.array([log_yes, log_no])))

    @staticmethod
    def _disagreement(b: np.ndarray, w: np.ndarray) -> float:
        """Jensen-Shannon divergence of the reports around their mixture, in bits."""
        mixture = float(np.dot(w, b))
        value = binary_entropy_bits(mixture) - float(np.dot(w, binary_entropy_bits(b)))
        return max(0.0, float(value))

    @staticmethod
    def _quality(m: np.ndarray, w: np.ndarray, fit: _Fit) -> float:
        """One minus the weighted KL (bits) of reported from modelled meta-predictions."""
        kl = (
            m * (np.log(m) - fit.log_meta_hat)
            + (1 - m) * (np.log1p(-m) - fit.log_meta_hat_complement)
        )
        divergence = float(np.dot(w, kl)) / LN2
        return float(np.clip(1.0 - divergence, 0.0, 1.0))

    def _leave_out(
        self,
        b: np.ndarray,
        m: np.ndarray,
        w: np.ndarray,
        fit_prior: bool,
    ) -> LeaveOneOutResult:
        """Counterfactual over an already-reduced agent set."""
        total = w.sum()
        if len(b) < self.config.min_participants or total <= 0:
            return LeaveOneOutResult()
        w = w / total
        prior = self._fit(b, m, w).prior if fit_prior else NEUTRAL
        return LeaveOneOutResult(
            aggregate=self._log_pool(b, w),
            prior=prior,
            meta_aggregate=float(np.dot(w, m)),
        )


def _index_submissions(submissions: Iterable[BeliefSubmission]) -> dict[str, BeliefSubmission]:
    by_agent: dict[str, BeliefSubmission] = {}
    for submission in submissions:
        if submission.agent_id in by_agent:
            raise ValidationError(
                ErrorCode.INVALID_SUBMISSION,
                f"Duplicate submission for agent {submission.agent_id!r}",
                {"agent_id": submission.agent_id},
            )
        by_agent[submission.agent_id] = submission
    return by_agent
