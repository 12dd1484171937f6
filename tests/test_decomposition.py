"""Tests for belief decomposition."""

import math

import numpy as np
import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from relevance_markets.beliefs.decomposition import (
    BeliefDecomposer,
    DecompositionConfig,
    LeaveOneOutResult,
    binary_entropy_bits,
    logsumexp,
)
from relevance_markets.beliefs.models import BeliefSubmission
from relevance_markets.errors import ErrorCode, QualityError, ValidationError


def make_submissions(beliefs, metas=None) -> list[BeliefSubmission]:
    """Submissions for agents agent_0..agent_{n-1}; metas default to beliefs."""
    metas = beliefs if metas is None else metas
    return [
        BeliefSubmission(agent_id=f"agent_{i}", belief=b, meta_prediction=m)
        for i, (b, m) in enumerate(zip(beliefs, metas))
    ]


def equal_weights(n: int) -> dict[str, float]:
    return {f"agent_{i}": 1.0 / n for i in range(n)}


def weights_from(values) -> dict[str, float]:
    return {f"agent_{i}": float(v) for i, v in enumerate(values)}


class TestHelpers:
    """Test numerical helpers."""

    def test_logsumexp_stable(self):
        assert np.isclose(logsumexp(np.array([1000.0, 1000.0])), 1000.0 + math.log(2))
        assert np.isclose(logsumexp(np.array([-1000.0, -1000.0])), -1000.0 + math.log(2))

    def test_logsumexp_axis(self):
        x = np.log(np.array([[0.2, 0.3], [0.8, 0.7]]))
        assert np.allclose(logsumexp(x, axis=0), [0.0, 0.0])

    def test_binary_entropy(self):
        assert np.isclose(binary_entropy_bits(0.5), 1.0)
        assert np.isclose(binary_entropy_bits(0.0), 0.0)


class TestDecompositionOutputs:
    """Test ranges and structure of decomposition outputs."""

    @pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
    def test_outputs_in_range(self, seed):
        rng = np.random.default_rng(seed)
        n = int(rng.integers(2, 9))
        beliefs = rng.uniform(0.1, 0.9, size=n)
        metas = np.clip(beliefs + rng.normal(0, 0.05, size=n), 0.05, 0.95)
        weights = weights_from(rng.dirichlet(np.ones(n)))

        result = BeliefDecomposer().decompose(
            make_submissions(beliefs.tolist(), metas.tolist()), weights
        )

        assert 0 <= result.aggregate <= 1
        assert 0 <= result.common_prior <= 1
        assert 0 <= result.certainty <= 1
        assert 0 <= result.decomposition_quality <= 1
        assert result.jensen_shannon_disagreement_entropy >= 0
        W = result.local_expectations
        assert W.shape == (2, 2)
        assert np.all((W >= 0) & (W <= 1))
        assert np.allclose(W.sum(axis=1), 1.0, atol=1e-6)

    def test_meta_predictions_per_agent(self):
        subs = make_submissions([0.3, 0.5, 0.7], [0.4, 0.5, 0.6])
        result = BeliefDecomposer().decompose(subs, equal_weights(3))
        assert set(result.agent_meta_predictions) == {"agent_0", "agent_1", "agent_2"}
        assert all(0 < v < 1 for v in result.agent_meta_predictions.values())
        assert result.participant_count == 3

    def test_deterministic(self):
        subs = make_submissions([0.2, 0.6, 0.7, 0.4], [0.4, 0.5, 0.55, 0.45])
        weights = weights_from([0.1, 0.2, 0.3, 0.4])
        first = BeliefDecomposer().decompose(subs, weights)
        second = BeliefDecomposer().decompose(list(reversed(subs)), weights)
        assert first.aggregate == second.aggregate
        assert first.common_prior == second.common_prior

    def test_aggregate_is_log_pool_whatever_the_prior(self):
        beliefs = [0.6, 0.65, 0.75, 0.8]
        w = np.array([0.1, 0.2, 0.3, 0.4])
        b = np.array(beliefs)
        expected = 1.0 / (1.0 + math.exp(-float(np.dot(w, np.log(b / (1 - b))))))

        for metas in (beliefs, [0.5] * 4, [0.7, 0.6, 0.8, 0.75]):
            result = BeliefDecomposer().decompose(
                make_submissions(beliefs, metas), weights_from(w)
            )
            assert np.isclose(result.aggregate, expected)

    def test_unanimous_reports(self):
        subs = make_submissions([0.7] * 5)
        result = BeliefDecomposer().decompose(subs, equal_weights(5))
        assert result.certainty > 0.99
        assert result.jensen_shannon_disagreement_entropy < 0.01
        assert np.isclose(result.aggregate, 0.7)
        assert result.decomposition_quality > 0.9

    def test_bimodal_disagreement(self):
        subs = make_submissions([0.1, 0.1, 0.9, 0.9], [0.5] * 4)
        result = BeliefDecomposer().decompose(subs, equal_weights(4))
        assert result.jensen_shannon_disagreement_entropy > 0.3
        assert result.certainty < 0.5
        assert np.isclose(result.aggregate, 0.5)

    def test_certainty_decreases_with_disagreement(self):
        decomposer = BeliefDecomposer()
        certainties = []
        for spread in [0.0, 0.1, 0.2, 0.3]:
            beliefs = [0.5 - spread, 0.5 + spread]
            result = decomposer.decompose(make_submissions(beliefs, [0.5, 0.5]), equal_weights(2))
            certainties.append(result.certainty)
        assert all(b < a for a, b in zip(certainties, certainties[1:]))

    def test_heavier_weight_pulls_aggregate(self):
        subs = make_submissions([0.2, 0.8], [0.5, 0.5])
        low = BeliefDecomposer().decompose(subs, weights_from([0.8, 0.2]))
        high = BeliefDecomposer().decompose(subs, weights_from([0.2, 0.8]))
        assert low.aggregate < 0.5 < high.aggregate


class TestExtremeInputs:
    """Test numerical stability at the boundaries."""

    def test_exact_zero_and_one(self):
        subs = make_submissions([0.0, 0.5, 1.0, 0.4], [0.3, 0.5, 0.7, 0.5])
        result = BeliefDecomposer().decompose(subs, equal_weights(4))
        values = [
            result.aggregate,
            result.common_prior,
            result.certainty,
            result.decomposition_quality,
            result.jensen_shannon_disagreement_entropy,
            *result.leave_one_out_aggregates.values(),
            *result.leave_one_out_meta_aggregates.values(),
            *result.agent_meta_predictions.values(),
        ]
        assert all(math.isfinite(v) for v in values)
        assert np.all(np.isfinite(result.local_expectations))
        assert 0 <= result.aggregate <= 1

    def test_near_boundary_values(self):
        subs = make_submissions([1e-15, 0.5, 1 - 1e-15, 0.4], [0.3, 0.5, 0.7, 0.5])
        result = BeliefDecomposer().decompose(subs, equal_weights(4))
        assert math.isfinite(result.aggregate)
        assert math.isfinite(result.common_prior)

    def test_extreme_weight_concentration(self):
        subs = make_submissions([0.3, 0.9], [0.35, 0.8])
        weights = {"agent_0": 1 - 1e-12, "agent_1": 1e-12}
        result = BeliefDecomposer().decompose(subs, weights)
        assert np.isclose(result.aggregate, 0.3, atol=1e-6)
        assert math.isfinite(result.decomposition_quality)

    def test_boundary_clustering_rejected(self):
        subs = make_submissions([0.001, 0.999, 0.01, 0.99, 0.985], [0.5] * 5)
        with pytest.raises(QualityError) as exc_info:
            BeliefDecomposer().decompose(subs, equal_weights(5))
        assert exc_info.value.code == ErrorCode.BOUNDARY_CLUSTERING
        assert np.isclose(exc_info.value.context["boundary_mass"], 1.0)


class TestPreconditions:
    """Test input validation."""

    def test_weights_not_summing_to_one(self):
        subs = make_submissions([0.3, 0.6])
        with pytest.raises(ValidationError) as exc_info:
            BeliefDecomposer().decompose(subs, {"agent_0": 0.4, "agent_1": 0.4})
        assert exc_info.value.code == ErrorCode.INVALID_WEIGHTS
        assert np.isclose(exc_info.value.context["weight_sum"], 0.8)

    def test_weight_tolerance(self):
        subs = make_submissions([0.3, 0.6])
        result = BeliefDecomposer().decompose(subs, {"agent_0": 0.5, "agent_1": 0.5 + 5e-7})
        assert 0 <= result.aggregate <= 1

    def test_weight_keys_must_match(self):
        subs = make_submissions([0.3, 0.6])
        with pytest.raises(ValidationError) as exc_info:
            BeliefDecomposer().decompose(subs, {"agent_0": 0.5, "someone": 0.5})
        assert exc_info.value.context["missing"] == ["agent_1"]
        assert exc_info.value.context["extra"] == ["someone"]

    def test_negative_weight(self):
        subs = make_submissions([0.3, 0.6, 0.5])
        with pytest.raises(ValidationError, match="non-negative"):
            BeliefDecomposer().decompose(subs, weights_from([1.2, -0.2, 0.0]))

    def test_single_participant(self):
        subs = make_submissions([0.3])
        with pytest.raises(ValidationError) as exc_info:
            BeliefDecomposer().decompose(subs, {"agent_0": 1.0})
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_PARTICIPANTS

    def test_zero_weight_agents_do_not_count(self):
        subs = make_submissions([0.3, 0.6, 0.5])
        with pytest.raises(ValidationError) as exc_info:
            BeliefDecomposer().decompose(subs, weights_from([1.0, 0.0, 0.0]))
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_PARTICIPANTS

    def test_duplicate_agent(self):
        subs = make_submissions([0.3, 0.6]) + [BeliefSubmission("agent_0", 0.4, 0.4)]
        with pytest.raises(ValidationError) as exc_info:
            BeliefDecomposer().decompose(subs, equal_weights(2))
        assert exc_info.value.code == ErrorCode.INVALID_SUBMISSION

    @pytest.mark.parametrize("value", [-0.1, 1.1, float("nan"), float("inf")])
    def test_submission_values_validated(self, value):
        with pytest.raises(ValidationError) as exc_info:
            BeliefSubmission("agent_0", value, 0.5)
        assert exc_info.value.code == ErrorCode.INVALID_SUBMISSION

    def test_invalid_config(self):
        with pytest.raises(ValueError, match="quality_threshold"):
            DecompositionConfig(quality_threshold=1.5)
        with pytest.raises(ValueError, match="min_participants"):
            DecompositionConfig(min_participants=1)


class TestQualityGate:
    """Test rejection of fits that do not explain the meta-predictions."""

    def test_incoherent_meta_predictions_rejected(self):
        subs = make_submissions([0.2, 0.35, 0.5, 0.65, 0.8], [0.0, 1.0, 0.0, 1.0, 0.0])
        with pytest.raises(QualityError) as exc_info:
            BeliefDecomposer().decompose(subs, equal_weights(5))
        error = exc_info.value
        assert error.code == ErrorCode.QUALITY_TOO_LOW
        assert error.context["quality"] < 0.3
        assert error.context["threshold"] == 0.3
        assert error.to_dict()["code"] == "QUALITY_TOO_LOW"

    def test_quality_tracks_meta_fit(self):
        beliefs = [0.3, 0.4, 0.5, 0.6, 0.7]
        coherent = BeliefDecomposer().decompose(make_submissions(beliefs), equal_weights(5))
        # Scattered forecasts still pass; only near-certain contradictions fail
        scattered = BeliefDecomposer().decompose(
            make_submissions(beliefs, [0.9, 0.1, 0.6, 0.2, 0.8]), equal_weights(5)
        )
        assert coherent.decomposition_quality > 0.9
        assert 0.3 <= scattered.decomposition_quality < coherent.decomposition_quality

    def test_threshold_is_configurable(self):
        subs = make_submissions([0.2, 0.35, 0.5, 0.65, 0.8], [0.0, 1.0, 0.0, 1.0, 0.0])
        decomposer = BeliefDecomposer(DecompositionConfig(quality_threshold=0.0))
        result = decomposer.decompose(subs, equal_weights(5))
        assert result.decomposition_quality < 0.3


class TestLeaveOneOut:
    """Test counterfactual outputs."""

    def test_monotonicity(self):
        subs = make_submissions([0.3, 0.4, 0.5, 0.8], [0.35, 0.4, 0.5, 0.7])
        result = BeliefDecomposer().decompose(subs, equal_weights(4))
        assert 0.8 > result.aggregate
        assert result.leave_one_out_aggregates["agent_3"] < result.aggregate
        # Removing the lowest belief raises the aggregate
        assert result.leave_one_out_aggregates["agent_0"] > result.aggregate

    def test_meta_aggregate_excludes_agent(self):
        subs = make_submissions([0.3, 0.5, 0.7], [0.2, 0.5, 0.8])
        result = BeliefDecomposer().decompose(subs, weights_from([0.5, 0.25, 0.25]))
        assert np.isclose(result.leave_one_out_meta_aggregates["agent_0"], 0.65)
        assert np.isclose(result.leave_one_out_meta_aggregates["agent_2"], (0.5 * 0.2 + 0.25 * 0.5) / 0.75)

    def test_two_participants_give_neutral_defaults(self):
        subs = make_submissions([0.3, 0.6])
        result = BeliefDecomposer().decompose(subs, equal_weights(2))
        assert result.leave_one_out_aggregates == {"agent_0": 0.5, "agent_1": 0.5}
        assert result.leave_one_out_meta_aggregates == {"agent_0": 0.5, "agent_1": 0.5}

    def test_standalone_matches_batch(self):
        beliefs = [0.25, 0.45, 0.6, 0.75]
        metas = [0.35, 0.45, 0.55, 0.65]
        weights = weights_from([0.4, 0.3, 0.2, 0.1])
        subs = make_submissions(beliefs, metas)
        decomposer = BeliefDecomposer()
        batch = decomposer.decompose(subs, weights)

        for agent_id in weights:
            remaining = {k: v for k, v in weights.items() if k != agent_id}
            loo = decomposer.decompose_loo(subs, remaining, agent_id)
            assert np.isclose(loo.aggregate, batch.leave_one_out_aggregates[agent_id], atol=1e-9)
            assert np.isclose(loo.meta_aggregate, batch.leave_one_out_meta_aggregates[agent_id], atol=1e-9)
            assert 0 <= loo.prior <= 1

    def test_standalone_renormalizes_weights(self):
        subs = make_submissions([0.2, 0.5, 0.8])
        scaled = BeliefDecomposer().decompose_loo(subs, {"agent_1": 3.0, "agent_2": 1.0}, "agent_0")
        unit = BeliefDecomposer().decompose_loo(subs, {"agent_1": 0.75, "agent_2": 0.25}, "agent_0")
        assert np.isclose(scaled.aggregate, unit.aggregate)

    def test_excluded_agent_in_weights_rejected(self):
        subs = make_submissions([0.2, 0.5, 0.8])
        with pytest.raises(ValidationError) as exc_info:
            BeliefDecomposer().decompose_loo(subs, equal_weights(3), "agent_0")
        assert exc_info.value.code == ErrorCode.INVALID_EXCLUSION

    def test_too_few_remaining_returns_default(self):
        subs = make_submissions([0.2, 0.8])
        result = BeliefDecomposer().decompose_loo(subs, {"agent_1": 1.0}, "agent_0")
        assert result == LeaveOneOutResult(0.5, 0.5, 0.5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
