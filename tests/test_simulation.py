"""Tests for reporters, metrics and the multi-epoch simulation."""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from relevance_markets.agents import (
    Agent,
    HonestReporter,
    NoiseReporter,
    NoiseReporterType,
    posterior,
)
from relevance_markets.markets.curve import TOKEN_UNIT
from relevance_markets.settlement.metrics import price_continuity_error, treasury_drift
from relevance_markets.simulation import EpochSimulation, SimulationConfig


def create_reporters(n_honest: int = 4, n_noise: int = 1) -> list:
    reporters = [HonestReporter(agent_id=f"honest_{i}", accuracy=0.8) for i in range(n_honest)]
    reporters += [
        NoiseReporter(agent_id=f"noise_{i}", reporter_type=NoiseReporterType.RANDOM)
        for i in range(n_noise)
    ]
    return reporters


class TestAgents:
    """Test registered agents and their stake."""

    def test_address_defaults_to_id(self):
        assert Agent("alice").address == "alice"
        assert Agent("alice", address="wallet").address == "wallet"

    def test_stake_changes(self):
        agent = Agent("alice", stake=2.0)
        agent.add_stake(1.0)
        agent.remove_stake(2.5)
        assert np.isclose(agent.stake, 0.5)

    def test_stake_validation(self):
        with pytest.raises(ValueError, match="stake"):
            Agent("alice", stake=-1.0)
        with pytest.raises(ValueError, match="cannot remove"):
            Agent("alice", stake=1.0).remove_stake(2.0)
        with pytest.raises(ValueError, match="positive"):
            Agent("alice").add_stake(0.0)


class TestReporters:
    """Test report generation."""

    def test_posterior(self):
        assert np.isclose(posterior(0.5, 0.8, 1), 0.8)
        assert np.isclose(posterior(0.5, 0.8, 0), 0.2)
        assert posterior(0.3, 0.8, 1) < 0.8

    def test_honest_meta_between_posteriors(self):
        reporter = HonestReporter(agent_id="h", accuracy=0.8)
        rng = np.random.default_rng(1)
        for _ in range(20):
            belief, meta = reporter.report(1, 0.5, rng)
            assert belief in (pytest.approx(0.8), pytest.approx(0.2))
            assert 0.2 < meta < 0.8
            # Meta-predictions shade toward the prior
            assert abs(meta - 0.5) < abs(belief - 0.5)

    def test_honest_reports_clipped(self):
        reporter = HonestReporter(agent_id="h", accuracy=0.8, report_noise=5.0)
        rng = np.random.default_rng(2)
        for _ in range(20):
            belief, meta = reporter.report(0, 0.5, rng)
            assert 0.01 <= belief <= 0.99
            assert 0.01 <= meta <= 0.99

    def test_honest_validation(self):
        with pytest.raises(ValueError, match="accuracy"):
            HonestReporter(agent_id="h", accuracy=1.0)
        with pytest.raises(ValueError, match="report_noise"):
            HonestReporter(agent_id="h", report_noise=-0.1)

    def test_biased_noise(self):
        reporter = NoiseReporter(
            agent_id="n", reporter_type=NoiseReporterType.BIASED, bias_value=0.95, meta_value=0.4
        )
        rng = np.random.default_rng(3)
        assert reporter.report(0, 0.5, rng) == (0.95, 0.4)
        assert reporter.report(1, 0.5, rng) == (0.95, 0.4)

    def test_random_noise_in_range(self):
        reporter = NoiseReporter(agent_id="n")
        rng = np.random.default_rng(4)
        for _ in range(20):
            belief, meta = reporter.report(1, 0.5, rng)
            assert 0.05 <= belief <= 0.95
            assert 0.05 <= meta <= 0.95

    def test_to_agent(self):
        agent = HonestReporter(agent_id="h", stake=3.0).to_agent()
        assert agent.agent_id == "h"
        assert agent.stake == 3.0


class TestMetrics:
    """Test conservation metrics."""

    def test_treasury_drift(self):
        assert treasury_drift(1_000, 1_000) == 0
        assert treasury_drift(1_000, 1_200) == 200

    def test_price_continuity(self):
        assert np.isclose(price_continuity_error(200, 180, 1_000, 900), 0.0)
        assert price_continuity_error(200, 200, 1_000, 900) > 0
        assert np.isnan(price_continuity_error(0, 180, 1_000, 900))


class TestSimulationConfig:
    """Test configuration validation."""

    def test_defaults(self):
        config = SimulationConfig()
        assert config.n_epochs == 20
        assert config.initial_liquidity == 100 * TOKEN_UNIT

    def test_invalid(self):
        with pytest.raises(ValueError, match="n_epochs"):
            SimulationConfig(n_epochs=0)
        with pytest.raises(ValueError, match="prior"):
            SimulationConfig(prior=1.0)

    def test_needs_two_reporters(self):
        with pytest.raises(ValueError, match="at least 2"):
            EpochSimulation(reporters=create_reporters(1, 0))


class TestEpochSimulation:
    """Test full multi-epoch runs."""

    def test_history_shapes(self):
        config = SimulationConfig(n_epochs=5, n_contents=2, random_seed=42)
        result = EpochSimulation(reporters=create_reporters(), config=config).run()

        assert result.aggregate_history.shape == (6, 2)
        assert result.reserve_history.shape == (6, 2)
        assert result.k_history.shape == (6, 2)
        assert result.treasury_history.shape == (6,)
        assert len(result.reports) == 5
        assert np.allclose(result.aggregate_history[0], 0.5)
        assert np.all((result.final_aggregates > 0) & (result.final_aggregates < 1))

    def test_treasury_conserved(self):
        config = SimulationConfig(n_epochs=8, n_contents=3, treasury_seed=10 * TOKEN_UNIT, random_seed=7)
        result = EpochSimulation(reporters=create_reporters(), config=config).run()

        assert np.all(result.treasury_history >= 0)
        flows = [r.total_penalties - r.total_rewards for r in result.reports]
        assert result.treasury_history[-1] == 10 * TOKEN_UNIT + sum(flows)
        assert np.all(np.diff(result.treasury_history) == flows)

    def test_reserves_stay_positive(self):
        config = SimulationConfig(n_epochs=10, n_contents=2, random_seed=3)
        result = EpochSimulation(reporters=create_reporters(), config=config).run()
        assert np.all(result.reserve_history > 0)
        assert np.all(result.k_history >= 1)

    def test_reproducible(self):
        config = SimulationConfig(n_epochs=4, n_contents=2, random_seed=11)
        first = EpochSimulation(reporters=create_reporters(), config=config).run()
        second = EpochSimulation(reporters=create_reporters(), config=config).run()
        assert np.array_equal(first.true_states, second.true_states)
        assert np.allclose(first.aggregate_history, second.aggregate_history)

    def test_progress_callback(self):
        calls = []
        config = SimulationConfig(n_epochs=3, n_contents=1, random_seed=0)
        EpochSimulation(reporters=create_reporters(), config=config).run(
            progress_callback=lambda current, total: calls.append((current, total))
        )
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_every_epoch_accounted(self):
        config = SimulationConfig(n_epochs=6, n_contents=3, random_seed=5)
        sim = EpochSimulation(reporters=create_reporters(), config=config)
        result = sim.run()
        for epoch, report in enumerate(result.reports):
            assert report.epoch == epoch
            handled = len(report.processed) + len(report.skipped) + len(
                {e.belief_id for e in report.errors} - {s.belief_id for s in report.processed}
            )
            assert handled == config.n_contents
        assert sim.protocol.current_epoch == 6


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
