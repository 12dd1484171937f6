"""
Experiment 1: Truth-Serum Settlement Under Noise

This experiment runs honest and noise reporters through repeated epoch
settlement and checks the claims the engine rests on:
1. Consensus tracks the latent state of each content item
2. Honest reporters out-score noise reporters under the truth serum
3. Pool reserves follow consensus while the treasury only clears value

Hypothesis (H1): As the share of noise reporters grows, consensus error
grows slowly, and honest reporters keep a positive cumulative score.
"""

import numpy as np
import matplotlib.pyplot as plt

# Add parent directory to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relevance_markets.agents import HonestReporter, NoiseReporter, NoiseReporterType
from relevance_markets.markets.curve import TOKEN_UNIT
from relevance_markets.settlement.metrics import summarize_epochs
from relevance_markets.simulation import EpochSimulation, SimulationConfig, SimulationResult


def create_simulation(
    n_honest: int = 8,
    n_noise: int = 2,
    accuracy: float = 0.75,
    biased: bool = False,
    n_epochs: int = 30,
    n_contents: int = 4,
    seed: int | None = None,
) -> EpochSimulation:
    """
    Create a simulation with honest and noise reporters.
    """
    reporters = [
        HonestReporter(agent_id=f"honest_{i}", accuracy=accuracy, report_noise=0.02)
        for i in range(n_honest)
    ]
    noise_type = NoiseReporterType.BIASED if biased else NoiseReporterType.RANDOM
    reporters += [
        NoiseReporter(agent_id=f"noise_{i}", reporter_type=noise_type)
        for i in range(n_noise)
    ]
    config = SimulationConfig(
        n_epochs=n_epochs,
        n_contents=n_contents,
        treasury_seed=20 * TOKEN_UNIT,
        random_seed=seed,
    )
    return EpochSimulation(reporters=reporters, config=config)


def consensus_error(result: SimulationResult) -> float:
    """Mean absolute gap between final consensus and the latent state."""
    return float(np.mean(np.abs(result.final_aggregates - result.true_states)))


def mean_score(result: SimulationResult, prefix: str) -> float:
    scores = [s for agent_id, s in result.agent_scores.items() if agent_id.startswith(prefix)]
    return float(np.mean(scores)) if scores else np.nan


def run_experiment_vary_noise(n_runs: int = 10, n_agents: int = 10, biased: bool = False) -> dict:
    """
    Experiment: How do consensus and scores respond to the share of noise reporters?
    """
    results = {}
    for n_noise in [0, 1, 2, 3, 4]:
        print(f"Running with {n_noise}/{n_agents} noise reporters...")
        errors, honest, noise = [], [], []
        for run in range(n_runs):
            result = create_simulation(
                n_honest=n_agents - n_noise, n_noise=n_noise, biased=biased, seed=run
            ).run()
            errors.append(consensus_error(result))
            honest.append(mean_score(result, "honest"))
            noise.append(mean_score(result, "noise"))
        results[n_noise] = {
            "mean_error": float(np.mean(errors)),
            "std_error": float(np.std(errors)),
            "honest_score": float(np.mean(honest)),
            "noise_score": float(np.nanmean(noise)) if n_noise else np.nan,
        }
    return results


def plot_run(result: SimulationResult, filename: str):
    """Plot consensus, reserves and treasury for one run."""
    epochs = np.arange(len(result.aggregate_history))
    fig, axes = plt.subplots(1, 3, figsize=(16, 5))

    ax1 = axes[0]
    for j, state in enumerate(result.true_states):
        ax1.plot(epochs, result.aggregate_history[:, j], label=f"content {j} (state={state})")
    ax1.set_xlabel("Epoch")
    ax1.set_ylabel("Settled Aggregate")
    ax1.set_title("Consensus")
    ax1.set_ylim(0, 1)
    ax1.legend()
    ax1.grid(True, alpha=0.3)

    ax2 = axes[1]
    for j in range(result.reserve_history.shape[1]):
        ax2.plot(epochs, result.reserve_history[:, j] / TOKEN_UNIT, label=f"content {j}")
    ax2.set_xlabel("Epoch")
    ax2.set_ylabel("Reserve (USDC)")
    ax2.set_title("Pool Reserves")
    ax2.legend()
    ax2.grid(True, alpha=0.3)

    ax3 = axes[2]
    ax3.plot(epochs, result.treasury_history / TOKEN_UNIT, color='purple')
    ax3.set_xlabel("Epoch")
    ax3.set_ylabel("Balance (USDC)")
    ax3.set_title("Treasury")
    ax3.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(filename, dpi=150)
    plt.close()
    print(f"Saved plot to {filename}")


def plot_results(results: dict, title: str, filename: str):
    """Plot consensus error and scores against the number of noise reporters."""
    x_values = list(results.keys())
    fig, axes = plt.subplots(1, 2, figsize=(12, 5))

    ax1 = axes[0]
    ax1.errorbar(
        x_values,
        [results[x]["mean_error"] for x in x_values],
        yerr=[results[x]["std_error"] for x in x_values],
        marker='o', capsize=5,
    )
    ax1.set_xlabel("Noise Reporters")
    ax1.set_ylabel("Mean |Consensus - State|")
    ax1.set_title(f"{title}: Consensus Error")
    ax1.grid(True, alpha=0.3)

    ax2 = axes[1]
    ax2.plot(x_values, [results[x]["honest_score"] for x in x_values], marker='s', color='green', label='Honest')
    ax2.plot(x_values, [results[x]["noise_score"] for x in x_values], marker='^', color='red', label='Noise')
    ax2.axhline(y=0, color='gray', linestyle='--', alpha=0.5)
    ax2.set_xlabel("Noise Reporters")
    ax2.set_ylabel("Mean Cumulative BTS Score")
    ax2.set_title(f"{title}: Scores")
    ax2.legend()
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(filename, dpi=150)
    plt.close()
    print(f"Saved plot to {filename}")


def main():
    """Run all experiments."""
    print("=" * 60)
    print("Experiment 1: Truth-Serum Settlement Under Noise")
    print("=" * 60)

    print("\n--- Single Run Demo ---")
    result = create_simulation(seed=42).run()
    summary = summarize_epochs(result.reports)
    print(f"True states: {result.true_states}")
    print(f"Final aggregates: {np.round(result.final_aggregates, 3)}")
    print(f"Consensus error: {consensus_error(result):.4f}")
    print(f"Honest score: {mean_score(result, 'honest'):.4f}, noise score: {mean_score(result, 'noise'):.4f}")
    print(f"Processed: {summary['total_processed']}, errors: {summary['total_errors']}")
    print(f"Penalties: {summary['total_penalties'] / TOKEN_UNIT:.2f} USDC, "
          f"rewards: {summary['total_rewards'] / TOKEN_UNIT:.2f} USDC")
    plot_run(result, "experiments/plot_single_run.png")

    print("\n--- Experiment 1a: Random Noise ---")
    results_random = run_experiment_vary_noise(n_runs=10)
    for n, stats in results_random.items():
        print(f"  {n} noise: error={stats['mean_error']:.4f} (±{stats['std_error']:.4f}), "
              f"honest={stats['honest_score']:.4f}, noise={stats['noise_score']:.4f}")

    print("\n--- Experiment 1b: Biased Noise ---")
    results_biased = run_experiment_vary_noise(n_runs=10, biased=True)
    for n, stats in results_biased.items():
        print(f"  {n} noise: error={stats['mean_error']:.4f} (±{stats['std_error']:.4f}), "
              f"honest={stats['honest_score']:.4f}, noise={stats['noise_score']:.4f}")

    print("\n--- Generating Plots ---")
    plot_results(results_random, "Random Noise", "experiments/plot_random_noise.png")
    plot_results(results_biased, "Biased Noise", "experiments/plot_biased_noise.png")

    print("\n" + "=" * 60)
    print("Experiment complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
