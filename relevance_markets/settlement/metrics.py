"""
Metrics for checking settlement health.

These metrics back the two conservation properties of the engine:
- Is the treasury a pure clearing vault (zero drift over a balanced cycle)?
- Does each elastic rescale move the price in proportion to the reserve?
"""

from typing import Any

import numpy as np

from .orchestrator import EpochReport


def treasury_drift(balance_before: int, balance_after: int) -> int:
    """Net change of the treasury over a cycle; 0 for a balanced cycle."""
    return balance_after - balance_before


def price_continuity_error(
    k_before: int,
    k_after: int,
    reserve_before: int,
    reserve_after: int,
) -> float:
    """
    Relative gap between the price ratio and the reserve ratio of a rescale.

    At fixed supply the quadratic price ratio equals k_after / k_before,
    so this is |k ratio - reserve ratio| / reserve ratio.

    Returns:
        Relative error (0 = perfectly continuous)
    """
    if k_before <= 0 or reserve_before <= 0 or reserve_after <= 0:
        return np.nan
    reserve_ratio = reserve_after / reserve_before
    return abs(k_after / k_before - reserve_ratio) / reserve_ratio


def summarize_epoch(report: EpochReport) -> dict[str, Any]:
    """
    Summarise one settlement pass.

    Returns:
        Dictionary of counts, flows and mean diagnostics
    """
    certainties = [s.certainty for s in report.processed]
    qualities = [s.decomposition_quality for s in report.processed]
    return {
        "epoch": report.epoch,
        "n_processed": len(report.processed),
        "n_errors": len(report.errors),
        "n_expired": len(report.expired_beliefs),
        "n_skipped": len(report.skipped),
        "n_redistributions": sum(s.redistribution_occurred for s in report.processed),
        "total_penalties": report.total_penalties,
        "total_rewards": report.total_rewards,
        "net_treasury_flow": report.total_penalties - report.total_rewards,
        "mean_certainty": float(np.mean(certainties)) if certainties else np.nan,
        "mean_quality": float(np.mean(qualities)) if qualities else np.nan,
        "error_codes": sorted({e.code for e in report.errors}),
    }


def summarize_epochs(reports: list[EpochReport]) -> dict[str, Any]:
    """Aggregate summaries over a run of epochs."""
    summaries = [summarize_epoch(r) for r in reports]
    if not summaries:
        return {"n_epochs": 0}
    return {
        "n_epochs": len(summaries),
        "total_processed": sum(s["n_processed"] for s in summaries),
        "total_errors": sum(s["n_errors"] for s in summaries),
        "total_penalties": sum(s["total_penalties"] for s in summaries),
        "total_rewards": sum(s["total_rewards"] for s in summaries),
        "mean_certainty": float(np.nanmean([s["mean_certainty"] for s in summaries]))
        if any(s["n_processed"] for s in summaries) else np.nan,
    }
