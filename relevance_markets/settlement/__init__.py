"""Epoch settlement: orchestration, redistribution sizing and health metrics."""

from .redistribution import (
    RedistributionConfig,
    size_adjustment,
    allocate_rewards,
    StakeRedistribution,
    learning_rate,
    redistribute_stakes,
)
from .orchestrator import (
    EpochSettlementOrchestrator,
    SettlementConfig,
    BeliefSettlement,
    EpochError,
    EpochReport,
)
from .metrics import (
    treasury_drift,
    price_continuity_error,
    summarize_epoch,
    summarize_epochs,
)

__all__ = [
    # Orchestration
    "EpochSettlementOrchestrator",
    "SettlementConfig",
    "BeliefSettlement",
    "EpochError",
    "EpochReport",
    # Redistribution
    "RedistributionConfig",
    "size_adjustment",
    "allocate_rewards",
    "StakeRedistribution",
    "learning_rate",
    "redistribute_stakes",
    # Metrics
    "treasury_drift",
    "price_continuity_error",
    "summarize_epoch",
    "summarize_epochs",
]
