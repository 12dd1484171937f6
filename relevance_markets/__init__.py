"""
Relevance Markets Settlement Engine

Epoch settlement for a content-relevance market: agents report beliefs and
meta-predictions about each content item, a Bayesian-Truth-Serum-style
decomposition turns them into a consensus, and every epoch converts the shift
in consensus into zero-sum penalty and reward transfers between per-content
bonding-curve pools and a protocol treasury.

Quick Start:
    from relevance_markets import (
        Protocol, BeliefDecomposer, BeliefSubmission,
        HonestReporter, NoiseReporter,
        EpochSimulation, SimulationConfig,
    )
"""

__version__ = "0.1.0"

# Convenient top-level imports
from .errors import (
    ErrorCode,
    SettlementError,
    ValidationError,
    StateError,
    QualityError,
    AuthorizationError,
)
from .beliefs import (
    Belief,
    BeliefStatus,
    BeliefSubmission,
    BeliefBook,
    BeliefDecomposer,
    DecompositionConfig,
    DecompositionResult,
    LeaveOneOutResult,
    calculate_weights,
    score_submissions,
)
from .markets import (
    ContentPool,
    PoolConfig,
    PoolFactory,
    ProtocolTreasury,
    TokenLedger,
)
from .agents import (
    Agent,
    Reporter,
    HonestReporter,
    NoiseReporter,
    NoiseReporterType,
)
from .settlement import (
    EpochSettlementOrchestrator,
    SettlementConfig,
    RedistributionConfig,
    EpochReport,
    summarize_epoch,
)
from .protocol import Protocol
from .simulation import EpochSimulation, SimulationConfig, SimulationResult

__all__ = [
    # Version
    "__version__",
    # Errors
    "ErrorCode",
    "SettlementError",
    "ValidationError",
    "StateError",
    "QualityError",
    "AuthorizationError",
    # Beliefs
    "Belief",
    "BeliefStatus",
    "BeliefSubmission",
    "BeliefBook",
    "BeliefDecomposer",
    "DecompositionConfig",
    "DecompositionResult",
    "LeaveOneOutResult",
    "calculate_weights",
    "score_submissions",
    # Markets
    "ContentPool",
    "PoolConfig",
    "PoolFactory",
    "ProtocolTreasury",
    "TokenLedger",
    # Agents
    "Agent",
    "Reporter",
    "HonestReporter",
    "NoiseReporter",
    "NoiseReporterType",
    # Settlement
    "EpochSettlementOrchestrator",
    "SettlementConfig",
    "RedistributionConfig",
    "EpochReport",
    "summarize_epoch",
    # Protocol state handle
    "Protocol",
    # Simulation
    "EpochSimulation",
    "SimulationConfig",
    "SimulationResult",
]
