"""Beliefs, submissions, decomposition and truth-serum scoring."""

from .models import Belief, BeliefStatus, BeliefSubmission
from .book import BeliefBook
from .weights import calculate_weights, EPSILON_STAKES
from .decomposition import (
    BeliefDecomposer,
    DecompositionConfig,
    DecompositionResult,
    LeaveOneOutResult,
    logsumexp,
)
from .scoring import ScoringResult, score_submissions, binary_kl

__all__ = [
    # Data model
    "Belief",
    "BeliefStatus",
    "BeliefSubmission",
    "BeliefBook",
    # Weights
    "calculate_weights",
    "EPSILON_STAKES",
    # Decomposition
    "BeliefDecomposer",
    "DecompositionConfig",
    "DecompositionResult",
    "LeaveOneOutResult",
    "logsumexp",
    # Scoring
    "ScoringResult",
    "score_submissions",
    "binary_kl",
]
