"""
Error taxonomy for the settlement engine.

Every failure carries a machine-readable code, a human-readable message and a
context dict with diagnostics (measured quality, weight sum, balances) so a
caller can fix its inputs and retry in a later epoch.

    ValidationError     bad inputs, never auto-retried
    StateError          duplicate initialization, insufficient funds
    QualityError        decomposition rejected on fit diagnostics
    AuthorizationError  wrong signer or mismatched factory reference
"""

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Machine-readable error codes."""
    # Validation
    INVALID_WEIGHTS = "INVALID_WEIGHTS"
    INSUFFICIENT_PARTICIPANTS = "INSUFFICIENT_PARTICIPANTS"
    INVALID_EXCLUSION = "INVALID_EXCLUSION"
    INVALID_SUBMISSION = "INVALID_SUBMISSION"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    # State
    ALREADY_INITIALIZED = "ALREADY_INITIALIZED"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_RESERVE = "INSUFFICIENT_RESERVE"
    NUMERICAL_OVERFLOW = "NUMERICAL_OVERFLOW"
    BELIEF_INACTIVE = "BELIEF_INACTIVE"
    # Quality
    QUALITY_TOO_LOW = "QUALITY_TOO_LOW"
    BOUNDARY_CLUSTERING = "BOUNDARY_CLUSTERING"
    # Authorization
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_FACTORY = "INVALID_FACTORY"


class SettlementError(Exception):
    """
    Base class for all engine errors.

    Args:
        code: Error code
        message: Human-readable description
        context: Optional diagnostic values
    """

    def __init__(self, code: ErrorCode, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        """Serialise as {code, message, context}."""
        return {
            "code": self.code.value,
            "message": self.message,
            "context": dict(self.context),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value}: {self.message})"


class ValidationError(SettlementError, ValueError):
    """Inputs rejected before any computation or mutation."""


class StateError(SettlementError):
    """Operation is invalid for the current state; nothing was mutated."""


class QualityError(SettlementError):
    """Decomposition ran but its diagnostics fall below the acceptance bar."""


class AuthorizationError(SettlementError, PermissionError):
    """Caller lacks the authority required for the operation."""
