"""
Belief data model.

A Belief is the proposition attached to one content item. Agents report a
BeliefSubmission against it every epoch: their own probability (belief) and
their forecast of what everyone else will report (meta-prediction).
"""

import math
from dataclasses import dataclass
from enum import Enum, auto

from ..errors import ErrorCode, ValidationError


class BeliefStatus(Enum):
    """Lifecycle of a belief."""
    ACTIVE = auto()
    EXPIRED = auto()


@dataclass
class Belief:
    """
    A proposition whose consensus is re-settled every epoch.

    Attributes:
        belief_id: Unique identifier
        content_id: Content item (and pool) this belief scores
        creator: Agent that created the content
        initial_value: Consensus before the first settlement
        duration: Number of epochs the belief stays active
        created_epoch: Epoch of creation
        previous_aggregate: Last settled consensus; only settlement writes it
        certainty: Certainty of the last settlement
        previous_disagreement: Disagreement entropy of the last settlement, bits
        last_processed_epoch: Most recent epoch settled, if any
    """
    belief_id: str
    content_id: str
    creator: str
    initial_value: float = 0.5
    duration: int = 10
    created_epoch: int = 0
    previous_aggregate: float | None = None
    certainty: float = 0.0
    previous_disagreement: float = 0.0
    status: BeliefStatus = BeliefStatus.ACTIVE
    last_processed_epoch: int | None = None

    def __post_init__(self):
        if not 0 <= self.initial_value <= 1:
            raise ValueError(f"initial_value must be in [0, 1], got {self.initial_value}")
        if self.duration < 1:
            raise ValueError(f"duration must be at least 1 epoch, got {self.duration}")
        if self.previous_aggregate is None:
            self.previous_aggregate = self.initial_value

    @property
    def expiration_epoch(self) -> int:
        return self.created_epoch + self.duration

    @property
    def is_active(self) -> bool:
        return self.status == BeliefStatus.ACTIVE

    def is_expired_at(self, epoch: int) -> bool:
        return epoch >= self.expiration_epoch


@dataclass(frozen=True)
class BeliefSubmission:
    """
    One agent's report for one belief in one epoch.
    """
    agent_id: str
    belief: float
    meta_prediction: float
    belief_id: str = ""
    epoch: int = 0

    def __post_init__(self):
        for name in ("belief", "meta_prediction"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value) or not 0 <= value <= 1:
                raise ValidationError(
                    ErrorCode.INVALID_SUBMISSION,
                    f"{name} must be a finite probability in [0, 1], got {value!r}",
                    {"agent_id": self.agent_id, name: value},
                )
