"""
Belief book: beliefs and their per-epoch submissions.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field

from ..errors import ErrorCode, StateError
from .models import Belief, BeliefStatus, BeliefSubmission

logger = logging.getLogger(__name__)


@dataclass
class BeliefBook:
    """
    Stores beliefs and the submissions made against them in each epoch.

    A submission is unique per (belief, agent, epoch); submitting again in
    the same epoch overwrites the earlier report.
    """
    beliefs: dict[str, Belief] = field(default_factory=dict)
    _submissions: dict[tuple[str, int], dict[str, BeliefSubmission]] = field(
        default_factory=dict, repr=False
    )
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def create_belief(
        self,
        content_id: str,
        creator: str,
        initial_value: float = 0.5,
        duration: int = 10,
        created_epoch: int = 0,
        belief_id: str | None = None,
    ) -> Belief:
        """
        Register a new active belief.

        A content item carries at most one active belief, so each pool
        receives at most one settlement call per epoch.

        Raises:
            StateError: If the belief id is already taken or the content
                already has an active belief
        """
        belief_id = belief_id or uuid.uuid4().hex
        with self._lock:
            if belief_id in self.beliefs:
                raise StateError(
                    ErrorCode.ALREADY_INITIALIZED,
                    f"Belief {belief_id!r} already exists",
                    {"belief_id": belief_id},
                )
            current = self.active_belief_for(content_id)
            if current is not None:
                raise StateError(
                    ErrorCode.ALREADY_INITIALIZED,
                    f"Content {content_id!r} already has active belief {current.belief_id!r}",
                    {"content_id": content_id, "belief_id": current.belief_id},
                )
            belief = Belief(
                belief_id=belief_id,
                content_id=content_id,
                creator=creator,
                initial_value=initial_value,
                duration=duration,
                created_epoch=created_epoch,
            )
            self.beliefs[belief_id] = belief
            return belief

    def get(self, belief_id: str) -> Belief:
        belief = self.beliefs.get(belief_id)
        if belief is None:
            raise StateError(
                ErrorCode.NOT_FOUND,
                f"Unknown belief {belief_id!r}",
                {"belief_id": belief_id},
            )
        return belief

    def submit(
        self,
        belief_id: str,
        agent_id: str,
        belief: float,
        meta_prediction: float,
        epoch: int,
    ) -> BeliefSubmission:
        """
        Record (or overwrite) an agent's report for the given epoch.

        Raises:
            ValidationError: INVALID_SUBMISSION for out-of-range values
            StateError: NOT_FOUND or BELIEF_INACTIVE
        """
        with self._lock:
            target = self.get(belief_id)
            if not target.is_active or target.is_expired_at(epoch):
                raise StateError(
                    ErrorCode.BELIEF_INACTIVE,
                    f"Belief {belief_id!r} is no longer accepting submissions",
                    {"belief_id": belief_id, "expiration_epoch": target.expiration_epoch},
                )
            submission = BeliefSubmission(
                agent_id=agent_id,
                belief=belief,
                meta_prediction=meta_prediction,
                belief_id=belief_id,
                epoch=epoch,
            )
            self._submissions.setdefault((belief_id, epoch), {})[agent_id] = submission
            return submission

    def submissions_for(self, belief_id: str, epoch: int) -> list[BeliefSubmission]:
        """Submissions for a belief in an epoch, ordered by agent id."""
        by_agent = self._submissions.get((belief_id, epoch), {})
        return [by_agent[k] for k in sorted(by_agent)]

    def active_beliefs(self) -> list[Belief]:
        return [b for b in self.beliefs.values() if b.is_active]

    def active_belief_for(self, content_id: str) -> Belief | None:
        for belief in self.beliefs.values():
            if belief.is_active and belief.content_id == content_id:
                return belief
        return None

    def expire(self, epoch: int) -> list[str]:
        """
        Mark every active belief whose duration has elapsed as expired.

        Returns:
            Ids of the beliefs expired by this call
        """
        expired = []
        with self._lock:
            for belief in self.active_beliefs():
                if belief.is_expired_at(epoch):
                    belief.status = BeliefStatus.EXPIRED
                    expired.append(belief.belief_id)
        if expired:
            logger.info("Expired %d beliefs at epoch %d", len(expired), epoch)
        return expired
