"""
Protocol treasury: the zero-sum clearing vault.

The treasury holds no accounting of its own beyond the balance of its
settlement-currency vault. Pool penalties flow in, pool rewards flow out,
and over any cycle in which the two totals match the balance returns exactly
to where it started.

There is at most one treasury per Protocol state handle; creation goes through
Protocol.initialize_treasury, which rejects a second attempt.
"""

import logging
import threading
from dataclasses import dataclass, field

from ..errors import AuthorizationError, ErrorCode
from .ledger import TokenLedger, derive_address

logger = logging.getLogger(__name__)


@dataclass
class ProtocolTreasury:
    """
    Singleton clearing vault.

    Attributes:
        authority: Key allowed to hand the treasury over to a new authority
        ledger: Ledger holding the vault balance
        currency_mint: Settlement-currency mint address
        namespace: Seed namespace (one treasury per namespace)
    """
    authority: str
    ledger: TokenLedger = field(repr=False)
    currency_mint: str = field(repr=False)
    namespace: str = "protocol"

    address: str = field(default="", init=False)
    vault: str = field(default="", init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self):
        self.address = derive_address("treasury", self.namespace)
        self.vault = derive_address("treasury_vault", self.address)

    @property
    def vault_balance(self) -> int:
        """Settlement currency currently held by the treasury."""
        return self.ledger.balance_of(self.currency_mint, self.vault)

    @property
    def lock(self) -> threading.RLock:
        """Re-entrant lock held by anything moving funds into or out of the vault."""
        return self._lock

    def update_authority(self, caller: str, new_authority: str) -> None:
        """
        Hand the treasury over to a new authority.

        Args:
            caller: Signer of the request, must be the current authority
            new_authority: Key that becomes the authority

        Raises:
            AuthorizationError: If the caller is not the current authority
        """
        with self._lock:
            if caller != self.authority:
                raise AuthorizationError(
                    ErrorCode.UNAUTHORIZED,
                    "Only the treasury authority can update the authority",
                    {"signer": caller},
                )
            logger.info("Treasury authority updated: %s -> %s", self.authority, new_authority)
            self.authority = new_authority
