"""
Fungible token ledger.

A minimal account model for the settlement currency and the per-content
tokens: each mint has a decimal precision and a mint authority (never a
freeze authority), and balances are keyed by (mint, owner). Pools and the
treasury own vault accounts on the same ledger.

Balance checks always happen before any write, so a failed call leaves every
balance untouched.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass, field

from ..errors import ErrorCode, StateError, ValidationError, AuthorizationError
from .curve import U64_MAX

logger = logging.getLogger(__name__)


def derive_address(*seeds: str) -> str:
    """
    Deterministically derive an address from string seeds.

    The same seeds always give the same address, which is what makes a
    second pool for the same content id collide.
    """
    digest = hashlib.sha256()
    for seed in seeds:
        encoded = seed.encode("utf-8")
        digest.update(len(encoded).to_bytes(4, "big"))
        digest.update(encoded)
    return digest.hexdigest()[:44]


@dataclass
class Mint:
    """
    A fungible token definition.

    Attributes:
        address: Mint address
        decimals: Fixed decimal precision
        mint_authority: The only owner allowed to mint new units
        supply: Total units in circulation
    """
    address: str
    decimals: int
    mint_authority: str
    supply: int = 0
    freeze_authority: None = field(default=None, init=False)


@dataclass
class TokenLedger:
    """
    Balances for every mint, keyed by (mint address, owner).
    """
    mints: dict[str, Mint] = field(default_factory=dict)
    balances: dict[tuple[str, str], int] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def create_mint(self, address: str, decimals: int, mint_authority: str) -> Mint:
        """
        Register a new mint.

        Raises:
            StateError: If the mint address is already taken
        """
        with self._lock:
            if address in self.mints:
                raise StateError(
                    ErrorCode.ALREADY_INITIALIZED,
                    f"Mint {address} already exists",
                    {"mint": address},
                )
            mint = Mint(address=address, decimals=decimals, mint_authority=mint_authority)
            self.mints[address] = mint
            return mint

    def get_mint(self, address: str) -> Mint:
        mint = self.mints.get(address)
        if mint is None:
            raise StateError(ErrorCode.NOT_FOUND, f"Unknown mint {address}", {"mint": address})
        return mint

    def balance_of(self, mint: str, owner: str) -> int:
        """Current balance of an owner for a mint (0 if never funded)."""
        return self.balances.get((mint, owner), 0)

    def mint_to(self, mint: str, owner: str, amount: int, authority: str) -> None:
        """
        Create new units and credit them to an owner.

        Args:
            mint: Mint address
            owner: Recipient
            amount: Units to create (> 0)
            authority: Signer, must be the mint authority
        """
        with self._lock:
            token = self.get_mint(mint)
            _check_amount(amount)
            if authority != token.mint_authority:
                raise AuthorizationError(
                    ErrorCode.UNAUTHORIZED,
                    "Signer is not the mint authority",
                    {"mint": mint, "signer": authority},
                )
            if token.supply + amount > U64_MAX:
                raise StateError(
                    ErrorCode.NUMERICAL_OVERFLOW,
                    "Mint supply would overflow",
                    {"mint": mint, "supply": token.supply, "amount": amount},
                )
            token.supply += amount
            self.balances[(mint, owner)] = self.balance_of(mint, owner) + amount

    def burn(self, mint: str, owner: str, amount: int) -> None:
        """Destroy units held by an owner."""
        with self._lock:
            token = self.get_mint(mint)
            _check_amount(amount)
            self._require_balance(mint, owner, amount)
            self.balances[(mint, owner)] -= amount
            token.supply -= amount

    def transfer(self, mint: str, source: str, destination: str, amount: int) -> None:
        """Move units between owners. Supply is unchanged."""
        with self._lock:
            self.get_mint(mint)
            _check_amount(amount)
            self._require_balance(mint, source, amount)
            self.balances[(mint, source)] -= amount
            self.balances[(mint, destination)] = self.balance_of(mint, destination) + amount
            logger.debug("transfer %d of %s: %s -> %s", amount, mint[:8], source[:8], destination[:8])

    def _require_balance(self, mint: str, owner: str, amount: int) -> None:
        balance = self.balance_of(mint, owner)
        if balance < amount:
            raise StateError(
                ErrorCode.INSUFFICIENT_BALANCE,
                f"Insufficient balance: have {balance}, need {amount}",
                {"mint": mint, "owner": owner, "balance": balance, "amount": amount},
            )


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError(
            ErrorCode.INVALID_AMOUNT,
            f"amount must be a positive integer, got {amount!r}",
            {"amount": amount},
        )
