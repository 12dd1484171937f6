"""
Content pool: a per-content bonding-curve ledger.

Each pool owns a token mint and a settlement-currency vault. Buys deposit
currency and mint tokens along the curve, sells burn tokens and pay out the
difference in curve reserve. Epoch settlement moves currency between the vault
and the protocol treasury through apply_penalty / apply_reward, and rescales
k_quadratic by the reserve ratio so the spot price at the current supply moves
in proportion to the reserve while the supply itself stays put.

Every mutating method validates all of its preconditions before touching the
ledger, and runs under the pool's lock (and the treasury's, for settlement
transfers), so a call either commits fully or leaves no trace.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING

from ..errors import AuthorizationError, ErrorCode, StateError, ValidationError
from . import curve
from .ledger import TokenLedger
from .treasury import ProtocolTreasury

if TYPE_CHECKING:
    from .factory import PoolFactory

logger = logging.getLogger(__name__)


@dataclass
class PoolConfig:
    """
    Protocol-wide pool defaults.

    Attributes:
        min_k_quadratic: Smallest accepted initial curve steepness
        max_k_quadratic: Largest accepted initial curve steepness
        min_trade_amount: Minimum buy (currency) and sell (token) size, atomic units
        price_floor: Floor price in micro-units per whole token
        min_reserve_cap: Smallest accepted optional reserve cap
        max_reserve_cap: Largest accepted optional reserve cap
    """
    min_k_quadratic: int = curve.DEFAULT_MIN_K_QUADRATIC
    max_k_quadratic: int = curve.DEFAULT_MAX_K_QUADRATIC
    min_trade_amount: int = curve.DEFAULT_MIN_TRADE_AMOUNT
    price_floor: int = curve.PRICE_FLOOR
    min_reserve_cap: int = 1_000 * curve.TOKEN_UNIT
    max_reserve_cap: int = 10_000_000_000 * curve.TOKEN_UNIT

    def __post_init__(self):
        if not 1 <= self.min_k_quadratic <= self.max_k_quadratic:
            raise ValueError(
                f"k bounds must satisfy 1 <= min <= max, got "
                f"[{self.min_k_quadratic}, {self.max_k_quadratic}]"
            )
        if self.min_trade_amount <= 0:
            raise ValueError(f"min_trade_amount must be positive, got {self.min_trade_amount}")
        if self.price_floor <= 0:
            raise ValueError(f"price_floor must be positive, got {self.price_floor}")
        if not 0 < self.min_reserve_cap <= self.max_reserve_cap <= curve.U64_MAX:
            raise ValueError(
                f"reserve cap bounds must satisfy 0 < min <= max <= u64, got "
                f"[{self.min_reserve_cap}, {self.max_reserve_cap}]"
            )

    def validate_pool_parameters(self, k_quadratic: int, reserve_cap: int | None = None) -> None:
        """
        Check creation parameters against the configured bounds.

        Raises:
            ValidationError: INVALID_PARAMETERS if anything is out of bounds
        """
        if not isinstance(k_quadratic, int) or not (
            self.min_k_quadratic <= k_quadratic <= self.max_k_quadratic
        ):
            raise ValidationError(
                ErrorCode.INVALID_PARAMETERS,
                f"k_quadratic must be in [{self.min_k_quadratic}, {self.max_k_quadratic}], "
                f"got {k_quadratic}",
                {"k_quadratic": k_quadratic},
            )
        if reserve_cap is not None and not (
            self.min_reserve_cap <= reserve_cap <= self.max_reserve_cap
        ):
            raise ValidationError(
                ErrorCode.INVALID_PARAMETERS,
                f"reserve_cap must be in [{self.min_reserve_cap}, {self.max_reserve_cap}], "
                f"got {reserve_cap}",
                {"reserve_cap": reserve_cap},
            )


class TradeSide(Enum):
    BUY = auto()
    SELL = auto()


@dataclass
class Trade:
    """
    Record of a single executed trade.
    """
    sequence: int
    trader: str
    side: TradeSide
    token_amount: int       # Tokens minted (buy) or burned (sell)
    currency_amount: int    # Currency paid in (buy) or out (sell)
    price_after: int        # Spot price after execution


@dataclass
class PoolState:
    """
    Snapshot of a pool's externally readable state.
    """
    content_id: str
    k_quadratic: int
    token_supply: int
    reserve: int
    spot_price: int
    floor_priced: bool
    vault_balance: int
    n_trades: int


@dataclass
class ContentPool:
    """
    Bonding-curve pool for one content item.

    Pools are created through PoolFactory.create_pool and are never closed.
    """
    content_id: str
    address: str
    factory: str
    k_quadratic: int
    token_name: str
    token_symbol: str
    mint: str
    vault: str
    currency_mint: str
    ledger: TokenLedger = field(repr=False)
    config: PoolConfig = field(default_factory=PoolConfig, repr=False)
    reserve_cap: int | None = None

    token_supply: int = 0
    reserve: int = 0
    trades: list[Trade] = field(default_factory=list, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def vault_balance(self) -> int:
        return self.ledger.balance_of(self.currency_mint, self.vault)

    def spot_price(self) -> int:
        """Current marginal price in micro-units per whole token."""
        return curve.spot_price(self.token_supply, self.k_quadratic, self.config.price_floor)

    def quote_buy(self, amount: int) -> int:
        """Tokens a buy of `amount` currency would mint right now."""
        new_supply = curve.supply_at(self.reserve + amount, self.k_quadratic, self.config.price_floor)
        return new_supply - self.token_supply

    def quote_sell(self, token_amount: int) -> int:
        """Currency a sell of `token_amount` tokens would pay out right now."""
        remaining = curve.reserve_at(
            self.token_supply - token_amount, self.k_quadratic, self.config.price_floor
        )
        return self.reserve - min(self.reserve, remaining)

    def get_current_state(self) -> PoolState:
        with self._lock:
            return PoolState(
                content_id=self.content_id,
                k_quadratic=self.k_quadratic,
                token_supply=self.token_supply,
                reserve=self.reserve,
                spot_price=self.spot_price(),
                floor_priced=curve.is_floor_priced(
                    self.token_supply, self.k_quadratic, self.config.price_floor
                ),
                vault_balance=self.vault_balance,
                n_trades=len(self.trades),
            )

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def buy(self, buyer: str, amount: int) -> Trade:
        """
        Deposit settlement currency and mint tokens along the curve.

        Args:
            buyer: Owner paying the currency and receiving the tokens
            amount: Currency to deposit, atomic units

        Returns:
            Trade record

        Raises:
            ValidationError: Amount below the minimum, over the reserve cap, or
                too small to mint a single atomic unit
            StateError: Insufficient buyer balance or overflow
        """
        with self._lock:
            self._check_trade_amount(amount)
            new_reserve = self.reserve + amount
            if self.reserve_cap is not None and new_reserve > self.reserve_cap:
                raise ValidationError(
                    ErrorCode.INVALID_AMOUNT,
                    "Buy would exceed the pool reserve cap",
                    {"reserve": self.reserve, "amount": amount, "reserve_cap": self.reserve_cap},
                )
            new_supply = curve.supply_at(new_reserve, self.k_quadratic, self.config.price_floor)
            _check_u64("reserve", new_reserve)
            _check_u64("token_supply", new_supply)
            tokens_minted = new_supply - self.token_supply
            if tokens_minted <= 0:
                raise ValidationError(
                    ErrorCode.INVALID_AMOUNT,
                    "Buy is too small to mint any tokens",
                    {"amount": amount},
                )
            balance = self.ledger.balance_of(self.currency_mint, buyer)
            if balance < amount:
                raise StateError(
                    ErrorCode.INSUFFICIENT_BALANCE,
                    f"Buyer balance {balance} is below {amount}",
                    {"balance": balance, "amount": amount},
                )

            self.ledger.transfer(self.currency_mint, buyer, self.vault, amount)
            self.ledger.mint_to(self.mint, buyer, tokens_minted, authority=self.address)
            self.reserve = new_reserve
            self.token_supply = new_supply

            trade = self._record(buyer, TradeSide.BUY, tokens_minted, amount)
            logger.debug(
                "buy %s: %d paid, %d minted, supply=%d reserve=%d",
                self.content_id, amount, tokens_minted, self.token_supply, self.reserve,
            )
            return trade

    def sell(self, seller: str, token_amount: int) -> Trade:
        """
        Burn tokens and pay out the reserve they release.

        The payout is the current reserve minus the curve reserve at the
        reduced supply, so the reserve always tracks the curve after a sell.

        Args:
            seller: Owner of the tokens
            token_amount: Tokens to burn, atomic units

        Returns:
            Trade record
        """
        with self._lock:
            self._check_trade_amount(token_amount)
            if token_amount > self.token_supply:
                raise ValidationError(
                    ErrorCode.INVALID_AMOUNT,
                    "Sell exceeds the pool token supply",
                    {"token_amount": token_amount, "token_supply": self.token_supply},
                )
            held = self.ledger.balance_of(self.mint, seller)
            if held < token_amount:
                raise StateError(
                    ErrorCode.INSUFFICIENT_BALANCE,
                    f"Seller holds {held} tokens, needs {token_amount}",
                    {"balance": held, "token_amount": token_amount},
                )
            payout = self.quote_sell(token_amount)
            if payout <= 0:
                raise ValidationError(
                    ErrorCode.INVALID_AMOUNT,
                    "Sell is too small to release any reserve",
                    {"token_amount": token_amount},
                )
            if payout > self.vault_balance:
                raise StateError(
                    ErrorCode.INSUFFICIENT_RESERVE,
                    "Vault cannot cover the payout",
                    {"payout": payout, "vault_balance": self.vault_balance},
                )

            self.ledger.burn(self.mint, seller, token_amount)
            self.ledger.transfer(self.currency_mint, self.vault, seller, payout)
            self.token_supply -= token_amount
            self.reserve -= payout

            trade = self._record(seller, TradeSide.SELL, token_amount, payout)
            logger.debug(
                "sell %s: %d burned, %d paid out, supply=%d reserve=%d",
                self.content_id, token_amount, payout, self.token_supply, self.reserve,
            )
            return trade

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def apply_penalty(
        self,
        amount: int,
        authority: str,
        factory: "PoolFactory",
        treasury: ProtocolTreasury,
    ) -> int:
        """
        Move `amount` from the pool vault to the treasury and shrink k.

        Args:
            amount: Currency to remove, atomic units
            authority: Signer, must be the factory's pool authority
            factory: Factory reference, must be the pool's own
            treasury: Destination treasury

        Returns:
            The new k_quadratic

        Raises:
            AuthorizationError: INVALID_FACTORY or UNAUTHORIZED
            ValidationError: Non-positive amount
            StateError: Amount would drain the reserve or exceeds the vault
        """
        with self._lock, treasury.lock:
            self._check_settlement_authority(authority, factory)
            _check_settlement_amount(amount)
            if amount >= self.reserve:
                raise StateError(
                    ErrorCode.INSUFFICIENT_RESERVE,
                    "Penalty must leave a positive reserve",
                    {"amount": amount, "reserve": self.reserve},
                )
            if amount > self.vault_balance:
                raise StateError(
                    ErrorCode.INSUFFICIENT_RESERVE,
                    "Penalty exceeds the pool vault balance",
                    {"amount": amount, "vault_balance": self.vault_balance},
                )
            new_reserve = self.reserve - amount
            new_k = self._rescaled_k(new_reserve)

            self.ledger.transfer(self.currency_mint, self.vault, treasury.vault, amount)
            old_k = self.k_quadratic
            self.reserve = new_reserve
            self.k_quadratic = new_k

            logger.info(
                "penalty %s: %d to treasury, reserve=%d, k %d -> %d",
                self.content_id, amount, self.reserve, old_k, new_k,
            )
            return new_k

    def apply_reward(
        self,
        amount: int,
        authority: str,
        factory: "PoolFactory",
        treasury: ProtocolTreasury,
    ) -> int:
        """
        Move `amount` from the treasury to the pool vault and grow k.

        Args:
            amount: Currency to add, atomic units
            authority: Signer, must be the factory's pool authority
            factory: Factory reference, must be the pool's own
            treasury: Funding treasury

        Returns:
            The new k_quadratic
        """
        with self._lock, treasury.lock:
            self._check_settlement_authority(authority, factory)
            _check_settlement_amount(amount)
            if self.reserve <= 0:
                raise StateError(
                    ErrorCode.INSUFFICIENT_RESERVE,
                    "Cannot rescale a pool with an empty reserve",
                    {"reserve": self.reserve},
                )
            if amount > treasury.vault_balance:
                raise StateError(
                    ErrorCode.INSUFFICIENT_BALANCE,
                    "Reward exceeds the treasury vault balance",
                    {"amount": amount, "treasury_balance": treasury.vault_balance},
                )
            new_reserve = self.reserve + amount
            _check_u64("reserve", new_reserve)
            new_k = self._rescaled_k(new_reserve)

            self.ledger.transfer(self.currency_mint, treasury.vault, self.vault, amount)
            old_k = self.k_quadratic
            self.reserve = new_reserve
            self.k_quadratic = new_k

            logger.info(
                "reward %s: %d from treasury, reserve=%d, k %d -> %d",
                self.content_id, amount, self.reserve, old_k, new_k,
            )
            return new_k

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_trade_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < self.config.min_trade_amount:
            raise ValidationError(
                ErrorCode.INVALID_AMOUNT,
                f"Trade amount must be at least {self.config.min_trade_amount}, got {amount!r}",
                {"amount": amount, "min_trade_amount": self.config.min_trade_amount},
            )

    def _check_settlement_authority(self, authority: str, factory: "PoolFactory") -> None:
        if factory.address != self.factory:
            raise AuthorizationError(
                ErrorCode.INVALID_FACTORY,
                "Factory reference does not match the pool's factory",
                {"expected": self.factory, "got": factory.address},
            )
        if authority != factory.pool_authority:
            raise AuthorizationError(
                ErrorCode.UNAUTHORIZED,
                "Signer is not the pool authority",
                {"signer": authority},
            )

    def _rescaled_k(self, new_reserve: int) -> int:
        new_k = curve.rescale_k(self.k_quadratic, self.reserve, new_reserve)
        if new_k < 1:
            raise StateError(
                ErrorCode.INSUFFICIENT_RESERVE,
                "Rescale would collapse k_quadratic to zero",
                {"k_quadratic": self.k_quadratic, "reserve": self.reserve, "new_reserve": new_reserve},
            )
        _check_u64("k_quadratic", new_k)
        return new_k

    def _record(self, trader: str, side: TradeSide, token_amount: int, currency_amount: int) -> Trade:
        trade = Trade(
            sequence=len(self.trades),
            trader=trader,
            side=side,
            token_amount=token_amount,
            currency_amount=currency_amount,
            price_after=self.spot_price(),
        )
        self.trades.append(trade)
        return trade


def _check_settlement_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError(
            ErrorCode.INVALID_AMOUNT,
            f"Settlement amount must be a positive integer, got {amount!r}",
            {"amount": amount},
        )


def _check_u64(name: str, value: int) -> None:
    if value > curve.U64_MAX:
        raise StateError(
            ErrorCode.NUMERICAL_OVERFLOW,
            f"{name} would overflow",
            {name: value},
        )
