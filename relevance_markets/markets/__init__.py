"""Bonding-curve pools, token ledger and the protocol treasury."""

from .curve import (
    TOKEN_DECIMALS,
    TOKEN_UNIT,
    PRICE_FLOOR,
    DEFAULT_MIN_K_QUADRATIC,
    DEFAULT_MAX_K_QUADRATIC,
    DEFAULT_MIN_TRADE_AMOUNT,
    icbrt,
    reserve_at,
    supply_at,
    spot_price,
    rescale_k,
)
from .ledger import Mint, TokenLedger, derive_address
from .treasury import ProtocolTreasury
from .pool import ContentPool, PoolConfig, PoolState, Trade, TradeSide
from .factory import PoolFactory

__all__ = [
    # Curve math
    "TOKEN_DECIMALS",
    "TOKEN_UNIT",
    "PRICE_FLOOR",
    "DEFAULT_MIN_K_QUADRATIC",
    "DEFAULT_MAX_K_QUADRATIC",
    "DEFAULT_MIN_TRADE_AMOUNT",
    "icbrt",
    "reserve_at",
    "supply_at",
    "spot_price",
    "rescale_k",
    # Ledger
    "Mint",
    "TokenLedger",
    "derive_address",
    # Pools
    "ContentPool",
    "PoolConfig",
    "PoolState",
    "Trade",
    "TradeSide",
    "PoolFactory",
    # Treasury
    "ProtocolTreasury",
]
