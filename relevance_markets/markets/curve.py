"""
Integer bonding-curve mathematics.

The curve prices a content token in settlement-currency micro-units per whole
token:

    P(s) = max(F, k * s^2)

where s is the supply in whole tokens and F is a fixed price floor. Below the
crossover supply s* (where k * s*^2 = F) tokens mint at the constant floor
rate, above it the reserve follows the cubic integral

    R(s) = F * s* + k * (s^3 - s*^3) / 3

All quantities are exact Python integers in atomic units: supply in
1e-6 tokens, reserve in micro-units of the settlement currency. Every
division floors, so that reserve_at(supply_at(R)) <= R and a round trip can
never extract more than was deposited.
"""

import math

TOKEN_DECIMALS = 6
TOKEN_UNIT = 10 ** TOKEN_DECIMALS

PRICE_FLOOR = 100                 # micro-units per whole token
DEFAULT_MIN_K_QUADRATIC = 100
DEFAULT_MAX_K_QUADRATIC = 10_000
DEFAULT_MIN_TRADE_AMOUNT = 1_000_000

U64_MAX = 2 ** 64 - 1


def icbrt(n: int) -> int:
    """
    Floor of the cube root of a non-negative integer.

    Integer Newton iteration started from a power of two above the root, so
    the sequence decreases monotonically onto the floor.
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    if n < 2:
        return n
    x = 1 << ((n.bit_length() + 2) // 3)
    while True:
        y = (2 * x + n // (x * x)) // 3
        if y >= x:
            return x
        x = y


def floor_supply(k: int, price_floor: int = PRICE_FLOOR) -> int:
    """Atomic supply at which the quadratic price reaches the floor."""
    return math.isqrt(price_floor * TOKEN_UNIT * TOKEN_UNIT // k)


def reserve_at(supply: int, k: int, price_floor: int = PRICE_FLOOR) -> int:
    """
    Reserve backing a given atomic supply.

    Args:
        supply: Token supply in atomic units
        k: Curve steepness
        price_floor: Floor price in micro-units per whole token

    Returns:
        Reserve in micro-units (floored)
    """
    s_star = floor_supply(k, price_floor)
    if supply <= s_star:
        return price_floor * supply // TOKEN_UNIT

    numerator = (
        3 * TOKEN_UNIT * TOKEN_UNIT * price_floor * s_star
        + k * (supply ** 3 - s_star ** 3)
    )
    return numerator // (3 * TOKEN_UNIT ** 3)


def supply_at(reserve: int, k: int, price_floor: int = PRICE_FLOOR) -> int:
    """
    Invert the curve: the atomic supply a reserve can back.

    In the floor region this is a linear solve, above it a closed-form cube
    root of the cubic integral.

    Args:
        reserve: Reserve in micro-units
        k: Curve steepness
        price_floor: Floor price in micro-units per whole token

    Returns:
        Token supply in atomic units (floored)
    """
    s_star = floor_supply(k, price_floor)
    if reserve * TOKEN_UNIT <= price_floor * s_star:
        return reserve * TOKEN_UNIT // price_floor

    excess = 3 * TOKEN_UNIT ** 3 * reserve - 3 * TOKEN_UNIT * TOKEN_UNIT * price_floor * s_star
    return icbrt(s_star ** 3 + excess // k)


def spot_price(supply: int, k: int, price_floor: int = PRICE_FLOOR) -> int:
    """Marginal price in micro-units per whole token at an atomic supply."""
    return max(price_floor, k * supply * supply // (TOKEN_UNIT * TOKEN_UNIT))


def is_floor_priced(supply: int, k: int, price_floor: int = PRICE_FLOOR) -> bool:
    """True while minting still happens at the constant floor rate."""
    return supply <= floor_supply(k, price_floor)


def rescale_k(k: int, reserve_before: int, reserve_after: int) -> int:
    """
    Elastic-k step: k_new = floor(k * reserve_after / reserve_before).

    Scaling k by the reserve ratio scales the spot price at the current
    supply by the same ratio. Pure integer arithmetic keeps the result
    reproducible and the penalty/reward cycle exact up to one unit of floor
    rounding in k.
    """
    if reserve_before <= 0:
        raise ValueError(f"reserve_before must be positive, got {reserve_before}")
    if reserve_after < 0:
        raise ValueError(f"reserve_after must be non-negative, got {reserve_after}")
    return k * reserve_after // reserve_before
