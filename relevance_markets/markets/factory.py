"""
Pool factory and registry.

The factory is the single place pools are created. It derives each pool's
address from its content id, so a second pool for the same content collides,
and it holds the two keys that govern pools:

- factory_authority: may rotate either key
- pool_authority: the only signer accepted for penalty/reward calls
"""

import logging
import threading
from dataclasses import dataclass, field

from ..errors import AuthorizationError, ErrorCode, StateError, ValidationError
from .curve import TOKEN_DECIMALS
from .ledger import TokenLedger, derive_address
from .pool import ContentPool, PoolConfig

logger = logging.getLogger(__name__)


@dataclass
class PoolFactory:
    """
    Creates and indexes content pools.

    Attributes:
        factory_authority: Key that manages the factory
        pool_authority: Key that signs settlement calls against pools
        ledger: Ledger on which pool mints and vaults live
        currency_mint: Settlement-currency mint address
        config: Pool defaults and bounds
    """
    factory_authority: str
    pool_authority: str
    ledger: TokenLedger = field(repr=False)
    currency_mint: str = field(repr=False)
    config: PoolConfig = field(default_factory=PoolConfig)
    namespace: str = "protocol"

    address: str = field(default="", init=False)
    pools: dict[str, ContentPool] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self):
        self.address = derive_address("factory", self.namespace)

    @property
    def total_pools(self) -> int:
        return len(self.pools)

    @staticmethod
    def pool_address(content_id: str) -> str:
        """Deterministic pool address for a content id."""
        return derive_address("pool", content_id)

    def create_pool(
        self,
        content_id: str,
        k_quadratic: int,
        token_name: str,
        token_symbol: str,
        reserve_cap: int | None = None,
    ) -> ContentPool:
        """
        Create the pool for a content item. Permissionless.

        Args:
            content_id: Content identifier (non-empty)
            k_quadratic: Initial curve steepness, within the configured bounds
            token_name: Token display name
            token_symbol: Token ticker
            reserve_cap: Optional ceiling on the reserve reachable by buys

        Returns:
            The new pool, with zero supply and reserve

        Raises:
            ValidationError: Empty content id or out-of-bounds parameters
            StateError: A pool already exists at the derived address
        """
        if not content_id:
            raise ValidationError(
                ErrorCode.INVALID_PARAMETERS,
                "content_id must be non-empty",
                {"content_id": content_id},
            )
        self.config.validate_pool_parameters(k_quadratic, reserve_cap)

        address = self.pool_address(content_id)
        with self._lock:
            if address in self.pools:
                raise StateError(
                    ErrorCode.ALREADY_INITIALIZED,
                    f"Pool for content {content_id!r} already exists",
                    {"content_id": content_id, "address": address},
                )
            mint_address = derive_address("mint", address)
            vault_address = derive_address("vault", address)
            self.ledger.create_mint(mint_address, TOKEN_DECIMALS, mint_authority=address)

            pool = ContentPool(
                content_id=content_id,
                address=address,
                factory=self.address,
                k_quadratic=k_quadratic,
                token_name=token_name,
                token_symbol=token_symbol,
                mint=mint_address,
                vault=vault_address,
                currency_mint=self.currency_mint,
                ledger=self.ledger,
                config=self.config,
                reserve_cap=reserve_cap,
            )
            self.pools[address] = pool

        logger.info("Created pool %s for content %s (k=%d)", address[:12], content_id, k_quadratic)
        return pool

    def get_pool(self, content_id: str) -> ContentPool | None:
        """Look up the pool for a content id, if one exists."""
        return self.pools.get(self.pool_address(content_id))

    def update_pool_authority(self, caller: str, new_authority: str) -> None:
        """Rotate the settlement signer. Only the factory authority may do this."""
        with self._lock:
            self._require_factory_authority(caller)
            self.pool_authority = new_authority

    def update_factory_authority(self, caller: str, new_authority: str) -> None:
        """Hand the factory to a new owner."""
        with self._lock:
            self._require_factory_authority(caller)
            self.factory_authority = new_authority

    def _require_factory_authority(self, caller: str) -> None:
        if caller != self.factory_authority:
            raise AuthorizationError(
                ErrorCode.UNAUTHORIZED,
                "Only the factory authority can manage the factory",
                {"signer": caller},
            )
