"""
Protocol state handle.

Everything that would otherwise be global state lives on a Protocol
instance: the token ledger and settlement currency, the pool factory, the
treasury, the belief book, the agent registry and the epoch counter. Two
Protocol instances are fully independent, which is what tests and
simulations rely on.

Example:
    protocol = Protocol()
    protocol.initialize_factory("factory-admin", "settler")
    protocol.initialize_treasury("treasury-admin")
    protocol.initialize_pool("post-1", 200, "Post One", "P1")
    belief = protocol.create_belief("post-1", creator="alice")
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping

from .agents.base import Agent
from .beliefs.book import BeliefBook
from .beliefs.decomposition import BeliefDecomposer, DecompositionResult, LeaveOneOutResult
from .beliefs.models import Belief, BeliefSubmission
from .errors import ErrorCode, StateError
from .markets.curve import TOKEN_DECIMALS
from .markets.factory import PoolFactory
from .markets.ledger import TokenLedger, derive_address
from .markets.pool import ContentPool, PoolConfig, Trade
from .markets.treasury import ProtocolTreasury
from .settlement.orchestrator import EpochReport, EpochSettlementOrchestrator, SettlementConfig

logger = logging.getLogger(__name__)


@dataclass
class Protocol:
    """
    Explicit state handle for one deployment of the engine.

    Attributes:
        pool_config: Pool defaults and parameter bounds
        settlement_config: Decomposition and redistribution settings
        currency_authority: Mint authority of the settlement currency
        namespace: Seed namespace for derived addresses
    """
    pool_config: PoolConfig = field(default_factory=PoolConfig)
    settlement_config: SettlementConfig = field(default_factory=SettlementConfig)
    currency_authority: str = "currency-authority"
    namespace: str = "protocol"

    ledger: TokenLedger = field(default_factory=TokenLedger, init=False, repr=False)
    book: BeliefBook = field(default_factory=BeliefBook, init=False, repr=False)
    agents: dict[str, Agent] = field(default_factory=dict, init=False, repr=False)
    currency_mint: str = field(default="", init=False)
    factory: PoolFactory | None = field(default=None, init=False)
    treasury: ProtocolTreasury | None = field(default=None, init=False)
    current_epoch: int = field(default=0, init=False)

    def __post_init__(self):
        self.currency_mint = derive_address("currency", self.namespace)
        self.ledger.create_mint(self.currency_mint, TOKEN_DECIMALS, self.currency_authority)

    # ------------------------------------------------------------------
    # Genesis
    # ------------------------------------------------------------------

    def initialize_factory(self, factory_authority: str, pool_authority: str) -> PoolFactory:
        """Create the pool factory. A second call fails."""
        if self.factory is not None:
            raise StateError(
                ErrorCode.ALREADY_INITIALIZED,
                "Pool factory already initialized",
                {"address": self.factory.address},
            )
        self.factory = PoolFactory(
            factory_authority=factory_authority,
            pool_authority=pool_authority,
            ledger=self.ledger,
            currency_mint=self.currency_mint,
            config=self.pool_config,
            namespace=self.namespace,
        )
        return self.factory

    def initialize_treasury(self, authority: str) -> ProtocolTreasury:
        """
        Create the treasury singleton for this protocol.

        Raises:
            StateError: ALREADY_INITIALIZED on any second attempt
        """
        if self.treasury is not None:
            raise StateError(
                ErrorCode.ALREADY_INITIALIZED,
                "Protocol treasury already initialized",
                {"address": self.treasury.address},
            )
        self.treasury = ProtocolTreasury(
            authority=authority,
            ledger=self.ledger,
            currency_mint=self.currency_mint,
            namespace=self.namespace,
        )
        logger.info("Treasury initialized at %s", self.treasury.address[:12])
        return self.treasury

    def update_treasury_authority(self, caller: str, new_authority: str) -> None:
        self._require_treasury().update_authority(caller, new_authority)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def register_agent(self, agent_id: str, stake: float = 0.0, address: str = "") -> Agent:
        if agent_id in self.agents:
            raise StateError(
                ErrorCode.ALREADY_INITIALIZED,
                f"Agent {agent_id!r} already registered",
                {"agent_id": agent_id},
            )
        agent = Agent(agent_id=agent_id, stake=stake, address=address)
        self.agents[agent_id] = agent
        return agent

    def fund(self, owner: str, amount: int) -> None:
        """Mint settlement currency to an owner (test and simulation faucet)."""
        self.ledger.mint_to(self.currency_mint, owner, amount, authority=self.currency_authority)

    def currency_balance(self, owner: str) -> int:
        return self.ledger.balance_of(self.currency_mint, owner)

    def token_balance(self, content_id: str, owner: str) -> int:
        return self.ledger.balance_of(self.get_pool(content_id).mint, owner)

    # ------------------------------------------------------------------
    # Pools
    # ------------------------------------------------------------------

    def initialize_pool(
        self,
        content_id: str,
        k_quadratic: int,
        token_name: str,
        token_symbol: str,
        reserve_cap: int | None = None,
    ) -> ContentPool:
        return self._require_factory().create_pool(
            content_id, k_quadratic, token_name, token_symbol, reserve_cap
        )

    def get_pool(self, content_id: str) -> ContentPool:
        pool = self._require_factory().get_pool(content_id)
        if pool is None:
            raise StateError(
                ErrorCode.NOT_FOUND,
                f"No pool for content {content_id!r}",
                {"content_id": content_id},
            )
        return pool

    def buy(self, content_id: str, buyer: str, amount: int) -> Trade:
        return self.get_pool(content_id).buy(buyer, amount)

    def sell(self, content_id: str, seller: str, token_amount: int) -> Trade:
        return self.get_pool(content_id).sell(seller, token_amount)

    def apply_pool_penalty(
        self,
        content_id: str,
        amount: int,
        authority: str,
        factory: PoolFactory | None = None,
    ) -> int:
        return self.get_pool(content_id).apply_penalty(
            amount, authority, factory or self._require_factory(), self._require_treasury()
        )

    def apply_pool_reward(
        self,
        content_id: str,
        amount: int,
        authority: str,
        factory: PoolFactory | None = None,
    ) -> int:
        return self.get_pool(content_id).apply_reward(
            amount, authority, factory or self._require_factory(), self._require_treasury()
        )

    # ------------------------------------------------------------------
    # Beliefs
    # ------------------------------------------------------------------

    def create_belief(
        self,
        content_id: str,
        creator: str,
        initial_value: float = 0.5,
        duration: int = 10,
        belief_id: str | None = None,
    ) -> Belief:
        return self.book.create_belief(
            content_id=content_id,
            creator=creator,
            initial_value=initial_value,
            duration=duration,
            created_epoch=self.current_epoch,
            belief_id=belief_id,
        )

    def get_belief(self, belief_id: str) -> Belief:
        return self.book.get(belief_id)

    def submit(
        self,
        belief_id: str,
        agent_id: str,
        belief: float,
        meta_prediction: float,
    ) -> BeliefSubmission:
        """Record an agent's report for the current epoch (overwrites)."""
        if agent_id not in self.agents:
            raise StateError(
                ErrorCode.NOT_FOUND,
                f"Unknown agent {agent_id!r}",
                {"agent_id": agent_id},
            )
        return self.book.submit(belief_id, agent_id, belief, meta_prediction, self.current_epoch)

    def decompose(
        self,
        belief_id: str,
        weights: Mapping[str, float],
        epoch: int | None = None,
    ) -> DecompositionResult:
        """Decompose a belief's submissions without settling anything."""
        submissions = self._submissions(belief_id, epoch)
        return BeliefDecomposer(self.settlement_config.decomposition).decompose(submissions, weights)

    def decompose_loo(
        self,
        belief_id: str,
        exclude_agent_id: str,
        weights: Mapping[str, float],
        epoch: int | None = None,
    ) -> LeaveOneOutResult:
        submissions = self._submissions(belief_id, epoch)
        return BeliefDecomposer(self.settlement_config.decomposition).decompose_loo(
            submissions, weights, exclude_agent_id
        )

    # ------------------------------------------------------------------
    # Epochs
    # ------------------------------------------------------------------

    def process_epoch(self, epoch: int | None = None) -> EpochReport:
        """
        Settle an epoch (default: the current one) and advance the clock.

        Returns:
            EpochReport; the protocol's current epoch becomes its next_epoch
        """
        epoch = self.current_epoch if epoch is None else epoch
        orchestrator = EpochSettlementOrchestrator(
            book=self.book,
            agents=self.agents,
            factory=self.factory,
            treasury=self.treasury,
            config=self.settlement_config,
        )
        report = orchestrator.process_epoch(epoch)
        self.current_epoch = max(self.current_epoch, report.next_epoch)
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _submissions(self, belief_id: str, epoch: int | None) -> list[BeliefSubmission]:
        self.book.get(belief_id)
        return self.book.submissions_for(belief_id, self.current_epoch if epoch is None else epoch)

    def _require_factory(self) -> PoolFactory:
        if self.factory is None:
            raise StateError(ErrorCode.NOT_FOUND, "Pool factory is not initialized")
        return self.factory

    def _require_treasury(self) -> ProtocolTreasury:
        if self.treasury is None:
            raise StateError(ErrorCode.NOT_FOUND, "Protocol treasury is not initialized")
        return self.treasury
