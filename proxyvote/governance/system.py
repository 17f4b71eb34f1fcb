"""
Governance wiring.

``build_governance`` assembles the tier registry, token registry, weight
resolver, delegation registry and proposal engine around one shared
administrator and block clock.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..logger import get_logger, set_log_level
from ..chain import BlockClock, Ownership
from ..config import GovernanceConfig
from ..metrics import GovernanceMetrics
from .delegation import DelegationRegistry
from .engine import ProposalEngine
from .execution import ProposalExecutor
from .snapshots import TokenVotingRegistry
from .tiers import MembershipRegistry
from .weights import WeightOverrides, WeightResolver

logger = get_logger(__name__)


@dataclass
class GovernanceSystem:
    """All governance components of one deployment."""
    ownership: Ownership
    clock: BlockClock
    config: GovernanceConfig
    membership: MembershipRegistry
    tokens: TokenVotingRegistry
    resolver: WeightResolver
    delegations: DelegationRegistry
    engine: ProposalEngine
    metrics: Optional[GovernanceMetrics] = None

    @property
    def owner(self) -> str:
        return self.ownership.owner

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "height": self.clock.height,
            "membership": self.membership.to_dict(),
            "tokens": self.tokens.to_dict(),
            "delegations": self.delegations.to_dict(),
            "engine": self.engine.to_dict(),
        }


def build_governance(
    owner: str,
    config: Optional[GovernanceConfig] = None,
    clock: Optional[BlockClock] = None,
    metrics: Optional[GovernanceMetrics] = None,
) -> GovernanceSystem:
    """
    Build a fully wired governance system.

    Args:
        owner:   Initial administrator identity
        config:  Engine configuration (defaults when omitted); its
                 ``log_level`` is applied to the package loggers
        clock:   Host block clock (a fresh clock at height 0 when omitted)
        metrics: Shared metrics; created from ``config.metrics`` when omitted
    """
    config = config or GovernanceConfig()
    config.validate()
    set_log_level(config.log_level)
    clock = clock or BlockClock()
    if metrics is None and config.metrics.enabled:
        metrics = GovernanceMetrics(namespace=config.metrics.namespace)

    ownership = Ownership(owner)
    membership = MembershipRegistry(ownership, clock, metrics=metrics)
    tokens = TokenVotingRegistry(ownership, clock, config=config, metrics=metrics)
    resolver = WeightResolver(membership, tokens, WeightOverrides(), config=config)
    delegations = DelegationRegistry(clock, power_fn=resolver.resolve, metrics=metrics)
    engine = ProposalEngine(
        ownership,
        clock,
        resolver,
        delegations,
        executor=ProposalExecutor(metrics),
        config=config,
        metrics=metrics,
    )

    logger.info(
        f"Governance initialized: owner={owner}, height={clock.height}, "
        f"pass threshold={config.proposals.pass_threshold}, "
        f"timelock={config.proposals.timelock_period}"
    )
    return GovernanceSystem(
        ownership=ownership,
        clock=clock,
        config=config,
        membership=membership,
        tokens=tokens,
        resolver=resolver,
        delegations=delegations,
        engine=engine,
        metrics=metrics,
    )
