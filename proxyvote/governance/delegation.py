"""
Delegation Registry

One-hop vote-casting authorization. Each voter has at most one delegate;
a delegate may vote on the voter's behalf but cannot pass that authority on.

Invariants:
    - voter != delegate
    - no cycles of any length (A → B → C → A is rejected)
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..logger import get_logger
from ..chain import BlockClock
from ..exceptions import AlreadyDelegated, NoDelegation, SelfDelegation
from ..metrics import GovernanceMetrics

logger = get_logger(__name__)


@dataclass(frozen=True)
class Delegation:
    """Authorization for *delegate* to vote on behalf of *voter*."""
    voter: str
    delegate: str
    delegated_at: int
    vote_power: int
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "voter": self.voter,
            "delegate": self.delegate,
            "delegatedAt": self.delegated_at,
            "votePower": self.vote_power,
            "createdAt": self.created_at,
        }


class DelegationRegistry:
    """
    Delegations keyed by voter.

    Args:
        clock:           Host height clock
        power_fn:        Callable(address) → int, the voter's resolved power,
                         snapshotted into each delegation record
    """

    def __init__(
        self,
        clock: BlockClock,
        power_fn: Optional[Callable[[str], int]] = None,
        metrics: Optional[GovernanceMetrics] = None,
    ):
        self._clock = clock
        self._power_fn = power_fn
        self._metrics = metrics
        self._delegations: Dict[str, Delegation] = {}

    def delegate_vote(self, caller: str, delegate: str) -> Delegation:
        if delegate == caller:
            raise SelfDelegation("Cannot delegate to self")
        if caller in self._delegations:
            raise AlreadyDelegated(
                f"{caller} already delegates to {self._delegations[caller].delegate}"
            )
        if self._leads_to(delegate, caller):
            raise SelfDelegation(f"Delegating to {delegate} would close a cycle back to {caller}")

        power = self._power_fn(caller) if self._power_fn else 0
        record = Delegation(
            voter=caller,
            delegate=delegate,
            delegated_at=self._clock.height,
            vote_power=power,
        )
        self._delegations[caller] = record
        if self._metrics is not None:
            self._metrics.active_delegations.inc()
        logger.info(f"Delegation: {caller} → {delegate} (power={power})")
        return record

    def _leads_to(self, start: str, target: str) -> bool:
        # Delegations never form a cycle, so the walk ends
        current = start
        while current in self._delegations:
            current = self._delegations[current].delegate
            if current == target:
                return True
        return False

    def revoke_delegation(self, caller: str) -> Delegation:
        record = self._delegations.pop(caller, None)
        if record is None:
            raise NoDelegation(f"{caller} has no active delegation")
        if self._metrics is not None:
            self._metrics.active_delegations.dec()
        logger.info(f"Delegation revoked: {caller} → {record.delegate}")
        return record

    def is_authorized(self, caller: str, voter: str) -> bool:
        """May *caller* cast *voter*'s vote?"""
        if caller == voter:
            return True
        record = self._delegations.get(voter)
        return record is not None and record.delegate == caller

    # ── Queries ───────────────────────────────────────────────────────

    def get_delegation(self, voter: str) -> Optional[Delegation]:
        return self._delegations.get(voter)

    def get_delegate(self, voter: str) -> Optional[str]:
        record = self._delegations.get(voter)
        return record.delegate if record else None

    def delegators_of(self, delegate: str) -> List[str]:
        return [d.voter for d in self._delegations.values() if d.delegate == delegate]

    def __len__(self) -> int:
        return len(self._delegations)

    def to_dict(self) -> Dict[str, Any]:
        return {voter: d.to_dict() for voter, d in self._delegations.items()}
