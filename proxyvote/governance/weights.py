"""
Weight Resolver

Turns an account (and optionally a token and a proposal) into an integer
voting power. Resolution never mutates registry state.

Member weight:
    custom override  >  tier multiplier (registered members)  >  default weight
    quadratic proposals take the integer square root of that base.

Token weight:
    frozen snapshot balance (if the proposal has one) or live balance,
    then the token's curve, weight multiplier and lock multiplier.
"""

from typing import Dict, Optional

from ..config import GovernanceConfig
from .curves import isqrt
from .proposals import VotingMode
from .snapshots import TokenRef, TokenVotingRegistry
from .tiers import MembershipRegistry


class WeightOverrides:
    """Per-member custom voting weights; an override beats the tier weight."""

    def __init__(self):
        self._weights: Dict[str, int] = {}

    def get(self, member: str) -> Optional[int]:
        return self._weights.get(member)

    def set(self, member: str, weight: int) -> None:
        self._weights[member] = weight

    def clear(self, member: str) -> bool:
        return self._weights.pop(member, None) is not None

    def __contains__(self, member: str) -> bool:
        return member in self._weights

    def __len__(self) -> int:
        return len(self._weights)


class WeightResolver:
    """Pure voting-power computation over the registries."""

    def __init__(
        self,
        membership: MembershipRegistry,
        tokens: Optional[TokenVotingRegistry] = None,
        overrides: Optional[WeightOverrides] = None,
        config: Optional[GovernanceConfig] = None,
    ):
        self.membership = membership
        self.tokens = tokens
        self.overrides = overrides if overrides is not None else WeightOverrides()
        self._config = config or GovernanceConfig()

    def base_weight(self, member: str) -> int:
        override = self.overrides.get(member)
        if override is not None:
            return override
        if self.membership.is_member(member):
            return self.membership.get_voting_power(member)
        return self._config.weights.default_weight

    def resolve(self, member: str, voting_mode: VotingMode = VotingMode.STANDARD) -> int:
        base = self.base_weight(member)
        if voting_mode == VotingMode.QUADRATIC:
            return isqrt(base)
        return base

    def resolve_token_power(
        self,
        token: TokenRef,
        holder: str,
        proposal_id: Optional[int] = None,
    ) -> int:
        if self.tokens is None:
            raise RuntimeError("Token voting is not configured for this resolver")
        balance = self.tokens.balance_for_voting(token, holder, proposal_id)
        return self.tokens.voting_power_for_balance(token, holder, balance)
