"""
Membership Tier Registry

Named membership tiers carry a voting-power multiplier. Members are assigned
to exactly one tier; the registry keeps tier populations, the total member
count and an append-only history of every membership change.

Counts only include active members: suspending a member removes them from
their tier's population and the total; reinstating adds them back.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..logger import get_logger
from ..chain import BlockClock, Ownership
from ..constants import MAX_TIER_NAME_LENGTH
from ..exceptions import (
    InvalidMultiplier,
    InvalidTierName,
    MemberExists,
    MemberNotFound,
    NotAuthorized,
    TierExists,
    TierNotFound,
)
from ..metrics import GovernanceMetrics

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  DATA
# ══════════════════════════════════════════════════════════════════════

class HistoryAction:
    """Membership history action names."""
    JOIN = "join"
    PROMOTE = "promote"
    DEMOTE = "demote"
    SUSPEND = "suspend"
    REINSTATE = "reinstate"


@dataclass
class Tier:
    """A named membership level."""
    name: str
    multiplier: int
    active: bool = True
    member_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "multiplier": self.multiplier,
            "active": self.active,
            "memberCount": self.member_count,
        }


@dataclass
class Member:
    """Membership record for a single account."""
    address: str
    tier: str
    joined_at: int
    last_tier_change: int
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "tier": self.tier,
            "joinedAt": self.joined_at,
            "lastTierChange": self.last_tier_change,
            "active": self.active,
        }


@dataclass(frozen=True)
class MemberHistoryEntry:
    """One membership change."""
    action: str
    tier: str
    height: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "tier": self.tier,
            "height": self.height,
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

class MembershipRegistry:
    """
    Tier definitions and member assignments.

    All mutating operations require the administrator. Read operations are
    open to everyone; ``get_voting_power`` is the fallback the weight
    resolver uses for registered members.
    """

    def __init__(
        self,
        ownership: Ownership,
        clock: BlockClock,
        metrics: Optional[GovernanceMetrics] = None,
    ):
        self._ownership = ownership
        self._clock = clock
        self._tiers: Dict[str, Tier] = {}
        self._members: Dict[str, Member] = {}
        self._history: Dict[str, List[MemberHistoryEntry]] = {}
        self._total_members = 0
        self._metrics = metrics

    @property
    def owner(self) -> str:
        return self._ownership.owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._ownership.transfer(caller, new_owner, NotAuthorized)

    # ── Tiers ─────────────────────────────────────────────────────────

    @staticmethod
    def _validate_multiplier(multiplier: int) -> None:
        if not isinstance(multiplier, int) or multiplier <= 0:
            raise InvalidMultiplier(f"Tier multiplier must be positive, got {multiplier}")

    def create_tier(self, caller: str, name: str, multiplier: int, active: bool = True) -> Tier:
        self._ownership.require(caller, action="create tiers")
        if not name or len(name) > MAX_TIER_NAME_LENGTH:
            raise InvalidTierName(
                f"Tier name must be 1-{MAX_TIER_NAME_LENGTH} characters"
            )
        if name in self._tiers:
            raise TierExists(f"Tier '{name}' already exists")
        self._validate_multiplier(multiplier)

        tier = Tier(name=name, multiplier=multiplier, active=active)
        self._tiers[name] = tier
        logger.info(f"Tier '{name}' created (multiplier={multiplier}, active={active})")
        return tier

    def update_tier(self, caller: str, name: str, multiplier: int, active: bool) -> Tier:
        self._ownership.require(caller, action="update tiers")
        tier = self._tiers.get(name)
        if tier is None:
            raise TierNotFound(f"Tier '{name}' does not exist")
        self._validate_multiplier(multiplier)

        tier.multiplier = multiplier
        tier.active = active
        logger.info(f"Tier '{name}' updated (multiplier={multiplier}, active={active})")
        return tier

    def get_tier(self, name: str) -> Optional[Tier]:
        return self._tiers.get(name)

    def list_tiers(self) -> List[Tier]:
        return list(self._tiers.values())

    # ── Members ───────────────────────────────────────────────────────

    def _append_history(self, address: str, action: str, tier: str) -> None:
        self._history.setdefault(address, []).append(
            MemberHistoryEntry(action=action, tier=tier, height=self._clock.height)
        )

    def _require_member(self, address: str) -> Member:
        member = self._members.get(address)
        if member is None:
            raise MemberNotFound(f"{address} is not a member")
        return member

    def _require_tier(self, name: str) -> Tier:
        tier = self._tiers.get(name)
        if tier is None:
            raise TierNotFound(f"Tier '{name}' does not exist")
        return tier

    def _sync_member_gauge(self) -> None:
        if self._metrics is not None:
            self._metrics.members.set(self._total_members)

    def register_member(self, caller: str, address: str, tier_name: str) -> Member:
        self._ownership.require(caller, action="register members")
        if address in self._members:
            raise MemberExists(f"{address} is already a member")
        tier = self._require_tier(tier_name)

        now = self._clock.height
        member = Member(
            address=address,
            tier=tier_name,
            joined_at=now,
            last_tier_change=now,
        )
        self._members[address] = member
        tier.member_count += 1
        self._total_members += 1
        self._append_history(address, HistoryAction.JOIN, tier_name)
        self._sync_member_gauge()

        logger.info(f"Member {address} joined tier '{tier_name}' at height={now}")
        return member

    def change_member_tier(self, caller: str, address: str, new_tier_name: str) -> Member:
        """
        Move a member to another tier.

        The change is classified as a promotion when the new tier's
        multiplier exceeds the member's current resolved power, otherwise as
        a demotion. Moving a member to the tier they already hold is a no-op.
        """
        self._ownership.require(caller, action="change member tiers")
        member = self._require_member(address)
        new_tier = self._require_tier(new_tier_name)
        if member.tier == new_tier_name:
            return member

        current_power = self.get_voting_power(address)
        action = (
            HistoryAction.PROMOTE
            if new_tier.multiplier > current_power
            else HistoryAction.DEMOTE
        )

        old_tier = self._tiers[member.tier]
        if member.active:
            old_tier.member_count -= 1
            new_tier.member_count += 1
        member.tier = new_tier_name
        member.last_tier_change = self._clock.height
        self._append_history(address, action, new_tier_name)

        logger.info(
            f"Member {address} {action}d: '{old_tier.name}' → '{new_tier_name}'"
        )
        return member

    def set_member_status(self, caller: str, address: str, active: bool) -> Member:
        self._ownership.require(caller, action="change member status")
        member = self._require_member(address)
        if member.active == active:
            return member

        tier = self._tiers[member.tier]
        if active:
            tier.member_count += 1
            self._total_members += 1
            action = HistoryAction.REINSTATE
        else:
            tier.member_count -= 1
            self._total_members -= 1
            action = HistoryAction.SUSPEND
        member.active = active
        self._append_history(address, action, member.tier)
        self._sync_member_gauge()

        logger.info(f"Member {address}: {action}")
        return member

    # ── Queries ───────────────────────────────────────────────────────

    def is_member(self, address: str) -> bool:
        return address in self._members

    def get_member(self, address: str) -> Optional[Member]:
        return self._members.get(address)

    def get_member_history(self, address: str) -> List[MemberHistoryEntry]:
        return list(self._history.get(address, []))

    @property
    def total_members(self) -> int:
        return self._total_members

    @property
    def max_multiplier(self) -> int:
        return max((t.multiplier for t in self._tiers.values()), default=0)

    def get_voting_power(self, address: str) -> int:
        """Tier multiplier for *address*; 0 if unknown, suspended or the tier is inactive."""
        member = self._members.get(address)
        if member is None or not member.active:
            return 0
        tier = self._tiers.get(member.tier)
        if tier is None or not tier.active:
            return 0
        return tier.multiplier

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "totalMembers": self._total_members,
            "tiers": {name: t.to_dict() for name, t in self._tiers.items()},
        }

    def __repr__(self) -> str:
        return (
            f"<MembershipRegistry tiers={len(self._tiers)} "
            f"members={self._total_members}>"
        )
