"""
Governance Proposals

Defines voting modes, lifecycle states, the Proposal dataclass that tracks a
proposal from creation to execution, and the per-voter VotingRecord that
guarantees one ballot per (voter, proposal).
"""

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple

from ..constants import (
    MAX_CATEGORY_LENGTH,
    MAX_TAG_LENGTH,
    MAX_TAGS,
    MAX_TITLE_LENGTH,
)
from ..exceptions import InvalidProposal
from .execution import ExecutableTarget, target_name


class VotingMode(str, Enum):
    """How member weight turns into ballot power; fixed at creation."""
    STANDARD = "standard"
    QUADRATIC = "quadratic"


class ProposalStatus(IntEnum):
    """Lifecycle stage, derived from the proposal and the current height."""
    ACTIVE = 0      # Voting open
    PASSED = 1      # Voting closed with votes_for ≥ pass threshold
    EXPIRED = 2     # Voting closed below the pass threshold
    EXECUTED = 3    # Target executed (terminal)
    CANCELLED = 4   # Deactivated by the administrator (terminal)


@dataclass
class Proposal:
    """
    Governance proposal.

    Fields:
        id:               Monotonic identifier (0, 1, 2 …)
        title:            Short title (≤ 50 chars)
        creator:          Administrator that created it
        expires_at:       First height at which voting is closed
        category:         Free-form category (≤ 20 chars)
        tags:             Up to 5 tags (≤ 15 chars each)
        voting_mode:      STANDARD or QUADRATIC
        target:           Executable target dispatched on execution (optional)
        function_name:    Name of the target action, for the record
        timelock_until:   Earliest execution height (0 without a target)
        max_vote_power:   Cap on total_vote_power (0 = uncapped)
    """
    id: int
    title: str
    creator: str
    created_at: int
    expires_at: int
    category: str = ""
    tags: Tuple[str, ...] = ()
    voting_mode: VotingMode = VotingMode.STANDARD
    target: Optional[ExecutableTarget] = None
    function_name: Optional[str] = None
    timelock_until: int = 0
    max_vote_power: int = 0
    votes_for: int = 0
    votes_against: int = 0
    total_vote_power: int = 0
    active: bool = True
    executed: bool = False
    executed_at: Optional[int] = None
    _history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.title:
            raise InvalidProposal("Proposal title cannot be empty")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise InvalidProposal(f"Proposal title exceeds {MAX_TITLE_LENGTH} characters")
        if len(self.category) > MAX_CATEGORY_LENGTH:
            raise InvalidProposal(f"Category exceeds {MAX_CATEGORY_LENGTH} characters")
        self.tags = tuple(self.tags)
        if len(self.tags) > MAX_TAGS:
            raise InvalidProposal(f"At most {MAX_TAGS} tags are allowed")
        for tag in self.tags:
            if not tag or len(tag) > MAX_TAG_LENGTH:
                raise InvalidProposal(f"Tags must be 1-{MAX_TAG_LENGTH} characters")
        if self.expires_at <= self.created_at:
            raise InvalidProposal("Proposal must expire after its creation height")
        if (self.target is None) != (self.function_name is None):
            raise InvalidProposal("Executable target and function name go together")
        if self.max_vote_power < 0:
            raise InvalidProposal("max_vote_power cannot be negative")
        self.voting_mode = VotingMode(self.voting_mode)
        self._record("created", self.created_at)

    # ── Properties ────────────────────────────────────────────────────

    @property
    def is_executable(self) -> bool:
        return self.target is not None

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    def is_open(self, height: int) -> bool:
        return self.active and not self.executed and height < self.expires_at

    def is_passed(self, pass_threshold: int) -> bool:
        return self.votes_for >= pass_threshold

    def status_at(self, height: int, pass_threshold: int) -> ProposalStatus:
        if self.executed:
            return ProposalStatus.EXECUTED
        if not self.active:
            return ProposalStatus.CANCELLED
        if height < self.expires_at:
            return ProposalStatus.ACTIVE
        if self.is_passed(pass_threshold):
            return ProposalStatus.PASSED
        return ProposalStatus.EXPIRED

    # ── Mutations ─────────────────────────────────────────────────────

    def _record(self, event: str, height: int) -> None:
        self._history.append({
            "event": event,
            "height": height,
            "timestamp": time.time(),
        })

    def add_vote(self, vote_for: bool, power: int) -> None:
        if vote_for:
            self.votes_for += power
        else:
            self.votes_against += power
        self.total_vote_power += power

    def mark_executed(self, height: int) -> None:
        self.executed = True
        self.executed_at = height
        self._record("executed", height)

    def cancel(self, height: int) -> None:
        self.active = False
        self._record("cancelled", height)

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "creator": self.creator,
            "votesFor": self.votes_for,
            "votesAgainst": self.votes_against,
            "totalVotePower": self.total_vote_power,
            "maxVotePower": self.max_vote_power,
            "createdAt": self.created_at,
            "active": self.active,
            "expiresAt": self.expires_at,
            "category": self.category,
            "tags": list(self.tags),
            "votingMode": self.voting_mode.value,
            "target": target_name(self.target) if self.target is not None else None,
            "functionName": self.function_name,
            "timelockUntil": self.timelock_until,
            "executed": self.executed,
            "executedAt": self.executed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Proposal #{self.id} '{self.title}' "
            f"for={self.votes_for} against={self.votes_against}>"
        )


@dataclass(frozen=True)
class VotingRecord:
    """The single ballot a voter holds on a proposal."""
    voter: str
    proposal_id: int
    voted_for: bool
    voting_power_used: int
    cast_by: str
    height: int

    @property
    def delegated(self) -> bool:
        return self.cast_by != self.voter

    def to_dict(self) -> Dict[str, Any]:
        return {
            "voter": self.voter,
            "proposalId": self.proposal_id,
            "votedFor": self.voted_for,
            "votingPowerUsed": self.voting_power_used,
            "castBy": self.cast_by,
            "height": self.height,
        }


@dataclass(frozen=True)
class VoteCastEvent:
    """Emitted for every recorded ballot."""
    proposal_id: int
    voter: str
    cast_by: str
    voted_for: bool
    voting_power: int
    token: Optional[str] = None
    height: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "vote-cast",
            "proposalId": self.proposal_id,
            "voter": self.voter,
            "castBy": self.cast_by,
            "votedFor": self.voted_for,
            "votingPower": self.voting_power,
            "token": self.token,
            "height": self.height,
            "timestamp": self.timestamp,
        }
