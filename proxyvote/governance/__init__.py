"""
ProxyVote Governance

Provides:
  - Tier / Member / MembershipRegistry                 (tiers.py)
  - TokenVotingRegistry / TokenLockup / ProposalSnapshot (snapshots.py)
  - PowerModel / isqrt                                 (curves.py)
  - WeightResolver / WeightOverrides                   (weights.py)
  - Delegation / DelegationRegistry                    (delegation.py)
  - Proposal / VotingRecord / VoteCastEvent            (proposals.py)
  - ExecutableTarget / ProposalExecutor                (execution.py)
  - ProposalEngine                                     (engine.py)
  - build_governance / GovernanceSystem                (system.py)
"""

from .tiers import (
    HistoryAction,
    Member,
    MemberHistoryEntry,
    MembershipRegistry,
    Tier,
)
from .curves import PowerModel, isqrt
from .snapshots import (
    LockupState,
    ProposalSnapshot,
    SupportedToken,
    TokenLockup,
    TokenVotingConfig,
    TokenVotingRegistry,
)
from .proposals import (
    Proposal,
    ProposalStatus,
    VoteCastEvent,
    VotingMode,
    VotingRecord,
)
from .weights import WeightOverrides, WeightResolver
from .delegation import Delegation, DelegationRegistry
from .execution import ExecutableTarget, ExecutionRecord, ProposalExecutor
from .engine import ProposalEngine
from .system import GovernanceSystem, build_governance

__all__ = [
    # Tiers
    "HistoryAction",
    "Member",
    "MemberHistoryEntry",
    "MembershipRegistry",
    "Tier",
    # Token voting
    "LockupState",
    "PowerModel",
    "ProposalSnapshot",
    "SupportedToken",
    "TokenLockup",
    "TokenVotingConfig",
    "TokenVotingRegistry",
    "isqrt",
    # Proposals
    "Proposal",
    "ProposalStatus",
    "VoteCastEvent",
    "VotingMode",
    "VotingRecord",
    # Weights & delegation
    "Delegation",
    "DelegationRegistry",
    "WeightOverrides",
    "WeightResolver",
    # Execution
    "ExecutableTarget",
    "ExecutionRecord",
    "ProposalExecutor",
    "ProposalEngine",
    "GovernanceSystem",
    "build_governance",
]
