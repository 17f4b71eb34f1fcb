"""
ProxyVote Exceptions

Every public governance operation either succeeds or raises exactly one of
the error kinds below. Each kind carries a stable numeric ``code`` so hosts
can branch on it (and surface it as ``u<code>``) without string matching.

Families:
    EngineError      100-112  proposal lifecycle and delegation
    TokenVotingError 200-210  token snapshots and lockups
    MembershipError  300-305  membership tier registry
"""

from typing import Dict, Type


class GovernanceError(Exception):
    """Base exception for ProxyVote."""
    code: int = 0

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)

    @property
    def uint(self) -> str:
        """Code in the ``u<code>`` notation used by ledger receipts."""
        return f"u{self.code}"


# ── Proposal lifecycle / delegation ─────────────────────────────────────

class EngineError(GovernanceError):
    """Proposal lifecycle and delegation errors."""


class NotAuthorized(EngineError):
    code = 100


class AlreadyDelegated(EngineError):
    code = 101


class NoDelegation(EngineError):
    code = 102


class InvalidProposal(EngineError):
    code = 103


class ProposalExpired(EngineError):
    code = 104


class SelfDelegation(EngineError):
    code = 105


class DuplicateVote(EngineError):
    code = 106


class InvalidMembershipTier(EngineError):
    code = 107


class InvalidVotingWeight(EngineError):
    code = 108


class InvalidTokenContract(EngineError):
    code = 109


class ExecutionFailed(EngineError):
    code = 110


class ProposalNotPassed(EngineError):
    code = 111


class TimelockActive(EngineError):
    code = 112


# ── Token snapshots / lockups ───────────────────────────────────────────

class TokenVotingError(GovernanceError):
    """Token snapshot and lockup errors."""


class Unauthorized(TokenVotingError):
    code = 200


class NotTokenOwner(TokenVotingError):
    code = 201


class InvalidToken(TokenVotingError):
    code = 202


class SnapshotExists(TokenVotingError):
    code = 203


class NoSnapshot(TokenVotingError):
    code = 204


class AlreadyLocked(TokenVotingError):
    code = 205


class LockExpired(TokenVotingError):
    code = 206


class LockNotExpired(TokenVotingError):
    code = 207


class InvalidLockPeriod(TokenVotingError):
    code = 208


class ZeroAmount(TokenVotingError):
    code = 209


class InsufficientBalance(TokenVotingError):
    code = 210


# ── Membership tiers ────────────────────────────────────────────────────

class MembershipError(GovernanceError):
    """Membership tier registry errors."""


class MemberExists(MembershipError):
    code = 300


class MemberNotFound(MembershipError):
    code = 301


class TierExists(MembershipError):
    code = 302


class TierNotFound(MembershipError):
    code = 303


class InvalidMultiplier(MembershipError):
    code = 304


class InvalidTierName(MembershipError):
    code = 305


def _collect(base: Type[GovernanceError]) -> Dict[int, Type[GovernanceError]]:
    codes: Dict[int, Type[GovernanceError]] = {}
    for family in base.__subclasses__():
        for kind in family.__subclasses__():
            codes[kind.code] = kind
    return codes


ERRORS_BY_CODE: Dict[int, Type[GovernanceError]] = _collect(GovernanceError)


def error_for_code(code: int) -> Type[GovernanceError]:
    """Look up the error kind registered under *code*."""
    try:
        return ERRORS_BY_CODE[code]
    except KeyError:
        raise ValueError(f"Unknown governance error code: {code}") from None
