"""
Proposal Lifecycle Engine

Owns proposal creation, the open-voting window, duplicate-vote prevention,
tallying, the pass threshold and timelocked execution.

A proposal passes once ``votes_for >= pass_threshold``; ``votes_against``
does not enter the decision. Every public operation validates all of its
guards before mutating anything, so a raised error leaves the engine
unchanged.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..logger import get_logger
from ..chain import BlockClock, Ownership
from ..config import GovernanceConfig
from ..exceptions import (
    DuplicateVote,
    InvalidProposal,
    InvalidTokenContract,
    InvalidVotingWeight,
    NotAuthorized,
    ProposalExpired,
    ProposalNotPassed,
    TimelockActive,
)
from ..metrics import GovernanceMetrics
from .delegation import DelegationRegistry
from .execution import ExecutableTarget, ProposalExecutor
from .proposals import (
    Proposal,
    ProposalStatus,
    VoteCastEvent,
    VotingMode,
    VotingRecord,
)
from .snapshots import TokenRef
from .weights import WeightResolver

logger = get_logger(__name__)

VoteListener = Callable[[VoteCastEvent], None]


class ProposalEngine:
    """
    Proposal state machine and ballot box.

    Responsibilities:
        - Create proposals (administrator only)
        - Accept direct and delegated votes, one ballot per voter
        - Resolve ballot power through the WeightResolver
        - Execute passed proposals after their timelock
        - Manage custom voting weights
    """

    def __init__(
        self,
        ownership: Ownership,
        clock: BlockClock,
        resolver: WeightResolver,
        delegations: DelegationRegistry,
        executor: Optional[ProposalExecutor] = None,
        config: Optional[GovernanceConfig] = None,
        metrics: Optional[GovernanceMetrics] = None,
    ):
        self._ownership = ownership
        self._clock = clock
        self._resolver = resolver
        self._delegations = delegations
        self._executor = executor or ProposalExecutor(metrics)
        self._config = config or GovernanceConfig()
        self._metrics = metrics

        self._proposals: Dict[int, Proposal] = {}
        self._records: Dict[Tuple[str, int], VotingRecord] = {}
        self._next_id = 0
        self._events: List[VoteCastEvent] = []
        self._listeners: List[VoteListener] = []

    # ── Administration ────────────────────────────────────────────────

    @property
    def owner(self) -> str:
        return self._ownership.owner

    @property
    def pass_threshold(self) -> int:
        return self._config.proposals.pass_threshold

    @property
    def timelock_period(self) -> int:
        return self._config.proposals.timelock_period

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._ownership.transfer(caller, new_owner, NotAuthorized)

    def set_voting_weight(self, caller: str, member: str, weight: int) -> None:
        """Override *member*'s tier-derived weight."""
        self._ownership.require(caller, action="set voting weights")
        max_weight = self._config.weights.max_custom_weight
        if not isinstance(weight, int) or weight <= 0 or weight > max_weight:
            raise InvalidVotingWeight(f"Voting weight must be 1-{max_weight}, got {weight}")
        self._resolver.overrides.set(member, weight)
        logger.info(f"Custom voting weight for {member}: {weight}")

    def clear_voting_weight(self, caller: str, member: str) -> None:
        self._ownership.require(caller, action="clear voting weights")
        if not self._resolver.overrides.clear(member):
            raise InvalidVotingWeight(f"{member} has no custom voting weight")
        logger.info(f"Custom voting weight for {member} cleared")

    def get_voting_weight(self, member: str) -> Optional[int]:
        return self._resolver.overrides.get(member)

    # ── Proposals ─────────────────────────────────────────────────────

    def create_proposal(
        self,
        caller: str,
        title: str,
        expiration_delta: int,
        category: str = "",
        tags: Iterable[str] = (),
        voting_mode: VotingMode = VotingMode.STANDARD,
        target: Optional[ExecutableTarget] = None,
        function_name: Optional[str] = None,
        max_vote_power: int = 0,
    ) -> int:
        """Create a proposal and return its id."""
        self._ownership.require(caller, action="create proposals")
        if expiration_delta <= 0:
            raise InvalidProposal("expiration_delta must be positive")

        now = self._clock.height
        proposal = Proposal(
            id=self._next_id,
            title=title,
            creator=caller,
            created_at=now,
            expires_at=now + expiration_delta,
            category=category,
            tags=tuple(tags),
            voting_mode=voting_mode,
            target=target,
            function_name=function_name,
            timelock_until=now + self.timelock_period if target is not None else 0,
            max_vote_power=max_vote_power,
        )
        self._proposals[proposal.id] = proposal
        self._next_id += 1
        if self._metrics is not None:
            self._metrics.proposals_created.inc()

        logger.info(
            f"Proposal #{proposal.id} ({title}) created: expires at height="
            f"{proposal.expires_at}, mode={proposal.voting_mode.value}"
        )
        return proposal.id

    def cancel_proposal(self, caller: str, proposal_id: int) -> Proposal:
        self._ownership.require(caller, action="cancel proposals")
        proposal = self._require_proposal(proposal_id)
        if proposal.executed or not proposal.active:
            raise InvalidProposal(f"Proposal #{proposal_id} is already closed")
        proposal.cancel(self._clock.height)
        logger.info(f"Proposal #{proposal_id} cancelled")
        return proposal

    def _require_proposal(self, proposal_id: int) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise InvalidProposal(f"Proposal #{proposal_id} does not exist")
        return proposal

    # ── Voting ────────────────────────────────────────────────────────

    def _ballot_power(
        self,
        proposal: Proposal,
        voter: str,
        token: Optional[TokenRef],
    ) -> int:
        if token is None:
            return self._resolver.resolve(voter, proposal.voting_mode)
        tokens = self._resolver.tokens
        if tokens is None or not tokens.is_voting_enabled(token):
            raise InvalidTokenContract("Token is not enabled for voting")
        return self._resolver.resolve_token_power(token, voter, proposal.id)

    def vote(
        self,
        caller: str,
        proposal_id: int,
        vote_for: bool,
        on_behalf_of: Optional[str] = None,
        token: Optional[TokenRef] = None,
    ) -> int:
        """
        Cast a ballot and return the voting power used.

        *caller* votes for themselves, or for *on_behalf_of* when that voter
        has delegated to *caller*. The ballot is keyed by the voter, so a
        voter and their delegate share a single ballot per proposal.
        """
        proposal = self._require_proposal(proposal_id)
        now = self._clock.height
        if not proposal.is_open(now):
            raise ProposalExpired(f"Proposal #{proposal_id} is closed for voting")

        voter = on_behalf_of or caller
        if not self._delegations.is_authorized(caller, voter):
            raise NotAuthorized(f"{caller} may not vote for {voter}")
        if (voter, proposal_id) in self._records:
            raise DuplicateVote(f"{voter} already voted on Proposal #{proposal_id}")

        power = self._ballot_power(proposal, voter, token)
        if power <= 0:
            raise InvalidVotingWeight(f"{voter} has no voting power")
        if (
            proposal.max_vote_power
            and proposal.total_vote_power + power > proposal.max_vote_power
        ):
            raise InvalidVotingWeight(
                f"Ballot of {power} exceeds Proposal #{proposal_id} cap "
                f"({proposal.total_vote_power}/{proposal.max_vote_power})"
            )

        proposal.add_vote(vote_for, power)
        record = VotingRecord(
            voter=voter,
            proposal_id=proposal_id,
            voted_for=vote_for,
            voting_power_used=power,
            cast_by=caller,
            height=now,
        )
        self._records[(voter, proposal_id)] = record

        event = VoteCastEvent(
            proposal_id=proposal_id,
            voter=voter,
            cast_by=caller,
            voted_for=vote_for,
            voting_power=power,
            token=None if token is None else (token if isinstance(token, str) else token.address),
            height=now,
        )
        self._events.append(event)
        if self._metrics is not None:
            self._metrics.votes_cast.inc()
            self._metrics.vote_power.observe(power)
            if record.delegated:
                self._metrics.delegated_votes_cast.inc()

        logger.info(
            f"Vote: {voter} → {'FOR' if vote_for else 'AGAINST'} on Proposal #{proposal_id} "
            f"(power={power}{', by ' + caller if record.delegated else ''})"
        )
        self._notify(event)
        return power

    def _notify(self, event: VoteCastEvent) -> None:
        # The ballot is already committed; listener failures must not undo it
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.warning(
                    f"Vote listener {listener!r} failed for Proposal #{event.proposal_id}: {exc}"
                )

    def subscribe(self, listener: VoteListener) -> None:
        """Register a callback invoked with every VoteCastEvent.

        Listeners run after the ballot is recorded; an exception raised by
        one is logged and does not reach the voter.
        """
        self._listeners.append(listener)

    # ── Execution ─────────────────────────────────────────────────────

    def execute_proposal(self, caller: str, proposal_id: int) -> Any:
        """
        Execute a passed proposal once its timelock has elapsed.

        Checks, in order: proposal exists, pass threshold reached, target
        configured and not yet executed, timelock elapsed, caller is the
        administrator. Returns the target's result.
        """
        proposal = self._require_proposal(proposal_id)
        if not proposal.is_passed(self.pass_threshold):
            raise ProposalNotPassed(
                f"Proposal #{proposal_id} has {proposal.votes_for} votes for, "
                f"needs {self.pass_threshold}"
            )
        if not proposal.is_executable:
            raise InvalidProposal(f"Proposal #{proposal_id} has no executable target")
        if proposal.executed or self._executor.is_in_flight(proposal_id):
            raise InvalidProposal(f"Proposal #{proposal_id} already executed")
        now = self._clock.height
        if now < proposal.timelock_until:
            raise TimelockActive(
                f"Proposal #{proposal_id} timelocked until height={proposal.timelock_until} "
                f"(height={now})"
            )
        self._ownership.require(caller, action="execute proposals")

        return self._executor.dispatch(proposal, now)

    # ── Queries ───────────────────────────────────────────────────────

    def get_proposal(self, proposal_id: int) -> Optional[Proposal]:
        return self._proposals.get(proposal_id)

    def get_voting_record(self, voter: str, proposal_id: int) -> Optional[VotingRecord]:
        return self._records.get((voter, proposal_id))

    def has_voted(self, voter: str, proposal_id: int) -> bool:
        return (voter, proposal_id) in self._records

    def proposal_status(self, proposal_id: int) -> ProposalStatus:
        proposal = self._require_proposal(proposal_id)
        return proposal.status_at(self._clock.height, self.pass_threshold)

    def is_passed(self, proposal_id: int) -> bool:
        return self._require_proposal(proposal_id).is_passed(self.pass_threshold)

    def list_proposals(self, status: Optional[ProposalStatus] = None) -> List[Proposal]:
        proposals = list(self._proposals.values())
        if status is None:
            return proposals
        now = self._clock.height
        return [p for p in proposals if p.status_at(now, self.pass_threshold) == status]

    @property
    def proposal_count(self) -> int:
        return self._next_id

    @property
    def events(self) -> List[VoteCastEvent]:
        return list(self._events)

    @property
    def executor(self) -> ProposalExecutor:
        return self._executor

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "passThreshold": self.pass_threshold,
            "timelockPeriod": self.timelock_period,
            "proposalCount": self._next_id,
            "votes": len(self._records),
            "proposals": {pid: p.to_dict() for pid, p in self._proposals.items()},
        }

    def __repr__(self) -> str:
        return f"<ProposalEngine proposals={self._next_id} votes={len(self._records)}>"
