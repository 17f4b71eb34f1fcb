"""
Time-Locked Execution

Implements:
  - ExecutableTarget: the single ``execute(proposal_id)`` capability a
    proposal may dispatch to
  - ProposalExecutor: at-most-once dispatch with an execution log

A proposal is only marked executed after its target call returns. While the
call is in flight the proposal id sits in an in-flight set, so a target that
re-enters ``execute_proposal`` for the same id is refused instead of
executing twice.
"""

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Set, runtime_checkable

from ..logger import get_logger
from ..exceptions import ExecutionFailed, InvalidProposal
from ..metrics import GovernanceMetrics

if TYPE_CHECKING:
    from .proposals import Proposal

logger = get_logger(__name__)


@runtime_checkable
class ExecutableTarget(Protocol):
    """Contract invoked when a passed proposal is executed."""

    def execute(self, proposal_id: int) -> bool: ...


def target_name(target: Any) -> str:
    return getattr(target, "address", None) or type(target).__name__


@dataclass(frozen=True)
class ExecutionRecord:
    """Outcome of one successful dispatch."""
    proposal_id: int
    target: str
    function_name: str
    result: Any
    height: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": self.proposal_id,
            "target": self.target,
            "functionName": self.function_name,
            "result": self.result,
            "height": self.height,
            "timestamp": self.timestamp,
        }


class ProposalExecutor:
    """Dispatches passed proposals to their targets, at most once each."""

    def __init__(self, metrics: Optional[GovernanceMetrics] = None):
        self._metrics = metrics
        self._in_flight: Set[int] = set()
        self._execution_log: List[ExecutionRecord] = []

    def is_in_flight(self, proposal_id: int) -> bool:
        return proposal_id in self._in_flight

    def dispatch(self, proposal: "Proposal", height: int) -> Any:
        """
        Call the proposal's target and mark the proposal executed.

        The caller has already checked the pass threshold and timelock.
        Raises ``ExecutionFailed`` if the target raises; the proposal stays
        unexecuted and may be retried.
        """
        if proposal.target is None:
            raise InvalidProposal(f"Proposal #{proposal.id} has no executable target")
        if proposal.executed or proposal.id in self._in_flight:
            raise InvalidProposal(f"Proposal #{proposal.id} already executed")

        self._in_flight.add(proposal.id)
        try:
            result = proposal.target.execute(proposal.id)
        except Exception as exc:
            if self._metrics is not None:
                self._metrics.executions_failed.inc()
            logger.warning(f"Proposal #{proposal.id} execution failed: {exc}")
            raise ExecutionFailed(f"Proposal #{proposal.id} target call failed: {exc}") from exc
        finally:
            self._in_flight.discard(proposal.id)

        proposal.mark_executed(height)
        record = ExecutionRecord(
            proposal_id=proposal.id,
            target=target_name(proposal.target),
            function_name=proposal.function_name or "",
            result=result,
            height=height,
        )
        self._execution_log.append(record)
        if self._metrics is not None:
            self._metrics.proposals_executed.inc()

        logger.info(
            f"Proposal #{proposal.id} EXECUTED: "
            f"{record.target}.{record.function_name} → {result}"
        )
        return result

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def execution_log(self) -> List[ExecutionRecord]:
        return list(self._execution_log)

    def execution_count(self) -> int:
        return len(self._execution_log)

    def __repr__(self) -> str:
        return f"<ProposalExecutor executed={len(self._execution_log)}>"
