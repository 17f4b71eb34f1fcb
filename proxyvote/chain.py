"""
Host Collaborators

The governance engine runs inside a transaction-processing host that
serializes calls, supplies the caller identity and exposes a monotonically
increasing block height. This module models the two pieces of that host the
engine reads directly:

  - BlockClock : the height counter every "now" reference reads
  - Ownership  : the transferable administrator identity
"""

from typing import Optional, Type

from .logger import get_logger
from .exceptions import GovernanceError, NotAuthorized

logger = get_logger(__name__)


class BlockClock:
    """Monotonic block-height clock, advanced by the host."""

    def __init__(self, height: int = 0):
        if height < 0:
            raise ValueError("Block height cannot be negative")
        self._height = height

    @property
    def height(self) -> int:
        return self._height

    def advance(self, blocks: int = 1) -> int:
        """Mine *blocks* empty blocks and return the new height."""
        if blocks < 0:
            raise ValueError("Block height only moves forward")
        self._height += blocks
        return self._height

    def __repr__(self) -> str:
        return f"<BlockClock height={self._height}>"


class Ownership:
    """
    Administrator identity shared by the governance components.

    The owner is the only caller allowed to mutate configuration. It is
    changed exclusively through :meth:`transfer`, which itself requires the
    current owner.
    """

    def __init__(self, owner: str):
        if not owner:
            raise ValueError("Owner identity is required")
        self._owner = owner

    @property
    def owner(self) -> str:
        return self._owner

    def is_owner(self, caller: str) -> bool:
        return caller == self._owner

    def require(
        self,
        caller: str,
        error: Type[GovernanceError] = NotAuthorized,
        action: Optional[str] = None,
    ) -> None:
        """Raise *error* unless *caller* is the administrator."""
        if caller != self._owner:
            what = f" to {action}" if action else ""
            raise error(f"{caller} is not authorized{what}")

    def transfer(
        self,
        caller: str,
        new_owner: str,
        error: Type[GovernanceError] = NotAuthorized,
    ) -> None:
        self.require(caller, error, action="transfer ownership")
        if not new_owner:
            raise error("New owner identity is required")
        old = self._owner
        self._owner = new_owner
        logger.info(f"Ownership transferred: {old} → {new_owner}")

    def __repr__(self) -> str:
        return f"<Ownership owner={self._owner}>"
