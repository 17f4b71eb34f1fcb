"""
External Token Ledger Interface

The governance engine never owns token balances. It talks to an external
fungible-token ledger through three capabilities:

  - get_name()                              identity query (support validation)
  - get_balance(account)                    live balance lookup
  - transfer(amount, sender, recipient, memo)  custody movements for lockups

``InMemoryTokenLedger`` is a reference implementation of that interface with
integer balances and an event log, used for local deployments and tests.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TokenLedgerError(Exception):
    """Base exception for token ledger operations."""


class TokenTransferError(TokenLedgerError):
    """Raised when a transfer cannot be applied."""


# ══════════════════════════════════════════════════════════════════════
#  INTERFACE
# ══════════════════════════════════════════════════════════════════════

@runtime_checkable
class TokenLedger(Protocol):
    """Capabilities the governance engine requires from a token ledger."""

    address: str

    def get_name(self) -> str: ...

    def get_balance(self, account: str) -> int: ...

    def transfer(
        self,
        amount: int,
        sender: str,
        recipient: str,
        memo: Optional[str] = None,
    ) -> bool: ...


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TokenTransferEvent:
    """Emitted on every successful transfer."""
    token: str
    sender: str
    recipient: str
    amount: int
    memo: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Transfer",
            "token": self.token,
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount,
            "memo": self.memo,
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  REFERENCE LEDGER
# ══════════════════════════════════════════════════════════════════════

class InMemoryTokenLedger:
    """
    Integer-balance fungible token kept in process memory.

    An optional ``on_transfer`` hook is invoked after each transfer has been
    applied. It runs while the caller's operation is still in progress, which
    is how tests model a recipient that calls back into the engine.
    """

    def __init__(
        self,
        address: str,
        name: str,
        balances: Optional[Dict[str, int]] = None,
        decimals: int = 6,
        on_transfer: Optional[Callable[[TokenTransferEvent], None]] = None,
    ):
        if not address:
            raise TokenLedgerError("Token address cannot be empty")
        if decimals < 0 or decimals > 18:
            raise TokenLedgerError(f"Decimals must be 0-18, got {decimals}")
        self.address = address
        self.name = name
        self.decimals = decimals
        self._balances: Dict[str, int] = {}
        for account, amount in (balances or {}).items():
            if amount < 0:
                raise TokenLedgerError("Balances cannot be negative")
            self._balances[account] = amount
        self._events: List[TokenTransferEvent] = []
        self.on_transfer = on_transfer

    # ── Read-only views ───────────────────────────────────────────────

    def get_name(self) -> str:
        return self.name

    def get_balance(self, account: str) -> int:
        return self._balances.get(account, 0)

    @property
    def total_supply(self) -> int:
        return sum(self._balances.values())

    @property
    def events(self) -> List[TokenTransferEvent]:
        return list(self._events)

    # ── Mutations ─────────────────────────────────────────────────────

    def mint(self, account: str, amount: int) -> None:
        if amount <= 0:
            raise TokenLedgerError("Mint amount must be positive")
        self._balances[account] = self.get_balance(account) + amount

    def transfer(
        self,
        amount: int,
        sender: str,
        recipient: str,
        memo: Optional[str] = None,
    ) -> bool:
        if amount <= 0:
            raise TokenTransferError("Transfer amount must be positive")
        if sender == recipient:
            raise TokenTransferError("Sender and recipient must differ")
        balance = self.get_balance(sender)
        if balance < amount:
            raise TokenTransferError(
                f"Insufficient balance: {sender} has {balance}, needs {amount}"
            )

        self._balances[sender] = balance - amount
        self._balances[recipient] = self.get_balance(recipient) + amount

        event = TokenTransferEvent(
            token=self.address,
            sender=sender,
            recipient=recipient,
            amount=amount,
            memo=memo,
        )
        self._events.append(event)
        logger.debug(f"{self.name}: {sender} → {recipient} ({amount})")

        if self.on_transfer is not None:
            self.on_transfer(event)
        return True

    def __repr__(self) -> str:
        return f"<InMemoryTokenLedger {self.address} name={self.name}>"
