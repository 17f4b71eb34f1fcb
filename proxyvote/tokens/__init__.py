"""
ProxyVote Token Ledger Interface

Provides:
  - TokenLedger          : capabilities required from an external token
  - InMemoryTokenLedger  : reference integer-balance ledger
"""

from .ledger import (
    InMemoryTokenLedger,
    TokenLedger,
    TokenLedgerError,
    TokenTransferError,
    TokenTransferEvent,
)

__all__ = [
    "InMemoryTokenLedger",
    "TokenLedger",
    "TokenLedgerError",
    "TokenTransferError",
    "TokenTransferEvent",
]
