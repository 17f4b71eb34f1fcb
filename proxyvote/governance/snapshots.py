"""
Token Snapshots & Lockups

Implements:
  - Supported-token registry with per-token voting configuration
  - Height-pinned balance snapshots per (token, proposal)
  - Time-locked custody of tokens in exchange for a voting-power multiplier

Custody safety: ``unlock_tokens`` removes the lockup record *before* the
return transfer is issued. A recipient that re-enters the registry while the
transfer is in flight finds no lockup and cannot withdraw twice.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple, Union

from ..logger import get_logger
from ..chain import BlockClock, Ownership
from ..config import GovernanceConfig
from ..exceptions import (
    AlreadyLocked,
    InsufficientBalance,
    InvalidLockPeriod,
    InvalidToken,
    LockExpired,
    LockNotExpired,
    NoSnapshot,
    SnapshotExists,
    Unauthorized,
    ZeroAmount,
)
from ..metrics import GovernanceMetrics
from ..tokens import TokenLedger, TokenLedgerError, TokenTransferError
from .curves import PowerModel, apply_lock_multiplier, apply_power_model

logger = get_logger(__name__)

TokenRef = Union[TokenLedger, str]


# ══════════════════════════════════════════════════════════════════════
#  DATA
# ══════════════════════════════════════════════════════════════════════

@dataclass
class SupportedToken:
    """A token approved for voting."""
    address: str
    name: str
    decimals: int
    approved: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "decimals": self.decimals,
            "approved": self.approved,
        }


@dataclass
class TokenVotingConfig:
    """How balances of one token convert into voting power."""
    enabled: bool = True
    weight_multiplier: int = 1
    power_model: PowerModel = PowerModel.LINEAR
    lock_multiplier_enabled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "weightMultiplier": self.weight_multiplier,
            "powerModel": self.power_model.value,
            "lockMultiplierEnabled": self.lock_multiplier_enabled,
        }


class LockupState(IntEnum):
    """Custody state of a lockup."""
    LOCKED = 0      # Tokens held in custody
    UNLOCKING = 1   # Record removed, return transfer in flight
    RELEASED = 2    # Tokens returned to holder


@dataclass
class TokenLockup:
    """
    Tokens held in custody for a holder.

    Attributes:
        token:           Token address
        holder:          Account that locked the tokens
        amount:          Units held in custody
        lock_until:      First height at which the holder may unlock
        multiplier_bps:  Voting-power multiplier in basis points (100 = 1.00x)
        locked_at:       Height of the lock
    """
    token: str
    holder: str
    amount: int
    lock_until: int
    multiplier_bps: int
    locked_at: int
    state: LockupState = LockupState.LOCKED

    def is_expired(self, height: int) -> bool:
        return height >= self.lock_until

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "holder": self.holder,
            "amount": self.amount,
            "lockUntil": self.lock_until,
            "multiplierBps": self.multiplier_bps,
            "lockedAt": self.locked_at,
            "state": self.state.name,
        }


@dataclass
class ProposalSnapshot:
    """
    Frozen balances of one token for one proposal.

    The header (token, proposal, height) is written once. ``taken`` flips to
    True exactly once, when the chain reaches ``height``; holder balances can
    only be captured after that.
    """
    token: str
    proposal_id: int
    height: int
    taken: bool = False
    balances: Dict[str, int] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "proposalId": self.proposal_id,
            "height": self.height,
            "taken": self.taken,
            "holders": len(self.balances),
        }


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

class TokenVotingRegistry:
    """
    Supported tokens, snapshots and lockups.

    Tokens may be referenced either by ledger object or by address; every
    balance query and transfer goes through the ledger registered by the
    administrator in ``add_supported_token``, never through an object
    supplied by the caller afterwards.
    """

    def __init__(
        self,
        ownership: Ownership,
        clock: BlockClock,
        config: Optional[GovernanceConfig] = None,
        metrics: Optional[GovernanceMetrics] = None,
    ):
        self._ownership = ownership
        self._clock = clock
        self._config = config or GovernanceConfig()
        self._metrics = metrics

        self._ledgers: Dict[str, TokenLedger] = {}
        self._tokens: Dict[str, SupportedToken] = {}
        self._voting_configs: Dict[str, TokenVotingConfig] = {}
        self._snapshots: Dict[Tuple[str, int], ProposalSnapshot] = {}
        self._lockups: Dict[Tuple[str, str], TokenLockup] = {}

    @property
    def owner(self) -> str:
        return self._ownership.owner

    @property
    def custody_account(self) -> str:
        return self._config.lockups.custody_account

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._ownership.transfer(caller, new_owner, Unauthorized)

    # ── Token registry ────────────────────────────────────────────────

    @staticmethod
    def _address_of(token: TokenRef) -> str:
        return token if isinstance(token, str) else token.address

    def _require_supported(self, token: TokenRef) -> Tuple[str, TokenLedger]:
        address = self._address_of(token)
        entry = self._tokens.get(address)
        if entry is None or not entry.approved:
            raise InvalidToken(f"Token {address} is not supported")
        return address, self._ledgers[address]

    def add_supported_token(self, caller: str, token: TokenLedger, decimals: int) -> SupportedToken:
        """
        Approve *token* for voting.

        The token is validated by calling its name query; a ledger that
        cannot answer it, or answers with an empty name, is rejected.
        """
        self._ownership.require(caller, Unauthorized, action="add supported tokens")
        if decimals < 0 or decimals > 18:
            raise InvalidToken(f"Decimals must be 0-18, got {decimals}")
        try:
            address = token.address
            name = token.get_name()
        except (AttributeError, TokenLedgerError) as exc:
            raise InvalidToken(f"Token identity query failed: {exc}") from exc
        if not address or not name:
            raise InvalidToken("Token did not report an identity")

        entry = SupportedToken(address=address, name=name, decimals=decimals)
        self._tokens[address] = entry
        self._ledgers[address] = token
        self._voting_configs.setdefault(address, TokenVotingConfig())
        logger.info(f"Token {address} ({name}) approved for voting, decimals={decimals}")
        return entry

    def configure_voting_power_model(
        self,
        caller: str,
        token: TokenRef,
        model: PowerModel,
        lock_multiplier_enabled: bool,
        weight_multiplier: int = 1,
        enabled: bool = True,
    ) -> TokenVotingConfig:
        self._ownership.require(caller, Unauthorized, action="configure voting power")
        address, _ = self._require_supported(token)
        if weight_multiplier <= 0:
            raise InvalidToken("Weight multiplier must be positive")

        cfg = TokenVotingConfig(
            enabled=enabled,
            weight_multiplier=weight_multiplier,
            power_model=PowerModel(model),
            lock_multiplier_enabled=lock_multiplier_enabled,
        )
        self._voting_configs[address] = cfg
        logger.info(
            f"Token {address} voting model: {cfg.power_model.value}, "
            f"x{weight_multiplier}, lock multiplier={'on' if lock_multiplier_enabled else 'off'}"
        )
        return cfg

    def is_supported(self, token: TokenRef) -> bool:
        entry = self._tokens.get(self._address_of(token))
        return entry is not None and entry.approved

    def get_token(self, token: TokenRef) -> Optional[SupportedToken]:
        return self._tokens.get(self._address_of(token))

    def get_token_config(self, token: TokenRef) -> Optional[TokenVotingConfig]:
        return self._voting_configs.get(self._address_of(token))

    def is_voting_enabled(self, token: TokenRef) -> bool:
        cfg = self._voting_configs.get(self._address_of(token))
        return self.is_supported(token) and cfg is not None and cfg.enabled

    # ── Snapshots ─────────────────────────────────────────────────────

    def _refresh(self, snapshot: ProposalSnapshot) -> ProposalSnapshot:
        if not snapshot.taken and self._clock.height >= snapshot.height:
            snapshot.taken = True
            logger.info(
                f"Snapshot of {snapshot.token} for Proposal #{snapshot.proposal_id} "
                f"taken at height={snapshot.height}"
            )
        return snapshot

    def create_snapshot(
        self,
        caller: str,
        token: TokenRef,
        proposal_id: int,
        at_height: Optional[int] = None,
    ) -> ProposalSnapshot:
        """
        Pin the snapshot height for (*token*, *proposal_id*).

        One-shot: a second call for the same key raises ``SnapshotExists``.
        Without *at_height* the snapshot is taken at the current height;
        a future *at_height* defers it until the chain gets there.
        """
        self._ownership.require(caller, Unauthorized, action="create snapshots")
        address, _ = self._require_supported(token)
        key = (address, proposal_id)
        if key in self._snapshots:
            raise SnapshotExists(
                f"Snapshot of {address} for Proposal #{proposal_id} already exists"
            )

        now = self._clock.height
        height = now if at_height is None else max(at_height, now)
        snapshot = ProposalSnapshot(token=address, proposal_id=proposal_id, height=height)
        self._snapshots[key] = snapshot
        return self._refresh(snapshot)

    def add_to_snapshot(self, caller: str, token: TokenRef, proposal_id: int, holder: str) -> int:
        """Freeze *holder*'s current balance under the snapshot; returns it."""
        self._ownership.require(caller, Unauthorized, action="populate snapshots")
        address, ledger = self._require_supported(token)
        snapshot = self._snapshots.get((address, proposal_id))
        if snapshot is None:
            raise NoSnapshot(f"No snapshot of {address} for Proposal #{proposal_id}")
        if not self._refresh(snapshot).taken:
            raise NoSnapshot(
                f"Snapshot height {snapshot.height} not reached "
                f"(height={self._clock.height})"
            )
        if holder in snapshot.balances and not self._config.snapshots.allow_overwrite:
            raise SnapshotExists(f"{holder} already captured for Proposal #{proposal_id}")

        balance = ledger.get_balance(holder)
        snapshot.balances[holder] = balance
        logger.debug(f"Snapshot Proposal #{proposal_id}: {holder} = {balance}")
        return balance

    def get_snapshot(self, token: TokenRef, proposal_id: int) -> Optional[ProposalSnapshot]:
        snapshot = self._snapshots.get((self._address_of(token), proposal_id))
        return self._refresh(snapshot) if snapshot is not None else None

    def get_snapshot_balance(self, token: TokenRef, proposal_id: int, holder: str) -> int:
        snapshot = self.get_snapshot(token, proposal_id)
        if snapshot is None or not snapshot.taken:
            raise NoSnapshot(f"No snapshot taken for Proposal #{proposal_id}")
        return snapshot.balances.get(holder, 0)

    # ── Lockups ───────────────────────────────────────────────────────

    def _validate_lock_terms(self, lock_period_days: int, multiplier_bps: int) -> None:
        lockups = self._config.lockups
        if not lockups.min_lock_days <= lock_period_days <= lockups.max_lock_days:
            raise InvalidLockPeriod(
                f"Lock period must be {lockups.min_lock_days}-{lockups.max_lock_days} days, "
                f"got {lock_period_days}"
            )
        if not lockups.min_multiplier_bps <= multiplier_bps <= lockups.max_multiplier_bps:
            raise InvalidLockPeriod(
                f"Lock multiplier must be {lockups.min_multiplier_bps}-"
                f"{lockups.max_multiplier_bps} bps, got {multiplier_bps}"
            )

    def lock_tokens(
        self,
        caller: str,
        token: TokenRef,
        amount: int,
        lock_period_days: int,
        multiplier_bps: int,
    ) -> TokenLockup:
        """
        Move *amount* of *caller*'s tokens into custody for a lock period.

        The lockup is recorded before the custody transfer is issued, so a
        callback re-entering lock_tokens for the same holder hits
        AlreadyLocked. A failed transfer removes the record again.
        """
        address, ledger = self._require_supported(token)
        if amount <= 0:
            raise ZeroAmount("Lock amount must be positive")
        self._validate_lock_terms(lock_period_days, multiplier_bps)
        key = (address, caller)
        if key in self._lockups:
            raise AlreadyLocked(f"{caller} already has an active lockup of {address}")
        balance = ledger.get_balance(caller)
        if balance < amount:
            raise InsufficientBalance(f"{caller} holds {balance}, cannot lock {amount}")

        now = self._clock.height
        lockup = TokenLockup(
            token=address,
            holder=caller,
            amount=amount,
            lock_until=now + lock_period_days * self._config.lockups.blocks_per_day,
            multiplier_bps=multiplier_bps,
            locked_at=now,
        )
        self._lockups[key] = lockup
        try:
            ledger.transfer(amount, caller, self.custody_account, "lock")
        except TokenTransferError as exc:
            if self._lockups.get(key) is lockup:
                del self._lockups[key]
            raise InsufficientBalance(f"Custody transfer failed: {exc}") from exc

        if self._metrics is not None:
            self._metrics.active_lockups.inc()
            self._metrics.tokens_locked.inc(amount)

        logger.info(
            f"{caller} locked {amount} of {address} until height={lockup.lock_until} "
            f"({multiplier_bps} bps)"
        )
        return lockup

    def extend_lock(self, caller: str, token: TokenRef, additional_days: int) -> TokenLockup:
        address, _ = self._require_supported(token)
        lockup = self._lockups.get((address, caller))
        if lockup is None:
            raise NoSnapshot(f"{caller} has no lockup of {address}")
        if lockup.is_expired(self._clock.height):
            raise LockExpired(f"Lockup of {address} for {caller} has already matured")

        blocks_per_day = self._config.lockups.blocks_per_day
        new_until = lockup.lock_until + additional_days * blocks_per_day
        max_until = lockup.locked_at + self._config.lockups.max_lock_days * blocks_per_day
        if additional_days <= 0 or new_until > max_until:
            raise InvalidLockPeriod(
                f"Extension of {additional_days} days exceeds the maximum lock period"
            )

        lockup.lock_until = new_until
        logger.info(f"{caller} extended lockup of {address} to height={new_until}")
        return lockup

    def unlock_tokens(self, caller: str, token: TokenRef) -> int:
        """
        Return matured locked tokens to *caller*; returns the amount released.

        The record leaves the lockup map before the transfer is issued. If
        the transfer fails the record is put back and the error surfaces, so
        the call has no effect.
        """
        address, ledger = self._require_supported(token)
        key = (address, caller)
        lockup = self._lockups.get(key)
        if lockup is None or lockup.state != LockupState.LOCKED:
            raise NoSnapshot(f"{caller} has no lockup of {address}")
        if not lockup.is_expired(self._clock.height):
            raise LockNotExpired(
                f"Lockup matures at height={lockup.lock_until} "
                f"(height={self._clock.height})"
            )

        lockup.state = LockupState.UNLOCKING
        del self._lockups[key]
        try:
            ledger.transfer(lockup.amount, self.custody_account, caller, "unlock")
        except TokenTransferError as exc:
            lockup.state = LockupState.LOCKED
            self._lockups.setdefault(key, lockup)
            raise InsufficientBalance(f"Return transfer failed: {exc}") from exc
        lockup.state = LockupState.RELEASED

        if self._metrics is not None:
            self._metrics.active_lockups.dec()
            self._metrics.tokens_locked.dec(lockup.amount)
        logger.info(f"{caller} unlocked {lockup.amount} of {address}")
        return lockup.amount

    def get_lockup(self, token: TokenRef, holder: str) -> Optional[TokenLockup]:
        return self._lockups.get((self._address_of(token), holder))

    # ── Voting power ──────────────────────────────────────────────────

    def balance_for_voting(
        self,
        token: TokenRef,
        holder: str,
        proposal_id: Optional[int] = None,
    ) -> int:
        """
        Balance that counts for *holder*.

        With a *proposal_id* that has a snapshot header, the frozen balance
        is used (``NoSnapshot`` if the snapshot has not been taken yet);
        otherwise the live ledger balance.
        """
        address, ledger = self._require_supported(token)
        if proposal_id is not None:
            snapshot = self._snapshots.get((address, proposal_id))
            if snapshot is not None:
                if not self._refresh(snapshot).taken:
                    raise NoSnapshot(
                        f"Snapshot for Proposal #{proposal_id} not taken yet"
                    )
                return snapshot.balances.get(holder, 0)
        return ledger.get_balance(holder)

    def voting_power_for_balance(self, token: TokenRef, holder: str, balance: int) -> int:
        """Apply the token's curve, weight multiplier and lock multiplier to *balance*."""
        address, _ = self._require_supported(token)
        cfg = self._voting_configs[address]
        power = apply_power_model(balance, cfg.power_model) * cfg.weight_multiplier

        if cfg.lock_multiplier_enabled:
            lockup = self._lockups.get((address, holder))
            if (
                lockup is not None
                and lockup.state == LockupState.LOCKED
                and not lockup.is_expired(self._clock.height)
            ):
                power = apply_lock_multiplier(power, lockup.multiplier_bps)
        return power

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "tokens": {a: t.to_dict() for a, t in self._tokens.items()},
            "configs": {a: c.to_dict() for a, c in self._voting_configs.items()},
            "snapshots": len(self._snapshots),
            "activeLockups": len(self._lockups),
        }

    def __repr__(self) -> str:
        return (
            f"<TokenVotingRegistry tokens={len(self._tokens)} "
            f"lockups={len(self._lockups)}>"
        )
