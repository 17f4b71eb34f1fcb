"""
Token Snapshot & Lockup Test Suite

Coverage:
  - Supported-token registry and voting configuration
  - One-shot snapshot headers, deferred snapshots, holder capture
  - Lockup validation, custody transfers and the lock multiplier
  - Unlock round-trip: maturity, exactly-once release, reentrancy,
    atomic failure
"""

import sys
import os
from unittest.mock import MagicMock

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from proxyvote.chain import BlockClock, Ownership
from proxyvote.config import GovernanceConfig, SnapshotConfig
from proxyvote.constants import BLOCKS_PER_DAY, CUSTODY_ACCOUNT
from proxyvote.exceptions import (
    AlreadyLocked,
    InsufficientBalance,
    InvalidLockPeriod,
    InvalidToken,
    LockExpired,
    LockNotExpired,
    NoSnapshot,
    SnapshotExists,
    TokenVotingError,
    Unauthorized,
    ZeroAmount,
)
from proxyvote.governance.curves import PowerModel
from proxyvote.governance.snapshots import LockupState, TokenVotingRegistry
from proxyvote.metrics import GovernanceMetrics
from proxyvote.tokens import InMemoryTokenLedger, TokenLedgerError, TokenTransferError


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

ADMIN = "0xPQ" + "AD" * 32
ALICE = "0xPQ" + "A1" * 32
BOB = "0xPQ" + "B2" * 32
CAROL = "0xPQ" + "C3" * 32
TOKEN = "0xPQ" + "70" * 32
OTHER_TOKEN = "0xPQ" + "71" * 32


def make_ledger(address=TOKEN, **kwargs) -> InMemoryTokenLedger:
    balances = kwargs.pop("balances", {ALICE: 10_000, BOB: 500})
    return InMemoryTokenLedger(address, "Vote Token", balances, **kwargs)


def make_registry(config=None, metrics=None, ledger=None, height=100):
    """Registry with TOKEN already supported."""
    clock = BlockClock(height)
    registry = TokenVotingRegistry(Ownership(ADMIN), clock, config=config, metrics=metrics)
    ledger = ledger or make_ledger()
    registry.add_supported_token(ADMIN, ledger, 6)
    return registry, ledger, clock


# ══════════════════════════════════════════════════════════════════════
#  TOKEN REGISTRY
# ══════════════════════════════════════════════════════════════════════

class TestSupportedTokens:

    def test_add_supported_token(self):
        registry, ledger, _ = make_registry()
        entry = registry.get_token(TOKEN)
        assert entry.name == "Vote Token"
        assert entry.decimals == 6
        assert registry.is_supported(TOKEN)
        assert registry.is_supported(ledger)
        assert registry.is_voting_enabled(TOKEN)

    def test_default_voting_config(self):
        registry, _, _ = make_registry()
        cfg = registry.get_token_config(TOKEN)
        assert cfg.enabled is True
        assert cfg.power_model == PowerModel.LINEAR
        assert cfg.lock_multiplier_enabled is False
        assert cfg.weight_multiplier == 1

    def test_non_admin_raises(self):
        registry = TokenVotingRegistry(Ownership(ADMIN), BlockClock())
        with pytest.raises(Unauthorized):
            registry.add_supported_token(ALICE, make_ledger(), 6)
        assert not registry.is_supported(TOKEN)

    def test_failing_name_query_raises(self):
        registry = TokenVotingRegistry(Ownership(ADMIN), BlockClock())
        token = MagicMock()
        token.address = OTHER_TOKEN
        token.get_name.side_effect = TokenLedgerError("unreachable")
        with pytest.raises(InvalidToken, match="identity"):
            registry.add_supported_token(ADMIN, token, 6)
        assert not registry.is_supported(OTHER_TOKEN)

    def test_non_token_object_raises(self):
        registry = TokenVotingRegistry(Ownership(ADMIN), BlockClock())
        with pytest.raises(InvalidToken):
            registry.add_supported_token(ADMIN, object(), 6)

    def test_empty_name_raises(self):
        registry = TokenVotingRegistry(Ownership(ADMIN), BlockClock())
        ledger = InMemoryTokenLedger(OTHER_TOKEN, "", {})
        with pytest.raises(InvalidToken):
            registry.add_supported_token(ADMIN, ledger, 6)

    def test_invalid_decimals_raises(self):
        registry = TokenVotingRegistry(Ownership(ADMIN), BlockClock())
        with pytest.raises(InvalidToken, match="Decimals"):
            registry.add_supported_token(ADMIN, make_ledger(), 19)

    def test_configure_voting_power_model(self):
        registry, _, _ = make_registry()
        cfg = registry.configure_voting_power_model(
            ADMIN, TOKEN, PowerModel.SQUARE_ROOT, True, weight_multiplier=2,
        )
        assert registry.get_token_config(TOKEN) is cfg
        assert cfg.to_dict() == {
            "enabled": True,
            "weightMultiplier": 2,
            "powerModel": "square-root",
            "lockMultiplierEnabled": True,
        }

    def test_configure_disables_voting(self):
        registry, _, _ = make_registry()
        registry.configure_voting_power_model(ADMIN, TOKEN, PowerModel.LINEAR, False, enabled=False)
        assert registry.is_supported(TOKEN)
        assert not registry.is_voting_enabled(TOKEN)

    def test_configure_unsupported_token_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(InvalidToken):
            registry.configure_voting_power_model(ADMIN, OTHER_TOKEN, PowerModel.LINEAR, False)

    def test_configure_non_admin_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(Unauthorized):
            registry.configure_voting_power_model(BOB, TOKEN, PowerModel.LINEAR, True)


# ══════════════════════════════════════════════════════════════════════
#  SNAPSHOTS
# ══════════════════════════════════════════════════════════════════════

class TestSnapshots:

    def test_create_snapshot(self):
        registry, _, clock = make_registry()
        snap = registry.create_snapshot(ADMIN, TOKEN, 0)
        assert snap.taken is True
        assert snap.height == clock.height
        assert registry.get_snapshot(TOKEN, 0) is snap

    def test_snapshot_is_one_shot(self):
        registry, _, _ = make_registry()
        registry.create_snapshot(ADMIN, TOKEN, 0)
        with pytest.raises(SnapshotExists):
            registry.create_snapshot(ADMIN, TOKEN, 0)

    def test_snapshots_are_per_proposal(self):
        registry, _, _ = make_registry()
        registry.create_snapshot(ADMIN, TOKEN, 0)
        registry.create_snapshot(ADMIN, TOKEN, 1)
        assert registry.get_snapshot(TOKEN, 1).proposal_id == 1

    def test_create_non_admin_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(Unauthorized):
            registry.create_snapshot(ALICE, TOKEN, 0)
        assert registry.get_snapshot(TOKEN, 0) is None

    def test_create_unsupported_token_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(InvalidToken):
            registry.create_snapshot(ADMIN, OTHER_TOKEN, 0)

    def test_capture_freezes_balance(self):
        registry, ledger, _ = make_registry()
        registry.create_snapshot(ADMIN, TOKEN, 0)
        assert registry.add_to_snapshot(ADMIN, TOKEN, 0, ALICE) == 10_000

        ledger.transfer(4_000, ALICE, CAROL)
        assert registry.get_snapshot_balance(TOKEN, 0, ALICE) == 10_000
        assert registry.get_snapshot_balance(TOKEN, 0, CAROL) == 0

    def test_capture_without_header_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(NoSnapshot):
            registry.add_to_snapshot(ADMIN, TOKEN, 0, ALICE)

    def test_capture_non_admin_raises(self):
        registry, _, _ = make_registry()
        registry.create_snapshot(ADMIN, TOKEN, 0)
        with pytest.raises(Unauthorized):
            registry.add_to_snapshot(ALICE, TOKEN, 0, ALICE)

    def test_recapture_overwrites_by_default(self):
        registry, ledger, _ = make_registry()
        registry.create_snapshot(ADMIN, TOKEN, 0)
        registry.add_to_snapshot(ADMIN, TOKEN, 0, ALICE)
        ledger.transfer(4_000, ALICE, CAROL)
        assert registry.add_to_snapshot(ADMIN, TOKEN, 0, ALICE) == 6_000
        assert registry.get_snapshot_balance(TOKEN, 0, ALICE) == 6_000

    def test_recapture_rejected_when_overwrite_disabled(self):
        config = GovernanceConfig(snapshots=SnapshotConfig(allow_overwrite=False))
        registry, _, _ = make_registry(config=config)
        registry.create_snapshot(ADMIN, TOKEN, 0)
        registry.add_to_snapshot(ADMIN, TOKEN, 0, ALICE)
        with pytest.raises(SnapshotExists):
            registry.add_to_snapshot(ADMIN, TOKEN, 0, ALICE)

    def test_deferred_snapshot(self):
        registry, _, clock = make_registry()
        snap = registry.create_snapshot(ADMIN, TOKEN, 0, at_height=clock.height + 10)
        assert snap.taken is False
        with pytest.raises(NoSnapshot, match="not reached"):
            registry.add_to_snapshot(ADMIN, TOKEN, 0, ALICE)
        with pytest.raises(NoSnapshot):
            registry.get_snapshot_balance(TOKEN, 0, ALICE)

        clock.advance(10)
        assert registry.get_snapshot(TOKEN, 0).taken is True
        assert registry.add_to_snapshot(ADMIN, TOKEN, 0, ALICE) == 10_000

    def test_past_height_is_clamped_to_now(self):
        registry, _, clock = make_registry()
        snap = registry.create_snapshot(ADMIN, TOKEN, 0, at_height=clock.height - 50)
        assert snap.height == clock.height
        assert snap.taken is True


# ══════════════════════════════════════════════════════════════════════
#  LOCKUPS
# ══════════════════════════════════════════════════════════════════════

class TestLockTokens:

    def test_lock_tokens(self):
        registry, ledger, clock = make_registry()
        lockup = registry.lock_tokens(ALICE, TOKEN, 1_000, 30, 150)

        assert lockup.amount == 1_000
        assert lockup.multiplier_bps == 150
        assert lockup.locked_at == clock.height
        assert lockup.lock_until == clock.height + 30 * BLOCKS_PER_DAY
        assert lockup.state == LockupState.LOCKED
        assert ledger.get_balance(ALICE) == 9_000
        assert ledger.get_balance(CUSTODY_ACCOUNT) == 1_000
        assert registry.get_lockup(TOKEN, ALICE) is lockup

    def test_unsupported_token_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(InvalidToken):
            registry.lock_tokens(ALICE, OTHER_TOKEN, 1_000, 30, 150)

    def test_zero_amount_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(ZeroAmount):
            registry.lock_tokens(ALICE, TOKEN, 0, 30, 150)

    @pytest.mark.parametrize("days", [0, 6, 366])
    def test_invalid_period_raises(self, days):
        registry, ledger, _ = make_registry()
        with pytest.raises(InvalidLockPeriod):
            registry.lock_tokens(ALICE, TOKEN, 1_000, days, 150)
        assert ledger.get_balance(ALICE) == 10_000

    @pytest.mark.parametrize("bps", [99, 301])
    def test_invalid_multiplier_raises(self, bps):
        registry, _, _ = make_registry()
        with pytest.raises(InvalidLockPeriod):
            registry.lock_tokens(ALICE, TOKEN, 1_000, 30, bps)

    @pytest.mark.parametrize("days,bps", [(7, 100), (365, 300)])
    def test_boundary_terms_accepted(self, days, bps):
        registry, _, _ = make_registry()
        registry.lock_tokens(ALICE, TOKEN, 1_000, days, bps)

    def test_second_lock_raises(self):
        registry, ledger, _ = make_registry()
        registry.lock_tokens(ALICE, TOKEN, 1_000, 30, 150)
        with pytest.raises(AlreadyLocked):
            registry.lock_tokens(ALICE, TOKEN, 1_000, 30, 150)
        assert ledger.get_balance(ALICE) == 9_000

    def test_insufficient_balance_raises(self):
        registry, ledger, _ = make_registry()
        with pytest.raises(InsufficientBalance):
            registry.lock_tokens(BOB, TOKEN, 501, 30, 150)
        assert ledger.get_balance(BOB) == 500
        assert registry.get_lockup(TOKEN, BOB) is None

    def test_lock_errors_share_base(self):
        registry, _, _ = make_registry()
        with pytest.raises(TokenVotingError):
            registry.lock_tokens(ALICE, TOKEN, -5, 30, 150)

    def test_lockup_metrics(self):
        metrics = GovernanceMetrics()
        registry, _, clock = make_registry(metrics=metrics)
        registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)
        assert metrics.active_lockups.value == 1
        assert metrics.tokens_locked.value == 1_000

        clock.advance(7 * BLOCKS_PER_DAY)
        registry.unlock_tokens(ALICE, TOKEN)
        assert metrics.active_lockups.value == 0
        assert metrics.tokens_locked.value == 0


class TestExtendLock:

    def test_extend_lock(self):
        registry, _, _ = make_registry()
        lockup = registry.lock_tokens(ALICE, TOKEN, 1_000, 30, 150)
        original = lockup.lock_until
        registry.extend_lock(ALICE, TOKEN, 10)
        assert lockup.lock_until == original + 10 * BLOCKS_PER_DAY

    def test_extend_past_maximum_raises(self):
        registry, _, _ = make_registry()
        lockup = registry.lock_tokens(ALICE, TOKEN, 1_000, 300, 150)
        original = lockup.lock_until
        with pytest.raises(InvalidLockPeriod):
            registry.extend_lock(ALICE, TOKEN, 66)
        assert lockup.lock_until == original

    def test_extend_by_zero_raises(self):
        registry, _, _ = make_registry()
        registry.lock_tokens(ALICE, TOKEN, 1_000, 30, 150)
        with pytest.raises(InvalidLockPeriod):
            registry.extend_lock(ALICE, TOKEN, 0)

    def test_extend_matured_lock_raises(self):
        registry, _, clock = make_registry()
        registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)
        clock.advance(7 * BLOCKS_PER_DAY)
        with pytest.raises(LockExpired):
            registry.extend_lock(ALICE, TOKEN, 7)

    def test_extend_without_lockup_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(NoSnapshot):
            registry.extend_lock(ALICE, TOKEN, 7)


class TestUnlockTokens:

    def test_round_trip(self):
        registry, ledger, clock = make_registry()
        start = ledger.get_balance(ALICE)
        lockup = registry.lock_tokens(ALICE, TOKEN, 1_000, 30, 150)

        clock.advance(30 * BLOCKS_PER_DAY - 1)
        with pytest.raises(LockNotExpired):
            registry.unlock_tokens(ALICE, TOKEN)

        clock.advance(1)
        assert registry.unlock_tokens(ALICE, TOKEN) == 1_000
        assert lockup.state == LockupState.RELEASED
        assert registry.get_lockup(TOKEN, ALICE) is None

        with pytest.raises(NoSnapshot):
            registry.unlock_tokens(ALICE, TOKEN)

        assert ledger.get_balance(ALICE) == start
        assert ledger.get_balance(CUSTODY_ACCOUNT) == 0

    def test_unlock_without_lockup_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(NoSnapshot):
            registry.unlock_tokens(BOB, TOKEN)

    def test_relock_after_unlock(self):
        registry, _, clock = make_registry()
        registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)
        clock.advance(7 * BLOCKS_PER_DAY)
        registry.unlock_tokens(ALICE, TOKEN)
        lockup = registry.lock_tokens(ALICE, TOKEN, 2_000, 14, 200)
        assert lockup.amount == 2_000

    def test_reentrant_unlock_is_rejected(self):
        """A recipient calling back into unlock_tokens mid-transfer finds no lockup."""
        reentry_errors = []
        ledger = make_ledger()
        registry, _, clock = make_registry(ledger=ledger)

        def on_transfer(event):
            if event.sender == CUSTODY_ACCOUNT and event.recipient == ALICE:
                try:
                    registry.unlock_tokens(ALICE, TOKEN)
                except NoSnapshot as exc:
                    reentry_errors.append(exc)

        registry.lock_tokens(ALICE, TOKEN, 1_000, 30, 150)
        ledger.on_transfer = on_transfer
        clock.advance(30 * BLOCKS_PER_DAY)

        assert registry.unlock_tokens(ALICE, TOKEN) == 1_000
        assert len(reentry_errors) == 1
        assert ledger.get_balance(ALICE) == 10_000
        assert ledger.get_balance(CUSTODY_ACCOUNT) == 0
        returns = [e for e in ledger.events if e.sender == CUSTODY_ACCOUNT]
        assert len(returns) == 1

    def test_reentrant_lock_is_rejected(self):
        """A callback re-entering lock_tokens mid-transfer hits AlreadyLocked."""
        reentry_errors = []
        ledger = make_ledger()
        metrics = GovernanceMetrics()
        registry, _, _ = make_registry(ledger=ledger, metrics=metrics)

        def on_transfer(event):
            if event.sender == ALICE and event.recipient == CUSTODY_ACCOUNT:
                try:
                    registry.lock_tokens(ALICE, TOKEN, 2_000, 7, 300)
                except AlreadyLocked as exc:
                    reentry_errors.append(exc)

        ledger.on_transfer = on_transfer
        lockup = registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)

        assert len(reentry_errors) == 1
        assert registry.get_lockup(TOKEN, ALICE) is lockup
        assert lockup.amount == 1_000
        assert ledger.get_balance(CUSTODY_ACCOUNT) == 1_000
        assert ledger.get_balance(ALICE) == 9_000
        assert metrics.active_lockups.value == 1
        assert metrics.tokens_locked.value == 1_000

    def test_failed_custody_transfer_leaves_no_lockup(self):
        ledger = make_ledger()
        registry, _, _ = make_registry(ledger=ledger)
        ledger.transfer = MagicMock(side_effect=TokenTransferError("ledger paused"))

        with pytest.raises(InsufficientBalance, match="Custody transfer failed"):
            registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)
        assert registry.get_lockup(TOKEN, ALICE) is None
        assert ledger.get_balance(ALICE) == 10_000

    def test_failed_return_transfer_restores_lockup(self):
        registry, ledger, clock = make_registry()
        lockup = registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)
        # Drain custody so the return transfer fails
        ledger.transfer(1_000, CUSTODY_ACCOUNT, CAROL)
        clock.advance(7 * BLOCKS_PER_DAY)

        with pytest.raises(InsufficientBalance):
            registry.unlock_tokens(ALICE, TOKEN)
        assert registry.get_lockup(TOKEN, ALICE) is lockup
        assert lockup.state == LockupState.LOCKED
        assert ledger.get_balance(ALICE) == 9_000


# ══════════════════════════════════════════════════════════════════════
#  VOTING POWER
# ══════════════════════════════════════════════════════════════════════

class TestTokenVotingPower:

    def test_lock_multiplier_applies_while_locked(self):
        registry, _, clock = make_registry()
        registry.configure_voting_power_model(ADMIN, TOKEN, PowerModel.LINEAR, True)
        registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)

        balance = registry.balance_for_voting(TOKEN, ALICE)
        assert balance == 9_000
        assert registry.voting_power_for_balance(TOKEN, ALICE, balance) == 13_500

        clock.advance(7 * BLOCKS_PER_DAY)
        assert registry.voting_power_for_balance(TOKEN, ALICE, balance) == 9_000

    def test_lock_multiplier_ignored_when_disabled(self):
        registry, _, _ = make_registry()
        registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 300)
        assert registry.voting_power_for_balance(TOKEN, ALICE, 9_000) == 9_000

    def test_curve_then_multipliers(self):
        registry, _, _ = make_registry()
        registry.configure_voting_power_model(
            ADMIN, TOKEN, PowerModel.SQUARE_ROOT, True, weight_multiplier=2,
        )
        registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)
        # isqrt(8100) = 90, x2 = 180, x1.5 = 270
        assert registry.voting_power_for_balance(TOKEN, ALICE, 8_100) == 270

    def test_unsupported_token_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(InvalidToken):
            registry.balance_for_voting(OTHER_TOKEN, ALICE)


class TestRegistryOwnership:

    def test_transfer_ownership(self):
        registry, _, _ = make_registry()
        registry.transfer_ownership(ADMIN, BOB)
        assert registry.owner == BOB
        with pytest.raises(Unauthorized):
            registry.create_snapshot(ADMIN, TOKEN, 0)

    def test_transfer_ownership_non_admin_raises(self):
        registry, _, _ = make_registry()
        with pytest.raises(Unauthorized):
            registry.transfer_ownership(BOB, BOB)

    def test_to_dict(self):
        registry, _, _ = make_registry()
        registry.lock_tokens(ALICE, TOKEN, 1_000, 7, 150)
        data = registry.to_dict()
        assert data["owner"] == ADMIN
        assert TOKEN in data["tokens"]
        assert data["activeLockups"] == 1
        assert registry.get_lockup(TOKEN, ALICE).to_dict()["state"] == "LOCKED"
