"""
ProxyVote TOML Configuration Loader

Loads all sections of config.toml with environment variable overrides.
Every section is a dataclass with ``from_dict`` and ``apply_env``; defaults
come from proxyvote.constants.

Environment variable mapping:
    [proposals] pass_threshold  → PROXYVOTE_PASS_THRESHOLD
    [proposals] timelock_period → PROXYVOTE_TIMELOCK_PERIOD
    [lockups] blocks_per_day    → PROXYVOTE_BLOCKS_PER_DAY
    ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    ALLOW_SNAPSHOT_OVERWRITE,
    BLOCKS_PER_DAY,
    CUSTODY_ACCOUNT,
    DEFAULT_WEIGHT,
    LOG_LEVEL,
    MAX_CUSTOM_WEIGHT,
    MAX_LOCK_DAYS,
    MAX_LOCK_MULTIPLIER_BPS,
    MIN_LOCK_DAYS,
    MIN_LOCK_MULTIPLIER_BPS,
    PASS_THRESHOLD,
    TIMELOCK_PERIOD,
)

logger = logging.getLogger(__name__)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ProposalConfig:
    """[proposals] section."""
    pass_threshold: int = PASS_THRESHOLD
    timelock_period: int = TIMELOCK_PERIOD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProposalConfig":
        return cls(
            pass_threshold=data.get("pass_threshold", PASS_THRESHOLD),
            timelock_period=data.get("timelock_period", TIMELOCK_PERIOD),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("PROXYVOTE_PASS_THRESHOLD"):
            self.pass_threshold = int(v)
        if v := os.environ.get("PROXYVOTE_TIMELOCK_PERIOD"):
            self.timelock_period = int(v)


@dataclass
class WeightConfig:
    """[weights] section."""
    default_weight: int = DEFAULT_WEIGHT
    max_custom_weight: int = MAX_CUSTOM_WEIGHT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeightConfig":
        return cls(
            default_weight=data.get("default_weight", DEFAULT_WEIGHT),
            max_custom_weight=data.get("max_custom_weight", MAX_CUSTOM_WEIGHT),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("PROXYVOTE_MAX_CUSTOM_WEIGHT"):
            self.max_custom_weight = int(v)


@dataclass
class LockupConfig:
    """[lockups] section."""
    blocks_per_day: int = BLOCKS_PER_DAY
    min_lock_days: int = MIN_LOCK_DAYS
    max_lock_days: int = MAX_LOCK_DAYS
    min_multiplier_bps: int = MIN_LOCK_MULTIPLIER_BPS
    max_multiplier_bps: int = MAX_LOCK_MULTIPLIER_BPS
    custody_account: str = CUSTODY_ACCOUNT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LockupConfig":
        return cls(
            blocks_per_day=data.get("blocks_per_day", BLOCKS_PER_DAY),
            min_lock_days=data.get("min_lock_days", MIN_LOCK_DAYS),
            max_lock_days=data.get("max_lock_days", MAX_LOCK_DAYS),
            min_multiplier_bps=data.get("min_multiplier_bps", MIN_LOCK_MULTIPLIER_BPS),
            max_multiplier_bps=data.get("max_multiplier_bps", MAX_LOCK_MULTIPLIER_BPS),
            custody_account=data.get("custody_account", CUSTODY_ACCOUNT),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("PROXYVOTE_BLOCKS_PER_DAY"):
            self.blocks_per_day = int(v)
        if v := os.environ.get("PROXYVOTE_CUSTODY_ACCOUNT"):
            self.custody_account = v


@dataclass
class SnapshotConfig:
    """[snapshots] section."""
    allow_overwrite: bool = ALLOW_SNAPSHOT_OVERWRITE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotConfig":
        return cls(allow_overwrite=data.get("allow_overwrite", ALLOW_SNAPSHOT_OVERWRITE))

    def apply_env(self) -> None:
        if v := os.environ.get("PROXYVOTE_SNAPSHOT_ALLOW_OVERWRITE"):
            self.allow_overwrite = _env_bool(v)


@dataclass
class MetricsConfig:
    """[metrics] section."""
    enabled: bool = True
    namespace: str = "proxyvote"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricsConfig":
        return cls(
            enabled=data.get("enabled", True),
            namespace=data.get("namespace", "proxyvote"),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("PROXYVOTE_METRICS_ENABLED"):
            self.enabled = _env_bool(v)


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class GovernanceConfig:
    """Complete engine configuration."""
    proposals: ProposalConfig = field(default_factory=ProposalConfig)
    weights: WeightConfig = field(default_factory=WeightConfig)
    lockups: LockupConfig = field(default_factory=LockupConfig)
    snapshots: SnapshotConfig = field(default_factory=SnapshotConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log_level: str = str(LOG_LEVEL).upper()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernanceConfig":
        return cls(
            proposals=ProposalConfig.from_dict(data.get("proposals", {})),
            weights=WeightConfig.from_dict(data.get("weights", {})),
            lockups=LockupConfig.from_dict(data.get("lockups", {})),
            snapshots=SnapshotConfig.from_dict(data.get("snapshots", {})),
            metrics=MetricsConfig.from_dict(data.get("metrics", {})),
            log_level=str(data.get("log_level", LOG_LEVEL)).upper(),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "GovernanceConfig":
        """
        Load configuration from a TOML file.

        A missing file is not an error: defaults (with env overrides) are
        returned and a warning is logged.
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            raw = tomli.load(f)

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.proposals.apply_env()
        self.weights.apply_env()
        self.lockups.apply_env()
        self.snapshots.apply_env()
        self.metrics.apply_env()
        if v := os.environ.get("PROXYVOTE_LOG_LEVEL"):
            self.log_level = v.upper()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ValueError: on invalid config
        """
        if self.proposals.pass_threshold < 1:
            raise ValueError("pass_threshold must be >= 1")
        if self.proposals.timelock_period < 0:
            raise ValueError("timelock_period must be >= 0")
        if self.weights.default_weight < 0:
            raise ValueError("default_weight must be >= 0")
        if self.weights.max_custom_weight < 1:
            raise ValueError("max_custom_weight must be >= 1")
        if self.lockups.blocks_per_day < 1:
            raise ValueError("blocks_per_day must be >= 1")
        if not 0 < self.lockups.min_lock_days <= self.lockups.max_lock_days:
            raise ValueError("lock day bounds must satisfy 0 < min <= max")
        if not 0 < self.lockups.min_multiplier_bps <= self.lockups.max_multiplier_bps:
            raise ValueError("lock multiplier bounds must satisfy 0 < min <= max")
        if not self.lockups.custody_account:
            raise ValueError("custody_account is required")
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log_level: {self.log_level}")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics)."""
        return {
            "proposals": {
                "pass_threshold": self.proposals.pass_threshold,
                "timelock_period": self.proposals.timelock_period,
            },
            "weights": {
                "default_weight": self.weights.default_weight,
                "max_custom_weight": self.weights.max_custom_weight,
            },
            "lockups": {
                "blocks_per_day": self.lockups.blocks_per_day,
                "min_lock_days": self.lockups.min_lock_days,
                "max_lock_days": self.lockups.max_lock_days,
                "min_multiplier_bps": self.lockups.min_multiplier_bps,
                "max_multiplier_bps": self.lockups.max_multiplier_bps,
                "custody_account": self.lockups.custody_account,
            },
            "snapshots": {
                "allow_overwrite": self.snapshots.allow_overwrite,
            },
            "metrics": {
                "enabled": self.metrics.enabled,
                "namespace": self.metrics.namespace,
            },
            "log_level": self.log_level,
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> GovernanceConfig:
    """
    Load governance configuration.

    Resolution order:
        1. Explicit *path* argument
        2. PROXYVOTE_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("PROXYVOTE_CONFIG", "config.toml")

    cfg = GovernanceConfig.from_file(path)
    cfg.validate()
    return cfg
