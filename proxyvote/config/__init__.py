"""
ProxyVote Configuration

Loads config.toml at startup. Environment variables override TOML values.
"""

from .loader import (
    GovernanceConfig,
    LockupConfig,
    MetricsConfig,
    ProposalConfig,
    SnapshotConfig,
    WeightConfig,
    load_config,
)

__all__ = [
    "GovernanceConfig",
    "LockupConfig",
    "MetricsConfig",
    "ProposalConfig",
    "SnapshotConfig",
    "WeightConfig",
    "load_config",
]
