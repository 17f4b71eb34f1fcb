"""
ProxyVote Governance Engine

Core imports are lazily loaded so that submodules stay importable on their
own. For direct module access, import from submodules:

    from proxyvote.governance import build_governance, VotingMode
    from proxyvote.tokens import InMemoryTokenLedger
    from proxyvote.exceptions import DuplicateVote
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'build_governance':
        from .governance import build_governance
        return build_governance
    elif name == 'GovernanceError':
        from .exceptions import GovernanceError
        return GovernanceError
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'proxyvote' has no attribute {name!r}")

__all__ = ['build_governance', 'GovernanceError', 'load_config']
