"""
Vegov: vote-escrow locking and governance reward distribution.

Core imports are lazily loaded so that importing a submodule does not pull
in the whole engine. For direct module access, import from submodules:

    from vegov.engine import GovernanceEngine
    from vegov.config import load_config
    from vegov.exceptions import ValidationError
"""

__version__ = "1.0.0"


def __getattr__(name):
    """Lazy module loading."""
    if name == 'GovernanceEngine':
        from .engine import GovernanceEngine
        return GovernanceEngine
    elif name == 'ExecContext':
        from .context import ExecContext
        return ExecContext
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'vegov' has no attribute {name!r}")

__all__ = ['GovernanceEngine', 'ExecContext', 'load_config']
