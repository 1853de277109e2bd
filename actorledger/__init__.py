"""
actorledger — execution engine for an actor-style ledger.

Accounts are independent state machines addressed by a hash of their code and
immutable data. They talk only through asynchronous messages, and every
message is processed by a two-phase (compute/action) transaction.

This package exposes only lightweight metadata at import time. Import the
engine explicitly:

    from actorledger.engine import Engine
"""

from .version import __version__, git_describe

__all__ = ["__version__", "git_describe"]
