"""
Test package for actorledger.

Registers Hypothesis profiles on import. Select with:
    HYPOTHESIS_PROFILE=ci pytest

With no override, CI=true picks "ci" and everything else "dev".
"""

from __future__ import annotations

import os

from hypothesis import HealthCheck, settings

settings.register_profile(
    "dev",
    max_examples=40,
    deadline=None,
    suppress_health_check=(HealthCheck.too_slow, HealthCheck.function_scoped_fixture),
)

settings.register_profile(
    "ci",
    max_examples=150,
    deadline=None,
    suppress_health_check=(HealthCheck.too_slow, HealthCheck.function_scoped_fixture),
    derandomize=True,
)

_default = "ci" if os.getenv("CI", "").lower() in ("1", "true", "yes") else "dev"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", _default))
