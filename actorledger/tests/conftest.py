"""
Shared pytest fixtures:
- Fresh Prometheus registry per test (metrics are process-global)
- Engine factory over in-memory SQLite with the sample contracts registered
- Deterministic Ed25519 signers
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, List

import pytest
from prometheus_client import CollectorRegistry

from actorledger import metrics
from actorledger.crypto import Signer
from actorledger.engine import Engine
from actorledger.tests.fixtures import ALL_CONTRACTS, make_config


@pytest.fixture(autouse=True)
def fresh_metrics() -> CollectorRegistry:
    registry = CollectorRegistry()
    metrics.set_registry(registry)
    return registry


@pytest.fixture
def make_engine() -> Iterator[Callable[..., Engine]]:
    """
    Build an Engine with the sample contracts. Keyword arguments are config
    overrides, except kv/clock/scheduler/db_uri which go to the Engine itself.
    """
    engines: List[Engine] = []

    def _make(**overrides: Any) -> Engine:
        kw = {k: overrides.pop(k) for k in ("kv", "clock", "scheduler", "db_uri") if k in overrides}
        engine = Engine(ALL_CONTRACTS, config=make_config(**overrides), **kw)
        engines.append(engine)
        return engine

    yield _make
    for e in engines:
        e.close()


@pytest.fixture
def engine(make_engine) -> Engine:
    return make_engine()


@pytest.fixture
def owner() -> Signer:
    return Signer.from_seed(b"\x01" * 32)


@pytest.fixture
def mallory() -> Signer:
    return Signer.from_seed(b"\x66" * 32)
