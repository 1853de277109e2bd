"""
actorledger.metrics — Prometheus counters & histograms for the engine.

Metrics live on a module-level registry (swap it with `set_registry` in tests
or when embedding several engines in one process):

  - actorledger_tx_total{outcome,kind}          : Counter — transactions by outcome
  - actorledger_tx_gas_used{kind}               : Histogram — gas used per transaction
  - actorledger_rent_debited_total              : Counter — rent collected
  - actorledger_bounces_total{result}           : Counter — bounces sent/dropped
  - actorledger_admission_rejected_total{reason}: Counter — external messages refused
  - actorledger_bus_pending                     : Gauge — messages waiting on the bus

Labels:
  - outcome ∈ {committed, rolled_back, compute_failed, discarded, fault}
  - kind    ∈ {internal, external}
"""

from __future__ import annotations

import threading
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_PREFIX = "actorledger_"

_GAS_BUCKETS = (100, 500, 1_000, 5_000, 10_000, 50_000, 100_000, 500_000, 1_000_000)

_lock = threading.Lock()
_registry: Optional[CollectorRegistry] = None

TX_TOTAL: Counter
TX_GAS: Histogram
RENT_DEBITED: Counter
BOUNCES: Counter
ADMISSION_REJECTED: Counter
BUS_PENDING: Gauge


def _build_metrics(registry: CollectorRegistry) -> None:
    global TX_TOTAL, TX_GAS, RENT_DEBITED, BOUNCES, ADMISSION_REJECTED, BUS_PENDING
    TX_TOTAL = Counter(
        _PREFIX + "tx_total", "Transactions processed by outcome",
        ["outcome", "kind"], registry=registry,
    )
    TX_GAS = Histogram(
        _PREFIX + "tx_gas_used", "Gas used per transaction",
        ["kind"], buckets=_GAS_BUCKETS, registry=registry,
    )
    RENT_DEBITED = Counter(
        _PREFIX + "rent_debited_total", "Storage rent collected", registry=registry,
    )
    BOUNCES = Counter(
        _PREFIX + "bounces_total", "Bounce messages by result", ["result"], registry=registry,
    )
    ADMISSION_REJECTED = Counter(
        _PREFIX + "admission_rejected_total", "External messages refused at admission",
        ["reason"], registry=registry,
    )
    BUS_PENDING = Gauge(
        _PREFIX + "bus_pending", "Internal messages waiting for delivery", registry=registry,
    )


def set_registry(registry: CollectorRegistry) -> None:
    """Rebuild all metrics on `registry`."""
    global _registry
    with _lock:
        _registry = registry
        _build_metrics(registry)


def get_registry() -> CollectorRegistry:
    global _registry
    with _lock:
        if _registry is None:
            _registry = CollectorRegistry(auto_describe=True)
            _build_metrics(_registry)
        return _registry


def observe_tx(*, outcome: str, kind: str, gas_used: int) -> None:
    get_registry()
    TX_TOTAL.labels(outcome=outcome, kind=kind).inc()
    TX_GAS.labels(kind=kind).observe(max(0, int(gas_used)))


def observe_rent(amount: int) -> None:
    if amount > 0:
        get_registry()
        RENT_DEBITED.inc(amount)


def observe_bounce(result: str) -> None:
    get_registry()
    BOUNCES.labels(result=result).inc()


def observe_admission_rejected(reason: str) -> None:
    get_registry()
    ADMISSION_REJECTED.labels(reason=reason).inc()


def set_bus_pending(n: int) -> None:
    get_registry()
    BUS_PENDING.set(n)


def generate_latest_text() -> bytes:
    return generate_latest(get_registry())


__all__ = [
    "get_registry",
    "set_registry",
    "observe_tx",
    "observe_rent",
    "observe_bounce",
    "observe_admission_rejected",
    "set_bus_pending",
    "generate_latest_text",
]
