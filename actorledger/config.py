"""
actorledger.config — runtime configuration for the execution engine.

This module centralizes knobs for:
  • Storage rent (rate as a function of stored size, freeze → delete grace)
  • Gas schedule (price, external admission credit, per-step costs, forward fee)
  • Limits (bounce payload budget, actions per transaction, state size)

Configuration may be provided via environment variables. Safe defaults are
chosen so a local run works out of the box.

Environment variables (all optional):
  ACTORLEDGER_RENT_BASE            -> rent per logical time unit for any account (default: 1)
  ACTORLEDGER_RENT_PER_BYTE        -> additional rent per stored byte per time unit (default: 0)
  ACTORLEDGER_FROZEN_GRACE         -> time a frozen account survives without top-up (default: 1000)

  ACTORLEDGER_GAS_PRICE            -> value units per gas unit (default: 1)
  ACTORLEDGER_ADMISSION_CREDIT     -> free gas for an external message before accept() (default: 10000)
  ACTORLEDGER_MAX_GAS              -> per-transaction gas ceiling (default: 1000000)
  ACTORLEDGER_GAS_CALL_BASE        -> gas charged for entering a handler (default: 100)
  ACTORLEDGER_GAS_PER_ACTION       -> gas charged per buffered action (default: 50)
  ACTORLEDGER_GAS_PER_STATE_BYTE   -> gas charged per byte of re-encoded state (default: 1)
  ACTORLEDGER_FORWARD_FEE          -> flat fee per outgoing message (default: 10)

  ACTORLEDGER_BOUNCE_BUDGET        -> e.g. "32B", "64", "1KiB" (default: 32B)
  ACTORLEDGER_MAX_ACTIONS          -> integer (default: 255)
  ACTORLEDGER_MAX_STATE_BYTES      -> e.g. "64KiB" (default: 64KiB)

Programmatic usage:
    from actorledger.config import get_config, load_config
    cfg = load_config(overrides={"forward_fee": 0})
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, replace
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Union

# ----------------------------- helpers -------------------------------------


_SIZE_RE = re.compile(r"^\s*(\d+)\s*([kKmM]i?[bB]|[bB])?\s*$")

_UNITS = {
    "b": 1,
    "kb": 1000,
    "kib": 1024,
    "mb": 1000**2,
    "mib": 1024**2,
}


def _parse_size_bytes(s: Union[str, int]) -> int:
    """
    Parse human-friendly byte sizes:
      "32B", "1KiB", "64KB", "131072", 131072 -> bytes (int)
    """
    if isinstance(s, int):
        if s < 0:
            raise ValueError("size must be non-negative")
        return s

    m = _SIZE_RE.match(str(s))
    if not m:
        raise ValueError(f"invalid size: {s!r}")
    unit = (m.group(2) or "B").lower()
    return int(m.group(1)) * _UNITS[unit]


def _int_setting(env: Mapping[str, str], overrides: Mapping[str, Any], key: str,
                 env_name: str, default: int) -> int:
    if key in overrides:
        return int(overrides[key])
    raw = env.get(env_name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError as e:
        raise ValueError(f"{env_name} must be an integer, got {raw!r}") from e


# ------------------------------ dataclasses ---------------------------------


@dataclass(frozen=True)
class RentPolicy:
    """
    Storage rent. ``rate(size) = base_rate + byte_rate * size`` per logical
    time unit; rent over ``elapsed`` is ``rate(size) * elapsed``.
    """
    base_rate: int = 1
    byte_rate: int = 0
    frozen_grace: int = 1000

    def rate(self, size: int) -> int:
        return self.base_rate + self.byte_rate * max(0, int(size))

    def rent(self, size: int, elapsed: int) -> int:
        if elapsed <= 0:
            return 0
        return self.rate(size) * int(elapsed)


@dataclass(frozen=True)
class GasSchedule:
    gas_price: int = 1
    admission_credit: int = 10_000
    max_gas: int = 1_000_000
    call_base: int = 100
    per_action: int = 50
    per_state_byte: int = 1
    forward_fee: int = 10

    def fee(self, gas: int) -> int:
        return int(gas) * self.gas_price


@dataclass(frozen=True)
class Limits:
    bounce_body_budget: int = 32
    max_actions: int = 255
    max_state_bytes: int = 64 * 1024


@dataclass(frozen=True)
class EngineConfig:
    rent: RentPolicy = RentPolicy()
    gas: GasSchedule = GasSchedule()
    limits: Limits = Limits()

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Return a copy with flat field overrides (e.g. ``forward_fee=0``)."""
        rent_kw = {k: v for k, v in overrides.items() if k in RentPolicy.__dataclass_fields__}
        gas_kw = {k: v for k, v in overrides.items() if k in GasSchedule.__dataclass_fields__}
        lim_kw = {k: v for k, v in overrides.items() if k in Limits.__dataclass_fields__}
        unknown = set(overrides) - set(rent_kw) - set(gas_kw) - set(lim_kw)
        if unknown:
            raise KeyError(f"unknown config keys: {sorted(unknown)}")
        cfg = EngineConfig(
            rent=replace(self.rent, **rent_kw),
            gas=replace(self.gas, **gas_kw),
            limits=replace(self.limits, **lim_kw),
        )
        return _validate(cfg)


# ------------------------------ loader --------------------------------------


def _validate(cfg: EngineConfig) -> EngineConfig:
    r, g, l = cfg.rent, cfg.gas, cfg.limits
    if r.base_rate < 0 or r.byte_rate < 0:
        raise ValueError("rent rates must be ≥ 0")
    if r.frozen_grace < 0:
        raise ValueError("frozen_grace must be ≥ 0")
    if g.gas_price < 0:
        raise ValueError("gas_price must be ≥ 0")
    if g.max_gas <= 0:
        raise ValueError("max_gas must be > 0")
    if not (0 <= g.admission_credit <= g.max_gas):
        raise ValueError("admission_credit must be in [0, max_gas]")
    for name in ("call_base", "per_action", "per_state_byte", "forward_fee"):
        if getattr(g, name) < 0:
            raise ValueError(f"{name} must be ≥ 0")
    if l.bounce_body_budget < 0:
        raise ValueError("bounce_body_budget must be ≥ 0")
    if l.max_actions <= 0:
        raise ValueError("max_actions must be > 0")
    if l.max_state_bytes <= 0:
        raise ValueError("max_state_bytes must be > 0")
    return cfg


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
) -> EngineConfig:
    """
    Build an EngineConfig from environment and optional overrides.

    Override keys are the flat field names of RentPolicy, GasSchedule and
    Limits (e.g. 'base_rate', 'forward_fee', 'bounce_body_budget').
    """
    env = os.environ if env is None else env
    ov = dict(overrides or {})

    rent = RentPolicy(
        base_rate=_int_setting(env, ov, "base_rate", "ACTORLEDGER_RENT_BASE", 1),
        byte_rate=_int_setting(env, ov, "byte_rate", "ACTORLEDGER_RENT_PER_BYTE", 0),
        frozen_grace=_int_setting(env, ov, "frozen_grace", "ACTORLEDGER_FROZEN_GRACE", 1000),
    )
    gas = GasSchedule(
        gas_price=_int_setting(env, ov, "gas_price", "ACTORLEDGER_GAS_PRICE", 1),
        admission_credit=_int_setting(env, ov, "admission_credit", "ACTORLEDGER_ADMISSION_CREDIT", 10_000),
        max_gas=_int_setting(env, ov, "max_gas", "ACTORLEDGER_MAX_GAS", 1_000_000),
        call_base=_int_setting(env, ov, "call_base", "ACTORLEDGER_GAS_CALL_BASE", 100),
        per_action=_int_setting(env, ov, "per_action", "ACTORLEDGER_GAS_PER_ACTION", 50),
        per_state_byte=_int_setting(env, ov, "per_state_byte", "ACTORLEDGER_GAS_PER_STATE_BYTE", 1),
        forward_fee=_int_setting(env, ov, "forward_fee", "ACTORLEDGER_FORWARD_FEE", 10),
    )
    limits = Limits(
        bounce_body_budget=_parse_size_bytes(
            ov.get("bounce_body_budget", env.get("ACTORLEDGER_BOUNCE_BUDGET", 32))
        ),
        max_actions=_int_setting(env, ov, "max_actions", "ACTORLEDGER_MAX_ACTIONS", 255),
        max_state_bytes=_parse_size_bytes(
            ov.get("max_state_bytes", env.get("ACTORLEDGER_MAX_STATE_BYTES", 64 * 1024))
        ),
    )
    return _validate(EngineConfig(rent=rent, gas=gas, limits=limits))


@lru_cache(maxsize=1)
def get_config() -> EngineConfig:
    """Cached process-wide config."""
    return load_config()


def summary(cfg: Optional[EngineConfig] = None) -> str:
    """One-line summary of the most important engine knobs."""
    cfg = cfg or get_config()
    r, g, l = cfg.rent, cfg.gas, cfg.limits
    return (
        "engine{"
        f"rent={r.base_rate}+{r.byte_rate}/B, grace={r.frozen_grace}, "
        f"gas_price={g.gas_price}, credit={g.admission_credit}, max_gas={g.max_gas}, "
        f"fwd_fee={g.forward_fee}, bounce_budget={l.bounce_body_budget}B, "
        f"max_actions={l.max_actions}"
        "}"
    )


__all__ = [
    "RentPolicy",
    "GasSchedule",
    "Limits",
    "EngineConfig",
    "load_config",
    "get_config",
    "summary",
]
