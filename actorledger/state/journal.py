"""
actorledger.state.journal — checkpointed writes over one account.

A transaction never mutates its working `Account` directly while account code
runs. Writes go to the top overlay of a stack of checkpoints; reads consult
overlays from top → base. `commit()` merges the top overlay into its parent,
or into the base account when it is the last one; `revert()` discards it.

The executor opens one checkpoint for compute and a nested one for the action
phase. Everything that must roll back together lives here: mutable state,
code, lifecycle changes from activation, action-phase balance debits and the
replay-guard watermark set by `accept()`. Rent and the inbound value credit
are applied to the base account before the first checkpoint, so no revert
reaches them.

    j = Journal(account)
    j.begin()
    j.set("state", blob)
    j.set("last_accepted_timestamp", ts)
    j.revert()            # both writes gone
"""

from __future__ import annotations

from typing import Any, Dict, List

from .accounts import Account

JOURNALED_FIELDS = frozenset(
    {
        "balance",
        "lifecycle",
        "code",
        "immutable_data",
        "state",
        "last_accepted_timestamp",
        "frozen_since",
        "code_hash",
        "data_hash",
    }
)


class Journal:
    """
    Copy-on-write field journal with nested checkpoints.

    API
    ---
    - begin() / commit() / revert()
    - checkpoint() / commit_to(marker) / revert_to(marker)
    - get(field), set(field, value), view()
    """

    def __init__(self, base: Account) -> None:
        self._base = base
        self._layers: List[Dict[str, Any]] = []

    @property
    def base(self) -> Account:
        return self._base

    # ------------------------------------------------------------------ #
    # Checkpointing
    # ------------------------------------------------------------------ #

    def depth(self) -> int:
        return len(self._layers)

    def begin(self) -> int:
        self._layers.append({})
        return len(self._layers)

    def commit(self) -> None:
        if not self._layers:
            raise RuntimeError("no open checkpoint")
        top = self._layers.pop()
        if self._layers:
            self._layers[-1].update(top)
        else:
            for name, value in top.items():
                setattr(self._base, name, value)

    def revert(self) -> None:
        if not self._layers:
            raise RuntimeError("no open checkpoint")
        self._layers.pop()

    def checkpoint(self) -> int:
        return self.begin()

    def commit_to(self, marker: int) -> None:
        """Commit until depth == marker - 1 (i.e. including checkpoint `marker`)."""
        while len(self._layers) >= marker and self._layers:
            self.commit()

    def revert_to(self, marker: int) -> None:
        """Revert checkpoint `marker` and everything opened after it."""
        while len(self._layers) >= marker and self._layers:
            self.revert()

    # ------------------------------------------------------------------ #
    # Field access
    # ------------------------------------------------------------------ #

    def get(self, name: str) -> Any:
        for layer in reversed(self._layers):
            if name in layer:
                return layer[name]
        return getattr(self._base, name)

    def set(self, name: str, value: Any) -> None:
        if name not in JOURNALED_FIELDS:
            raise KeyError(f"field {name!r} is not journaled")
        if not self._layers:
            raise RuntimeError("writes need an open checkpoint")
        self._layers[-1][name] = value

    def view(self) -> Account:
        """Detached copy of the account as currently seen through all overlays."""
        acc = self._base.copy()
        for layer in self._layers:
            for name, value in layer.items():
                setattr(acc, name, value)
        return acc


__all__ = ["Journal", "JOURNALED_FIELDS"]
