"""
actorledger.scheduler — draining the message bus.

Two schedulers share one contract: repeatedly lease deliverable bus entries,
execute them, and commit each outcome (account record, outgoing messages and
the ack) in a single batch.

- SerialScheduler   : one message at a time, lowest bus sequence first. Fully
                      deterministic; the default.
- ParallelScheduler : each round leases at most one message per destination
                      account, executes the round on a thread pool (each
                      transaction works on its own account copy), then commits
                      the outcomes in lease order. Accounts never share
                      mutable memory, so no locking is needed beyond the
                      store's commit lock.
"""

from __future__ import annotations

import concurrent.futures as _futures
from typing import TYPE_CHECKING, List, Optional

from .logging import get_logger
from .types.result import TransactionResult

if TYPE_CHECKING:  # pragma: no cover
    from .engine import Engine

log = get_logger("actorledger.scheduler")


class SerialScheduler:
    def run(self, engine: "Engine", *, max_steps: Optional[int] = None) -> List[TransactionResult]:
        results: List[TransactionResult] = []
        while max_steps is None or len(results) < max_steps:
            r = engine.step()
            if r is None:
                break
            results.append(r)
        return results


class ParallelScheduler:
    """
    Parameters
    ----------
    workers : int
        Thread pool size.
    max_round : int | None
        Cap on messages leased per round (defaults to `workers`).
    """

    def __init__(self, workers: int = 4, *, max_round: Optional[int] = None) -> None:
        if workers <= 0:
            raise ValueError("workers must be > 0")
        self.workers = int(workers)
        self.max_round = int(max_round or workers)

    def run(self, engine: "Engine", *, max_steps: Optional[int] = None) -> List[TransactionResult]:
        results: List[TransactionResult] = []
        with _futures.ThreadPoolExecutor(max_workers=self.workers,
                                         thread_name_prefix="actorledger") as pool:
            while max_steps is None or len(results) < max_steps:
                budget = self.max_round
                if max_steps is not None:
                    budget = min(budget, max_steps - len(results))
                batch = self.run_round(engine, pool, limit=budget)
                if not batch:
                    break
                results.extend(batch)
        return results

    def run_round(self, engine: "Engine", pool: _futures.Executor, *, limit: int) -> List[TransactionResult]:
        leased = []
        busy: set = set()
        while len(leased) < limit:
            entry = engine.bus.poll(exclude=busy)
            if entry is None:
                break
            busy.add(entry.destination)
            leased.append(entry)
        if not leased:
            return []

        now = engine.clock.now()
        jobs = []
        for entry in leased:
            account = engine.store.get(entry.destination)
            lt = engine.next_lt()
            jobs.append(pool.submit(engine.executor.execute, account, entry.message, now=now, lt=lt))
        log.debug("round leased", extra={"count": len(leased)})

        results: List[TransactionResult] = []
        for i, (entry, job) in enumerate(zip(leased, jobs)):
            try:
                outcome = job.result()
            except BaseException:
                for rest in leased[i:]:
                    engine.bus.nack(rest)
                raise
            results.append(engine.commit_outcome(outcome, entry))
        return results


__all__ = ["SerialScheduler", "ParallelScheduler"]
