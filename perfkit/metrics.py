"""
Counters, rates and check bookkeeping.

Locust's own statistics only know about requests.  The validator also
needs a business-error counter, a business-error rate and per-check
pass/fail tallies; the small primitives here hold those numbers so a
script can report or assert on them at the end of a run.  The Locust
binding in :mod:`perfkit.locust_support` additionally forwards every
check result as a Locust request event.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Mapping, Protocol


class Counter:
    """A monotonically increasing count."""

    def __init__(self, name: str):
        self.name = name
        self._value = 0
        self._lock = threading.Lock()

    def add(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        return self._value


class Rate:
    """Fraction of recorded samples that were hits."""

    def __init__(self, name: str):
        self.name = name
        self._hits = 0
        self._total = 0
        self._lock = threading.Lock()

    def add(self, hit: bool) -> None:
        with self._lock:
            self._total += 1
            if hit:
                self._hits += 1

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def total(self) -> int:
        return self._total

    @property
    def rate(self) -> float:
        return self._hits / self._total if self._total else 0.0


class CheckRecorder(Protocol):
    """Anything that wants to see individual check results."""

    def record(self, name: str, passed: bool, tags: Mapping[str, str]) -> None: ...


@dataclass
class CheckTally:
    passes: int = 0
    fails: int = 0

    @property
    def total(self) -> int:
        return self.passes + self.fails


class CheckLedger:
    """In-memory :class:`CheckRecorder` that tallies results per check name."""

    def __init__(self) -> None:
        self._tallies: dict[str, CheckTally] = defaultdict(CheckTally)
        self._tags: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def record(self, name: str, passed: bool, tags: Mapping[str, str]) -> None:
        with self._lock:
            tally = self._tallies[name]
            if passed:
                tally.passes += 1
            else:
                tally.fails += 1
            self._tags[name] = dict(tags)

    def tally(self, name: str) -> CheckTally:
        return self._tallies.get(name, CheckTally())

    def tags(self, name: str) -> dict[str, str]:
        return self._tags.get(name, {})

    def names(self) -> list[str]:
        return list(self._tallies)

    def pass_rate(self) -> float:
        """Fraction of all recorded checks that passed."""
        passes = sum(t.passes for t in self._tallies.values())
        total = sum(t.total for t in self._tallies.values())
        return passes / total if total else 0.0
