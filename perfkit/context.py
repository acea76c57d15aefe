"""
Execution-context boundary.

Each logical run (one virtual-user iteration) has a worker identity,
a positive integer, and a per-worker sequence number that starts at
zero.  perfkit reads these values but never assigns them; in a Locust
script :mod:`perfkit.locust_support` does the bookkeeping.

Fatal per-run conditions go through an *abort* callable.  The default
simply raises the error; the Locust binding additionally stops the
runner.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, NoReturn

from perfkit.errors import RunAborted

Abort = Callable[[RunAborted], NoReturn]


@dataclass(frozen=True)
class RunContext:
    """Identity of one logical run."""

    worker_id: int
    sequence: int

    def __post_init__(self) -> None:
        if self.worker_id < 1:
            raise ValueError(f"worker_id must be >= 1, got {self.worker_id}")
        if self.sequence < 0:
            raise ValueError(f"sequence must be >= 0, got {self.sequence}")

    def next(self) -> RunContext:
        """Return the context of the same worker's following run."""
        return RunContext(self.worker_id, self.sequence + 1)


def raise_abort(error: RunAborted) -> NoReturn:
    """Default abort boundary: propagate the error to the caller."""
    raise error
