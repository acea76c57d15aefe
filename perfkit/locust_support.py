"""
Locust binding for perfkit.

perfkit itself knows nothing about Locust: it reads a
:class:`~perfkit.context.RunContext`, calls an abort callable and reports
checks to a :class:`~perfkit.metrics.CheckRecorder`.  This module
provides those three boundaries for a Locust test:

- :class:`PerfUser` gives every virtual user a worker id and hands out a
  fresh :class:`RunContext` for each run.
- :func:`locust_abort` stops the whole test and the current user; on a
  distributed worker it messages the master, which quits every worker.
- :class:`LocustCheckRecorder` reports each check as a Locust request
  event so pass/fail counts show up in Locust's statistics and CSVs.

Key Concepts Demonstrated:
- Abstract Locust base classes (``abstract = True``) for DRY scenarios
- ``events.request.fire`` for custom, non-HTTP statistics
- ``events.init`` plus custom runner messages for worker-to-master signals
- Worker ids that stay unique across distributed Locust processes
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Mapping, NoReturn

from locust import HttpUser, events
from locust.exception import StopUser
from locust.runners import MasterRunner, WorkerRunner

from perfkit.config import get_config
from perfkit.context import Abort, RunContext
from perfkit.errors import RunAborted

logger = logging.getLogger(__name__)

CHECK_REQUEST_TYPE = "CHECK"

# Custom runner message a worker sends to the master to end the test.
ABORT_MESSAGE = "perfkit_abort"


class CheckFailed(Exception):
    """Exception attached to a failed check event."""


class LocustCheckRecorder:
    """:class:`~perfkit.metrics.CheckRecorder` that fires Locust request events."""

    def __init__(self, environment: Any):
        self.environment = environment

    def record(self, name: str, passed: bool, tags: Mapping[str, str]) -> None:
        self.environment.events.request.fire(
            request_type=CHECK_REQUEST_TYPE,
            name=name,
            response_time=0,
            response_length=0,
            exception=None if passed else CheckFailed(name),
            context=dict(tags),
        )


def locust_abort(environment: Any) -> Abort:
    """
    Build an abort boundary that ends the whole Locust test.

    The returned callable logs the reason and raises ``StopUser`` so the
    calling user stops immediately.  A local or master runner is asked to
    quit directly.  A distributed worker cannot end the test by quitting
    (the master would hand its users to the other workers), so it sends
    :data:`ABORT_MESSAGE` and the master, set up by
    :func:`register_abort_handler`, quits everything.
    """

    def abort(error: RunAborted) -> NoReturn:
        logger.error("Aborting test: %s", error.reason)
        runner = getattr(environment, "runner", None)
        if isinstance(runner, WorkerRunner):
            runner.send_message(ABORT_MESSAGE, error.reason)
        elif runner is not None:
            runner.quit()
        raise StopUser(error.reason) from error

    return abort


def _on_abort_message(environment: Any, msg: Any, **_kwargs: Any) -> None:
    logger.error("Worker aborted the test: %s", msg.data)
    environment.runner.quit()


def register_abort_handler(environment: Any) -> None:
    """Let the master runner quit the test when a worker sends an abort."""
    runner = getattr(environment, "runner", None)
    if isinstance(runner, MasterRunner):
        runner.register_message(ABORT_MESSAGE, _on_abort_message)


@events.init.add_listener
def _on_locust_init(environment: Any, **_kwargs: Any) -> None:
    register_abort_handler(environment)


class WorkerIdAllocator:
    """
    Hands out worker ids starting at 1.

    In distributed mode each Locust worker process counts on its own, so
    ids are offset by ``worker_index * users_per_process`` to keep them
    unique across processes.
    """

    def __init__(self, users_per_process: int | None = None):
        self.users_per_process = users_per_process or get_config().USERS_PER_PROCESS
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next_id(self, environment: Any = None) -> int:
        with self._lock:
            local_id = next(self._counter)
        if local_id > self.users_per_process:
            logger.warning(
                "Worker id %d exceeds %d users per process; ids may overlap across processes",
                local_id,
                self.users_per_process,
            )
        runner = getattr(environment, "runner", None)
        worker_index = getattr(runner, "worker_index", None)
        if isinstance(worker_index, int) and worker_index > 0:
            return worker_index * self.users_per_process + local_id
        return local_id


worker_ids = WorkerIdAllocator()


class PerfUser(HttpUser):
    """
    Base user that tracks its worker id and run sequence.

    Subclasses call :meth:`begin_run` at the top of each task to get the
    :class:`RunContext` for that run.  ``abstract = True`` tells Locust not
    to spawn this class directly.

    Attributes:
        worker_id: Identity assigned in ``on_start``.
        sequence: Number of the current run, ``-1`` before the first.
    """

    abstract = True

    worker_id: int
    sequence: int

    def on_start(self) -> None:
        """Reserve a worker id for this virtual user."""
        self.worker_id = worker_ids.next_id(self.environment)
        self.sequence = -1

    def begin_run(self) -> RunContext:
        """Advance the sequence and return the context of the new run."""
        self.sequence += 1
        return RunContext(self.worker_id, self.sequence)

    @property
    def abort(self) -> Abort:
        return locust_abort(self.environment)

    @property
    def check_recorder(self) -> LocustCheckRecorder:
        return LocustCheckRecorder(self.environment)
