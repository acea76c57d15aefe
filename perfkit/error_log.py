"""
Failure records and the end-of-run error summary.

:class:`ErrorLog` is an explicit accumulator owned by the load-test
script: every ``log_*`` call appends an immutable :class:`ErrorRecord`
and writes a boxed block to the log so the failure is visible while the
test runs.  At the end, :meth:`ErrorLog.summarize` groups the records by
operation.

Usage::

    errors = ErrorLog()

    if res.status_code != 201:
        errors.log_error("Create_User", res, {"email": row["email"]}, run=run)

    @events.test_stop.add_listener
    def _report(environment, **_kwargs):
        print(errors.summarize())
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from perfkit.config import get_config
from perfkit.context import RunContext
from perfkit.responses import body_preview, status_of

logger = logging.getLogger(__name__)

_RULE = "═" * 64


class ErrorKind(str, Enum):
    API_ERROR = "API_ERROR"
    CORRELATION_FAILURE = "CORRELATION_FAILURE"
    VALIDATION_FAILURE = "VALIDATION_FAILURE"


@dataclass(frozen=True)
class ErrorRecord:
    """One logged failure."""

    timestamp: str
    operation: str
    kind: ErrorKind
    status_code: int | None = None
    response_body: str = "N/A"
    input_data: str | None = None
    context: str = ""
    message: str = ""
    missing: tuple[str, ...] = ()
    worker_id: int | None = None
    sequence: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["missing"] = list(self.missing)
        return data


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialise_input(input_data: Any) -> str | None:
    if input_data is None:
        return None
    try:
        return json.dumps(input_data, default=str)
    except (TypeError, ValueError):
        return repr(input_data)


def _box(title: str, lines: Iterable[tuple[str, Any]]) -> str:
    rows = [f"╔{_RULE}", f"║ {title}", f"╠{_RULE}"]
    rows.extend(f"║ {label + ':':<14}{value}" for label, value in lines)
    rows.append(f"╚{_RULE}")
    return "\n".join(rows)


class ErrorLog:
    """
    Run-scoped collection of :class:`ErrorRecord` objects.

    None of the ``log_*`` methods raise; a failure while reporting a
    failure must not break the virtual user.
    """

    def __init__(self) -> None:
        self._records: list[ErrorRecord] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log_error(
        self,
        operation: str,
        response: Any,
        input_data: Any = None,
        context: str = "",
        run: RunContext | None = None,
    ) -> ErrorRecord:
        """Record a failed API call with its status, body and input."""
        record = ErrorRecord(
            timestamp=_now(),
            operation=operation,
            kind=ErrorKind.API_ERROR,
            status_code=status_of(response),
            response_body=body_preview(response),
            input_data=_serialise_input(input_data),
            context=context,
            worker_id=run.worker_id if run else None,
            sequence=run.sequence if run else None,
        )
        lines: list[tuple[str, Any]] = [
            ("Time", record.timestamp),
            ("Worker", _or_na(record.worker_id)),
            ("Sequence", _or_na(record.sequence)),
            ("Status", _or_na(record.status_code)),
            ("Response", record.response_body),
        ]
        if record.input_data:
            lines.append(("Input", record.input_data))
        if context:
            lines.append(("Context", context))
        return self._append(record, _box(f"ERROR: {operation}", lines))

    def log_correlation_failure(
        self,
        operation: str,
        missing: Iterable[str],
        input_data: Any = None,
        run: RunContext | None = None,
    ) -> ErrorRecord:
        """Record an operation skipped because correlated values were missing."""
        missing = tuple(missing)
        record = ErrorRecord(
            timestamp=_now(),
            operation=operation,
            kind=ErrorKind.CORRELATION_FAILURE,
            input_data=_serialise_input(input_data),
            missing=missing,
            worker_id=run.worker_id if run else None,
            sequence=run.sequence if run else None,
        )
        lines: list[tuple[str, Any]] = [
            ("Time", record.timestamp),
            ("Worker", _or_na(record.worker_id)),
            ("Sequence", _or_na(record.sequence)),
            ("Missing", ", ".join(missing)),
        ]
        if record.input_data:
            lines.append(("Input", record.input_data))
        return self._append(record, _box(f"CORRELATION FAILURE: {operation}", lines))

    def log_validation_failure(
        self,
        operation: str,
        message: str,
        response: Any,
        run: RunContext | None = None,
    ) -> ErrorRecord:
        """Record a response that failed a validation."""
        record = ErrorRecord(
            timestamp=_now(),
            operation=operation,
            kind=ErrorKind.VALIDATION_FAILURE,
            status_code=status_of(response),
            response_body=body_preview(response),
            message=message,
            worker_id=run.worker_id if run else None,
            sequence=run.sequence if run else None,
        )
        lines: list[tuple[str, Any]] = [
            ("Time", record.timestamp),
            ("Worker", _or_na(record.worker_id)),
            ("Sequence", _or_na(record.sequence)),
            ("Failure", message),
            ("Status", _or_na(record.status_code)),
            ("Response", record.response_body),
        ]
        return self._append(record, _box(f"VALIDATION FAILURE: {operation}", lines))

    def _append(self, record: ErrorRecord, block: str) -> ErrorRecord:
        with self._lock:
            self._records.append(record)
        logger.error("\n%s", block)
        return record

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def records(self) -> tuple[ErrorRecord, ...]:
        return tuple(self._records)

    @property
    def count(self) -> int:
        return len(self._records)

    def for_operation(self, operation: str) -> list[ErrorRecord]:
        return [record for record in self._records if record.operation == operation]

    def clear(self) -> None:
        """Forget every record, e.g. between test phases."""
        with self._lock:
            self._records.clear()

    def to_dicts(self) -> list[dict[str, Any]]:
        """Return every record as a JSON-serialisable dict."""
        return [record.to_dict() for record in self._records]

    def summarize(self, sample_size: int | None = None) -> str:
        """
        Format the records grouped by operation.

        Each operation shows its error count and its first *sample_size*
        records, followed by the number of records left out.
        """
        if sample_size is None:
            sample_size = get_config().SUMMARY_SAMPLE_SIZE
        if not self._records:
            return "No errors logged"

        grouped: dict[str, list[ErrorRecord]] = defaultdict(list)
        for record in self._records:
            grouped[record.operation].append(record)

        lines = ["=" * 80, f"ERROR SUMMARY ({len(self._records)} total errors)", "=" * 80, ""]
        for operation, records in grouped.items():
            lines.append(f"{operation}: {len(records)} errors")
            for record in records[:sample_size]:
                status = record.status_code if record.status_code is not None else record.kind.value
                lines.append(
                    f"  [{record.timestamp}] Status: {status}, "
                    f"Worker: {_or_na(record.worker_id)}, Sequence: {_or_na(record.sequence)}"
                )
                if record.input_data:
                    lines.append(f"    Input: {record.input_data}")
            if len(records) > sample_size:
                lines.append(f"  ... and {len(records) - sample_size} more errors")
            lines.append("")

        return "\n".join(lines)


def _or_na(value: Any) -> Any:
    return "N/A" if value is None else value
