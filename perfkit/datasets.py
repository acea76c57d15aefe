"""
CSV-backed test data with per-run unique allocation.

Data-driven load tests often need every iteration to use a different
record: a user that may log in only once, an order number that must not
repeat.  This module loads a CSV file once at startup into an immutable
:class:`Dataset` and maps each ``(worker_id, sequence)`` pair to its own
row::

    index = (worker_id - 1) * max_rows_per_worker + sequence

Because the mapping is injective for ``sequence < max_rows_per_worker``,
no two concurrent runs ever receive the same row.  Runs that would step
past that bound are treated as exhaustion rather than silently reusing
another worker's rows.

Key Concepts Demonstrated:
- Load-once, read-only data that every worker can share without locks
- Deterministic allocation instead of a shared, mutable cursor
- Abort-or-skip behaviour selected by the caller
"""

from __future__ import annotations

import csv
import logging
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

from perfkit.config import get_config
from perfkit.context import Abort, raise_abort
from perfkit.errors import DataExhausted, DataLoadError

logger = logging.getLogger(__name__)

# Only the first few parse problems are logged per file.
_MAX_PARSE_WARNINGS = 3

_REPLACEMENT = "\ufffd"


@dataclass(frozen=True)
class Dataset:
    """An ordered, read-only collection of CSV rows."""

    name: str
    rows: tuple[Mapping[str, str], ...] = ()
    source: str = ""
    loaded_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Mapping[str, str]]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> Mapping[str, str]:
        return self.rows[index]


@dataclass(frozen=True)
class SchemaReport:
    """Outcome of :func:`validate_schema`."""

    valid: bool
    total_records: int = 0
    fields: tuple[str, ...] = ()
    missing_fields: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class DataUsage:
    """How a dataset divides across workers."""

    total_records: int
    worker_count: int
    records_per_worker: int
    remainder: int

    @property
    def max_runs_per_worker(self) -> int:
        return self.records_per_worker


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------


def load_csv(
    name: str,
    source: Path | str,
    *,
    header: bool = True,
    delimiter: str = ",",
    skip_empty_lines: bool = True,
    required: bool = True,
) -> Dataset:
    """
    Parse a CSV file into a :class:`Dataset`.

    Args:
        name: Label used in logs and in :class:`DataCatalog`.
        source: Path of the CSV file.
        header: Whether the first row holds field names.  Without a header
            fields are keyed by column position (``"0"``, ``"1"``, ...).
        delimiter: Field separator.
        skip_empty_lines: Drop lines that contain no data.
        required: Raise when the file cannot be read; otherwise log a
            warning and return an empty dataset.

    Raises:
        DataLoadError: If *required* and the source cannot be opened.
    """
    path = Path(source)
    logger.info("[DATA] Loading CSV: %s from %s", name, path)

    try:
        # utf-8-sig drops the BOM Excel writes; undecodable bytes become U+FFFD.
        with path.open("r", encoding="utf-8-sig", errors="replace", newline="") as handle:
            rows = _parse(name, handle, header=header, delimiter=delimiter,
                          skip_empty_lines=skip_empty_lines)
    except OSError as exc:
        if required:
            raise DataLoadError(f"Failed to load required CSV file: {path} - {exc}") from exc
        logger.warning("[DATA] Optional CSV file not found: %s", path)
        return Dataset(name=name, source=str(path))

    logger.info("[DATA] Loaded %d records from %s", len(rows), name)
    return Dataset(name=name, rows=tuple(rows), source=str(path))


def _parse(
    name: str,
    lines: Iterable[str],
    *,
    header: bool,
    delimiter: str,
    skip_empty_lines: bool,
) -> list[dict[str, str]]:
    reader = csv.reader(lines, delimiter=delimiter)
    fieldnames: list[str] | None = None
    rows: list[dict[str, str]] = []
    warnings: list[str] = []

    try:
        for raw in reader:
            if skip_empty_lines and not any(cell.strip() for cell in raw):
                continue
            if header and fieldnames is None:
                fieldnames = [cell.strip() for cell in raw]
                continue

            if any(_REPLACEMENT in cell for cell in raw):
                warnings.append(f"line {reader.line_num}: invalid UTF-8 bytes replaced")

            keys = fieldnames or [str(i) for i in range(len(raw))]
            if fieldnames is not None and len(raw) != len(fieldnames):
                warnings.append(
                    f"line {reader.line_num}: expected {len(fieldnames)} fields, got {len(raw)}"
                )
            rows.append({key: (raw[i] if i < len(raw) else "") for i, key in enumerate(keys)})
    except csv.Error as exc:
        # Keep what was parsed before the bad line.
        warnings.append(f"line {reader.line_num}: {exc}")

    if warnings:
        logger.warning(
            "[DATA] CSV parsing warnings for %s: %s",
            name,
            "; ".join(warnings[:_MAX_PARSE_WARNINGS]),
        )
    return rows


class DataCatalog:
    """
    Registry of the datasets a script has loaded.

    Keeps the per-dataset metadata needed for an end-of-run report.
    """

    def __init__(self) -> None:
        self._datasets: dict[str, Dataset] = {}

    def load(self, name: str, source: Path | str, **options: Any) -> Dataset:
        """Load *source* with :func:`load_csv` and register it under *name*."""
        dataset = load_csv(name, source, **options)
        self._datasets[name] = dataset
        return dataset

    def get(self, name: str) -> Dataset | None:
        return self._datasets.get(name)

    def stats(self, name: str) -> dict[str, Any] | None:
        dataset = self._datasets.get(name)
        if dataset is None:
            return None
        return {
            "name": name,
            "total_records": len(dataset),
            "source": dataset.source,
            "loaded_at": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(dataset.loaded_at)),
        }

    def describe(self) -> dict[str, dict[str, Any]]:
        return {
            name: {"total_records": len(dataset), "source": dataset.source}
            for name, dataset in self._datasets.items()
        }


# ----------------------------------------------------------------------
# Allocation
# ----------------------------------------------------------------------


def allocation_index(worker_id: int, sequence: int, max_rows_per_worker: int | None = None) -> int:
    """Return the row index reserved for run *sequence* of *worker_id*."""
    if max_rows_per_worker is None:
        max_rows_per_worker = get_config().MAX_ROWS_PER_WORKER
    if worker_id < 1:
        raise ValueError(f"worker_id must be >= 1, got {worker_id}")
    if sequence < 0:
        raise ValueError(f"sequence must be >= 0, got {sequence}")
    return (worker_id - 1) * max_rows_per_worker + sequence


def get_unique(
    dataset: Sequence[Mapping[str, str]] | None,
    worker_id: int,
    sequence: int,
    *,
    abort_on_exhaustion: bool = True,
    log_exhaustion: bool = True,
    max_rows_per_worker: int | None = None,
    abort: Abort = raise_abort,
) -> Mapping[str, str] | None:
    """
    Return the row reserved for this ``(worker_id, sequence)`` pair.

    Args:
        dataset: Rows to allocate from.
        worker_id: Worker identity, starting at 1.
        sequence: The worker's run number, starting at 0.
        abort_on_exhaustion: Invoke *abort* when no row is available;
            otherwise return ``None``.
        log_exhaustion: Log the exhaustion event.
        max_rows_per_worker: Assumed upper bound on runs per worker.
        abort: Abort boundary that receives a :class:`DataExhausted`.

    Returns:
        The row, or ``None`` when exhausted and not aborting.
    """
    if max_rows_per_worker is None:
        max_rows_per_worker = get_config().MAX_ROWS_PER_WORKER

    if not dataset:
        return _exhausted(
            "CSV data array is empty",
            "[DATA] Data array is empty",
            abort_on_exhaustion=abort_on_exhaustion,
            log_exhaustion=log_exhaustion,
            abort=abort,
        )

    index = allocation_index(worker_id, sequence, max_rows_per_worker)
    if sequence >= max_rows_per_worker:
        return _exhausted(
            f"Worker {worker_id} exceeded {max_rows_per_worker} runs per worker",
            f"[DATA] Worker {worker_id}, sequence {sequence}, index {index} is past the "
            f"{max_rows_per_worker} rows reserved per worker",
            abort_on_exhaustion=abort_on_exhaustion,
            log_exhaustion=log_exhaustion,
            abort=abort,
        )

    if index >= len(dataset):
        return _exhausted(
            f"CSV data exhausted at worker {worker_id}, sequence {sequence}",
            f"[DATA] Data exhausted! Worker {worker_id}, sequence {sequence}, "
            f"index {index} exceeds {len(dataset)} records",
            abort_on_exhaustion=abort_on_exhaustion,
            log_exhaustion=log_exhaustion,
            abort=abort,
        )

    return dataset[index]


def _exhausted(
    reason: str,
    message: str,
    *,
    abort_on_exhaustion: bool,
    log_exhaustion: bool,
    abort: Abort,
) -> None:
    if log_exhaustion:
        logger.error(message)
    if abort_on_exhaustion:
        abort(DataExhausted(reason))
    return None


def get_by_index(dataset: Sequence[Mapping[str, str]] | None, index: int) -> Mapping[str, str] | None:
    """Return ``dataset[index]`` or ``None`` when out of range."""
    if not dataset or index < 0 or index >= len(dataset):
        return None
    return dataset[index]


def get_random(
    dataset: Sequence[Mapping[str, str]] | None,
    rng: random.Random | None = None,
) -> Mapping[str, str] | None:
    """Return a uniformly chosen row, or ``None`` for an empty dataset."""
    if not dataset:
        return None
    return (rng or random).choice(dataset)


# ----------------------------------------------------------------------
# Capacity and schema checks
# ----------------------------------------------------------------------


def check_sufficiency(
    dataset: Sequence[Mapping[str, str]] | None,
    worker_count: int,
    runs_per_worker: int,
) -> bool:
    """Return ``True`` if the dataset covers every planned run; log the numbers."""
    required = worker_count * runs_per_worker
    available = len(dataset) if dataset else 0

    logger.info(
        "[DATA] Capacity check: %d records available, %d required (%d workers x %d runs)",
        available,
        required,
        worker_count,
        runs_per_worker,
    )
    if available < required:
        logger.warning("[DATA] Insufficient data! Need %d more records", required - available)
        return False

    logger.info("[DATA] Sufficient data available")
    return True


def validate_schema(
    dataset: Sequence[Mapping[str, str]] | None,
    required_fields: Iterable[str],
) -> SchemaReport:
    """
    Check that the first row carries every field in *required_fields*.

    Later rows are not inspected.
    """
    if not dataset:
        return SchemaReport(valid=False, error="Dataset is empty")

    first = dataset[0]
    missing = tuple(name for name in required_fields if name not in first)
    if missing:
        return SchemaReport(
            valid=False,
            total_records=len(dataset),
            fields=tuple(first),
            missing_fields=missing,
            error=f"Missing required fields: {', '.join(missing)}",
        )

    return SchemaReport(valid=True, total_records=len(dataset), fields=tuple(first))


def calculate_usage(total_records: int, worker_count: int) -> DataUsage:
    """Split *total_records* evenly across *worker_count* workers."""
    if worker_count < 1:
        raise ValueError("worker_count must be >= 1")
    per_worker, remainder = divmod(total_records, worker_count)
    return DataUsage(
        total_records=total_records,
        worker_count=worker_count,
        records_per_worker=per_worker,
        remainder=remainder,
    )
