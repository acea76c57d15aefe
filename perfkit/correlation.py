"""
Correlation of values between the steps of one run.

A CRUD flow creates a resource, then reads, updates and deletes it by
the identifier the server returned.  :class:`CorrelationStore` pulls
such values out of a JSON response and keeps them for the later steps::

    store.clear()                       # start of every run
    store.extract(create_res, "data.id", "objectId")
    url = store.build_url("/objects/{objectId}")

The store is scoped to a single run.  Its storage lives as long as the
object does, so the caller must :meth:`~CorrelationStore.clear` it at the
start of each run; otherwise values leak from one run into the next.

Key Concepts Demonstrated:
- Dot/index path extraction (``items[0].id``) from decoded JSON
- Fail-fast checks before dependent calls
- URL templating that refuses to build a partial URL
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from perfkit import jsonpath
from perfkit.context import Abort, raise_abort
from perfkit.errors import CorrelationMissing
from perfkit.responses import body_preview, decode_json, status_of

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


@dataclass(frozen=True)
class CorrelationEntry:
    """A stored value with where and when it came from."""

    value: Any
    source: str
    extracted_at: float


class CorrelationStore:
    """Key/value store for values correlated across the steps of one run."""

    def __init__(self) -> None:
        self._entries: dict[str, CorrelationEntry] = {}

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def extract(
        self,
        response: Any,
        path: str,
        key: str,
        *,
        required: bool = True,
        default: Any = None,
        log_extraction: bool = True,
    ) -> Any:
        """
        Extract the value at *path* from a JSON response and store it.

        Args:
            response: HTTP response whose body is JSON.
            path: Dot path such as ``"data.items[0].id"``.
            key: Name to store the value under.
            required: Log a missing value as an error (with the response
                status and body) instead of a warning.
            default: Value used when the path does not resolve.
            log_extraction: Log successful and optional extractions.

        Returns:
            The extracted value, or *default*.
        """
        value = self._resolve(response, path, default)

        if value is None:
            message = "[CORRELATION] Failed to extract '%s' from path '%s'"
            if required:
                logger.error(message, key, path)
                logger.error("[CORRELATION] Response status: %s", status_of(response))
                logger.error("[CORRELATION] Response body: %s", body_preview(response))
            elif log_extraction:
                logger.warning(message + " (optional)", key, path)
        elif log_extraction:
            logger.info("[CORRELATION] Stored '%s' = %s", key, value)

        self._entries[key] = CorrelationEntry(value=value, source=path, extracted_at=time.time())
        return value

    @staticmethod
    def _resolve(response: Any, path: str, default: Any) -> Any:
        if response is None:
            return default
        try:
            data = decode_json(response)
        except ValueError:
            return default
        try:
            return jsonpath.resolve(data, path, default)
        except ValueError as exc:
            logger.error("[CORRELATION] Error extracting '%s': %s", path, exc)
            return default

    def extract_multiple(
        self,
        response: Any,
        mappings: Mapping[str, str],
        all_required: bool = True,
    ) -> dict[str, Any]:
        """
        Apply :meth:`extract` for each ``key: path`` pair in *mappings*.

        The returned dict always has every key; failures are reported in
        the log only.
        """
        result: dict[str, Any] = {}
        for key, path in mappings.items():
            result[key] = self.extract(
                response, path, key, required=all_required, log_extraction=False
            )

        if all_required and any(value is None for value in result.values()):
            logger.error("[CORRELATION] Failed to extract all required values")
        return result

    def store(self, key: str, value: Any) -> None:
        """Store a value obtained some other way than extraction."""
        self._entries[key] = CorrelationEntry(value=value, source="manual", extracted_at=time.time())

    def discard(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry.  Call at the start of each run."""
        self._entries.clear()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or entry.value is None:
            return default
        return entry.value

    def exists(self, key: str) -> bool:
        """Return ``True`` if a non-``None`` value is stored under *key*."""
        entry = self._entries.get(key)
        return entry is not None and entry.value is not None

    def validate_required(
        self,
        keys: Iterable[str],
        *,
        abort_on_missing: bool = False,
        log_missing: bool = True,
        abort: Abort = raise_abort,
    ) -> bool:
        """
        Check that every key in *keys* holds a value.

        When some are missing the set is logged and, if
        *abort_on_missing*, *abort* receives a
        :class:`~perfkit.errors.CorrelationMissing`.
        """
        missing = [key for key in keys if not self.exists(key)]
        if not missing:
            return True

        if log_missing:
            logger.error("[CORRELATION] Missing required correlations: %s", ", ".join(missing))
            logger.error(
                "[CORRELATION] Available correlations: %s",
                ", ".join(self._entries) or "none",
            )
        if abort_on_missing:
            abort(CorrelationMissing(f"Missing required correlations: {', '.join(missing)}"))
        return False

    def build_url(self, template: str, mapping: Mapping[str, str] | None = None) -> str | None:
        """
        Fill ``{placeholder}`` segments of *template* from stored values.

        Args:
            template: URL such as ``"/users/{userId}/orders/{orderId}"``.
            mapping: ``placeholder -> correlation key``.  When omitted each
                placeholder is looked up under its own name.

        Returns:
            The URL, or ``None`` if any value is missing.
        """
        if mapping is None:
            mapping = {name: name for name in _PLACEHOLDER.findall(template)}

        url = template
        for placeholder, key in mapping.items():
            value = self.get(key)
            if value is None:
                logger.error(
                    "[CORRELATION] Cannot build URL: missing correlation '%s' for placeholder '{%s}'",
                    key,
                    placeholder,
                )
                return None
            url = url.replace("{" + placeholder + "}", str(value))
        return url

    def as_dict(self) -> dict[str, Any]:
        """Return ``key -> value`` for every entry."""
        return {key: entry.value for key, entry in self._entries.items()}

    def stats(self) -> dict[str, Any]:
        return {
            "total_correlations": len(self._entries),
            "correlation_keys": list(self._entries),
            "correlations": self.as_dict(),
        }

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.exists(key)

    def __len__(self) -> int:
        return len(self._entries)
