"""Dot-path lookup into decoded JSON (``data.items[0].id``)."""

from __future__ import annotations

import re
from typing import Any

_SEGMENT = re.compile(r"^(?P<name>[^\[\]]*)(?P<indexes>(?:\[\d+\])*)$")
_INDEX = re.compile(r"\[(\d+)\]")


def split_path(path: str) -> list[str | int]:
    """
    Break *path* into dictionary keys and list indexes.

    ``"a.b[0][2].c"`` becomes ``["a", "b", 0, 2, "c"]``.  Purely numeric
    segments (``"items.0"``) are kept as strings and resolved against
    lists at lookup time.

    Raises:
        ValueError: If a segment is malformed (unbalanced brackets).
    """
    steps: list[str | int] = []
    for segment in path.split("."):
        match = _SEGMENT.match(segment)
        if match is None:
            raise ValueError(f"Malformed path segment {segment!r} in {path!r}")
        if match.group("name"):
            steps.append(match.group("name"))
        steps.extend(int(index) for index in _INDEX.findall(match.group("indexes")))
    return steps


def resolve(data: Any, path: str | None, default: Any = None) -> Any:
    """
    Return the value at *path* inside *data*, or *default*.

    An empty path returns *data* itself.  Missing keys, out-of-range
    indexes and lookups through scalars all yield *default*; an explicit
    JSON ``null`` at the end of the path yields *default* as well.
    """
    if not path:
        return data

    value = data
    for step in split_path(path):
        if isinstance(step, int) or (isinstance(value, list) and step.isdigit()):
            index = int(step)
            if not isinstance(value, list) or index >= len(value):
                return default
            value = value[index]
        elif isinstance(value, dict):
            if step not in value:
                return default
            value = value[step]
        else:
            return default

    return default if value is None else value
