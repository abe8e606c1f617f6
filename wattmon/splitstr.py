"""Split a delimited line into trimmed fields."""

from __future__ import annotations

from typing import List


def split_fields(line: str, sep: str = ",", end: str = "\0") -> List[str]:
    """Split ``line`` up to ``end`` on ``sep`` and trim spaces from each field.

    The default end character stands for the end of the string. If ``end``
    does not occur in ``line`` there are no fields.
    """
    stop = line.find(end)
    if stop < 0:
        if end != "\0":
            return []
        stop = len(line)
    return [field.strip(" ") for field in line[:stop].split(sep)]