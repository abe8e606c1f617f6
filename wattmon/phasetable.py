"""Look up the phase-shift arrays of the configured input models."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from wattmon.setconfig import InputChannel

P50_KEY = '"p50":'
P60_KEY = '"p60":'
_ENTRY_END = "}"
_MAX_ARRAY_TEXT = 100
_FLOAT = re.compile(r"[ \t\n\v\f\r]*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class PhaseArrays:
    """Phase-shift steps of one model at 50 Hz and 60 Hz.

    Values are in hundredths of a degree. An array that the table does not
    give is None. A zero value ends an array, so none is ever stored.
    """

    p50: Optional[Tuple[int, ...]] = None
    p60: Optional[Tuple[int, ...]] = None


def _find_until(text: str, start: int, target: str) -> Optional[int]:
    """Position just after ``target``, unless the model entry ends first."""
    found = text.find(target, start)
    if found < 0:
        return None
    after = found + len(target)
    closing = text.find(_ENTRY_END, start)
    if 0 <= closing < after - 1:
        return None
    return after


def _parse_values(body: str) -> Tuple[int, ...]:
    values: List[int] = []
    pos = 0
    while pos < len(body):
        match = _FLOAT.match(body, pos)
        if match:
            number = float(match.group())
            pos = match.end()
        else:
            number = 0.0
        values.append(int(number * 100 + 0.5))
        comma = body.find(",", pos)
        if comma < 0:
            break
        pos = comma + 1
    if 0 in values:
        values = values[: values.index(0)]
    return tuple(values)


def _copy_array(text: str, start: int) -> Optional[Tuple[int, ...]]:
    opening = text.find("[", start)
    if opening < 0:
        return None
    closing = text.find("]", opening + 1)
    body = text[opening + 1 : closing if closing >= 0 else len(text)]
    return _parse_values(body[:_MAX_ARRAY_TEXT])


def _lookup(table_text: str, model: str) -> PhaseArrays:
    found = table_text.find(model)
    if found < 0:
        return PhaseArrays()
    after = found + len(model)
    arrays = {}
    for name, key in (("p50", P50_KEY), ("p60", P60_KEY)):
        position = _find_until(table_text, after, key)
        arrays[name] = None if position is None else _copy_array(table_text, position)
    return PhaseArrays(**arrays)


def build_phase_arrays(
    table_text: str, channels: Sequence[InputChannel]
) -> List[PhaseArrays]:
    """Phase arrays for each channel, in channel order.

    Each distinct model of the active channels is looked up once in the
    tables text; channels of the same model share one result. Inactive
    channels and models missing from the table get empty arrays.
    """
    by_model: Dict[str, PhaseArrays] = {}
    for channel in channels:
        if channel.active and channel.model not in by_model:
            by_model[channel.model] = _lookup(table_text, channel.model)
    return [
        by_model[channel.model] if channel.active else PhaseArrays()
        for channel in channels
    ]