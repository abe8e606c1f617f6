"""Running per-channel averages and sampling statistics."""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

MS_PER_HOUR = 3600000
DAMPING = 0.75
RATE_DAMPING = 0.25
HEAP_PERIOD_LIMIT_MS = 300000
_MASK32 = 0xFFFFFFFF


def _ratio(numerator: float, denominator: float) -> float:
    if denominator:
        return numerator / denominator
    if numerator == 0:
        return math.nan
    return math.copysign(math.inf, numerator)


class StatService:
    """Turns accumulating bucket totals into damped per-hour rates.

    ``accum1`` and ``accum2`` hold the current rate for each channel. A
    rate that moves by more than 2% replaces the average outright;
    smaller moves are damped.
    """

    def __init__(self) -> None:
        self.accum1: List[float] = []
        self.accum2: List[float] = []
        self.cycle_sample_rate = 0.0
        self.heap_ms = 0.0
        self.heap_ms_period = 0
        self._then_ms: Optional[int] = None
        self._then: List[Tuple[float, float]] = []

    def update(
        self,
        now_ms: int,
        buckets: Iterable[Sequence[float]],
        cycle_samples: int,
        free_heap: int,
    ) -> bool:
        """Fold in the bucket totals at ``now_ms``.

        The first call only records the starting totals and returns False;
        later calls update the statistics and return True.
        """
        totals = [(float(pair[0]), float(pair[1])) for pair in buckets]
        if self._then_ms is None:
            self._then_ms = now_ms
            self._then = totals
            self.accum1 = [0.0] * len(totals)
            self.accum2 = [0.0] * len(totals)
            return False

        if len(totals) != len(self._then):
            raise ValueError("number of channels changed")
        elapsed_ms = (now_ms - self._then_ms) & _MASK32
        if elapsed_ms == 0:
            raise ValueError("no time has elapsed")
        hours = elapsed_ms / MS_PER_HOUR

        for index, ((a1, a2), (t1, t2)) in enumerate(zip(totals, self._then)):
            rate1 = (a1 - t1) / hours
            ratio = _ratio(rate1, self.accum1[index])
            damping = 0.0 if (ratio < 0.98 or ratio > 1.02) else DAMPING
            self.accum1[index] = damping * self.accum1[index] + (1.0 - damping) * rate1
            rate2 = (a2 - t2) / hours
            self.accum2[index] = damping * self.accum2[index] + (1.0 - damping) * rate2
        self._then = totals

        self.cycle_sample_rate = (
            RATE_DAMPING * self.cycle_sample_rate
            + (1.0 - RATE_DAMPING) * cycle_samples * 1000 / elapsed_ms
        )
        if self.heap_ms_period > HEAP_PERIOD_LIMIT_MS:
            self.heap_ms = 0.0
            self.heap_ms_period = 0
        self.heap_ms += free_heap * elapsed_ms
        self.heap_ms_period += elapsed_ms
        self._then_ms = now_ms
        return True