"""Compact sample-timeline notation used by the test cases.

A timeline is written as a list of tokens, e.g.::

    sample_slice(5 * SECOND, "3", "5", "0x2", "9")

A plain number appends one sample with that value. ``<delta>x<count>``
appends ``count`` samples, each one ``delta`` above the previous sample, so
``"0x2"`` repeats the previous value twice. Sample ``n`` is stamped
``n * interval`` relative to the (not yet known) zero time.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from alert_oracle.errors import DefinitionError


@dataclass(frozen=True)
class Sample:
    """A single metric sample at a timestamp (milliseconds)."""

    timestamp: int
    value: float


@dataclass(frozen=True)
class TimeSeries:
    """Chronological samples of one labeled series."""

    labels: Dict[str, str]
    samples: Sequence[Sample] = field(default_factory=tuple)

    def latest_at(self, timestamp: int) -> Optional[Sample]:
        """Return the most recent sample at or before ``timestamp``."""

        for sample in reversed(self.samples):
            if sample.timestamp <= timestamp:
                return sample
        return None

    def value_at(self, timestamp: int) -> Optional[float]:
        sample = self.latest_at(timestamp)
        if sample is None:
            return None
        return sample.value

    def shifted(self, zero_time: int) -> "TimeSeries":
        return TimeSeries(
            labels=dict(self.labels),
            samples=tuple(Sample(timestamp=s.timestamp + zero_time, value=s.value) for s in self.samples),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "labels": dict(self.labels),
            "samples": [[sample.timestamp, sample.value] for sample in self.samples],
        }


def _parse_number(token: str, raw: str) -> float:
    try:
        value = float(token)
    except ValueError as exc:
        raise DefinitionError(f"invalid sample value {raw!r}") from exc
    if math.isnan(value) or math.isinf(value):
        raise DefinitionError(f"sample value must be finite: {raw!r}")
    return value


def _parse_count(token: str, raw: str) -> int:
    try:
        count = int(token)
    except ValueError as exc:
        raise DefinitionError(f"invalid repeat count in {raw!r}") from exc
    if count <= 0:
        raise DefinitionError(f"repeat count must be positive in {raw!r}")
    return count


def expand_values(*tokens: str) -> List[float]:
    values: List[float] = []
    for raw in tokens:
        token = raw.strip()
        if "x" in token:
            delta_str, _, count_str = token.partition("x")
            delta = _parse_number(delta_str, raw)
            count = _parse_count(count_str, raw)
            if not values:
                raise DefinitionError(f"repeat token {raw!r} has no previous value to extend")
            for _ in range(count):
                values.append(values[-1] + delta)
        else:
            values.append(_parse_number(token, raw))
    return values


def sample_slice(interval_ms: int, *tokens: str) -> List[Sample]:
    if interval_ms <= 0:
        raise DefinitionError(f"sample interval must be positive, got {interval_ms}")
    return [
        Sample(timestamp=index * interval_ms, value=value)
        for index, value in enumerate(expand_values(*tokens))
    ]


def format_value(value: float) -> str:
    """Shortest string for ``value``, integral values without a fraction."""

    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)
