"""Map elapsed test time onto the set of scenarios that may be observed.

The engine evaluates a rule group periodically, so the oracle cannot know on
which side of a sample boundary a given evaluation landed. Each scenario is
therefore valid over one or more half-open windows widened by an evaluation
interval, and adjacent scenarios are allowed to overlap near boundaries. The
comparators accept an observation that matches any scenario valid at that
instant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Sequence, Tuple

from alert_oracle.errors import DefinitionError

logger = logging.getLogger(__name__)


def between(elapsed_ms: int) -> Callable[[float, float], bool]:
    """Predicate for ``elapsed_ms`` falling in ``[start_s, end_s)`` (seconds)."""

    def _between(start_s: float, end_s: float) -> bool:
        return start_s * 1000 <= elapsed_ms < end_s * 1000

    return _between


@dataclass(frozen=True)
class Window:
    start_s: float
    end_s: float

    def __post_init__(self) -> None:
        if self.end_s <= self.start_s:
            raise DefinitionError(f"empty window [{self.start_s}, {self.end_s})")

    def contains(self, elapsed_ms: int) -> bool:
        return between(elapsed_ms)(self.start_s, self.end_s)


class WindowClassifier:
    def __init__(self, scenarios: Mapping[str, Sequence[Window]]):
        if not scenarios:
            raise DefinitionError("classifier needs at least one scenario")
        self._scenarios: Dict[str, Tuple[Window, ...]] = {}
        for name, windows in scenarios.items():
            if not windows:
                raise DefinitionError(f"scenario {name} has no windows")
            self._scenarios[name] = tuple(windows)

    @property
    def scenarios(self) -> Sequence[str]:
        return list(self._scenarios)

    def windows(self, scenario: str) -> Tuple[Window, ...]:
        return self._scenarios[scenario]

    def states(self, elapsed_ms: int) -> FrozenSet[str]:
        active = frozenset(
            name
            for name, windows in self._scenarios.items()
            if any(window.contains(elapsed_ms) for window in windows)
        )
        logger.debug("t=%dms scenarios=%s", elapsed_ms, "/".join(sorted(active)) or "-")
        return active

    def boundaries(self) -> Iterable[float]:
        """All window edges in seconds, sorted, for boundary testing."""

        edges = {edge for windows in self._scenarios.values() for w in windows for edge in (w.start_s, w.end_s)}
        return sorted(edges)


def phase_windows(transitions_s: Sequence[float], horizon_s: float, slack_s: float) -> List[Window]:
    """One window per phase of a case that moves through phases in order.

    ``transitions_s`` are the nominal instants at which each phase hands over
    to the next. The evaluation that observes a transition may land up to
    ``slack_s`` later, so a phase stays valid until ``slack_s`` past its end
    and, like every window, opens one second before its nominal start.
    """

    edges = list(transitions_s)
    if any(later <= earlier for earlier, later in zip(edges, edges[1:])):
        raise DefinitionError(f"phase transitions must increase strictly: {edges}")
    if edges and horizon_s <= edges[-1]:
        raise DefinitionError(f"horizon {horizon_s} ends before the last transition {edges[-1]}")
    starts = [0.0] + [edge - 1 for edge in edges]
    ends = [edge + slack_s for edge in edges] + [horizon_s]
    return [Window(start, end) for start, end in zip(starts, ends)]
