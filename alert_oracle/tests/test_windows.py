from __future__ import annotations

import pytest

from alert_oracle.cases import ZeroForSmallFor
from alert_oracle.cases.zero_for_small_for import INACTIVE, SF_FIRING, SF_PENDING, ZF_FIRING, ZF_FIRING_AGAIN
from alert_oracle.errors import DefinitionError
from alert_oracle.windows import Window, WindowClassifier, between, phase_windows


def test_between_is_half_open() -> None:
    assert between(40_000)(40, 50)
    assert not between(39_999)(40, 50)
    assert between(49_999)(40, 50)
    assert not between(50_000)(40, 50)


def test_window_requires_positive_width() -> None:
    with pytest.raises(DefinitionError):
        Window(5, 5)


def test_classifier_requires_windows() -> None:
    with pytest.raises(DefinitionError):
        WindowClassifier({})
    with pytest.raises(DefinitionError):
        WindowClassifier({"empty": []})


@pytest.mark.parametrize(
    "elapsed_ms, expected",
    [
        (0, {INACTIVE}),
        (38_999, {INACTIVE}),
        (39_000, {INACTIVE, ZF_FIRING, SF_PENDING}),
        (49_999, {INACTIVE, ZF_FIRING, SF_PENDING}),
        (50_000, {ZF_FIRING, SF_PENDING, SF_FIRING}),
        (60_000, {ZF_FIRING, SF_FIRING}),
        (104_000, {INACTIVE, ZF_FIRING, SF_FIRING}),
        (115_000, {INACTIVE}),
        (464_000, {INACTIVE, ZF_FIRING_AGAIN}),
        (475_000, {ZF_FIRING_AGAIN}),
        (530_000, {INACTIVE, ZF_FIRING_AGAIN}),
        (540_000, {INACTIVE}),
        (1_200_000, set()),
    ],
)
def test_zero_for_small_for_scenarios(elapsed_ms: int, expected: set) -> None:
    assert ZeroForSmallFor().classifier.states(elapsed_ms) == frozenset(expected)


def test_every_window_includes_its_lower_bound_and_excludes_its_upper_bound() -> None:
    classifier = ZeroForSmallFor().classifier
    for scenario in classifier.scenarios:
        windows = classifier.windows(scenario)
        for window in windows:
            start_ms = int(window.start_s * 1000)
            end_ms = int(window.end_s * 1000)
            assert scenario in classifier.states(start_ms)
            assert scenario in classifier.states(end_ms - 1)
            covered_elsewhere = any(other.contains(end_ms) for other in windows if other is not window)
            assert (scenario in classifier.states(end_ms)) == covered_elsewhere
            if start_ms > 0:
                before = any(other.contains(start_ms - 1) for other in windows if other is not window)
                assert (scenario in classifier.states(start_ms - 1)) == before


def test_boundaries_are_sorted_unique_edges() -> None:
    classifier = WindowClassifier({"a": [Window(0, 10), Window(20, 30)], "b": [Window(10, 20)]})
    assert list(classifier.boundaries()) == [0, 10, 20, 30]
    assert classifier.states(10_000) == frozenset({"b"})


def test_phase_windows_overlap_around_each_transition() -> None:
    windows = phase_windows([90, 210, 330], 1540, 10)
    assert windows == [Window(0, 100), Window(89, 220), Window(209, 340), Window(329, 1540)]


@pytest.mark.parametrize("transitions, horizon", [([90, 90], 200), ([120, 90], 200), ([90, 210], 210)])
def test_phase_windows_reject_unordered_transitions(transitions, horizon) -> None:
    with pytest.raises(DefinitionError):
        phase_windows(transitions, horizon, 10)
