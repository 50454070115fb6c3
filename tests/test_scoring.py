import pytest

from app.features.grading.engine import apply_late_penalty


@pytest.mark.parametrize(
    "raw, late, expected",
    [
        (20, False, 20),
        (20, True, 12),
        (35, True, 21),
        (10, True, 6),
        (7, True, 5),
        (1, True, 1),
        (0, True, 0),
    ],
)
def test_apply_late_penalty(raw, late, expected):
    assert apply_late_penalty(raw, late) == expected


def test_late_penalty_never_exceeds_raw():
    for raw in range(0, 200):
        assert apply_late_penalty(raw, True) <= raw


def test_custom_multiplier():
    assert apply_late_penalty(10, True, 0.5) == 5
    assert apply_late_penalty(9, True, 0.5) == 5


def test_engine_uses_configured_multiplier(engine, settings):
    settings.late_penalty_multiplier = 0.5
    assert engine.apply_late_penalty(10, True) == 5
    assert engine.apply_late_penalty(10, False) == 10
