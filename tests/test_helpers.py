import pytest

from exam_session.utils.exceptions import InvariantViolation
from exam_session.utils.helpers import check_invariant, clamp, format_time, time_band


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0:00"), (59, "0:59"), (61, "1:01"), (3599, "59:59"), (3600, "1:00:00"), (7265, "2:01:05"), (-4, "0:00")],
)
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


@pytest.mark.parametrize(
    "seconds, band",
    [(0, "critical"), (299, "critical"), (300, "warning"), (899, "warning"), (900, "normal")],
)
def test_time_band(seconds, band):
    assert time_band(seconds) == band


def test_check_invariant_lenient_continues():
    assert check_invariant(True, "fine", strict=True) is True
    assert check_invariant(False, "cursor out of range", strict=False) is False


def test_check_invariant_strict_raises():
    with pytest.raises(InvariantViolation, match="cursor"):
        check_invariant(False, "cursor out of range", strict=True)


def test_clamp():
    assert clamp(-1, 0, 2) == 0
    assert clamp(5, 0, 2) == 2
    assert clamp(1, 0, 2) == 1
