from datetime import timedelta

import pytest

from gluon.utils.duration import format_duration, parse_duration


@pytest.mark.parametrize(
    "text, seconds",
    [("30s", 30), ("2m", 120), ("1m30s", 90), ("1h", 3600), ("500ms", 0.5), ("45", 45), (" 10s ", 10)],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == timedelta(seconds=seconds)


def test_parse_duration_passes_numbers_and_timedeltas():
    assert parse_duration(5) == timedelta(seconds=5)
    assert parse_duration(timedelta(minutes=1)) == timedelta(minutes=1)


@pytest.mark.parametrize("text", ["", "soon", "10x", "s10"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_format_duration():
    assert format_duration(timedelta(seconds=30)) == "30s"
    assert format_duration(timedelta(minutes=2)) == "2m"
    assert format_duration(timedelta(seconds=1.5)) == "1.5s"


@pytest.mark.parametrize("value", ["-5", "-1m", -5, timedelta(seconds=-1)])
def test_parse_duration_rejects_negative(value):
    with pytest.raises(ValueError, match="negative"):
        parse_duration(value)
