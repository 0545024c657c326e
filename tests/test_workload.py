"""Tests for workload parsing, validation and the cycle threshold."""

import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from mps_load.errors import UsageError
from mps_load.workload import (
    MAX_PARAMETER,
    Busy,
    Delay,
    cycle_threshold,
    parse_workload,
)


def test_parse_delay_and_busy():
    assert parse_workload(["--delay", "250"]) == Delay(250)
    assert parse_workload(["--busy", "1000"]) == Busy(1000)


def test_parse_accepts_surrounding_whitespace_and_plus_sign():
    assert parse_workload(["--busy", " 7 "]) == Busy(7)
    assert parse_workload(["--delay", "+3"]) == Delay(3)


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["--delay"],
        ["--delay", "10", "extra"],
        ["--delay", "10", "--busy", "10"],
    ],
)
def test_parse_rejects_wrong_argument_count(argv):
    with pytest.raises(UsageError, match="expected 2 arguments"):
        parse_workload(argv)


@pytest.mark.parametrize("mode", ["--sleep", "delay", "-d", "--DELAY", ""])
def test_parse_rejects_unknown_mode(mode):
    with pytest.raises(UsageError, match="unknown mode"):
        parse_workload([mode, "10"])


@pytest.mark.parametrize("value", ["abc", "1.5", "", "0x10", "1e3"])
def test_parse_rejects_non_integer(value):
    with pytest.raises(UsageError, match="expects an integer"):
        parse_workload(["--busy", value])


@pytest.mark.parametrize("value", ["0", "-1", "-2147483648"])
def test_parse_rejects_non_positive(value):
    with pytest.raises(UsageError, match="positive"):
        parse_workload(["--delay", value])


def test_parse_rejects_values_that_would_wrap():
    # 2**32 - 1 reads as -1 in a signed 32-bit int; must not slip through.
    with pytest.raises(UsageError, match="must not exceed"):
        parse_workload(["--busy", str(2**32 - 1)])
    assert parse_workload(["--busy", str(MAX_PARAMETER)]) == Busy(MAX_PARAMETER)


def test_usage_error_keeps_argv():
    with pytest.raises(UsageError) as excinfo:
        parse_workload(["--busy", "-4"])
    assert excinfo.value.argv == ["--busy", "-4"]


def test_specs_are_immutable_and_validated():
    spec = Busy(3)
    with pytest.raises(AttributeError):
        spec.iteration_count = 4  # type: ignore[misc]
    with pytest.raises(UsageError):
        Delay(0)
    with pytest.raises(UsageError):
        Busy(True)  # type: ignore[arg-type]


def test_labels():
    assert (Delay(5).label, Delay(5).value_text) == ("Delay", "5 ms")
    assert (Busy(9).label, Busy(9).value_text) == ("Iterations", "9")


@pytest.mark.parametrize(
    "duration_ms,clock_khz",
    [(1, 1), (100, 1_410_000), (60_000, 2_100_000), (MAX_PARAMETER, 3_000_000)],
)
def test_cycle_threshold_is_product(duration_ms, clock_khz):
    assert cycle_threshold(duration_ms, clock_khz) == duration_ms * clock_khz


def test_cycle_threshold_rejects_non_positive():
    with pytest.raises(ValueError):
        cycle_threshold(0, 1_000)
    with pytest.raises(ValueError):
        cycle_threshold(10, 0)
