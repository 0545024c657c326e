"""Workload description: which kernel to run and with what parameter.

A workload is one of two frozen values:

- ``Delay(duration_ms)``: spin every lane until the device cycle counter has
  advanced by ``duration_ms * clock_rate_khz`` cycles (duration-controlled).
- ``Busy(iteration_count)``: apply the lane transform exactly
  ``iteration_count`` times (work-controlled).

Validation happens here, once, before any device interaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

from mps_load.errors import UsageError

# Kernels take the parameter as a signed 32-bit int.
MAX_PARAMETER = 2**31 - 1

DELAY_FLAG = "--delay"
BUSY_FLAG = "--busy"

USAGE = (
    "Usage: mps-load --delay <duration_ms>\n"
    "       mps-load --busy <iteration_count>\n"
    "\n"
    "  --delay  spin each lane for at least <duration_ms> milliseconds of device clock\n"
    "  --busy   apply the lane transform exactly <iteration_count> times\n"
)


def _check_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise UsageError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise UsageError(f"{name} must be a positive integer, got {value}")
    if value > MAX_PARAMETER:
        raise UsageError(f"{name} must not exceed {MAX_PARAMETER}, got {value}")


@dataclass(frozen=True)
class Delay:
    """Duration-controlled load."""
    duration_ms: int

    def __post_init__(self) -> None:
        _check_positive("duration_ms", self.duration_ms)

    @property
    def label(self) -> str:
        return "Delay"

    @property
    def value_text(self) -> str:
        return f"{self.duration_ms} ms"


@dataclass(frozen=True)
class Busy:
    """Work-controlled load."""
    iteration_count: int

    def __post_init__(self) -> None:
        _check_positive("iteration_count", self.iteration_count)

    @property
    def label(self) -> str:
        return "Iterations"

    @property
    def value_text(self) -> str:
        return str(self.iteration_count)


WorkloadSpec = Union[Delay, Busy]

_MODES = {
    DELAY_FLAG: Delay,
    BUSY_FLAG: Busy,
}


def parse_workload(argv: Sequence[str]) -> WorkloadSpec:
    """Build a WorkloadSpec from command-line arguments.

    Args:
        argv: Arguments after the program name; exactly ``[mode, value]``.

    Raises:
        UsageError: wrong argument count, unknown mode, or a parameter that
            is not an integer in ``[1, MAX_PARAMETER]``.
    """
    args = list(argv)
    if len(args) != 2:
        raise UsageError(f"expected 2 arguments, got {len(args)}", args)

    mode, raw_value = args
    factory = _MODES.get(mode)
    if factory is None:
        raise UsageError(f"unknown mode {mode!r}", args)

    try:
        value = int(raw_value.strip(), 10)
    except ValueError:
        raise UsageError(f"{mode} expects an integer, got {raw_value!r}", args) from None

    try:
        return factory(value)
    except UsageError as exc:
        raise UsageError(str(exc), args) from None


def cycle_threshold(duration_ms: int, clock_rate_khz: int) -> int:
    """Convert a wall-clock duration into device clock cycles.

    kHz is cycles per millisecond, so the product is exact.
    """
    if duration_ms <= 0:
        raise ValueError(f"duration_ms must be positive, got {duration_ms}")
    if clock_rate_khz <= 0:
        raise ValueError(f"clock_rate_khz must be positive, got {clock_rate_khz}")
    return int(duration_ms) * int(clock_rate_khz)
