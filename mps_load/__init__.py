"""mps-load: controlled GPU compute load for multi-process scheduler studies."""

from mps_load.errors import DeviceError, LoadGenError, UsageError
from mps_load.workload import Busy, Delay, WorkloadSpec, cycle_threshold, parse_workload

__version__ = "0.1.0"

__all__ = [
    "Busy",
    "Delay",
    "DeviceError",
    "LoadGenError",
    "UsageError",
    "WorkloadSpec",
    "cycle_threshold",
    "parse_workload",
]
