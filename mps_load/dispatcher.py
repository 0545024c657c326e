"""Host-side orchestration: allocate, transfer, launch, wait, measure.

One call to run() is one load-generating kernel launch. Host control is
synchronous and strictly ordered (H2D copy, launch, blocking wait, D2H copy);
the only parallelism is across lanes inside the kernel.

Any failed driver call raises DeviceError and the run yields no output.
Device buffers are freed only on the success path; on failure the process
boundary exits and the driver reclaims them.
"""

from __future__ import annotations

import ctypes
import time
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import torch
from cuda.bindings import driver as cuda_driver

from mps_load.defaults import get_defaults
from mps_load.device import DeviceInfo, check
from mps_load.kernels import LoadedKernels, load_kernels
from mps_load.logger import get_logger
from mps_load.workload import Busy, Delay, WorkloadSpec, cycle_threshold

logger = get_logger(__name__)

_FLOAT_BYTES = 4
_MAX_GRID_X = 2**31 - 1


def _now() -> float:
    return time.perf_counter()


@dataclass(frozen=True)
class TimingResult:
    """Host-observed wall time around launch and synchronize, in seconds."""
    start: float
    end: float
    elapsed: float

    @classmethod
    def from_bounds(cls, start: float, end: float) -> "TimingResult":
        return cls(start=start, end=end, elapsed=end - start)

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000.0


@dataclass(frozen=True)
class RunResult:
    spec: WorkloadSpec
    num_elements: int
    grid: int
    block: int
    timing: TimingResult
    output: torch.Tensor


def launch_geometry(
    num_elements: int,
    block_size: int,
    grid_size: Optional[int] = None,
) -> Tuple[int, int]:
    """Return ``(grid, block)`` covering at least ``num_elements`` lanes.

    ``grid_size`` may oversubscribe (excess lanes are no-ops) but may not
    undersize the launch.
    """
    if num_elements <= 0:
        raise ValueError(f"num_elements must be positive, got {num_elements}")
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")
    needed = -(-num_elements // block_size)
    grid = needed if grid_size is None else int(grid_size)
    if grid < needed:
        raise ValueError(
            f"grid_size {grid} x block_size {block_size} covers fewer than {num_elements} lanes"
        )
    if grid > _MAX_GRID_X:
        raise ValueError(f"grid_size {grid} exceeds the device limit {_MAX_GRID_X}")
    return grid, block_size


def kernel_launch_args(
    spec: WorkloadSpec,
    kernels: LoadedKernels,
    device: DeviceInfo,
    d_input: Any,
    d_output: Any,
    num_elements: int,
) -> Tuple[Any, Tuple[Tuple[Any, ...], Tuple[Any, ...]]]:
    """Select the kernel for ``spec`` and pack its cuLaunchKernel parameters."""
    if isinstance(spec, Delay):
        threshold = cycle_threshold(spec.duration_ms, device.clock_rate_khz)
        logger.debug("Delay %d ms -> %d cycles at %d kHz", spec.duration_ms, threshold, device.clock_rate_khz)
        params = (
            (d_input, d_output, num_elements, threshold),
            (None, None, ctypes.c_int, ctypes.c_longlong),
        )
        return kernels.delay, params
    if isinstance(spec, Busy):
        params = (
            (d_input, d_output, num_elements, spec.iteration_count),
            (None, None, ctypes.c_int, ctypes.c_int),
        )
        return kernels.busy, params
    raise TypeError(f"unsupported workload: {spec!r}")


def run(
    spec: WorkloadSpec,
    num_elements: int,
    device: DeviceInfo,
    *,
    block_size: Optional[int] = None,
    grid_size: Optional[int] = None,
) -> RunResult:
    """Run one load-generating kernel end to end and time it.

    Args:
        spec: Validated workload (Delay or Busy).
        num_elements: Number of lanes with data (N).
        device: DeviceInfo from device.initialize(); its context must be current.
        block_size: Threads per block (defaults to LoadDefaults.block_size).
        grid_size: Blocks per grid (defaults to ceil(N / block)).

    Raises:
        DeviceError: any driver call failed.
    """
    defaults = get_defaults()
    block_size = block_size if block_size is not None else defaults.block_size
    grid_size = grid_size if grid_size is not None else defaults.grid_size
    grid, block = launch_geometry(num_elements, block_size, grid_size)
    kernels = load_kernels(device, defaults.nvrtc_options)

    host_input = torch.arange(num_elements, dtype=torch.float32)
    host_output = torch.zeros(num_elements, dtype=torch.float32)
    nbytes = num_elements * _FLOAT_BYTES

    d_input = check(cuda_driver.cuMemAlloc(nbytes), "cuMemAlloc")
    d_output = check(cuda_driver.cuMemAlloc(nbytes), "cuMemAlloc")
    logger.debug("Allocated 2 x %d bytes on device %d", nbytes, device.index)
    check(cuda_driver.cuMemcpyHtoD(d_input, host_input.data_ptr(), nbytes), "cuMemcpyHtoD")

    function, params = kernel_launch_args(spec, kernels, device, d_input, d_output, num_elements)
    nvtx = torch.cuda.nvtx.range(f"mps_load_{type(spec).__name__.lower()}") if defaults.enable_nvtx else nullcontext()

    logger.debug("Launching %s with grid=%d block=%d", type(spec).__name__, grid, block)
    with nvtx:
        start = _now()
        check(
            cuda_driver.cuLaunchKernel(
                function,
                grid, 1, 1,
                block, 1, 1,
                0,  # shared memory
                cuda_driver.CUstream(0),
                params,
                0,
            ),
            "cuLaunchKernel",
        )
        check(cuda_driver.cuCtxSynchronize(), "cuCtxSynchronize")
        end = _now()
    timing = TimingResult.from_bounds(start, end)

    check(cuda_driver.cuMemcpyDtoH(host_output.data_ptr(), d_output, nbytes), "cuMemcpyDtoH")
    check(cuda_driver.cuMemFree(d_input), "cuMemFree")
    check(cuda_driver.cuMemFree(d_output), "cuMemFree")
    logger.debug("Run finished in %.3f ms", timing.elapsed_ms)

    return RunResult(
        spec=spec,
        num_elements=num_elements,
        grid=grid,
        block=block,
        timing=timing,
        output=host_output,
    )
