"""Load-generating CUDA kernels compiled at runtime with NVRTC.

Both kernels map one lane to one element index and apply the same cheap
nonlinear transform, ``x -> sinf(x) + 1``, to a per-lane accumulator that
feeds the final store, so the loop cannot be eliminated by the compiler.

- ``delay_kernel`` spins until ``clock64()`` has advanced by a cycle
  threshold derived from the device clock rate (duration-controlled).
- ``busy_kernel`` applies the transform a fixed number of times
  (work-controlled; output is a pure function of input and count).

Lanes whose index is at or beyond ``n`` return without touching memory, so
any launch geometry covering ``n`` lanes is valid.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple

import torch
from cuda.bindings import driver as cuda_driver
from cuda.bindings import nvrtc

from mps_load.device import DeviceInfo, check
from mps_load.errors import DeviceError
from mps_load.logger import get_logger

logger = get_logger(__name__)

DELAY_KERNEL = "delay_kernel"
BUSY_KERNEL = "busy_kernel"

KERNEL_SOURCE = r'''
__device__ __forceinline__ float lane_transform(float x)
{
    return sinf(x) + 1.0f;
}

extern "C" __global__ void delay_kernel(
    const float* __restrict__ input,
    float* __restrict__ output,
    int n,
    long long threshold_cycles
) {
    long long idx = (long long)blockIdx.x * blockDim.x + threadIdx.x;
    if (idx >= n) return;

    long long t0 = clock64();
    float acc = input[idx];
    do {
        acc = lane_transform(acc);
    } while (clock64() - t0 < threshold_cycles);

    output[idx] = acc;
}

extern "C" __global__ void busy_kernel(
    const float* __restrict__ input,
    float* __restrict__ output,
    int n,
    int iterations
) {
    long long idx = (long long)blockIdx.x * blockDim.x + threadIdx.x;
    if (idx >= n) return;

    float acc = input[idx];
    for (int i = 0; i < iterations; ++i) {
        acc = lane_transform(acc);
    }

    output[idx] = acc;
}
'''

# Loaded modules keyed by (context, arch, options); a module dies with its context.
_MODULES: Dict[Tuple[int, str, Tuple[str, ...]], "LoadedKernels"] = {}


@dataclass(frozen=True)
class LoadedKernels:
    module: Any
    delay: Any
    busy: Any


def _nvrtc_check(result: Tuple[Any, ...], operation: str, program: Any = None) -> Any:
    status, *values = result
    if status != nvrtc.nvrtcResult.NVRTC_SUCCESS:
        detail = _program_log(program) if program is not None else None
        raise DeviceError(
            f"{operation} failed: {status}",
            operation=operation,
            status=status,
            detail=detail,
        )
    return values[0] if len(values) == 1 else (tuple(values) or None)


def _program_log(program: Any) -> str:
    err, log_size = nvrtc.nvrtcGetProgramLogSize(program)
    if err != nvrtc.nvrtcResult.NVRTC_SUCCESS or log_size <= 1:
        return ""
    log = b" " * log_size
    nvrtc.nvrtcGetProgramLog(program, log)
    return log.rstrip(b"\x00").decode(errors="replace")


def compile_ptx(arch: str, extra_options: Iterable[str] = ()) -> bytes:
    """Compile KERNEL_SOURCE to PTX for a virtual architecture.

    Args:
        arch: Real architecture name from DeviceInfo.arch (``sm_XY``); the
            matching ``compute_XY`` target is used so the driver JITs the PTX.
        extra_options: Additional NVRTC flags.

    Raises:
        DeviceError: compilation failed; ``detail`` carries the NVRTC log.
    """
    virtual_arch = arch.replace("sm_", "compute_", 1)
    program = _nvrtc_check(
        nvrtc.nvrtcCreateProgram(KERNEL_SOURCE.encode(), b"mps_load_kernels.cu", 0, [], []),
        "nvrtcCreateProgram",
    )
    try:
        opts = [f"--gpu-architecture={virtual_arch}".encode()]
        opts.extend(opt.encode() for opt in extra_options)
        _nvrtc_check(nvrtc.nvrtcCompileProgram(program, len(opts), opts), "nvrtcCompileProgram", program)

        ptx_size = _nvrtc_check(nvrtc.nvrtcGetPTXSize(program), "nvrtcGetPTXSize")
        ptx = b" " * ptx_size
        _nvrtc_check(nvrtc.nvrtcGetPTX(program, ptx), "nvrtcGetPTX")
    finally:
        nvrtc.nvrtcDestroyProgram(program)
    logger.debug("Compiled %d bytes of PTX for %s", len(ptx), virtual_arch)
    return ptx


def _context_key() -> int:
    context = check(cuda_driver.cuCtxGetCurrent(), "cuCtxGetCurrent")
    return int(context)


def load_kernels(device: DeviceInfo, extra_options: Iterable[str] = ()) -> LoadedKernels:
    """Compile and load both kernels into the current context, once per context."""
    options = tuple(extra_options)
    key = (_context_key(), device.arch, options)
    cached = _MODULES.get(key)
    if cached is not None:
        return cached

    ptx = compile_ptx(device.arch, options)
    module = check(cuda_driver.cuModuleLoadData(ptx), "cuModuleLoadData")
    kernels = LoadedKernels(
        module=module,
        delay=check(cuda_driver.cuModuleGetFunction(module, DELAY_KERNEL.encode()), "cuModuleGetFunction"),
        busy=check(cuda_driver.cuModuleGetFunction(module, BUSY_KERNEL.encode()), "cuModuleGetFunction"),
    )
    _MODULES[key] = kernels
    return kernels


def unload_kernels() -> None:
    """Unload every cached module; called before the owning context is released."""
    while _MODULES:
        key, kernels = _MODULES.popitem()
        check(cuda_driver.cuModuleUnload(kernels.module), "cuModuleUnload")
        logger.debug("Unloaded kernels for context %#x (%s)", key[0], key[1])


def reference_transform(values: torch.Tensor, iterations: int) -> torch.Tensor:
    """Host-side float32 replay of busy_kernel for verification.

    Loops in Python once per iteration, so keep ``iterations`` small.
    """
    acc = values.detach().to(device="cpu", dtype=torch.float32).clone()
    for _ in range(iterations):
        acc = torch.sin(acc) + 1.0
    return acc
