"""Device context: accelerator identity and clock rate via the CUDA driver API.

This module is fail-fast: every driver call is checked and a failure raises
DeviceError. There is no recoverable path because nothing else is meaningful
without the clock rate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Tuple

from cuda.bindings import driver as cuda_driver

from mps_load.errors import DeviceError
from mps_load.logger import get_logger

logger = get_logger(__name__)

_NAME_BUFFER_BYTES = 256


def _error_name(status: Any) -> str:
    err, text = cuda_driver.cuGetErrorString(status)
    if err == cuda_driver.CUresult.CUDA_SUCCESS and text:
        return text.decode(errors="replace") if isinstance(text, bytes) else str(text)
    return str(status)


def check(result: Tuple[Any, ...], operation: str) -> Any:
    """Unpack a cuda.bindings driver call result, raising on failure.

    Driver bindings return ``(CUresult, *values)``. Returns None, the single
    value, or the tuple of values.
    """
    status, *values = result
    if status != cuda_driver.CUresult.CUDA_SUCCESS:
        raise DeviceError(
            f"{operation} failed: {_error_name(status)}",
            operation=operation,
            status=status,
        )
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return tuple(values)


@dataclass(frozen=True)
class DeviceInfo:
    """Identity of the accelerator the kernels run on."""
    index: int
    name: str
    clock_rate_khz: int
    compute_capability: Tuple[int, int]
    handle: Any = field(default=None, repr=False, compare=False)

    @property
    def arch(self) -> str:
        """NVRTC target architecture, e.g. ``sm_90``."""
        major, minor = self.compute_capability
        return f"sm_{major}{minor}"


def _attribute(device: Any, attribute: Any, name: str) -> int:
    return int(check(cuda_driver.cuDeviceGetAttribute(attribute, device), f"cuDeviceGetAttribute({name})"))


def initialize(device_index: int) -> DeviceInfo:
    """Query the device and make its primary context current.

    Args:
        device_index: Ordinal of the CUDA device (respects CUDA_VISIBLE_DEVICES).

    Raises:
        DeviceError: the driver cannot be initialized, the index is out of
            range, or any query fails.
    """
    check(cuda_driver.cuInit(0), "cuInit")
    count = int(check(cuda_driver.cuDeviceGetCount(), "cuDeviceGetCount"))
    if not 0 <= device_index < count:
        raise DeviceError(
            f"invalid device index {device_index} ({count} device(s) visible)",
            operation="cuDeviceGet",
            status=cuda_driver.CUresult.CUDA_ERROR_INVALID_DEVICE,
        )

    device = check(cuda_driver.cuDeviceGet(device_index), "cuDeviceGet")
    raw_name = check(cuda_driver.cuDeviceGetName(_NAME_BUFFER_BYTES, device), "cuDeviceGetName")
    name = raw_name.split(b"\x00", 1)[0].decode(errors="replace").strip()

    attrs = cuda_driver.CUdevice_attribute
    clock_rate_khz = _attribute(device, attrs.CU_DEVICE_ATTRIBUTE_CLOCK_RATE, "CLOCK_RATE")
    major = _attribute(device, attrs.CU_DEVICE_ATTRIBUTE_COMPUTE_CAPABILITY_MAJOR, "COMPUTE_CAPABILITY_MAJOR")
    minor = _attribute(device, attrs.CU_DEVICE_ATTRIBUTE_COMPUTE_CAPABILITY_MINOR, "COMPUTE_CAPABILITY_MINOR")
    if clock_rate_khz <= 0:
        raise DeviceError(
            f"device {device_index} reported clock rate {clock_rate_khz} kHz",
            operation="cuDeviceGetAttribute(CLOCK_RATE)",
        )

    context = check(cuda_driver.cuDevicePrimaryCtxRetain(device), "cuDevicePrimaryCtxRetain")
    check(cuda_driver.cuCtxSetCurrent(context), "cuCtxSetCurrent")

    info = DeviceInfo(
        index=device_index,
        name=name,
        clock_rate_khz=clock_rate_khz,
        compute_capability=(major, minor),
        handle=device,
    )
    logger.debug("Initialized %s", info)
    return info


def release(info: DeviceInfo) -> None:
    """Unload cached kernels, then release the primary context retained by initialize().

    Dropping the last reference destroys the context and every module in it,
    so cached function handles must not outlive this call.
    """
    from mps_load.kernels import unload_kernels

    unload_kernels()
    check(cuda_driver.cuDevicePrimaryCtxRelease(info.handle), "cuDevicePrimaryCtxRelease")
