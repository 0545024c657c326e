"""Exception hierarchy for load generation.

Two failure kinds exist: usage errors detected from argv before any device
work, and device errors raised by checked CUDA driver/NVRTC calls. Both are
fatal at the process boundary.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class LoadGenError(Exception):
    """Base exception for all load-generator errors."""
    pass


class UsageError(LoadGenError):
    """Raised when command-line arguments do not describe a valid workload.
    
    Attributes:
        argv: Arguments that failed validation (program name excluded)
    """
    
    def __init__(self, message: str, argv: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.argv = list(argv) if argv is not None else []


class DeviceError(LoadGenError):
    """Raised when a CUDA driver or NVRTC call reports failure.
    
    Attributes:
        operation: Name of the API call that failed (e.g. 'cuMemAlloc')
        status: Status value returned by the call, if any
        detail: Extra context such as an NVRTC compile log
    """
    
    def __init__(
        self,
        message: str,
        operation: str,
        status: Any = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.status = status
        self.detail = detail
