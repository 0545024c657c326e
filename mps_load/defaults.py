"""Centralized default values for load generation.

The command line carries only the workload mode and its parameter, so every
other knob (device, lane count, launch geometry, logging) lives here.
Environment variables are not consulted; tests swap the process-wide
instance with set_defaults().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass
class LoadDefaults:
    """Default values used by the CLI and the dispatcher."""
    
    # Device selection
    device_index: int = 0
    
    # Lane buffers and launch geometry
    num_elements: int = 32768
    block_size: int = 256
    grid_size: Optional[int] = None  # None sizes the grid to num_elements
    
    # Feature flags
    enable_nvtx: bool = False
    
    # Logging (stdout is reserved for the report lines)
    log_level: str = "WARNING"
    log_file: Optional[str] = None
    log_format: str = "text"  # "text" or "json"
    
    # Extra NVRTC options appended after the architecture flag
    nvrtc_options: Tuple[str, ...] = field(default_factory=tuple)
    
    def to_dict(self) -> dict:
        """Convert defaults to dictionary."""
        return {
            "device_index": self.device_index,
            "num_elements": self.num_elements,
            "block_size": self.block_size,
            "grid_size": self.grid_size,
            "enable_nvtx": self.enable_nvtx,
            "log_level": self.log_level,
            "log_file": self.log_file,
            "log_format": self.log_format,
            "nvrtc_options": list(self.nvrtc_options),
        }


_defaults = LoadDefaults()


def get_defaults() -> LoadDefaults:
    """Get the global LoadDefaults instance."""
    return _defaults


def set_defaults(defaults: LoadDefaults) -> None:
    """Set the global LoadDefaults instance (useful for testing)."""
    global _defaults
    _defaults = defaults
