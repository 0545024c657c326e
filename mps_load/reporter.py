"""[pid]-prefixed report lines for the external orchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

if TYPE_CHECKING:
    from mps_load.device import DeviceInfo
    from mps_load.dispatcher import TimingResult
    from mps_load.workload import WorkloadSpec


class Reporter:
    """Writes one line per event, tagged with the owning process id."""

    def __init__(self, pid: int):
        self.pid = pid

    def _line(self, text: str, err: bool = False) -> None:
        typer.echo(f"[{self.pid}] {text}", err=err)

    def device(self, info: DeviceInfo) -> None:
        self._line(f"Device: {info.name}")
        self._line(f"Clock rate: {info.clock_rate_khz} kHz")

    def parameter(self, spec: WorkloadSpec) -> None:
        self._line(f"{spec.label}: {spec.value_text}")

    def launch(self) -> None:
        self._line("Launching kernel...")

    def elapsed(self, timing: TimingResult) -> None:
        self._line(f"Elapsed: {timing.elapsed_ms:.3f} ms")

    def error(self, message: str) -> None:
        self._line(f"ERROR: {message}", err=True)
