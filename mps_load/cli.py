#!/usr/bin/env python3
"""
mps-load - GPU load generator for probing multi-process scheduling (Typer)

    mps-load --delay <duration_ms>
    mps-load --busy <iteration_count>

This module is the process boundary: it is the only place that reports
errors and turns them into exit codes (0 success, 1 usage or device error).
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List, Optional

import typer

from mps_load.defaults import LoadDefaults, get_defaults
from mps_load.errors import DeviceError, UsageError
from mps_load.logger import get_logger, setup_logging
from mps_load.reporter import Reporter
from mps_load.workload import USAGE, WorkloadSpec, parse_workload

logger = get_logger(__name__)

# Click reports its own usage errors with status 2.
_CLICK_USAGE_EXIT = 2


def execute(spec: WorkloadSpec, pid: int, defaults: Optional[LoadDefaults] = None) -> int:
    """Initialize the device, run one kernel and report. Returns the exit code."""
    defaults = defaults or get_defaults()
    # Device modules load the CUDA bindings; keep them out of the usage-error path.
    from mps_load.device import initialize, release
    from mps_load.dispatcher import run

    reporter = Reporter(pid)
    try:
        info = initialize(defaults.device_index)
        reporter.device(info)
        reporter.parameter(spec)
        reporter.launch()
        result = run(spec, defaults.num_elements, info)
        reporter.elapsed(result.timing)
        release(info)
    except DeviceError as exc:
        reporter.error(f"{exc.operation}: {exc}")
        if exc.detail:
            typer.echo(exc.detail, err=True)
        logger.debug("Device error", exc_info=True)
        return 1
    return 0


app = typer.Typer(
    add_completion=False,
    help="Generate one controlled GPU load kernel and report its wall time.",
)


@app.command(
    context_settings={"ignore_unknown_options": True},
    add_help_option=False,
    help="Run --delay <duration_ms> or --busy <iteration_count>.",
)
def load(
    args: Optional[List[str]] = typer.Argument(None, metavar="MODE VALUE", help="--delay <ms> or --busy <count>"),
) -> None:
    try:
        spec = parse_workload(args or [])
    except UsageError as exc:
        typer.echo(f"error: {exc}", err=True)
        typer.echo(USAGE, err=True, nl=False)
        raise typer.Exit(code=1)
    raise typer.Exit(code=execute(spec, os.getpid()))


def main() -> int:
    defaults = get_defaults()
    setup_logging(
        level=defaults.log_level,
        log_file=Path(defaults.log_file) if defaults.log_file else None,
        log_format=defaults.log_format,
    )
    try:
        app(prog_name="mps-load")
    except SystemExit as exc:  # Typer raises SystemExit
        code = exc.code if isinstance(exc.code, int) else (1 if exc.code else 0)
        return 1 if code == _CLICK_USAGE_EXIT else code
    return 0


if __name__ == "__main__":
    sys.exit(main())
