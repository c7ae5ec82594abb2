"""DPLL state and offset read from the device's sysfs files."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Any, Mapping

from vsesync.callbacks import AnalyserFormat
from vsesync.clients.command import Cmd, ExecContext
from vsesync.devices.common import date_command, run_commands

log = logging.getLogger(__name__)

UNIT_CONVERSION_FACTOR = 100
_EXPECTED_FILES = ("dpll_0_state", "dpll_1_state", "dpll_1_offset")

_dpll_fs_fetcher: dict[str, list[Cmd]] = {}


@dataclass
class FilesystemDPLLInfo:
    """DPLL states and phase offset as exposed through sysfs."""

    timestamp: str = ""
    eec_state: str = ""
    pps_state: str = ""
    pps_offset: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "eecstate": self.eec_state,
            "state": self.pps_state,
            "terror": self.pps_offset,
        }

    def analyser_format(self) -> list[AnalyserFormat]:
        """The DPLL info in the shape the analysers expect, offset in nanoseconds."""
        return [
            AnalyserFormat(
                id="dpll/time-error",
                data={
                    "timestamp": self.timestamp,
                    "eecstate": self.eec_state,
                    "state": self.pps_state,
                    "terror": self.pps_offset / UNIT_CONVERSION_FACTOR,
                },
            )
        ]


def _parse_float32(value: str) -> float:
    number = float(value)
    try:
        return struct.unpack("f", struct.pack("f", number))[0]
    except OverflowError as err:
        raise ValueError(f"value out of range: {value}") from err


def _post_process(result: Mapping[str, str]) -> dict[str, Any]:
    try:
        offset = _parse_float32(result.get("dpll_1_offset", ""))
    except ValueError as err:
        raise ValueError(f"failed converting dpll_1_offset {err} to a number") from err
    return {"dpll_1_offset": offset}


def build_filesystem_dpll_info_fetcher(interface_name: str) -> None:
    """Build and remember the commands that read an interface's DPLL files."""
    device_dir = f"/sys/class/net/{interface_name}/device"
    _dpll_fs_fetcher[interface_name] = [date_command()] + [
        Cmd(name, f"cat {device_dir}/{name}", output_processor=str.strip)
        for name in _EXPECTED_FILES
    ]


def get_dpll_filesystem_info(ctx: ExecContext, interface_name: str) -> FilesystemDPLLInfo:
    """Fetch the DPLL info of an interface from sysfs."""
    if interface_name not in _dpll_fs_fetcher:
        build_filesystem_dpll_info_fetcher(interface_name)
    try:
        values = run_commands(ctx, _dpll_fs_fetcher[interface_name], _post_process)
    except Exception as err:
        log.debug("failed to fetch dpllInfo %s", err)
        raise RuntimeError(f"failed to fetch dpllInfo {err}") from err
    return FilesystemDPLLInfo(
        timestamp=values["date"],
        eec_state=values["dpll_0_state"],
        pps_state=values["dpll_1_state"],
        pps_offset=values["dpll_1_offset"],
    )


def is_dpll_filesystem_present(ctx: ExecContext, interface_name: str) -> bool:
    """Whether all the DPLL sysfs files exist for an interface."""
    listing = Cmd(
        "paths", f"ls -1 /sys/class/net/{interface_name}/device/", output_processor=str.strip
    )
    try:
        values = run_commands(ctx, [listing])
    except Exception as err:
        raise RuntimeError(f"failed to check DPLL FS {err}") from err
    present = {line.strip(" ") for line in values["paths"].split("\n")}
    return all(name in present for name in _EXPECTED_FILES)