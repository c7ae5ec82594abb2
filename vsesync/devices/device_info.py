"""Identity, driver and firmware details of a PTP capable network device."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from vsesync.callbacks import AnalyserFormat
from vsesync.clients.command import Cmd, ExecContext
from vsesync.devices.common import date_command, run_commands

log = logging.getLogger(__name__)

NOT_FOUND = "NOT FOUND"

_SHELL = ["/usr/bin/sh"]
# driver: ice
# version: 1.11.20.7
# firmware-version: 4.20 0x8001778b 1.3346.0
# expansion-rom-version:
_ETHTOOL = re.compile(r"version: (.*)\nfirmware-version: (.*)\n")
_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)

_dev_fetcher: dict[str, list[Cmd]] = {}


def _parse_rfc3339(value: str) -> datetime:
    match = _RFC3339.match(value.strip())
    if match is None:
        raise ValueError(f"failed to parse timestamp {value!r}")
    year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
    fraction = match.group(7) or ""
    micros = int(fraction[:6].ljust(6, "0"))
    zone = match.group(8)
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(year, month, day, hour, minute, second, micros, tzinfo=tz)


def _format_rfc3339nano(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    return text + "Z"


@dataclass
class PTPDeviceInfo:
    """Details of the network device that carries the PTP clock."""

    timestamp: str = ""
    vendor_id: str = ""
    device_id: str = ""
    gnss_dev: str = ""
    firmware_version: str = ""
    driver_version: str = ""
    time_offset: timedelta = field(default_factory=timedelta)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.timestamp,
            "vendorId": self.vendor_id,
            "deviceInfo": self.device_id,
            "GNSSDev": self.gnss_dev,
            "firmwareVersion": self.firmware_version,
            "driverVersion": self.driver_version,
            "timeOffset": self.time_offset // timedelta(microseconds=1) * 1000,
        }

    def analyser_format(self) -> list[AnalyserFormat]:
        """The device info in the shape the analysers expect."""
        now = datetime.now(timezone.utc) + self.time_offset
        return [
            AnalyserFormat(
                id="devInfo",
                data={
                    "timestamp": _format_rfc3339nano(now),
                    "fetched_timestamp": self.timestamp,
                    "vendorID": self.vendor_id,
                    "devID": self.device_id,
                    "gnss": self.gnss_dev or NOT_FOUND,
                    "firmwareVersion": self.firmware_version,
                    "driverVersion": self.driver_version,
                },
            )
        ]


def clear_dev_fetcher() -> None:
    """Forget every command set built for an interface."""
    _dev_fetcher.clear()


def _gnss_path(value: str) -> str:
    return "/dev/" + value.strip()


def _gnss_command(ctx: ExecContext, interface_name: str) -> Cmd:
    cmd_str = f"ls /sys/class/net/{interface_name}/device/gnss/"
    try:
        stdout, _ = ctx.exec_command_stdin(_SHELL, cmd_str)
    except Exception as err:
        raise RuntimeError(f"command to find gnss devices: {err}") from err
    if not stdout:
        raise RuntimeError("command to find gnss devices: no output")
    return Cmd("gnss", cmd_str, output_processor=_gnss_path)


def _extract_offset(result: Mapping[str, str]) -> dict[str, Any]:
    try:
        timestamp = _parse_rfc3339(result.get("date", ""))
    except ValueError as err:
        raise ValueError(f"failed to parse timestamp {err}") from err
    return {"timeOffset": datetime.now(timezone.utc) - timestamp}


def _extract_ethtool(result: Mapping[str, str]) -> dict[str, Any]:
    ethtool_out = result.get("ethtoolOut", "")
    match = _ETHTOOL.search(ethtool_out)
    if match is None:
        raise ValueError(f"failed to extract ethtoolOut from {ethtool_out}")
    return {"driverVersion": match.group(1), "firmwareVersion": match.group(2)}


def _post_process(result: Mapping[str, str]) -> dict[str, Any]:
    processed = _extract_offset(result)
    processed.update(_extract_ethtool(result))
    return processed


def build_ptp_device_info(ctx: ExecContext, interface_name: str) -> None:
    """Build and remember the commands that collect an interface's device info."""
    commands = [date_command()]
    try:
        commands.append(_gnss_command(ctx, interface_name))
    except Exception as err:  # noqa: BLE001 - a missing GNSS device is not fatal
        log.warning("%s", err)
    device_dir = f"/sys/class/net/{interface_name}/device"
    commands += [
        Cmd("devID", f"cat {device_dir}/device", output_processor=str.strip),
        Cmd("vendorID", f"cat {device_dir}/vendor", output_processor=str.strip),
        Cmd("ethtoolOut", f"ethtool -i {interface_name}", output_processor=str.strip),
    ]
    _dev_fetcher[interface_name] = commands


def get_ptp_device_info(interface_name: str, ctx: ExecContext) -> PTPDeviceInfo:
    """Fetch the device info of an interface."""
    if interface_name not in _dev_fetcher:
        build_ptp_device_info(ctx, interface_name)
    commands = _dev_fetcher[interface_name]
    try:
        values = run_commands(ctx, commands, _post_process)
    except Exception as err:
        log.debug("failed to fetch devInfo %s", err)
        raise RuntimeError(f"failed to fetch devInfo {err}") from err
    return PTPDeviceInfo(
        timestamp=values["date"],
        vendor_id=values["vendorID"],
        device_id=values["devID"],
        gnss_dev=values.get("gnss", ""),
        firmware_version=values["firmwareVersion"],
        driver_version=values["driverVersion"],
        time_offset=values["timeOffset"],
    )