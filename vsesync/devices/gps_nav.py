"""GNSS navigation status, clock accuracy and antenna monitoring from ubxtool."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Mapping

from vsesync.callbacks import AnalyserFormat
from vsesync.clients.command import Cmd, ExecContext
from vsesync.devices.common import format_timestamp_rfc3339nano, run_commands

log = logging.getLogger(__name__)

_TIMESTAMP_PATTERN = r"(\d+.\d+)"

# 1686916187.0584
# UBX-NAV-STATUS:
#   iTOW 474605000 gpsFix 3 flags 0xdd fixStat 0x0 flags2 0x8
#   ttff 25030, msss 4294967295
_NAV_STATUS = re.compile(
    _TIMESTAMP_PATTERN
    + r"\nUBX-NAV-STATUS:\n\s+iTOW (\d+) gpsFix (\d) flags (.*) fixStat "
    + r"(.*) flags2\s(.*)\n\s+ttff\s(\d+), msss (\d+)\n\n",
    re.ASCII,
)
# 1686916187.0586
# UBX-NAV-CLOCK:
#   iTOW 474605000 clkB 61594 clkD 56 tAcc 5 fAcc 164
_NAV_CLOCK = re.compile(
    _TIMESTAMP_PATTERN
    + r"\nUBX-NAV-CLOCK:\n\s+iTOW (\d+) clkB (-?\d+) clkD (-?\d+) tAcc (\d+) fAcc (\d+)",
    re.ASCII,
)
# 1686916187.0584
# UBX-MON-RF:
#  version 0 nBlocks 2 reserved1 0 0
#  <nBlocks antenna blocks>
_MON_RF = re.compile(
    _TIMESTAMP_PATTERN
    + r"\nUBX-MON-RF:\n"
    + r"\s+version \d nBlocks (\d) reserved1 \d \d\n([^UBX]*)",
    re.ASCII,
)
_ANTENNA_BLOCK = re.compile(
    r"\s+blockId (\d) flags \w+ antStatus (\d) antPower (\d+) postStatus \d reserved2 \d \d \d \d\n"
    r"\s+noisePerMS \d+ agcCnt \d+ jamInd \d+ ofsI -?\d+ magI \d+ ofsQ -?\d+ magQ \d+\n"
    r"\s+reserved3 \d \d \d\n?",
    re.ASCII,
)

_GPS_COMMAND = Cmd(
    "GPS",
    "ubxtool -t -p NAV-STATUS -p NAV-CLOCK -p MON-RF -P 29.20",
    output_processor=str.strip,
)


@dataclass
class GPSNavStatus:
    """The receiver's fix state."""

    timestamp: str = ""
    flags: str = ""
    gps_fix: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "flags": self.flags, "GPSFix": self.gps_fix}


@dataclass
class GPSNavClock:
    """The receiver's time and frequency accuracy estimates."""

    timestamp: str = ""
    time_acc: int = 0
    freq_acc: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "timeAcc": self.time_acc, "freqAcc": self.freq_acc}


@dataclass
class GPSAntennaDetails:
    """Status and power of one RF block's antenna."""

    timestamp: str = ""
    block_id: int = 0
    status: int = 0
    power: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "blockId": self.block_id,
            "status": self.status,
            "power": self.power,
        }


@dataclass
class GPSDetails:
    """Navigation status, clock and antenna details of the GNSS receiver."""

    nav_status: GPSNavStatus = field(default_factory=GPSNavStatus)
    antenna_details: list[GPSAntennaDetails] = field(default_factory=list)
    nav_clock: GPSNavClock = field(default_factory=GPSNavClock)

    def to_dict(self) -> dict[str, Any]:
        return {
            "navStatus": self.nav_status.to_dict(),
            "antennaDetails": [ant.to_dict() for ant in self.antenna_details],
            "navClock": self.nav_clock.to_dict(),
        }

    def analyser_format(self) -> list[AnalyserFormat]:
        """A time-error entry followed by one RF monitoring entry per antenna."""
        messages = [
            AnalyserFormat(
                id="gnss/time-error",
                data={
                    "timestamp": self.nav_clock.timestamp,
                    "terror": self.nav_clock.time_acc,
                    "ferror": self.nav_clock.freq_acc,
                    "state": self.nav_status.gps_fix,
                    "flags": self.nav_status.flags,
                },
            )
        ]
        messages.extend(AnalyserFormat(id="gnss/rf-mon", data=ant) for ant in self.antenna_details)
        return messages


def _timestamp(value: str, name: str) -> str:
    try:
        return format_timestamp_rfc3339nano(value)
    except ValueError as err:
        raise ValueError(f"failed to parse {name} {err}") from err


def _process_nav_status(result: Mapping[str, str]) -> dict[str, Any]:
    output = result.get("GPS", "")
    match = _NAV_STATUS.search(output)
    if match is None:
        raise ValueError(f"unable to parse UBX Nav Status from {output}")
    return {
        "navStatus": GPSNavStatus(
            timestamp=_timestamp(match.group(1), "navStatusTimestamp"),
            flags=match.group(4),
            gps_fix=int(match.group(3)),
        )
    }


def _process_nav_clock(result: Mapping[str, str]) -> dict[str, Any]:
    output = result.get("GPS", "")
    match = _NAV_CLOCK.search(output)
    if match is None:
        raise ValueError(f"unable to parse UBX Nav Status or Clock from {output}")
    return {
        "navClock": GPSNavClock(
            timestamp=_timestamp(match.group(1), "navClockTimestamp"),
            time_acc=int(match.group(5)),
            freq_acc=int(match.group(6)),
        )
    }


def _process_mon_rf(result: Mapping[str, str]) -> dict[str, Any]:
    output = result.get("GPS", "")
    match = _MON_RF.search(output)
    if match is None:
        raise ValueError(f"failed to match UBX MON in {output}")
    timestamp = _timestamp(match.group(1), "monTimestamp")
    n_blocks = int(match.group(2))
    blocks = islice(_ANTENNA_BLOCK.finditer(match.group(3)), n_blocks)
    return {
        "antennaDetails": [
            GPSAntennaDetails(
                timestamp=timestamp,
                block_id=int(block.group(1)),
                status=int(block.group(2)),
                power=int(block.group(3)),
            )
            for block in blocks
        ]
    }


def process_ubx(result: Mapping[str, str]) -> dict[str, Any]:
    """Parse ubxtool output into nav status, nav clock and antenna details."""
    processed: dict[str, Any] = {}
    errors: list[str] = []
    for step in (_process_nav_status, _process_nav_clock, _process_mon_rf):
        try:
            processed.update(step(result))
        except ValueError as err:
            log.debug("%s failed: %s", step.__name__, err)
            errors.append(str(err))
    if errors:
        raise ValueError(
            "the following errors occurred fetching the GNSS values: " + "; ".join(errors)
        )
    return processed


def get_gps_nav(ctx: ExecContext) -> GPSDetails:
    """Fetch the GNSS navigation details of the host."""
    try:
        values = run_commands(ctx, [_GPS_COMMAND], process_ubx)
    except Exception as err:
        log.debug("failed to fetch gpsNav %s", err)
        raise RuntimeError(f"failed to fetch gpsNav {err}") from err
    return GPSDetails(
        nav_status=values["navStatus"],
        antenna_details=values["antennaDetails"],
        nav_clock=values["navClock"],
    )