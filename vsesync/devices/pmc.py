"""Grandmaster settings reported by the PTP management client."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from vsesync.callbacks import AnalyserFormat
from vsesync.clients.command import Cmd, ExecContext
from vsesync.devices.common import date_command, run_commands

log = logging.getLogger(__name__)

_INTEGER = re.compile(r"^[+-]?\d+$", re.ASCII)

# sending: GET GRANDMASTER_SETTINGS_NP
# 	001122.fffe.334455-0 seq 0 RESPONSE MANAGEMENT GRANDMASTER_SETTINGS_NP
# 		clockClass              248
# 		clockAccuracy           0xfe
# 		...
# 		timeSource              0xa0
_PMC = re.compile(
    r"\sclockClass\s+(\d+)"
    r"\s*clockAccuracy\s+(.+)\n"
    r"\s*offsetScaledLogVariance\s+(.+)\n"
    r"\s*currentUtcOffset\s+(\d+)\n"
    r"\s*leap61\s+(\d+)\n"
    r"\s*leap59\s+(\d+)\n"
    r"\s*currentUtcOffsetValid\s+(\d+)\n"
    r"\s*ptpTimescale\s+(\d+)\n"
    r"\s*timeTraceable\s+(\d+)\n"
    r"\s*frequencyTraceable\s+(\d+)\n"
    r"\s*timeSource\s+(.+)",
    re.ASCII,
)

_PMC_COMMAND = Cmd(
    "PMC",
    "pmc -u -f /var/run/ptp4l.0.config  'GET GRANDMASTER_SETTINGS_NP'",
    output_processor=str.strip,
)

_INTEGER_FIELDS = {
    "clockClass": 1,
    "currentUtcOffset": 4,
    "leap61": 5,
    "leap59": 6,
    "currentUtcOffsetValid": 7,
    "ptpTimescale": 8,
    "timeTraceable": 9,
    "frequencyTraceable": 10,
}


@dataclass
class PMCInfo:
    """The grandmaster settings of the PTP clock."""

    timestamp: str = ""
    time_source: str = ""
    clock_accuracy: str = ""
    offset_scaled_log_variance: str = ""
    clock_class: int = 0
    current_utc_offset: int = 0
    leap61: int = 0
    leap59: int = 0
    current_utc_offset_valid: int = 0
    ptp_timescale: int = 0
    time_traceable: int = 0
    frequency_traceable: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "timeSource": self.time_source,
            "clockAccuracy": self.clock_accuracy,
            "offsetScaledLogVariance": self.offset_scaled_log_variance,
            "clock_class": self.clock_class,
            "currentUtcOffset": self.current_utc_offset,
            "leap61": self.leap61,
            "leap59": self.leap59,
            "currentUtcOffsetValid": self.current_utc_offset_valid,
            "ptpTimescale": self.ptp_timescale,
            "timeTraceable": self.time_traceable,
            "frequencyTraceable": self.frequency_traceable,
        }

    def analyser_format(self) -> list[AnalyserFormat]:
        """The settings in the shape the analysers expect."""
        return [AnalyserFormat(id="phc/gm-settings", data=self)]


def map_string_to_int(values: Mapping[str, str]) -> dict[str, int]:
    """Convert every value of a mapping from decimal text to an integer."""
    converted: dict[str, int] = {}
    for key, value in values.items():
        if not _INTEGER.match(value):
            raise ValueError(f"failed to convert {value} into an int")
        converted[key] = int(value)
    return converted


def process_pmc(result: Mapping[str, str]) -> dict[str, Any]:
    """Parse the pmc output into grandmaster setting values."""
    output = result.get("PMC", "")
    match = _PMC.search(output)
    if match is None:
        raise ValueError(f"unable to parse pmc output: {output}")
    processed: dict[str, Any] = map_string_to_int(
        {key: match.group(index) for key, index in _INTEGER_FIELDS.items()}
    )
    processed["timeSource"] = match.group(11)
    processed["clockAccuracy"] = match.group(2)
    processed["offsetScaledLogVariance"] = match.group(3)
    return processed


def get_pmc(ctx: ExecContext) -> PMCInfo:
    """Fetch the grandmaster settings from the PTP daemon."""
    try:
        values = run_commands(ctx, [date_command(), _PMC_COMMAND], process_pmc)
    except Exception as err:
        log.debug("failed to fetch gmSetting %s", err)
        raise RuntimeError(f"failed to fetch gmSetting {err}") from err
    return PMCInfo(
        timestamp=values["date"],
        time_source=values["timeSource"],
        clock_accuracy=values["clockAccuracy"],
        offset_scaled_log_variance=values["offsetScaledLogVariance"],
        clock_class=values["clockClass"],
        current_utc_offset=values["currentUtcOffset"],
        leap61=values["leap61"],
        leap59=values["leap59"],
        current_utc_offset_valid=values["currentUtcOffsetValid"],
        ptp_timescale=values["ptpTimescale"],
        time_traceable=values["timeTraceable"],
        frequency_traceable=values["frequencyTraceable"],
    )