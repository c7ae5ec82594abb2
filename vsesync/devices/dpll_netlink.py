"""DPLL lock states and phase offsets read over the netlink DPLL interface."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from vsesync.callbacks import AnalyserFormat
from vsesync.clients.command import Cmd, ExecContext
from vsesync.devices.common import date_command, run_commands

log = logging.getLogger(__name__)

STATES = {
    "unknown": "-1",
    "invalid": "0",
    "freerun": "1",
    "locked": "2",
    "locked-ho-acq": "3",
    "holdover": "4",
}
UNKNOWN_STATE = "-1"

ONE_PPS_LABEL = "GNSS-1PPS"
SMA1_LABEL = "SMA1"
SMA2_LABEL = "SMA2"

ONE_PPS_SUBTYPE = "dpll"
SMA1_SUBTYPE = "dpll-sma1"
UNKNOWN_SUBTYPE = "unknown"

INPUT_DIRECTION = "input"
CONNECTED_STATE = "connected"

EEC_OFFSET_PARENT_ID = 0
PPS_OFFSET_PARENT_ID = 1
DPLL_PHASE_OFFSET_DIVIDER = 1000

_MAX_UINT64 = 2**64 - 1
_UNSIGNED = re.compile(r"^\d+$")

_YNL = "/linux/tools/net/ynl/cli.py --spec /linux/Documentation/netlink/specs/dpll.yaml"
_JSON_ENCODER = " | python3 /root/custom_scripts/json_encoder.py"
_DEVICE_DUMP = _YNL + " --dump device-get" + _JSON_ENCODER
_PIN_DUMP = _YNL + " --dump pin-get" + _JSON_ENCODER

PostProcessor = Callable[[Mapping[str, str]], Mapping[str, Any]]

_dpll_netlink_fetcher: dict[int, tuple[list[Cmd], PostProcessor]] = {}
_dpll_clock_id_fetcher: dict[str, tuple[list[Cmd], PostProcessor]] = {}


def _mapping(data: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"expected an object for {name}, got {type(data).__name__}")
    return data


def _int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an integer for {key}, got {value!r}")
    return value


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"expected a string for {key}, got {value!r}")
    return value


def _list(data: Mapping[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"expected a list for {key}, got {value!r}")
    return value


def _trunc_mod2(value: int) -> int:
    """Remainder of division by two, keeping the sign of the dividend."""
    remainder = abs(value) % 2
    return remainder if value >= 0 else -remainder


def convert_netlink_offset(offset: int) -> float:
    """Convert a phase offset to nanoseconds with three decimal places."""
    quotient = abs(offset) // DPLL_PHASE_OFFSET_DIVIDER
    if offset < 0:
        quotient = -quotient
    return quotient / 1000


@dataclass
class NetlinkDPLLInfo:
    """DPLL lock states and offsets of one clock as read over netlink."""

    pin_type: str = ""
    timestamp: str = ""
    eec_state: str = ""
    pps_state: str = ""
    pps_offset: int = 0
    eec_offset: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "PinType": self.pin_type,
            "timestamp": self.timestamp,
            "eecstate": self.eec_state,
            "state": self.pps_state,
            "terror": self.pps_offset,
            "eecterror": self.eec_offset,
        }

    def analyser_format(self) -> list[AnalyserFormat]:
        """The DPLL info in the shape the analysers expect, offsets in nanoseconds."""
        sub_type = {ONE_PPS_LABEL: ONE_PPS_SUBTYPE, SMA1_LABEL: SMA1_SUBTYPE}.get(
            self.pin_type, UNKNOWN_SUBTYPE
        )
        return [
            AnalyserFormat(
                id=f"{sub_type}/time-error",
                data={
                    "timestamp": self.timestamp,
                    "eecstate": self.eec_state,
                    "state": self.pps_state,
                    "terror": convert_netlink_offset(self.pps_offset),
                    "eecterror": convert_netlink_offset(self.eec_offset),
                },
            )
        ]


@dataclass
class NetlinkStateEntry:
    """One DPLL device as listed by a netlink device dump."""

    lock_status: str = ""
    driver: str = ""
    clock_type: str = ""
    clock_id: int = 0
    id: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> NetlinkStateEntry:
        entry = _mapping(data, "device entry")
        return cls(
            lock_status=_str(entry, "lock-status"),
            driver=_str(entry, "module-name"),
            clock_type=_str(entry, "type"),
            clock_id=_int(entry, "clock-id"),
            id=_int(entry, "id"),
        )


@dataclass
class NetlinkParentDevice:
    """A pin's relation to one of its parent DPLL devices."""

    direction: str = ""
    state: str = ""
    parent_id: int = 0
    phase_offset: int = 0
    prio: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> NetlinkParentDevice:
        parent = _mapping(data, "parent device")
        return cls(
            direction=_str(parent, "direction"),
            state=_str(parent, "state"),
            parent_id=_int(parent, "parent-id"),
            phase_offset=_int(parent, "phase-offset"),
            prio=_int(parent, "prio"),
        )


@dataclass
class NetlinkParentPin:
    """A pin's relation to a parent pin."""

    state: str = ""
    parent_id: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> NetlinkParentPin:
        parent = _mapping(data, "parent pin")
        return cls(state=_str(parent, "state"), parent_id=_int(parent, "parent-id"))


@dataclass
class NetlinkFrequencyRange:
    """A supported frequency range of a pin."""

    max: int = 0
    min: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> NetlinkFrequencyRange:
        entry = _mapping(data, "frequency range")
        return cls(max=_int(entry, "frequency-max"), min=_int(entry, "frequency-min"))


@dataclass
class NetlinkPin:
    """A DPLL pin as reported over netlink."""

    type: str = ""
    module_name: str = ""
    label: str = ""
    capabilities: list[str] = field(default_factory=list)
    frequencies_supported: list[NetlinkFrequencyRange] = field(default_factory=list)
    parent_devices: list[NetlinkParentDevice] = field(default_factory=list)
    parent_pins: list[NetlinkParentPin] = field(default_factory=list)
    clock_id: int = 0
    frequency: int = 0
    id: int = 0
    phase_adjust: int = 0
    phase_adjust_max: int = 0
    phase_adjust_min: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> NetlinkPin:
        pin = _mapping(data, "pin")
        capabilities = _list(pin, "capabilities")
        if not all(isinstance(item, str) for item in capabilities):
            raise ValueError(f"expected a list of strings for capabilities, got {capabilities!r}")
        return cls(
            type=_str(pin, "type"),
            module_name=_str(pin, "module-name"),
            label=_str(pin, "board-label"),
            capabilities=list(capabilities),
            frequencies_supported=[
                NetlinkFrequencyRange.from_dict(item) for item in _list(pin, "frequency-supported")
            ],
            parent_devices=[
                NetlinkParentDevice.from_dict(item) for item in _list(pin, "parent-device")
            ],
            parent_pins=[NetlinkParentPin.from_dict(item) for item in _list(pin, "parent-pin")],
            clock_id=_int(pin, "clock-id"),
            frequency=_int(pin, "frequency"),
            id=_int(pin, "id"),
            phase_adjust=_int(pin, "phase-adjust"),
            phase_adjust_max=_int(pin, "phase-adjust-max"),
            phase_adjust_min=_int(pin, "phase-adjust-min"),
        )


@dataclass
class NetlinkParameters:
    """The clock id of an interface and the pin whose offset is tracked."""

    timestamp: str = ""
    pin_type: str = ""
    clock_id: int = 0
    offset_pin: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "pinType": self.pin_type,
            "clockId": self.clock_id,
            "offsetPin": self.offset_pin,
        }


def _parse_state_entries(text: str) -> list[NetlinkStateEntry]:
    try:
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError("expected a list of devices")
        return [NetlinkStateEntry.from_dict(item) for item in data]
    except ValueError as err:
        log.error("Failed to unmarshal netlink device output: %s", err)
        return []


def _parse_pin(text: str) -> NetlinkPin:
    try:
        return NetlinkPin.from_dict(json.loads(text))
    except ValueError as err:
        log.error("Failed to unmarshal netlink pin output: %s", err)
        return NetlinkPin()


def _build_post_process_dpll_netlink(clock_id: int) -> PostProcessor:
    def post_process(result: Mapping[str, str]) -> dict[str, Any]:
        processed: dict[str, Any] = {}
        entries = _parse_state_entries(result.get("dpll-netlink-device", ""))
        log.debug("entries: %s", entries)
        for entry in entries:
            if entry.clock_id != clock_id:
                continue
            state = STATES.get(entry.lock_status)
            if state is None:
                log.error("Unknown state: %s", entry.lock_status)
                state = UNKNOWN_STATE
            processed[entry.clock_type] = state

        pin = _parse_pin(result.get("dpll-netlink-offset", ""))
        for parent in pin.parent_devices:
            remainder = _trunc_mod2(parent.parent_id)
            if remainder == EEC_OFFSET_PARENT_ID:
                processed["ecc_offset"] = parent.phase_offset
            elif remainder == PPS_OFFSET_PARENT_ID:
                processed["pps_offset"] = parent.phase_offset
        return processed

    return post_process


def build_dpll_netlink_device_fetcher(params: NetlinkParameters) -> None:
    """Build and remember the commands that read a clock's DPLL states and offsets."""
    pin_get = (
        _YNL
        + " --do pin-get --json "
        + "'{\"id\": "
        + str(params.offset_pin)
        + "}'"
        + _JSON_ENCODER
    )
    commands = [
        date_command(),
        Cmd("dpll-netlink-device", _DEVICE_DUMP, output_processor=str.strip),
        Cmd("dpll-netlink-offset", pin_get, output_processor=str.strip),
    ]
    _dpll_netlink_fetcher[params.clock_id] = (
        commands,
        _build_post_process_dpll_netlink(params.clock_id),
    )


def get_dpll_netlink_info(ctx: ExecContext, params: NetlinkParameters) -> NetlinkDPLLInfo:
    """Fetch the DPLL states and offsets of the clock described by ``params``."""
    if params.clock_id not in _dpll_netlink_fetcher:
        build_dpll_netlink_device_fetcher(params)
    commands, post_processor = _dpll_netlink_fetcher[params.clock_id]
    try:
        values = run_commands(ctx, commands, post_processor)
    except Exception as err:
        log.debug("failed to fetch dpllInfo via netlink: %s", err)
        raise RuntimeError(f"failed to fetch dpllInfo via netlink: {err}") from err
    return NetlinkDPLLInfo(
        pin_type=params.pin_type,
        timestamp=values.get("date", ""),
        eec_state=values.get("eec", ""),
        pps_state=values.get("pps", ""),
        pps_offset=values.get("pps_offset", 0),
        eec_offset=values.get("eec_offset", 0),
    )


def select_pin(pins_json: str | bytes, clock_id: int) -> tuple[int, str]:
    """Choose the pin whose offset to track: a fully connected 1PPS pin, else an input SMA1 pin."""
    try:
        data = json.loads(pins_json)
        if not isinstance(data, list):
            raise ValueError("expected a list of pins")
        pins = [NetlinkPin.from_dict(item) for item in data]
    except ValueError as err:
        raise ValueError(f"failed to unmarshal netlink output: {err}") from err

    log.debug("entries: %s", pins)
    one_pps: NetlinkPin | None = None
    sma1: NetlinkPin | None = None
    for pin in pins:
        if pin.clock_id != clock_id:
            continue
        if pin.label == ONE_PPS_LABEL:
            one_pps = pin
        elif pin.label == SMA1_LABEL:
            sma1 = pin

    if one_pps is None or sma1 is None:
        raise ValueError(f"failed to find {ONE_PPS_LABEL} and {SMA1_LABEL} pins for clock {clock_id}")

    if all(parent.state == CONNECTED_STATE for parent in one_pps.parent_devices):
        return one_pps.id, ONE_PPS_LABEL
    if all(
        parent.direction == INPUT_DIRECTION and parent.state == CONNECTED_STATE
        for parent in sma1.parent_devices
    ):
        return sma1.id, SMA1_LABEL
    raise ValueError("failed to determine correct offset pin")


def _post_process_clock_id(result: Mapping[str, str]) -> dict[str, Any]:
    text = result.get("dpll-netlink-clock-id", "")
    if not _UNSIGNED.match(text) or int(text) > _MAX_UINT64:
        raise ValueError(f"failed to parse int for clock id: {text!r}")
    clock_id = int(text)
    offset_pin, pin_type = select_pin(result.get("dpll-netlink-pins", ""), clock_id)
    return {"clockID": clock_id, "offsetPin": offset_pin, "pinType": pin_type}


def build_netlink_info_fetcher(interface_name: str) -> None:
    """Build and remember the commands that find an interface's clock id and offset pin."""
    clock_id_command = (
        f"export IFNAME={interface_name}; "
        "export BUSID=$(readlink /sys/class/net/$IFNAME/device | xargs basename | cut -d ':' -f 2,3);"
        " echo $((\"16#$(lspci -v | grep $BUSID -A 20 |grep 'Serial Number' "
        "| awk '{print $NF}' | tr -d '-')\"))"
    )
    commands = [
        date_command(),
        Cmd("dpll-netlink-clock-id", clock_id_command, output_processor=str.strip),
        Cmd("dpll-netlink-pins", _PIN_DUMP, output_processor=str.strip),
    ]
    _dpll_clock_id_fetcher[interface_name] = (commands, _post_process_clock_id)


def get_netlink_parameters(ctx: ExecContext, interface_name: str) -> NetlinkParameters:
    """Fetch the clock id and offset pin of an interface."""
    if interface_name not in _dpll_clock_id_fetcher:
        build_netlink_info_fetcher(interface_name)
    commands, post_processor = _dpll_clock_id_fetcher[interface_name]
    try:
        values = run_commands(ctx, commands, post_processor)
    except Exception as err:
        log.debug("failed to fetch netlink info %s", err)
        raise RuntimeError(f"failed to fetch netlink info {err}") from err
    return NetlinkParameters(
        timestamp=values.get("date", ""),
        pin_type=values["pinType"],
        clock_id=values["clockID"],
        offset_pin=values["offsetPin"],
    )