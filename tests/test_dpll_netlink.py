import json
import re

import pytest

from vsesync.clients.command import ExecContext
from vsesync.devices.dpll_netlink import (
    NetlinkDPLLInfo,
    NetlinkParameters,
    NetlinkPin,
    convert_netlink_offset,
    get_dpll_netlink_info,
    get_netlink_parameters,
    select_pin,
)

DATE_RAW = "1686916187.0584"
DATE_FORMATTED = "2023-06-16T11:49:47.0584Z"


class FakeContext(ExecContext):
    """Answers each keyed command in a script with a canned value."""

    def __init__(self, values):
        self.values = values
        self.scripts = []

    def exec_command(self, command):
        return "", ""

    def exec_command_stdin(self, command, stdin):
        self.scripts.append(stdin)
        keys = re.findall(r"echo '<([^/][^>]*)>'", stdin)
        out = "".join(f"<{key}>\n{self.values.get(key, '')}\n</{key}>\n" for key in keys)
        return out, ""


def _pin(pin_id, label, clock_id, parents):
    return {
        "id": pin_id,
        "board-label": label,
        "clock-id": clock_id,
        "module-name": "ice",
        "type": "gnss",
        "parent-device": parents,
    }


def _parent(parent_id, state="connected", direction="input", phase_offset=0):
    return {
        "parent-id": parent_id,
        "state": state,
        "direction": direction,
        "phase-offset": phase_offset,
        "prio": 0,
    }


def test_convert_offset_of_example_value():
    assert convert_netlink_offset(-1870360) == pytest.approx(-1.87)


def test_convert_offset_truncates_towards_zero():
    assert convert_netlink_offset(-999) == 0.0
    assert convert_netlink_offset(999) == 0.0


@pytest.mark.parametrize("offset", [0, 1, 1500, 123456789, 1870360])
def test_convert_offset_is_odd(offset):
    assert convert_netlink_offset(-offset) == -convert_netlink_offset(offset)


@pytest.mark.parametrize(
    "pin_type, expected_id",
    [
        ("GNSS-1PPS", "dpll/time-error"),
        ("SMA1", "dpll-sma1/time-error"),
        ("SMA2", "unknown/time-error"),
        ("", "unknown/time-error"),
    ],
)
def test_analyser_format_id_follows_pin_type(pin_type, expected_id):
    info = NetlinkDPLLInfo(pin_type=pin_type, timestamp=DATE_FORMATTED)
    [entry] = info.analyser_format()
    assert entry.id == expected_id
    assert entry.data["timestamp"] == DATE_FORMATTED


def test_analyser_format_converts_offsets():
    info = NetlinkDPLLInfo(
        pin_type="GNSS-1PPS", eec_state="2", pps_state="3", pps_offset=-1870360, eec_offset=5000
    )
    [entry] = info.analyser_format()
    assert entry.data["terror"] == convert_netlink_offset(-1870360)
    assert entry.data["eecterror"] == convert_netlink_offset(5000)
    assert entry.data["eecstate"] == "2"
    assert entry.data["state"] == "3"


def test_select_pin_prefers_connected_pps():
    pins = [
        _pin(6, "GNSS-1PPS", 42, [_parent(0), _parent(1)]),
        _pin(7, "SMA1", 42, [_parent(0), _parent(1)]),
    ]
    assert select_pin(json.dumps(pins), 42) == (6, "GNSS-1PPS")


def test_select_pin_falls_back_to_sma1():
    pins = [
        _pin(6, "GNSS-1PPS", 42, [_parent(0, state="disconnected"), _parent(1)]),
        _pin(7, "SMA1", 42, [_parent(0), _parent(1)]),
    ]
    assert select_pin(json.dumps(pins), 42) == (7, "SMA1")


def test_select_pin_ignores_other_clocks():
    pins = [
        _pin(1, "GNSS-1PPS", 99, [_parent(0)]),
        _pin(6, "GNSS-1PPS", 42, [_parent(0, state="disconnected")]),
        _pin(2, "SMA1", 99, [_parent(0, state="disconnected")]),
        _pin(7, "SMA1", 42, [_parent(0)]),
    ]
    assert select_pin(json.dumps(pins), 42) == (7, "SMA1")


def test_select_pin_fails_when_nothing_usable():
    pins = [
        _pin(6, "GNSS-1PPS", 42, [_parent(0, state="disconnected")]),
        _pin(7, "SMA1", 42, [_parent(0, direction="output")]),
    ]
    with pytest.raises(ValueError, match="offset pin"):
        select_pin(json.dumps(pins), 42)


def test_select_pin_fails_when_pin_missing():
    pins = [_pin(6, "GNSS-1PPS", 42, [_parent(0)])]
    with pytest.raises(ValueError):
        select_pin(json.dumps(pins), 42)


def test_select_pin_rejects_invalid_json():
    with pytest.raises(ValueError, match="failed to unmarshal"):
        select_pin("not json", 42)


def test_pin_from_dict_reads_parents():
    pin = NetlinkPin.from_dict(_pin(6, "GNSS-1PPS", 42, [_parent(1, phase_offset=-20)]))
    assert pin.id == 6
    assert pin.label == "GNSS-1PPS"
    assert pin.parent_devices[0].parent_id == 1
    assert pin.parent_devices[0].phase_offset == -20


def test_get_netlink_parameters():
    clock_id = 1234567890123456789
    pins = [
        _pin(6, "GNSS-1PPS", clock_id, [_parent(0), _parent(1)]),
        _pin(7, "SMA1", clock_id, [_parent(0)]),
    ]
    ctx = FakeContext(
        {
            "date": DATE_RAW,
            "dpll-netlink-clock-id": str(clock_id),
            "dpll-netlink-pins": json.dumps(pins),
        }
    )
    params = get_netlink_parameters(ctx, "ensTestA")
    assert params == NetlinkParameters(
        timestamp=DATE_FORMATTED, pin_type="GNSS-1PPS", clock_id=clock_id, offset_pin=6
    )
    assert "export IFNAME=ensTestA;" in ctx.scripts[0]


def test_get_netlink_parameters_rejects_bad_clock_id():
    ctx = FakeContext(
        {"date": DATE_RAW, "dpll-netlink-clock-id": "-5", "dpll-netlink-pins": "[]"}
    )
    with pytest.raises(RuntimeError, match="failed to fetch netlink info"):
        get_netlink_parameters(ctx, "ensTestB")


def test_get_dpll_netlink_info():
    clock_id = 1111
    devices = [
        {"clock-id": clock_id, "id": 0, "lock-status": "locked", "module-name": "ice", "type": "eec"},
        {"clock-id": clock_id, "id": 1, "lock-status": "holdover", "module-name": "ice", "type": "pps"},
        {"clock-id": 2222, "id": 2, "lock-status": "freerun", "module-name": "ice", "type": "pps"},
    ]
    pin = _pin(6, "GNSS-1PPS", clock_id, [_parent(0), _parent(1, phase_offset=-1870360)])
    ctx = FakeContext(
        {
            "date": DATE_RAW,
            "dpll-netlink-device": json.dumps(devices),
            "dpll-netlink-offset": json.dumps(pin),
        }
    )
    params = NetlinkParameters(pin_type="GNSS-1PPS", clock_id=clock_id, offset_pin=6)
    info = get_dpll_netlink_info(ctx, params)
    assert info.timestamp == DATE_FORMATTED
    assert info.pin_type == "GNSS-1PPS"
    assert info.eec_state == "2"
    assert info.pps_state == "4"
    assert info.pps_offset == -1870360
    assert '{"id": 6}' in ctx.scripts[0]


def test_get_dpll_netlink_info_unknown_state():
    clock_id = 3333
    devices = [
        {"clock-id": clock_id, "id": 1, "lock-status": "bogus", "module-name": "ice", "type": "pps"},
    ]
    ctx = FakeContext(
        {"date": DATE_RAW, "dpll-netlink-device": json.dumps(devices), "dpll-netlink-offset": "{}"}
    )
    info = get_dpll_netlink_info(ctx, NetlinkParameters(clock_id=clock_id, offset_pin=3))
    assert info.pps_state == "-1"
    assert info.pps_offset == 0


def test_get_dpll_netlink_info_tolerates_bad_json():
    ctx = FakeContext(
        {"date": DATE_RAW, "dpll-netlink-device": "oops", "dpll-netlink-offset": "oops"}
    )
    info = get_dpll_netlink_info(ctx, NetlinkParameters(clock_id=4444, offset_pin=1))
    assert info.eec_state == ""
    assert info.pps_state == ""
    assert info.timestamp == DATE_FORMATTED


def test_get_dpll_netlink_info_wraps_failures():
    ctx = FakeContext({"date": "not a date"})
    with pytest.raises(RuntimeError, match="via netlink"):
        get_dpll_netlink_info(ctx, NetlinkParameters(clock_id=5555, offset_pin=1))