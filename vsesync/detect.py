"""Detection of the interfaces configured for ts2phc, to spot multi-card setups."""

from __future__ import annotations

import json
import logging
import re
import sys
from dataclasses import dataclass
from typing import Any, Iterable

from vsesync.clients.clientset import Clientset
from vsesync.clients.command import ExecContext
from vsesync.contexts import get_ptp_daemon_context

log = logging.getLogger(__name__)

_NOT_MASTER = re.compile(r"ts2phc.master\s+0")
_SKIPPED_SECTIONS = ("global", "nmea")
_RUN_DIR = "/var/run/"


@dataclass
class DetectedInterface:
    """An interface named in a ts2phc config and its PTP clock device."""

    name: str
    ptp_clock_device_path: str
    primary: bool

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "ptp_dev": self.ptp_clock_device_path, "primary": self.primary}


def parse_config(contents: str) -> dict[str, list[str]]:
    """Split an ini-like config into the non-empty, non-comment lines of each section."""
    result: dict[str, list[str]] = {}
    section = ""
    for raw in contents.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            section = line[1:-1]
        elif section:
            result.setdefault(section, []).append(line)
    return result


def get_ptp_clock_device(ctx: ExecContext, interface_name: str) -> str:
    """Return the /dev/ptpN device of an interface as reported by ethtool."""
    try:
        stdout, _ = ctx.exec_command(["ethtool", "-T", interface_name])
    except Exception as err:
        raise RuntimeError(f"failed to get ptp clock number: {err}") from err
    for line in stdout.split("\n"):
        if "PTP Hardware Clock:" in line:
            return f"/dev/ptp{line.split(':')[1].strip()}"
    raise LookupError("no PTP clock device found")


def _interfaces_from_config(
    ctx: ExecContext, config: dict[str, list[str]]
) -> list[DetectedInterface]:
    detected = []
    for section, lines in config.items():
        if section in _SKIPPED_SECTIONS:
            continue
        primary = not any(_NOT_MASTER.search(line) for line in lines)
        detected.append(
            DetectedInterface(
                name=section.strip(),
                ptp_clock_device_path=get_ptp_clock_device(ctx, section),
                primary=primary,
            )
        )
    return detected


def detect_interfaces(ctx: ExecContext) -> list[DetectedInterface]:
    """Find the interfaces in every ts2phc config under /var/run."""
    try:
        listing, _ = ctx.exec_command(["ls", _RUN_DIR])
    except Exception as err:
        raise RuntimeError(f"failed to list {_RUN_DIR}: {err}") from err
    config_files = [
        name for name in listing.split() if name.startswith("ts2phc.") and name.endswith(".config")
    ]
    if not config_files:
        raise LookupError("failed to find ts2phc config file")
    if len(config_files) > 1:
        log.warning("Multiple profiles found (%s)", config_files)

    errors: list[str] = []
    detected: list[DetectedInterface] = []
    for config_file in config_files:
        try:
            contents, _ = ctx.exec_command(["cat", _RUN_DIR + config_file])
        except Exception as err:
            errors.append(f"failed to read ts2 config file: {err}")
            contents = getattr(err, "stdout", "") or ""
        detected.extend(_interfaces_from_config(ctx, parse_config(contents)))
    if errors:
        raise RuntimeError("; ".join(errors))
    return detected


def render(interfaces: Iterable[DetectedInterface], as_json: bool) -> str:
    """Render detected interfaces as indented JSON or as a compact listing."""
    items = list(interfaces)
    if as_json:
        return json.dumps([item.to_dict() for item in items], indent=2)
    body = " ".join(
        f"{{{item.name} {item.ptp_clock_device_path} {str(item.primary).lower()}}}"
        for item in items
    )
    return f"[]DetectedInterface([{body}])"


def detect(clientset: Clientset, node_name: str, as_json: bool) -> str:
    """Detect the ts2phc interfaces of a node, write them to standard output and return the text."""
    ctx = get_ptp_daemon_context(clientset, node_name)
    text = render(detect_interfaces(ctx), as_json)
    sys.stdout.write(text)
    return text