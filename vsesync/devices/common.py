"""Shared helpers for gathering device values through an exec context."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Iterable, Mapping

from vsesync.clients.command import Cmd, CmdGroup, ExecContext

_NANOS_PER_SECOND = 1_000_000_000
_TIMESTAMP = re.compile(r"^(\d+)(?:\.(\d+))?$")
_SHELL = ["/usr/bin/sh"]

PostProcessor = Callable[[Mapping[str, str]], Mapping[str, Any]]


def parse_timestamp(value: str) -> int:
    """Parse ``seconds[.fraction]`` since the epoch into integer nanoseconds."""
    match = _TIMESTAMP.match(value.strip())
    if match is None:
        raise ValueError(f"failed to parse timestamp {value!r}")
    seconds, fraction = match.group(1), match.group(2) or ""
    nanos = int(fraction[:9].ljust(9, "0"))
    return int(seconds) * _NANOS_PER_SECOND + nanos


def format_timestamp_rfc3339nano(value: str) -> str:
    """Render an epoch timestamp string as RFC 3339 UTC with trimmed nanoseconds."""
    seconds, nanos = divmod(parse_timestamp(value), _NANOS_PER_SECOND)
    text = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    if nanos:
        text += "." + f"{nanos:09d}".rstrip("0")
    return text + "Z"


@lru_cache(maxsize=None)
def date_command() -> Cmd:
    """The shared command reporting the remote clock as an RFC 3339 timestamp."""
    return Cmd("date", "date +%s.%N", output_processor=format_timestamp_rfc3339nano)


def run_commands(
    ctx: ExecContext,
    commands: Iterable[Cmd],
    post_processor: PostProcessor | None = None,
) -> dict[str, Any]:
    """Run commands as one shell script and return their results.

    The post processor's values are merged over the raw extracted values.
    """
    group = CmdGroup(list(commands))
    stdout, _ = ctx.exec_command_stdin(_SHELL, group.full_command)
    raw = group.extract_result(stdout)
    result: dict[str, Any] = dict(raw)
    if post_processor is not None:
        result.update(post_processor(raw))
    return result