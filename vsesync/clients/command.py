"""Shell commands whose output is delimited by keyed tags, and groups of them."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Iterator, Sequence


class CommandError(Exception):
    """Raised when a command's result cannot be extracted from its output."""


class ExecContext(ABC):
    """Somewhere commands can be run, returning (stdout, stderr)."""

    @abstractmethod
    def exec_command(self, command: Sequence[str]) -> tuple[str, str]:
        """Run ``command`` and return its standard output and error."""

    @abstractmethod
    def exec_command_stdin(self, command: Sequence[str], stdin: str) -> tuple[str, str]:
        """Run ``command`` feeding ``stdin`` and return its standard output and error."""


@dataclass
class Cmd:
    """A command wrapped in echoed ``<key>`` and ``</key>`` markers."""

    key: str
    command: str
    output_processor: Callable[[str], str] | None = None
    _pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError(f"command for key {self.key} must not be empty")
        key = re.escape(self.key)
        self._pattern = re.compile(rf"<{key}>\n(.*)\n</{key}>", re.DOTALL)

    @property
    def full_command(self) -> str:
        body = self.command if self.command.endswith(";") else self.command + ";"
        return f"echo '<{self.key}>';{body}echo '</{self.key}>';"

    def extract_result(self, output: str) -> dict[str, str]:
        """Return ``{key: value}`` for the value found between this command's markers."""
        match = self._pattern.search(output)
        if match is None:
            raise CommandError(f"failed to find result for key: {self.key}")
        value = match.group(1)
        if self.output_processor is not None:
            try:
                value = self.output_processor(value)
            except Exception as err:
                raise CommandError(f"failed to cleanup value {value} of key {self.key}") from err
        return {self.key: value}


@dataclass
class CmdGroup:
    """Several commands run together as one script."""

    cmds: list[Cmd] = field(default_factory=list)

    def add_command(self, cmd: Cmd) -> None:
        self.cmds.append(cmd)

    @property
    def full_command(self) -> str:
        return "".join(cmd.full_command for cmd in self.cmds)

    def extract_result(self, output: str) -> dict[str, str]:
        """Extract every command's result, failing on the first one missing."""
        results: dict[str, str] = {}
        for cmd in self.cmds:
            results.update(cmd.extract_result(output))
        return results

    def __iter__(self) -> Iterator[Cmd]:
        return iter(self.cmds)

    def __len__(self) -> int:
        return len(self.cmds)