"""Callbacks that persist collected output to a file or to standard output."""

from __future__ import annotations

import dataclasses
import json
import os
import sys
from dataclasses import dataclass
from enum import Enum, auto
from typing import IO, Any, Protocol

_LOG_FILE_PERMISSIONS = 0o666


class CallbackError(Exception):
    """Raised when a callback cannot format or persist its output."""


class OutputFormat(Enum):
    """How a callback renders the values handed to it."""

    RAW = auto()
    ANALYSER_JSON = auto()


def _jsonable(value: Any) -> Any:
    """Convert a value into plain JSON data, honouring ``to_dict`` where present."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return _jsonable(to_dict())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        items = value.items()
        if all(isinstance(key, str) for key in value):
            items = sorted(items)
        return {key: _jsonable(item) for key, item in items}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _dumps(value: Any) -> str:
    try:
        return json.dumps(_jsonable(value), separators=(",", ":"))
    except (TypeError, ValueError) as err:
        raise CallbackError(f"failed to marshal {type(value).__name__}: {err}") from err


@dataclass
class AnalyserFormat:
    """One entry in the format consumed by the analysers."""

    id: str
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"data": _jsonable(self.data), "id": self.id}


class OutputType(Protocol):
    """Anything a collector hands to a callback."""

    def analyser_format(self) -> list[AnalyserFormat]:
        ...


def _format_output(output: OutputType, tag: str, output_format: OutputFormat) -> str:
    if output_format is OutputFormat.RAW:
        return f"{type(output).__name__}:{tag}, {_dumps(output)}"
    if output_format is OutputFormat.ANALYSER_JSON:
        try:
            entries = output.analyser_format()
        except Exception as err:
            raise CallbackError(f"failed to get AnalyserFormat {err}") from err
        return "\n".join(_dumps(entry) for entry in entries)
    raise CallbackError("unknown format")


def get_file_handle(filename: str) -> IO[str]:
    """Return standard output for "" or "-", otherwise open the named file for writing."""
    if filename in ("", "-"):
        return sys.stdout
    try:
        descriptor = os.open(filename, os.O_CREAT | os.O_WRONLY, _LOG_FILE_PERMISSIONS)
    except OSError as err:
        raise CallbackError(f"failed to open file: {err}") from err
    return os.fdopen(descriptor, "w")


class FileCallback:
    """Writes each formatted output, followed by a newline, to a file handle."""

    def __init__(self, file_handle: IO[str], output_format: OutputFormat = OutputFormat.RAW) -> None:
        self._file_handle = file_handle
        self.output_format = output_format

    def call(self, output: OutputType, tag: str) -> None:
        text = _format_output(output, tag, self.output_format) + "\n"
        try:
            self._file_handle.write(text)
        except (OSError, ValueError) as err:
            raise CallbackError(f"failed to write to file in callback: {err}") from err

    def clean_up(self) -> None:
        try:
            if self._file_handle is sys.stdout:
                self._file_handle.flush()
            else:
                self._file_handle.close()
        except OSError as err:
            raise CallbackError(f"failed to close file handle in callback: {err}") from err

    def __enter__(self) -> FileCallback:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.clean_up()


def setup_callback(filename: str, output_format: OutputFormat) -> FileCallback:
    """Build a FileCallback writing to ``filename`` (standard output for "" or "-")."""
    return FileCallback(get_file_handle(filename), output_format)