"""The shared shape of collectors: construction values, poll results and polling."""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable

from vsesync.clients.clientset import Clientset

log = logging.getLogger(__name__)

# Every collector hands its output to the callback under this tag.
GPS_NAV_KEY = "gpsNav"

Poller = Callable[[], Any]


class CollectorError(RuntimeError):
    """Raised when a collector cannot be built, started, polled or cleaned up."""


@dataclass
class CollectionConstructor:
    """Every value any collector needs to be built."""

    callback: Any
    clientset: Clientset
    errored_polls: queue.Queue = field(default_factory=queue.Queue)
    ptp_interface: str = ""
    ptp_node_name: str = ""
    logs_output_file: str = ""
    temp_dir: str = "."
    poll_interval: int = 1
    dev_info_announce_interval: int = 60
    include_log_timestamps: bool = False
    keep_debug_files: bool = False
    unmanaged_debug_pod: bool = False


@dataclass
class PollResult:
    """The outcome of one poll of a collector."""

    collector_name: str
    errors: list[Exception] = field(default_factory=list)


class BaseCollector:
    """A collector that fetches a value with its poller and passes it to the callback."""

    def __init__(
        self,
        name: str,
        callback_tag: str,
        callback: Any,
        poll_interval: int,
        is_announcer: bool = False,
        poller: Poller | None = None,
    ) -> None:
        self.name = name
        self.callback_tag = callback_tag
        self.callback = callback
        self.poll_interval = timedelta(seconds=poll_interval)
        self.is_announcer = is_announcer
        self.running = False
        self._poller = poller

    def start(self) -> None:
        """Mark the collector running; it must have a poller."""
        self.running = True
        if self._poller is None:
            raise CollectorError(f"poller not set for collector {self.name}")

    def clean_up(self) -> None:
        """Stop the collector so it can be started again."""
        self.running = False

    def _poll_once(self) -> None:
        if self._poller is None:
            raise CollectorError(f"poller not set for collector {self.name}")
        try:
            result = self._poller()
        except Exception as err:
            raise CollectorError(f"failed to fetch  {self.callback_tag} {err}") from err
        try:
            self.callback.call(result, GPS_NAV_KEY)
        except Exception as err:
            raise CollectorError(f"callback failed {err}") from err

    def poll(self) -> PollResult:
        """Fetch a value, hand it to the callback and report any error."""
        errors: list[Exception] = []
        try:
            self._poll_once()
        except CollectorError as err:
            log.debug("poll of %s failed: %s", self.name, err)
            errors.append(err)
        return PollResult(collector_name=self.name, errors=errors)