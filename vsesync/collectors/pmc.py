"""Collector of the PTP grandmaster settings."""

from __future__ import annotations

from vsesync.clients.command import ExecContext
from vsesync.collectors.base import BaseCollector, CollectionConstructor, CollectorError
from vsesync.collectors.registry import Inclusion, register_collector
from vsesync.contexts import get_ptp_daemon_context
from vsesync.devices.pmc import PMCInfo, get_pmc

PMC_COLLECTOR_NAME = "PMC"
PMC_INFO = "pmc-info"


class PMCCollector(BaseCollector):
    """Polls the grandmaster settings through pmc in the PTP daemon container."""

    def __init__(self, constructor: CollectionConstructor, ctx: ExecContext) -> None:
        super().__init__(
            name=PMC_COLLECTOR_NAME,
            callback_tag=PMC_INFO,
            callback=constructor.callback,
            poll_interval=constructor.poll_interval,
            poller=self._fetch,
        )
        self.ctx = ctx

    def _fetch(self) -> PMCInfo:
        return get_pmc(self.ctx)


def new_pmc_collector(constructor: CollectionConstructor) -> PMCCollector:
    """Build a PMC collector for the node in ``constructor``."""
    try:
        ctx = get_ptp_daemon_context(constructor.clientset, constructor.ptp_node_name)
    except Exception as err:
        raise CollectorError(f"failed to create PMCCollector: {err}") from err
    return PMCCollector(constructor, ctx)


register_collector(PMC_COLLECTOR_NAME, new_pmc_collector, Inclusion.OPTIONAL)