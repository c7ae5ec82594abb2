"""Collector of GNSS navigation details."""

from __future__ import annotations

from vsesync.clients.command import ExecContext
from vsesync.collectors.base import GPS_NAV_KEY, BaseCollector, CollectionConstructor, CollectorError
from vsesync.collectors.registry import Inclusion, register_collector
from vsesync.contexts import get_ptp_daemon_context
from vsesync.devices.gps_nav import GPSDetails, get_gps_nav

GPS_COLLECTOR_NAME = "GNSS"


class GPSCollector(BaseCollector):
    """Polls the GNSS receiver through ubxtool in the PTP daemon container."""

    def __init__(self, constructor: CollectionConstructor, ctx: ExecContext) -> None:
        super().__init__(
            name=GPS_COLLECTOR_NAME,
            callback_tag=GPS_NAV_KEY,
            callback=constructor.callback,
            poll_interval=constructor.poll_interval,
            poller=self._fetch,
        )
        self.ctx = ctx
        self.interface_name = constructor.ptp_interface

    def _fetch(self) -> GPSDetails:
        return get_gps_nav(self.ctx)


def new_gps_collector(constructor: CollectionConstructor) -> GPSCollector:
    """Build a GNSS collector for the node in ``constructor``."""
    try:
        ctx = get_ptp_daemon_context(constructor.clientset, constructor.ptp_node_name)
    except Exception as err:
        raise CollectorError(f"failed to create GPSCollector: {err}") from err
    return GPSCollector(constructor, ctx)


register_collector(GPS_COLLECTOR_NAME, new_gps_collector, Inclusion.OPTIONAL)