"""Collectors of DPLL state, read from sysfs where present or over netlink otherwise."""

from __future__ import annotations

import logging

from vsesync.clients.command import ExecContext
from vsesync.clients.exec_context import ContainerCreationExecContext
from vsesync.collectors.base import BaseCollector, CollectionConstructor, CollectorError
from vsesync.collectors.registry import Inclusion, register_collector
from vsesync.contexts import get_netlink_context, get_ptp_daemon_context
from vsesync.devices.dpll_fs import (
    FilesystemDPLLInfo,
    build_filesystem_dpll_info_fetcher,
    get_dpll_filesystem_info,
    is_dpll_filesystem_present,
)
from vsesync.devices.dpll_netlink import (
    NetlinkDPLLInfo,
    NetlinkParameters,
    build_dpll_netlink_device_fetcher,
    get_dpll_netlink_info,
    get_netlink_parameters,
)

log = logging.getLogger(__name__)

DPLL_COLLECTOR_NAME = "DPLL"
DPLL_FILESYSTEM_COLLECTOR_NAME = "DPLL-Filesystem"
DPLL_INFO = "dpll-info-fs"
DPLL_NETLINK_COLLECTOR_NAME = "DPLL-Netlink"
DPLL_NETLINK_INFO = "dpll-info-nl"


class DPLLFilesystemCollector(BaseCollector):
    """Polls the DPLL files in sysfs of the PTP interface."""

    def __init__(self, constructor: CollectionConstructor, ctx: ExecContext) -> None:
        super().__init__(
            name=DPLL_FILESYSTEM_COLLECTOR_NAME,
            callback_tag=DPLL_INFO,
            callback=constructor.callback,
            poll_interval=constructor.poll_interval,
            poller=self._fetch,
        )
        self.ctx = ctx
        self.interface_name = constructor.ptp_interface

    def _fetch(self) -> FilesystemDPLLInfo:
        return get_dpll_filesystem_info(self.ctx, self.interface_name)


class DPLLNetlinkCollector(BaseCollector):
    """Polls the DPLL over netlink from a debug pod it manages."""

    def __init__(
        self, constructor: CollectionConstructor, ctx: ContainerCreationExecContext
    ) -> None:
        super().__init__(
            name=DPLL_NETLINK_COLLECTOR_NAME,
            callback_tag=DPLL_NETLINK_INFO,
            callback=constructor.callback,
            poll_interval=constructor.poll_interval,
            poller=self._fetch,
        )
        self.ctx = ctx
        self.interface_name = constructor.ptp_interface
        self.unmanaged_debug_pod = constructor.unmanaged_debug_pod
        self.params: NetlinkParameters | None = None

    def start(self) -> None:
        """Start the debug pod and find the clock id and offset pin to poll."""
        self.running = True
        try:
            self.ctx.create_pod_and_wait()
        except Exception as err:
            raise CollectorError(f"dpll netlink collector failed to start pod: {err}") from err
        log.debug("dpll interface name: %s", self.interface_name)
        try:
            params = get_netlink_parameters(self.ctx, self.interface_name)
        except Exception as err:
            raise CollectorError(f"dpll netlink collector failed to find clock id: {err}") from err
        log.debug("clock id: %s", params.clock_id)
        build_dpll_netlink_device_fetcher(params)
        self.params = params

    def _fetch(self) -> NetlinkDPLLInfo:
        if self.params is None:
            raise CollectorError("dpll netlink collector has not been started")
        return get_dpll_netlink_info(self.ctx, self.params)

    def clean_up(self) -> None:
        """Stop the collector and remove the debug pod."""
        self.running = False
        try:
            self.ctx.delete_pod_and_wait()
        except Exception as err:
            raise CollectorError(f"dpll netlink collector failed to clean up: {err}") from err


def new_dpll_filesystem_collector(constructor: CollectionConstructor) -> DPLLFilesystemCollector:
    """Build a collector reading the DPLL from sysfs."""
    try:
        ctx = get_ptp_daemon_context(constructor.clientset, constructor.ptp_node_name)
    except Exception as err:
        raise CollectorError(f"failed to create DPLLFilesystemCollector: {err}") from err
    build_filesystem_dpll_info_fetcher(constructor.ptp_interface)
    return DPLLFilesystemCollector(constructor, ctx)


def new_dpll_netlink_collector(constructor: CollectionConstructor) -> DPLLNetlinkCollector:
    """Build a collector reading the DPLL over netlink."""
    try:
        ctx = get_netlink_context(
            constructor.clientset, constructor.ptp_node_name, constructor.unmanaged_debug_pod
        )
    except Exception as err:
        raise CollectorError(f"failed to create DPLLNetlinkCollector: {err}") from err
    return DPLLNetlinkCollector(constructor, ctx)


def new_dpll_collector(constructor: CollectionConstructor) -> BaseCollector:
    """Build a sysfs DPLL collector if the files exist, otherwise a netlink one."""
    try:
        ctx = get_ptp_daemon_context(constructor.clientset, constructor.ptp_node_name)
    except Exception as err:
        raise CollectorError(f"failed to create DPLLCollector: {err}") from err
    try:
        present = is_dpll_filesystem_present(ctx, constructor.ptp_interface)
    except Exception as err:  # noqa: BLE001 - fall back to netlink
        log.debug("failed to check DPLL filesystem: %s", err)
        present = False
    log.debug("DPLL FS exists: %s", present)
    if present:
        return new_dpll_filesystem_collector(constructor)
    return new_dpll_netlink_collector(constructor)


register_collector(DPLL_COLLECTOR_NAME, new_dpll_collector, Inclusion.OPTIONAL)