"""Exec contexts for the PTP daemon and for the netlink debug pod."""

from __future__ import annotations

from vsesync.clients.clientset import Clientset
from vsesync.clients.exec_context import (
    ContainerCreationExecContext,
    ContainerExecContext,
    Volume,
)

PTP_NAMESPACE = "openshift-ptp"
PTP_POD_NAME_PREFIX = "linuxptp-daemon-"
PTP_CONTAINER = "linuxptp-daemon-container"
GPS_CONTAINER = "gpsd"
NETLINK_DEBUG_POD = "ptp-dpll-netlink-debug-pod"
NETLINK_DEBUG_CONTAINER = "ptp-dpll-netlink-debug-container"
NETLINK_DEBUG_CONTAINER_IMAGE = "quay.io/redhat-partner-solutions/dpll-debug:0.5"


def get_ptp_daemon_context(clientset: Clientset, node_name: str) -> ContainerExecContext:
    """Return a context running commands in the PTP daemon container of a node."""
    return ContainerExecContext(
        clientset, PTP_NAMESPACE, PTP_POD_NAME_PREFIX, PTP_CONTAINER, node_name
    )


def get_netlink_context(
    clientset: Clientset, node_name: str, unmanaged_debug_pod: bool
) -> ContainerCreationExecContext:
    """Return a context for the privileged debug pod that talks to the DPLL over netlink."""
    return ContainerCreationExecContext(
        clientset,
        PTP_NAMESPACE,
        NETLINK_DEBUG_POD,
        NETLINK_DEBUG_CONTAINER,
        NETLINK_DEBUG_CONTAINER_IMAGE,
        labels={},
        command=["sleep", "inf"],
        # NET_ADMIN is needed to reach the netlink interface; SYS_ADMIN lets
        # lspci report the serial number from which the clock id is derived.
        security_context={"capabilities": {"add": ["SYS_ADMIN", "NET_ADMIN"]}},
        host_network=True,
        volumes=[
            Volume(
                name="modules",
                mount_path="/lib/modules",
                source={"hostPath": {"path": "/lib/modules", "type": "Directory"}},
            )
        ],
        node_name=node_name,
        unmanaged_debug_pod=unmanaged_debug_pod,
    )