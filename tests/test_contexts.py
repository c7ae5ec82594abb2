import copy

import pytest

from vsesync.clients.clientset import Clientset, PodApi
from vsesync.contexts import (
    NETLINK_DEBUG_CONTAINER,
    NETLINK_DEBUG_CONTAINER_IMAGE,
    NETLINK_DEBUG_POD,
    PTP_CONTAINER,
    PTP_NAMESPACE,
    get_netlink_context,
    get_ptp_daemon_context,
)


def _lookup(pod, path):
    value = pod
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class FakePodApi(PodApi):
    def __init__(self, pods=()):
        self.pods = list(pods)
        self.created = []
        self.execs = []

    def list_pods(self, namespace, field_selector=None):
        pods = [p for p in self.pods if p["metadata"]["namespace"] == namespace]
        if field_selector:
            key, value = field_selector.split("=", 1)
            pods = [p for p in pods if _lookup(p, key) == value]
        return pods

    def create_pod(self, manifest):
        self.created.append(copy.deepcopy(manifest))
        stored = copy.deepcopy(manifest)
        stored["status"] = {"phase": "Running"}
        self.pods.append(stored)
        return stored

    def delete_pod(self, namespace, name):
        self.pods = [p for p in self.pods if p["metadata"]["name"] != name]

    def exec_in_container(self, namespace, pod_name, container_name, command, stdin=None):
        self.execs.append((namespace, pod_name, container_name))
        return "out", ""


def _daemon_pod(name, node):
    return {
        "metadata": {"name": name, "namespace": PTP_NAMESPACE},
        "spec": {"nodeName": node, "containers": [{"name": PTP_CONTAINER}]},
        "status": {"phase": "Running"},
    }


def _clientset(api):
    return Clientset(api, ["kubeconfig"])


def test_ptp_daemon_context_targets_daemon_container():
    api = FakePodApi([_daemon_pod("linuxptp-daemon-abcde", "node-a")])
    ctx = get_ptp_daemon_context(_clientset(api), "node-a")
    assert ctx.namespace == PTP_NAMESPACE
    assert ctx.container_name == PTP_CONTAINER
    assert ctx.pod_name == "linuxptp-daemon-abcde"
    ctx.exec_command(["true"])
    assert api.execs == [(PTP_NAMESPACE, "linuxptp-daemon-abcde", PTP_CONTAINER)]


def test_ptp_daemon_context_without_daemon_raises():
    api = FakePodApi([_daemon_pod("linuxptp-daemon-abcde", "node-b")])
    with pytest.raises(LookupError):
        get_ptp_daemon_context(_clientset(api), "node-a")


def test_netlink_context_creates_debug_pod():
    api = FakePodApi()
    ctx = get_netlink_context(_clientset(api), "node-a", False)
    assert ctx.pod_name == NETLINK_DEBUG_POD
    assert ctx.container_name == NETLINK_DEBUG_CONTAINER
    ctx.create_pod_and_wait()
    manifest = api.created[0]
    container = manifest["spec"]["containers"][0]
    assert container["image"] == NETLINK_DEBUG_CONTAINER_IMAGE
    assert container["command"] == ["sleep", "inf"]
    assert container["securityContext"]["capabilities"]["add"] == ["SYS_ADMIN", "NET_ADMIN"]
    assert container["volumeMounts"] == [{"name": "modules", "mountPath": "/lib/modules"}]
    assert manifest["spec"]["hostNetwork"] is True
    assert manifest["spec"]["nodeName"] == "node-a"
    assert manifest["metadata"]["namespace"] == PTP_NAMESPACE


def test_unmanaged_netlink_context_does_not_create():
    api = FakePodApi()
    ctx = get_netlink_context(_clientset(api), "node-a", True)
    with pytest.raises(RuntimeError):
        ctx.create_pod_and_wait()
    assert api.created == []