"""Running commands inside containers, and managing pods created for that."""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Mapping, Sequence

from vsesync.clients.clientset import Clientset, Pod
from vsesync.clients.command import ExecContext

log = logging.getLogger(__name__)

START_TIMEOUT_DEFAULT = timedelta(seconds=5)
DELETION_TIMEOUT_DEFAULT = timedelta(minutes=10)

_POLL_SLEEP_SECONDS = 1e-6

_UNIT_NANOS = {
    "ns": Decimal(1),
    "us": Decimal(1_000),
    "µs": Decimal(1_000),
    "μs": Decimal(1_000),
    "ms": Decimal(1_000_000),
    "s": Decimal(1_000_000_000),
    "m": Decimal(60_000_000_000),
    "h": Decimal(3_600_000_000_000),
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class ExecError(Exception):
    """A command could not be run in a container; holds any output gathered."""

    def __init__(self, message: str, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


def _parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "1.5h" or "2h45m"."""
    body = text
    negative = False
    if body[:1] in ("+", "-"):
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f"invalid duration {text!r}")
    nanos = Decimal(0)
    position = 0
    while position < len(body):
        match = _DURATION_PART.match(body, position)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        nanos += Decimal(match.group(1)) * _UNIT_NANOS[match.group(2)]
        position = match.end()
    micros = nanos / 1000
    return timedelta(microseconds=float(-micros if negative else micros))


def fetch_duration_env(key: str, default: timedelta) -> timedelta:
    """Read a duration from environment variable ``key``, or return ``default``."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return _parse_duration(value)
    except ValueError as err:
        raise ValueError(f"failed to parse {key} as a duration: {err}") from err


class ContainerExecContext(ExecContext):
    """Runs commands in one container of a pod found by name prefix and node."""

    def __init__(
        self,
        clientset: Clientset,
        namespace: str,
        pod_name_prefix: str,
        container_name: str,
        node_name: str = "",
        pod_name: str | None = None,
    ) -> None:
        self.clientset = clientset
        self.namespace = namespace
        self.pod_name_prefix = pod_name_prefix
        self.container_name = container_name
        self.node_name = node_name
        if pod_name is None:
            pod_name = clientset.find_pod_name_from_prefix(namespace, pod_name_prefix, node_name)
        self.pod_name = pod_name

    def _refresh(self) -> None:
        self.pod_name = self.clientset.find_pod_name_from_prefix(
            self.namespace, self.pod_name_prefix, self.node_name
        )

    def _exec(self, command: Sequence[str], stdin: str | None) -> tuple[str, str]:
        log.debug(
            "execute command on ns=%s, pod=%s container=%s, cmd: %s",
            self.namespace,
            self.pod_name,
            self.container_name,
            " ".join(command),
        )
        try:
            return self.clientset.api.exec_in_container(
                self.namespace, self.pod_name, self.container_name, list(command), stdin
            )
        except Exception as err:
            stdout = getattr(err, "stdout", "") or ""
            stderr = getattr(err, "stderr", "") or ""
            if isinstance(err, LookupError):
                log.debug("Pod %s was not found, likely restarted so refreshing context", self.pod_name)
                try:
                    self._refresh()
                except Exception as refresh_err:  # noqa: BLE001 - refreshing is best effort
                    log.debug("Failed to refresh container context: %s", refresh_err)
            log.debug("command: %s", command)
            if stdin is not None:
                log.debug("stdin: %s", stdin)
            log.debug("stderr: %s", stderr)
            log.debug("stdout: %s", stdout)
            raise ExecError(f"error running remote command: {err}", stdout, stderr) from err

    def exec_command(self, command: Sequence[str]) -> tuple[str, str]:
        """Run ``command`` in the container and return (stdout, stderr)."""
        return self._exec(command, None)

    def exec_command_stdin(self, command: Sequence[str], stdin: str) -> tuple[str, str]:
        """Run ``command`` with ``stdin`` fed to it and return (stdout, stderr)."""
        return self._exec(command, stdin)


@dataclass
class Volume:
    """A pod volume and where it is mounted in the container."""

    name: str
    mount_path: str
    source: dict[str, Any] = field(default_factory=dict)


class ContainerCreationExecContext(ContainerExecContext):
    """An exec context for a pod this tool creates and removes itself."""

    def __init__(
        self,
        clientset: Clientset,
        namespace: str,
        pod_name: str,
        container_name: str,
        container_image: str,
        labels: Mapping[str, str] | None = None,
        command: Sequence[str] = (),
        security_context: Mapping[str, Any] | None = None,
        host_network: bool = False,
        volumes: Sequence[Volume] = (),
        node_name: str = "",
        unmanaged_debug_pod: bool = False,
    ) -> None:
        super().__init__(
            clientset, namespace, pod_name, container_name, node_name, pod_name=pod_name
        )
        self.container_image = container_image
        self.labels = dict(labels or {})
        self.command = list(command)
        self.security_context = dict(security_context) if security_context else None
        self.host_network = host_network
        self.volumes = list(volumes)
        self.unmanaged_debug_pod = unmanaged_debug_pod
        self.start_timeout = fetch_duration_env("COLLECTOR_POD_START_TIMEOUT", START_TIMEOUT_DEFAULT)
        self.deletion_timeout = fetch_duration_env(
            "COLLECTOR_POD_DELETE_TIMEOUT", DELETION_TIMEOUT_DEFAULT
        )
        self._pod: Pod | None = None

    def _manifest(self) -> Pod:
        container: dict[str, Any] = {
            "name": self.container_name,
            "image": self.container_image,
            "imagePullPolicy": "IfNotPresent",
        }
        spec: dict[str, Any] = {"containers": [container], "hostNetwork": self.host_network}
        if self.node_name:
            spec["nodeName"] = self.node_name
        if self.command:
            container["command"] = list(self.command)
        if self.security_context is not None:
            container["securityContext"] = self.security_context
        if self.volumes:
            spec["volumes"] = [{"name": v.name, **v.source} for v in self.volumes]
            container["volumeMounts"] = [
                {"name": v.name, "mountPath": v.mount_path} for v in self.volumes
            ]
        return {
            "metadata": {
                "name": self.pod_name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
            },
            "spec": spec,
        }

    def _create_pod(self) -> None:
        try:
            self._pod = self.clientset.api.create_pod(self._manifest())
        except Exception as err:
            raise RuntimeError(f"failed to create pod: {err}") from err

    def _list_pods(self, field_selector: str | None = None) -> list[Pod]:
        try:
            return self.clientset.api.list_pods(self.namespace, field_selector)
        except Exception as err:
            raise RuntimeError(f"failed to find pods: {err}") from err

    def _check_for_left_over_pod(self) -> None:
        pods = self._list_pods(f"metadata.name={self.pod_name}")
        if len(pods) > 1:
            raise RuntimeError(f"expected at most one pod found {len(pods)}")
        for pod in pods:
            containers = pod.get("spec", {}).get("containers", [])
            if containers and containers[0].get("image") == self.container_image:
                log.info("Found pod running correct image")
                self._pod = pod

    def _refresh_pod(self) -> None:
        pods = self._list_pods(f"metadata.name={self.pod_name}")
        if not pods:
            raise RuntimeError(f"failed to find pod: {self.pod_name}")
        self._pod = pods[0]

    def _is_pod_running(self) -> bool:
        self._refresh_pod()
        assert self._pod is not None
        return self._pod.get("status", {}).get("phase") == "Running"

    def _wait_for_pod_to_start(self) -> None:
        start = time.monotonic()
        limit = self.start_timeout.total_seconds()
        while time.monotonic() - start <= limit:
            if self._is_pod_running():
                return
            time.sleep(_POLL_SLEEP_SECONDS)
        raise TimeoutError("timed out waiting for pod to start")

    def create_pod_and_wait(self) -> None:
        """Ensure the pod is running, creating it unless it is unmanaged."""
        self._check_for_left_over_pod()
        running = self._pod is not None and self._is_pod_running()
        if not running:
            if self.unmanaged_debug_pod:
                raise RuntimeError("life cycling disabled however pod not found")
            self._create_pod()
        self._wait_for_pod_to_start()

    def _wait_for_pod_to_delete(self) -> None:
        start = time.monotonic()
        limit = self.deletion_timeout.total_seconds()
        while time.monotonic() - start <= limit:
            names = {pod.get("metadata", {}).get("name") for pod in self._list_pods()}
            if self.pod_name not in names:
                return
            time.sleep(_POLL_SLEEP_SECONDS)
        raise TimeoutError("pod has not terminated within the timeout")

    def delete_pod_and_wait(self) -> None:
        """Delete the pod if it is running and wait for it to go; unmanaged pods are left alone."""
        if self.unmanaged_debug_pod:
            return
        self._check_for_left_over_pod()
        running = self._pod is not None and self._is_pod_running()
        if not running:
            return
        assert self._pod is not None
        metadata = self._pod.get("metadata", {})
        try:
            self.clientset.api.delete_pod(
                metadata.get("namespace", self.namespace), metadata.get("name", self.pod_name)
            )
        except Exception as err:
            raise RuntimeError(f"failed to delete pod: {err}") from err
        self._wait_for_pod_to_delete()