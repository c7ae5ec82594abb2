"""Access to the Kubernetes pod API through one shared holder."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

Pod = dict[str, Any]


class MissingInputError(ValueError):
    """Raised when a required input, such as a kubeconfig, is not supplied."""


class PodApi(ABC):
    """The pod operations of a Kubernetes cluster.

    Pods are manifests in the API's own dictionary shape, for example
    ``{"metadata": {"name": ...}, "spec": {...}, "status": {"phase": ...}}``.
    """

    @abstractmethod
    def list_pods(self, namespace: str, field_selector: str | None = None) -> list[Pod]:
        """List the pods of a namespace, optionally filtered by a ``key=value`` field selector."""

    @abstractmethod
    def create_pod(self, manifest: Pod) -> Pod:
        """Create a pod from a manifest and return it as stored by the cluster."""

    @abstractmethod
    def delete_pod(self, namespace: str, name: str) -> None:
        """Delete a pod with foreground propagation."""

    @abstractmethod
    def exec_in_container(
        self,
        namespace: str,
        pod_name: str,
        container_name: str,
        command: Sequence[str],
        stdin: str | None = None,
    ) -> tuple[str, str]:
        """Run a command in a container and return (stdout, stderr).

        Raises LookupError when the pod does not exist. Any exception may carry
        ``stdout`` and ``stderr`` attributes holding the partial output.
        """


def _pod_name(pod: Pod) -> str:
    return str(pod.get("metadata", {}).get("name", ""))


@dataclass
class Clientset:
    """Holds the pod API and the kubeconfig paths it was configured from."""

    api: PodApi
    kubeconfig_paths: Sequence[str]
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    _paths: tuple[str, ...] = field(init=False, repr=False, default=())

    def __post_init__(self) -> None:
        paths = tuple(self.kubeconfig_paths)
        if not paths:
            raise MissingInputError(
                "must have at least one kubeconfig to initialise a new Clientset"
            )
        if any(not path for path in paths):
            raise MissingInputError(
                "failed to create k8s clients holder: kubeconfig path must not be empty"
            )
        log.info("creating new Clientset from %s", list(paths))
        self.kubeconfig_paths = paths

    def find_pod_name_from_prefix(self, namespace: str, prefix: str, node_name: str = "") -> str:
        """Return the one non-debug pod whose name starts with ``prefix``."""
        selector = f"spec.nodeName={node_name}" if node_name else None
        try:
            pods = self.api.list_pods(namespace, selector)
        except Exception as err:
            raise RuntimeError(f"failed to getting pod list: {err}") from err

        names = [
            name
            for name in map(_pod_name, pods)
            if name.startswith(prefix) and not name.endswith("-debug")
        ]
        if not names:
            raise LookupError(
                f"no pod with prefix {prefix} found in namespace {namespace} on node {node_name}"
            )
        if len(names) > 1:
            raise LookupError(
                f"too many ({len(names)}) pods with prefix {prefix} found in namespace "
                f"{namespace} on node {node_name}"
            )
        return names[0]