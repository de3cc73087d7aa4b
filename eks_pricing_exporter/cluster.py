"""In-memory view of a cluster's nodes and pods."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from .node import Node
from .paginator import Paginator
from .pod import Pod
from .quantity import ResourceList, add_resources

_EPOCH_MIN = datetime.min.replace(tzinfo=timezone.utc)


class _ListClient(Protocol):
    def list_pods(self, cont: str) -> tuple[list[dict[str, Any]], str]: ...

    def list_nodes(self, cont: str) -> tuple[list[dict[str, Any]], str]: ...


@dataclass
class Stats:
    """Aggregate figures over the visible nodes of a cluster."""

    num_nodes: int = 0
    allocatable_resources: ResourceList = field(default_factory=dict)
    used_resources: ResourceList = field(default_factory=dict)
    percent_used_resources: dict[str, float] = field(default_factory=dict)
    nodes: list[Node] = field(default_factory=list)
    total_pods: int = 0
    pods_by_phase: dict[str, int] = field(default_factory=dict)
    bound_pod_count: int = 0
    total_price: float = 0.0


def _sort_key(node: Node) -> tuple[datetime, str]:
    created = node.created()
    if created is None:
        created = _EPOCH_MIN
    elif created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created, node.name()


class Cluster:
    """Thread-safe registry of nodes and the pods bound to them."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[str, Node] = {}
        self._pods: dict[tuple[str, str], Pod] = {}

    def populate(self, client: _ListClient) -> None:
        """Load every pod and node through ``client``'s paginated list calls."""
        for pod in Paginator(client.list_pods).get():
            self.add_pod(Pod(pod))
        for node in Paginator(client.list_nodes).get():
            self.add_node(Node(node))

    def add_node(self, node: Node) -> Node:
        """Add ``node``, or refresh the existing node of the same name."""
        with self._lock:
            existing = self._nodes.get(node.name())
            if existing is not None:
                existing.update(node)
                return existing
            self._nodes[node.name()] = node
            return node

    def delete_node(self, name: str) -> None:
        """Remove a node and every pod scheduled on it."""
        with self._lock:
            self._nodes.pop(name, None)
            for key in [k for k, p in self._pods.items() if p.node_name() == name]:
                del self._pods[key]

    def nodes(self) -> list[Node]:
        with self._lock:
            return list(self._nodes.values())

    def get_node(self, name: str) -> Node | None:
        with self._lock:
            return self._nodes.get(name)

    def add_pod(self, pod: Pod) -> int:
        """Add a pod, binding it to its node; returns the total pod count.

        A pod scheduled on a node not yet known creates a hidden placeholder
        node, updated once the node itself is added.
        """
        with self._lock:
            self._pods[(pod.namespace(), pod.name())] = pod
            total = len(self._pods)
        if not pod.is_scheduled():
            return total
        node = self.get_node(pod.node_name())
        if node is None:
            node = self.add_node(Node({"metadata": {"name": pod.node_name()}}))
            node.hide()
        node.bind_pod(pod)
        return total

    def delete_pod(self, namespace: str, name: str) -> int:
        """Remove a pod and unbind it; returns the remaining pod count."""
        pod = self.get_pod(namespace, name)
        if pod is not None and pod.is_scheduled():
            node = self.get_node(pod.node_name())
            if node is not None:
                node.delete_pod(namespace, name)
        with self._lock:
            self._pods.pop((namespace, name), None)
            return len(self._pods)

    def get_pod(self, namespace: str, name: str) -> Pod | None:
        with self._lock:
            return self._pods.get((namespace, name))

    def stats(self) -> Stats:
        """Totals over visible nodes, nodes sorted by creation time then name."""
        st = Stats()
        with self._lock:
            for pod in self._pods.values():
                node = self._nodes.get(pod.node_name())
                if node is not None and not node.visible():
                    continue
                st.total_pods += 1
                phase = pod.phase()
                st.pods_by_phase[phase] = st.pods_by_phase.get(phase, 0) + 1
                if pod.node_name():
                    st.bound_pod_count += 1

            for node in self._nodes.values():
                if not node.visible():
                    continue
                if node.has_price():
                    st.total_price += node.price
                st.num_nodes += 1
                st.nodes.append(node)
                add_resources(st.allocatable_resources, node.allocatable())
                add_resources(st.used_resources, node.used())

        st.nodes.sort(key=_sort_key)
        return st