"""Node model built from Kubernetes node objects."""

from __future__ import annotations

import math
import threading
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from .pod import Pod
from .quantity import ResourceList, add_resources, parse_quantity, subtract_resources

if TYPE_CHECKING:
    from .repository import Repository

LABEL_INSTANCE_TYPE = "node.kubernetes.io/instance-type"
LABEL_ZONE = "topology.kubernetes.io/zone"
LABEL_REGION = "topology.kubernetes.io/region"


class NodeCapacityType(str, Enum):
    """How the capacity behind a node is bought."""

    UNKNOWN = ""
    ON_DEMAND = "on-demand"
    SPOT = "spot"
    FARGATE = "fargate"

    def __str__(self) -> str:
        return self.value


class NodeStatus(str, Enum):
    """Summary of a node's scheduling and lifecycle state."""

    UNKNOWN = "Unknown"
    CORDONED_DELETING = "Cordoned/Deleting"
    DELETING = "Deleting"
    CORDONED = "Cordoned"
    READY = "Ready"

    def __str__(self) -> str:
        return self.value


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


class Node:
    """A node as seen by the API server, with the pods bound to it."""

    def __init__(self, node: Mapping[str, Any]) -> None:
        self._lock = threading.RLock()
        self._visible = False
        self._node: dict[str, Any] = dict(node)
        self._pods: dict[tuple[str, str], Pod] = {}
        self._used: ResourceList = {}
        self.price: float = 0.0

    def _section(self, key: str) -> Mapping[str, Any]:
        with self._lock:
            return self._node.get(key) or {}

    def _labels(self) -> Mapping[str, str]:
        return self._section("metadata").get("labels") or {}

    def is_on_demand(self) -> bool:
        labels = self._labels()
        return (
            labels.get("karpenter.sh/capacity-type") == "on-demand"
            or labels.get("eks.amazonaws.com/capacityType") == "ON_DEMAND"
        )

    def is_spot(self) -> bool:
        labels = self._labels()
        return (
            labels.get("karpenter.sh/capacity-type") == "spot"
            or labels.get("eks.amazonaws.com/capacityType") == "SPOT"
        )

    def is_fargate(self) -> bool:
        return self._labels().get("eks.amazonaws.com/compute-type") == "fargate"

    def capacity_type(self) -> NodeCapacityType:
        if self.is_on_demand():
            return NodeCapacityType.ON_DEMAND
        if self.is_spot():
            return NodeCapacityType.SPOT
        if self.is_fargate():
            return NodeCapacityType.FARGATE
        return NodeCapacityType.UNKNOWN

    def status(self) -> NodeStatus:
        cordoned = self.cordoned()
        deleting = self.deleting()
        if cordoned and deleting:
            return NodeStatus.CORDONED_DELETING
        if deleting:
            return NodeStatus.DELETING
        if cordoned:
            return NodeStatus.CORDONED
        if self.ready():
            return NodeStatus.READY
        return NodeStatus.UNKNOWN

    def update(self, node: Node | Mapping[str, Any]) -> None:
        """Replace the node object with that of ``node``, keeping bound pods."""
        if isinstance(node, Node):
            with node._lock:
                replacement = dict(node._node)
        else:
            replacement = dict(node)
        with self._lock:
            self._node = replacement

    def name(self) -> str:
        return self._section("metadata").get("name") or ""

    def bind_pod(self, pod: Pod) -> None:
        """Record ``pod`` as running here, counting its requests once."""
        key = (pod.namespace(), pod.name())
        with self._lock:
            already_bound = key in self._pods
            self._pods[key] = pod
            if not already_bound:
                add_resources(self._used, pod.requested())

    def delete_pod(self, namespace: str, name: str) -> None:
        """Unbind a pod and release its requests; unknown pods are ignored."""
        key = (namespace, name)
        with self._lock:
            pod = self._pods.pop(key, None)
            if pod is not None:
                subtract_resources(self._used, pod.requested())

    def allocatable(self) -> ResourceList:
        allocatable = self._section("status").get("allocatable") or {}
        return {name: parse_quantity(q) for name, q in allocatable.items()}

    def used(self) -> ResourceList:
        """A copy of the resources requested by the bound pods."""
        with self._lock:
            return dict(self._used)

    def cordoned(self) -> bool:
        return bool(self._section("spec").get("unschedulable"))

    def ready(self) -> bool:
        conditions = self._section("status").get("conditions") or []
        return any(
            c.get("status") == "True" and c.get("type") == "Ready" for c in conditions
        )

    def created(self) -> datetime | None:
        return _parse_time(self._section("metadata").get("creationTimestamp"))

    def instance_type(self) -> str:
        with self._lock:
            if self.is_fargate():
                pods = self.pods()
                if len(pods) == 1:
                    capacity = pods[0].fargate_capacity_provisioned()
                    if capacity is not None:
                        cpu, mem = capacity
                        return f"{cpu:g}vCPU-{mem:g}GB"
                return "Fargate"
            return self._labels().get(LABEL_INSTANCE_TYPE, "")

    def zone(self) -> str:
        return self._labels().get(LABEL_ZONE, "")

    def region(self) -> str:
        return self._labels().get(LABEL_REGION, "")

    def num_pods(self) -> int:
        with self._lock:
            return len(self._pods)

    def hide(self) -> None:
        with self._lock:
            self._visible = False

    def visible(self) -> bool:
        with self._lock:
            return self._visible

    def show(self) -> None:
        with self._lock:
            self._visible = True

    def deleting(self) -> bool:
        return bool(self._section("metadata").get("deletionTimestamp"))

    def pods(self) -> list[Pod]:
        with self._lock:
            return list(self._pods.values())

    def has_price(self) -> bool:
        """Whether the price is known; NaN marks an unknown price."""
        return not math.isnan(self.price)

    def update_price(self, repository: Repository) -> None:
        """Look the node's hourly price up in ``repository``; NaN if unknown."""
        price: float | None = None
        if self.is_on_demand():
            price = repository.on_demand_price(self.instance_type())
        elif self.is_spot():
            price = repository.spot_price(self.instance_type(), self.zone())
        elif self.is_fargate():
            pods = self.pods()
            if len(pods) == 1:
                capacity = pods[0].fargate_capacity_provisioned()
                if capacity is not None:
                    price = repository.fargate_price(*capacity)
        self.price = math.nan if price is None else price