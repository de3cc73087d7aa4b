"""Pod model built from Kubernetes pod objects."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from .quantity import ResourceList, add_resources, parse_quantity

log = logging.getLogger(__name__)

_FARGATE_CAPACITY_RE = re.compile(r"(.*?)vCPU (.*?)GB")


class Pod:
    """A pod as seen by the API server, in its JSON object form."""

    def __init__(self, pod: Mapping[str, Any]) -> None:
        self._pod: dict[str, Any] = dict(pod)

    def update(self, pod: Mapping[str, Any]) -> None:
        """Replace the pod object with a shallow copy of ``pod``."""
        self._pod = dict(pod)

    def _get(self, section: str, key: str) -> Any:
        return (self._pod.get(section) or {}).get(key)

    def is_scheduled(self) -> bool:
        return self.node_name() != ""

    def node_name(self) -> str:
        return self._get("spec", "nodeName") or ""

    def namespace(self) -> str:
        return self._get("metadata", "namespace") or ""

    def name(self) -> str:
        return self._get("metadata", "name") or ""

    def phase(self) -> str:
        return self._get("status", "phase") or ""

    def requested(self) -> ResourceList:
        """Sum of the container requests plus one pod; init containers are left out."""
        requested: ResourceList = {}
        for container in self._get("spec", "containers") or []:
            requests = (container.get("resources") or {}).get("requests") or {}
            add_resources(requested, {k: parse_quantity(q) for k, q in requests.items()})
        requested["pods"] = Decimal(1)
        return requested

    def fargate_capacity_provisioned(self) -> tuple[float, float] | None:
        """The (vCPU, GB) Fargate capacity annotated on the pod, if any."""
        provisioned = (self._get("metadata", "annotations") or {}).get("CapacityProvisioned")
        if provisioned is None:
            return None
        match = _FARGATE_CAPACITY_RE.search(provisioned)
        try:
            if match is None:
                raise ValueError("no match")
            return float(match[1]), float(match[2])
        except ValueError as exc:
            log.warning("unable to parse fargate capacity, %r, %s", provisioned, exc)
            return None