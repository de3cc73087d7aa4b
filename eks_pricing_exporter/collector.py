"""Metrics describing every node of the cluster and its hourly price."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .cluster import Cluster, _ListClient

if TYPE_CHECKING:
    from .repository import Repository

NODE_LABELS = ("node", "capacity_type", "instance_type", "zone", "region", "status")
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


@dataclass(frozen=True)
class MetricDesc:
    """Name, help text and label names of a gauge."""

    fq_name: str
    help: str
    label_names: tuple[str, ...]

    def header(self) -> str:
        return f"# HELP {self.fq_name} {self.help}\n# TYPE {self.fq_name} gauge"


@dataclass(frozen=True)
class Sample:
    """One gauge value with its label values, in ``desc.label_names`` order."""

    desc: MetricDesc
    value: float
    labels: tuple[str, ...]

    @property
    def label_map(self) -> Mapping[str, str]:
        return dict(zip(self.desc.label_names, self.labels))

    def exposition(self) -> str:
        pairs = ",".join(f'{k}="{_escape(v)}"' for k, v in self.label_map.items())
        return f"{self.desc.fq_name}{{{pairs}}} {_format_value(self.value)}"


class Collector:
    """Reads the cluster on each scrape and prices every node."""

    def __init__(self, client: _ListClient, repository: Repository) -> None:
        self.client = client
        self.repository = repository
        self.node_info = MetricDesc("eks_node_info", "info labels about the node", NODE_LABELS)
        self.hourly_price = MetricDesc("eks_node_hourly_price", "hourly price of node", NODE_LABELS)

    def describe(self) -> list[MetricDesc]:
        return [self.hourly_price, self.node_info]

    def collect(self) -> list[Sample]:
        """Load the cluster and return an info and a price sample per node."""
        cluster = Cluster()
        cluster.populate(self.client)
        samples: list[Sample] = []
        for node in cluster.nodes():
            node.update_price(self.repository)
            labels = (
                node.name(),
                str(node.capacity_type()),
                node.instance_type(),
                node.zone(),
                node.region(),
                str(node.status()),
            )
            samples.append(Sample(self.node_info, 1.0, labels))
            samples.append(Sample(self.hourly_price, node.price, labels))
        return samples

    def render(self) -> str:
        """All samples in the text exposition format, families sorted by name."""
        samples = self.collect()
        lines: list[str] = []
        for desc in sorted(self.describe(), key=lambda d: d.fq_name):
            family = sorted((s for s in samples if s.desc == desc), key=lambda s: s.labels)
            if family:
                lines.append(desc.header())
                lines.extend(sample.exposition() for sample in family)
        return "".join(f"{line}\n" for line in lines)