import math

import pytest

from eks_pricing_exporter.collector import Collector
from eks_pricing_exporter.kube import KubeError
from eks_pricing_exporter.repository import FargatePrice, Repository

ON_DEMAND = {"m5.large": 0.096}
SPOT = {"c5.large": {"us-east-1a": 0.031}}
FARGATE = FargatePrice(vcpu_per_hour=0.04048, gb_per_hour=0.004445)


class FakeProvider:
    def get_on_demand_pricing(self):
        return dict(ON_DEMAND)

    def get_spot_pricing(self):
        return {k: dict(v) for k, v in SPOT.items()}

    def get_fargate_pricing(self):
        return FARGATE


class FakeClient:
    def __init__(self, pods, nodes, page_size=1, error=None):
        self.pods = pods
        self.nodes = nodes
        self.page_size = page_size
        self.error = error

    def _page(self, items, cont):
        if self.error is not None:
            raise self.error
        start = int(cont or 0)
        end = start + self.page_size
        return items[start:end], str(end) if end < len(items) else ""

    def list_pods(self, cont=""):
        return self._page(self.pods, cont)

    def list_nodes(self, cont=""):
        return self._page(self.nodes, cont)


def node_obj(name, labels):
    return {
        "metadata": {"name": name, "labels": labels, "creationTimestamp": "2023-01-01T00:00:00Z"},
        "spec": {},
        "status": {"conditions": [{"type": "Ready", "status": "True"}], "allocatable": {"cpu": "2"}},
    }


def region_labels(zone="us-east-1a"):
    return {
        "topology.kubernetes.io/zone": zone,
        "topology.kubernetes.io/region": "us-east-1",
    }


@pytest.fixture
def repository():
    repo = Repository(FakeProvider())
    repo.update_pricing()
    return repo


def samples_for(samples, node_name, metric):
    return [s for s in samples if s.label_map["node"] == node_name and s.desc.fq_name == metric]


def test_describe_names(repository):
    collector = Collector(FakeClient([], []), repository)
    names = [d.fq_name for d in collector.describe()]
    assert names == ["eks_node_hourly_price", "eks_node_info"]


def test_on_demand_node(repository):
    labels = {"karpenter.sh/capacity-type": "on-demand", "node.kubernetes.io/instance-type": "m5.large", **region_labels()}
    collector = Collector(FakeClient([], [node_obj("n1", labels)]), repository)
    samples = collector.collect()
    [info] = samples_for(samples, "n1", "eks_node_info")
    [price] = samples_for(samples, "n1", "eks_node_hourly_price")
    assert info.value == 1.0
    assert price.value == ON_DEMAND["m5.large"]
    assert dict(info.label_map) == {
        "node": "n1",
        "capacity_type": "on-demand",
        "instance_type": "m5.large",
        "zone": "us-east-1a",
        "region": "us-east-1",
        "status": "Ready",
    }


def test_spot_node(repository):
    labels = {"karpenter.sh/capacity-type": "spot", "node.kubernetes.io/instance-type": "c5.large", **region_labels()}
    collector = Collector(FakeClient([], [node_obj("s1", labels)]), repository)
    [price] = samples_for(collector.collect(), "s1", "eks_node_hourly_price")
    assert price.value == SPOT["c5.large"]["us-east-1a"]
    assert price.label_map["capacity_type"] == "spot"


def test_fargate_node(repository):
    pod = {
        "metadata": {"namespace": "default", "name": "fp", "annotations": {"CapacityProvisioned": "0.25vCPU 0.5GB"}},
        "spec": {"nodeName": "fargate-1"},
    }
    node = node_obj("fargate-1", {"eks.amazonaws.com/compute-type": "fargate", **region_labels()})
    collector = Collector(FakeClient([pod], [node]), repository)
    [price] = samples_for(collector.collect(), "fargate-1", "eks_node_hourly_price")
    assert price.label_map["instance_type"] == "0.25vCPU-0.5GB"
    assert price.label_map["capacity_type"] == "fargate"
    assert price.value == repository.fargate_price(0.25, 0.5)


def test_unknown_price_is_nan(repository):
    labels = {"karpenter.sh/capacity-type": "on-demand", "node.kubernetes.io/instance-type": "x9.huge", **region_labels()}
    collector = Collector(FakeClient([], [node_obj("n1", labels)]), repository)
    prices = samples_for(collector.collect(), "n1", "eks_node_hourly_price")
    assert len(prices) == 1
    assert prices[0].label_map["instance_type"] == "x9.huge"
    assert math.isnan(prices[0].value) is True


def test_pages_are_followed(repository):
    nodes = [node_obj(f"n{i}", region_labels()) for i in range(5)]
    collector = Collector(FakeClient([], nodes, page_size=2), repository)
    samples = collector.collect()
    assert {s.label_map["node"] for s in samples} == {f"n{i}" for i in range(5)}
    assert len(samples) == 10


def test_pod_on_unknown_node_is_reported(repository):
    pod = {"metadata": {"namespace": "default", "name": "p"}, "spec": {"nodeName": "ghost"}}
    collector = Collector(FakeClient([pod], []), repository)
    [info] = samples_for(collector.collect(), "ghost", "eks_node_info")
    assert info.label_map["capacity_type"] == ""


def test_populate_error_propagates(repository):
    collector = Collector(FakeClient([], [], error=KubeError("denied", 403)), repository)
    with pytest.raises(KubeError):
        collector.collect()


def test_render_format(repository):
    labels = {"karpenter.sh/capacity-type": "on-demand", "node.kubernetes.io/instance-type": "m5.large", **region_labels()}
    unknown = {"karpenter.sh/capacity-type": "on-demand", "node.kubernetes.io/instance-type": "x9.huge", **region_labels()}
    collector = Collector(FakeClient([], [node_obj("n1", labels), node_obj("n2", unknown)]), repository)
    text = collector.render()
    lines = text.splitlines()
    assert "# HELP eks_node_info info labels about the node" in lines
    assert "# TYPE eks_node_hourly_price gauge" in lines
    assert text.index("eks_node_hourly_price") < text.index("eks_node_info")
    info_lines = [line for line in lines if line.startswith("eks_node_info{")]
    assert len(info_lines) == 2
    assert all(line.endswith(" 1") for line in info_lines)
    n2_price = [line for line in lines if line.startswith('eks_node_hourly_price{node="n2"')]
    assert n2_price[0].endswith(" NaN")
    assert text.endswith("\n")


def test_render_escapes_labels(repository):
    collector = Collector(FakeClient([], [node_obj("n1", region_labels(zone='a"b\\c'))]), repository)
    assert 'zone="a\\"b\\\\c"' in collector.render()


def test_render_empty_cluster(repository):
    assert Collector(FakeClient([], []), repository).render() == ""