import math
from decimal import Decimal

from eks_pricing_exporter.cluster import Cluster
from eks_pricing_exporter.node import Node
from eks_pricing_exporter.pod import Pod


def node_obj(name, created=None, allocatable=None):
    metadata = {"name": name}
    if created:
        metadata["creationTimestamp"] = created
    status = {}
    if allocatable:
        status["allocatable"] = allocatable
    return {"metadata": metadata, "status": status}


def pod_obj(namespace, name, node_name="", phase="Running"):
    return {
        "metadata": {"namespace": namespace, "name": name},
        "spec": {
            "nodeName": node_name,
            "containers": [{"name": "c", "resources": {"requests": {"cpu": "500m"}}}],
        },
        "status": {"phase": phase},
    }


class FakeClient:
    def __init__(self, pod_pages, node_pages):
        self.pod_pages = pod_pages
        self.node_pages = node_pages

    @staticmethod
    def _page(pages, cont):
        index = int(cont) if cont else 0
        nxt = str(index + 1) if index + 1 < len(pages) else ""
        return pages[index], nxt

    def list_pods(self, cont):
        return self._page(self.pod_pages, cont)

    def list_nodes(self, cont):
        return self._page(self.node_pages, cont)


def test_add_node_returns_existing_and_updates():
    cluster = Cluster()
    first = cluster.add_node(Node(node_obj("n1")))
    replacement = node_obj("n1")
    replacement["metadata"]["labels"] = {"karpenter.sh/capacity-type": "spot"}
    result = cluster.add_node(Node(replacement))
    assert result is first
    assert first.is_spot()
    assert cluster.get_node("n1") is first


def test_add_pod_creates_hidden_node():
    cluster = Cluster()
    total = cluster.add_pod(Pod(pod_obj("default", "p1", "n1")))
    assert total == 1
    node = cluster.get_node("n1")
    assert node.name() == "n1"
    assert node.visible() is False
    assert node.num_pods() == 1


def test_unscheduled_pod_creates_no_node():
    cluster = Cluster()
    cluster.add_pod(Pod(pod_obj("default", "p1")))
    assert cluster.nodes() == []
    assert cluster.get_pod("default", "p1").name() == "p1"


def test_delete_pod_unbinds():
    cluster = Cluster()
    cluster.add_pod(Pod(pod_obj("default", "p1", "n1")))
    cluster.add_pod(Pod(pod_obj("default", "p2", "n1")))
    assert cluster.delete_pod("default", "p1") == 1
    assert cluster.get_pod("default", "p1") is None
    assert cluster.get_node("n1").num_pods() == 1


def test_delete_node_removes_its_pods():
    cluster = Cluster()
    cluster.add_pod(Pod(pod_obj("default", "p1", "n1")))
    cluster.add_pod(Pod(pod_obj("default", "p2", "n2")))
    cluster.delete_node("n1")
    assert cluster.get_node("n1") is None
    assert cluster.get_pod("default", "p1") is None
    assert cluster.get_pod("default", "p2").node_name() == "n2"


def test_populate_follows_pages():
    client = FakeClient(
        [[pod_obj("default", "p1", "n1")], [pod_obj("default", "p2", "n2")]],
        [[node_obj("n1")], [node_obj("n2"), node_obj("n3")]],
    )
    cluster = Cluster()
    cluster.populate(client)
    assert sorted(n.name() for n in cluster.nodes()) == ["n1", "n2", "n3"]
    assert cluster.get_node("n1").num_pods() == 1
    assert cluster.get_pod("default", "p2").node_name() == "n2"


def test_stats_skips_hidden_nodes():
    cluster = Cluster()
    cluster.add_pod(Pod(pod_obj("default", "p1", "n1")))
    cluster.add_pod(Pod(pod_obj("default", "p2")))
    st = cluster.stats()
    assert st.num_nodes == 0
    assert st.nodes == []
    assert st.total_pods == 1
    assert st.bound_pod_count == 0


def test_stats_totals_visible_nodes():
    cluster = Cluster()
    n1 = cluster.add_node(Node(node_obj("n1", allocatable={"cpu": "2"})))
    n2 = cluster.add_node(Node(node_obj("n2", allocatable={"cpu": "2"})))
    n1.show()
    n2.show()
    cluster.add_pod(Pod(pod_obj("default", "p1", "n1")))
    cluster.add_pod(Pod(pod_obj("default", "p2", "n2", phase="Pending")))
    n1.price = 0.5
    n2.price = math.nan

    st = cluster.stats()
    assert st.num_nodes == 2
    assert st.total_pods == 2
    assert st.bound_pod_count == 2
    assert st.pods_by_phase == {"Running": 1, "Pending": 1}
    assert st.total_price == 0.5
    expected_used = n1.used()
    for name, quantity in n2.used().items():
        expected_used[name] = expected_used.get(name, Decimal(0)) + quantity
    assert st.used_resources == expected_used
    assert st.allocatable_resources["cpu"] == n1.allocatable()["cpu"] + n2.allocatable()["cpu"]


def test_stats_sorts_by_created_then_name():
    cluster = Cluster()
    for name, created in [
        ("b", "2023-01-01T00:00:00Z"),
        ("a", "2023-01-01T00:00:00Z"),
        ("c", "2022-06-01T00:00:00Z"),
    ]:
        cluster.add_node(Node(node_obj(name, created=created))).show()
    st = cluster.stats()
    assert [n.name() for n in st.nodes] == ["c", "a", "b"]