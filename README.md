# eks-pricing-exporter

A Prometheus exporter that reports what each node in an Amazon EKS cluster
costs per hour. On every scrape it lists the pods and nodes of the cluster and
prices each node from AWS pricing data:

- **on-demand** nodes (`karpenter.sh/capacity-type=on-demand` or
  `eks.amazonaws.com/capacityType=ON_DEMAND`) use the on-demand price of their
  instance type;
- **spot** nodes (`karpenter.sh/capacity-type=spot` or
  `eks.amazonaws.com/capacityType=SPOT`) use the spot price of their instance
  type in their availability zone;
- **Fargate** nodes (`eks.amazonaws.com/compute-type=fargate`) that run exactly
  one pod use the vCPU and memory in that pod's `CapacityProvisioned`
  annotation (for example `0.25vCPU 0.5GB`), priced at the region's Fargate
  per-vCPU-hour and per-GB-hour rates.

When no price is known for a node, its price is reported as `NaN`.

## Installation

```
pip install eks-pricing-exporter
```

The only runtime dependency is `requests`.

## Running

The exporter runs inside the cluster it watches, under a service account that
may list pods and nodes across all namespaces.

```
eks-pricing-exporter --port 9523
```

`--port` (also accepted as `-port`) sets the port to listen on on every
interface and defaults to `9523`.

Configuration comes from the environment:

- Kubernetes: `KUBERNETES_SERVICE_HOST` and `KUBERNETES_SERVICE_PORT`, and the
  service account token and CA certificate under
  `/var/run/secrets/kubernetes.io/serviceaccount`.
- AWS: `AWS_ACCESS_KEY_ID`, `AWS_SECRET_ACCESS_KEY`, optionally
  `AWS_SESSION_TOKEN`, and the region from `AWS_REGION` or
  `AWS_DEFAULT_REGION`.

At start-up the exporter fetches the Fargate prices as a check, then loads all
pricing data; if either fails it logs the error and exits with status 1. After
that it refreshes the prices every hour. If a scheduled refresh fails, the
server stops and the command exits with status 1. `SIGHUP`, `SIGQUIT` and
`SIGTERM` shut the server down cleanly.

## Endpoints

| Path                     | Method | Purpose                                   |
|--------------------------|--------|-------------------------------------------|
| `/metrics`               | any    | Metrics in the Prometheus text format     |
| `/admin/pricing/update`  | POST   | Refresh the pricing data immediately      |

Any method other than POST on `/admin/pricing/update` is answered with
`400 Bad Request`. A failed refresh is answered with `500` and the error text;
a successful one with `success`. If the cluster cannot be read while serving
`/metrics`, the answer is `500` with the error. Other paths give `404`.

## Metrics

Both metrics are gauges and carry the labels `node`, `capacity_type`,
`instance_type`, `zone`, `region` and `status`.

- `eks_node_info` — always `1`; the labels describe the node.
- `eks_node_hourly_price` — the node's hourly price in US dollars.

`capacity_type` is one of `on-demand`, `spot`, `fargate` or empty.
`status` is one of `Ready`, `Cordoned`, `Deleting`, `Cordoned/Deleting` or
`Unknown`. For Fargate nodes `instance_type` has the form `0.25vCPU-0.5GB`,
or `Fargate` when the size is not known; other nodes use the
`node.kubernetes.io/instance-type` label.

## Using the pricing code directly

The pricing lookup can be used without the HTTP server:

```python
from eks_pricing_exporter.aws_provider import AWSProvider
from eks_pricing_exporter.repository import Repository

repository = Repository(AWSProvider.from_environment("us-east-1"))
repository.update_pricing()

print(sorted(repository.instance_types())[:10])
print(repository.on_demand_price("m5.large"))
print(repository.spot_price("m5.large", "us-east-1a"))
print(repository.fargate_price(0.25, 0.5))
```

`update_pricing` refreshes on-demand, spot and Fargate prices concurrently and
raises `PricingUpdateError` holding every failure. The lookup methods return
`None` when no price is known.

Any object with the methods of `Provider` (`get_on_demand_pricing`,
`get_spot_pricing` and `get_fargate_pricing`) can stand in for
`AWSProvider`, which makes it easy to feed fixed prices in tests.

Other modules in the package:

- `cluster` — `Cluster`, an in-memory registry of nodes and pods, and `Stats`;
- `node`, `pod` — models over Kubernetes node and pod objects;
- `quantity` — `parse_quantity` for resource quantities such as `100m` or `1Gi`;
- `collector` — `Collector`, which builds and renders the metrics;
- `kube` — `KubeClient`, a minimal client for listing pods and nodes;
- `aws_api` — signed clients for the Price List and EC2 APIs;
- `paginator` — `Paginator`, which follows continuation tokens.

## Limitations

- Only in-cluster Kubernetes configuration is supported; kubeconfig files are
  not read.
- AWS credentials are read only from environment variables; shared credential
  files, profiles and instance or pod role credentials are not used.

## Development

```
pip install -e ".[test]"
pytest
```