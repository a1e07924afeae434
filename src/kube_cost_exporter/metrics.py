from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from kube_cost_exporter.models import (
    NamespaceCost,
    NamespaceSpotUsage,
    NamespaceStorageCost,
    NodeRecord,
    PodCost,
    SpotSavings,
    VolumeCost,
)


class MetricsUpdater:
    """
    publishes the records of each collection cycle as Prometheus
    gauges. Labelled gauges are cleared before being refilled so
    that deleted pods, nodes and volumes disappear.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._pod_hourly = Gauge(
            "kube_cost_pod_hourly_usd",
            "Hourly cost of pod in USD",
            ["namespace", "pod", "node"],
            registry=registry,
        )
        self._namespace_hourly = Gauge(
            "kube_cost_namespace_hourly_usd",
            "Hourly cost per namespace in USD",
            ["namespace"],
            registry=registry,
        )
        self._namespace_daily = Gauge(
            "kube_cost_namespace_daily_usd",
            "Daily cost per namespace in USD",
            ["namespace"],
            registry=registry,
        )
        self._node_hourly = Gauge(
            "kube_cost_node_hourly_usd",
            "Hourly cost per node in USD",
            ["node", "instance_type", "is_spot"],
            registry=registry,
        )
        self._cluster_hourly = Gauge(
            "kube_cost_cluster_hourly_usd",
            "Total hourly cost of the cluster in USD",
            registry=registry,
        )
        self._spot_savings = Gauge(
            "kube_cost_spot_savings_hourly_usd",
            "Hourly savings from spot instances in USD",
            registry=registry,
        )
        self._spot_node_count = Gauge(
            "kube_cost_spot_node_count",
            "Number of spot/preemptible nodes",
            registry=registry,
        )
        self._on_demand_node_count = Gauge(
            "kube_cost_ondemand_node_count",
            "Number of on-demand nodes",
            registry=registry,
        )
        self._spot_percentage = Gauge(
            "kube_cost_spot_percentage",
            "Percentage of nodes that are spot instances",
            registry=registry,
        )
        self._spot_hourly = Gauge(
            "kube_cost_spot_hourly_usd",
            "Hourly cost of spot instances in USD",
            registry=registry,
        )
        self._on_demand_hourly = Gauge(
            "kube_cost_ondemand_hourly_usd",
            "Hourly cost of on-demand instances in USD",
            registry=registry,
        )
        self._namespace_spot_pods = Gauge(
            "kube_cost_namespace_spot_pods",
            "Number of pods on spot instances per namespace",
            ["namespace"],
            registry=registry,
        )
        self._namespace_spot_percentage = Gauge(
            "kube_cost_namespace_spot_percentage",
            "Percentage of namespace pods on spot instances",
            ["namespace"],
            registry=registry,
        )
        self._pv_monthly = Gauge(
            "kube_cost_pv_monthly_usd",
            "Monthly cost of persistent volume in USD",
            ["pv_name", "namespace", "pvc_name", "storage_class"],
            registry=registry,
        )
        self._namespace_storage_monthly = Gauge(
            "kube_cost_namespace_storage_monthly_usd",
            "Monthly storage cost per namespace in USD",
            ["namespace"],
            registry=registry,
        )
        self._cluster_storage_monthly = Gauge(
            "kube_cost_cluster_storage_monthly_usd",
            "Total monthly storage cost of the cluster in USD",
            registry=registry,
        )
        self._storage_class_monthly = Gauge(
            "kube_cost_storage_class_monthly_usd",
            "Monthly cost by storage class in USD",
            ["storage_class"],
            registry=registry,
        )
        self._collection_duration: "Histogram" = Histogram(
            "kube_cost_collection_duration_seconds",
            "Duration of cost collection cycles",
            registry=registry,
        )
        self._collection_errors: "Counter" = Counter(
            "kube_cost_collection_errors_total",
            "Total number of collection errors by stage",
            ["stage"],
            registry=registry,
        )
        self._last_collection_success: "Gauge" = Gauge(
            "kube_cost_last_collection_success_timestamp_seconds",
            "Unix timestamp of the last successful collection cycle",
            registry=registry,
        )

    def update_pods(self, pod_costs: "list[PodCost]") -> "None":
        self._pod_hourly.clear()
        for cost in pod_costs:
            self._pod_hourly.labels(
                namespace=cost.namespace,
                pod=cost.pod_name,
                node=cost.node_name,
            ).set(cost.hourly_cost)

    def update_namespaces(self, namespace_costs: "list[NamespaceCost]") -> "None":
        self._namespace_hourly.clear()
        self._namespace_daily.clear()
        for cost in namespace_costs:
            self._namespace_hourly.labels(namespace=cost.namespace).set(
                cost.hourly_cost
            )
            self._namespace_daily.labels(namespace=cost.namespace).set(
                cost.daily_cost
            )

    def update_nodes(self, nodes: "list[NodeRecord]") -> "None":
        self._node_hourly.clear()
        for node in nodes:
            self._node_hourly.labels(
                node=node.name,
                instance_type=node.instance_type,
                is_spot="true" if node.is_spot else "false",
            ).set(node.hourly_price)

    def update_cluster(self, hourly_cost: "float", savings: "SpotSavings") -> "None":
        """
        sets the cluster-wide compute and spot gauges.
        """
        self._cluster_hourly.set(hourly_cost)
        self._spot_savings.set(savings.total_savings_hourly)
        self._spot_node_count.set(savings.spot_node_count)
        self._on_demand_node_count.set(savings.on_demand_node_count)
        self._spot_percentage.set(savings.spot_percentage)
        self._spot_hourly.set(savings.spot_cost_hourly)
        self._on_demand_hourly.set(savings.on_demand_cost_hourly)

    def update_namespace_spot(self, usage: "list[NamespaceSpotUsage]") -> "None":
        self._namespace_spot_pods.clear()
        self._namespace_spot_percentage.clear()
        for ns in usage:
            self._namespace_spot_pods.labels(namespace=ns.namespace).set(
                ns.pods_on_spot
            )
            self._namespace_spot_percentage.labels(namespace=ns.namespace).set(
                ns.spot_percentage
            )

    def update_storage(
        self,
        volume_costs: "list[VolumeCost]",
        namespace_costs: "list[NamespaceStorageCost]",
        storage_class_costs: "dict[str, float]",
        cluster_monthly_cost: "float",
    ) -> "None":
        """
        replaces all storage gauges with the given cycle's values.
        """
        self._pv_monthly.clear()
        for cost in volume_costs:
            self._pv_monthly.labels(
                pv_name=cost.volume_name,
                namespace=cost.namespace,
                pvc_name=cost.claim_name,
                storage_class=cost.storage_class,
            ).set(cost.monthly_cost)

        self._namespace_storage_monthly.clear()
        for ns in namespace_costs:
            self._namespace_storage_monthly.labels(namespace=ns.namespace).set(
                ns.monthly_cost
            )

        self._storage_class_monthly.clear()
        for storage_class, total in storage_class_costs.items():
            self._storage_class_monthly.labels(storage_class=storage_class).set(total)

        self._cluster_storage_monthly.set(cluster_monthly_cost)

    def observe_collection_duration(self, duration_seconds: "float") -> "None":
        self._collection_duration.observe(duration_seconds)

    def inc_collection_error(self, stage: "str") -> "None":
        self._collection_errors.labels(stage=stage).inc()

    def set_last_collection_success(self, timestamp: "float") -> "None":
        self._last_collection_success.set(timestamp)
