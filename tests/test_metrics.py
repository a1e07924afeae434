from prometheus_client import CollectorRegistry

from kube_cost_exporter.metrics import MetricsUpdater
from kube_cost_exporter.models import (
    NamespaceCost,
    NamespaceSpotUsage,
    NodeRecord,
    PodCost,
    SpotSavings,
    VolumeCost,
)


def pod_cost(name: "str", hourly: "float") -> "PodCost":
    return PodCost(
        pod_name=name,
        namespace="web",
        node_name="node-1",
        hourly_cost=hourly,
        daily_cost=hourly * 24,
        monthly_cost=hourly * 730,
        cpu_cost=hourly,
        memory_cost=0.0,
    )


class TestMetricsUpdater:
    def test_registers_metric_families(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        MetricsUpdater(registry=registry)
        # prometheus_client strips _total suffix from Counter family names
        metric_names = {m.name for m in registry.collect()}
        assert "kube_cost_pod_hourly_usd" in metric_names
        assert "kube_cost_namespace_daily_usd" in metric_names
        assert "kube_cost_ondemand_node_count" in metric_names
        assert "kube_cost_pv_monthly_usd" in metric_names
        assert "kube_cost_collection_errors" in metric_names
        assert "kube_cost_collection_duration_seconds" in metric_names

    def test_update_pods_replaces_series(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)
        updater.update_pods([pod_cost("a", 0.1), pod_cost("b", 0.2)])
        updater.update_pods([pod_cost("b", 0.3)])

        labels = {"namespace": "web", "node": "node-1"}
        assert (
            registry.get_sample_value(
                "kube_cost_pod_hourly_usd", {**labels, "pod": "a"}
            )
            is None
        )
        assert (
            registry.get_sample_value(
                "kube_cost_pod_hourly_usd", {**labels, "pod": "b"}
            )
            == 0.3
        )

    def test_update_namespaces(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)
        updater.update_namespaces(
            [
                NamespaceCost(
                    namespace="web",
                    hourly_cost=0.5,
                    daily_cost=12.0,
                    monthly_cost=365.0,
                    pod_count=3,
                )
            ]
        )

        assert (
            registry.get_sample_value(
                "kube_cost_namespace_hourly_usd", {"namespace": "web"}
            )
            == 0.5
        )
        assert (
            registry.get_sample_value(
                "kube_cost_namespace_daily_usd", {"namespace": "web"}
            )
            == 12.0
        )

    def test_update_nodes_labels_spot(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)
        updater.update_nodes(
            [
                NodeRecord(
                    name="node-1",
                    instance_type="e2-standard-4",
                    region="us-central1",
                    zone="us-central1-a",
                    is_spot=False,
                    hourly_price=0.134,
                )
            ]
        )

        assert (
            registry.get_sample_value(
                "kube_cost_node_hourly_usd",
                {"node": "node-1", "instance_type": "e2-standard-4", "is_spot": "false"},
            )
            == 0.134
        )

    def test_update_cluster(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)
        updater.update_cluster(
            1.25,
            SpotSavings(
                spot_node_count=2,
                on_demand_node_count=3,
                spot_cost_hourly=0.06,
                on_demand_cost_hourly=1.19,
                estimated_on_demand_equivalent_hourly=0.2,
                total_savings_hourly=0.14,
                savings_rate=70.0,
                spot_percentage=40.0,
            ),
        )

        assert registry.get_sample_value("kube_cost_cluster_hourly_usd") == 1.25
        assert registry.get_sample_value("kube_cost_spot_savings_hourly_usd") == 0.14
        assert registry.get_sample_value("kube_cost_spot_node_count") == 2
        assert registry.get_sample_value("kube_cost_ondemand_node_count") == 3
        assert registry.get_sample_value("kube_cost_spot_percentage") == 40.0
        assert registry.get_sample_value("kube_cost_spot_hourly_usd") == 0.06
        assert registry.get_sample_value("kube_cost_ondemand_hourly_usd") == 1.19

    def test_update_namespace_spot(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)
        updater.update_namespace_spot(
            [
                NamespaceSpotUsage(
                    namespace="batch",
                    pods_on_spot=3,
                    pods_on_demand=1,
                    spot_cost_hourly=0.03,
                    on_demand_cost_hourly=0.02,
                    spot_percentage=75.0,
                )
            ]
        )

        labels = {"namespace": "batch"}
        assert registry.get_sample_value("kube_cost_namespace_spot_pods", labels) == 3
        assert (
            registry.get_sample_value("kube_cost_namespace_spot_percentage", labels)
            == 75.0
        )

    def test_update_storage(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)
        volume = VolumeCost(
            volume_name="pv-1",
            namespace="",
            claim_name="",
            storage_class="gp2",
            size_gb=20,
            hourly_cost=2.0 / 730,
            daily_cost=2.0 / 30,
            monthly_cost=2.0,
        )
        updater.update_storage([volume], [], {"gp2": 2.0}, 2.0)

        assert (
            registry.get_sample_value(
                "kube_cost_pv_monthly_usd",
                {"pv_name": "pv-1", "namespace": "", "pvc_name": "", "storage_class": "gp2"},
            )
            == 2.0
        )
        assert (
            registry.get_sample_value(
                "kube_cost_storage_class_monthly_usd", {"storage_class": "gp2"}
            )
            == 2.0
        )
        assert registry.get_sample_value("kube_cost_cluster_storage_monthly_usd") == 2.0

    def test_collection_self_metrics(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)
        updater.observe_collection_duration(0.4)
        updater.inc_collection_error("pods")
        updater.inc_collection_error("pods")
        updater.set_last_collection_success(1700000000.0)

        assert (
            registry.get_sample_value("kube_cost_collection_duration_seconds_sum") == 0.4
        )
        assert (
            registry.get_sample_value(
                "kube_cost_collection_errors_total", {"stage": "pods"}
            )
            == 2
        )
        assert (
            registry.get_sample_value(
                "kube_cost_last_collection_success_timestamp_seconds"
            )
            == 1700000000.0
        )
