import asyncio

import pytest
from prometheus_client import CollectorRegistry

from kube_cost_exporter.calculator import CostCalculator
from kube_cost_exporter.collector import Collector
from kube_cost_exporter.errors import InventoryError
from kube_cost_exporter.metrics import MetricsUpdater
from kube_cost_exporter.models import NodeRecord, PodRecord, VolumeRecord
from kube_cost_exporter.pricing.cache import PricingCache

GIB = 1024**3


class MockInventory:
    """
    An inventory source that returns pre-configured records.
    """

    def __init__(
        self,
        nodes: "list[NodeRecord]",
        pods: "list[PodRecord]",
        volumes: "list[VolumeRecord] | None" = None,
        failing: "set[str] | None" = None,
    ) -> "None":
        self.nodes = nodes
        self.pods = pods
        self.volumes = volumes or []
        self.failing = failing or set()

    def list_nodes(self) -> "list[NodeRecord]":
        if "nodes" in self.failing:
            raise InventoryError("nodes", RuntimeError("connection refused"))
        return self.nodes

    def list_pods(self) -> "list[PodRecord]":
        if "pods" in self.failing:
            raise InventoryError("pods", RuntimeError("connection refused"))
        return self.pods

    def list_volumes(self) -> "list[VolumeRecord]":
        if "storage" in self.failing:
            raise InventoryError("persistent volumes", RuntimeError("forbidden"))
        return self.volumes


class MockProvider:
    """
    A pricing provider with fixed prices per instance type.
    """

    def __init__(self) -> "None":
        self.closed = False

    @property
    def name(self) -> "str":
        return "mock"

    async def get_instance_price(
        self, instance_type: "str", region: "str", zone: "str"
    ) -> "float":
        return {"m5.xlarge": 0.20, "m5.large": 0.10}.get(instance_type, 0.05)

    async def get_spot_price(
        self, instance_type: "str", region: "str", zone: "str"
    ) -> "float":
        return 0.03

    async def get_storage_price(self, storage_class: "str", region: "str") -> "float":
        return {"gp3": 0.08}.get(storage_class, 0.10)

    async def get_network_price(self, region: "str", destination: "str") -> "float":
        return 0.09

    async def close(self) -> "None":
        self.closed = True


def make_node(name: "str", instance_type: "str", is_spot: "bool" = False) -> "NodeRecord":
    return NodeRecord(
        name=name,
        instance_type=instance_type,
        region="us-east-1",
        zone="us-east-1a",
        is_spot=is_spot,
        cpu_capacity=4000,
        memory_capacity=8 * GIB,
    )


def cluster() -> "MockInventory":
    return MockInventory(
        nodes=[
            make_node("od-1", "m5.xlarge"),
            make_node("spot-1", "m5.xlarge", is_spot=True),
        ],
        pods=[
            PodRecord(
                name="web-1",
                namespace="web",
                node_name="od-1",
                cpu_request=1000,
                memory_request=2 * GIB,
            ),
            PodRecord(
                name="web-2",
                namespace="web",
                node_name="spot-1",
                cpu_request=2000,
                memory_request=1 * GIB,
            ),
            PodRecord(name="orphan", namespace="web", node_name="gone"),
        ],
        volumes=[
            VolumeRecord(
                name="pv-1",
                storage_class="gp3",
                namespace="data",
                claim_name="pgdata",
                size_gb=100,
                region="us-east-1",
            ),
            VolumeRecord(name="pv-2", storage_class="st1", size_gb=50),
        ],
    )


def make_collector(
    inventory: "MockInventory",
    registry: "CollectorRegistry",
    provider: "MockProvider | None" = None,
    interval: "float" = 60,
) -> "Collector":
    return Collector(
        inventory,
        PricingCache(provider or MockProvider()),
        CostCalculator(),
        MetricsUpdater(registry=registry),
        update_interval_seconds=interval,
    )


def cycles_observed(registry: "CollectorRegistry") -> "float | None":
    return registry.get_sample_value("kube_cost_collection_duration_seconds_count")


def last_success(registry: "CollectorRegistry") -> "float | None":
    return registry.get_sample_value(
        "kube_cost_last_collection_success_timestamp_seconds"
    )


class TestCollector:
    @pytest.mark.asyncio
    async def test_collects_and_publishes(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        collector = make_collector(cluster(), registry)

        result = await collector.collect_once()

        assert result is not None
        assert [n.hourly_price for n in result.nodes] == [0.20, 0.03]
        # orphan pod is skipped, not fatal
        assert [c.pod_name for c in result.pod_costs] == ["web-1", "web-2"]
        assert result.cluster_hourly_cost == pytest.approx(0.23)
        assert result.storage_ok is True

        assert registry.get_sample_value(
            "kube_cost_pod_hourly_usd",
            {"namespace": "web", "pod": "web-1", "node": "od-1"},
        ) == pytest.approx(0.05)
        assert registry.get_sample_value(
            "kube_cost_pod_hourly_usd",
            {"namespace": "web", "pod": "web-2", "node": "spot-1"},
        ) == pytest.approx(0.015)
        assert registry.get_sample_value(
            "kube_cost_namespace_hourly_usd", {"namespace": "web"}
        ) == pytest.approx(0.065)
        assert registry.get_sample_value(
            "kube_cost_node_hourly_usd",
            {"node": "spot-1", "instance_type": "m5.xlarge", "is_spot": "true"},
        ) == pytest.approx(0.03)
        assert registry.get_sample_value(
            "kube_cost_cluster_hourly_usd"
        ) == pytest.approx(0.23)
        assert registry.get_sample_value("kube_cost_spot_node_count") == 1
        assert registry.get_sample_value("kube_cost_spot_savings_hourly_usd") == (
            pytest.approx(0.07)
        )
        assert registry.get_sample_value(
            "kube_cost_namespace_spot_pods", {"namespace": "web"}
        ) == 1

    @pytest.mark.asyncio
    async def test_publishes_storage_costs(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        collector = make_collector(cluster(), registry)

        await collector.collect_once()

        assert registry.get_sample_value(
            "kube_cost_pv_monthly_usd",
            {
                "pv_name": "pv-1",
                "namespace": "data",
                "pvc_name": "pgdata",
                "storage_class": "gp3",
            },
        ) == pytest.approx(8.0)
        assert registry.get_sample_value(
            "kube_cost_namespace_storage_monthly_usd", {"namespace": "data"}
        ) == pytest.approx(8.0)
        assert registry.get_sample_value(
            "kube_cost_storage_class_monthly_usd", {"storage_class": "st1"}
        ) == pytest.approx(5.0)
        assert registry.get_sample_value(
            "kube_cost_cluster_storage_monthly_usd"
        ) == pytest.approx(13.0)
        assert last_success(registry) > 0
        assert cycles_observed(registry) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stage", ["nodes", "pods"])
    async def test_inventory_failure_keeps_previous_metrics(
        self,
        registry: "CollectorRegistry",
        stage: "str",
    ) -> "None":
        inventory = cluster()
        collector = make_collector(inventory, registry)
        await collector.collect_once()

        inventory.failing = {stage}
        inventory.pods = []
        result = await collector.collect_once()

        assert result is None
        assert registry.get_sample_value(
            "kube_cost_collection_errors_total", {"stage": stage}
        ) == 1
        # last good cycle is still exported
        assert registry.get_sample_value(
            "kube_cost_pod_hourly_usd",
            {"namespace": "web", "pod": "web-1", "node": "od-1"},
        ) == pytest.approx(0.05)
        assert cycles_observed(registry) == 2

    @pytest.mark.asyncio
    async def test_storage_failure_keeps_compute_results(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        inventory = cluster()
        inventory.failing = {"storage"}
        collector = make_collector(inventory, registry)

        result = await collector.collect_once()

        assert result is not None
        assert result.storage_ok is False
        assert result.volume_costs == []
        assert registry.get_sample_value(
            "kube_cost_cluster_hourly_usd"
        ) == pytest.approx(0.23)
        assert registry.get_sample_value(
            "kube_cost_collection_errors_total", {"stage": "storage"}
        ) == 1
        assert registry.get_sample_value("kube_cost_cluster_storage_monthly_usd") == 0
        assert last_success(registry) == 0

    @pytest.mark.asyncio
    async def test_deleted_pods_disappear(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        inventory = cluster()
        collector = make_collector(inventory, registry)
        await collector.collect_once()

        inventory.pods = inventory.pods[:1]
        await collector.collect_once()

        assert registry.get_sample_value(
            "kube_cost_pod_hourly_usd",
            {"namespace": "web", "pod": "web-2", "node": "spot-1"},
        ) is None

    @pytest.mark.asyncio
    async def test_empty_cluster(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        collector = make_collector(MockInventory(nodes=[], pods=[]), registry)

        result = await collector.collect_once()

        assert result is not None
        assert result.pod_costs == []
        assert result.cluster_hourly_cost == 0
        assert result.spot_savings.spot_percentage == 0.0

    @pytest.mark.asyncio
    async def test_run_stops_and_closes_provider(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        provider = MockProvider()
        collector = make_collector(cluster(), registry, provider=provider, interval=3600)

        task = asyncio.create_task(collector.run())
        await asyncio.sleep(0.05)
        collector.stop()
        await asyncio.wait_for(task, timeout=1)
        await collector.close()

        assert cycles_observed(registry) == 1
        assert provider.closed is True
