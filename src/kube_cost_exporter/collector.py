import asyncio
import dataclasses
import time

import structlog

from kube_cost_exporter import aggregator
from kube_cost_exporter.calculator import CostCalculator
from kube_cost_exporter.inventory.base import InventorySource
from kube_cost_exporter.metrics import MetricsUpdater
from kube_cost_exporter.models import CycleResult, NodeRecord, VolumeRecord
from kube_cost_exporter.pricing.cache import PricingCache

logger = structlog.get_logger()


class Collector:
    """
    Collector is responsible for orchestrating the periodic
    cost collection cycle: list the inventory, price nodes and
    volumes through the pricing cache, allocate costs, aggregate
    them and publish the result to the metrics updater.

    Cycles run one after another inside a single task, so a cycle
    that outlasts the interval delays the next one instead of
    overlapping it.
    """

    def __init__(
        self,
        inventory: "InventorySource",
        pricing_cache: "PricingCache",
        calculator: "CostCalculator",
        metrics_updater: "MetricsUpdater",
        update_interval_seconds: "float" = 60,
    ) -> "None":
        self._inventory = inventory
        self._pricing = pricing_cache
        self._calculator = calculator
        self._metrics = metrics_updater
        self._interval = update_interval_seconds
        self._stop_event: "asyncio.Event" = asyncio.Event()

    def stop(self) -> "None":
        """
        signals the collector loop to stop after the current cycle.
        """
        self._stop_event.set()

    async def close(self) -> "None":
        """
        closes the pricing provider's sessions.
        """
        await self._pricing.provider.close()

    async def run(self) -> "None":
        """
        runs one cycle immediately, then one per interval until
        stop() is called.
        """
        while not self._stop_event.is_set():
            started = time.monotonic()
            await self.collect_once()

            # keep the schedule anchored to cycle starts; an overrunning
            # cycle is followed immediately by the next one
            remaining = max(0.0, self._interval - (time.monotonic() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
            except TimeoutError:
                pass

    async def collect_once(self) -> "CycleResult | None":
        """
        runs a single collection cycle and publishes its records.
        Returns None when the node or pod inventory could not be
        listed; previously published metrics are left untouched.
        """
        cycle_start = time.monotonic()
        logger.info("collection_cycle_start")

        try:
            result = await self._collect()
        finally:
            self._metrics.observe_collection_duration(time.monotonic() - cycle_start)

        if result is None:
            return None

        self._publish(result)
        if result.storage_ok:
            self._metrics.set_last_collection_success(time.time())

        logger.info(
            "collection_cycle_end",
            pods=len(result.pod_costs),
            nodes=len(result.nodes),
            cluster_hourly_usd=round(result.cluster_hourly_cost, 4),
            spot_savings_hourly_usd=round(result.spot_savings.total_savings_hourly, 4),
        )
        return result

    async def _collect(self) -> "CycleResult | None":
        # nodes and pods are both required, without either no
        # allocation is possible and the cycle is abandoned
        try:
            raw_nodes = await asyncio.to_thread(self._inventory.list_nodes)
        except Exception:
            logger.exception("node_fetch_error")
            self._metrics.inc_collection_error("nodes")
            return None

        try:
            pods = await asyncio.to_thread(self._inventory.list_pods)
        except Exception:
            logger.exception("pod_fetch_error")
            self._metrics.inc_collection_error("pods")
            return None

        logger.debug("inventory_listed", nodes=len(raw_nodes), pods=len(pods))

        nodes = await self._price_nodes(raw_nodes)
        pod_costs = self._calculator.calculate_pod_costs(pods, nodes)

        result = CycleResult(
            nodes=nodes,
            pod_costs=pod_costs,
            namespace_costs=aggregator.namespace_costs(pod_costs),
            cluster_hourly_cost=aggregator.cluster_hourly_cost(nodes),
            spot_savings=aggregator.spot_savings(nodes),
            namespace_spot_usage=aggregator.namespace_spot_usage(pod_costs, nodes),
        )

        # storage is an independent stage, its failure keeps the
        # compute results of this cycle
        try:
            raw_volumes = await asyncio.to_thread(self._inventory.list_volumes)
        except Exception:
            logger.exception("storage_fetch_error")
            self._metrics.inc_collection_error("storage")
            return result

        volumes = await self._price_volumes(raw_volumes)
        volume_costs = self._calculator.calculate_storage_costs(volumes)

        return dataclasses.replace(
            result,
            volume_costs=volume_costs,
            namespace_storage_costs=aggregator.namespace_storage_costs(volume_costs),
            storage_class_costs=aggregator.storage_class_costs(volume_costs),
            cluster_storage_monthly_cost=aggregator.cluster_storage_monthly_cost(
                volume_costs
            ),
            storage_ok=True,
        )

    async def _price_nodes(self, nodes: "list[NodeRecord]") -> "list[NodeRecord]":
        """
        resolves every node's hourly price concurrently.
        """
        prices = await asyncio.gather(*(self._node_price(node) for node in nodes))
        return [
            dataclasses.replace(node, hourly_price=price)
            for node, price in zip(nodes, prices)
        ]

    async def _node_price(self, node: "NodeRecord") -> "float":
        if node.is_spot:
            return await self._pricing.get_spot_price(
                node.instance_type, node.region, node.zone
            )
        return await self._pricing.get_instance_price(
            node.instance_type, node.region, node.zone
        )

    async def _price_volumes(
        self, volumes: "list[VolumeRecord]"
    ) -> "list[VolumeRecord]":
        prices = await asyncio.gather(
            *(
                self._pricing.get_storage_price(volume.storage_class, volume.region)
                for volume in volumes
            )
        )
        return [
            dataclasses.replace(
                volume,
                price_per_gb=price,
                monthly_cost=volume.size_gb * price,
            )
            for volume, price in zip(volumes, prices)
        ]

    def _publish(self, result: "CycleResult") -> "None":
        self._metrics.update_pods(result.pod_costs)
        self._metrics.update_namespaces(result.namespace_costs)
        self._metrics.update_nodes(result.nodes)
        self._metrics.update_cluster(result.cluster_hourly_cost, result.spot_savings)
        self._metrics.update_namespace_spot(result.namespace_spot_usage)

        if result.storage_ok:
            self._metrics.update_storage(
                result.volume_costs,
                result.namespace_storage_costs,
                result.storage_class_costs,
                result.cluster_storage_monthly_cost,
            )
            logger.info(
                "storage_costs_updated",
                volumes=len(result.volume_costs),
                cluster_storage_monthly_usd=round(
                    result.cluster_storage_monthly_cost, 2
                ),
            )
