from typing import Iterable

import structlog

from kube_cost_exporter.errors import InvalidNodeError
from kube_cost_exporter.models import (
    DAYS_PER_MONTH,
    HOURS_PER_DAY,
    HOURS_PER_MONTH,
    NodeRecord,
    PodCost,
    PodRecord,
    VolumeCost,
    VolumeRecord,
)

logger = structlog.get_logger()

# share of node cost charged to a pod that declares no requests at all
NO_REQUEST_FRACTION = 0.01


class CostCalculator:
    """
    CostCalculator allocates node and volume prices to the
    workloads that use them.

    A pod is charged the larger of its CPU and memory shares of
    its node (the dominant resource). Summed over all pods this
    does not add up to the cluster's node spend: idle capacity
    stays unallocated and the non-dominant dimension is never
    charged. The cluster total is reported from node prices
    instead.
    """

    def calculate_pod_cost(self, pod: "PodRecord", node: "NodeRecord") -> "PodCost":
        """
        computes the hourly, daily and monthly cost of a pod on
        the given node. Raises InvalidNodeError when the node
        reports zero CPU or memory capacity.
        """
        if node.cpu_capacity == 0 or node.memory_capacity == 0:
            raise InvalidNodeError(node.name, "node has zero capacity")

        cpu_fraction = pod.cpu_request / node.cpu_capacity
        memory_fraction = pod.memory_request / node.memory_capacity

        if pod.cpu_request == 0 and pod.memory_request == 0:
            resource_fraction = NO_REQUEST_FRACTION
        else:
            resource_fraction = max(cpu_fraction, memory_fraction)

        hourly_cost = node.hourly_price * resource_fraction

        return PodCost(
            pod_name=pod.name,
            namespace=pod.namespace,
            node_name=pod.node_name,
            hourly_cost=hourly_cost,
            daily_cost=hourly_cost * HOURS_PER_DAY,
            monthly_cost=hourly_cost * HOURS_PER_MONTH,
            cpu_cost=node.hourly_price * cpu_fraction,
            memory_cost=node.hourly_price * memory_fraction,
        )

    def calculate_pod_costs(
        self,
        pods: "Iterable[PodRecord]",
        nodes: "Iterable[NodeRecord]",
    ) -> "list[PodCost]":
        """
        allocates every pod against its node from the same snapshot.
        Pods whose node is missing or invalid are logged and skipped.
        """
        node_map = {node.name: node for node in nodes}
        pod_costs: "list[PodCost]" = []

        for pod in pods:
            node = node_map.get(pod.node_name)
            if node is None:
                logger.warning(
                    "pod_skipped_missing_node",
                    pod=pod.name,
                    namespace=pod.namespace,
                    node=pod.node_name,
                )
                continue

            try:
                pod_costs.append(self.calculate_pod_cost(pod, node))
            except InvalidNodeError as exc:
                logger.warning(
                    "pod_skipped_invalid_node",
                    pod=pod.name,
                    namespace=pod.namespace,
                    node=node.name,
                    reason=exc.reason,
                )

        return pod_costs

    def calculate_storage_cost(self, volume: "VolumeRecord") -> "VolumeCost":
        monthly_cost = volume.monthly_cost
        return VolumeCost(
            volume_name=volume.name,
            namespace=volume.namespace,
            claim_name=volume.claim_name,
            storage_class=volume.storage_class,
            size_gb=volume.size_gb,
            hourly_cost=monthly_cost / HOURS_PER_MONTH,
            daily_cost=monthly_cost / DAYS_PER_MONTH,
            monthly_cost=monthly_cost,
        )

    def calculate_storage_costs(
        self, volumes: "Iterable[VolumeRecord]"
    ) -> "list[VolumeCost]":
        return [self.calculate_storage_cost(volume) for volume in volumes]
