from collections import defaultdict
from typing import Iterable, Sequence

from kube_cost_exporter.models import (
    NamespaceCost,
    NamespaceSpotUsage,
    NamespaceStorageCost,
    NodeRecord,
    PodCost,
    SpotSavings,
    VolumeCost,
)

# spot nodes are assumed to cost 30% of their on-demand equivalent
SPOT_TO_ON_DEMAND_RATIO = 0.30


def namespace_costs(pod_costs: "Iterable[PodCost]") -> "list[NamespaceCost]":
    """
    groups pod costs by namespace, sorted by namespace name. Like
    every roll-up here it is a pure fold over one cycle's records.
    """
    hourly: "dict[str, float]" = defaultdict(float)
    daily: "dict[str, float]" = defaultdict(float)
    monthly: "dict[str, float]" = defaultdict(float)
    counts: "dict[str, int]" = defaultdict(int)

    for cost in pod_costs:
        hourly[cost.namespace] += cost.hourly_cost
        daily[cost.namespace] += cost.daily_cost
        monthly[cost.namespace] += cost.monthly_cost
        counts[cost.namespace] += 1

    return [
        NamespaceCost(
            namespace=ns,
            hourly_cost=hourly[ns],
            daily_cost=daily[ns],
            monthly_cost=monthly[ns],
            pod_count=counts[ns],
        )
        for ns in sorted(counts)
    ]


def cluster_hourly_cost(nodes: "Iterable[NodeRecord]") -> "float":
    """
    sum of node hourly prices. This captures all node spend,
    including capacity no pod requested.
    """
    return sum(node.hourly_price for node in nodes)


def namespace_storage_costs(
    volume_costs: "Iterable[VolumeCost]",
) -> "list[NamespaceStorageCost]":
    """
    groups volume costs by namespace. Unbound volumes are skipped.
    """
    size: "dict[str, int]" = defaultdict(int)
    monthly: "dict[str, float]" = defaultdict(float)
    daily: "dict[str, float]" = defaultdict(float)
    counts: "dict[str, int]" = defaultdict(int)

    for cost in volume_costs:
        if not cost.namespace:
            continue
        size[cost.namespace] += cost.size_gb
        monthly[cost.namespace] += cost.monthly_cost
        daily[cost.namespace] += cost.daily_cost
        counts[cost.namespace] += 1

    return [
        NamespaceStorageCost(
            namespace=ns,
            total_size_gb=size[ns],
            monthly_cost=monthly[ns],
            daily_cost=daily[ns],
            volume_count=counts[ns],
        )
        for ns in sorted(counts)
    ]


def cluster_storage_monthly_cost(volume_costs: "Iterable[VolumeCost]") -> "float":
    # bound and unbound volumes alike
    return sum(cost.monthly_cost for cost in volume_costs)


def storage_class_costs(volume_costs: "Iterable[VolumeCost]") -> "dict[str, float]":
    totals: "dict[str, float]" = defaultdict(float)
    for cost in volume_costs:
        totals[cost.storage_class] += cost.monthly_cost
    return dict(totals)


def spot_savings(nodes: "Sequence[NodeRecord]") -> "SpotSavings":
    """
    estimates how much the spot nodes save compared to running
    the same nodes on-demand.
    """
    spot_count = 0
    on_demand_count = 0
    spot_cost = 0.0
    on_demand_cost = 0.0
    equivalent = 0.0

    for node in nodes:
        if node.is_spot:
            spot_count += 1
            spot_cost += node.hourly_price
            equivalent += node.hourly_price / SPOT_TO_ON_DEMAND_RATIO
        else:
            on_demand_count += 1
            on_demand_cost += node.hourly_price

    savings = 0.0
    savings_rate = 0.0
    if spot_count > 0 and equivalent > 0:
        savings = equivalent - spot_cost
        savings_rate = savings / equivalent * 100

    total = spot_count + on_demand_count
    spot_percentage = spot_count / total * 100 if total else 0.0

    return SpotSavings(
        spot_node_count=spot_count,
        on_demand_node_count=on_demand_count,
        spot_cost_hourly=spot_cost,
        on_demand_cost_hourly=on_demand_cost,
        estimated_on_demand_equivalent_hourly=equivalent,
        total_savings_hourly=savings,
        savings_rate=savings_rate,
        spot_percentage=spot_percentage,
    )


def namespace_spot_usage(
    pod_costs: "Iterable[PodCost]",
    nodes: "Iterable[NodeRecord]",
) -> "list[NamespaceSpotUsage]":
    """
    splits each namespace's pods and hourly cost between spot
    and on-demand nodes. Pods on unknown nodes count as on-demand.
    """
    spot_nodes = {node.name: node.is_spot for node in nodes}

    on_spot: "dict[str, int]" = defaultdict(int)
    on_demand: "dict[str, int]" = defaultdict(int)
    spot_cost: "dict[str, float]" = defaultdict(float)
    on_demand_cost: "dict[str, float]" = defaultdict(float)
    namespaces: "set[str]" = set()

    for cost in pod_costs:
        namespaces.add(cost.namespace)
        if spot_nodes.get(cost.node_name, False):
            on_spot[cost.namespace] += 1
            spot_cost[cost.namespace] += cost.hourly_cost
        else:
            on_demand[cost.namespace] += 1
            on_demand_cost[cost.namespace] += cost.hourly_cost

    usage: "list[NamespaceSpotUsage]" = []
    for ns in sorted(namespaces):
        total = on_spot[ns] + on_demand[ns]
        usage.append(
            NamespaceSpotUsage(
                namespace=ns,
                pods_on_spot=on_spot[ns],
                pods_on_demand=on_demand[ns],
                spot_cost_hourly=spot_cost[ns],
                on_demand_cost_hourly=on_demand_cost[ns],
                spot_percentage=on_spot[ns] / total * 100 if total else 0.0,
            )
        )
    return usage
