from dataclasses import dataclass, field

HOURS_PER_DAY = 24
# average hours per month, used for every hourly <-> monthly conversion
HOURS_PER_MONTH = 730
DAYS_PER_MONTH = 30


@dataclass(frozen=True, slots=True)
class NodeRecord:
    """
    NodeRecord represents a single cluster node and its
    resolved hourly price.
    """

    name: "str"
    instance_type: "str"
    region: "str"
    zone: "str"
    is_spot: "bool"
    # 0.0 until the pricing stage fills it in
    hourly_price: "float" = 0.0
    # millicores
    cpu_capacity: "int" = 0
    # bytes
    memory_capacity: "int" = 0


@dataclass(frozen=True, slots=True)
class PodRecord:
    """
    PodRecord represents a scheduled pod and its aggregated
    container requests and limits.
    """

    name: "str"
    namespace: "str"
    node_name: "str"
    # millicores; 0 means no request declared
    cpu_request: "int" = 0
    # bytes; 0 means no request declared
    memory_request: "int" = 0
    cpu_limit: "int" = 0
    memory_limit: "int" = 0


@dataclass(frozen=True, slots=True)
class VolumeRecord:
    """
    VolumeRecord represents a persistent volume. namespace and
    claim_name are empty when the volume is not bound to a claim.
    """

    name: "str"
    storage_class: "str"
    namespace: "str" = ""
    claim_name: "str" = ""
    size_gb: "int" = 0
    region: "str" = ""
    # USD per GB-month, 0.0 until priced
    price_per_gb: "float" = 0.0
    # USD per month, size_gb * price_per_gb
    monthly_cost: "float" = 0.0


@dataclass(frozen=True, slots=True)
class PodCost:
    """
    PodCost is the allocated cost of a single pod.

    cpu_cost and memory_cost are diagnostic only, their sum
    generally exceeds hourly_cost since only the dominant
    fraction is charged.
    """

    pod_name: "str"
    namespace: "str"
    node_name: "str"
    hourly_cost: "float"
    daily_cost: "float"
    monthly_cost: "float"
    cpu_cost: "float"
    memory_cost: "float"


@dataclass(frozen=True, slots=True)
class VolumeCost:
    volume_name: "str"
    namespace: "str"
    claim_name: "str"
    storage_class: "str"
    size_gb: "int"
    hourly_cost: "float"
    daily_cost: "float"
    monthly_cost: "float"


@dataclass(frozen=True, slots=True)
class NamespaceCost:
    namespace: "str"
    hourly_cost: "float"
    daily_cost: "float"
    monthly_cost: "float"
    pod_count: "int"


@dataclass(frozen=True, slots=True)
class NamespaceStorageCost:
    namespace: "str"
    total_size_gb: "int"
    monthly_cost: "float"
    daily_cost: "float"
    volume_count: "int"


@dataclass(frozen=True, slots=True)
class SpotSavings:
    """
    SpotSavings summarises the spot/on-demand split of the
    cluster's nodes. savings_rate and spot_percentage are
    percentages in [0, 100].
    """

    spot_node_count: "int" = 0
    on_demand_node_count: "int" = 0
    spot_cost_hourly: "float" = 0.0
    on_demand_cost_hourly: "float" = 0.0
    # what the spot nodes would cost if they ran on-demand
    estimated_on_demand_equivalent_hourly: "float" = 0.0
    total_savings_hourly: "float" = 0.0
    savings_rate: "float" = 0.0
    spot_percentage: "float" = 0.0


@dataclass(frozen=True, slots=True)
class NamespaceSpotUsage:
    namespace: "str"
    pods_on_spot: "int"
    pods_on_demand: "int"
    spot_cost_hourly: "float"
    on_demand_cost_hourly: "float"
    spot_percentage: "float"


@dataclass(frozen=True, slots=True)
class CycleResult:
    """
    CycleResult bundles every record produced by one collection
    cycle. The storage fields are empty and storage_ok is False
    when the volume stage failed.
    """

    nodes: "list[NodeRecord]"
    pod_costs: "list[PodCost]"
    namespace_costs: "list[NamespaceCost]"
    cluster_hourly_cost: "float"
    spot_savings: "SpotSavings"
    namespace_spot_usage: "list[NamespaceSpotUsage]"
    volume_costs: "list[VolumeCost]" = field(default_factory=list)
    namespace_storage_costs: "list[NamespaceStorageCost]" = field(
        default_factory=list
    )
    storage_class_costs: "dict[str, float]" = field(default_factory=dict)
    cluster_storage_monthly_cost: "float" = 0.0
    storage_ok: "bool" = False
