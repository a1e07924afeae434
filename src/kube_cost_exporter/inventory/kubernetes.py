from decimal import Decimal
from typing import Any, Mapping

import structlog
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.utils import parse_quantity
from urllib3.exceptions import HTTPError as TransportError

from kube_cost_exporter.errors import InventoryError
from kube_cost_exporter.models import NodeRecord, PodRecord, VolumeRecord

logger = structlog.get_logger()

INSTANCE_TYPE_LABELS = (
    "node.kubernetes.io/instance-type",
    "beta.kubernetes.io/instance-type",
    "kubernetes.io/instance-type",
)
REGION_LABELS = (
    "topology.kubernetes.io/region",
    "failure-domain.beta.kubernetes.io/region",
    "kubernetes.io/region",
)
ZONE_LABELS = (
    "topology.kubernetes.io/zone",
    "failure-domain.beta.kubernetes.io/zone",
    "kubernetes.io/zone",
)
# labels set by karpenter, EKS, GKE and AKS on spot/preemptible nodes
SPOT_LABELS = (
    "karpenter.sh/capacity-type",
    "eks.amazonaws.com/capacityType",
    "cloud.google.com/gke-preemptible",
    "kubernetes.azure.com/scalesetpriority",
)
STORAGE_CLASS_ANNOTATION = "volume.beta.kubernetes.io/storage-class"

# pods in other phases no longer hold node resources
BILLABLE_POD_PHASES = ("Running", "Pending")

_BYTES_PER_GB = 1000**3


def load_core_v1(kubeconfig: "str" = "") -> "client.CoreV1Api":
    """
    builds a CoreV1Api client from the given kubeconfig path, or
    from in-cluster config, or from the default kubeconfig.
    """
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
            logger.info("kubeconfig_loaded", source="default")
    return client.CoreV1Api()


class KubernetesInventory:
    """
    KubernetesInventory implements the InventorySource protocol
    on top of the official Kubernetes client.
    """

    def __init__(
        self,
        core_v1: "Any",
        cloud_provider: "str",
        region: "str",
    ) -> "None":
        self._core_v1 = core_v1
        self._cloud_provider = cloud_provider
        self._region = region

    def list_nodes(self) -> "list[NodeRecord]":
        try:
            nodes = self._core_v1.list_node().items
        except (ApiException, TransportError) as exc:
            raise InventoryError("nodes", exc) from exc

        records: "list[NodeRecord]" = []
        for node in nodes:
            try:
                records.append(self._node_record(node))
            except (ValueError, ArithmeticError) as exc:
                logger.warning(
                    "node_skipped", node=node.metadata.name, error=str(exc)
                )
        return records

    def list_pods(self) -> "list[PodRecord]":
        try:
            pods = self._core_v1.list_pod_for_all_namespaces().items
        except (ApiException, TransportError) as exc:
            raise InventoryError("pods", exc) from exc

        records: "list[PodRecord]" = []
        for pod in pods:
            phase = pod.status.phase if pod.status else None
            if phase not in BILLABLE_POD_PHASES:
                continue
            try:
                records.append(self._pod_record(pod))
            except (ValueError, ArithmeticError) as exc:
                logger.warning(
                    "pod_skipped",
                    pod=pod.metadata.name,
                    namespace=pod.metadata.namespace,
                    error=str(exc),
                )
        return records

    def list_volumes(self) -> "list[VolumeRecord]":
        try:
            volumes = self._core_v1.list_persistent_volume().items
        except (ApiException, TransportError) as exc:
            raise InventoryError("persistent volumes", exc) from exc

        records: "list[VolumeRecord]" = []
        for pv in volumes:
            try:
                records.append(self._volume_record(pv))
            except (ValueError, ArithmeticError) as exc:
                logger.warning("volume_skipped", pv=pv.metadata.name, error=str(exc))
        return records

    def _node_record(self, node: "Any") -> "NodeRecord":
        labels: "Mapping[str, str]" = node.metadata.labels or {}
        capacity = (node.status.capacity if node.status else None) or {}
        provider_id = node.spec.provider_id if node.spec else None

        return NodeRecord(
            name=node.metadata.name,
            instance_type=instance_type(labels, provider_id),
            region=_first_label(labels, REGION_LABELS) or self._region,
            zone=_first_label(labels, ZONE_LABELS) or "",
            is_spot=is_spot(labels),
            cpu_capacity=cpu_millis(capacity.get("cpu")),
            memory_capacity=memory_bytes(capacity.get("memory")),
        )

    def _pod_record(self, pod: "Any") -> "PodRecord":
        cpu_request, memory_request = pod_requests(pod.spec)
        cpu_limit, memory_limit = pod_limits(pod.spec)

        return PodRecord(
            name=pod.metadata.name,
            namespace=pod.metadata.namespace,
            node_name=pod.spec.node_name or "",
            cpu_request=cpu_request,
            memory_request=memory_request,
            cpu_limit=cpu_limit,
            memory_limit=memory_limit,
        )

    def _volume_record(self, pv: "Any") -> "VolumeRecord":
        claim = pv.spec.claim_ref
        return VolumeRecord(
            name=pv.metadata.name,
            storage_class=self._storage_class(pv),
            namespace=(claim.namespace or "") if claim else "",
            claim_name=(claim.name or "") if claim else "",
            size_gb=volume_size_gb(pv.spec.capacity),
            region=self._region,
        )

    def _storage_class(self, pv: "Any") -> "str":
        if pv.spec.storage_class_name:
            return pv.spec.storage_class_name

        annotations = pv.metadata.annotations or {}
        if STORAGE_CLASS_ANNOTATION in annotations:
            return annotations[STORAGE_CLASS_ANNOTATION]

        # provider defaults, by volume source
        if self._cloud_provider == "aws":
            return "gp2" if pv.spec.aws_elastic_block_store else "gp3"
        if self._cloud_provider == "gcp":
            return "pd-standard" if pv.spec.gce_persistent_disk else "pd-balanced"
        if self._cloud_provider == "azure":
            return "StandardSSD_LRS" if pv.spec.azure_disk else "Standard_LRS"
        return "standard"


def instance_type(labels: "Mapping[str, str]", provider_id: "str | None") -> "str":
    value = _first_label(labels, INSTANCE_TYPE_LABELS)
    if value:
        return value
    # e.g. aws:///us-east-1a/i-0abc -> last path segment
    if provider_id:
        return provider_id.rsplit("/", 1)[-1]
    return "unknown"


def is_spot(labels: "Mapping[str, str]") -> "bool":
    for key in SPOT_LABELS:
        value = labels.get(key)
        if value is None:
            continue
        value = value.lower()
        if "spot" in value or "preemptible" in value or value == "true":
            return True
    return False


def cpu_millis(quantity: "str | None") -> "int":
    if not quantity:
        return 0
    return int((parse_quantity(quantity) * 1000).to_integral_value())


def memory_bytes(quantity: "str | None") -> "int":
    if not quantity:
        return 0
    return int(parse_quantity(quantity).to_integral_value())


def volume_size_gb(capacity: "Mapping[str, str] | None") -> "int":
    """
    returns the volume size in decimal GB, rounded down with a
    minimum of 1, or 0 when the volume declares no capacity.
    """
    if not capacity or "storage" not in capacity:
        return 0
    size = int(parse_quantity(capacity["storage"]) // Decimal(_BYTES_PER_GB))
    return max(size, 1)


def pod_requests(spec: "Any") -> "tuple[int, int]":
    """
    sums container requests. Init containers run one at a time,
    so the largest of them wins when it exceeds the sum.
    """
    cpu = 0
    memory = 0
    for container in spec.containers or []:
        requests = _resources(container, "requests")
        cpu += cpu_millis(requests.get("cpu"))
        memory += memory_bytes(requests.get("memory"))

    init_cpu = 0
    init_memory = 0
    for container in spec.init_containers or []:
        requests = _resources(container, "requests")
        init_cpu = max(init_cpu, cpu_millis(requests.get("cpu")))
        init_memory = max(init_memory, memory_bytes(requests.get("memory")))

    return max(cpu, init_cpu), max(memory, init_memory)


def pod_limits(spec: "Any") -> "tuple[int, int]":
    cpu = 0
    memory = 0
    for container in spec.containers or []:
        limits = _resources(container, "limits")
        cpu += cpu_millis(limits.get("cpu"))
        memory += memory_bytes(limits.get("memory"))
    return cpu, memory


def _resources(container: "Any", kind: "str") -> "Mapping[str, str]":
    if container.resources is None:
        return {}
    return getattr(container.resources, kind) or {}


def _first_label(labels: "Mapping[str, str]", keys: "tuple[str, ...]") -> "str":
    for key in keys:
        if key in labels:
            return labels[key]
    return ""
