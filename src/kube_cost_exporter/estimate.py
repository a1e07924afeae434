import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Iterable, Mapping, Union

import structlog
import yaml

from kube_cost_exporter.errors import ManifestError
from kube_cost_exporter.models import HOURS_PER_DAY, HOURS_PER_MONTH

logger = structlog.get_logger()

# $30 per vCPU-month and $4 per GB-month, as hourly rates
CPU_COST_PER_CORE_HOUR = 30.0 / HOURS_PER_MONTH
MEMORY_COST_PER_GB_HOUR = 4.0 / HOURS_PER_MONTH

_MEMORY_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([A-Za-z]*)$")

# multipliers from a memory unit to GB
_MEMORY_UNITS: "dict[str, float]" = {
    "K": 1 / (1024 * 1024),
    "KI": 1 / (1024 * 1024),
    "M": 1 / 1024,
    "MI": 1 / 1024,
    "G": 1.0,
    "GI": 1.0,
    "T": 1024.0,
    "TI": 1024.0,
    "KB": 1 / (1000 * 1000),
    "MB": 1 / 1000,
    "GB": 1.0,
    "TB": 1000.0,
}


@dataclass(frozen=True, slots=True)
class ContainerSpec:
    name: "str"
    # requests if declared, otherwise limits
    cpu: "str | None" = None
    memory: "str | None" = None


@dataclass(frozen=True, slots=True)
class Deployment:
    kind: "ClassVar[str]" = "Deployment"

    name: "str"
    namespace: "str"
    containers: "tuple[ContainerSpec, ...]"
    replicas: "int | None" = None


@dataclass(frozen=True, slots=True)
class StatefulSet:
    kind: "ClassVar[str]" = "StatefulSet"

    name: "str"
    namespace: "str"
    containers: "tuple[ContainerSpec, ...]"
    replicas: "int | None" = None


@dataclass(frozen=True, slots=True)
class DaemonSet:
    """
    a DaemonSet runs one pod per node; without a node count the
    estimate covers a single pod.
    """

    kind: "ClassVar[str]" = "DaemonSet"

    name: "str"
    namespace: "str"
    containers: "tuple[ContainerSpec, ...]"


@dataclass(frozen=True, slots=True)
class Job:
    kind: "ClassVar[str]" = "Job"

    name: "str"
    namespace: "str"
    containers: "tuple[ContainerSpec, ...]"


@dataclass(frozen=True, slots=True)
class CronJob:
    kind: "ClassVar[str]" = "CronJob"

    name: "str"
    namespace: "str"
    containers: "tuple[ContainerSpec, ...]"
    schedule: "str | None" = None


Workload = Union[Deployment, StatefulSet, DaemonSet, Job, CronJob]


@dataclass(frozen=True, slots=True)
class ResourceEstimate:
    kind: "str"
    name: "str"
    namespace: "str"
    replicas: "int"
    cpu_cores: "float"
    memory_gb: "float"
    # hourly USD
    cpu_cost: "float"
    memory_cost: "float"
    total_cost: "float"

    @property
    def daily_cost(self) -> "float":
        return self.total_cost * HOURS_PER_DAY

    @property
    def monthly_cost(self) -> "float":
        return self.total_cost * HOURS_PER_MONTH


def parse_cpu(value: "str | int | float") -> "float":
    """
    parses a CPU quantity ("500m", "1", "2.5") into cores.
    Unparsable values count as zero.
    """
    text = str(value).strip()
    try:
        if text.endswith("m"):
            return float(text[:-1]) / 1000.0
        return float(text)
    except ValueError:
        return 0.0


def parse_memory(value: "str | int | float") -> "float":
    """
    parses a memory quantity into GB. Binary and decimal suffixes
    are accepted; a bare number is taken as bytes.
    """
    match = _MEMORY_PATTERN.match(str(value).strip())
    if match is None:
        return 0.0

    amount = float(match.group(1))
    unit = match.group(2).upper()
    if unit in _MEMORY_UNITS:
        return amount * _MEMORY_UNITS[unit]
    return amount / (1024**3)


def parse_workload(document: "Mapping[str, Any]") -> "Workload | None":
    """
    converts one YAML document into a typed workload, or returns
    None when it is not a workload kind or lacks a pod template.
    """
    kind = document.get("kind")
    metadata = document.get("metadata") or {}
    spec = document.get("spec") or {}
    if not isinstance(metadata, Mapping) or not isinstance(spec, Mapping):
        return None

    name = str(metadata.get("name", ""))
    namespace = str(metadata.get("namespace") or "default")

    if kind == "CronJob":
        job_template = spec.get("jobTemplate")
        if not isinstance(job_template, Mapping):
            return None
        job_spec = job_template.get("spec")
        if not isinstance(job_spec, Mapping):
            return None
        containers = _containers(job_spec)
        if containers is None:
            return None
        return CronJob(name, namespace, containers, schedule=spec.get("schedule"))

    containers = _containers(spec)
    if containers is None:
        return None

    if kind == "Deployment":
        return Deployment(name, namespace, containers, _replicas(spec))
    if kind == "StatefulSet":
        return StatefulSet(name, namespace, containers, _replicas(spec))
    if kind == "DaemonSet":
        return DaemonSet(name, namespace, containers)
    if kind == "Job":
        return Job(name, namespace, containers)
    return None


def replica_count(workload: "Workload") -> "int":
    if isinstance(workload, (Deployment, StatefulSet)) and workload.replicas is not None:
        return workload.replicas
    return 1


def estimate_workload(workload: "Workload") -> "ResourceEstimate":
    replicas = replica_count(workload)
    cpu = sum(parse_cpu(c.cpu) for c in workload.containers if c.cpu is not None)
    memory = sum(
        parse_memory(c.memory) for c in workload.containers if c.memory is not None
    )

    cpu *= replicas
    memory *= replicas
    cpu_cost = cpu * CPU_COST_PER_CORE_HOUR
    memory_cost = memory * MEMORY_COST_PER_GB_HOUR

    return ResourceEstimate(
        kind=workload.kind,
        name=workload.name,
        namespace=workload.namespace,
        replicas=replicas,
        cpu_cores=cpu,
        memory_gb=memory,
        cpu_cost=cpu_cost,
        memory_cost=memory_cost,
        total_cost=cpu_cost + memory_cost,
    )


def estimate_documents(documents: "Iterable[Any]") -> "list[ResourceEstimate]":
    estimates: "list[ResourceEstimate]" = []
    for document in documents:
        if not isinstance(document, Mapping):
            continue
        workload = parse_workload(document)
        if workload is None:
            logger.debug("manifest_document_skipped", kind=document.get("kind"))
            continue
        estimates.append(estimate_workload(workload))
    return estimates


def estimate_file(path: "str | Path") -> "list[ResourceEstimate]":
    """
    estimates every workload in a (multi-document) manifest file
    from flat average cloud prices, since no node has been chosen
    yet and the live pricing providers do not apply.
    Raises ManifestError when the file cannot be read or parsed,
    or holds no workload.
    """
    try:
        with open(path, encoding="utf-8") as f:
            documents = list(yaml.safe_load_all(f))
    except OSError as exc:
        raise ManifestError(f"failed to read file: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ManifestError(f"failed to parse manifest: {exc}") from exc

    estimates = estimate_documents(documents)
    if not estimates:
        raise ManifestError("no workload resources found in manifest")
    return estimates


def _replicas(spec: "Mapping[str, Any]") -> "int | None":
    value = spec.get("replicas")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _containers(spec: "Mapping[str, Any]") -> "tuple[ContainerSpec, ...] | None":
    template = spec.get("template") or {}
    pod_spec = template.get("spec") if isinstance(template, Mapping) else None
    if not isinstance(pod_spec, Mapping):
        return None

    raw = pod_spec.get("containers")
    if not isinstance(raw, list):
        return None

    containers: "list[ContainerSpec]" = []
    for container in raw:
        if not isinstance(container, Mapping):
            continue
        resources = container.get("resources")
        if not isinstance(resources, Mapping):
            resources = {}
        quantities = resources.get("requests") or resources.get("limits")
        if not isinstance(quantities, Mapping):
            quantities = {}
        containers.append(
            ContainerSpec(
                name=str(container.get("name", "")),
                cpu=_quantity(quantities.get("cpu")),
                memory=_quantity(quantities.get("memory")),
            )
        )
    return tuple(containers)


def _quantity(value: "Any") -> "str | None":
    if value is None:
        return None
    return str(value)
