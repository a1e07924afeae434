import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Sequence

import httpx
import structlog

from kube_cost_exporter.models import HOURS_PER_MONTH

logger = structlog.get_logger()

DEFAULT_WINDOW = timedelta(hours=24)
TOP_LIMIT = 10

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS: "dict[str, float]" = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

# resource -> (query template, label used as the row name)
_TOP_QUERIES: "dict[str, tuple[str, str]]" = {
    "pods": ("topk({limit}, avg_over_time(kube_cost_pod_hourly_usd[{window}]))", "pod"),
    "namespaces": (
        "topk({limit}, sum(avg_over_time(kube_cost_namespace_hourly_usd[{window}]))"
        " by (namespace))",
        "namespace",
    ),
    "nodes": (
        "topk({limit}, avg_over_time(kube_cost_node_hourly_usd[{window}]))",
        "node",
    ),
}


class QueryError(Exception):
    """
    raised when Prometheus rejects a query or returns an
    unexpected payload.
    """


@dataclass(frozen=True, slots=True)
class Sample:
    labels: "dict[str, str]"
    value: "float"


def parse_window(window: "str") -> "timedelta":
    """
    parses a Go-style duration ("90m", "1h30m") or a day count
    ("7d"). Anything else falls back to 24 hours.
    """
    window = window.strip()
    if window.endswith("d") and window[:-1].isdigit():
        return timedelta(days=int(window[:-1]))

    parts = _DURATION_PART.findall(window)
    if not parts or "".join(a + u for a, u in parts) != window:
        return DEFAULT_WINDOW
    return timedelta(seconds=sum(float(a) * _DURATION_UNITS[u] for a, u in parts))


class PrometheusQueryClient:
    """
    PrometheusQueryClient runs instant queries against the
    Prometheus HTTP API and returns vector samples.
    """

    def __init__(self, base_url: "str", timeout: "float" = 10.0) -> "None":
        self._base_url = base_url.rstrip("/")
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def query(self, promql: "str") -> "list[Sample]":
        logger.debug("prometheus_query", query=promql)
        try:
            resp = await self._client.get(
                f"{self._base_url}/api/v1/query", params={"query": promql}
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise QueryError(f"error querying Prometheus: {exc}") from exc

        if payload.get("status") != "success":
            raise QueryError(payload.get("error", "query failed"))

        data = payload.get("data", {})
        if data.get("resultType") != "vector":
            raise QueryError(f"unexpected result type: {data.get('resultType')}")

        return [
            Sample(labels=dict(item.get("metric", {})), value=float(item["value"][1]))
            for item in data.get("result", [])
        ]


def format_table(headers: "Sequence[str]", rows: "Sequence[Sequence[Any]]") -> "str":
    """
    left-aligns columns separated by three spaces.
    """
    cells = [list(map(str, headers))] + [list(map(str, row)) for row in rows]
    widths = [max(len(row[i]) for row in cells) for i in range(len(headers))]
    lines = [
        "   ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
        for row in cells
    ]
    return "\n".join(lines)


def _money(value: "float", digits: "int" = 2) -> "str":
    return f"${value:.{digits}f}"


def _escape(value: "str") -> "str":
    return value.replace("\\", "\\\\").replace('"', '\\"')


async def namespace_report(
    client: "PrometheusQueryClient", namespace: "str", window: "str"
) -> "str":
    if namespace == "--all":
        query = (
            f"sum(avg_over_time(kube_cost_namespace_hourly_usd[{window}])) by (namespace)"
        )
    else:
        query = (
            "sum(avg_over_time(kube_cost_namespace_hourly_usd"
            f'{{namespace="{_escape(namespace)}"}}[{window}])) by (namespace)'
        )

    samples = await client.query(query)
    if not samples:
        return f"No cost data found for namespace: {namespace}"

    hours = parse_window(window).total_seconds() / 3600
    rows = [
        (
            s.labels.get("namespace", namespace),
            _money(s.value, 4),
            _money(s.value * hours),
            _money(s.value * HOURS_PER_MONTH),
        )
        for s in samples
    ]
    return format_table(
        ("NAMESPACE", "HOURLY COST", "TOTAL COST", "MONTHLY PROJECTION"), rows
    )


async def pod_report(
    client: "PrometheusQueryClient", namespace: "str", pod: "str", window: "str"
) -> "str":
    query = (
        "avg_over_time(kube_cost_pod_hourly_usd"
        f'{{namespace="{_escape(namespace)}",pod=~"{_escape(pod)}.*"}}[{window}])'
    )
    samples = await client.query(query)
    if not samples:
        return f"No cost data found for pod: {pod} in namespace: {namespace}"

    hours = parse_window(window).total_seconds() / 3600
    rows = [
        (
            s.labels.get("pod", ""),
            s.labels.get("namespace", ""),
            s.labels.get("node", ""),
            _money(s.value, 4),
            _money(s.value * hours),
            _money(s.value * HOURS_PER_MONTH),
        )
        for s in samples
    ]
    return format_table(
        ("POD", "NAMESPACE", "NODE", "HOURLY COST", "TOTAL COST", "MONTHLY PROJECTION"),
        rows,
    )


async def node_report(client: "PrometheusQueryClient", window: "str") -> "str":
    samples = await client.query(f"avg_over_time(kube_cost_node_hourly_usd[{window}])")
    if not samples:
        return "No node cost data found"

    hours = parse_window(window).total_seconds() / 3600
    rows = [
        (
            s.labels.get("node", ""),
            s.labels.get("instance_type", ""),
            s.labels.get("is_spot", ""),
            _money(s.value, 4),
            _money(s.value * hours),
            _money(s.value * HOURS_PER_MONTH),
        )
        for s in samples
    ]
    return format_table(
        (
            "NODE",
            "INSTANCE TYPE",
            "SPOT",
            "HOURLY COST",
            "TOTAL COST",
            "MONTHLY PROJECTION",
        ),
        rows,
    )


async def cluster_report(client: "PrometheusQueryClient", window: "str") -> "str":
    """
    summarises compute, storage and spot savings. Storage is
    exported monthly, the others hourly. A failed query is
    reported as a warning line and left out of the totals.
    """
    queries = (
        ("Compute", f"sum(avg_over_time(kube_cost_cluster_hourly_usd[{window}]))"),
        (
            "Storage",
            f"sum(avg_over_time(kube_cost_cluster_storage_monthly_usd[{window}]))",
        ),
        (
            "Spot Savings",
            f"sum(avg_over_time(kube_cost_spot_savings_hourly_usd[{window}]))",
        ),
    )
    lines = ["Cluster Cost Summary", "====================", ""]
    total_hourly = 0.0
    total_monthly = 0.0

    for name, query in queries:
        try:
            samples = await client.query(query)
        except QueryError as exc:
            lines.append(f"Warning: Could not query {name}: {exc}")
            continue
        if not samples:
            continue

        value = samples[0].value
        if name == "Storage":
            hourly, monthly = value / HOURS_PER_MONTH, value
        else:
            hourly, monthly = value, value * HOURS_PER_MONTH

        if name == "Spot Savings":
            lines.append(
                f"{name:<15}: ${hourly:.2f}/hour  |  ${monthly:.2f}/month (savings)"
            )
            continue

        lines.append(f"{name:<15}: ${hourly:.2f}/hour  |  ${monthly:.2f}/month")
        total_hourly += hourly
        total_monthly += monthly

    hours = parse_window(window).total_seconds() / 3600
    lines.append("")
    lines.append(
        f"{'Total Cost':<15}: ${total_hourly:.2f}/hour  |  ${total_monthly:.2f}/month"
    )
    lines.append(f"Window ({window}){'':<4}: ${total_hourly * hours:.2f}")
    return "\n".join(lines)


async def top_report(
    client: "PrometheusQueryClient", resource: "str", window: "str"
) -> "str":
    if resource not in _TOP_QUERIES:
        raise QueryError(
            f"unknown resource type: {resource} (use: pods, namespaces, or nodes)"
        )

    template, label = _TOP_QUERIES[resource]
    samples = await client.query(template.format(limit=TOP_LIMIT, window=window))
    if not samples:
        return f"No cost data found for {resource}"

    samples = sorted(samples, key=lambda s: s.value, reverse=True)
    header = f"Top {TOP_LIMIT} {resource.title()} by cost:\n\n"

    if resource == "pods":
        rows = [
            (
                rank,
                s.labels.get("pod", ""),
                s.labels.get("namespace", ""),
                _money(s.value, 4),
                _money(s.value * HOURS_PER_MONTH),
            )
            for rank, s in enumerate(samples, start=1)
        ]
        return header + format_table(
            ("RANK", "POD", "NAMESPACE", "HOURLY COST", "MONTHLY PROJECTION"), rows
        )

    rows = [
        (
            rank,
            s.labels.get(label, ""),
            _money(s.value, 4),
            _money(s.value * HOURS_PER_MONTH),
        )
        for rank, s in enumerate(samples, start=1)
    ]
    return header + format_table(
        ("RANK", "NAME", "HOURLY COST", "MONTHLY PROJECTION"), rows
    )
