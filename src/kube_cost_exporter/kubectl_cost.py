import argparse
import asyncio
import sys

from kube_cost_exporter.errors import ManifestError
from kube_cost_exporter.estimate import ResourceEstimate, estimate_file
from kube_cost_exporter.report import (
    PrometheusQueryClient,
    QueryError,
    cluster_report,
    format_table,
    namespace_report,
    node_report,
    pod_report,
    top_report,
)

ESTIMATE_NOTE = """\
Note: Estimates based on average cloud provider pricing:
  - CPU: $30/vCPU/month (~$0.041/vCPU/hour)
  - Memory: $4/GB/month (~$0.0055/GB/hour)
  - Actual costs vary by region, instance type, and cloud provider"""


def build_parser() -> "argparse.ArgumentParser":
    # shared options, accepted after the command name
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--prometheus-url",
        default="http://localhost:9090",
        help="Prometheus server URL (default: http://localhost:9090)",
    )
    common.add_argument(
        "--window",
        default="24h",
        help="Time window, e.g. 1h, 24h, 7d, 30d (default: 24h)",
    )

    parser = argparse.ArgumentParser(
        prog="kubectl-cost",
        description="Query Kubernetes cost data",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    namespace = commands.add_parser(
        "namespace", parents=[common], help="cost of a namespace"
    )
    namespace.add_argument("name", nargs="?", help="namespace name")
    namespace.add_argument(
        "--all", action="store_true", dest="all_namespaces", help="every namespace"
    )

    pod = commands.add_parser(
        "pod", parents=[common], help="cost of pods matching a name prefix"
    )
    pod.add_argument("name")
    pod.add_argument("--namespace", "-n", default="default")

    commands.add_parser("node", parents=[common], help="cost of every node")
    commands.add_parser("cluster", parents=[common], help="cluster cost summary")

    top = commands.add_parser("top", parents=[common], help="most expensive resources")
    top.add_argument(
        "resource", nargs="?", default="pods", choices=["pods", "namespaces", "nodes"]
    )

    estimate = commands.add_parser(
        "estimate", parents=[common], help="estimate a manifest's cost"
    )
    estimate.add_argument("-f", "--file", required=True, dest="file")

    return parser


def render_estimates(estimates: "list[ResourceEstimate]") -> "str":
    rows = [
        (
            est.kind,
            est.name,
            est.replicas,
            f"{est.cpu_cores:.2f}",
            f"{est.memory_gb:.2f}Gi",
            f"${est.total_cost:.4f}",
            f"${est.daily_cost:.2f}",
            f"${est.monthly_cost:.2f}",
        )
        for est in estimates
    ]
    hourly = sum(est.total_cost for est in estimates)
    daily = sum(est.daily_cost for est in estimates)
    monthly = sum(est.monthly_cost for est in estimates)
    rows.append(("", "", "", "", "", "", "", ""))
    rows.append(
        ("TOTAL", "", "", "", "", f"${hourly:.4f}", f"${daily:.2f}", f"${monthly:.2f}")
    )

    table = format_table(
        ("KIND", "NAME", "REPLICAS", "CPU", "MEMORY", "HOURLY", "DAILY", "MONTHLY"),
        rows,
    )
    return "\n".join(
        [
            "Cost Estimate for Deployment",
            "=============================",
            "",
            table,
            "",
            ESTIMATE_NOTE,
        ]
    )


async def _query(args: "argparse.Namespace") -> "str":
    client = PrometheusQueryClient(args.prometheus_url)
    try:
        if args.command == "namespace":
            target = "--all" if args.all_namespaces else args.name
            return await namespace_report(client, target, args.window)
        if args.command == "pod":
            return await pod_report(client, args.namespace, args.name, args.window)
        if args.command == "node":
            return await node_report(client, args.window)
        if args.command == "cluster":
            return await cluster_report(client, args.window)
        return await top_report(client, args.resource, args.window)
    finally:
        await client.close()


def main(argv: "list[str] | None" = None) -> "int":
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "namespace" and not (args.name or args.all_namespaces):
        parser.error("namespace requires a name or --all")

    try:
        if args.command == "estimate":
            output = render_estimates(estimate_file(args.file))
        else:
            output = asyncio.run(_query(args))
    except (ManifestError, QueryError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
