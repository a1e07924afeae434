import argparse

from kube_cost_exporter.config import SUPPORTED_CLOUD_PROVIDERS, Config


def parse_args(argv: "list[str] | None" = None) -> "Config":
    config = Config.from_env()

    parser = argparse.ArgumentParser(
        prog="kube-cost-exporter",
        description="Kubernetes cost attribution Prometheus exporter",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=":9090",
        help="Address to listen on (default: :9090)",
    )
    parser.add_argument(
        "--update.interval",
        dest="update_interval",
        type=int,
        default=60,
        help="Cost collection interval in seconds (default: 60)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--cloud-provider",
        dest="cloud_provider",
        default=config.cloud_provider,
        choices=SUPPORTED_CLOUD_PROVIDERS,
        help="Cloud provider (default: $CLOUD_PROVIDER or aws)",
    )
    parser.add_argument(
        "--region",
        default=config.region,
        help="Cloud provider region (default: $CLOUD_REGION or us-east-1)",
    )
    parser.add_argument(
        "--kubeconfig",
        default=config.kubeconfig,
        help="Path to kubeconfig file (default: in-cluster config)",
    )

    args = parser.parse_args(argv)
    config.listen_address = args.listen_address
    config.update_interval = args.update_interval
    config.log_level = args.log_level
    config.cloud_provider = args.cloud_provider
    config.region = args.region
    config.kubeconfig = args.kubeconfig
    return config
