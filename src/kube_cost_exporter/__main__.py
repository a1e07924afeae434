import asyncio
import signal

import structlog
from prometheus_client import start_http_server

from kube_cost_exporter.calculator import CostCalculator
from kube_cost_exporter.cli import parse_args
from kube_cost_exporter.collector import Collector
from kube_cost_exporter.config import Config
from kube_cost_exporter.inventory.kubernetes import KubernetesInventory, load_core_v1
from kube_cost_exporter.logging import setup_logging
from kube_cost_exporter.metrics import MetricsUpdater
from kube_cost_exporter.pricing.aws import AWSPricingProvider
from kube_cost_exporter.pricing.azure import AzurePricingProvider
from kube_cost_exporter.pricing.base import PricingProvider
from kube_cost_exporter.pricing.cache import PricingCache
from kube_cost_exporter.pricing.gcp import GCPPricingProvider

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9090' or '0.0.0.0:9090'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def create_provider(config: "Config") -> "PricingProvider":
    """
    builds the pricing provider selected by the configuration.
    """
    if config.cloud_provider == "aws":
        return AWSPricingProvider(config.region)
    if config.cloud_provider == "gcp":
        return GCPPricingProvider(config.gcp_project)
    if config.cloud_provider == "azure":
        return AzurePricingProvider(config.azure_subscription_id)
    raise ValueError(f"unknown cloud provider: {config.cloud_provider}")


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level)

    try:
        config.validate()
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    provider = create_provider(config)
    pricing_cache = PricingCache(provider)
    logger.info(
        "provider_enabled", provider=provider.name, region=config.region
    )

    inventory = KubernetesInventory(
        load_core_v1(config.kubeconfig), config.cloud_provider, config.region
    )
    metrics_updater = MetricsUpdater()

    host, port = _parse_listen_address(config.listen_address)
    start_http_server(port, addr=host)
    logger.info("metrics_server_started", host=host, port=port)

    collector = Collector(
        inventory,
        pricing_cache,
        CostCalculator(),
        metrics_updater,
        config.update_interval,
    )

    async def _run() -> "None":
        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, signal the collector
        # to stop gracefully
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, collector.stop)

        try:
            await collector.run()
        finally:
            logger.info("shutting_down")
            await collector.close()
            logger.info("shutdown_complete")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
