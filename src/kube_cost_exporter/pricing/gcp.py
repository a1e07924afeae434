import structlog

from kube_cost_exporter.pricing.base import DEFAULT_INSTANCE_PRICE, FallbackPricing

logger = structlog.get_logger()

# hourly USD, us-central1 list prices
GCP_INSTANCE_PRICES: "dict[str, float]" = {
    # e2 family (cost-optimized)
    "e2-micro": 0.0084,
    "e2-small": 0.0167,
    "e2-medium": 0.0334,
    "e2-standard-2": 0.0669,
    "e2-standard-4": 0.1338,
    "e2-standard-8": 0.2676,
    "e2-standard-16": 0.5352,
    # n1 family (general purpose)
    "n1-standard-1": 0.0475,
    "n1-standard-2": 0.0950,
    "n1-standard-4": 0.1900,
    "n1-standard-8": 0.3800,
    "n1-standard-16": 0.7600,
    "n1-standard-32": 1.5200,
    "n1-standard-64": 3.0400,
    # n2 family
    "n2-standard-2": 0.0971,
    "n2-standard-4": 0.1942,
    "n2-standard-8": 0.3884,
    "n2-standard-16": 0.7768,
    "n2-standard-32": 1.5536,
    "n2-standard-64": 3.1072,
    # c2 family (compute-optimized)
    "c2-standard-4": 0.2088,
    "c2-standard-8": 0.4176,
    "c2-standard-16": 0.8352,
    "c2-standard-30": 1.5660,
    "c2-standard-60": 3.1320,
    # m1 family (memory-optimized)
    "m1-megamem-96": 10.6740,
    "m1-ultramem-40": 6.3039,
    "m1-ultramem-80": 12.6078,
    "m1-ultramem-160": 25.2156,
}

# USD per GB-month
GCP_STORAGE_PRICES: "dict[str, float]" = {
    "pd-standard": 0.040,
    "pd-balanced": 0.100,
    "pd-ssd": 0.170,
    "pd-extreme": 0.125,
}

# coarse estimates by machine family for types missing from the table
_FAMILY_ESTIMATES: "list[tuple[str, float]]" = [
    ("e2-", 0.05),
    ("n1-", 0.10),
    ("n2-", 0.12),
    ("c2-", 0.20),
]

INTERNET_EGRESS_PRICE = 0.12


class GCPPricingProvider(FallbackPricing):
    """
    GCPPricingProvider prices Compute Engine instances and
    persistent disks from static tables. Preemptible VMs are
    assumed to cost 30% of the on-demand price.
    """

    SPOT_PRICE_RATIO = 0.30
    INSTANCE_FALLBACK_PRICES = GCP_INSTANCE_PRICES
    STORAGE_FALLBACK_PRICES = GCP_STORAGE_PRICES
    DEFAULT_STORAGE_PRICE = 0.100

    def __init__(self, project: "str") -> "None":
        self._project = project

    @property
    def name(self) -> "str":
        return "gcp"

    async def get_instance_price(
        self,
        instance_type: "str",
        region: "str",
        zone: "str",
    ) -> "float":
        # no live Cloud Billing lookup, the table is the source
        return self.estimate_instance_price(instance_type, region)

    def estimate_instance_price(self, instance_type: "str", region: "str") -> "float":
        price = self.INSTANCE_FALLBACK_PRICES.get(instance_type)
        if price is not None:
            return price * _region_multiplier(region)

        for prefix, estimate in _FAMILY_ESTIMATES:
            if instance_type.startswith(prefix):
                logger.debug(
                    "gcp_price_estimated",
                    instance_type=instance_type,
                    family=prefix,
                )
                return estimate

        return DEFAULT_INSTANCE_PRICE

    async def get_network_price(
        self,
        region: "str",
        destination: "str",
    ) -> "float":
        # egress inside the same region is free
        if destination in ("", region):
            return 0.0
        return INTERNET_EGRESS_PRICE


def _region_multiplier(region: "str") -> "float":
    if "asia" in region:
        return 1.1
    if "australia" in region:
        return 1.2
    return 1.0
