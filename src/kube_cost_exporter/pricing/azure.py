import httpx
import structlog

from kube_cost_exporter.pricing.base import DEFAULT_INSTANCE_PRICE, FallbackPricing

logger = structlog.get_logger()

AZURE_RETAIL_PRICES_URL = "https://prices.azure.com/api/retail/prices"

# hourly USD, Linux pay-as-you-go in eastus
AZURE_INSTANCE_PRICES: "dict[str, float]" = {
    # B-series (burstable)
    "Standard_B1s": 0.0104,
    "Standard_B1ms": 0.0207,
    "Standard_B2s": 0.0416,
    "Standard_B2ms": 0.0832,
    "Standard_B4ms": 0.1664,
    "Standard_B8ms": 0.3328,
    # D-series (general purpose)
    "Standard_D2s_v3": 0.096,
    "Standard_D4s_v3": 0.192,
    "Standard_D8s_v3": 0.384,
    "Standard_D16s_v3": 0.768,
    "Standard_D32s_v3": 1.536,
    "Standard_D48s_v3": 2.304,
    "Standard_D64s_v3": 3.072,
    # F-series (compute-optimized)
    "Standard_F2s_v2": 0.085,
    "Standard_F4s_v2": 0.169,
    "Standard_F8s_v2": 0.338,
    "Standard_F16s_v2": 0.677,
    "Standard_F32s_v2": 1.353,
    "Standard_F48s_v2": 2.030,
    "Standard_F64s_v2": 2.706,
    # E-series (memory-optimized)
    "Standard_E2s_v3": 0.126,
    "Standard_E4s_v3": 0.252,
    "Standard_E8s_v3": 0.504,
    "Standard_E16s_v3": 1.008,
    "Standard_E32s_v3": 2.016,
    "Standard_E48s_v3": 3.024,
    "Standard_E64s_v3": 4.032,
    # N-series (GPU)
    "Standard_NC6": 0.90,
    "Standard_NC12": 1.80,
    "Standard_NC24": 3.60,
    "Standard_NC6s_v3": 3.06,
}

# USD per GB-month for managed disks
AZURE_STORAGE_PRICES: "dict[str, float]" = {
    "Standard_LRS": 0.040,
    "StandardSSD_LRS": 0.075,
    "Premium_LRS": 0.135,
    # billed per provisioned IOPS
    "UltraSSD_LRS": 0.000125,
}

# coarse estimates by VM series marker for sizes missing from the table
_SERIES_ESTIMATES: "list[tuple[tuple[str, ...], float]]" = [
    (("B1",), 0.02),
    (("B2",), 0.05),
    (("D2", "F2"), 0.10),
    (("D4", "F4"), 0.20),
    (("E2",), 0.13),
]

EGRESS_PRICE = 0.087


class AzurePricingProvider(FallbackPricing):
    """
    AzurePricingProvider resolves VM prices through the public
    Azure Retail Prices API, falling back to static estimates when
    the API fails or has no matching item. Spot VMs are assumed to
    cost 30% of the pay-as-you-go price.
    """

    SPOT_PRICE_RATIO = 0.30
    INSTANCE_FALLBACK_PRICES = AZURE_INSTANCE_PRICES
    STORAGE_FALLBACK_PRICES = AZURE_STORAGE_PRICES
    DEFAULT_STORAGE_PRICE = 0.075

    def __init__(self, subscription_id: "str") -> "None":
        self._subscription_id = subscription_id
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(timeout=10.0)

    @property
    def name(self) -> "str":
        return "azure"

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def get_instance_price(
        self,
        instance_type: "str",
        region: "str",
        zone: "str",
    ) -> "float":
        try:
            price = await self._fetch_retail_price(instance_type, region)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "pricing_fallback",
                provider=self.name,
                instance_type=instance_type,
                region=region,
                error=str(exc),
            )
            price = None

        if price is None:
            return self.estimate_instance_price(instance_type, region)
        return price

    async def get_network_price(
        self,
        region: "str",
        destination: "str",
    ) -> "float":
        # first 5 GB/month are free, 5 GB - 10 TB tier otherwise
        return EGRESS_PRICE

    def estimate_instance_price(self, instance_type: "str", region: "str") -> "float":
        price = self.INSTANCE_FALLBACK_PRICES.get(instance_type)
        if price is not None:
            return price * _region_multiplier(region)

        for markers, estimate in _SERIES_ESTIMATES:
            if any(marker in instance_type for marker in markers):
                return estimate

        return DEFAULT_INSTANCE_PRICE

    async def _fetch_retail_price(
        self, instance_type: "str", region: "str"
    ) -> "float | None":
        """
        queries the Retail Prices API for the Linux pay-as-you-go
        price of a VM size. Returns None when no item matches.
        """
        arm_region = normalize_region(region)
        query = (
            f"armRegionName eq '{arm_region}' "
            f"and serviceFamily eq 'Compute' "
            f"and armSkuName eq '{instance_type}' "
            f"and priceType eq 'Consumption'"
        )

        logger.debug("azure_fetch_price", sku=instance_type, region=arm_region)
        resp = await self._client.get(
            AZURE_RETAIL_PRICES_URL, params={"$filter": query}
        )
        resp.raise_for_status()

        for item in resp.json().get("Items", []):
            if not _is_linux_pay_as_you_go(item):
                continue
            price = item.get("retailPrice")
            if price:
                return float(price)

        logger.debug("azure_price_not_found", sku=instance_type, region=arm_region)
        return None


def normalize_region(region: "str") -> "str":
    """
    converts 'East US' style names to the ARM form 'eastus'.
    """
    return region.lower().replace(" ", "")


def _is_linux_pay_as_you_go(item: "dict") -> "bool":
    product = item.get("productName", "")
    sku = item.get("skuName", "")
    if "Windows" in product:
        return False
    return "Spot" not in sku and "Low Priority" not in sku


def _region_multiplier(region: "str") -> "float":
    if "europe" in region:
        return 1.1
    if "asia" in region:
        return 1.15
    return 1.0
