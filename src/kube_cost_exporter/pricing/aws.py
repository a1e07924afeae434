import asyncio
import json
from typing import Any

import boto3
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from kube_cost_exporter.errors import PricingError
from kube_cost_exporter.pricing.base import DEFAULT_INSTANCE_PRICE, FallbackPricing

logger = structlog.get_logger()

# the Price List API is only served from us-east-1
PRICING_API_REGION = "us-east-1"
DEFAULT_LOCATION = "US East (N. Virginia)"

REGION_LOCATIONS: "dict[str, str]" = {
    "us-east-1": "US East (N. Virginia)",
    "us-east-2": "US East (Ohio)",
    "us-west-1": "US West (N. California)",
    "us-west-2": "US West (Oregon)",
    "eu-west-1": "EU (Ireland)",
    "eu-central-1": "EU (Frankfurt)",
    "ap-southeast-1": "Asia Pacific (Singapore)",
    "ap-southeast-2": "Asia Pacific (Sydney)",
    "ap-northeast-1": "Asia Pacific (Tokyo)",
}

# hourly USD, Linux on-demand in us-east-1
AWS_INSTANCE_PRICES: "dict[str, float]" = {
    # t3 family
    "t3.micro": 0.0104,
    "t3.small": 0.0208,
    "t3.medium": 0.0416,
    "t3.large": 0.0832,
    "t3.xlarge": 0.1664,
    "t3.2xlarge": 0.3328,
    # m5 family
    "m5.large": 0.096,
    "m5.xlarge": 0.192,
    "m5.2xlarge": 0.384,
    "m5.4xlarge": 0.768,
    "m5.8xlarge": 1.536,
    "m5.12xlarge": 2.304,
    "m5.16xlarge": 3.072,
    "m5.24xlarge": 4.608,
    # c5 family
    "c5.large": 0.085,
    "c5.xlarge": 0.17,
    "c5.2xlarge": 0.34,
    "c5.4xlarge": 0.68,
    "c5.9xlarge": 1.53,
    "c5.12xlarge": 2.04,
    "c5.18xlarge": 3.06,
    "c5.24xlarge": 4.08,
    # r5 family
    "r5.large": 0.126,
    "r5.xlarge": 0.252,
    "r5.2xlarge": 0.504,
    "r5.4xlarge": 1.008,
    "r5.8xlarge": 2.016,
    "r5.12xlarge": 3.024,
    "r5.16xlarge": 4.032,
    "r5.24xlarge": 6.048,
}

# USD per GB-month for EBS volume types
AWS_STORAGE_PRICES: "dict[str, float]" = {
    "gp2": 0.10,
    "gp3": 0.08,
    "io1": 0.125,
    "io2": 0.125,
    "st1": 0.045,
    "sc1": 0.025,
    "standard": 0.05,
}

# first 10 TB tier of internet egress
EGRESS_PRICE = 0.09


class AWSPricingProvider(FallbackPricing):
    """
    AWSPricingProvider resolves EC2 on-demand prices through the
    AWS Price List API and spot prices through the EC2 spot price
    history. Both fall back to static estimates on failure.

    boto3 is blocking, so every API call runs in a worker thread.
    """

    SPOT_PRICE_RATIO = 0.70
    INSTANCE_FALLBACK_PRICES = AWS_INSTANCE_PRICES
    STORAGE_FALLBACK_PRICES = AWS_STORAGE_PRICES
    DEFAULT_STORAGE_PRICE = 0.10

    def __init__(
        self,
        region: "str",
        pricing_client: "Any" = None,
        ec2_client: "Any" = None,
    ) -> "None":
        self._region = region
        boto_config = BotoConfig(
            connect_timeout=10,
            read_timeout=10,
            retries={"max_attempts": 1},
        )
        self._pricing = pricing_client or boto3.client(
            "pricing", region_name=PRICING_API_REGION, config=boto_config
        )
        self._ec2 = ec2_client or boto3.client(
            "ec2", region_name=region, config=boto_config
        )

    @property
    def name(self) -> "str":
        return "aws"

    async def get_instance_price(
        self,
        instance_type: "str",
        region: "str",
        zone: "str",
    ) -> "float":
        try:
            return await asyncio.to_thread(
                self._query_on_demand_price, instance_type, region
            )
        except (BotoCoreError, ClientError, PricingError) as exc:
            logger.warning(
                "pricing_fallback",
                provider=self.name,
                instance_type=instance_type,
                region=region,
                error=str(exc),
            )
            return self.estimate_instance_price(instance_type, region)

    async def get_spot_price(
        self,
        instance_type: "str",
        region: "str",
        zone: "str",
    ) -> "float":
        try:
            price = await asyncio.to_thread(
                self._query_spot_price, instance_type, zone
            )
        except (BotoCoreError, ClientError, PricingError) as exc:
            logger.warning(
                "spot_pricing_fallback",
                provider=self.name,
                instance_type=instance_type,
                zone=zone,
                error=str(exc),
            )
            price = None

        if price is None:
            return await super().get_spot_price(instance_type, region, zone)
        return price

    async def get_network_price(
        self,
        region: "str",
        destination: "str",
    ) -> "float":
        return EGRESS_PRICE

    def estimate_instance_price(self, instance_type: "str", region: "str") -> "float":
        """
        looks the instance type up in the static table, otherwise
        guesses from the size suffix.
        """
        price = self.INSTANCE_FALLBACK_PRICES.get(instance_type)
        if price is not None:
            return price

        if "micro" in instance_type:
            return 0.01
        if "small" in instance_type:
            return 0.02
        if "medium" in instance_type:
            return 0.04
        if "xlarge" in instance_type:
            return 0.20
        if "large" in instance_type:
            return 0.10
        return DEFAULT_INSTANCE_PRICE

    def _query_on_demand_price(self, instance_type: "str", region: "str") -> "float":
        response = self._pricing.get_products(
            ServiceCode="AmazonEC2",
            Filters=[
                _term("instanceType", instance_type),
                _term("location", region_to_location(region)),
                _term("tenancy", "Shared"),
                _term("operatingSystem", "Linux"),
                _term("preInstalledSw", "NA"),
                _term("capacitystatus", "Used"),
            ],
            MaxResults=1,
        )

        price_list = response.get("PriceList") or []
        if not price_list:
            raise PricingError(f"no price list entry for {instance_type}")

        try:
            product = json.loads(price_list[0])
        except (TypeError, ValueError) as exc:
            raise PricingError(f"unparsable price list entry: {exc}") from exc

        return extract_on_demand_price(product)

    def _query_spot_price(self, instance_type: "str", zone: "str") -> "float | None":
        params: "dict[str, Any]" = {
            "InstanceTypes": [instance_type],
            "ProductDescriptions": ["Linux/UNIX"],
            "MaxResults": 1,
        }
        if zone:
            params["AvailabilityZone"] = zone

        response = self._ec2.describe_spot_price_history(**params)
        history = response.get("SpotPriceHistory") or []
        if not history:
            return None

        try:
            return float(history[0]["SpotPrice"])
        except (KeyError, TypeError, ValueError) as exc:
            raise PricingError(f"unparsable spot price: {exc}") from exc


def region_to_location(region: "str") -> "str":
    """
    maps a region code to the location name used by the Price List API.
    """
    return REGION_LOCATIONS.get(region, DEFAULT_LOCATION)


def extract_on_demand_price(product: "dict[str, Any]") -> "float":
    """
    walks terms.OnDemand.<offer>.priceDimensions.<dim>.pricePerUnit.USD
    and returns the first parsable price.
    """
    on_demand = product.get("terms", {}).get("OnDemand")
    if not isinstance(on_demand, dict):
        raise PricingError("no OnDemand terms in price list entry")

    for offer in on_demand.values():
        dimensions = offer.get("priceDimensions") if isinstance(offer, dict) else None
        if not isinstance(dimensions, dict):
            continue

        for dimension in dimensions.values():
            if not isinstance(dimension, dict):
                continue
            per_unit = dimension.get("pricePerUnit")
            usd = per_unit.get("USD") if isinstance(per_unit, dict) else None
            if usd is None:
                continue
            try:
                return float(usd)
            except ValueError as exc:
                raise PricingError(f"invalid USD price {usd!r}") from exc

    raise PricingError("could not extract price from OnDemand terms")


def _term(field: "str", value: "str") -> "dict[str, str]":
    return {"Type": "TERM_MATCH", "Field": field, "Value": value}
