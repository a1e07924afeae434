import json

import pytest
from botocore.exceptions import ClientError

from kube_cost_exporter.errors import PricingError
from kube_cost_exporter.pricing.aws import (
    AWSPricingProvider,
    extract_on_demand_price,
    region_to_location,
)


def price_list_entry(usd: "str") -> "str":
    return json.dumps(
        {
            "product": {"attributes": {"instanceType": "m5.large"}},
            "terms": {
                "OnDemand": {
                    "ABC.JRTCKXETXF": {
                        "priceDimensions": {
                            "ABC.JRTCKXETXF.6YS6EN2CT7": {
                                "unit": "Hrs",
                                "pricePerUnit": {"USD": usd},
                            }
                        }
                    }
                }
            },
        }
    )


class FakePricingClient:
    def __init__(
        self,
        price_list: "list[str] | None" = None,
        error: "Exception | None" = None,
    ) -> "None":
        self.price_list = price_list or []
        self.error = error
        self.requests: "list[dict]" = []

    def get_products(self, **kwargs: "object") -> "dict":
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"PriceList": self.price_list}


class FakeEC2Client:
    def __init__(
        self,
        history: "list[dict] | None" = None,
        error: "Exception | None" = None,
    ) -> "None":
        self.history = history or []
        self.error = error
        self.requests: "list[dict]" = []

    def describe_spot_price_history(self, **kwargs: "object") -> "dict":
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"SpotPriceHistory": self.history}


def throttled(operation: "str") -> "ClientError":
    return ClientError(
        {"Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"}},
        operation,
    )


class TestGetInstancePrice:
    @pytest.mark.asyncio
    async def test_live_price(self) -> "None":
        pricing = FakePricingClient(price_list=[price_list_entry("0.0960000000")])
        provider = AWSPricingProvider(
            "us-west-2", pricing_client=pricing, ec2_client=FakeEC2Client()
        )

        price = await provider.get_instance_price("m5.large", "us-west-2", "")

        assert price == pytest.approx(0.096)
        filters = {f["Field"]: f["Value"] for f in pricing.requests[0]["Filters"]}
        assert filters["instanceType"] == "m5.large"
        assert filters["location"] == "US West (Oregon)"
        assert filters["operatingSystem"] == "Linux"
        assert filters["tenancy"] == "Shared"
        assert pricing.requests[0]["ServiceCode"] == "AmazonEC2"

    @pytest.mark.asyncio
    async def test_api_error_falls_back_to_table(self) -> "None":
        provider = AWSPricingProvider(
            "us-east-1",
            pricing_client=FakePricingClient(error=throttled("GetProducts")),
            ec2_client=FakeEC2Client(),
        )

        price = await provider.get_instance_price("m5.xlarge", "us-east-1", "")

        assert price == 0.192

    @pytest.mark.asyncio
    async def test_empty_price_list_falls_back(self) -> "None":
        provider = AWSPricingProvider(
            "us-east-1",
            pricing_client=FakePricingClient(),
            ec2_client=FakeEC2Client(),
        )

        assert await provider.get_instance_price("t3.micro", "us-east-1", "") == 0.0104

    @pytest.mark.asyncio
    async def test_malformed_price_dimension_falls_back_to_table(self) -> "None":
        entry = json.dumps(
            {"terms": {"OnDemand": {"x": {"priceDimensions": {"y": "0.5"}}}}}
        )
        provider = AWSPricingProvider(
            "us-east-1",
            pricing_client=FakePricingClient(price_list=[entry]),
            ec2_client=FakeEC2Client(),
        )

        assert await provider.get_instance_price("m5.xlarge", "us-east-1", "") == 0.192


class TestEstimateInstancePrice:
    @pytest.mark.parametrize(
        "instance_type,expected",
        [
            ("c5.large", 0.085),
            ("x9.micro", 0.01),
            ("x9.small", 0.02),
            ("x9.medium", 0.04),
            ("x9.8xlarge", 0.20),
            ("x9.large", 0.10),
            ("mystery", 0.10),
        ],
    )
    def test_table_then_size_tiers(
        self, instance_type: "str", expected: "float"
    ) -> "None":
        provider = AWSPricingProvider(
            "us-east-1",
            pricing_client=FakePricingClient(),
            ec2_client=FakeEC2Client(),
        )
        assert provider.estimate_instance_price(instance_type, "us-east-1") == expected


class TestGetSpotPrice:
    @pytest.mark.asyncio
    async def test_uses_latest_spot_history(self) -> "None":
        ec2 = FakeEC2Client(history=[{"SpotPrice": "0.0321", "InstanceType": "m5.large"}])
        provider = AWSPricingProvider(
            "us-east-1", pricing_client=FakePricingClient(), ec2_client=ec2
        )

        price = await provider.get_spot_price("m5.large", "us-east-1", "us-east-1a")

        assert price == pytest.approx(0.0321)
        request = ec2.requests[0]
        assert request["InstanceTypes"] == ["m5.large"]
        assert request["ProductDescriptions"] == ["Linux/UNIX"]
        assert request["AvailabilityZone"] == "us-east-1a"

    @pytest.mark.asyncio
    async def test_no_zone_omits_availability_zone(self) -> "None":
        ec2 = FakeEC2Client(history=[{"SpotPrice": "0.03"}])
        provider = AWSPricingProvider(
            "us-east-1", pricing_client=FakePricingClient(), ec2_client=ec2
        )

        await provider.get_spot_price("m5.large", "us-east-1", "")

        assert "AvailabilityZone" not in ec2.requests[0]

    @pytest.mark.asyncio
    async def test_empty_history_uses_on_demand_ratio(self) -> "None":
        provider = AWSPricingProvider(
            "us-east-1",
            pricing_client=FakePricingClient(price_list=[price_list_entry("0.10")]),
            ec2_client=FakeEC2Client(),
        )

        price = await provider.get_spot_price("m5.large", "us-east-1", "us-east-1a")

        assert price == pytest.approx(0.07)

    @pytest.mark.asyncio
    async def test_api_error_uses_on_demand_ratio(self) -> "None":
        provider = AWSPricingProvider(
            "us-east-1",
            pricing_client=FakePricingClient(error=throttled("GetProducts")),
            ec2_client=FakeEC2Client(error=throttled("DescribeSpotPriceHistory")),
        )

        price = await provider.get_spot_price("m5.large", "us-east-1", "")

        assert price == pytest.approx(0.096 * 0.70)


class TestStaticPrices:
    @pytest.mark.asyncio
    async def test_storage_prices(self) -> "None":
        provider = AWSPricingProvider(
            "us-east-1",
            pricing_client=FakePricingClient(),
            ec2_client=FakeEC2Client(),
        )

        assert await provider.get_storage_price("gp3", "us-east-1") == 0.08
        assert await provider.get_storage_price("sc1", "us-east-1") == 0.025
        assert await provider.get_storage_price("custom-fast", "us-east-1") == 0.10

    @pytest.mark.asyncio
    async def test_network_price(self) -> "None":
        provider = AWSPricingProvider(
            "us-east-1",
            pricing_client=FakePricingClient(),
            ec2_client=FakeEC2Client(),
        )

        assert await provider.get_network_price("us-east-1", "internet") == 0.09
        assert provider.name == "aws"


class TestExtractOnDemandPrice:
    def test_extracts_usd(self) -> "None":
        product = json.loads(price_list_entry("0.192"))
        assert extract_on_demand_price(product) == 0.192

    def test_missing_terms(self) -> "None":
        with pytest.raises(PricingError):
            extract_on_demand_price({"product": {}})

    def test_no_usd_price(self) -> "None":
        product = {
            "terms": {"OnDemand": {"x": {"priceDimensions": {"y": {"pricePerUnit": {}}}}}}
        }
        with pytest.raises(PricingError):
            extract_on_demand_price(product)

    def test_invalid_usd_value(self) -> "None":
        with pytest.raises(PricingError):
            extract_on_demand_price(json.loads(price_list_entry("n/a")))

    @pytest.mark.parametrize(
        "dimensions",
        [
            {"y": "0.5"},
            {"y": None},
            {"y": {"pricePerUnit": "0.5"}},
        ],
    )
    def test_malformed_dimension(self, dimensions: "dict") -> "None":
        product = {"terms": {"OnDemand": {"x": {"priceDimensions": dimensions}}}}
        with pytest.raises(PricingError):
            extract_on_demand_price(product)

    def test_skips_malformed_dimension_before_valid_one(self) -> "None":
        product = {
            "terms": {
                "OnDemand": {
                    "x": {
                        "priceDimensions": {
                            "bad": ["0.5"],
                            "good": {"pricePerUnit": {"USD": "0.25"}},
                        }
                    }
                }
            }
        }
        assert extract_on_demand_price(product) == 0.25


class TestRegionToLocation:
    def test_known_region(self) -> "None":
        assert region_to_location("eu-central-1") == "EU (Frankfurt)"

    def test_unknown_region_defaults_to_virginia(self) -> "None":
        assert region_to_location("mars-north-1") == "US East (N. Virginia)"
