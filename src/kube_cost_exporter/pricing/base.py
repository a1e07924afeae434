from abc import ABC, abstractmethod
from typing import Mapping, Protocol

# used when neither a live price nor a fallback table entry exists
DEFAULT_INSTANCE_PRICE = 0.10


class PricingProvider(Protocol):
    """
    PricingProvider stands as a common protocol that all
    cloud pricing providers must satisfy.

    Providers never raise for a missing price: a failed or
    unimplemented live lookup resolves to a static estimate.
    """

    @property
    def name(self) -> "str": ...

    async def get_instance_price(
        self,
        instance_type: "str",
        region: "str",
        zone: "str",
    ) -> "float": ...

    async def get_spot_price(
        self,
        instance_type: "str",
        region: "str",
        zone: "str",
    ) -> "float": ...

    async def get_storage_price(
        self,
        storage_class: "str",
        region: "str",
    ) -> "float": ...

    async def get_network_price(
        self,
        region: "str",
        destination: "str",
    ) -> "float": ...

    async def close(self) -> "None": ...


class FallbackPricing(ABC):
    """
    FallbackPricing carries the behaviour shared by every provider:
    static storage tables and spot prices derived from the
    on-demand price. Subclasses fill in the tables and implement
    get_instance_price and estimate_instance_price.
    """

    # spot price as a fraction of the on-demand price
    SPOT_PRICE_RATIO: "float" = 0.70
    INSTANCE_FALLBACK_PRICES: "Mapping[str, float]" = {}
    STORAGE_FALLBACK_PRICES: "Mapping[str, float]" = {}
    DEFAULT_STORAGE_PRICE: "float" = 0.10

    @property
    @abstractmethod
    def name(self) -> "str": ...

    @abstractmethod
    async def get_instance_price(
        self,
        instance_type: "str",
        region: "str",
        zone: "str",
    ) -> "float": ...

    @abstractmethod
    def estimate_instance_price(self, instance_type: "str", region: "str") -> "float": ...

    async def get_spot_price(
        self,
        instance_type: "str",
        region: "str",
        zone: "str",
    ) -> "float":
        """
        estimates the spot price from the on-demand price.
        """
        on_demand = await self.get_instance_price(instance_type, region, zone)
        return on_demand * self.SPOT_PRICE_RATIO

    async def get_storage_price(
        self,
        storage_class: "str",
        region: "str",
    ) -> "float":
        return self.STORAGE_FALLBACK_PRICES.get(
            storage_class, self.DEFAULT_STORAGE_PRICE
        )

    async def close(self) -> "None":
        pass
