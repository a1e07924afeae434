import enum
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from kube_cost_exporter.pricing.base import PricingProvider

logger = structlog.get_logger()


class PriceKind(str, enum.Enum):
    ON_DEMAND = "instance"
    SPOT = "spot"
    STORAGE = "storage"
    NETWORK = "network"


# seconds each kind of price stays valid, reflecting how often it moves
PRICE_TTLS: "dict[PriceKind, float]" = {
    PriceKind.ON_DEMAND: 60 * 60,
    PriceKind.SPOT: 5 * 60,
    PriceKind.STORAGE: 24 * 60 * 60,
    PriceKind.NETWORK: 60 * 60,
}

# returned, but never stored, when the provider raises
DEFAULT_PRICES: "dict[PriceKind, float]" = {
    PriceKind.ON_DEMAND: 0.10,
    PriceKind.SPOT: 0.07,
    PriceKind.STORAGE: 0.10,
    PriceKind.NETWORK: 0.09,
}


@dataclass(frozen=True, slots=True)
class CacheEntry:
    value: "float"
    # absolute clock time after which the entry is stale
    expires_at: "float"


class PricingCache:
    """
    PricingCache: Is a thread-safe TTL cache in front of a
    PricingProvider.

    Each price kind has its own TTL. Expired entries are treated
    as missing and overwritten on the next fetch, never evicted
    eagerly. Concurrent misses on the same key are not merged,
    each caller fetches on its own.
    """

    def __init__(
        self,
        provider: "PricingProvider",
        clock: "Callable[[], float]" = time.time,
        ttls: "dict[PriceKind, float] | None" = None,
    ) -> "None":
        self._provider = provider
        self._clock = clock
        self._ttls = dict(PRICE_TTLS)
        if ttls:
            self._ttls.update(ttls)
        self._lock: "threading.Lock" = threading.Lock()
        self._entries: "dict[str, CacheEntry]" = {}

    @property
    def provider(self) -> "PricingProvider":
        return self._provider

    def __len__(self) -> "int":
        with self._lock:
            return len(self._entries)

    @staticmethod
    def make_key(kind: "PriceKind", *descriptor: "str") -> "str":
        """
        constructs the cache key from the price kind and every
        descriptor field.
        """
        return ":".join((kind.value, *descriptor))

    async def get(self, kind: "PriceKind", *descriptor: "str") -> "float":
        """
        returns the cached price for the descriptor, fetching it
        from the provider on a miss or after expiry.
        """
        key = self.make_key(kind, *descriptor)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
        if entry is not None and now <= entry.expires_at:
            return entry.value

        # the lock is not held across the fetch
        try:
            value = await self._fetcher(kind)(*descriptor)
        except Exception:
            logger.warning(
                "pricing_lookup_failed",
                kind=kind.value,
                key=key,
                default=DEFAULT_PRICES[kind],
                exc_info=True,
            )
            return DEFAULT_PRICES[kind]

        with self._lock:
            self._entries[key] = CacheEntry(
                value=value,
                expires_at=self._clock() + self._ttls[kind],
            )
        return value

    async def get_instance_price(
        self, instance_type: "str", region: "str", zone: "str"
    ) -> "float":
        return await self.get(PriceKind.ON_DEMAND, instance_type, region, zone)

    async def get_spot_price(
        self, instance_type: "str", region: "str", zone: "str"
    ) -> "float":
        return await self.get(PriceKind.SPOT, instance_type, region, zone)

    async def get_storage_price(self, storage_class: "str", region: "str") -> "float":
        return await self.get(PriceKind.STORAGE, storage_class, region)

    async def get_network_price(self, region: "str", destination: "str") -> "float":
        return await self.get(PriceKind.NETWORK, region, destination)

    def clear(self) -> "None":
        with self._lock:
            self._entries.clear()

    def _fetcher(self, kind: "PriceKind") -> "Callable[..., Awaitable[float]]":
        if kind is PriceKind.ON_DEMAND:
            return self._provider.get_instance_price
        if kind is PriceKind.SPOT:
            return self._provider.get_spot_price
        if kind is PriceKind.STORAGE:
            return self._provider.get_storage_price
        return self._provider.get_network_price
