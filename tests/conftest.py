import pytest
from prometheus_client import CollectorRegistry


class FakeClock:
    """
    A manually advanced clock for TTL tests.
    """

    def __init__(self, now: "float" = 1000.0) -> "None":
        self.now = now

    def __call__(self) -> "float":
        return self.now

    def advance(self, seconds: "float") -> "None":
        self.now += seconds


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def clock() -> "FakeClock":
    return FakeClock()
