class CostExporterError(Exception):
    """
    base class for all errors raised by the exporter.
    """


class InvalidNodeError(CostExporterError):
    """
    raised when a node cannot be used for cost allocation,
    e.g. it reports zero CPU or memory capacity.
    """

    def __init__(self, node_name: "str", reason: "str") -> "None":
        super().__init__(f"node {node_name!r} is invalid: {reason}")
        self.node_name = node_name
        self.reason = reason


class PricingError(CostExporterError):
    """
    raised by live pricing lookups. Never escapes the pricing cache.
    """


class InventoryError(CostExporterError):
    """
    raised when the inventory source cannot list a resource kind.
    """

    def __init__(self, resource: "str", cause: "Exception") -> "None":
        super().__init__(f"failed to list {resource}: {cause}")
        self.resource = resource


class ManifestError(CostExporterError):
    """
    raised when a manifest file holds no workload that can be estimated.
    """
