from typing import Protocol, Sequence

from kube_cost_exporter.models import NodeRecord, PodRecord, VolumeRecord


class InventorySource(Protocol):
    """
    InventorySource lists the cluster objects a cost cycle works
    on. Calls are blocking and may fail independently of each
    other; a failure raises InventoryError.

    Returned nodes and volumes are not priced yet.
    """

    def list_nodes(self) -> "Sequence[NodeRecord]": ...

    def list_pods(self) -> "Sequence[PodRecord]": ...

    def list_volumes(self) -> "Sequence[VolumeRecord]": ...
