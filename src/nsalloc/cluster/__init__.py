"""Cluster API interfaces, a simulated store, and the namespace informer."""

from nsalloc.cluster.informer import NamespaceEventHandler, NamespaceInformer
from nsalloc.cluster.interfaces import NamespaceClient, NamespaceLister, RangeAllocationClient
from nsalloc.cluster.patch import apply_merge_patch, create_merge_patch
from nsalloc.cluster.simulated import ClusterStats, FaultProfile, SimulatedCluster

__all__ = [
    "ClusterStats",
    "FaultProfile",
    "NamespaceClient",
    "NamespaceEventHandler",
    "NamespaceInformer",
    "NamespaceLister",
    "RangeAllocationClient",
    "SimulatedCluster",
    "apply_merge_patch",
    "create_merge_patch",
]
