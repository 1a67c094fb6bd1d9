"""
topology - Compute topology snapshot cache

In-memory, queryable snapshot of a cloud account's compute topology
(applications, clusters, server groups, instances, images, load balancers),
kept fresh by a periodic full reload and event-driven incremental updates.

Usage:
    from topology import ResourceRetriever, load_config
    from topology.providers import AwsComputeProvider

    retriever = ResourceRetriever(AwsComputeProvider(), load_config("topology.yaml"))
    retriever.start()
"""

from .cache import ResourceRetriever, SnapshotStore, UpdateStatus
from .config import load_config, settings

__version__ = "0.1.0"

__all__ = [
    "ResourceRetriever",
    "SnapshotStore",
    "UpdateStatus",
    "load_config",
    "settings",
    "__version__",
]
