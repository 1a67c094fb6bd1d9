"""
topology/cache - Snapshot cache engine

Classes:
    - SnapshotStore: copy-on-write holder of the published snapshot
    - FullReloadPipeline: periodic complete re-derivation of all accounts
    - IncrementalUpdatePipeline: best-effort single server group refresh
    - ReloadScheduler: background reload thread
    - ResourceRetriever: reads, change notifications, lifecycle

Usage:
    from topology.cache import ResourceRetriever

    retriever = ResourceRetriever(provider, config)
    retriever.reload()
    snapshot = retriever.get_snapshot()
"""

from .builder import AccountCandidate, ServerGroupAssembler, prune_base_images
from .indexer import populate_load_balancer_server_groups
from .reload import FullReloadPipeline, ReloadResult
from .retriever import ResourceRetriever
from .scheduler import ReloadScheduler
from .store import SnapshotStore
from .update import (
    IncrementalUpdatePipeline,
    ResourceChange,
    UpdateResult,
    UpdateStatus,
    migrate_load_balancer_health,
)

__all__ = [
    # Store
    "SnapshotStore",
    # Pipelines
    "FullReloadPipeline",
    "ReloadResult",
    "IncrementalUpdatePipeline",
    "ResourceChange",
    "UpdateResult",
    "UpdateStatus",
    "migrate_load_balancer_health",
    # Derivation
    "AccountCandidate",
    "ServerGroupAssembler",
    "prune_base_images",
    "populate_load_balancer_server_groups",
    # Runtime
    "ReloadScheduler",
    "ResourceRetriever",
]
