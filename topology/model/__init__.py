"""
topology/model - Entity model and reader views

Classes:
    - Application, Cluster, ServerGroup, Instance, LoadBalancer, Image
    - HealthEntry: tagged health observation (source, state, description)
    - Snapshot: published graph, Candidate: privately built graph
    - InstanceView, ServerGroupView: detached reader views
"""

from .types import (
    UNKNOWN_LOAD_BALANCER_HEALTH,
    Application,
    AttachedInstance,
    Candidate,
    Capacity,
    Cluster,
    HealthEntry,
    HealthSource,
    HealthState,
    Image,
    Instance,
    LoadBalancer,
    ServerGroup,
    ServerGroupSummary,
    Snapshot,
    ensure_cluster,
    find_cluster,
)
from .views import ImageSummary, InstanceCounts, InstanceView, ServerGroupView

__all__ = [
    # Entities
    "Application",
    "Cluster",
    "ServerGroup",
    "Instance",
    "LoadBalancer",
    "Image",
    "Capacity",
    # Health
    "HealthEntry",
    "HealthSource",
    "HealthState",
    "UNKNOWN_LOAD_BALANCER_HEALTH",
    # Derived annotations
    "AttachedInstance",
    "ServerGroupSummary",
    # Graphs
    "Snapshot",
    "Candidate",
    "ensure_cluster",
    "find_cluster",
    # Views
    "InstanceView",
    "ServerGroupView",
    "InstanceCounts",
    "ImageSummary",
]
