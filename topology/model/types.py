"""
topology/model/types.py - Entity model for the topology snapshot

Standardized dataclasses for applications, clusters, server groups,
instances, load balancers and images. Entities are keyed by natural keys
(account, region, name), never by surrogate ids.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any


class HealthSource(Enum):
    """Origin of a health observation"""

    PROVIDER = "Provider"
    LOAD_BALANCER = "LoadBalancer"


class HealthState(Enum):
    """Normalized health state"""

    UP = "Up"
    DOWN = "Down"
    UNKNOWN = "Unknown"
    STARTING = "Starting"
    OUT_OF_SERVICE = "OutOfService"


UNKNOWN_LOAD_BALANCER_HEALTH = "Unable to determine load balancer health."


@dataclass
class HealthEntry:
    """Single health observation for an instance"""

    source: HealthSource
    state: HealthState
    description: str = ""
    load_balancer_name: str | None = None

    @property
    def is_load_balancer(self) -> bool:
        return self.source == HealthSource.LOAD_BALANCER


@dataclass
class Image:
    """Machine image descriptor"""

    name: str
    project: str
    image_id: str = ""
    family: str = ""
    description: str = ""
    creation_time: datetime | None = None
    deprecated: bool = False
    self_link: str = ""


@dataclass
class Instance:
    """Compute instance"""

    name: str
    account: str
    region: str = ""
    zone: str = ""
    status: str = ""
    machine_type: str = ""
    network_name: str = ""
    private_ip: str = ""
    launch_time: datetime | None = None
    tags: list[str] = field(default_factory=list)
    security_groups: list[str] = field(default_factory=list)
    health: list[HealthEntry] = field(default_factory=list)
    server_group: str | None = None

    @property
    def load_balancer_health(self) -> list[HealthEntry]:
        return [h for h in self.health if h.is_load_balancer]

    def health_for_load_balancer(self, load_balancer_name: str) -> HealthEntry | None:
        """First load-balancer-sourced health entry for the given load balancer"""
        for entry in self.health:
            if entry.is_load_balancer and entry.load_balancer_name == load_balancer_name:
                return entry
        return None

    @property
    def health_state(self) -> HealthState:
        """Aggregate health state

        Any Down wins, then OutOfService, then Starting. Up requires at least
        one Up observation and no Unknown ones.
        """
        states = [h.state for h in self.health]
        if not states:
            return HealthState.UNKNOWN
        for state in (HealthState.DOWN, HealthState.OUT_OF_SERVICE, HealthState.STARTING):
            if state in states:
                return state
        if HealthState.UP in states and HealthState.UNKNOWN not in states:
            return HealthState.UP
        return HealthState.UNKNOWN


@dataclass
class Capacity:
    min: int = 0
    max: int = 0
    desired: int = 0


@dataclass
class ServerGroup:
    """Regionally scoped group of homogeneous instances (unit of deployment)"""

    name: str
    account: str
    region: str
    zone: str = ""
    zones: list[str] = field(default_factory=list)
    instances: list[Instance] = field(default_factory=list)
    launch_config: dict[str, Any] = field(default_factory=dict)
    asg: dict[str, Any] = field(default_factory=dict)
    autoscaling_policy: dict[str, Any] | None = None
    build_info: dict[str, Any] | None = None
    disabled: bool = False
    network_name: str = ""
    instance_template_tags: list[str] = field(default_factory=list)
    security_groups: list[str] = field(default_factory=list)
    current_actions: dict[str, int] = field(default_factory=dict)
    self_link: str = ""

    @property
    def load_balancer_names(self) -> list[str]:
        return list(self.asg.get("load_balancer_names", []))

    @property
    def created_time(self) -> int | None:
        created = self.launch_config.get("created_time")
        return int(created) if created is not None else None

    @property
    def capacity(self) -> Capacity | None:
        if not self.asg:
            return None
        return Capacity(
            min=int(self.asg.get("min_size") or 0),
            max=int(self.asg.get("max_size") or 0),
            desired=int(self.asg.get("desired_capacity") or 0),
        )

    @property
    def instance_names(self) -> list[str]:
        return [i.name for i in self.instances]

    def find_instance(self, name: str) -> Instance | None:
        for instance in self.instances:
            if instance.name == name:
                return instance
        return None


@dataclass
class Cluster:
    """Server groups sharing (account, application, cluster name)"""

    name: str
    account: str
    application: str
    server_groups: list[ServerGroup] = field(default_factory=list)

    def find_server_group(self, name: str) -> ServerGroup | None:
        for server_group in self.server_groups:
            if server_group.name == name:
                return server_group
        return None


@dataclass
class Application:
    """Clusters grouped by application name, keyed account -> cluster name"""

    name: str
    clusters: dict[str, dict[str, Cluster]] = field(default_factory=dict)

    def iter_server_groups(self):
        for account, cluster_map in self.clusters.items():
            for cluster in cluster_map.values():
                for server_group in cluster.server_groups:
                    yield account, cluster, server_group


@dataclass
class AttachedInstance:
    """Instance registered with a load balancer, with that load balancer's view of its health"""

    id: str
    zone: str
    health_state: HealthState
    health_description: str


@dataclass
class ServerGroupSummary:
    """Derived per-load-balancer summary of one referencing server group"""

    server_group_name: str
    disabled: bool
    attached_instances: list[AttachedInstance] = field(default_factory=list)
    detached_instance_names: list[str] = field(default_factory=list)


@dataclass
class LoadBalancer:
    """Load balancer with its membership list and derived server group summaries"""

    name: str
    account: str
    region: str
    instance_names: list[str] = field(default_factory=list)
    ip_address: str = ""
    ip_protocol: str = ""
    port_range: str = ""
    health_check: dict[str, Any] | None = None
    server_groups: list[ServerGroupSummary] = field(default_factory=list)

    def is_registered(self, instance_name: str) -> bool:
        return instance_name in self.instance_names


ApplicationMap = dict[str, Application]
StandaloneInstanceMap = dict[str, list[Instance]]
ImageMap = dict[str, list[Image]]
# account -> region -> load balancers
LoadBalancerMap = dict[str, dict[str, list[LoadBalancer]]]


def ensure_cluster(
    applications: dict[str, Application],
    account: str,
    application_name: str,
    cluster_name: str,
) -> Cluster:
    """Locate or lazily create the path application -> account -> cluster"""
    application = applications.get(application_name)
    if application is None:
        application = Application(name=application_name)
        applications[application_name] = application

    cluster_map = application.clusters.setdefault(account, {})
    cluster = cluster_map.get(cluster_name)
    if cluster is None:
        cluster = Cluster(name=cluster_name, account=account, application=application_name)
        cluster_map[cluster_name] = cluster
    return cluster


def find_cluster(
    applications: Mapping[str, Application],
    account: str,
    application_name: str,
    cluster_name: str,
) -> Cluster | None:
    """Walk application -> account -> cluster without creating anything"""
    application = applications.get(application_name)
    if application is None:
        return None
    return application.clusters.get(account, {}).get(cluster_name)


@dataclass(frozen=True)
class Snapshot:
    """Published, read-only view of the whole entity graph

    Attributes:
        applications: app name -> Application
        standalone_instances: account -> instances owned by no server group
        images: account -> images
        load_balancers: account -> region -> load balancers
        generation: publish counter
        published_at: publish time
    """

    applications: Mapping[str, Application] = field(default_factory=lambda: MappingProxyType({}))
    standalone_instances: Mapping[str, list[Instance]] = field(default_factory=lambda: MappingProxyType({}))
    images: Mapping[str, list[Image]] = field(default_factory=lambda: MappingProxyType({}))
    load_balancers: Mapping[str, Mapping[str, list[LoadBalancer]]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    generation: int = 0
    published_at: datetime | None = None

    def iter_server_groups(self, account: str | None = None):
        """Yield (cluster, server group) pairs, optionally for one account"""
        for application in self.applications.values():
            for sg_account, cluster, server_group in application.iter_server_groups():
                if account is None or sg_account == account:
                    yield cluster, server_group


@dataclass
class Candidate:
    """Privately built, not yet published entity graph"""

    applications: ApplicationMap = field(default_factory=dict)
    standalone_instances: StandaloneInstanceMap = field(default_factory=dict)
    images: ImageMap = field(default_factory=dict)
    load_balancers: LoadBalancerMap = field(default_factory=dict)
