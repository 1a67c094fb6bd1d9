"""
topology/providers/base.py - Compute provider contract

The cache engine talks to the cloud only through ``ComputeProvider``.
Descriptors are the provider's raw view of a resource; the cache builder
turns them into entity model objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from topology.model.types import HealthState, Image

if TYPE_CHECKING:
    from topology.config import AccountConfig


@dataclass
class ServerGroupDescriptor:
    """Raw server group (managed instance group / auto scaling group)"""

    name: str
    region: str
    zone: str = ""
    zones: list[str] = field(default_factory=list)
    target_size: int = 0
    min_size: int | None = None
    max_size: int | None = None
    launch_template_name: str = ""
    # Active load balancer attachments; an empty list means the group is disabled
    load_balancer_names: list[str] = field(default_factory=list)
    created_time: int | None = None
    self_link: str = ""
    current_actions: dict[str, int] = field(default_factory=dict)
    # Member instance names when the listing already includes them; None means list separately
    instance_names: list[str] | None = None


@dataclass
class LaunchTemplateDescriptor:
    """Raw instance template / launch configuration"""

    name: str
    machine_type: str = ""
    source_image: str = ""
    network_name: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    security_groups: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class AutoscalingPolicyDescriptor:
    """Autoscaling policy bound to one server group"""

    server_group_name: str
    region: str
    policy: dict[str, Any] = field(default_factory=dict)
    min_size: int | None = None
    max_size: int | None = None


@dataclass
class LoadBalancerHealthStatus:
    """Load balancer's health check result for one instance"""

    instance_name: str
    state: str
    description: str = ""


@dataclass
class LoadBalancerDescriptor:
    """Raw load balancer with its membership and health data"""

    name: str
    region: str
    instance_names: list[str] = field(default_factory=list)
    health: list[LoadBalancerHealthStatus] = field(default_factory=list)
    ip_address: str = ""
    ip_protocol: str = ""
    port_range: str = ""
    health_check: dict[str, Any] | None = None


@dataclass
class InstanceDescriptor:
    """Raw instance from an aggregated listing"""

    name: str
    region: str = ""
    zone: str = ""
    status: str = ""
    machine_type: str = ""
    network_name: str = ""
    private_ip: str = ""
    tags: list[str] = field(default_factory=list)
    launch_time: datetime | None = None
    security_groups: list[str] = field(default_factory=list)


@runtime_checkable
class ComputeProvider(Protocol):
    """Provider resource API consumed by the cache engine

    Timeouts, retries and backoff are the implementation's responsibility.
    ``get_server_group`` raises ``ResourceNotFoundError`` when the group does
    not exist.
    """

    def list_regions(self, account: AccountConfig) -> list[str]: ...

    def list_server_groups(self, account: AccountConfig, region: str) -> list[ServerGroupDescriptor]: ...

    def get_launch_template(self, account: AccountConfig, region: str, name: str) -> LaunchTemplateDescriptor: ...

    def list_server_group_instances(
        self, account: AccountConfig, region: str, zone: str, server_group_name: str
    ) -> list[str]: ...

    def list_images(self, account: AccountConfig, project: str) -> list[Image]: ...

    def list_autoscaling_policies(self, account: AccountConfig) -> list[AutoscalingPolicyDescriptor]: ...

    def list_load_balancers(self, account: AccountConfig) -> list[LoadBalancerDescriptor]: ...

    def get_server_group(
        self, account: AccountConfig, region: str, zone: str, name: str
    ) -> ServerGroupDescriptor: ...

    def list_instances(self, account: AccountConfig) -> list[InstanceDescriptor]: ...


_UP_STATES = {"HEALTHY", "INSERVICE", "UP", "RUNNING"}
_DOWN_STATES = {"UNHEALTHY", "DOWN", "TERMINATED", "STOPPED", "STOPPING"}
_OUT_OF_SERVICE_STATES = {"OUTOFSERVICE", "DRAINING"}
_STARTING_STATES = {"STARTING", "PROVISIONING", "STAGING", "PENDING"}


def normalize_health_state(raw_state: str | None) -> HealthState:
    """Map a provider health/status string onto ``HealthState``"""
    if not raw_state:
        return HealthState.UNKNOWN

    state = raw_state.replace("_", "").replace("-", "").upper()
    if state in _UP_STATES:
        return HealthState.UP
    if state in _DOWN_STATES:
        return HealthState.DOWN
    if state in _OUT_OF_SERVICE_STATES:
        return HealthState.OUT_OF_SERVICE
    if state in _STARTING_STATES:
        return HealthState.STARTING
    return HealthState.UNKNOWN
