"""
topology/model/views.py - Read-only views handed to consumers

Views are detached summaries of snapshot entities: consumers can hold on to
them without keeping references into the published graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .types import Capacity, HealthEntry, HealthState, Instance, ServerGroup


@dataclass(frozen=True)
class InstanceCounts:
    total: int = 0
    up: int = 0
    down: int = 0
    unknown: int = 0
    starting: int = 0
    out_of_service: int = 0


@dataclass(frozen=True)
class ImageSummary:
    server_group_name: str
    image_name: str | None
    image_id: str | None
    build_info: dict[str, Any] | None = None


@dataclass(frozen=True)
class InstanceView:
    """Instance as seen by readers"""

    name: str
    account: str
    region: str
    zone: str
    status: str
    health_state: HealthState
    health: tuple[HealthEntry, ...] = ()
    server_group: str | None = None
    tags: tuple[str, ...] = ()
    security_groups: tuple[str, ...] = ()
    machine_type: str = ""
    launch_time: Any = None

    @classmethod
    def from_instance(cls, instance: Instance) -> InstanceView:
        return cls(
            name=instance.name,
            account=instance.account,
            region=instance.region,
            zone=instance.zone,
            status=instance.status,
            health_state=instance.health_state,
            health=tuple(instance.health),
            server_group=instance.server_group,
            tags=tuple(instance.tags),
            security_groups=tuple(instance.security_groups),
            machine_type=instance.machine_type,
            launch_time=instance.launch_time,
        )


@dataclass(frozen=True)
class ServerGroupView:
    """Server group as seen by readers"""

    name: str
    account: str
    region: str
    zones: tuple[str, ...]
    disabled: bool
    instances: tuple[InstanceView, ...] = ()
    load_balancers: tuple[str, ...] = ()
    capacity: Capacity | None = None
    created_time: int | None = None
    launch_config: dict[str, Any] = field(default_factory=dict)
    autoscaling_policy: dict[str, Any] | None = None
    network_name: str = ""
    instance_template_tags: tuple[str, ...] = ()
    security_groups: tuple[str, ...] = ()
    current_actions: dict[str, int] = field(default_factory=dict)
    images_summary: tuple[ImageSummary, ...] = ()

    @classmethod
    def from_server_group(cls, server_group: ServerGroup) -> ServerGroupView:
        launch_config = server_group.launch_config
        template = launch_config.get("instance_template") or {}
        image_summary = ImageSummary(
            server_group_name=server_group.name,
            image_name=template.get("name"),
            image_id=launch_config.get("image_id"),
            build_info=server_group.build_info,
        )
        return cls(
            name=server_group.name,
            account=server_group.account,
            region=server_group.region,
            zones=tuple(server_group.zones),
            disabled=server_group.disabled,
            instances=tuple(InstanceView.from_instance(i) for i in server_group.instances),
            load_balancers=tuple(server_group.load_balancer_names),
            capacity=server_group.capacity,
            created_time=server_group.created_time,
            launch_config=dict(launch_config),
            autoscaling_policy=server_group.autoscaling_policy,
            network_name=server_group.network_name,
            instance_template_tags=tuple(server_group.instance_template_tags),
            security_groups=tuple(server_group.security_groups),
            current_actions=dict(server_group.current_actions),
            images_summary=(image_summary,),
        )

    @property
    def image_summary(self) -> ImageSummary | None:
        return self.images_summary[0] if self.images_summary else None

    @property
    def instance_counts(self) -> InstanceCounts:
        states = [i.health_state for i in self.instances]
        return InstanceCounts(
            total=len(states),
            up=states.count(HealthState.UP),
            down=states.count(HealthState.DOWN),
            unknown=states.count(HealthState.UNKNOWN),
            starting=states.count(HealthState.STARTING),
            out_of_service=states.count(HealthState.OUT_OF_SERVICE),
        )
