"""
topology/cache/builder.py - Per-resource derivation shared by both pipelines

Turns provider descriptors into entity model objects and wires the batched
follow-up requests (launch templates, member instances) that complete each
server group. The full reload and the incremental update use exactly the same
code here, so a server group refreshed on its own looks like one produced by a
full reload.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from topology.model.types import (
    Application,
    Candidate,
    HealthEntry,
    HealthSource,
    Image,
    Instance,
    LoadBalancer,
    ServerGroup,
    ensure_cluster,
)
from topology.naming import parse_resource_name
from topology.parallel.batch import BatchRequest
from topology.providers.base import (
    AutoscalingPolicyDescriptor,
    InstanceDescriptor,
    LaunchTemplateDescriptor,
    LoadBalancerDescriptor,
    LoadBalancerHealthStatus,
    ServerGroupDescriptor,
    normalize_health_state,
)

if TYPE_CHECKING:
    from topology.config import AccountConfig
    from topology.providers.base import ComputeProvider

logger = logging.getLogger(__name__)

LOAD_BALANCER_NAMES_METADATA_KEY = "load-balancer-names"

# instance name -> load balancer name -> health statuses
LoadBalancerHealthIndex = dict[str, dict[str, list[LoadBalancerHealthStatus]]]

ImagePruningPolicy = Callable[[list[Image]], list[Image]]

_APP_VERSION_PATTERN = re.compile(
    r"^(?P<package>[a-zA-Z0-9._+]+(?:-[a-zA-Z][a-zA-Z0-9._+]*)*)"
    r"-(?P<version>[0-9][a-zA-Z0-9.~+]*)"
    r"(?:-h(?P<build>[0-9]+))?"
    r"(?:\.(?P<commit>[0-9a-f]+))?"
    r"(?:/(?P<job>[a-zA-Z0-9._-]+)/(?P<number>[0-9]+))?$"
)


def local_name(url: str | None) -> str:
    """Last path segment of a resource URL (``.../zones/us-east1-b`` -> ``us-east1-b``)"""
    if not url:
        return ""
    return url.rstrip("/").rsplit("/", 1)[-1]


def prune_base_images(images: list[Image]) -> list[Image]:
    """Default pruning for public base image projects

    Drops deprecated images and keeps only the newest image of each family.
    Images without a family are kept.
    """
    newest: dict[str, Image] = {}
    unfamilied: list[Image] = []
    for image in images:
        if image.deprecated:
            continue
        if not image.family:
            unfamilied.append(image)
            continue
        current = newest.get(image.family)
        if current is None or _created(image) > _created(current):
            newest[image.family] = image
    return unfamilied + list(newest.values())


def _created(image: Image) -> datetime:
    created = image.creation_time or datetime.min
    return created.replace(tzinfo=None)


def build_info_from_image(image: Image | None, build_host: str) -> dict[str, Any] | None:
    """Derive build metadata from the ``appversion`` line of an image description"""
    if image is None or not image.description:
        return None

    app_version = None
    for part in re.split(r"[,\n]", image.description):
        key, _, value = part.partition(":")
        if key.strip().lower() == "appversion" and value.strip():
            app_version = value.strip()
            break
    if not app_version:
        return None

    match = _APP_VERSION_PATTERN.match(app_version)
    if not match:
        return None

    build_info: dict[str, Any] = {
        "package_name": match.group("package"),
        "version": match.group("version"),
        "commit": match.group("commit"),
    }
    if match.group("job"):
        build_info["jenkins"] = {
            "name": match.group("job"),
            "number": match.group("number"),
            "host": build_host,
        }
    return build_info


def build_server_group(account: str, descriptor: ServerGroupDescriptor) -> ServerGroup:
    """Create the entity for a server group descriptor (without instances or template data)"""
    target_size = descriptor.target_size
    server_group = ServerGroup(
        name=descriptor.name,
        account=account,
        region=descriptor.region,
        zone=descriptor.zone,
        zones=list(descriptor.zones or ([descriptor.zone] if descriptor.zone else [])),
        launch_config={"created_time": descriptor.created_time},
        asg={
            "min_size": descriptor.min_size if descriptor.min_size is not None else target_size,
            "max_size": descriptor.max_size if descriptor.max_size is not None else target_size,
            "desired_capacity": target_size,
            "load_balancer_names": list(descriptor.load_balancer_names),
        },
        current_actions=dict(descriptor.current_actions),
        self_link=descriptor.self_link,
    )
    # A server group with no active load balancer attachment is disabled
    server_group.disabled = not descriptor.load_balancer_names
    return server_group


def apply_launch_template(
    server_group: ServerGroup,
    template: LaunchTemplateDescriptor,
    images: Iterable[Image],
    build_host: str,
) -> None:
    """Copy launch template details onto the server group"""
    server_group.network_name = template.network_name
    server_group.instance_template_tags = list(template.tags)
    server_group.security_groups = list(template.security_groups)
    server_group.launch_config.update(
        {
            "launch_configuration_name": template.name,
            "instance_type": template.machine_type,
            "instance_template": dict(template.raw) or {"name": template.name},
        }
    )

    if template.source_image:
        image_id = local_name(template.source_image)
        server_group.launch_config["image_id"] = image_id
        image = next((i for i in images if image_id in (i.name, i.image_id)), None)
        server_group.build_info = build_info_from_image(image, build_host)

    names = template.metadata.get(LOAD_BALANCER_NAMES_METADATA_KEY)
    if names:
        server_group.asg["load_balancer_names"] = [n.strip() for n in names.split(",") if n.strip()]


def apply_autoscaling_policies(
    applications: dict[str, Application],
    account: str,
    policies: Iterable[AutoscalingPolicyDescriptor],
) -> int:
    """Attach autoscaling policies to this account's server groups, matched by (region, name)

    Returns:
        Number of server groups updated
    """
    by_key = {(p.region, p.server_group_name): p for p in policies}
    updated = 0
    for application in applications.values():
        for sg_account, _, server_group in application.iter_server_groups():
            if sg_account != account:
                continue
            policy = by_key.get((server_group.region, server_group.name))
            if policy is None:
                continue
            server_group.autoscaling_policy = dict(policy.policy)
            if policy.min_size is not None:
                server_group.asg["min_size"] = policy.min_size
            if policy.max_size is not None:
                server_group.asg["max_size"] = policy.max_size
            updated += 1
    return updated


def build_load_balancers(
    account: str,
    descriptors: Iterable[LoadBalancerDescriptor],
) -> tuple[dict[str, list[LoadBalancer]], LoadBalancerHealthIndex]:
    """Build fresh load balancer records (empty summaries) and the per-instance health index"""
    by_region: dict[str, list[LoadBalancer]] = {}
    health_index: LoadBalancerHealthIndex = {}

    for descriptor in descriptors:
        by_region.setdefault(descriptor.region, []).append(
            LoadBalancer(
                name=descriptor.name,
                account=account,
                region=descriptor.region,
                instance_names=list(descriptor.instance_names),
                ip_address=descriptor.ip_address,
                ip_protocol=descriptor.ip_protocol,
                port_range=descriptor.port_range,
                health_check=descriptor.health_check,
            )
        )
        for status in descriptor.health:
            health_index.setdefault(status.instance_name, {}).setdefault(descriptor.name, []).append(status)

    return by_region, health_index


def build_instance(
    account: str,
    descriptor: InstanceDescriptor,
    health_index: LoadBalancerHealthIndex | None = None,
) -> Instance:
    """Create an instance entity with provider and load balancer health entries"""
    instance = Instance(
        name=descriptor.name,
        account=account,
        region=descriptor.region,
        zone=local_name(descriptor.zone),
        status=descriptor.status,
        machine_type=local_name(descriptor.machine_type),
        network_name=descriptor.network_name,
        private_ip=descriptor.private_ip,
        launch_time=descriptor.launch_time,
        tags=list(descriptor.tags),
        security_groups=list(descriptor.security_groups),
    )
    instance.health.append(
        HealthEntry(
            source=HealthSource.PROVIDER,
            state=normalize_health_state(descriptor.status),
            description=descriptor.status,
        )
    )
    if health_index:
        for lb_name, statuses in health_index.get(descriptor.name, {}).items():
            for status in statuses:
                instance.health.append(
                    HealthEntry(
                        source=HealthSource.LOAD_BALANCER,
                        state=normalize_health_state(status.state),
                        description=status.description,
                        load_balancer_name=lb_name,
                    )
                )
    return instance


@dataclass
class AccountCandidate:
    """One account's privately built sub-graph

    Merged into the reload candidate only after the account completes.
    """

    account: str
    applications: dict[str, Application] = field(default_factory=dict)
    standalone_instances: list[Instance] = field(default_factory=list)
    images: list[Image] = field(default_factory=list)
    load_balancers: dict[str, list[LoadBalancer]] = field(default_factory=dict)
    load_balancer_health: LoadBalancerHealthIndex = field(default_factory=dict)
    instance_owners: dict[str, ServerGroup] = field(default_factory=dict)

    def merge_into(self, candidate: Candidate) -> None:
        """Fold this account's data into the reload candidate (single threaded)"""
        for app_name, application in self.applications.items():
            target = candidate.applications.get(app_name)
            if target is None:
                target = Application(name=app_name)
                candidate.applications[app_name] = target
            for account, cluster_map in application.clusters.items():
                target.clusters[account] = cluster_map
        candidate.standalone_instances[self.account] = self.standalone_instances
        candidate.images[self.account] = self.images
        candidate.load_balancers[self.account] = self.load_balancers


class ServerGroupAssembler:
    """Creates server groups and queues the requests that complete them

    For each server group descriptor the launch template lookup goes into the
    ``templates`` batch and the member instance listing into the
    ``instance_groups`` batch. Member instances start as name-only stubs and
    are replaced by full records when the aggregated instance listing arrives.
    """

    def __init__(
        self,
        provider: ComputeProvider,
        account: AccountConfig,
        target: AccountCandidate,
        templates: BatchRequest,
        instance_groups: BatchRequest,
        images: list[Image],
        build_host: str,
    ):
        self.provider = provider
        self.account = account
        self.target = target
        self.templates = templates
        self.instance_groups = instance_groups
        self.images = images
        self.build_host = build_host

    def on_server_groups(self, descriptors: list[ServerGroupDescriptor]) -> list[ServerGroup]:
        created = []
        for descriptor in descriptors or []:
            server_group = self.add(descriptor)
            if server_group is not None:
                created.append(server_group)
        return created

    def add(self, descriptor: ServerGroupDescriptor) -> ServerGroup | None:
        names = parse_resource_name(descriptor.name)
        if not names.is_valid:
            logger.debug(f"Skipping server group with unparseable name: {descriptor.name}")
            return None

        server_group = build_server_group(self.account.name, descriptor)
        cluster = ensure_cluster(self.target.applications, self.account.name, names.app.lower(), names.cluster)
        cluster.server_groups.append(server_group)

        if descriptor.launch_template_name:
            self.templates.queue(
                self.provider.get_launch_template,
                self.account,
                descriptor.region,
                descriptor.launch_template_name,
                callback=lambda template, sg=server_group: apply_launch_template(
                    sg, template, self.images, self.build_host
                ),
                label=f"template:{descriptor.launch_template_name}",
            )

        if descriptor.instance_names is not None:
            # Listing already carried the members; no extra round trip
            self.on_member_instances(server_group, descriptor.instance_names)
            return server_group

        self.instance_groups.queue(
            self.provider.list_server_group_instances,
            self.account,
            descriptor.region,
            descriptor.zone,
            descriptor.name,
            callback=lambda names, sg=server_group: self.on_member_instances(sg, names),
            label=f"members:{descriptor.name}",
        )
        return server_group

    def on_member_instances(self, server_group: ServerGroup, instance_names: list[str]) -> None:
        for name in instance_names or []:
            name = local_name(name)
            server_group.instances.append(
                Instance(name=name, account=self.account.name, region=server_group.region, server_group=server_group.name)
            )
            self.target.instance_owners[name] = server_group


def attach_instances(
    target: AccountCandidate,
    descriptors: Iterable[InstanceDescriptor],
    keep_standalone: bool = True,
    health_index: LoadBalancerHealthIndex | None = None,
) -> None:
    """Attach listed instances to their owning server group or to the standalone list

    Name-only member stubs created from the instance group listing are replaced
    in place so the server group's instance order is kept.
    """
    for descriptor in descriptors or []:
        instance = build_instance(target.account, descriptor, health_index)
        owner = target.instance_owners.get(descriptor.name)
        if owner is not None:
            instance.server_group = owner.name
            if not instance.region:
                instance.region = owner.region
            for index, existing in enumerate(owner.instances):
                if existing.name == instance.name:
                    owner.instances[index] = instance
                    break
            else:
                owner.instances.append(instance)
        elif keep_standalone:
            target.standalone_instances.append(instance)
