"""
topology/providers/aws.py - boto3-backed compute provider

Maps AWS resources onto the provider contract:

    Auto Scaling group       -> server group
    launch configuration /
    launch template          -> launch template
    scaling policies         -> autoscaling policy
    Classic Load Balancer    -> load balancer (membership + instance health)
    AMI (owner = project)    -> image
    EC2 instance             -> instance

Clients come from a per-provider ``ClientCache`` so retries, backoff and
timeouts follow botocore's adaptive retry mode. ``ClientError`` is wrapped in
``ProviderCallError``; a missing Auto Scaling group raises
``ResourceNotFoundError``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import ClientError

from topology.config import AccountConfig, settings
from topology.exceptions import ProviderCallError, ResourceNotFoundError
from topology.model.types import Image

from .base import (
    AutoscalingPolicyDescriptor,
    InstanceDescriptor,
    LaunchTemplateDescriptor,
    LoadBalancerDescriptor,
    LoadBalancerHealthStatus,
    ServerGroupDescriptor,
)
from .clients import ClientCache

if TYPE_CHECKING:
    from boto3 import Session

DEFAULT_REGION = "us-east-1"

# Suspending this process detaches the group from its load balancers
DISABLED_PROCESS = "AddToLoadBalancer"


def _to_epoch_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def _parse_aws_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _tag_value(tags: list[dict[str, Any]] | None, key: str) -> str | None:
    for tag in tags or []:
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


def _tag_strings(tags: list[dict[str, Any]] | None) -> list[str]:
    """``Key=Value`` strings, skipping aws: reserved tags"""
    result = []
    for tag in tags or []:
        key = tag.get("Key", "")
        if not key or key.startswith("aws:"):
            continue
        result.append(f"{key}={tag.get('Value', '')}")
    return result


def server_group_from_asg(data: dict[str, Any], region: str) -> ServerGroupDescriptor:
    """Convert a describe_auto_scaling_groups entry"""
    zones = list(data.get("AvailabilityZones", []))
    suspended = {p.get("ProcessName") for p in data.get("SuspendedProcesses", [])}

    template_name = data.get("LaunchConfigurationName") or ""
    if not template_name:
        template = data.get("LaunchTemplate") or data.get("MixedInstancesPolicy", {}).get(
            "LaunchTemplate", {}
        ).get("LaunchTemplateSpecification", {})
        template_name = template.get("LaunchTemplateName", "")

    current_actions: dict[str, int] = {}
    for instance in data.get("Instances", []):
        state = instance.get("LifecycleState", "")
        if state and state != "InService":
            current_actions[state] = current_actions.get(state, 0) + 1

    load_balancer_names = [] if DISABLED_PROCESS in suspended else list(data.get("LoadBalancerNames", []))

    return ServerGroupDescriptor(
        name=data.get("AutoScalingGroupName", ""),
        region=region,
        zone=zones[0] if zones else "",
        zones=zones,
        target_size=data.get("DesiredCapacity", 0),
        min_size=data.get("MinSize"),
        max_size=data.get("MaxSize"),
        launch_template_name=template_name,
        load_balancer_names=load_balancer_names,
        created_time=_to_epoch_millis(data.get("CreatedTime")),
        self_link=data.get("AutoScalingGroupARN", ""),
        current_actions=current_actions,
        instance_names=[i["InstanceId"] for i in data.get("Instances", []) if i.get("InstanceId")],
    )


def image_from_ami(data: dict[str, Any]) -> Image:
    """Convert a describe_images entry"""
    deprecation = _parse_aws_time(data.get("DeprecationTime"))
    return Image(
        name=data.get("Name", ""),
        project=data.get("OwnerId", ""),
        image_id=data.get("ImageId", ""),
        family=_tag_value(data.get("Tags"), "family"),
        description=data.get("Description", ""),
        creation_time=_parse_aws_time(data.get("CreationDate")),
        deprecated=deprecation is not None and deprecation <= datetime.now(timezone.utc),
        self_link=data.get("ImageLocation", ""),
    )


def instance_from_ec2(data: dict[str, Any], region: str) -> InstanceDescriptor:
    """Convert a describe_instances entry"""
    return InstanceDescriptor(
        name=data.get("InstanceId", ""),
        region=region,
        zone=data.get("Placement", {}).get("AvailabilityZone", ""),
        status=data.get("State", {}).get("Name", ""),
        machine_type=data.get("InstanceType", ""),
        network_name=data.get("VpcId", ""),
        private_ip=data.get("PrivateIpAddress", ""),
        tags=_tag_strings(data.get("Tags")),
        security_groups=[g["GroupId"] for g in data.get("SecurityGroups", []) if g.get("GroupId")],
        launch_time=data.get("LaunchTime"),
    )


class AwsComputeProvider:
    """ComputeProvider over boto3

    One boto3 Session per account, created from ``AccountConfig.profile_name``
    (or the default credential chain) and reused across batches.

    Example:
        provider = AwsComputeProvider()
        groups = provider.list_server_groups(account, "us-east-1")
    """

    def __init__(
        self,
        session_factory: Callable[[AccountConfig], Session] | None = None,
        default_region: str = DEFAULT_REGION,
        user_agent_extra: str | None = None,
        clients: ClientCache | None = None,
    ):
        self._session_factory = session_factory or self._default_session
        self.default_region = default_region
        self.user_agent_extra = user_agent_extra or settings.APPLICATION_NAME
        self._clients = clients or ClientCache(user_agent_extra=self.user_agent_extra)
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _default_session(account: AccountConfig) -> Session:
        return boto3.Session(profile_name=account.profile_name)

    def session(self, account: AccountConfig) -> Session:
        with self._lock:
            session = self._sessions.get(account.name)
            if session is None:
                session = self._session_factory(account)
                self._sessions[account.name] = session
            return session

    def client(self, account: AccountConfig, service: str, region: str | None = None) -> Any:
        return self._clients.get(self.session(account), account.name, service, region or self.default_region)

    @contextmanager
    def _translate(self, account: AccountConfig, service: str, operation: str) -> Generator[None, None, None]:
        try:
            yield
        except ClientError as e:
            raise ProviderCallError.from_client_error(account.name, service, operation, e) from e

    def _regions(self, account: AccountConfig) -> list[str]:
        return list(account.regions) or self.list_regions(account)

    # =========================================================================
    # Regions / server groups
    # =========================================================================

    def list_regions(self, account: AccountConfig) -> list[str]:
        ec2 = self.client(account, "ec2")
        with self._translate(account, "ec2", "describe_regions"):
            response = ec2.describe_regions()
        return sorted(r["RegionName"] for r in response.get("Regions", []) if r.get("RegionName"))

    def list_server_groups(self, account: AccountConfig, region: str) -> list[ServerGroupDescriptor]:
        autoscaling = self.client(account, "autoscaling", region)
        groups = []
        with self._translate(account, "autoscaling", "describe_auto_scaling_groups"):
            paginator = autoscaling.get_paginator("describe_auto_scaling_groups")
            for page in paginator.paginate():
                for data in page.get("AutoScalingGroups", []):
                    groups.append(server_group_from_asg(data, region))
        return groups

    def get_server_group(self, account: AccountConfig, region: str, zone: str, name: str) -> ServerGroupDescriptor:
        return server_group_from_asg(self._describe_asg(account, region, name), region)

    def list_server_group_instances(
        self, account: AccountConfig, region: str, zone: str, server_group_name: str
    ) -> list[str]:
        data = self._describe_asg(account, region, server_group_name)
        return [i["InstanceId"] for i in data.get("Instances", []) if i.get("InstanceId")]

    def _describe_asg(self, account: AccountConfig, region: str, name: str) -> dict[str, Any]:
        autoscaling = self.client(account, "autoscaling", region)
        with self._translate(account, "autoscaling", "describe_auto_scaling_groups"):
            response = autoscaling.describe_auto_scaling_groups(AutoScalingGroupNames=[name])
        groups = response.get("AutoScalingGroups", [])
        if not groups:
            raise ResourceNotFoundError(account.name, "server group", name)
        return groups[0]

    # =========================================================================
    # Launch templates
    # =========================================================================

    def get_launch_template(self, account: AccountConfig, region: str, name: str) -> LaunchTemplateDescriptor:
        """Launch configuration by name, falling back to the launch template's default version"""
        autoscaling = self.client(account, "autoscaling", region)
        with self._translate(account, "autoscaling", "describe_launch_configurations"):
            response = autoscaling.describe_launch_configurations(LaunchConfigurationNames=[name])
        configurations = response.get("LaunchConfigurations", [])
        if configurations:
            data = configurations[0]
            return LaunchTemplateDescriptor(
                name=name,
                machine_type=data.get("InstanceType", ""),
                source_image=data.get("ImageId", ""),
                network_name=data.get("ClassicLinkVPCId", ""),
                security_groups=list(data.get("SecurityGroups", [])),
                raw=data,
            )

        ec2 = self.client(account, "ec2", region)
        try:
            response = ec2.describe_launch_template_versions(LaunchTemplateName=name, Versions=["$Default"])
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if "NotFound" in error_code:
                raise ResourceNotFoundError(account.name, "launch template", name, cause=e) from e
            raise ProviderCallError.from_client_error(account.name, "ec2", "describe_launch_template_versions", e) from e

        versions = response.get("LaunchTemplateVersions", [])
        if not versions:
            raise ResourceNotFoundError(account.name, "launch template", name)

        data = versions[0].get("LaunchTemplateData", {})
        tags: list[str] = []
        for spec in data.get("TagSpecifications", []):
            tags.extend(_tag_strings(spec.get("Tags")))
        network_interfaces = data.get("NetworkInterfaces", [])
        security_groups = [*data.get("SecurityGroupIds", []), *data.get("SecurityGroups", [])]
        for interface in network_interfaces:
            security_groups.extend(interface.get("Groups", []))
        return LaunchTemplateDescriptor(
            name=name,
            machine_type=data.get("InstanceType", ""),
            source_image=data.get("ImageId", ""),
            network_name=network_interfaces[0].get("SubnetId", "") if network_interfaces else "",
            tags=tags,
            security_groups=list(dict.fromkeys(security_groups)),
            raw=versions[0],
        )

    # =========================================================================
    # Aggregated listings
    # =========================================================================

    def list_images(self, account: AccountConfig, project: str) -> list[Image]:
        images = []
        for region in self._regions(account):
            ec2 = self.client(account, "ec2", region)
            with self._translate(account, "ec2", "describe_images"):
                response = ec2.describe_images(Owners=[project])
            images.extend(image_from_ami(data) for data in response.get("Images", []))
        return images

    def list_autoscaling_policies(self, account: AccountConfig) -> list[AutoscalingPolicyDescriptor]:
        descriptors = []
        for region in self._regions(account):
            autoscaling = self.client(account, "autoscaling", region)
            by_group: dict[str, list[dict[str, Any]]] = {}
            with self._translate(account, "autoscaling", "describe_policies"):
                paginator = autoscaling.get_paginator("describe_policies")
                for page in paginator.paginate():
                    for data in page.get("ScalingPolicies", []):
                        by_group.setdefault(data.get("AutoScalingGroupName", ""), []).append(
                            {
                                "name": data.get("PolicyName", ""),
                                "type": data.get("PolicyType", ""),
                                "adjustment_type": data.get("AdjustmentType"),
                                "scaling_adjustment": data.get("ScalingAdjustment"),
                                "target_tracking": data.get("TargetTrackingConfiguration"),
                                "enabled": data.get("Enabled", True),
                            }
                        )
            for group_name, policies in by_group.items():
                if group_name:
                    descriptors.append(
                        AutoscalingPolicyDescriptor(
                            server_group_name=group_name, region=region, policy={"policies": policies}
                        )
                    )
        return descriptors

    def list_load_balancers(self, account: AccountConfig) -> list[LoadBalancerDescriptor]:
        descriptors = []
        for region in self._regions(account):
            elb = self.client(account, "elb", region)
            with self._translate(account, "elb", "describe_load_balancers"):
                paginator = elb.get_paginator("describe_load_balancers")
                pages = list(paginator.paginate())
            for page in pages:
                for data in page.get("LoadBalancerDescriptions", []):
                    descriptors.append(self._load_balancer(account, elb, data, region))
        return descriptors

    def _load_balancer(
        self, account: AccountConfig, elb: Any, data: dict[str, Any], region: str
    ) -> LoadBalancerDescriptor:
        name = data.get("LoadBalancerName", "")
        instance_names = [i["InstanceId"] for i in data.get("Instances", []) if i.get("InstanceId")]

        health = []
        if instance_names:
            with self._translate(account, "elb", "describe_instance_health"):
                response = elb.describe_instance_health(LoadBalancerName=name)
            for state in response.get("InstanceStates", []):
                health.append(
                    LoadBalancerHealthStatus(
                        instance_name=state.get("InstanceId", ""),
                        state=state.get("State", ""),
                        description=state.get("Description", ""),
                    )
                )

        listeners = [d.get("Listener", {}) for d in data.get("ListenerDescriptions", [])]
        first = listeners[0] if listeners else {}
        return LoadBalancerDescriptor(
            name=name,
            region=region,
            instance_names=instance_names,
            health=health,
            ip_address=data.get("DNSName", ""),
            ip_protocol=first.get("Protocol", ""),
            port_range=str(first.get("LoadBalancerPort", "")) if first else "",
            health_check=data.get("HealthCheck"),
        )

    def list_instances(self, account: AccountConfig) -> list[InstanceDescriptor]:
        instances = []
        for region in self._regions(account):
            ec2 = self.client(account, "ec2", region)
            with self._translate(account, "ec2", "describe_instances"):
                paginator = ec2.get_paginator("describe_instances")
                for page in paginator.paginate():
                    for reservation in page.get("Reservations", []):
                        for data in reservation.get("Instances", []):
                            instances.append(instance_from_ec2(data, region))
        return instances
