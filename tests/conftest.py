"""
tests/conftest.py - pytest 공통 픽스처

인메모리 FakeProvider와 기본 토폴로지(acct1 / lb-x / app-v001)를 제공합니다.

Usage:
    def test_something(provider, config, store):
        pipeline = FullReloadPipeline(store, provider, lambda: config.accounts)
        pipeline.run()
"""

import os
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

import pytest

from topology.cache.store import SnapshotStore
from topology.config import AccountConfig, TopologyConfig
from topology.exceptions import ResourceNotFoundError
from topology.model.types import Image
from topology.providers.base import (
    AutoscalingPolicyDescriptor,
    InstanceDescriptor,
    LaunchTemplateDescriptor,
    LoadBalancerDescriptor,
    LoadBalancerHealthStatus,
    ServerGroupDescriptor,
)

# =============================================================================
# 환경 설정
# =============================================================================


@pytest.fixture(autouse=True)
def setup_test_environment():
    """테스트 환경 설정"""
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    yield


# =============================================================================
# FakeProvider
# =============================================================================


class FakeProvider:
    """인메모리 ComputeProvider

    계정 이름 기준으로 리소스를 보관하고, ``fail(method, account, error)``로
    특정 호출을 실패시킬 수 있습니다.
    """

    def __init__(self):
        self.regions: Dict[str, List[str]] = defaultdict(list)
        self.server_groups: Dict[Tuple[str, str], List[ServerGroupDescriptor]] = defaultdict(list)
        self.templates: Dict[Tuple[str, str], LaunchTemplateDescriptor] = {}
        self.members: Dict[Tuple[str, str], List[str]] = defaultdict(list)
        self.images: Dict[Tuple[str, str], List[Image]] = defaultdict(list)
        self.policies: Dict[str, List[AutoscalingPolicyDescriptor]] = defaultdict(list)
        self.load_balancers: Dict[str, List[LoadBalancerDescriptor]] = defaultdict(list)
        self.instances: Dict[str, List[InstanceDescriptor]] = defaultdict(list)
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.calls: List[Tuple[str, str]] = []

    def fail(self, method: str, account: str, error: Exception) -> None:
        self.failures[(method, account)] = error

    def _record(self, method: str, account: AccountConfig) -> None:
        self.calls.append((method, account.name))
        error = self.failures.get((method, account.name))
        if error is not None:
            raise error

    # ---- 구성 헬퍼 ----

    def add_server_group(
        self,
        account: str,
        descriptor: ServerGroupDescriptor,
        members: Optional[List[str]] = None,
        template: Optional[LaunchTemplateDescriptor] = None,
    ) -> None:
        self.server_groups[(account, descriptor.region)].append(descriptor)
        self.members[(account, descriptor.name)] = list(members or [])
        if template is not None:
            self.templates[(account, template.name)] = template

    def remove_server_group(self, account: str, name: str) -> None:
        for key, descriptors in self.server_groups.items():
            if key[0] == account:
                self.server_groups[key] = [d for d in descriptors if d.name != name]

    # ---- ComputeProvider ----

    def list_regions(self, account: AccountConfig) -> List[str]:
        self._record("list_regions", account)
        return list(self.regions[account.name])

    def list_server_groups(self, account: AccountConfig, region: str) -> List[ServerGroupDescriptor]:
        self._record("list_server_groups", account)
        return list(self.server_groups[(account.name, region)])

    def get_launch_template(self, account: AccountConfig, region: str, name: str) -> LaunchTemplateDescriptor:
        self._record("get_launch_template", account)
        template = self.templates.get((account.name, name))
        if template is None:
            raise ResourceNotFoundError(account.name, "launch template", name)
        return template

    def list_server_group_instances(
        self, account: AccountConfig, region: str, zone: str, server_group_name: str
    ) -> List[str]:
        self._record("list_server_group_instances", account)
        return list(self.members[(account.name, server_group_name)])

    def list_images(self, account: AccountConfig, project: str) -> List[Image]:
        self._record("list_images", account)
        return list(self.images[(account.name, project)])

    def list_autoscaling_policies(self, account: AccountConfig) -> List[AutoscalingPolicyDescriptor]:
        self._record("list_autoscaling_policies", account)
        return list(self.policies[account.name])

    def list_load_balancers(self, account: AccountConfig) -> List[LoadBalancerDescriptor]:
        self._record("list_load_balancers", account)
        return list(self.load_balancers[account.name])

    def get_server_group(self, account: AccountConfig, region: str, zone: str, name: str) -> ServerGroupDescriptor:
        self._record("get_server_group", account)
        for descriptor in self.server_groups[(account.name, region)]:
            if descriptor.name == name:
                return descriptor
        raise ResourceNotFoundError(account.name, "server group", name)

    def list_instances(self, account: AccountConfig) -> List[InstanceDescriptor]:
        self._record("list_instances", account)
        return list(self.instances[account.name])


# =============================================================================
# 기본 토폴로지
# =============================================================================

ACCOUNT = "acct1"
REGION = "us-east1"
ZONE = "us-east1-b"


def make_instance(
    name: str,
    status: str = "RUNNING",
    region: str = REGION,
    zone: str = ZONE,
    security_groups: Optional[List[str]] = None,
) -> InstanceDescriptor:
    return InstanceDescriptor(
        name=name,
        region=region,
        zone=zone,
        status=status,
        machine_type="n1-standard-1",
        security_groups=list(security_groups or []),
    )


def populate_default_topology(provider: FakeProvider, account: str = ACCOUNT) -> None:
    """lb-x(i-1 등록) + app-v001(i-1, i-2) + 독립 인스턴스 i-9"""
    provider.regions[account] = [REGION]

    provider.add_server_group(
        account,
        ServerGroupDescriptor(
            name="app-v001",
            region=REGION,
            zone=ZONE,
            zones=[ZONE],
            target_size=2,
            min_size=1,
            max_size=4,
            launch_template_name="app-v001-template",
            load_balancer_names=["lb-x"],
            created_time=1700000000000,
        ),
        members=["i-1", "i-2"],
        template=LaunchTemplateDescriptor(
            name="app-v001-template",
            machine_type="n1-standard-1",
            source_image="projects/proj-acct1/global/images/app-image-1",
            network_name="default",
            tags=["http-server"],
            security_groups=["sg-web"],
        ),
    )

    provider.images[(account, f"proj-{account}")] = [
        Image(
            name="app-image-1",
            project=f"proj-{account}",
            image_id="100",
            description="appversion: app-1.0.0-h12.abc1234/app-build/12",
        )
    ]

    provider.load_balancers[account] = [
        LoadBalancerDescriptor(
            name="lb-x",
            region=REGION,
            instance_names=["i-1"],
            health=[LoadBalancerHealthStatus(instance_name="i-1", state="HEALTHY")],
            ip_address="10.0.0.1",
            ip_protocol="TCP",
            port_range="80-80",
        )
    ]

    provider.instances[account] = [
        make_instance("i-1", security_groups=["sg-web"]),
        make_instance("i-2", security_groups=["sg-web"]),
        make_instance("i-9"),
    ]


@pytest.fixture
def empty_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def provider() -> FakeProvider:
    fake = FakeProvider()
    populate_default_topology(fake)
    return fake


@pytest.fixture
def account() -> AccountConfig:
    return AccountConfig(name=ACCOUNT, project=f"proj-{ACCOUNT}", regions=[REGION])


@pytest.fixture
def config(account) -> TopologyConfig:
    return TopologyConfig(accounts=[account])


@pytest.fixture
def store() -> SnapshotStore:
    return SnapshotStore()

