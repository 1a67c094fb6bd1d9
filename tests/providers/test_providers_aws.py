"""
tests/providers/test_providers_aws.py - topology/providers/aws.py 테스트

변환 함수는 순수 함수로, 프로바이더 호출은 MagicMock 세션과 moto로 검증합니다.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from topology.config import AccountConfig
from topology.exceptions import ProviderCallError, ResourceNotFoundError, is_not_found
from topology.providers.aws import (
    AwsComputeProvider,
    image_from_ami,
    instance_from_ec2,
    server_group_from_asg,
)


@pytest.fixture
def account():
    return AccountConfig(name="prod", project="123456789012", regions=["us-east-1"])


def _mock_provider(clients):
    """서비스 이름별 MagicMock client를 돌려주는 세션"""
    session = MagicMock()
    session.client.side_effect = lambda service, **kwargs: clients[service]
    return AwsComputeProvider(session_factory=lambda account: session), session


def _paginator(pages):
    paginator = MagicMock()
    paginator.paginate.return_value = pages
    return paginator


# =============================================================================
# 변환 함수
# =============================================================================


class TestConverters:
    def test_server_group_from_asg(self):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        data = {
            "AutoScalingGroupName": "app-main-v001",
            "AutoScalingGroupARN": "arn:aws:autoscaling:...",
            "AvailabilityZones": ["us-east-1a", "us-east-1b"],
            "DesiredCapacity": 2,
            "MinSize": 1,
            "MaxSize": 4,
            "LaunchConfigurationName": "app-main-v001-lc",
            "LoadBalancerNames": ["app-frontend"],
            "CreatedTime": created,
            "Instances": [
                {"InstanceId": "i-1", "LifecycleState": "InService"},
                {"InstanceId": "i-2", "LifecycleState": "Pending"},
            ],
        }

        descriptor = server_group_from_asg(data, "us-east-1")

        assert descriptor.name == "app-main-v001"
        assert descriptor.zone == "us-east-1a"
        assert descriptor.zones == ["us-east-1a", "us-east-1b"]
        assert (descriptor.target_size, descriptor.min_size, descriptor.max_size) == (2, 1, 4)
        assert descriptor.launch_template_name == "app-main-v001-lc"
        assert descriptor.load_balancer_names == ["app-frontend"]
        assert descriptor.created_time == int(created.timestamp() * 1000)
        assert descriptor.current_actions == {"Pending": 1}
        assert descriptor.instance_names == ["i-1", "i-2"]

    def test_suspended_add_to_load_balancer_detaches(self):
        """AddToLoadBalancer 중단 시 LB 없음(비활성)으로 변환"""
        data = {
            "AutoScalingGroupName": "app-v001",
            "LoadBalancerNames": ["app-frontend"],
            "SuspendedProcesses": [{"ProcessName": "AddToLoadBalancer"}],
        }

        assert server_group_from_asg(data, "us-east-1").load_balancer_names == []

    def test_launch_template_name_fallbacks(self):
        direct = {"AutoScalingGroupName": "a", "LaunchTemplate": {"LaunchTemplateName": "lt-direct"}}
        mixed = {
            "AutoScalingGroupName": "b",
            "MixedInstancesPolicy": {
                "LaunchTemplate": {"LaunchTemplateSpecification": {"LaunchTemplateName": "lt-mixed"}}
            },
        }

        assert server_group_from_asg(direct, "r").launch_template_name == "lt-direct"
        assert server_group_from_asg(mixed, "r").launch_template_name == "lt-mixed"
        assert server_group_from_asg({"AutoScalingGroupName": "c"}, "r").launch_template_name == ""

    def test_image_from_ami(self):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).strftime("%Y-%m-%dT%H:%M:%S.000Z")
        data = {
            "Name": "app-image-1",
            "ImageId": "ami-1",
            "OwnerId": "123456789012",
            "Description": "appversion: app-1.0.0",
            "CreationDate": "2024-05-01T00:00:00.000Z",
            "DeprecationTime": past,
            "Tags": [{"Key": "family", "Value": "app"}],
        }

        image = image_from_ami(data)

        assert image.name == "app-image-1"
        assert image.project == "123456789012"
        assert image.family == "app"
        assert image.deprecated
        assert image.creation_time.year == 2024

    def test_image_without_deprecation(self):
        image = image_from_ami({"Name": "x", "CreationDate": "not-a-date"})

        assert not image.deprecated
        assert image.creation_time is None
        assert image.family is None

    def test_instance_from_ec2(self):
        data = {
            "InstanceId": "i-1",
            "InstanceType": "t3.micro",
            "State": {"Name": "running"},
            "Placement": {"AvailabilityZone": "us-east-1a"},
            "PrivateIpAddress": "10.0.0.1",
            "Tags": [{"Key": "Name", "Value": "web"}, {"Key": "aws:autoscaling:groupName", "Value": "x"}],
            "SecurityGroups": [{"GroupId": "sg-1", "GroupName": "web"}],
        }

        descriptor = instance_from_ec2(data, "us-east-1")

        assert descriptor.name == "i-1"
        assert descriptor.zone == "us-east-1a"
        assert descriptor.status == "running"
        assert descriptor.tags == ["Name=web"]
        assert descriptor.security_groups == ["sg-1"]


# =============================================================================
# 프로바이더 호출 (MagicMock)
# =============================================================================


class TestProviderCalls:
    def test_session_reused_per_account(self, account):
        factory = MagicMock()
        provider = AwsComputeProvider(session_factory=factory)

        provider.session(account)
        provider.session(account)

        factory.assert_called_once_with(account)

    def test_client_error_wrapped(self, account):
        ec2 = MagicMock()
        ec2.describe_regions.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "nope"}, "ResponseMetadata": {"HTTPStatusCode": 403}},
            "DescribeRegions",
        )
        provider, _ = _mock_provider({"ec2": ec2})

        with pytest.raises(ProviderCallError) as exc_info:
            provider.list_regions(account)

        assert exc_info.value.error_code == "AccessDenied"
        assert exc_info.value.status_code == 403
        assert exc_info.value.account == "prod"

    def test_missing_server_group_not_found(self, account):
        autoscaling = MagicMock()
        autoscaling.describe_auto_scaling_groups.return_value = {"AutoScalingGroups": []}
        provider, _ = _mock_provider({"autoscaling": autoscaling})

        with pytest.raises(ResourceNotFoundError) as exc_info:
            provider.get_server_group(account, "us-east-1", "us-east-1a", "app-v001")

        assert is_not_found(exc_info.value)

    def test_list_server_group_instances(self, account):
        autoscaling = MagicMock()
        autoscaling.describe_auto_scaling_groups.return_value = {
            "AutoScalingGroups": [{"AutoScalingGroupName": "app-v001", "Instances": [{"InstanceId": "i-1"}]}]
        }
        provider, _ = _mock_provider({"autoscaling": autoscaling})

        assert provider.list_server_group_instances(account, "us-east-1", "", "app-v001") == ["i-1"]

    def test_launch_template_fallback_not_found(self, account):
        autoscaling = MagicMock()
        autoscaling.describe_launch_configurations.return_value = {"LaunchConfigurations": []}
        ec2 = MagicMock()
        ec2.describe_launch_template_versions.side_effect = ClientError(
            {"Error": {"Code": "InvalidLaunchTemplateName.NotFoundException"}}, "DescribeLaunchTemplateVersions"
        )
        provider, _ = _mock_provider({"autoscaling": autoscaling, "ec2": ec2})

        with pytest.raises(ResourceNotFoundError):
            provider.get_launch_template(account, "us-east-1", "missing")

    def test_launch_configuration_security_groups(self, account):
        """런치 구성의 SecurityGroups는 태그가 아니라 보안 그룹으로 변환"""
        autoscaling = MagicMock()
        autoscaling.describe_launch_configurations.return_value = {
            "LaunchConfigurations": [
                {"ImageId": "ami-1", "InstanceType": "t3.micro", "SecurityGroups": ["sg-web", "sg-ssh"]}
            ]
        }
        provider, _ = _mock_provider({"autoscaling": autoscaling})

        template = provider.get_launch_template(account, "us-east-1", "app-lc")

        assert template.security_groups == ["sg-web", "sg-ssh"]
        assert template.tags == []

    def test_launch_template_version(self, account):
        autoscaling = MagicMock()
        autoscaling.describe_launch_configurations.return_value = {"LaunchConfigurations": []}
        ec2 = MagicMock()
        ec2.describe_launch_template_versions.return_value = {
            "LaunchTemplateVersions": [
                {
                    "LaunchTemplateData": {
                        "InstanceType": "t3.small",
                        "ImageId": "ami-1",
                        "NetworkInterfaces": [{"SubnetId": "subnet-1", "Groups": ["sg-2", "sg-1"]}],
                        "SecurityGroupIds": ["sg-1"],
                        "TagSpecifications": [{"Tags": [{"Key": "team", "Value": "web"}]}],
                    }
                }
            ]
        }
        provider, _ = _mock_provider({"autoscaling": autoscaling, "ec2": ec2})

        template = provider.get_launch_template(account, "us-east-1", "app-lt")

        assert template.machine_type == "t3.small"
        assert template.source_image == "ami-1"
        assert template.network_name == "subnet-1"
        assert template.tags == ["team=web"]
        assert template.security_groups == ["sg-1", "sg-2"]

    def test_load_balancer_health(self, account):
        elb = MagicMock()
        elb.get_paginator.return_value = _paginator(
            [
                {
                    "LoadBalancerDescriptions": [
                        {
                            "LoadBalancerName": "app-frontend",
                            "DNSName": "app-frontend.elb.amazonaws.com",
                            "Instances": [{"InstanceId": "i-1"}],
                            "ListenerDescriptions": [{"Listener": {"Protocol": "HTTP", "LoadBalancerPort": 80}}],
                        },
                        {"LoadBalancerName": "idle"},
                    ]
                }
            ]
        )
        elb.describe_instance_health.return_value = {
            "InstanceStates": [{"InstanceId": "i-1", "State": "InService", "Description": "N/A"}]
        }
        provider, _ = _mock_provider({"elb": elb})

        frontend, idle = provider.list_load_balancers(account)

        assert frontend.instance_names == ["i-1"]
        assert frontend.health[0].state == "InService"
        assert frontend.ip_address == "app-frontend.elb.amazonaws.com"
        assert (frontend.ip_protocol, frontend.port_range) == ("HTTP", "80")
        assert idle.health == []
        elb.describe_instance_health.assert_called_once_with(LoadBalancerName="app-frontend")

    def test_autoscaling_policies_grouped(self, account):
        autoscaling = MagicMock()
        autoscaling.get_paginator.return_value = _paginator(
            [
                {
                    "ScalingPolicies": [
                        {"AutoScalingGroupName": "app-v001", "PolicyName": "up", "PolicyType": "SimpleScaling"},
                        {"AutoScalingGroupName": "app-v001", "PolicyName": "down", "PolicyType": "SimpleScaling"},
                    ]
                }
            ]
        )
        provider, _ = _mock_provider({"autoscaling": autoscaling})

        (descriptor,) = provider.list_autoscaling_policies(account)

        assert descriptor.server_group_name == "app-v001"
        assert [p["name"] for p in descriptor.policy["policies"]] == ["up", "down"]


# =============================================================================
# moto
# =============================================================================


class TestWithMoto:
    @pytest.fixture
    def provider(self):
        return AwsComputeProvider(session_factory=lambda account: boto3.Session(region_name="us-east-1"))

    @mock_aws
    def test_list_regions(self, provider, account):
        regions = provider.list_regions(AccountConfig(name="prod", project="123456789012"))

        assert "us-east-1" in regions
        assert regions == sorted(regions)

    @mock_aws
    def test_server_group_and_launch_configuration(self, provider, account):
        autoscaling = boto3.client("autoscaling", region_name="us-east-1")
        autoscaling.create_launch_configuration(
            LaunchConfigurationName="app-v001-lc",
            ImageId="ami-12c6146b",
            InstanceType="t2.micro",
            SecurityGroups=["sg-web"],
        )
        autoscaling.create_auto_scaling_group(
            AutoScalingGroupName="app-v001",
            LaunchConfigurationName="app-v001-lc",
            MinSize=0,
            MaxSize=2,
            DesiredCapacity=0,
            AvailabilityZones=["us-east-1a"],
        )

        descriptor = provider.get_server_group(account, "us-east-1", "us-east-1a", "app-v001")
        template = provider.get_launch_template(account, "us-east-1", descriptor.launch_template_name)

        assert descriptor.launch_template_name == "app-v001-lc"
        assert descriptor.max_size == 2
        assert template.source_image == "ami-12c6146b"
        assert template.machine_type == "t2.micro"
        assert template.security_groups == ["sg-web"]
        assert descriptor.instance_names == []

    @mock_aws
    def test_deleted_server_group_not_found(self, provider, account):
        with pytest.raises(ResourceNotFoundError):
            provider.get_server_group(account, "us-east-1", "us-east-1a", "app-v404")
