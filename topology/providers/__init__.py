"""
topology/providers - Compute provider contract and implementations

Classes:
    - ComputeProvider: protocol consumed by the cache engine
    - AwsComputeProvider: boto3 implementation
"""

from .aws import AwsComputeProvider
from .base import (
    AutoscalingPolicyDescriptor,
    ComputeProvider,
    InstanceDescriptor,
    LaunchTemplateDescriptor,
    LoadBalancerDescriptor,
    LoadBalancerHealthStatus,
    ServerGroupDescriptor,
    normalize_health_state,
)

__all__ = [
    # Contract
    "ComputeProvider",
    "normalize_health_state",
    # Descriptors
    "ServerGroupDescriptor",
    "LaunchTemplateDescriptor",
    "AutoscalingPolicyDescriptor",
    "LoadBalancerDescriptor",
    "LoadBalancerHealthStatus",
    "InstanceDescriptor",
    # Implementations
    "AwsComputeProvider",
]
