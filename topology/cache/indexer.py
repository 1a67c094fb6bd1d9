"""
topology/cache/indexer.py - Load balancer relationship indexer

Rebuilds every load balancer's server group summaries from a complete
candidate graph. Summaries are a derived annotation: they are cleared and
recomputed on every pass, never maintained by hand.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping

from topology.model.types import (
    UNKNOWN_LOAD_BALANCER_HEALTH,
    Application,
    AttachedInstance,
    HealthState,
    LoadBalancer,
    ServerGroup,
    ServerGroupSummary,
)

logger = logging.getLogger(__name__)


def build_reverse_index(
    applications: Mapping[str, Application],
) -> dict[str, dict[str, list[ServerGroup]]]:
    """account -> load balancer name -> server groups referencing it"""
    index: dict[str, dict[str, list[ServerGroup]]] = defaultdict(lambda: defaultdict(list))
    for application in applications.values():
        for account, _, server_group in application.iter_server_groups():
            for load_balancer_name in server_group.load_balancer_names:
                index[account][load_balancer_name].append(server_group)
    return index


def find_load_balancer(
    load_balancers: Mapping[str, Mapping[str, list[LoadBalancer]]],
    account: str,
    region: str,
    name: str,
) -> LoadBalancer | None:
    for load_balancer in load_balancers.get(account, {}).get(region, []):
        if load_balancer.name == name:
            return load_balancer
    return None


def summarize_server_group(server_group: ServerGroup, load_balancer: LoadBalancer) -> ServerGroupSummary:
    """Partition a server group's instances into attached/detached for one load balancer"""
    summary = ServerGroupSummary(server_group_name=server_group.name, disabled=server_group.disabled)

    for instance in server_group.instances:
        if not load_balancer.is_registered(instance.name):
            summary.detached_instance_names.append(instance.name)
            continue

        health = instance.health_for_load_balancer(load_balancer.name)
        if health is not None:
            state, description = health.state, health.description
        else:
            state, description = HealthState.UNKNOWN, UNKNOWN_LOAD_BALANCER_HEALTH

        summary.attached_instances.append(
            AttachedInstance(
                id=instance.name,
                zone=instance.zone,
                health_state=state,
                health_description=description,
            )
        )
    return summary


def populate_load_balancer_server_groups(
    applications: Mapping[str, Application],
    load_balancers: Mapping[str, Mapping[str, list[LoadBalancer]]],
) -> int:
    """Populate each load balancer with summaries of the server groups that reference it

    A referenced load balancer that is missing from the account/region map is
    skipped (it may not exist, or may live in another region).

    Returns:
        Number of summaries written
    """
    for regions in load_balancers.values():
        for region_load_balancers in regions.values():
            for load_balancer in region_load_balancers:
                load_balancer.server_groups = []

    written = 0
    for account, by_name in build_reverse_index(applications).items():
        for load_balancer_name, server_groups in by_name.items():
            for server_group in server_groups:
                load_balancer = find_load_balancer(load_balancers, account, server_group.region, load_balancer_name)
                if load_balancer is None:
                    continue
                load_balancer.server_groups.append(summarize_server_group(server_group, load_balancer))
                written += 1

    logger.debug(f"Indexed {written} server group summaries")
    return written
