"""
topology/cache/update.py - Incremental update pipeline

Refreshes a single server group after an external change notification
(typically a deploy or destroy). The update is best effort: if a full reload
holds the store lock the update is abandoned, and the next full reload
converges the snapshot instead.

Load balancer summaries are not re-indexed here; they catch up on the next
full reload.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from topology.config import AccountConfig, settings
from topology.exceptions import is_not_found
from topology.model.types import Application, Candidate, ServerGroup, ensure_cluster, find_cluster
from topology.naming import parse_resource_name
from topology.parallel.batch import BatchRequest, execute_if_requests_are_queued
from topology.providers.base import ComputeProvider

from .builder import AccountCandidate, ServerGroupAssembler, apply_autoscaling_policies, attach_instances
from .store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceChange:
    """Change notification for one server group"""

    account: str
    region: str
    zone: str
    server_group_name: str


class UpdateStatus(Enum):
    REFRESHED = "refreshed"
    DELETED = "deleted"
    SKIPPED_LOCKED = "skipped_locked"
    UNKNOWN_ACCOUNT = "unknown_account"
    FAILED = "failed"


@dataclass
class UpdateResult:
    status: UpdateStatus
    account: str
    server_group_name: str
    generation: int | None = None
    error: str | None = None

    @property
    def applied(self) -> bool:
        return self.status in (UpdateStatus.REFRESHED, UpdateStatus.DELETED)


def migrate_load_balancer_health(
    applications: Mapping[str, Application],
    new_server_group: ServerGroup,
    account: str,
    application_name: str,
    cluster_name: str,
) -> int:
    """Carry load balancer health forward from the published server group

    A server-group-scoped refetch does not re-derive load balancer health, so
    every load-balancer-sourced entry of a same-named instance in the existing
    server group is appended to the fresh instance. Entries are appended
    without deduplication; repeated refreshes can accumulate duplicates.

    Returns:
        Number of health entries copied
    """
    cluster = find_cluster(applications, account, application_name, cluster_name)
    if cluster is None:
        return 0

    original = cluster.find_server_group(new_server_group.name)
    if original is None:
        return 0

    copied = 0
    for original_instance in original.instances:
        new_instance = new_server_group.find_instance(original_instance.name)
        if new_instance is None:
            continue
        entries = original_instance.load_balancer_health
        if entries:
            new_instance.health.extend(entries)
            copied += len(entries)
    return copied


class IncrementalUpdatePipeline:
    """Best-effort refresh of one server group

    Example:
        pipeline = IncrementalUpdatePipeline(store, provider, config.get_account)
        result = pipeline.run(ResourceChange("prod", "us-east-1", "us-east-1a", "app-main-v002"))
        if result.status is UpdateStatus.SKIPPED_LOCKED:
            ...  # the next full reload will pick it up
    """

    def __init__(
        self,
        store: SnapshotStore,
        provider: ComputeProvider,
        account_lookup: Callable[[str], AccountConfig | None],
        build_host: str | None = None,
        batch_max_workers: int | None = None,
    ):
        self.store = store
        self.provider = provider
        self.account_lookup = account_lookup
        self.build_host = build_host or settings.DEFAULT_BUILD_HOST
        self.batch_max_workers = batch_max_workers or settings.BATCH_MAX_WORKERS

    def run(self, change: ResourceChange) -> UpdateResult:
        """Refresh the server group named in ``change`` without waiting for the lock"""
        logger.info(f"Refreshing cache for server group {change.server_group_name} in account {change.account}...")

        if not self.store.try_lock():
            logger.info(f"Unable to acquire cache lock for updating {change.server_group_name}; skipping.")
            return UpdateResult(UpdateStatus.SKIPPED_LOCKED, change.account, change.server_group_name)

        try:
            logger.info("Acquired cache lock for updating cache.")
            return self._update(change)
        except Exception as e:
            logger.exception(f"Failed to refresh server group {change.server_group_name} in account {change.account}")
            return UpdateResult(UpdateStatus.FAILED, change.account, change.server_group_name, error=str(e))
        finally:
            self.store.release()

    def _update(self, change: ResourceChange) -> UpdateResult:
        account = self.account_lookup(change.account)
        if account is None:
            logger.warning(f"Account {change.account} is not configured; ignoring change notification.")
            return UpdateResult(UpdateStatus.UNKNOWN_ACCOUNT, change.account, change.server_group_name)

        names = parse_resource_name(change.server_group_name)
        if not names.is_valid:
            return UpdateResult(
                UpdateStatus.FAILED,
                change.account,
                change.server_group_name,
                error=f"Unparseable server group name: {change.server_group_name}",
            )
        application_name = names.app.lower()
        cluster_name = names.cluster

        fresh = self.fetch_server_group(account, change)

        current = self.store.get_snapshot()
        if fresh is not None:
            migrated = migrate_load_balancer_health(
                current.applications, fresh, change.account, application_name, cluster_name
            )
            if migrated:
                logger.debug(f"Migrated {migrated} load balancer health entries to {fresh.name}")

        applications = self.store.clone_applications()
        if fresh is not None:
            cluster = ensure_cluster(applications, change.account, application_name, cluster_name)
            cluster.server_groups = [sg for sg in cluster.server_groups if sg.name != change.server_group_name]
            cluster.server_groups.append(fresh)
        else:
            self._remove_server_group(applications, change.account, application_name, cluster_name, change.server_group_name)

        snapshot = self.store.publish(
            Candidate(
                applications=applications,
                standalone_instances=dict(current.standalone_instances),
                images=dict(current.images),
                load_balancers=dict(current.load_balancers),
            )
        )

        status = UpdateStatus.REFRESHED if fresh is not None else UpdateStatus.DELETED
        logger.info(
            f"Finished refreshing cache for server group {change.server_group_name} "
            f"in account {change.account} ({status.value})."
        )
        return UpdateResult(status, change.account, change.server_group_name, generation=snapshot.generation)

    def fetch_server_group(self, account: AccountConfig, change: ResourceChange) -> ServerGroup | None:
        """Re-derive one server group exactly as the full reload does; None when it no longer exists"""
        try:
            descriptor = self.provider.get_server_group(account, change.region, change.zone, change.server_group_name)
        except Exception as e:
            if is_not_found(e):
                logger.info(f"Server group {change.server_group_name} not found in account {account.name}; treating as deleted.")
                return None
            raise

        target = AccountCandidate(account=account.name)
        templates_batch = BatchRequest(f"{account.name}/server-groups", self.batch_max_workers)
        instance_groups_batch = BatchRequest(f"{account.name}/instance-groups", self.batch_max_workers)
        instances_batch = BatchRequest(f"{account.name}/instances", self.batch_max_workers)

        assembler = ServerGroupAssembler(
            self.provider,
            account,
            target,
            templates=templates_batch,
            instance_groups=instance_groups_batch,
            images=list(self.store.get_snapshot().images.get(account.name, [])),
            build_host=self.build_host,
        )
        server_group = assembler.add(descriptor)
        if server_group is None:
            return None

        instance_groups_batch.queue(
            self.provider.list_autoscaling_policies,
            account,
            callback=lambda policies: apply_autoscaling_policies(target.applications, account.name, policies),
            label="autoscalers",
        )

        execute_if_requests_are_queued(templates_batch)
        execute_if_requests_are_queued(instance_groups_batch)

        # Only the refreshed group's members are attached; no standalone list, no load balancer health
        instances_batch.queue(
            self.provider.list_instances,
            account,
            callback=lambda descriptors: attach_instances(target, descriptors, keep_standalone=False),
            label="instances",
        )
        execute_if_requests_are_queued(instances_batch)

        return server_group

    @staticmethod
    def _remove_server_group(
        applications: dict[str, Application],
        account: str,
        application_name: str,
        cluster_name: str,
        server_group_name: str,
    ) -> None:
        cluster = find_cluster(applications, account, application_name, cluster_name)
        if cluster is None:
            return

        cluster.server_groups = [sg for sg in cluster.server_groups if sg.name != server_group_name]
        if cluster.server_groups:
            return

        # Drop now-empty nodes so the graph matches what a full reload would build
        application = applications[application_name]
        del application.clusters[account][cluster_name]
        if not application.clusters[account]:
            del application.clusters[account]
        if not application.clusters:
            del applications[application_name]
