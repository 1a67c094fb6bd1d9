"""
topology/cache/reload.py - Full reload pipeline

Re-derives the whole snapshot for every configured account. Each account is
built into its own private sub-graph through a fixed sequence of batches:

    regions          region resources (server groups), images, load balancers
    server-groups    launch templates of the server groups found above
    instance-groups  member instances of each server group, autoscaling policies
    instances        aggregated instance listing (health + standalone instances)

An account whose batches fail is dropped from this cycle; the remaining
accounts are merged, indexed and published atomically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from topology.config import AccountConfig, settings
from topology.exceptions import AccountRefreshError
from topology.model.types import Candidate
from topology.parallel.batch import BatchRequest, execute_if_requests_are_queued
from topology.parallel.errors import CollectedError, ErrorCollector, ErrorSeverity
from topology.providers.base import ComputeProvider, LoadBalancerDescriptor

from .builder import (
    AccountCandidate,
    ImagePruningPolicy,
    ServerGroupAssembler,
    apply_autoscaling_policies,
    attach_instances,
    build_load_balancers,
    prune_base_images,
)
from .indexer import populate_load_balancer_server_groups
from .store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class ReloadResult:
    """Outcome of one full reload pass"""

    accounts_total: int = 0
    accounts_failed: list[str] = field(default_factory=list)
    errors: list[CollectedError] = field(default_factory=list)
    failures: list[AccountRefreshError] = field(default_factory=list)
    duration_ms: float = 0.0
    flushed: bool = False
    published: bool = False
    generation: int = 0

    @property
    def success_count(self) -> int:
        return self.accounts_total - len(self.accounts_failed)

    @property
    def error_count(self) -> int:
        return len(self.accounts_failed)


class FullReloadPipeline:
    """Complete re-derivation of the snapshot for all configured accounts

    Example:
        pipeline = FullReloadPipeline(store, provider, lambda: config.accounts)
        result = pipeline.run()
        print(f"{result.success_count} ok, {result.error_count} failed")
    """

    def __init__(
        self,
        store: SnapshotStore,
        provider: ComputeProvider,
        account_source: Callable[[], Iterable[AccountConfig]],
        base_image_projects: Iterable[str] = (),
        image_pruning: ImagePruningPolicy = prune_base_images,
        build_host: str | None = None,
        batch_max_workers: int | None = None,
    ):
        self.store = store
        self.provider = provider
        self.account_source = account_source
        self.base_image_projects = list(base_image_projects)
        self.image_pruning = image_pruning
        self.build_host = build_host or settings.DEFAULT_BUILD_HOST
        self.batch_max_workers = batch_max_workers or settings.BATCH_MAX_WORKERS

    def run(self) -> ReloadResult:
        """Run one full reload, blocking until the store lock is available"""
        start_time = time.monotonic()
        accounts = list(self.account_source() or [])

        if not accounts:
            return self._flush(start_time)

        logger.info(f"Loading compute resources for {len(accounts)} accounts...")
        collector = ErrorCollector("reload")
        result = ReloadResult(accounts_total=len(accounts))

        with self.store.exclusive():
            logger.info("Acquired cache lock for reloading cache.")

            candidate = Candidate()
            for account in accounts:
                try:
                    account_candidate = self.load_account(account)
                except AccountRefreshError as e:
                    collector.collect(
                        e.cause or e, account.name, operation="load_account", severity=ErrorSeverity.CRITICAL
                    )
                    logger.warning(f"Account {account.name} dropped from this cycle: {e}")
                    logger.debug(f"Account {account.name} failure", exc_info=True)
                    result.accounts_failed.append(account.name)
                    result.failures.append(e)
                    continue
                account_candidate.merge_into(candidate)

            if result.success_count == 0:
                logger.warning("Every account failed to load; keeping the previous snapshot.")
            else:
                populate_load_balancer_server_groups(candidate.applications, candidate.load_balancers)
                snapshot = self.store.publish(candidate)
                result.published = True
                result.generation = snapshot.generation

        result.errors = collector.errors
        result.duration_ms = (time.monotonic() - start_time) * 1000

        logger.info(
            f"Finished loading compute resources: {result.success_count} succeeded, "
            f"{result.error_count} failed, {result.duration_ms:.0f}ms"
        )
        return result

    def load_account(self, account: AccountConfig) -> AccountCandidate:
        """Build one account's sub-graph

        Raises:
            AccountRefreshError: any provider or batch failure, wrapped; the caller drops the account
        """
        try:
            return self._build_account(account)
        except Exception as e:
            raise AccountRefreshError(account.name, type(e).__name__, cause=e) from e

    def _build_account(self, account: AccountConfig) -> AccountCandidate:
        target = AccountCandidate(account=account.name)
        workers = self.batch_max_workers

        regions_batch = BatchRequest(f"{account.name}/regions", workers)
        server_groups_batch = BatchRequest(f"{account.name}/server-groups", workers)
        instance_groups_batch = BatchRequest(f"{account.name}/instance-groups", workers)
        instances_batch = BatchRequest(f"{account.name}/instances", workers)

        assembler = ServerGroupAssembler(
            self.provider,
            account,
            target,
            templates=server_groups_batch,
            instance_groups=instance_groups_batch,
            images=target.images,
            build_host=self.build_host,
        )

        regions = account.regions or self.provider.list_regions(account)
        for region in regions:
            regions_batch.queue(
                self.provider.list_server_groups,
                account,
                region,
                callback=assembler.on_server_groups,
                label=f"region:{region}",
            )

        # Images for the account project, account image projects and pruned base image projects
        for project in [account.project, *account.image_projects]:
            regions_batch.queue(
                self.provider.list_images, account, project, callback=target.images.extend, label=f"images:{project}"
            )
        for project in self.base_image_projects:
            regions_batch.queue(
                self.provider.list_images,
                account,
                project,
                callback=lambda images: target.images.extend(self.image_pruning(images)),
                label=f"base-images:{project}",
            )

        instance_groups_batch.queue(
            self.provider.list_autoscaling_policies,
            account,
            callback=lambda policies: apply_autoscaling_policies(target.applications, account.name, policies),
            label="autoscalers",
        )

        def on_load_balancers(descriptors: list[LoadBalancerDescriptor]) -> None:
            by_region, health_index = build_load_balancers(account.name, descriptors)
            target.load_balancers.update(by_region)
            target.load_balancer_health.update(health_index)

        regions_batch.queue(self.provider.list_load_balancers, account, callback=on_load_balancers, label="load-balancers")

        execute_if_requests_are_queued(regions_batch)
        execute_if_requests_are_queued(server_groups_batch)
        execute_if_requests_are_queued(instance_groups_batch)

        instances_batch.queue(
            self.provider.list_instances,
            account,
            callback=lambda descriptors: attach_instances(
                target, descriptors, keep_standalone=True, health_index=target.load_balancer_health
            ),
            label="instances",
        )
        execute_if_requests_are_queued(instances_batch)

        server_group_count = sum(1 for app in target.applications.values() for _ in app.iter_server_groups())
        logger.info(
            f"Loaded {len(target.applications)} applications, {server_group_count} server groups, "
            f"{len(target.standalone_instances)} standalone instances in account {account.name}"
        )
        return target

    def _flush(self, start_time: float) -> ReloadResult:
        """No accounts configured: empty the application map, keep the rest"""
        result = ReloadResult(flushed=True)

        with self.store.exclusive():
            current = self.store.get_snapshot()
            if current.applications:
                logger.info("No accounts configured. Flushing application map...")
                snapshot = self.store.publish(
                    Candidate(
                        applications={},
                        standalone_instances=dict(current.standalone_instances),
                        images=dict(current.images),
                        load_balancers=dict(current.load_balancers),
                    )
                )
                result.published = True
                result.generation = snapshot.generation

        result.duration_ms = (time.monotonic() - start_time) * 1000
        return result
