"""
topology/cache/retriever.py - Resource retriever

Single entry point for consumers of the topology cache: lock-free reads over
the published snapshot, change notifications that trigger an incremental
update, and the background reload schedule.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from topology.config import TopologyConfig, settings
from topology.model.types import Application, Cluster, Image, Instance, LoadBalancer, Snapshot, find_cluster
from topology.model.views import InstanceView, ServerGroupView
from topology.providers.base import ComputeProvider

from .builder import ImagePruningPolicy, prune_base_images
from .reload import FullReloadPipeline, ReloadResult
from .scheduler import ReloadScheduler
from .store import SnapshotStore
from .update import IncrementalUpdatePipeline, ResourceChange, UpdateResult

logger = logging.getLogger(__name__)


class ResourceRetriever:
    """Topology cache facade

    Example:
        retriever = ResourceRetriever(AwsComputeProvider(), load_config("topology.yaml"))
        retriever.start()

        views = retriever.get_server_groups("prod", ["app-main-v001"])
        future = retriever.on_resource_changed("prod", "us-east-1", "us-east-1a", "app-main-v002")
        print(future.result().status)

        retriever.stop()
    """

    def __init__(
        self,
        provider: ComputeProvider,
        config: TopologyConfig,
        store: SnapshotStore | None = None,
        image_pruning: ImagePruningPolicy = prune_base_images,
        build_host: str | None = None,
        batch_max_workers: int | None = None,
        update_max_workers: int | None = None,
    ):
        self.provider = provider
        self.config = config
        self.store = store or SnapshotStore()

        self.reload_pipeline = FullReloadPipeline(
            self.store,
            provider,
            account_source=lambda: self.config.accounts,
            base_image_projects=config.base_image_projects,
            image_pruning=image_pruning,
            build_host=build_host,
            batch_max_workers=batch_max_workers,
        )
        self.update_pipeline = IncrementalUpdatePipeline(
            self.store,
            provider,
            account_lookup=self.config.get_account,
            build_host=build_host,
            batch_max_workers=batch_max_workers,
        )

        self._update_max_workers = update_max_workers or settings.UPDATE_MAX_WORKERS
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()
        self._scheduler: ReloadScheduler | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, initial_delay: float | None = None, interval: float | None = None) -> None:
        """Start the periodic background reload"""
        if self._scheduler is not None and self._scheduler.is_running:
            return
        self._scheduler = ReloadScheduler(
            self.reload,
            interval=interval or self.config.polling_interval_seconds or settings.POLLING_INTERVAL_SECONDS,
            initial_delay=settings.INITIAL_DELAY_SECONDS if initial_delay is None else initial_delay,
        )
        self._scheduler.start()

    def stop(self) -> None:
        """Stop the scheduler and drain pending change notifications"""
        if self._scheduler is not None:
            self._scheduler.stop()
            if not self._scheduler.is_running:
                self._scheduler = None
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def reload(self) -> ReloadResult:
        """One synchronous full reload"""
        return self.reload_pipeline.run()

    # =========================================================================
    # Change notifications
    # =========================================================================

    def on_resource_changed(self, account: str, region: str, zone: str, server_group_name: str) -> Future[UpdateResult]:
        """Schedule an incremental update; the returned future never raises"""
        change = ResourceChange(account=account, region=region, zone=zone, server_group_name=server_group_name)
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._update_max_workers, thread_name_prefix="topology-update"
                )
            return self._executor.submit(self.handle_cache_update, change)

    def handle_cache_update(self, change: ResourceChange) -> UpdateResult:
        """Apply one change notification synchronously"""
        return self.update_pipeline.run(change)

    # =========================================================================
    # Reads (lock-free)
    # =========================================================================

    def get_snapshot(self) -> Snapshot:
        return self.store.get_snapshot()

    def get_application(self, name: str) -> Application | None:
        return self.store.get_snapshot().applications.get(name)

    def get_cluster(self, application: str, account: str, cluster: str) -> Cluster | None:
        return find_cluster(self.store.get_snapshot().applications, account, application, cluster)

    def get_instance(self, account: str, instance_id: str) -> InstanceView | None:
        """Find an instance by name in the account's server groups, then its standalone list"""
        snapshot = self.store.get_snapshot()
        instance = self._find_instance(snapshot, account, instance_id)
        return InstanceView.from_instance(instance) if instance is not None else None

    def get_server_groups(self, account: str, names: list[str]) -> list[ServerGroupView]:
        """Views of the named server groups in one account, in snapshot order"""
        wanted = set(names)
        return [
            ServerGroupView.from_server_group(server_group)
            for _, server_group in self.store.get_snapshot().iter_server_groups(account)
            if server_group.name in wanted
        ]

    def get_load_balancers(self, account: str, region: str | None = None) -> list[LoadBalancer]:
        regions = self.store.get_snapshot().load_balancers.get(account, {})
        if region is not None:
            return list(regions.get(region, []))
        return [load_balancer for region_lbs in regions.values() for load_balancer in region_lbs]

    def get_images(self, account: str) -> list[Image]:
        return list(self.store.get_snapshot().images.get(account, []))

    @staticmethod
    def _find_instance(snapshot: Snapshot, account: str, instance_id: str) -> Instance | None:
        for _, server_group in snapshot.iter_server_groups(account):
            instance = server_group.find_instance(instance_id)
            if instance is not None:
                return instance
        for instance in snapshot.standalone_instances.get(account, []):
            if instance.name == instance_id:
                return instance
        return None
