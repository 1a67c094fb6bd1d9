"""
tests/cache/test_cache_reload.py - topology/cache/reload.py 테스트
"""

import pytest
from botocore.exceptions import ClientError

from topology.cache.indexer import find_load_balancer
from topology.cache.reload import FullReloadPipeline
from topology.config import AccountConfig
from topology.exceptions import AccountRefreshError, BatchExecutionError
from topology.model.types import Candidate, HealthState, ensure_cluster
from topology.parallel.errors import ErrorSeverity
from topology.providers.base import LoadBalancerDescriptor, ServerGroupDescriptor


def _pipeline(store, provider, accounts, **kwargs):
    return FullReloadPipeline(store, provider, lambda: accounts, **kwargs)


class TestEndToEnd:
    """acct1 / lb-x / app-v001 시나리오"""

    def test_load_balancer_summary(self, store, provider, account):
        """lb-x 요약: app-v001 하나, attached [i-1], detached [i-2]"""
        result = _pipeline(store, provider, [account]).run()

        assert result.published
        assert result.accounts_failed == []

        snapshot = store.get_snapshot()
        lb = find_load_balancer(snapshot.load_balancers, "acct1", "us-east1", "lb-x")
        assert len(lb.server_groups) == 1

        summary = lb.server_groups[0]
        assert summary.server_group_name == "app-v001"
        assert [a.id for a in summary.attached_instances] == ["i-1"]
        assert summary.attached_instances[0].health_state == HealthState.UP
        assert summary.detached_instance_names == ["i-2"]

    def test_graph_contents(self, store, provider, account):
        """애플리케이션 / 인스턴스 / 이미지 / 빌드 정보"""
        _pipeline(store, provider, [account], build_host="http://builds/").run()
        snapshot = store.get_snapshot()

        cluster = snapshot.applications["app"].clusters["acct1"]["app"]
        server_group = cluster.server_groups[0]
        assert server_group.instance_names == ["i-1", "i-2"]
        assert server_group.launch_config["image_id"] == "app-image-1"
        assert server_group.build_info["jenkins"]["host"] == "http://builds/"

        i1 = server_group.find_instance("i-1")
        assert i1.status == "RUNNING"
        assert len(i1.load_balancer_health) == 1
        assert server_group.find_instance("i-2").load_balancer_health == []

        assert [i.name for i in snapshot.standalone_instances["acct1"]] == ["i-9"]
        assert [i.name for i in snapshot.images["acct1"]] == ["app-image-1"]

    def test_batch_order(self, store, provider, account):
        """리전 → 서버 그룹 → 인스턴스 그룹 → 인스턴스 순서"""
        _pipeline(store, provider, [account]).run()
        methods = [m for m, _ in provider.calls]

        assert methods.index("list_server_groups") < methods.index("get_launch_template")
        assert methods.index("get_launch_template") < methods.index("list_server_group_instances")
        assert methods.index("list_server_group_instances") < methods.index("list_instances")
        assert "list_regions" not in methods

    def test_members_from_listing_need_no_extra_call(self, store, provider, account):
        """목록 응답에 멤버가 포함되면 서버 그룹별 멤버 조회 생략"""
        provider.server_groups[("acct1", "us-east1")][0].instance_names = ["i-1", "i-2"]

        _pipeline(store, provider, [account]).run()

        assert "list_server_group_instances" not in [m for m, _ in provider.calls]
        server_group = store.get_snapshot().applications["app"].clusters["acct1"]["app"].server_groups[0]
        assert server_group.instance_names == ["i-1", "i-2"]
        assert server_group.find_instance("i-1").status == "RUNNING"

    def test_regions_from_provider_when_not_configured(self, store, provider):
        account = AccountConfig(name="acct1", project="proj-acct1")
        _pipeline(store, provider, [account]).run()

        assert ("list_regions", "acct1") in provider.calls
        assert "app" in store.get_snapshot().applications

    def test_base_images_are_pruned(self, store, provider, account):
        provider.images[("acct1", "base")] = []
        calls = []

        def pruning(images):
            calls.append(images)
            return images

        _pipeline(store, provider, [account], base_image_projects=["base"], image_pruning=pruning).run()

        assert calls == [[]]

    def test_unparseable_server_group_skipped(self, store, provider, account):
        provider.add_server_group("acct1", ServerGroupDescriptor(name="bad name", region="us-east1"))

        _pipeline(store, provider, [account]).run()

        assert list(store.get_snapshot().applications) == ["app"]

    def test_lb_records_rebuilt_each_cycle(self, store, provider, account):
        """이전 주기의 요약이 남지 않음"""
        pipeline = _pipeline(store, provider, [account])
        pipeline.run()
        first = find_load_balancer(store.get_snapshot().load_balancers, "acct1", "us-east1", "lb-x")

        pipeline.run()
        second = find_load_balancer(store.get_snapshot().load_balancers, "acct1", "us-east1", "lb-x")

        assert first is not second
        assert len(second.server_groups) == 1
        assert store.get_snapshot().generation == 2


class TestAccountFailureIsolation:
    """계정 단위 실패 격리"""

    def _second_account(self, provider):
        provider.regions["acct2"] = ["us-east1"]
        provider.add_server_group(
            "acct2", ServerGroupDescriptor(name="web-v001", region="us-east1", load_balancer_names=["lb-w"])
        )
        provider.load_balancers["acct2"] = [LoadBalancerDescriptor(name="lb-w", region="us-east1")]
        return AccountConfig(name="acct2", project="proj-acct2", regions=["us-east1"])

    def test_failed_account_dropped(self, store, provider, account):
        acct2 = self._second_account(provider)
        error = ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "DescribeInstances")
        provider.fail("list_instances", "acct2", error)

        result = _pipeline(store, provider, [account, acct2]).run()

        assert result.published
        assert result.accounts_failed == ["acct2"]
        assert result.success_count == 1
        assert result.errors[0].account == "acct2"
        assert result.errors[0].severity == ErrorSeverity.CRITICAL
        assert isinstance(result.failures[0], AccountRefreshError)
        assert result.failures[0].account == "acct2"

        snapshot = store.get_snapshot()
        assert "web" not in snapshot.applications
        assert "acct2" not in snapshot.load_balancers
        assert "app" in snapshot.applications

    def test_all_accounts_failed_keeps_previous_snapshot(self, store, provider, account):
        pipeline = _pipeline(store, provider, [account])
        pipeline.run()
        before = store.get_snapshot()

        provider.fail("list_load_balancers", "acct1", RuntimeError("down"))
        result = pipeline.run()

        assert not result.published
        assert result.accounts_failed == ["acct1"]
        assert store.get_snapshot() is before
        assert not store.is_locked

    def test_load_account_wraps_failure(self, store, provider, account):
        """계정 단위 실패는 AccountRefreshError로 감싸짐"""
        provider.fail("list_instances", "acct1", RuntimeError("down"))
        pipeline = _pipeline(store, provider, [account])

        with pytest.raises(AccountRefreshError) as exc_info:
            pipeline.load_account(account)

        assert exc_info.value.account == "acct1"
        assert isinstance(exc_info.value.cause, BatchExecutionError)

    def test_lock_released_after_failure(self, store, provider, account):
        provider.fail("list_server_groups", "acct1", RuntimeError("down"))
        _pipeline(store, provider, [account]).run()
        assert not store.is_locked


class TestFlush:
    """설정된 계정이 없을 때 애플리케이션 맵 비우기"""

    def test_flush_on_empty_accounts(self, store, empty_provider):
        applications = {}
        ensure_cluster(applications, "acct1", "app", "app")
        with store.exclusive():
            store.publish(Candidate(applications=applications, images={"acct1": []}))

        result = _pipeline(store, empty_provider, []).run()

        assert result.flushed
        assert result.published
        snapshot = store.get_snapshot()
        assert dict(snapshot.applications) == {}
        assert "acct1" in snapshot.images
        assert empty_provider.calls == []

    def test_flush_noop_when_already_empty(self, store, empty_provider):
        result = _pipeline(store, empty_provider, []).run()

        assert result.flushed
        assert not result.published
        assert store.get_snapshot().generation == 0
