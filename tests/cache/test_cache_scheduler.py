"""
tests/cache/test_cache_scheduler.py - topology/cache/scheduler.py 테스트
"""

import threading

import pytest

from topology.cache.scheduler import ReloadScheduler


class TestReloadScheduler:
    """주기 갱신 스케줄러"""

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            ReloadScheduler(lambda: None, interval=0)

    def test_run_once_returns_result(self):
        scheduler = ReloadScheduler(lambda: "ok", interval=1)

        assert scheduler.run_once() == "ok"
        assert scheduler.runs == 1
        assert scheduler.failures == 0

    def test_run_once_swallows_errors(self):
        """실패한 회차는 기록만 하고 예외를 전파하지 않음"""

        def boom():
            raise RuntimeError("reload failed")

        scheduler = ReloadScheduler(boom, interval=1)

        assert scheduler.run_once() is None
        assert scheduler.failures == 1

    def test_start_and_stop(self):
        ran = threading.Event()
        scheduler = ReloadScheduler(ran.set, interval=60, initial_delay=0)

        scheduler.start()
        assert ran.wait(timeout=5)
        assert scheduler.is_running

        scheduler.stop()
        assert not scheduler.is_running

    def test_keeps_running_after_failure(self):
        calls = []
        done = threading.Event()

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first pass fails")
            done.set()

        scheduler = ReloadScheduler(flaky, interval=0.01)
        scheduler.start()
        try:
            assert done.wait(timeout=5)
        finally:
            scheduler.stop()

        assert scheduler.failures == 1
        assert len(calls) >= 2

    def test_stop_during_initial_delay(self):
        scheduler = ReloadScheduler(lambda: None, interval=60, initial_delay=60)
        scheduler.start()
        scheduler.stop()

        assert scheduler.runs == 0
        assert not scheduler.is_running

    def test_stop_timeout_keeps_running_loop(self):
        """정지 대기 시간이 지나도 진행 중인 루프를 잃지 않고, 재시작 시 루프는 하나"""
        entered = threading.Event()
        release = threading.Event()

        def slow_reload():
            entered.set()
            release.wait(timeout=5)

        scheduler = ReloadScheduler(slow_reload, interval=60, initial_delay=0, name="slow-reload")
        scheduler.start()
        assert entered.wait(timeout=5)

        scheduler.stop(timeout=0.05)
        assert scheduler.is_running

        release.set()
        scheduler.start()
        try:
            loops = [t for t in threading.enumerate() if t.name == "slow-reload" and t.is_alive()]
            assert len(loops) == 1
        finally:
            scheduler.stop()
