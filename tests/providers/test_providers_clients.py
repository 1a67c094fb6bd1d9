"""
tests/providers/test_providers_clients.py - topology/providers/clients.py 테스트
"""

from unittest.mock import MagicMock

from topology.config import settings
from topology.providers.clients import ClientCache, RetryPolicy


class TestRetryPolicy:
    """RetryPolicy 테스트"""

    def test_to_config(self):
        """adaptive retry와 타임아웃이 적용된 config"""
        config = RetryPolicy().to_config("topology-cache")

        assert config.retries == {"max_attempts": 5, "mode": "adaptive"}
        assert config.connect_timeout == 10
        assert config.read_timeout == 30
        assert config.user_agent_extra == "topology-cache"

    def test_from_settings_pool_covers_batch_workers(self):
        policy = RetryPolicy.from_settings()

        assert policy.max_attempts == settings.PROVIDER_MAX_ATTEMPTS
        assert policy.max_pool_connections >= settings.BATCH_MAX_WORKERS


class TestClientCache:
    """ClientCache 테스트"""

    def test_client_reused_per_account_service_region(self):
        session = MagicMock()
        session.client.side_effect = lambda *args, **kwargs: MagicMock()
        cache = ClientCache(RetryPolicy(max_attempts=3))

        first = cache.get(session, "prod", "autoscaling", "us-east-1")
        again = cache.get(session, "prod", "autoscaling", "us-east-1")
        other_region = cache.get(session, "prod", "autoscaling", "us-west-2")

        assert first is again
        assert other_region is not first
        assert session.client.call_count == 2
        assert len(cache) == 2

        args, kwargs = session.client.call_args
        assert args[0] == "autoscaling"
        assert kwargs["region_name"] == "us-west-2"
        assert kwargs["config"].retries == {"max_attempts": 3, "mode": "adaptive"}

    def test_clear_account(self):
        session = MagicMock()
        session.client.side_effect = lambda *args, **kwargs: MagicMock()
        cache = ClientCache()
        cache.get(session, "prod", "ec2", "us-east-1")
        cache.get(session, "dev", "ec2", "us-east-1")

        cache.clear("prod")

        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0
