"""
topology/providers/clients.py - 계정/리전별 boto3 client 캐시

배치 요청은 같은 계정/서비스/리전 client를 반복해서 사용하므로,
한 번 만든 client를 (계정, 서비스, 리전) 키로 재사용합니다.
boto3 client는 스레드 간 공유가 가능합니다.

재시도/백오프는 botocore의 adaptive 모드에 맡기고, 연결 풀은
배치 동시 요청 수보다 작아지지 않도록 맞춥니다.

Example:
    clients = ClientCache(RetryPolicy.from_settings(), user_agent_extra="topology-cache")
    asg = clients.get(session, "prod", "autoscaling", "us-east-1")
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, cast

from botocore.config import Config

from topology.config import settings

if TYPE_CHECKING:
    from boto3 import Session

RetryMode = Literal["legacy", "standard", "adaptive"]


@dataclass(frozen=True)
class RetryPolicy:
    """프로바이더 client 재시도/타임아웃 정책"""

    max_attempts: int = 5
    mode: RetryMode = "adaptive"
    connect_timeout: int = 10
    read_timeout: int = 30
    max_pool_connections: int = 25

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        """Settings 기반 정책 (연결 풀 >= 배치 동시 요청 수)"""
        return cls(
            max_attempts=settings.PROVIDER_MAX_ATTEMPTS,
            read_timeout=settings.PROVIDER_READ_TIMEOUT,
            max_pool_connections=max(25, settings.BATCH_MAX_WORKERS * 2),
        )

    def to_config(self, user_agent_extra: str | None = None) -> Config:
        return Config(
            retries={"max_attempts": self.max_attempts, "mode": self.mode},  # pyright: ignore[reportArgumentType]
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            max_pool_connections=self.max_pool_connections,
            user_agent_extra=user_agent_extra,
        )


class ClientCache:
    """(계정, 서비스, 리전) 단위 boto3 client 캐시 (스레드 안전)"""

    def __init__(self, policy: RetryPolicy | None = None, user_agent_extra: str | None = None):
        self.policy = policy or RetryPolicy.from_settings()
        self._config = self.policy.to_config(user_agent_extra)
        self._clients: dict[tuple[str, str, str], Any] = {}
        self._lock = threading.Lock()

    def get(self, session: Session, account_name: str, service: str, region: str) -> Any:
        key = (account_name, service, region)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                # cast to Any to bypass boto3-stubs Literal type requirements
                client = session.client(  # pyright: ignore[reportCallIssue]
                    cast(Any, service),
                    region_name=region,
                    config=self._config,
                )
                self._clients[key] = client
            return client

    def clear(self, account_name: str | None = None) -> None:
        """캐시 비우기 (계정 지정 시 해당 계정만)"""
        with self._lock:
            if account_name is None:
                self._clients.clear()
            else:
                for key in [k for k in self._clients if k[0] == account_name]:
                    del self._clients[key]

    def __len__(self) -> int:
        return len(self._clients)
