"""
topology/config.py - 중앙 설정 관리

런타임 설정(Settings), 환경변수 헬퍼, YAML 계정 설정 로더를 제공합니다.

환경변수:
    TOPOLOGY_POLLING_INTERVAL_SECONDS   전체 갱신 주기 (기본 60초)
    TOPOLOGY_INITIAL_DELAY_SECONDS      시작 후 첫 갱신까지 대기 (기본 10초)
    TOPOLOGY_BATCH_MAX_WORKERS          배치 내 동시 요청 수 (기본 10)
    TOPOLOGY_UPDATE_MAX_WORKERS         증분 갱신 워커 수 (기본 4)
    TOPOLOGY_PROVIDER_MAX_ATTEMPTS      프로바이더 호출 최대 시도 횟수 (기본 5)
    TOPOLOGY_PROVIDER_READ_TIMEOUT      프로바이더 호출 읽기 타임아웃 (기본 30초)

설정 파일 예시 (YAML):
    polling_interval_seconds: 60
    base_image_projects:
      - "099720109477"
    accounts:
      - name: prod
        project: "123456789012"
        profile_name: prod-readonly
        regions: [us-east-1, us-west-2]
        image_projects: ["210987654321"]

Usage:
    from topology.config import load_config, settings

    config = load_config("topology.yaml")
    interval = config.polling_interval_seconds or settings.POLLING_INTERVAL_SECONDS
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from topology.exceptions import ConfigError


def get_env_int(name: str, default: int) -> int:
    """정수 환경변수 읽기 (파싱 실패 시 기본값)"""
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_env_bool(name: str, default: bool = False) -> bool:
    """불리언 환경변수 읽기 ("1", "true", "yes", "on"이면 True)"""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """런타임 설정 (불변)"""

    POLLING_INTERVAL_SECONDS: int = field(
        default_factory=lambda: get_env_int("TOPOLOGY_POLLING_INTERVAL_SECONDS", 60)
    )
    INITIAL_DELAY_SECONDS: int = field(default_factory=lambda: get_env_int("TOPOLOGY_INITIAL_DELAY_SECONDS", 10))
    BATCH_MAX_WORKERS: int = field(default_factory=lambda: get_env_int("TOPOLOGY_BATCH_MAX_WORKERS", 10))
    UPDATE_MAX_WORKERS: int = field(default_factory=lambda: get_env_int("TOPOLOGY_UPDATE_MAX_WORKERS", 4))
    PROVIDER_MAX_ATTEMPTS: int = field(default_factory=lambda: get_env_int("TOPOLOGY_PROVIDER_MAX_ATTEMPTS", 5))
    PROVIDER_READ_TIMEOUT: int = field(default_factory=lambda: get_env_int("TOPOLOGY_PROVIDER_READ_TIMEOUT", 30))
    DEFAULT_BUILD_HOST: str = field(
        default_factory=lambda: os.environ.get("TOPOLOGY_DEFAULT_BUILD_HOST", "http://builds.netflix.com/")
    )
    APPLICATION_NAME: str = "topology-cache"
    VERBOSE: bool = field(default_factory=lambda: get_env_bool("TOPOLOGY_VERBOSE"))


settings = Settings()


@dataclass
class AccountConfig:
    """갱신 대상 계정

    Attributes:
        name: 계정 이름 (스냅샷 키)
        project: 프로바이더 프로젝트/소유자 ID
        regions: 대상 리전 (비어 있으면 프로바이더에서 조회)
        image_projects: 계정 전용 이미지 프로젝트 목록
        profile_name: 인증 프로파일 이름
    """

    name: str
    project: str
    regions: list[str] = field(default_factory=list)
    image_projects: list[str] = field(default_factory=list)
    profile_name: str | None = None


@dataclass
class TopologyConfig:
    """토폴로지 캐시 설정"""

    accounts: list[AccountConfig] = field(default_factory=list)
    base_image_projects: list[str] = field(default_factory=list)
    polling_interval_seconds: int | None = None

    def get_account(self, name: str) -> AccountConfig | None:
        for account in self.accounts:
            if account.name == name:
                return account
        return None


def _as_str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(key, "리스트여야 합니다")
    return [str(v) for v in value]


def parse_config(data: dict[str, Any] | None) -> TopologyConfig:
    """딕셔너리를 TopologyConfig로 변환

    Args:
        data: yaml.safe_load 결과

    Returns:
        TopologyConfig

    Raises:
        ConfigError: 필수 필드 누락 또는 형식 오류
    """
    if data is None:
        return TopologyConfig()
    if not isinstance(data, dict):
        raise ConfigError("root", "매핑 형식이어야 합니다")

    accounts: list[AccountConfig] = []
    seen: set[str] = set()
    for index, raw in enumerate(data.get("accounts") or []):
        key = f"accounts[{index}]"
        if not isinstance(raw, dict):
            raise ConfigError(key, "매핑 형식이어야 합니다")
        name = raw.get("name")
        if not name:
            raise ConfigError(f"{key}.name", "필수 값입니다")
        if name in seen:
            raise ConfigError(f"{key}.name", f"중복된 계정 이름 '{name}'")
        seen.add(name)

        accounts.append(
            AccountConfig(
                name=str(name),
                project=str(raw.get("project") or name),
                regions=_as_str_list(raw.get("regions"), f"{key}.regions"),
                image_projects=_as_str_list(raw.get("image_projects"), f"{key}.image_projects"),
                profile_name=raw.get("profile_name"),
            )
        )

    interval = data.get("polling_interval_seconds")
    if interval is not None:
        try:
            interval = int(interval)
        except (TypeError, ValueError) as e:
            raise ConfigError("polling_interval_seconds", "정수여야 합니다", cause=e) from e
        if interval < 1:
            raise ConfigError("polling_interval_seconds", "1 이상이어야 합니다")

    return TopologyConfig(
        accounts=accounts,
        base_image_projects=_as_str_list(data.get("base_image_projects"), "base_image_projects"),
        polling_interval_seconds=interval,
    )


def load_config(path: str | Path) -> TopologyConfig:
    """YAML 설정 파일 로드

    Args:
        path: 설정 파일 경로

    Returns:
        TopologyConfig

    Raises:
        ConfigError: 파일이 없거나 YAML 파싱 실패
    """
    config_file = Path(path)
    if not config_file.exists():
        raise ConfigError(str(config_file), "설정 파일이 없습니다")

    try:
        with config_file.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(str(config_file), "YAML 파싱 실패", cause=e) from e

    return parse_config(data)
