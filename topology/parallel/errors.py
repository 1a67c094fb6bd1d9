"""
topology/parallel/errors.py - 에러 수집 및 관리

캐시 갱신 중 계정 단위로 발생하는 에러를 일관되게 수집하고 관리하는 유틸리티입니다.

주요 구성 요소:
- ErrorSeverity: 에러 심각도 분류
- CollectedError: 수집된 에러 상세 정보
- ErrorCollector: 스레드 세이프 에러 수집기

Example:
    collector = ErrorCollector("reload")

    try:
        candidate = build_account(account)
    except Exception as e:
        collector.collect(e, account.name, operation="build_account")

    if collector.has_errors:
        print(collector.get_summary())
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .decorators import categorize_error, get_error_code
from .types import ErrorCategory

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """에러 심각도 분류

    수집된 에러의 심각도를 나타내며, 로깅 레벨과 보고 여부를 결정합니다.
    """

    CRITICAL = "critical"  # 계정 전체 실패 - 반드시 보고
    WARNING = "warning"  # 부분 실패 - 보고하되 계속 진행
    INFO = "info"  # 정보성 - 로그만 남김 (권한 없음 등)
    DEBUG = "debug"  # 디버그 - 개발 시에만 필요


@dataclass
class CollectedError:
    """수집된 에러 상세 정보

    Attributes:
        timestamp: 에러 발생 시각
        account: 계정 이름
        region: 리전 (계정 단위 에러는 빈 문자열)
        source: 수집기 이름 (예: "reload", "update")
        operation: 작업 이름 (예: "list_server_groups")
        error_code: 에러 코드 (예: "AccessDenied")
        error_message: 에러 메시지
        severity: 에러 심각도
        category: 에러 카테고리 (ErrorCategory)
    """

    timestamp: datetime
    account: str
    region: str
    source: str
    operation: str
    error_code: str
    error_message: str
    severity: ErrorSeverity
    category: ErrorCategory

    def __str__(self) -> str:
        loc = f"{self.account}/{self.region}" if self.region else self.account
        return f"[{self.severity.value.upper()}] {loc} - {self.source}.{self.operation}: {self.error_code}"

    def to_dict(self) -> dict[str, str]:
        """딕셔너리로 변환 (로깅/직렬화용)"""
        return {
            "timestamp": self.timestamp.isoformat(),
            "account": self.account,
            "region": self.region,
            "source": self.source,
            "operation": self.operation,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "severity": self.severity.value,
            "category": self.category.value,
        }


class ErrorCollector:
    """스레드 세이프 에러 수집기

    여러 계정/배치에서 발생하는 에러를 안전하게 수집하고
    심각도별로 분류하여 요약 보고를 제공합니다.
    """

    def __init__(self, source: str):
        """초기화

        Args:
            source: 수집기 이름 (수집된 에러에 공통 적용)
        """
        self.source = source
        self._errors: list[CollectedError] = []
        self._lock = threading.Lock()

    def collect(
        self,
        error: Exception,
        account: str,
        region: str = "",
        operation: str = "",
        severity: ErrorSeverity = ErrorSeverity.WARNING,
    ) -> CollectedError:
        """예외를 수집하고 로깅

        에러에서 카테고리를 자동 분류하며, ACCESS_DENIED는
        심각도를 INFO로 자동 다운그레이드합니다.

        Args:
            error: 발생한 예외
            account: 계정 이름
            region: 리전
            operation: 작업 이름
            severity: 에러 심각도 (기본: WARNING)

        Returns:
            수집된 CollectedError
        """
        category = categorize_error(error)

        # 권한 없음은 INFO로 다운그레이드
        if category == ErrorCategory.ACCESS_DENIED:
            severity = ErrorSeverity.INFO

        collected = CollectedError(
            timestamp=datetime.now(),
            account=account,
            region=region,
            source=self.source,
            operation=operation,
            error_code=get_error_code(error),
            error_message=str(error),
            severity=severity,
            category=category,
        )

        with self._lock:
            self._errors.append(collected)

        log_msg = f"{collected} - {collected.error_message}"
        if severity == ErrorSeverity.CRITICAL:
            logger.error(log_msg)
        elif severity == ErrorSeverity.WARNING:
            logger.warning(log_msg)
        elif severity == ErrorSeverity.INFO:
            logger.info(log_msg)
        else:
            logger.debug(log_msg)

        return collected

    @property
    def errors(self) -> list[CollectedError]:
        """수집된 모든 에러의 복사본 반환"""
        with self._lock:
            return list(self._errors)

    @property
    def has_errors(self) -> bool:
        """에러 존재 여부"""
        with self._lock:
            return len(self._errors) > 0

    @property
    def critical_errors(self) -> list[CollectedError]:
        """CRITICAL 심각도 에러만 반환"""
        with self._lock:
            return [e for e in self._errors if e.severity == ErrorSeverity.CRITICAL]

    def get_summary(self) -> str:
        """심각도별 에러 건수를 포함한 요약 문자열 반환

        Returns:
            포맷팅된 요약 문자열 (예: "에러 3건 (critical: 1건, warning: 2건)")
        """
        with self._lock:
            if not self._errors:
                return "에러 없음"

            by_severity: dict[str, int] = {}
            for e in self._errors:
                by_severity[e.severity.value] = by_severity.get(e.severity.value, 0) + 1

            parts = [f"{k}: {v}건" for k, v in sorted(by_severity.items())]
            return f"에러 {len(self._errors)}건 ({', '.join(parts)})"

    def get_by_account(self) -> dict[str, list[CollectedError]]:
        """계정별로 에러를 그룹핑하여 반환"""
        with self._lock:
            result: dict[str, list[CollectedError]] = {}
            for e in self._errors:
                result.setdefault(e.account, []).append(e)
            return result

    def clear(self) -> None:
        """수집된 에러 전체 초기화"""
        with self._lock:
            self._errors.clear()
