"""
topology/parallel/types.py - 병렬/배치 실행 공통 타입

배치 요청 실패를 분류하기 위한 에러 카테고리를 정의합니다.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(Enum):
    """에러 카테고리 분류"""

    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    THROTTLING = "throttling"
    TIMEOUT = "timeout"
    EXPIRED_TOKEN = "expired_token"
    NETWORK = "network"
    INVALID_REQUEST = "invalid_request"
    SERVICE_ERROR = "service_error"
    UNKNOWN = "unknown"
