"""
topology/parallel/decorators.py - 프로바이더 에러 분류 유틸리티

프로바이더 호출에서 발생한 예외를 ErrorCategory로 분류하고
에러 코드를 추출합니다. 재시도 자체는 프로바이더 클라이언트
(botocore adaptive retry)의 책임입니다.

주요 구성 요소:
- categorize_error: 예외를 ErrorCategory로 분류
- get_error_code: 예외에서 에러 코드 추출
"""

import logging

from topology.exceptions import ProviderCallError, is_access_denied, is_not_found, is_throttling

from .types import ErrorCategory

logger = logging.getLogger(__name__)


def categorize_error(error: Exception) -> ErrorCategory:
    """예외 객체를 분석하여 ErrorCategory로 분류

    ClientError의 경우 response에서 에러 코드를 추출하고,
    네트워크/타임아웃 에러는 타입으로 분류합니다.

    Args:
        error: 분류할 예외

    Returns:
        에러 카테고리
    """
    if is_throttling(error):
        return ErrorCategory.THROTTLING
    if is_access_denied(error):
        return ErrorCategory.ACCESS_DENIED
    if is_not_found(error):
        return ErrorCategory.NOT_FOUND

    error_code = get_error_code(error)

    if "Timeout" in error_code:
        return ErrorCategory.TIMEOUT

    if error_code in ("ExpiredToken", "ExpiredTokenException"):
        return ErrorCategory.EXPIRED_TOKEN

    # TimeoutError는 OSError의 하위 클래스이므로 먼저 확인
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT

    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK

    return ErrorCategory.UNKNOWN


def get_error_code(error: Exception) -> str:
    """예외 객체에서 에러 코드 문자열 추출

    ClientError의 경우 response에서 Code를 추출하고,
    그 외에는 예외 클래스명을 반환합니다.

    Args:
        error: 예외 객체

    Returns:
        에러 코드 문자열
    """
    if isinstance(error, ProviderCallError) and error.error_code:
        return error.error_code

    response = getattr(error, "response", None)
    if isinstance(response, dict):
        code: str = response.get("Error", {}).get("Code", "Unknown")
        return code
    return error.__class__.__name__
