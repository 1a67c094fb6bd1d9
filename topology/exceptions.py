"""
topology/exceptions.py - 통합 예외 계층 구조

토폴로지 캐시 전체에서 사용되는 예외 클래스들을 정의합니다.
일관된 예외 처리와 에러 메시지를 제공합니다.

예외 계층 구조:
    TopologyError (베이스)
    ├── ProviderError (프로바이더 호출 관련)
    │   ├── ProviderCallError
    │   └── ResourceNotFoundError
    ├── AccountRefreshError (계정 단위 갱신 실패)
    ├── BatchExecutionError (배치 요청 실패)
    ├── SnapshotLockError (스냅샷 락 규약 위반)
    └── ConfigError (설정 관련)

Usage:
    from topology.exceptions import ProviderCallError, is_not_found

    try:
        group = provider.get_server_group(account, region, zone, name)
    except Exception as e:
        if is_not_found(e):
            group = None
        else:
            raise
"""

from typing import Any, Dict, List, Optional

# =============================================================================
# 베이스 예외
# =============================================================================


class TopologyError(Exception):
    """토폴로지 캐시 기본 예외 클래스

    모든 커스텀 예외의 베이스 클래스입니다.

    Attributes:
        message: 에러 메시지
        cause: 원인 예외 (체이닝용)
        details: 추가 상세 정보
    """

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """예외 정보를 딕셔너리로 반환"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "cause": str(self.cause) if self.cause else None,
            "details": self.details,
        }


# =============================================================================
# 프로바이더 호출 관련 예외
# =============================================================================


class ProviderError(TopologyError):
    """프로바이더 호출 관련 예외"""

    def __init__(
        self,
        account: str,
        message: str,
        cause: Optional[Exception] = None,
    ):
        full_message = f"프로바이더 오류 [{account}]: {message}"
        super().__init__(full_message, cause)
        self.account = account
        self.details["account"] = account


class ProviderCallError(ProviderError):
    """프로바이더 API 호출 실패 예외

    boto3/botocore의 ClientError를 래핑하여 일관된 예외 처리를 제공합니다.
    """

    def __init__(
        self,
        account: str,
        service: str,
        operation: str,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        message = f"{service}.{operation}"
        if error_code:
            message = f"{message} 실패 ({error_code})"
        if error_message:
            message = f"{message}: {error_message}"

        super().__init__(account=account, message=message, cause=cause)
        self.service = service
        self.operation = operation
        self.error_code = error_code
        self.error_message = error_message
        self.status_code = status_code
        self.details.update(
            {
                "service": service,
                "operation": operation,
                "error_code": error_code,
                "status_code": status_code,
            }
        )

    @classmethod
    def from_client_error(
        cls,
        account: str,
        service: str,
        operation: str,
        client_error: Exception,
    ) -> "ProviderCallError":
        """botocore.exceptions.ClientError로부터 생성

        Args:
            account: 계정 이름
            service: AWS 서비스 이름
            operation: API 작업 이름
            client_error: ClientError 예외

        Returns:
            ProviderCallError 인스턴스
        """
        error_code = None
        error_message = None
        status_code = None

        # ClientError 형식 파싱
        if hasattr(client_error, "response"):
            error_info = client_error.response.get("Error", {})
            error_code = error_info.get("Code")
            error_message = error_info.get("Message")
            status_code = client_error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

        return cls(
            account=account,
            service=service,
            operation=operation,
            error_code=error_code,
            error_message=error_message,
            status_code=status_code,
            cause=client_error,
        )


class ResourceNotFoundError(ProviderError):
    """리소스를 찾을 수 없음 (HTTP 404 상당)

    증분 갱신 경로에서는 에러가 아니라 리소스 삭제의 근거로 취급됩니다.
    """

    def __init__(
        self,
        account: str,
        resource_type: str,
        name: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(account=account, message=f"{resource_type} '{name}' 없음", cause=cause)
        self.resource_type = resource_type
        self.name = name
        self.details.update({"resource_type": resource_type, "name": name})


# =============================================================================
# 캐시 갱신 관련 예외
# =============================================================================


class AccountRefreshError(TopologyError):
    """계정 단위 갱신 실패

    전체 갱신 중 한 계정의 처리가 실패했을 때 사용합니다.
    해당 계정의 후보 데이터는 이번 주기에서 제외됩니다.
    """

    def __init__(
        self,
        account: str,
        message: str,
        cause: Optional[Exception] = None,
    ):
        full_message = f"계정 갱신 실패 [{account}]: {message}"
        super().__init__(full_message, cause)
        self.account = account
        self.details["account"] = account


class BatchExecutionError(TopologyError):
    """배치 요청 중 처리되지 않은 실패가 있음"""

    def __init__(
        self,
        label: str,
        failures: List[Any],
    ):
        message = f"배치 실행 실패 [{label}]: {len(failures)}건"
        cause = None
        if failures:
            cause = getattr(failures[0], "error", None)
        super().__init__(message, cause)
        self.label = label
        self.failures = list(failures)
        self.details.update({"label": label, "failure_count": len(failures)})


class SnapshotLockError(TopologyError):
    """스냅샷 락을 보유하지 않은 상태에서 publish 시도"""

    def __init__(self, message: str = "스냅샷 락을 보유하지 않은 상태에서 publish 호출"):
        super().__init__(message)


# =============================================================================
# 설정 관련 예외
# =============================================================================


class ConfigError(TopologyError):
    """설정 관련 예외"""

    def __init__(
        self,
        key: str,
        message: str,
        cause: Optional[Exception] = None,
    ):
        full_message = f"설정 오류 [{key}]: {message}"
        super().__init__(full_message, cause)
        self.config_key = key
        self.details["config_key"] = key


# =============================================================================
# 예외 유틸리티 함수
# =============================================================================

_ACCESS_DENIED_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedAccess",
    "UnauthorizedOperation",
}

_THROTTLING_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "RateExceeded",
}

_NOT_FOUND_CODES = {
    "ResourceNotFoundException",
    "NotFoundException",
    "NotFound",
    "ValidationError.NotFound",
    "LoadBalancerNotFound",
    "InvalidInstanceID.NotFound",
    "InvalidAMIID.NotFound",
}


def _client_error_code(error: Exception) -> str:
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        return response.get("Error", {}).get("Code", "")
    return ""


def _client_status_code(error: Exception) -> Optional[int]:
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        return response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return None


def is_access_denied(error: Exception) -> bool:
    """액세스 거부 오류인지 확인

    Args:
        error: 확인할 예외

    Returns:
        액세스 거부 오류이면 True
    """
    if isinstance(error, ProviderCallError):
        return error.error_code in _ACCESS_DENIED_CODES or error.status_code == 403

    return _client_error_code(error) in _ACCESS_DENIED_CODES


def is_throttling(error: Exception) -> bool:
    """스로틀링 오류인지 확인

    Args:
        error: 확인할 예외

    Returns:
        스로틀링 오류이면 True
    """
    if isinstance(error, ProviderCallError):
        return error.error_code in _THROTTLING_CODES or error.status_code == 429

    return _client_error_code(error) in _THROTTLING_CODES


def is_not_found(error: Exception) -> bool:
    """리소스를 찾을 수 없는 오류인지 확인

    ResourceNotFoundError, 404 응답, NotFound 계열 에러 코드를 모두 인정합니다.

    Args:
        error: 확인할 예외

    Returns:
        리소스 없음 오류이면 True
    """
    if isinstance(error, ResourceNotFoundError):
        return True

    if isinstance(error, ProviderCallError):
        return error.error_code in _NOT_FOUND_CODES or error.status_code == 404

    if _client_error_code(error) in _NOT_FOUND_CODES:
        return True

    return _client_status_code(error) == 404
