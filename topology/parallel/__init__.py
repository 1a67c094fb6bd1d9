"""
topology/parallel - 배치 실행 및 에러 수집 모듈

계정 단위 프로바이더 호출을 배치로 묶어 실행하고,
실패를 일관되게 분류/수집합니다.

주요 구성 요소:
- BatchRequest: 프로바이더 호출 배치 (비어 있으면 실행하지 않음)
- ErrorCollector: 계정 단위 에러 수집기

Example:
    from topology.parallel import BatchRequest, execute_if_requests_are_queued

    batch = BatchRequest("images")
    for project in projects:
        batch.queue(provider.list_images, account, project, callback=images.extend)

    execute_if_requests_are_queued(batch)
"""

from .batch import BatchEntry, BatchRequest, execute_if_requests_are_queued
from .decorators import categorize_error, get_error_code
from .errors import CollectedError, ErrorCollector, ErrorSeverity
from .types import ErrorCategory

__all__: list[str] = [
    # Batch
    "BatchEntry",
    "BatchRequest",
    "execute_if_requests_are_queued",
    # Error handling
    "categorize_error",
    "get_error_code",
    "ErrorCollector",
    "ErrorSeverity",
    "CollectedError",
    # Types
    "ErrorCategory",
]
