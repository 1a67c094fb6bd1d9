"""
topology/parallel/batch.py - 배치 요청 코디네이터

여러 개의 독립적인 프로바이더 호출을 하나의 배치로 묶어 실행합니다.
요청은 스레드 풀에서 병렬로 실행되고, 콜백은 호출 스레드에서
큐에 들어간 순서대로 순차 실행됩니다.

배치 간 순서(예: 리전 → 서버 그룹 → 인스턴스 그룹)는 호출자가
execute 호출 순서로 명시적으로 보장합니다. 콜백 안에서 다른 배치에
요청을 추가하는 방식으로 다음 단계를 준비합니다.

주요 구성 요소:
- BatchEntry: 큐에 들어간 단일 요청과 그 결과
- BatchRequest: 요청 묶음 (queue / execute / execute_if_non_empty)
- execute_if_requests_are_queued: 비어 있지 않을 때만 실행하는 헬퍼

Example:
    regions_batch = BatchRequest("regions")
    instances_batch = BatchRequest("instances")

    for region in provider.list_regions(account):
        regions_batch.queue(
            provider.list_server_groups, account, region,
            callback=lambda groups: ...,
        )

    execute_if_requests_are_queued(regions_batch)
    execute_if_requests_are_queued(instances_batch)
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from topology.exceptions import BatchExecutionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _clear_exception_chain(e: BaseException) -> None:
    """chained exception의 traceback 메모리 누수 방지"""
    if e.__context__ is not None:
        e.__context__.__traceback__ = None
    if e.__cause__ is not None:
        e.__cause__.__traceback__ = None


@dataclass
class BatchEntry(Generic[T]):
    """큐에 들어간 단일 요청

    Attributes:
        call: 실행할 프로바이더 호출
        args: 위치 인자
        kwargs: 키워드 인자
        callback: 성공 시 결과를 전달받는 함수
        on_failure: 실패 시 예외를 전달받는 함수 (없으면 배치 실패로 집계)
        label: 로깅용 요청 이름
        result: 실행 결과
        error: 실행 중 발생한 예외
        duration_ms: 실행 시간
    """

    call: Callable[..., T]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    callback: Callable[[T], Any] | None = None
    on_failure: Callable[[Exception], Any] | None = None
    label: str = ""
    result: T | None = None
    error: Exception | None = None
    duration_ms: float = 0.0
    done: bool = False

    @property
    def success(self) -> bool:
        return self.done and self.error is None

    def run(self) -> None:
        """요청 실행 (워커 스레드 내에서 호출)"""
        start_time = time.monotonic()
        try:
            self.result = self.call(*self.args, **self.kwargs)
        except Exception as e:
            _clear_exception_chain(e)
            self.error = e
        finally:
            self.duration_ms = (time.monotonic() - start_time) * 1000
            self.done = True


class BatchRequest:
    """프로바이더 호출 배치

    Example:
        batch = BatchRequest("images", max_workers=5)
        batch.queue(provider.list_images, account, project, callback=images.extend)
        batch.execute_if_non_empty()
    """

    def __init__(self, label: str = "batch", max_workers: int = 10):
        """초기화

        Args:
            label: 로깅/에러 보고용 배치 이름
            max_workers: 배치 내 요청 동시 실행 스레드 수
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.label = label
        self.max_workers = max_workers
        self._entries: list[BatchEntry[Any]] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def size(self) -> int:
        """큐에 쌓인 요청 수"""
        return len(self)

    def queue(
        self,
        call: Callable[..., T],
        *args: Any,
        callback: Callable[[T], Any] | None = None,
        on_failure: Callable[[Exception], Any] | None = None,
        label: str = "",
        **kwargs: Any,
    ) -> BatchEntry[T]:
        """요청을 배치에 추가

        Args:
            call: 프로바이더 호출
            *args: 호출 위치 인자
            callback: 성공 시 결과를 받는 함수
            on_failure: 실패 시 예외를 받는 함수
            label: 로깅용 요청 이름 (기본: 함수 이름)
            **kwargs: 호출 키워드 인자

        Returns:
            BatchEntry (execute 이후 result/error 확인 가능)
        """
        entry: BatchEntry[T] = BatchEntry(
            call=call,
            args=args,
            kwargs=kwargs,
            callback=callback,
            on_failure=on_failure,
            label=label or getattr(call, "__name__", "request"),
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def execute(self) -> list[BatchEntry[Any]]:
        """큐에 쌓인 요청을 모두 실행

        요청은 병렬로 실행되지만 콜백은 큐 순서대로 현재 스레드에서 실행됩니다.
        콜백 실행 중 이 배치에 추가된 요청은 다음 execute에서 실행됩니다.

        Returns:
            실행된 BatchEntry 목록

        Raises:
            BatchExecutionError: on_failure 없이 실패한 요청(또는 콜백)이 있는 경우
        """
        with self._lock:
            entries = self._entries
            self._entries = []

        if not entries:
            return []

        logger.debug(f"배치 실행 시작 [{self.label}]: {len(entries)}개 요청")
        start_time = time.monotonic()

        if self.max_workers == 1 or len(entries) == 1:
            for entry in entries:
                entry.run()
        else:
            workers = min(self.max_workers, len(entries))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"batch-{self.label}") as executor:
                wait([executor.submit(entry.run) for entry in entries])

        unhandled: list[BatchEntry[Any]] = []

        for entry in entries:
            if entry.error is None:
                if entry.callback is None:
                    continue
                try:
                    entry.callback(entry.result)
                except Exception as e:
                    logger.error(f"배치 콜백 실패 [{self.label}/{entry.label}]: {e}")
                    entry.error = e
                    unhandled.append(entry)
            elif entry.on_failure is not None:
                entry.on_failure(entry.error)
            else:
                logger.warning(f"배치 요청 실패 [{self.label}/{entry.label}]: {entry.error}")
                unhandled.append(entry)

        total_time = (time.monotonic() - start_time) * 1000
        logger.debug(f"배치 실행 완료 [{self.label}]: {len(entries)}개 요청, 실패 {len(unhandled)}, {total_time:.0f}ms")

        if unhandled:
            raise BatchExecutionError(self.label, unhandled)

        return entries

    def execute_if_non_empty(self) -> list[BatchEntry[Any]]:
        """요청이 하나 이상 있을 때만 실행 (없으면 네트워크 왕복 없이 반환)"""
        if not len(self):
            return []
        return self.execute()


def execute_if_requests_are_queued(batch: BatchRequest) -> list[BatchEntry[Any]]:
    """배치가 비어 있지 않을 때만 실행"""
    return batch.execute_if_non_empty()
