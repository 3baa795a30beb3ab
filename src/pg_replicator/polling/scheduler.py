"""
    폴링 스케줄러 - 주기적으로 쿼리를 실행해 insert/update/delete 를 감지하고 emit
"""
import threading
import time
import logging
from datetime import datetime
from typing import Optional

from ..database.config import get_config
from ..database.mongodb_manager import get_mongodb_manager
from ..database.postgres_client import get_postgresql_client
from ..exceptions import MissingPrimaryKeyError, ShutdownRequested
from ..replication.checkpoint import create_checkpoint_store
from ..replication.deletion import resolve_deleted_ids
from ..replication.detector import ChangeDetector, compute_row_hash, normalize_row
from ..replication.models import ChangeType, CycleResult, ReplicationState
from ..replication.nested import NestedQueryExpander
from ..replication.router import create_event_router
from ..replication.tag import format_tag

logger = logging.getLogger(__name__)

STATUS_RUNNING = "running"
STATUS_IDLE = "idle"


class ReplicatorPollingScheduler:
    def __init__(self, config, client, router, checkpoint_store):
        """폴링 스케줄러 초기화"""
        self.config = config
        self.client = client
        self.router = router
        self.checkpoint_store = checkpoint_store
        self.primary_key = config.REPLICATOR_PRIMARY_KEY
        self.poll_interval = config.REPLICATOR_INTERVAL
        self.detector = ChangeDetector(self.primary_key)
        self.state = ReplicationState()

        self.is_running = False
        self.status = STATUS_IDLE
        self.last_check = None
        self.last_result: Optional[CycleResult] = None
        self.polling_thread = None
        # 재시도 대기와 interval 대기가 같은 종료 신호를 사용
        self._stop_event = client.stop_event
        logger.info(
            f"replicator 워커 추가 :tag=>{config.REPLICATOR_TAG} :query=>{config.REPLICATOR_QUERY} "
            f":prepared_query=>{config.REPLICATOR_PREPARED_QUERY} :interval=>{self.poll_interval}sec "
            f":enable_delete=>{config.REPLICATOR_ENABLE_DELETE}"
        )

    def start(self) -> None:
        """checkpoint 복원 후 폴링 스레드 시작"""
        if self.is_running:
            logger.warning("폴링 스케줄러가 이미 실행중입니다.")
            return
        if self.polling_thread and self.polling_thread.is_alive():
            # stop() 후에도 이전 cycle 이 끝나지 않음, 두 cycle 이 state 를 공유하면 안 됨
            logger.warning("이전 폴링 스레드가 아직 종료되지 않아 시작하지 않습니다.")
            return
        self.state = self.checkpoint_store.load()
        self.is_running = True
        self._stop_event.clear()
        self.polling_thread = threading.Thread(target=self._polling_loop, name="pg_replicator_runner", daemon=True)
        self.polling_thread.start()
        logger.info("폴링 스케줄러 시작 완료")

    def stop(self) -> None:
        """폴링 중지 (실행 중인 쿼리는 강제로 끊지 않음)"""
        if not self.is_running:
            return
        self.is_running = False
        self._stop_event.set()

        if self.polling_thread and self.polling_thread.is_alive():
            self.polling_thread.join(timeout=5)
            if self.polling_thread.is_alive():
                logger.warning("폴링 스레드가 5초 안에 종료되지 않았습니다 - 실행 중인 cycle 이 끝나면 종료됩니다")

    def get_status(self) -> dict:
        """폴링 상태 조회"""
        return {
            "is_running": self.is_running,
            "state": self.status,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "poll_interval": self.poll_interval,
            "table_size": len(self.state.table_hash),
            "checkpoint_enabled": self.checkpoint_store.enabled,
            "last_result": self.last_result.to_dict() if self.last_result else None
        }

    def _polling_loop(self) -> None:
        """종료 신호 전까지 poll -> sleep 반복, poll 1회 실패가 루프를 멈추지 않음"""
        while not self._stop_event.is_set():
            self.status = STATUS_RUNNING
            self.last_check = datetime.now()
            try:
                self.last_result = self.run_cycle()
            except ShutdownRequested:
                logger.info("종료 신호 수신 - 폴링 루프 종료")
                break
            except Exception as e:
                logger.error(f"폴링 루프 오류: {e}", exc_info=True)
                self.last_result = CycleResult(error=str(e))
            finally:
                self.status = STATUS_IDLE
            self._stop_event.wait(self.poll_interval)
        self.is_running = False

    def run_cycle(self) -> CycleResult:
        """
        poll 1회 실행

        1. 메인 / nested 용 connection 2개 확보
        2. prepared query 실행 (세미콜론 단위, 결과 무시)
        3. 메인 쿼리 결과를 row 단위로 hash -> 정규화 -> nested 확장 -> 변경 분류
        4. connection 종료 후 삭제 감지
        5. 이벤트가 1건 이상이면 checkpoint 저장

        table_hash / ids 는 작업용 사본에서 갱신하고 cycle 이 끝난 뒤에만 self.state 에 반영
        (중간에 예외가 나면 다음 poll 에서 같은 변경을 다시 감지)
        """
        result = CycleResult()
        start_time = time.monotonic()
        previous_ids = list(self.state.ids)
        table_hash = dict(self.state.table_hash)
        current_ids = []
        connection = None
        rows = []
        expander = NestedQueryExpander(self.client)
        try:
            connection = self.client.get_connection()
            expander.connection = self.client.get_connection()
            self._run_prepared_statements(expander)

            rows, connection = self.client.query(self.config.REPLICATOR_QUERY, connection, stream=True)
            for row in rows:
                # hash 는 정규화 / nested 확장 이전의 원본 값으로 계산
                digest = compute_row_hash(row)
                record = expander.expand(normalize_row(row))
                try:
                    change = self.detector.detect(table_hash, record, digest)
                except MissingPrimaryKeyError:
                    logger.error(
                        f"primary_key 값이 없습니다. :tag=>{self.config.REPLICATOR_TAG} :primary_key=>{self.primary_key}"
                    )
                    result.aborted = True
                    break
                current_ids.append(record[self.primary_key])
                if change is not None:
                    self._emit(change.type, change.record)
                    if change.type is ChangeType.INSERT:
                        result.inserted += 1
                    else:
                        result.updated += 1
                result.rows_count += 1
        finally:
            close_rows = getattr(rows, "close", None)
            if close_rows is not None:
                close_rows()
            self.client.close_connection(connection)
            self.client.close_connection(expander.connection)

        ids = previous_ids
        if result.aborted:
            # 일부 row 만 본 상태로 삭제를 판단하면 나머지 row 가 모두 삭제로 잡힘
            logger.warning("row 처리 중단 - 이번 poll 의 삭제 감지를 건너뜁니다")
        else:
            ids = current_ids
            if self.config.REPLICATOR_ENABLE_DELETE:
                result.deleted = self._emit_deletions(table_hash, previous_ids, current_ids)

        # 중단된 poll 도 이미 emit 한 row 의 hash 는 반영
        self.state = ReplicationState(table_hash=table_hash, ids=ids)

        result.elapsed_time = time.monotonic() - start_time
        logger.debug(
            f"replicator 실행 완료 :tag=>{self.config.REPLICATOR_TAG} :rows_count=>{result.rows_count} "
            f":elapsed_time=>{result.elapsed_time:.2f} sec"
        )

        # 변경 이벤트를 emit 한 경우에만 checkpoint 저장
        if result.changes_emitted and self.checkpoint_store.enabled:
            result.persisted = self.checkpoint_store.persist(self.state)
        return result

    def _run_prepared_statements(self, expander: NestedQueryExpander) -> None:
        prepared_query = self.config.REPLICATOR_PREPARED_QUERY
        if not prepared_query:
            return
        for statement in prepared_query.split(";"):
            if statement.strip():
                expander.connection = self.client.execute(statement, expander.connection)

    def _emit_deletions(self, table_hash, previous_ids, current_ids) -> int:
        deleted_ids = resolve_deleted_ids(previous_ids, current_ids)
        for key in deleted_ids:
            table_hash.pop(key, None)
            self._emit(ChangeType.DELETE, {self.primary_key: key})
        return len(deleted_ids)

    def _emit(self, event: ChangeType, record: dict) -> None:
        tag = format_tag(self.config.REPLICATOR_TAG, event.value, self.primary_key)
        self.router.emit(tag, datetime.now(), record)

_polling_scheduler_instance = None

def get_polling_scheduler() -> ReplicatorPollingScheduler:
    """폴링 스케줄러 싱글톤 반환"""
    global _polling_scheduler_instance
    if _polling_scheduler_instance is None:
        config = get_config()
        mongodb_manager = get_mongodb_manager()
        _polling_scheduler_instance = ReplicatorPollingScheduler(
            config=config,
            client=get_postgresql_client(),
            router=create_event_router(mongodb_manager),
            checkpoint_store=create_checkpoint_store(mongodb_manager, config.REPLICATOR_CHECKPOINT_ID),
        )
    return _polling_scheduler_instance
