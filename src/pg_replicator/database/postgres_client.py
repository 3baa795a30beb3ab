import psycopg2
import psycopg2.extras # RealDictCursor : 결과가 딕셔너리 {'id': 1, 'name': 'John'}로 나옴 -> 컬럼명으로 접근 가능
import itertools
import logging
import os
import threading
from datetime import datetime
from functools import partial
from typing import Any, Callable, Iterator, List, Tuple, Union

from google.cloud.sql.connector import Connector
from sqlalchemy import create_engine, text
from sqlalchemy.pool import NullPool
from tenacity import (
    RetryError,
    Retrying,
    retry_if_not_exception_type,
    stop_when_event_set,
    wait_exponential,
)

from .config import get_config, get_postgres_config
from ..exceptions import ShutdownRequested

logger = logging.getLogger(__name__)

Rows = Union[List[dict], Iterator[dict]]


class PostgreSQLClient:
    """
    PostgreSQL 연결/쿼리 실행 클라이언트

    - get_connection(): 연결될 때까지 재시도 (종료 신호 전까지)
    - query(): 연결 확인 후 쿼리 실행, 실패 시 재연결 + 재시도
    - 재시도 대기는 poll interval 부터 시작해 retry_max_delay 까지 지수적으로 증가
    """

    def __init__(self, postgres_config: dict, retry_interval: float = 60.0, retry_max_delay: float = 300.0):
        """PostgreSQL 클라이언트 초기화 (CloudSQL Proxy 지원)"""
        self.retry_interval = retry_interval
        self.retry_max_delay = max(retry_interval, retry_max_delay)
        self.fetch_size = postgres_config.get("fetch_size", 1000)
        # 재시도 대기 중 종료 신호 (스케줄러와 공유)
        self.stop_event = threading.Event()
        self._cursor_ids = itertools.count(1)

        if postgres_config.get("use_proxy", False):
            self._init_cloudsql_proxy(postgres_config)
        else:
            self.connection_params = {
                "host": postgres_config["host"],
                "port": postgres_config["port"],
                "user": postgres_config["user"],
                "password": postgres_config["password"],
                "dbname": postgres_config["database"],
                "client_encoding": postgres_config.get("encoding", "utf8"),
            }
            self.use_proxy = False

    def _init_cloudsql_proxy(self, config: dict):
        """Cloud SQL Proxy 연결 초기화"""
        try:
            # 서비스 계정 키 파일 설정
            credentials_path = config.get("credentials_path")
            if credentials_path and os.path.exists(credentials_path):
                os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = credentials_path
            self.connector = Connector()
            self.use_proxy = True

            def getconn():
                return self.connector.connect(
                    config["connection_name"],
                    "pg8000",
                    user=config["user"],
                    password=config["password"],
                    db=config["database"],
                    enable_iam_auth=config.get("use_iam", False)
                )
            # SQLAlchemy 엔진 생성
            self.engine = create_engine(
                "postgresql+pg8000://",
                creator=getconn,
                poolclass=NullPool, #Proxy가 연결 관리
            )
            logger.info("Cloud SQL Proxy 연결 초기화 완료")
        except Exception as e:
            logger.error(f"Cloud SQL Proxy 초기화 실패 : {e}")
            raise

    # ------------------------------------------------------------------
    # 재시도
    # ------------------------------------------------------------------

    def _sleep(self, seconds: float) -> None:
        """재시도 대기 (대기 중 종료 신호가 오면 즉시 중단)"""
        if self.stop_event.wait(seconds):
            raise ShutdownRequested("재시도 대기 중 종료 신호 수신")

    def _log_retry(self, action: str, retry_state) -> None:
        error = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"{action} 실패 (시도 {retry_state.attempt_number}회), {delay:.1f}초 후 재시도: {error}"
        )

    def _retry(self, action: str, operation: Callable[[], Any]) -> Any:
        """operation 성공 시까지 재시도 (ShutdownRequested 는 재시도하지 않음)"""
        try:
            for attempt in Retrying(
                wait=wait_exponential(
                    multiplier=self.retry_interval,
                    min=self.retry_interval,
                    max=self.retry_max_delay,
                ),
                stop=stop_when_event_set(self.stop_event),
                retry=retry_if_not_exception_type(ShutdownRequested),
                sleep=self._sleep,
                before_sleep=partial(self._log_retry, action),
            ):
                with attempt:
                    return operation()
        except RetryError as e:
            raise ShutdownRequested(f"{action} 중단: 종료 신호 수신") from e

    # ------------------------------------------------------------------
    # 연결
    # ------------------------------------------------------------------

    def _connect(self):
        """연결 1회 생성 (Proxy 또는 직접 연결)"""
        if self.use_proxy:
            return self.engine.connect()
        return psycopg2.connect(application_name="pg-replicator", **self.connection_params)

    def get_connection(self):
        """연결 가져오기 - 실패 시 경고 로그 후 대기, 종료 신호 전까지 무한 재시도"""
        return self._retry("PostgreSQL 연결", self._connect)

    def ping(self, connection) -> bool:
        """연결이 살아있는지 확인"""
        try:
            if self.use_proxy:
                if connection.closed or connection.invalidated:
                    return False
                connection.execute(text("SELECT 1"))
                return True
            if connection.closed:
                return False
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            return True
        except Exception as e:
            logger.debug(f"연결 상태 확인 실패: {e}")
            return False

    def close_connection(self, connection) -> None:
        """연결 종료 (실패해도 예외를 올리지 않음)"""
        if connection is None:
            return
        try:
            connection.close()
        except Exception as e:
            logger.warning(f"PostgreSQL 연결 종료 실패: {e}")

    def _ensure_connection(self, connection):
        if connection is not None and self.ping(connection):
            return connection
        if connection is not None:
            self.close_connection(connection)
        return self.get_connection()

    # ------------------------------------------------------------------
    # 쿼리 실행
    # ------------------------------------------------------------------

    def query(self, sql: str, connection=None, stream: bool = False) -> Tuple[Rows, Any]:
        """
        SQL 쿼리 실행 후 (rows, connection) 반환

        stream=True 이면 server-side cursor 로 fetch_size 씩 가져오는 iterator 반환
        (대용량 결과셋도 메모리 사용량이 일정)
        """
        current = connection

        def attempt():
            nonlocal current
            current = self._ensure_connection(current)
            return self._run_query(current, sql, stream), current

        return self._retry("쿼리 실행", attempt)

    def execute(self, sql: str, connection=None):
        """결과가 필요 없는 SQL 실행 (commit 포함), 사용한 connection 반환"""
        current = connection

        def attempt():
            nonlocal current
            current = self._ensure_connection(current)
            self._run_statement(current, sql)
            return current

        return self._retry("SQL 실행", attempt)

    def _run_query(self, connection, sql: str, stream: bool) -> Rows:
        if self.use_proxy:
            if stream:
                result = connection.execution_options(stream_results=True, max_row_buffer=self.fetch_size).execute(text(sql))
                return self._iter_rows(result.mappings())
            result = connection.execute(text(sql))
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings()]

        if stream:
            cursor = connection.cursor(
                name=f"pg_replicator_{next(self._cursor_ids)}",
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
            cursor.itersize = self.fetch_size
            try:
                cursor.execute(sql)
            except Exception:
                cursor.close()
                raise
            return self._iter_rows(cursor)

        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(sql)
            if cursor.description is None:
                return []
            return [dict(row) for row in cursor.fetchall()]

    def _run_statement(self, connection, sql: str) -> None:
        if self.use_proxy:
            connection.execute(text(sql))
        else:
            with connection.cursor() as cursor:
                cursor.execute(sql)
        connection.commit()

    @staticmethod
    def _iter_rows(cursor) -> Iterator[dict]:
        try:
            for row in cursor:
                yield dict(row)
        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # 상태 / 종료
    # ------------------------------------------------------------------

    def health_check(self) -> dict:
        """데이터베이스 연결 상태 확인 (재시도 없이 1회)"""
        conn = None
        try:
            conn = self._connect()
            is_connected = self.ping(conn)
            if self.use_proxy:
                connection_info = {"type": "cloudsql_proxy", "connection_name": "masked"}
            else:
                connection_info = {k: v for k, v in self.connection_params.items() if k != "password"}
            return {
                "is_connected": is_connected,
                "connection_info": connection_info,
                "checked_at": datetime.now().isoformat()
            }
        except Exception as e:
            logger.error(f"PostgreSQL 헬스체크 실패: {e}")
            return {
                "is_connected": False,
                "error": str(e),
                "checked_at": datetime.now().isoformat()
            }
        finally:
            self.close_connection(conn)

    def disconnect(self) -> None:
        """PostgreSQL 리소스 정리"""
        try:
            if self.use_proxy and hasattr(self, 'connector'):
                self.engine.dispose()
                self.connector.close()
                logger.info("CloudSQL Proxy 연결 종료 완료")
        except Exception as e:
            logger.error(f"PostgreSQL 연결 종료 실패: {e}")

_postgres_client_instance = None
def get_postgresql_client() -> PostgreSQLClient:
    """PostgreSQL 클라이언트 싱글톤 반환"""
    global _postgres_client_instance
    if _postgres_client_instance is None:
        config = get_config()
        _postgres_client_instance = PostgreSQLClient(
            get_postgres_config(config),
            retry_interval=config.REPLICATOR_INTERVAL,
            retry_max_delay=config.REPLICATOR_RETRY_MAX_DELAY,
        )
    return _postgres_client_instance
