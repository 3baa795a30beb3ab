"""
공용 fixture - 가짜 PostgreSQL 클라이언트 / 이벤트 라우터 / checkpoint 저장소
"""

import threading

import pytest

from pg_replicator.database.config import Config
from pg_replicator.replication.checkpoint import CheckpointStore


BASE_ENV = {
    "REPLICATOR_QUERY": "SELECT * FROM users",
    "REPLICATOR_TAG": "replicator.test.${event}.${primary_key}",
    "REPLICATOR_INTERVAL": "0",
    "REPLICATOR_RETRY_MAX_DELAY": "0",
}


def make_config(**overrides) -> Config:
    env = dict(BASE_ENV)
    env.update({k: v for k, v in overrides.items() if v is not None})
    config = Config(environ=env)
    config.validate()
    return config


class FakeConnection:
    _ids = 0

    def __init__(self):
        FakeConnection._ids += 1
        self.id = FakeConnection._ids
        self.closed = False

    def close(self):
        self.closed = True


class FakeClient:
    """
    PostgreSQLClient 대역

    results: sql -> rows (list) 또는 rows 를 돌려주는 callable
    """

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.stop_event = threading.Event()
        self.connections = []
        self.queries = []
        self.statements = []

    def get_connection(self):
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    def query(self, sql, connection=None, stream=False):
        if connection is None:
            connection = self.get_connection()
        self.queries.append((sql, connection))
        rows = self.results.get(sql, [])
        if callable(rows):
            rows = rows()
        rows = [dict(row) for row in rows]
        return (iter(rows) if stream else rows), connection

    def execute(self, sql, connection=None):
        if connection is None:
            connection = self.get_connection()
        self.statements.append((sql, connection))
        return connection

    def close_connection(self, connection):
        if connection is not None:
            connection.close()


class RecordingRouter:
    def __init__(self):
        self.events = []

    def emit(self, tag, time, record):
        self.events.append((tag, time, record))

    @property
    def tags(self):
        return [tag for tag, _, _ in self.events]

    def clear(self):
        self.events.clear()


class MemoryStorage:
    """get / put / save 만 있는 checkpoint 저장소"""

    def __init__(self, data=None):
        self.data = dict(data or {})
        self.saved = []
        self.save_count = 0

    def get(self, key):
        return self.data.get(key)

    def put(self, key, value):
        self.data[key] = value

    def save(self):
        self.save_count += 1
        self.saved.append(dict(self.data))


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def router():
    return RecordingRouter()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def checkpoint_store(storage):
    return CheckpointStore(storage)
