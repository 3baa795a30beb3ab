"""
    checkpoint - ReplicationState 저장/복원
"""
import logging
from typing import Any, Optional

from .models import ReplicationState

logger = logging.getLogger(__name__)

TABLE_HASH_KEY = "table_hash"
IDS_KEY = "ids"


class MongoCheckpointStorage:
    """
    MongoDB checkpoint 를 key-value 저장소처럼 사용 (get / put / save)
    put 은 메모리에만 반영되고 save 시점에 전체를 저장 (큰 목록은 chunk 문서로 분할)
    """

    def __init__(self, mongodb_manager, checkpoint_id: str):
        self.mongodb_manager = mongodb_manager
        self.checkpoint_id = checkpoint_id
        self._data = dict(mongodb_manager.load_checkpoint(checkpoint_id))

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def save(self) -> None:
        self.mongodb_manager.save_checkpoint(self.checkpoint_id, self._data)


class CheckpointStore:
    def __init__(self, storage=None):
        self.storage = storage
        if storage is None:
            logger.warning("checkpoint 저장소가 설정되지 않았습니다 - 재시작 시 상태가 유지되지 않습니다.")

    @property
    def enabled(self) -> bool:
        return self.storage is not None

    def load(self) -> ReplicationState:
        """저장된 상태 복원 (table_hash 는 [[key, hash], ...] 또는 dict 모두 허용)"""
        if self.storage is None:
            return ReplicationState()

        raw_hash = self.storage.get(TABLE_HASH_KEY)
        if isinstance(raw_hash, dict):
            table_hash = dict(raw_hash)
        elif isinstance(raw_hash, (list, tuple)):
            table_hash = {key: value for key, value in raw_hash}
        else:
            table_hash = {}

        ids = list(self.storage.get(IDS_KEY) or [])
        logger.info(f"checkpoint 복원 완료 - table_hash: {len(table_hash)}개, ids: {len(ids)}개")
        return ReplicationState(table_hash=table_hash, ids=ids)

    def persist(self, state: ReplicationState) -> bool:
        """
        상태 저장 후 save() 로 즉시 반영
        table_hash 는 key 타입 유지를 위해 dict 가 아닌 [key, hash] 목록으로 저장
        """
        if self.storage is None:
            return False
        self.storage.put(TABLE_HASH_KEY, [[key, value] for key, value in state.table_hash.items()])
        self.storage.put(IDS_KEY, list(state.ids))
        self.storage.save()
        return True


def create_checkpoint_store(mongodb_manager, checkpoint_id: str) -> CheckpointStore:
    """MongoDB 매니저가 없으면 메모리 전용 CheckpointStore"""
    if mongodb_manager is None:
        return CheckpointStore(None)
    return CheckpointStore(MongoCheckpointStorage(mongodb_manager, checkpoint_id))
