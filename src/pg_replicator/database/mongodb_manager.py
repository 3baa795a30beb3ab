"""
  MongoDB 매니저 - checkpoint 및 변경 이벤트 저장
"""
import pymongo
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure
import logging
import uuid
from datetime import datetime
from typing import List, Optional
from .config import get_mongodb_config
from ..exceptions import ReplicatorError

logger = logging.getLogger(__name__)

CHECKPOINT_COLLECTION = "replication_checkpoints"
CHECKPOINT_CHUNK_COLLECTION = "replication_checkpoint_chunks"
EVENT_COLLECTION = "replication_events"
# chunk 문서 1개당 항목 수 ([key, sha1] 1건 약 70 byte -> 약 3.5MB)
CHECKPOINT_CHUNK_SIZE = 50000


class MongoDBManager:
    def __init__(self, mongodb_uri: str, database_name: str, client: MongoClient = None,
                 checkpoint_chunk_size: int = CHECKPOINT_CHUNK_SIZE):
        """MongoDB 매니저 초기화"""
        self.mongodb_uri = mongodb_uri
        self.database_name = database_name
        self.checkpoint_chunk_size = checkpoint_chunk_size
        self.client = client
        self.db = None
        self._connect()
        self.create_collections()
        logger.info("MongoDB 매니저 초기화 완료")

    def _connect(self) -> None:
        """MongoDB 연결 설정"""
        try:
            if self.client is None:
                self.client = MongoClient(self.mongodb_uri)
            self.db = self.client[self.database_name]
            # 연결 테스트
            self.client.admin.command('ping')
            logger.info(f"MongoDB 연결 성공 : {self.database_name}")
        except ConnectionFailure as e:
            logger.error(f"MongoDB 연결 실패: {e}")
            raise

    def create_collections(self) -> None:
        """필요한 컬렉션 및 인덱스 생성"""
        # 컬렉션이 없을 때만 생성, 기존 있으면 무시
        try:
            existing = self.db.list_collection_names()
            # 1. checkpoint 컬렉션 (_id = checkpoint id, 문서 1개당 replicator 1개)
            if CHECKPOINT_COLLECTION not in existing:
                self.db.create_collection(CHECKPOINT_COLLECTION)

            # 1-1. checkpoint chunk 컬렉션 (목록 값을 나눠 저장)
            if CHECKPOINT_CHUNK_COLLECTION not in existing:
                self.db.create_collection(CHECKPOINT_CHUNK_COLLECTION)
                self.db[CHECKPOINT_CHUNK_COLLECTION].create_index(
                    [("checkpoint_id", pymongo.ASCENDING), ("generation", pymongo.ASCENDING),
                     ("field", pymongo.ASCENDING), ("chunk", pymongo.ASCENDING)]
                )

            # 2. 변경 이벤트 컬렉션
            if EVENT_COLLECTION not in existing:
                self.db.create_collection(EVENT_COLLECTION)
                self.db[EVENT_COLLECTION].create_index([("time", pymongo.DESCENDING)])
                self.db[EVENT_COLLECTION].create_index("tag")

            logger.info("MongoDB 컬렉션 및 인덱스 생성 완료")
        except Exception as e:
            logger.error(f"MongoDB 컬렉션 및 인덱스 생성 실패: {e}")
            raise

    def health_check(self) -> dict:
        """MongoDB 헬스체크"""
        try:
            self.client.admin.command('ping')
            collections = self.db.list_collection_names()
            return {
                "mongodb_connected": True,
                "database_info": {
                    "database_name": self.database_name,
                    "collections": collections,
                    "collection_count": len(collections)
                },
                "checked_at": datetime.now().isoformat()
            }
        except Exception as e:
            logger.error(f"MongoDB 헬스체크 실패: {e}")
            return {
                "mongodb_connected": False,
                "error": str(e),
                "checked_at": datetime.now().isoformat()
            }

    def disconnect(self) -> None:
        """MongoDB 연결 종료"""
        try:
            if self.client:
                self.client.close()
                self.client = None
                self.db = None
                logger.info("MongoDB 연결 종료 완료")
        except Exception as e:
            logger.error(f"MongoDB 연결 종료 실패: {e}")

    def load_checkpoint(self, checkpoint_id: str) -> dict:
        """checkpoint 조회 (없으면 빈 dict), chunk 로 나뉜 목록은 순서대로 합쳐서 반환"""
        doc = self.db[CHECKPOINT_COLLECTION].find_one({"_id": checkpoint_id})
        if not doc:
            logger.info(f"checkpoint {checkpoint_id} 없음 - 초기 상태로 시작")
            return {}

        data = dict(doc.get("data") or {})
        for field, chunk_count in (doc.get("chunks") or {}).items():
            chunks = list(
                self.db[CHECKPOINT_CHUNK_COLLECTION]
                .find({"checkpoint_id": checkpoint_id, "generation": doc["generation"], "field": field})
                .sort("chunk", pymongo.ASCENDING)
            )
            if len(chunks) != chunk_count:
                raise ReplicatorError(
                    f"checkpoint {checkpoint_id} 의 {field} chunk 가 손상되었습니다 "
                    f"(기대 {chunk_count}개, 실제 {len(chunks)}개)"
                )
            data[field] = [item for chunk in chunks for item in chunk["items"]]
        return data

    def save_checkpoint(self, checkpoint_id: str, data: dict) -> None:
        """
        checkpoint 저장 (실패 시 예외 전파)

        목록 값은 checkpoint_chunk_size 개씩 나눠 chunk 문서로 저장 (16MB 문서 크기 제한 회피)
        새 generation 의 chunk 를 먼저 쓰고 checkpoint 문서가 그 generation 을 가리키게 바꾼 뒤
        이전 generation 을 삭제 -> 중간에 실패해도 직전 checkpoint 는 그대로 읽힘
        """
        generation = uuid.uuid4().hex
        scalars = {}
        chunk_docs = []
        chunk_counts = {}
        for field, value in data.items():
            if not isinstance(value, (list, tuple)):
                scalars[field] = value
                continue
            size = self.checkpoint_chunk_size
            pieces = [value[i:i + size] for i in range(0, len(value), size)]
            chunk_counts[field] = len(pieces)
            for index, items in enumerate(pieces):
                chunk_docs.append({
                    "checkpoint_id": checkpoint_id,
                    "generation": generation,
                    "field": field,
                    "chunk": index,
                    "items": list(items),
                })

        if chunk_docs:
            self.db[CHECKPOINT_CHUNK_COLLECTION].insert_many(chunk_docs, ordered=True)
        self.db[CHECKPOINT_COLLECTION].replace_one(
            {"_id": checkpoint_id},
            {
                "_id": checkpoint_id,
                "data": scalars,
                "chunks": chunk_counts,
                "generation": generation,
                "updated_at": datetime.now(),
            },
            upsert=True
        )
        self.db[CHECKPOINT_CHUNK_COLLECTION].delete_many(
            {"checkpoint_id": checkpoint_id, "generation": {"$ne": generation}}
        )
        logger.debug(f"checkpoint 저장 완료: {checkpoint_id} (chunk {len(chunk_docs)}개)")

    def insert_event(self, tag: str, time: datetime, record: dict) -> None:
        """변경 이벤트 1건 저장"""
        self.db[EVENT_COLLECTION].insert_one({"tag": tag, "time": time, "record": record})

    def get_recent_events(self, limit: int) -> List[dict]:
        """최근 변경 이벤트 조회"""
        try:
            events = list(self.db[EVENT_COLLECTION].find().sort("time", -1).limit(limit))
            # ObjectId를 문자열로 변환
            for event in events:
                event['_id'] = str(event['_id'])
            return events
        except Exception as e:
            logger.error(f"변경 이벤트 조회 실패: {e}")
            return []

_mongodb_manager_instance = None
def get_mongodb_manager() -> Optional[MongoDBManager]:
    """MongoDB 매니저 싱글톤 반환 (MONGODB_URL 미설정 시 None)"""
    global _mongodb_manager_instance
    if _mongodb_manager_instance is None:
        config = get_mongodb_config()
        if config is None:
            return None
        _mongodb_manager_instance = MongoDBManager(
            mongodb_uri=config['url'],
            database_name=config['database']
        )
    return _mongodb_manager_instance
