"""
    변경 이벤트 출력 (emit)
"""
import json
import logging
from datetime import datetime

logger = logging.getLogger(__name__)


class MongoEventRouter:
    """변경 이벤트를 MongoDB replication_events 컬렉션에 저장"""

    def __init__(self, mongodb_manager):
        self.mongodb_manager = mongodb_manager

    def emit(self, tag: str, time: datetime, record: dict) -> None:
        self.mongodb_manager.insert_event(tag, time, record)


class LoggingEventRouter:
    """MongoDB 미설정 시 사용 - 변경 이벤트를 로그로 출력"""

    def emit(self, tag: str, time: datetime, record: dict) -> None:
        logger.info(f"{time.isoformat()} {tag} {json.dumps(record, ensure_ascii=False, default=str)}")


def create_event_router(mongodb_manager):
    if mongodb_manager is None:
        return LoggingEventRouter()
    return MongoEventRouter(mongodb_manager)
