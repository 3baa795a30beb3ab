"""
    replication 데이터 모델
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class Change:
    """감지된 변경 1건 (emit 대상)"""
    type: ChangeType
    key: Any
    record: dict


@dataclass
class ReplicationState:
    """
    poll 주기 사이에 유지되는 상태

    - table_hash: primary key -> 마지막으로 본 row 의 content hash
    - ids: 직전 poll 에서 본 primary key 목록 (삭제 감지용)
    """
    table_hash: Dict[Any, str] = field(default_factory=dict)
    ids: List[Any] = field(default_factory=list)


@dataclass
class CycleResult:
    """poll 1회 실행 결과"""
    rows_count: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    aborted: bool = False
    persisted: bool = False
    elapsed_time: float = 0.0
    error: Optional[str] = None

    @property
    def changes_emitted(self) -> bool:
        return (self.inserted + self.updated + self.deleted) > 0

    def to_dict(self) -> dict:
        return {
            "rows_count": self.rows_count,
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
            "aborted": self.aborted,
            "persisted": self.persisted,
            "elapsed_time": round(self.elapsed_time, 2),
            "error": self.error,
        }
