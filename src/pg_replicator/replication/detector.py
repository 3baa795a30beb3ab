"""
    변경 감지 - row content hash 계산 및 insert/update 분류
"""
import hashlib
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from ..exceptions import MissingPrimaryKeyError
from .models import Change, ChangeType

logger = logging.getLogger(__name__)

# 클라이언트 라이브러리마다 표현이 다른 타입 -> 문자열로 통일
_STRINGIFY_TYPES = (datetime, date, time, timedelta, Decimal)


def to_text(value: Any) -> str:
    """hash / placeholder 치환용 문자열 변환 (None -> '')"""
    if value is None:
        return ""
    return str(value)


def compute_row_hash(row: dict) -> str:
    """컬럼 순서대로 (컬럼명 + 값)을 이어붙인 문자열의 SHA1"""
    flattened = "".join(f"{to_text(column)}{to_text(value)}" for column, value in row.items())
    return hashlib.sha1(flattened.encode("utf-8")).hexdigest()


def normalize_value(value: Any) -> Any:
    if isinstance(value, _STRINGIFY_TYPES):
        return str(value)
    return value


def normalize_row(row: dict) -> dict:
    """날짜/시간/Decimal 값을 문자열로 변환한 새 row 반환"""
    return {column: normalize_value(value) for column, value in row.items()}


class ChangeDetector:
    def __init__(self, primary_key: str):
        self.primary_key = primary_key

    def detect(self, table_hash: Dict[Any, str], record: dict, digest: str) -> Optional[Change]:
        """
        row 1건을 table_hash 와 비교해 변경 분류

        - table_hash 에 없음 -> insert
        - hash 다름 -> update
        - hash 같음 -> None
        분류와 관계없이 table_hash[key] 는 항상 최신 hash 로 갱신
        """
        key = record.get(self.primary_key)
        if key is None:
            raise MissingPrimaryKeyError(self.primary_key, record)

        seen = key in table_hash
        previous = table_hash.get(key)
        table_hash[key] = digest

        if not seen:
            return Change(ChangeType.INSERT, key, record)
        if previous != digest:
            return Change(ChangeType.UPDATE, key, record)
        return None
