"""
    삭제 감지 - 직전 poll 에 있었지만 이번 poll 에 없는 primary key 계산
"""
import logging
from typing import Any, List, Sequence

logger = logging.getLogger(__name__)


def resolve_deleted_ids(previous_ids: Sequence[Any], current_ids: Sequence[Any]) -> List[Any]:
    """
    삭제된 primary key 목록 반환

    - current_ids 가 비어있음 -> 삭제 없음 (일시적인 빈 결과로 전체 삭제 판정 방지)
    - previous_ids 가 비어있음 (최초 실행) -> [1, max(current_ids)) 중 current_ids 에 없는 값
      primary key 가 1부터 촘촘하게 증가하는 정수일 때만 맞는 추정이므로
      정수가 아닌 key 가 섞여 있으면 추정하지 않음
    - 그 외 -> previous_ids - current_ids (순서 유지)
    """
    if not current_ids:
        return []

    current = set(current_ids)
    if not previous_ids:
        if not all(isinstance(key, int) and not isinstance(key, bool) for key in current_ids):
            logger.warning("최초 실행 삭제 추정 건너뜀: primary key 가 정수가 아닙니다")
            return []
        return [key for key in range(1, max(current_ids)) if key not in current]

    return [key for key in dict.fromkeys(previous_ids) if key not in current]
