"""
    nested query 확장 - 컬럼 값이 SELECT 문이면 실행해서 결과 row 목록으로 교체
"""
import logging
import re

from .detector import normalize_row, to_text

logger = logging.getLogger(__name__)

NESTED_QUERY_PATTERN = re.compile(r"^SELECT\s+", re.IGNORECASE)
PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]+)\}")


def is_nested_query(value) -> bool:
    return isinstance(value, str) and NESTED_QUERY_PATTERN.match(value.strip()) is not None


def render_nested_query(template: str, row: dict) -> str:
    """${column} 을 row 의 해당 컬럼 값으로 치환 (없거나 NULL 이면 빈 문자열)"""
    return PLACEHOLDER_PATTERN.sub(lambda m: to_text(row.get(m.group(1))), template)


class NestedQueryExpander:
    """
    메인 쿼리와 별도의 connection 으로 nested query 실행
    (메인 쿼리 스트리밍 중인 connection 과 겹치지 않도록)

    확장은 1단계만 - nested 결과 안의 SELECT 문은 다시 실행하지 않음
    """

    def __init__(self, client, connection=None):
        self.client = client
        self.connection = connection

    def expand(self, row: dict) -> dict:
        source = dict(row)
        for column, value in source.items():
            if not is_nested_query(value):
                continue
            sql = render_nested_query(value, source)
            logger.debug(f"nested query 실행: {column} -> {sql}")
            nest_rows, self.connection = self.client.query(sql, self.connection)
            row[column] = [normalize_row(nest_row) for nest_row in nest_rows]
        return row
