"""
Tests for deleted id resolution
"""

import logging

from pg_replicator.replication.deletion import resolve_deleted_ids


class TestResolveDeletedIds:
    """삭제 감지 규칙"""

    def test_steady_state_set_difference(self):
        assert resolve_deleted_ids([1, 2, 3], [1, 3]) == [2]

    def test_steady_state_keeps_previous_order(self):
        assert resolve_deleted_ids([5, 3, 9, 1], [1]) == [5, 3, 9]

    def test_steady_state_drops_duplicates(self):
        assert resolve_deleted_ids([2, 2, 3], [3]) == [2]

    def test_empty_current_never_deletes(self):
        """빈 결과 -> 전체 삭제로 판단하지 않음"""
        assert resolve_deleted_ids([1, 2], []) == []

    def test_nothing_deleted(self):
        assert resolve_deleted_ids([1, 2], [1, 2, 3]) == []

    def test_string_keys_in_steady_state(self):
        assert resolve_deleted_ids(["a", "b"], ["b"]) == ["a"]


class TestColdStartInference:
    """
    최초 실행 (previous_ids 비어있음) 추정 규칙

    1부터 촘촘하게 증가하는 정수 primary key 에서만 맞는 추정
    """

    def test_gap_in_dense_integer_range(self):
        """[1, 3) 중 현재 없는 2 를 삭제로 추정 (한 번도 본 적 없어도)"""
        assert resolve_deleted_ids([], [1, 3]) == [2]

    def test_upper_bound_is_exclusive(self):
        assert resolve_deleted_ids([], [2, 5]) == [1, 3, 4]

    def test_single_row_id_one(self):
        assert resolve_deleted_ids([], [1]) == []

    def test_non_integer_keys_are_not_inferred(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert resolve_deleted_ids([], ["a", "c"]) == []
        assert "정수가 아닙니다" in caplog.text

    def test_bool_keys_are_not_integers(self):
        assert resolve_deleted_ids([], [True]) == []
