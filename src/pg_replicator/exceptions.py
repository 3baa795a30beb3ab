"""pg-replicator 예외 정의"""


class ReplicatorError(Exception):
    """pg-replicator 기본 예외"""
    pass


class ConfigError(ReplicatorError, ValueError):
    """설정 누락 또는 잘못된 설정값"""
    pass


class MissingPrimaryKeyError(ReplicatorError):
    """row에 primary key 값이 없음 (NULL)"""
    def __init__(self, primary_key: str, row: dict = None):
        super().__init__(f"missing primary_key: {primary_key}")
        self.primary_key = primary_key
        self.row = row


class ShutdownRequested(ReplicatorError):
    """재시도 대기 중 종료 신호 수신"""
    pass
