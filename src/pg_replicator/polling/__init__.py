"""
Polling 모듈 - 데이터 변경 감지 및 스케줄링
"""
from .scheduler import ReplicatorPollingScheduler, get_polling_scheduler

# Public API
__all__ = [
    "ReplicatorPollingScheduler",
    "get_polling_scheduler"
]
