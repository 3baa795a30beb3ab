"""
Database 모듈 - PostgreSQL 클라이언트, MongoDB 매니저 및 설정 관리
"""
from .postgres_client import get_postgresql_client, PostgreSQLClient
from .mongodb_manager import get_mongodb_manager, MongoDBManager
from .config import (
    Config,
    get_config,
    get_postgres_config,
    get_mongodb_config,
    parse_interval
)

# Public API
__all__ = [
    # PostgreSQL
    "get_postgresql_client",
    "PostgreSQLClient",

    # MongoDB
    "get_mongodb_manager",
    "MongoDBManager",

    # Config
    "Config",
    "get_config",
    "get_postgres_config",
    "get_mongodb_config",
    "parse_interval"
]
