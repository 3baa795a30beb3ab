"""
애플리케이션 설정 파일 - .env 파일 기반
"""
import os
import re
from dotenv import load_dotenv
from typing import Mapping, Optional
from urllib.parse import quote_plus

from ..exceptions import ConfigError

# .env 파일 로드
load_dotenv()

_TIME_VALUE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd]?)\s*$")
_TIME_UNITS = {"": 1, "s": 1, "m": 60, "h": 60 * 60, "d": 24 * 60 * 60}


def parse_interval(value) -> float:
    """'30s', '1m', '2h', '1d' 또는 숫자(초)를 초 단위 float로 변환"""
    if isinstance(value, (int, float)):
        return float(value)
    match = _TIME_VALUE.match(str(value))
    if not match:
        raise ConfigError(f"잘못된 시간 값입니다: {value!r} (예: 30s, 1m, 1h)")
    number, unit = match.groups()
    return float(number) * _TIME_UNITS[unit]


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """애플리케이션 설정 클래스"""

    def __init__(self, environ: Mapping[str, str] = None):
        env = os.environ if environ is None else environ

        # === PostgreSQL 설정 ===
        self.POSTGRES_HOST: str = env.get("POSTGRES_HOST", "localhost")
        self.POSTGRES_PORT: int = int(env.get("POSTGRES_PORT", "5432"))
        self.POSTGRES_DB_NAME: str = env.get("POSTGRES_DB_NAME")
        self.POSTGRES_USERNAME: str = env.get("POSTGRES_USERNAME", "postgres")
        self.POSTGRES_PASSWORD: str = env.get("POSTGRES_PASSWORD")
        self.POSTGRES_ENCODING: str = env.get("POSTGRES_ENCODING", "utf8")
        self.POSTGRES_FETCH_SIZE: int = int(env.get("POSTGRES_FETCH_SIZE", "1000"))

        # === CloudSQL Proxy 설정 ===
        self.CLOUDSQL_CONNECTION_NAME: str = env.get("CLOUDSQL_CONNECTION_NAME", "")
        self.CLOUDSQL_USE_PROXY: bool = _parse_bool(env.get("CLOUDSQL_USE_PROXY"), False)
        self.POSTGRES_USE_IAM: bool = _parse_bool(env.get("POSTGRES_USE_IAM"), False)
        self.GOOGLE_APPLICATION_CREDENTIALS: str = env.get("GOOGLE_APPLICATION_CREDENTIALS", "")

        # === Replicator 설정 ===
        self.REPLICATOR_QUERY: str = env.get("REPLICATOR_QUERY")
        self.REPLICATOR_PREPARED_QUERY: Optional[str] = env.get("REPLICATOR_PREPARED_QUERY") or None
        self.REPLICATOR_PRIMARY_KEY: str = env.get("REPLICATOR_PRIMARY_KEY", "id")
        self.REPLICATOR_INTERVAL: float = parse_interval(env.get("REPLICATOR_INTERVAL", "1m"))
        self.REPLICATOR_RETRY_MAX_DELAY: float = parse_interval(env.get("REPLICATOR_RETRY_MAX_DELAY", "5m"))
        self.REPLICATOR_ENABLE_DELETE: bool = _parse_bool(env.get("REPLICATOR_ENABLE_DELETE"), True)
        self.REPLICATOR_TAG: str = env.get("REPLICATOR_TAG")
        self.REPLICATOR_CHECKPOINT_ID: str = env.get("REPLICATOR_CHECKPOINT_ID", "default")

        # === MongoDB 설정 (checkpoint / 이벤트 저장, 선택) ===
        self.MONGODB_URL: Optional[str] = env.get("MONGODB_URL") or None
        self.MONGODB_DB_NAME: str = env.get("MONGODB_DB_NAME", "replicator")
        self.MONGODB_APP_USER: str = env.get("MONGODB_APP_USER", "")
        self.MONGODB_APP_PASSWORD: str = env.get("MONGODB_APP_PASSWORD", "")

        # === 애플리케이션 설정 ===
        self.APP_ENV: str = env.get("APP_ENV", "development")
        self.APP_PORT: int = int(env.get("APP_PORT", "8000"))

        # === 로깅 설정 ===
        self.LOG_LEVEL: str = env.get("LOG_LEVEL", "INFO")

    def validate(self) -> None:
        """필수 설정값 검증"""
        if not self.REPLICATOR_TAG:
            raise ConfigError(
                "REPLICATOR_TAG 가 설정되지 않았습니다. "
                "예: REPLICATOR_TAG=replicator.mydatabase.mytable.${event}.${primary_key}"
            )
        if not self.REPLICATOR_QUERY:
            raise ConfigError("REPLICATOR_QUERY 가 설정되지 않았습니다.")
        if self.CLOUDSQL_USE_PROXY and not self.CLOUDSQL_CONNECTION_NAME:
            raise ConfigError("CLOUDSQL_USE_PROXY=true 인 경우 CLOUDSQL_CONNECTION_NAME 이 필요합니다.")
        if self.POSTGRES_FETCH_SIZE < 1:
            raise ConfigError("POSTGRES_FETCH_SIZE 는 1 이상이어야 합니다.")


_config_instance = None
def get_config() -> Config:
    """검증된 설정 싱글톤 반환"""
    global _config_instance
    if _config_instance is None:
        config = Config()
        config.validate()
        _config_instance = config
    return _config_instance

# 편의 함수들
def get_postgres_config(config: Config = None) -> dict:
    """PostgreSQL 연결 설정 반환"""
    config = config or get_config()
    # CloudSQL Proxy 사용 시 특별한 설정
    if config.CLOUDSQL_USE_PROXY and config.CLOUDSQL_CONNECTION_NAME:
        return {
            "connection_name": config.CLOUDSQL_CONNECTION_NAME,
            "database": config.POSTGRES_DB_NAME,
            "user": config.POSTGRES_USERNAME,
            "password": config.POSTGRES_PASSWORD,
            "use_proxy": True,
            "use_iam": config.POSTGRES_USE_IAM,
            "credentials_path": config.GOOGLE_APPLICATION_CREDENTIALS,
            "fetch_size": config.POSTGRES_FETCH_SIZE,
        }
    return {
        "host": config.POSTGRES_HOST,
        "port": config.POSTGRES_PORT,
        "database": config.POSTGRES_DB_NAME,
        "user": config.POSTGRES_USERNAME,
        "password": config.POSTGRES_PASSWORD,
        "encoding": config.POSTGRES_ENCODING,
        "fetch_size": config.POSTGRES_FETCH_SIZE,
        "use_proxy": False,
    }

def get_mongodb_config(config: Config = None) -> Optional[dict]:
    """MongoDB 연결 설정 반환 (MONGODB_URL 미설정 시 None)"""
    config = config or get_config()
    mongodb_url = config.MONGODB_URL
    if not mongodb_url:
        return None

    # 환경 변수 치환
    username = quote_plus(config.MONGODB_APP_USER)
    password = quote_plus(config.MONGODB_APP_PASSWORD)
    db_name = config.MONGODB_DB_NAME

    mongodb_url = mongodb_url.replace("${MONGODB_APP_USER}", username)
    mongodb_url = mongodb_url.replace("${MONGODB_APP_PASSWORD}", password)
    mongodb_url = mongodb_url.replace("${MONGODB_DB_NAME}", db_name)
    return {
        "url": mongodb_url,
        "database": db_name
    }
