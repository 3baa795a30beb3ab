"""
  FastAPI 메인 애플리케이션 - PostgreSQL 폴링 기반 변경 감지 (replicator)
  - 백그라운드: interval 주기 폴링으로 insert/update/delete 감지 후 emit
  - API: 헬스체크, 폴링 상태, 최근 변경 이벤트 조회
"""
from fastapi import FastAPI, HTTPException, Query
from contextlib import asynccontextmanager
import logging
import os
from datetime import datetime

from .database.config import get_config
from .database.postgres_client import get_postgresql_client
from .database.mongodb_manager import get_mongodb_manager
from .polling.scheduler import get_polling_scheduler

logging.basicConfig(level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
logger = logging.getLogger(__name__)

postgres_client = None
mongodb_manager = None
polling_scheduler = None

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    애플리케이션 생명주기 관리
    """
    global postgres_client, mongodb_manager, polling_scheduler

    try:
        logger.info("애플리케이션 시작 - 리소스 초기화")
        config = get_config()

        postgres_client = get_postgresql_client()
        logger.info("PostgreSQL 클라이언트 초기화 완료")

        mongodb_manager = get_mongodb_manager()
        if mongodb_manager:
            logger.info("MongoDB 매니저 초기화 완료")
        else:
            logger.warning("MONGODB_URL 미설정 - checkpoint 미사용, 변경 이벤트는 로그로 출력")

        polling_scheduler = get_polling_scheduler()
        polling_scheduler.start()
        logger.info(f"- 폴링 스케줄러 ({config.REPLICATOR_INTERVAL}초 주기): ✅")
    except Exception as e:
        logger.error(f"❌ 서버 초기화 실패: {e}")
        raise
    yield # yield 이전: 앱 시작 시 실행 (리소스 초기화) , yield 이후: 앱 종료 시 실행 (리소스 정리)

    try:
        if polling_scheduler:
            polling_scheduler.stop()
            logger.info("폴링 스케줄러 종료 완료")
        if postgres_client:
            postgres_client.disconnect()
        if mongodb_manager:
            mongodb_manager.disconnect()

        logger.info("✅ FastAPI 서버 종료")
    except Exception as e:
        logger.error(f"❌ 서버 종료 중 오류: {e}")

app = FastAPI(
    title="PG Replicator API",
    description="""
    **PostgreSQL 폴링 기반 변경 감지**

    ## 주요 특징
    - 🔄 interval 마다 쿼리 결과를 이전 결과와 비교해 insert/update/delete 이벤트 생성
    - 🧩 컬럼 값이 SELECT 문이면 nested query 로 실행해 결과를 포함
    - 💾 MongoDB checkpoint 로 재시작 후에도 중복 이벤트 없이 이어서 감지
    """,
    version="1.0.0",
    lifespan=lifespan
)

@app.get("/", tags=["시스템"])
async def root():
    """루트 엔드포인트"""
    return {
        "service": "PG Replicator API",
        "status": "running",
        "timestamp": datetime.now().isoformat()
    }

@app.get("/health", tags=["monitoring"])
async def health_check():
    """
    헬스체크 엔드포인트
    - PostgreSQL, MongoDB 연결 상태
    - 폴링 스케줄러 상태
    """
    try:
        postgres_status = postgres_client.health_check() if postgres_client else {"is_connected": False}

        mongodb_status = mongodb_manager.health_check() if mongodb_manager else {"mongodb_connected": None}

        polling_status = polling_scheduler.get_status() if polling_scheduler else {"is_running": False}

        overall_healthy = (
            postgres_status.get("is_connected", False) and
            mongodb_status.get("mongodb_connected") is not False and
            polling_status.get("is_running", False)
        )

        return {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": datetime.now().isoformat(),
            "services": {
                "postgres": postgres_status,
                "mongodb": mongodb_status,
                "polling_scheduler": polling_status
            },
            "version": "1.0.0"
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Health check failed: {str(e)}")

@app.get("/replicator/status", tags=["replicator"])
async def get_replicator_status():
    """폴링 상태 및 마지막 poll 결과 조회"""
    if not polling_scheduler:
        raise HTTPException(status_code=503, detail="폴링 스케줄러가 초기화되지 않았습니다.")
    return {
        "polling_scheduler": polling_scheduler.get_status(),
        "timestamp": datetime.now().isoformat()
    }

@app.get("/replicator/events", tags=["replicator"])
async def get_recent_events(limit: int = Query(20, ge=1, le=200, description="이벤트 개수 (1-200)")):
    """MongoDB 에 저장된 최근 변경 이벤트 조회"""
    if not mongodb_manager:
        raise HTTPException(status_code=503, detail="MongoDB 가 설정되지 않았습니다.")
    events = mongodb_manager.get_recent_events(limit)
    return {
        "events": events,
        "count": len(events),
        "limit": limit,
        "timestamp": datetime.now().isoformat()
    }

def run() -> None:
    """콘솔 실행 진입점"""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_config().APP_PORT)

if __name__ == "__main__":
    run()
