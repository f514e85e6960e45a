# backend/main.py
# Enerflo → QuickBase 딜 동기화 API

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, configure_logging, load_env_file
from enrichment.enricher import DealEnricher
from integrations.enerflo_client import EnerfloClient
from integrations.quickbase_client import QuickBaseClient
from mapping.builder import RecordBuilder
from mapping.catalog import FieldCatalog
from mapping.field_table import FieldTable
from mapping.validator import FieldValidator
from webhooks.enerflo_webhook import router as enerflo_router
from webhooks.processor import DealSyncProcessor


# 환경 변수 로드
load_env_file()

logger = logging.getLogger(__name__)

SERVICE_NAME = "Enerflo QuickBase Sync"
VERSION = "2.0.0"


def create_app(
    settings: Optional[Settings] = None,
    quickbase_http: Optional[httpx.AsyncClient] = None,
    enerflo_http: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    앱 생성

    settings 가 없으면 시작 시 환경 변수에서 로드.
    quickbase_http / enerflo_http 는 테스트용 httpx 클라이언트 주입
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """앱 라이프사이클: 설정 / 카탈로그 / 매핑 테이블 로드, 클라이언트 생성"""
        config = settings or Settings.from_env()
        configure_logging(config.log_level)

        catalog = FieldCatalog.from_csv(config.field_catalog_path)
        table = FieldTable.from_yaml(config.field_map_path)
        builder = RecordBuilder(table)
        validator = FieldValidator(catalog)

        quickbase = None
        if config.quickbase_configured:
            quickbase = QuickBaseClient.from_settings(
                config,
                key_field=table.business_key_field,
                record_id_field=table.record_id_field,
                client=quickbase_http,
            )
        else:
            logger.warning("QuickBase credentials missing - webhooks will be rejected until configured")

        enerflo = None
        enricher = None
        if config.enerflo_configured and quickbase is not None:
            enerflo = EnerfloClient.from_settings(config, client=enerflo_http)
            enricher = DealEnricher(enerflo, quickbase, builder, validator)
        else:
            logger.info("ENERFLO_API_KEY not set - enrichment disabled")

        app.state.settings = config
        app.state.catalog = catalog
        app.state.field_table = table
        app.state.processor = DealSyncProcessor(builder, validator, quickbase)
        app.state.enricher = enricher

        logger.info("%s v%s started (field map v%d, %d fields, catalog %d fields)",
                    SERVICE_NAME, VERSION, table.version, len(table.fields), len(catalog))
        yield

        if enerflo is not None:
            await enerflo.close()
        if quickbase is not None:
            await quickbase.close()
        logger.info("%s stopped", SERVICE_NAME)

    app = FastAPI(
        title=SERVICE_NAME,
        description="""
## Enerflo → QuickBase 딜 동기화

- **Webhook**: `POST /webhook/enerflo` 수신 → 필드 매핑 → QuickBase 업서트
- **Enrichment**: 응답 후 Enerflo API 추가 데이터로 같은 레코드 패치
- **Health**: 자격 증명 설정 여부 (라이브 호출 없음)
        """,
        version=VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 라우터 등록
    app.include_router(enerflo_router, tags=["Webhook - Enerflo"])

    @app.get("/")
    async def root():
        """API 정보"""
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "endpoints": {
                "webhooks": ["/webhook/enerflo"],
                "health": ["/health"],
            },
        }

    @app.get("/health")
    async def health():
        """헬스체크 (설정 여부만)"""
        config = getattr(app.state, "settings", None) or settings or Settings.from_env()
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "quickbase": "configured" if config.quickbase_configured else "missing",
            "enerflo": "configured" if config.enerflo_configured else "missing",
        }

    return app


app = create_app()


# 직접 실행 시
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Settings.from_env().port)
