# backend/webhooks/enerflo_webhook.py
# Enerflo 웹훅 엔드포인트

import time
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import JSONResponse

from core.errors import PayloadShapeError, RecordValidationError, SyncError
from .processor import elapsed_ms, new_request_id


logger = logging.getLogger(__name__)

router = APIRouter()

KNOWN_SOURCES = {"enerflo"}


def error_response(error: SyncError, started: float, request_id: str) -> JSONResponse:
    """실패 응답 (사람이 읽는 사유 + 처리 시간)"""
    content = {
        "success": False,
        "error": type(error).__name__,
        "message": str(error),
        "processingTime": f"{elapsed_ms(started)}ms",
        "requestId": request_id,
    }
    if isinstance(error, PayloadShapeError) and error.field:
        content["field"] = error.field
    if isinstance(error, RecordValidationError):
        content["errors"] = error.errors
    return JSONResponse(status_code=error.status_code, content=content)


@router.post("/webhook/{source}")
async def receive_webhook(source: str, request: Request, background_tasks: BackgroundTasks):
    """
    Enerflo 웹훅 수신

    - 기본 경로 (빌드 → 검증 → 업서트) 를 끝낸 뒤 응답
    - enrichment 는 응답 후 BackgroundTasks 로 1회 실행, 결과는 로그로만 확인
    """
    if source.lower() not in KNOWN_SOURCES:
        raise HTTPException(status_code=404, detail=f"Unknown webhook source: {source}")

    request_id = new_request_id()
    started = time.perf_counter()

    try:
        body = await request.json()
    except ValueError:
        return error_response(PayloadShapeError("Request body is not valid JSON", field="body"), started, request_id)

    processor = request.app.state.processor
    try:
        outcome = await processor.process(body, request_id=request_id)
    except SyncError as e:
        logger.error("[%s] Webhook failed: %s", request_id, e)
        return error_response(e, started, request_id)

    enricher = getattr(request.app.state, "enricher", None)
    if enricher is not None:
        background_tasks.add_task(enricher.enrich, outcome.deal_id, outcome.record_id, request_id)

    return outcome.to_response()
