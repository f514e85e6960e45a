# backend/webhooks/processor.py
# 웹훅 1건 처리: 검증 → 빌드 → 카탈로그 검증 → 업서트

import time
import uuid
import logging
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from core.errors import PayloadShapeError, QuickBaseNotConfiguredError, RecordValidationError
from integrations.quickbase_client import QuickBaseClient
from mapping.builder import RecordBuilder
from mapping.validator import FieldValidator
from mapping.paths import get_path
from .payload import validate_webhook_payload


logger = logging.getLogger(__name__)


class SyncOutcome(BaseModel):
    """기본 경로 처리 결과 (웹훅 응답 본문)"""
    success: bool = True
    deal_id: str
    customer_id: str
    proposal_id: str
    record_id: int
    fields_written: int
    action: str
    warnings: List[str] = Field(default_factory=list)
    processing_time_ms: int = 0
    request_id: str

    def to_response(self) -> dict:
        return {
            "success": self.success,
            "dealId": self.deal_id,
            "customerId": self.customer_id,
            "proposalId": self.proposal_id,
            "quickbaseRecordId": self.record_id,
            "fieldsWritten": self.fields_written,
            "action": self.action,
            "warnings": self.warnings,
            "processingTime": f"{self.processing_time_ms}ms",
            "requestId": self.request_id,
        }


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class DealSyncProcessor:
    """
    기본 경로 (요청 1건 = 레코드 1건)

    - 필수 ID 누락 → PayloadShapeError (QuickBase 호출 전)
    - 변환 경고 → 응답 warnings 로만 전달
    - 카탈로그 검증 에러 → RecordValidationError (쓰기 안 함)
    - QuickBase 에러 → QuickBaseError 하위 타입 그대로 전파
    """

    def __init__(self, builder: RecordBuilder, validator: FieldValidator,
                 quickbase: Optional[QuickBaseClient] = None):
        self.builder = builder
        self.validator = validator
        self.quickbase = quickbase

    async def process(self, body: Any, request_id: Optional[str] = None) -> SyncOutcome:
        request_id = request_id or new_request_id()
        started = time.perf_counter()

        check = validate_webhook_payload(body)
        if not check.is_valid:
            logger.warning("[%s] Rejected webhook: %s", request_id, "; ".join(check.errors))
            raise PayloadShapeError(check.errors[0], field=check.missing_field)

        deal_id = str(get_path(body, "payload.deal.id"))
        logger.info("[%s] Processing %s for deal %s", request_id, body.get("event"), deal_id)
        for warning in check.warnings:
            logger.info("[%s] Data quality: %s", request_id, warning)

        record = self.builder.build(body)

        validation = self.validator.validate(record)
        if not validation.is_valid:
            raise RecordValidationError(validation.errors)

        if self.quickbase is None:
            raise QuickBaseNotConfiguredError("QuickBase credentials are not configured")

        result = await self.quickbase.upsert(deal_id, record.to_quickbase_row())

        warnings = check.warnings + [str(w) for w in record.warnings] + validation.warnings
        outcome = SyncOutcome(
            deal_id=deal_id,
            customer_id=str(get_path(body, "payload.customer.id")),
            proposal_id=str(get_path(body, "payload.proposal.id")),
            record_id=result.record_id,
            fields_written=result.fields_written,
            action=result.action,
            warnings=warnings,
            processing_time_ms=elapsed_ms(started),
            request_id=request_id,
        )
        logger.info("[%s] Deal %s → record %d (%s, %d fields, %d warnings) in %dms",
                    request_id, deal_id, outcome.record_id, outcome.action,
                    outcome.fields_written, len(warnings), outcome.processing_time_ms)
        return outcome
