# backend/webhooks/payload.py
# 웹훅 수신 검증 (필수 ID + 데이터 품질 경고)

from typing import Any, Dict, List

from pydantic import BaseModel, Field

from mapping.paths import first_path, get_path


REQUIRED_FIELDS = (
    "event",
    "payload.deal.id",
    "payload.customer.id",
    "payload.proposal.id",
)

DRAFT_STATUSES = {"draft", "new"}


class PayloadCheck(BaseModel):
    """errors → 400 거절, warnings → 응답/로그에만 포함"""
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def missing_field(self) -> str:
        """첫 번째 누락 필드 (에러 메시지용)"""
        return self.errors[0].split(": ", 1)[-1] if self.errors else ""


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def validate_webhook_payload(body: Any) -> PayloadCheck:
    """
    최소 수신 조건: event, payload.deal.id, payload.customer.id, payload.proposal.id

    품질 경고는 처리를 막지 않음
    """
    check = PayloadCheck()

    if not isinstance(body, dict):
        check.errors.append("Missing required field: body")
        return check

    for path in REQUIRED_FIELDS:
        if not _present(get_path(body, path)):
            check.errors.append(f"Missing required field: {path}")

    if check.errors:
        return check

    check.warnings.extend(data_quality_warnings(body))
    return check


def data_quality_warnings(body: Dict[str, Any]) -> List[str]:
    warnings = []
    payload = body.get("payload") or {}

    if not _present(get_path(payload, "customer.email")):
        warnings.append("Customer email is empty")
    if not _present(first_path(payload, ["customer.phone", "customer.mobile"])):
        warnings.append("Customer phone is empty")

    status = get_path(payload, "deal.status")
    if isinstance(status, str) and status.lower() in DRAFT_STATUSES:
        warnings.append("Deal is still in draft status - may not be ready for processing")

    address = first_path(payload, [
        "proposal.pricingOutputs.deal.projectAddress",
        "deal.projectAddress",
        "deal.address",
        "customer.address",
    ])
    if not address:
        warnings.append("Deal missing address information")

    if get_path(payload, "proposal.pricingOutputs.grossCost") is None:
        warnings.append("Proposal missing gross cost information")

    arrays = first_path(payload, ["proposal.pricingOutputs.design.arrays", "proposal.design.arrays"])
    if not arrays:
        warnings.append("Proposal missing panel/array information")

    return warnings
