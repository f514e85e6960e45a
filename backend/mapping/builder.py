# backend/mapping/builder.py
# 웹훅 페이로드 → QuickBase 레코드 (매핑 테이블 평가)

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.errors import PayloadShapeError
from .coercion import CoercionWarning, TypeCoercer
from .derivations import DERIVATIONS, get_derivation
from .field_table import FieldMapping, FieldTable
from .paths import first_path, get_path


logger = logging.getLogger(__name__)


REQUIRED_ENTITIES = ("deal", "customer", "proposal")

DESIGN_PATHS = ["proposal.pricingOutputs.design", "proposal.design"]
ADDRESS_PATHS = [
    "proposal.pricingOutputs.deal.projectAddress",
    "deal.projectAddress",
    "deal.address",
    "customer.address",
]
FILES_PATHS = ["deal.files", "proposal.pricingOutputs.files", "proposal.files", "files"]
VALUE_ADDER_PATHS = ["calculatedValueAdders", "valueAdders", "adderPricing.valueAdders"]
SYSTEM_ADDER_PATHS = ["calculatedSystemAdders", "systemAdders", "adderPricing.systemAdders"]


class FieldValue(BaseModel):
    """레코드 필드 값 (comment = 사람이 읽는 라벨)"""
    value: Any = None
    comment: str = ""


class BuildResult(BaseModel):
    """빌드 결과: 필드 ID → 값 + 변환 경고"""
    fields: Dict[int, FieldValue] = Field(default_factory=dict)
    warnings: List[CoercionWarning] = Field(default_factory=list)

    def to_quickbase_row(self) -> Dict[str, Dict[str, Any]]:
        """QuickBase write API 행 형태 {"<fid>": {"value": v}}"""
        return {str(fid): {"value": fv.value} for fid, fv in self.fields.items()}

    def values(self) -> Dict[int, Any]:
        return {fid: fv.value for fid, fv in self.fields.items()}

    def __len__(self) -> int:
        return len(self.fields)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def build_context(webhook: Dict[str, Any]) -> Dict[str, Any]:
    """
    매핑 테이블이 참조하는 컨텍스트 루트 구성

    프로듀서 버전마다 design / files / adder 위치가 달라서 여기서 한 번 정규화한다.
    """
    payload = _as_dict(webhook.get("payload"))
    deal = _as_dict(payload.get("deal"))
    customer = _as_dict(payload.get("customer"))
    proposal = _as_dict(payload.get("proposal"))
    pricing = _as_dict(proposal.get("pricingOutputs"))

    roots = {"deal": deal, "customer": customer, "proposal": proposal, "files": payload.get("files")}

    return {
        "event": webhook.get("event"),
        "payload": payload,
        "deal": deal,
        "customer": customer,
        "proposal": proposal,
        "pricing": pricing,
        "design": _as_dict(first_path(roots, DESIGN_PATHS)),
        "state": _as_dict(deal.get("state")),
        "address": _as_dict(first_path(roots, ADDRESS_PATHS)),
        "files": _as_list(first_path(roots, FILES_PATHS)),
        "value_adders": _as_list(first_path(pricing, VALUE_ADDER_PATHS)),
        "system_adders": _as_list(first_path(pricing, SYSTEM_ADDER_PATHS)),
    }


def check_required_entities(webhook: Any):
    """deal / customer / proposal 중 하나라도 없으면 즉시 실패"""
    if not isinstance(webhook, dict):
        raise PayloadShapeError("webhook body must be a JSON object", field="body")

    payload = webhook.get("payload")
    if not isinstance(payload, dict):
        raise PayloadShapeError("missing required field: payload", field="payload")

    for entity in REQUIRED_ENTITIES:
        value = payload.get(entity)
        if not isinstance(value, dict) or not value:
            raise PayloadShapeError(f"missing required field: payload.{entity}", field=f"payload.{entity}")


class RecordBuilder:
    """
    매핑 테이블 × 소스 문서 → BuildResult

    - path: Path Extractor (후보 경로 순서대로)
    - derive: derivations 레지스트리
    - 값 없음: optional 이면 생략, 아니면 default → 타입 기본값
    """

    def __init__(self, table: FieldTable):
        self.table = table
        unknown = sorted({
            e.derive for e in list(table.fields) + list(table.enrichment)
            if e.derive and e.derive not in DERIVATIONS
        })
        if unknown:
            raise ValueError(f"field table references unknown derivations: {', '.join(unknown)}")

    def build(self, webhook: Dict[str, Any]) -> BuildResult:
        """메인 레코드 빌드 (필수 엔티티 없으면 PayloadShapeError)"""
        check_required_entities(webhook)
        context = build_context(webhook)
        result = self.evaluate(self.table.fields, context)

        logger.info("Built record for deal %s: %d fields, %d warnings",
                    context["deal"].get("id"), len(result.fields), len(result.warnings))
        return result

    def build_patch(self, context: Dict[str, Any]) -> BuildResult:
        """enrichment 패치 (소스가 있는 필드만)"""
        return self.evaluate(self.table.enrichment, context)

    def evaluate(self, entries: List[FieldMapping], context: Dict[str, Any]) -> BuildResult:
        coercer = TypeCoercer()
        fields: Dict[int, FieldValue] = {}

        for entry in entries:
            raw = self._extract(entry, context)

            if raw is None or raw == "":
                if entry.optional:
                    continue
                raw = entry.default

            fields[entry.id] = FieldValue(
                value=coercer.coerce(raw, entry.type, entry.id),
                comment=entry.label,
            )

        return BuildResult(fields=fields, warnings=coercer.warnings)

    @staticmethod
    def _extract(entry: FieldMapping, context: Dict[str, Any]) -> Optional[Any]:
        if entry.derive:
            return get_derivation(entry.derive)(context, **entry.args)
        if len(entry.paths) == 1:
            return get_path(context, entry.paths[0])
        return first_path(context, entry.paths)
