# backend/enrichment/enricher.py
# 업서트 이후 Enerflo API 추가 데이터 → 같은 레코드에 패치 (1회, best-effort)

import logging
from typing import Any, Dict, Optional

from integrations.enerflo_client import EnerfloClient, survey_id_from_install
from integrations.quickbase_client import QuickBaseClient, UpsertResult
from mapping.builder import RecordBuilder
from mapping.validator import FieldValidator


logger = logging.getLogger(__name__)


class DealEnricher:
    """
    Enrichment Pass

    install → survey (install 의 survey_id) → GraphQL deal 순으로 조회하고
    enrichment 매핑으로 패치를 만들어 이미 아는 record id 로 업데이트한다.

    어떤 단계에서 실패해도 로그만 남기고 종료 (재시도 없음, 예외 전파 없음)
    """

    def __init__(self, enerflo: EnerfloClient, quickbase: QuickBaseClient, builder: RecordBuilder,
                 validator: FieldValidator):
        self.enerflo = enerflo
        self.quickbase = quickbase
        self.builder = builder
        self.validator = validator

    async def fetch_context(self, deal_id: str) -> Dict[str, Any]:
        """enrichment 매핑 컨텍스트 (install / survey / survey_id / graph_deal / welcome_call)"""
        install = await self.enerflo.get_install(deal_id) or {}

        survey_id = survey_id_from_install(install)
        survey = await self.enerflo.get_survey(survey_id) if survey_id else None

        graph_deal = await self.enerflo.get_deal(deal_id) or {}

        return {
            "install": install,
            "survey_id": survey_id,
            "survey": survey or {},
            "graph_deal": graph_deal,
            "welcome_call": graph_deal.get("welcomeCall") or install.get("welcomeCall") or {},
        }

    async def enrich(self, deal_id: str, record_id: int, request_id: Optional[str] = None) -> Optional[UpsertResult]:
        tag = f"[{request_id}] " if request_id else ""
        try:
            logger.info("%sEnriching deal %s (record %s)", tag, deal_id, record_id)
            context = await self.fetch_context(deal_id)

            patch = self.builder.build_patch(context)
            if not patch.fields:
                logger.info("%sNo enrichment data for deal %s", tag, deal_id)
                return None

            validation = self.validator.validate(patch)
            if not validation.is_valid:
                logger.error("%sEnrichment patch for deal %s rejected: %s", tag, deal_id, "; ".join(validation.errors))
                return None

            result = await self.quickbase.update_record(record_id, patch.to_quickbase_row())
            logger.info("%sEnriched record %s with %d fields", tag, result.record_id, len(patch.fields))
            return result

        except Exception as e:
            logger.error("%sEnrichment failed for deal %s: %s", tag, deal_id, e, exc_info=True)
            return None
