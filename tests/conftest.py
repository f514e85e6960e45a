# tests/conftest.py
# Pytest 공통 설정 및 Fixtures

import json
import re
import copy
import pytest
import sys
import os

import httpx

# 백엔드 경로 추가
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from core.config import Settings, DATA_DIR
from mapping.catalog import FieldCatalog
from mapping.field_table import FieldTable
from mapping.builder import RecordBuilder
from mapping.validator import FieldValidator


WHERE_RE = re.compile(r"\{(\d+)\.EX\.'((?:[^'\\]|\\.)*)'\}")


class FakeQuickBase:
    """
    QuickBase records API 인메모리 대역 (httpx.MockTransport 핸들러)

    - POST /records/query: {6.EX.'key'} 필터
    - POST /records: "3" 있으면 update, 없으면 create
    - failures: 앞에서부터 하나씩 소비되는 HTTP 상태 코드
    """

    def __init__(self, key_field: int = 6, first_id: int = 101):
        self.key_field = str(key_field)
        self.records = {}
        self.requests = []
        self.failures = []
        self._next_id = first_id

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append((request.url.path, body))

        if self.failures:
            status = self.failures.pop(0)
            return httpx.Response(status, json={"message": f"forced {status}", "description": "test"})

        if request.url.path.endswith("/records/query"):
            return self._query(body)
        if request.url.path.endswith("/records"):
            return self._write(body)
        return httpx.Response(404, json={"message": "Not found"})

    def _query(self, body):
        match = WHERE_RE.search(body.get("where", ""))
        field_id, key = match.group(1), match.group(2).replace("\\'", "'")
        data = [
            {"3": {"value": rid}}
            for rid, fields in self.records.items()
            if str(fields.get(field_id, {}).get("value")) == key
        ]
        return httpx.Response(200, json={"data": data, "metadata": {"totalRecords": len(data)}})

    def _write(self, body):
        created, updated = [], []
        for row in body["data"]:
            row = copy.deepcopy(row)
            rid = row.pop("3", {}).get("value")
            if rid is None:
                rid = self._next_id
                self._next_id += 1
                self.records[rid] = row
                created.append(rid)
            else:
                self.records.setdefault(rid, {}).update(row)
                updated.append(rid)
        return httpx.Response(200, json={
            "data": [],
            "metadata": {"createdRecordIds": created, "updatedRecordIds": updated,
                         "unchangedRecordIds": [], "totalNumberOfRecordsProcessed": len(body["data"])},
        })

    @property
    def writes(self):
        return [body for path, body in self.requests if path.endswith("/records")]

    @property
    def queries(self):
        return [body for path, body in self.requests if path.endswith("/records/query")]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class FakeEnerflo:
    """Enerflo install / survey / GraphQL 대역"""

    def __init__(self, install=None, survey=None, deal=None, fail_status=None):
        self.install = install
        self.survey = survey
        self.deal = deal
        self.fail_status = fail_status
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"error": "forced"})

        path = request.url.path
        if path.startswith("/api/v3/installs/find/"):
            return httpx.Response(200, json=self.install) if self.install else httpx.Response(404)
        if path.startswith("/api/v3/surveys/"):
            return httpx.Response(200, json=self.survey) if self.survey else httpx.Response(404)
        if path.endswith("/graphql"):
            return httpx.Response(200, json={"data": {"deal": self.deal}})
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings():
    """테스트용 설정 (재시도 대기 없음)"""
    return Settings(
        qb_realm="kin.quickbase.com",
        qb_table_id="btest123",
        qb_user_token="b123_test_token",
        qb_retry_attempts=3,
        qb_retry_base_delay=0,
        qb_retry_max_delay=0,
        enerflo_api_key="enerflo_test_key",
        enerflo_retry_attempts=3,
        enerflo_retry_base_delay=0,
        enerflo_retry_max_delay=0,
        log_level="DEBUG",
    )


@pytest.fixture
def field_table():
    return FieldTable.from_yaml(DATA_DIR / "field_map.yaml")


@pytest.fixture
def catalog():
    return FieldCatalog.from_csv(DATA_DIR / "quickbase_fields.csv")


@pytest.fixture
def builder(field_table):
    return RecordBuilder(field_table)


@pytest.fixture
def validator(catalog):
    return FieldValidator(catalog)


@pytest.fixture
def fake_quickbase():
    return FakeQuickBase()


@pytest.fixture
def minimal_payload():
    """필수 엔티티만 있는 최소 페이로드"""
    return {
        "event": "deal.projectSubmitted",
        "payload": {
            "deal": {"id": "D1"},
            "customer": {"id": "C1", "firstName": "Jane", "lastName": "Doe"},
            "proposal": {"id": "P1", "pricingOutputs": {"design": {"arrays": []}}},
        },
    }


@pytest.fixture
def full_payload():
    """실제 프로젝트 제출 이벤트와 같은 모양의 페이로드"""
    return {
        "event": "deal.projectSubmitted",
        "payload": {
            "initiatedBy": "user_42",
            "targetOrg": "org_kin",
            "deal": {
                "id": "deal_abc123",
                "status": "submitted",
                "submittedAt": "2025-03-14T15:09:26Z",
                "salesRep": {"id": "rep_7"},
                "files": [
                    {"source": "full-utility-bill", "name": "bill.pdf", "url": "https://files.enerflo.io/bill.pdf"},
                    {"source": "signedContractFiles", "name": "contract.pdf", "url": "https://files.enerflo.io/contract.pdf"},
                    {"source": "tree-quote", "name": "quote.pdf", "url": "not a url"},
                ],
                "state": {
                    "hasSignedContract": True,
                    "hasDesign": "yes",
                    "financingStatus": "approved",
                    "site-survey": {"schedule-site-survey": True, "site-survey-selection": "Virtual"},
                    "additional-work-substage": {
                        "is-there-additional-work": "true",
                        "tree-removal-cost": "$1,250.00",
                    },
                    "notes-comments": "Customer prefers morning installs",
                },
            },
            "customer": {
                "id": "cust_9",
                "firstName": "Jane",
                "lastName": "Doe",
                "email": "jane.doe@example.com",
                "phone": "(555) 123-4567",
            },
            "proposal": {
                "id": "prop_55",
                "pricingOutputs": {
                    "grossCost": 42000,
                    "netCost": "29,400",
                    "federalRebateTotal": 12600,
                    "downPayment": 0.1,
                    "dealerFeePercent": 18,
                    "deal": {
                        "projectAddress": {
                            "line1": "1 Solar Way",
                            "city": "Phoenix",
                            "state": "AZ",
                            "postalCode": "85001",
                            "lat": 33.45,
                            "lng": -112.07,
                        }
                    },
                    "design": {
                        "id": "design_1",
                        "offset": 0.95,
                        "firstYearProduction": 14500,
                        "arrays": [
                            {"moduleCount": 10, "module": {"capacity": 400, "model": "Q.PEAK 400", "manufacturer": "Qcells"}},
                            {"moduleCount": 15, "module": {"capacity": 400, "model": "Q.PEAK 400", "manufacturer": "Qcells"}},
                        ],
                        "inverters": [{"manufacturer": "Enphase", "model": "IQ8+", "count": 25}],
                    },
                    "calculatedValueAdders": [
                        {"displayName": "Critter Guard", "amount": 500, "ppw": 0.05, "quantity": 1},
                        {"displayName": "Roof Warranty", "amount": 300, "ppw": 0.03},
                    ],
                    "calculatedSystemAdders": [
                        {"displayName": "Main Panel Upgrade", "amount": 2000, "ppw": 0.2, "category": "Electrical"},
                        {"displayName": "Trenching", "amount": 800, "ppw": 0.08},
                        {"displayName": "Metal Roof", "amount": 1200, "ppw": 0.12},
                        {"displayName": "Ground Mount", "amount": 3000, "ppw": 0.3},
                    ],
                },
            },
        },
    }
