# tests/test_webhooks.py
# Webhook 엔드포인트 (기본 경로 + enrichment) 테스트

import pytest
from fastapi.testclient import TestClient
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from conftest import FakeEnerflo
from main import create_app


GRAPH_DEAL = {
    "id": "D1",
    "setter": {"id": "setter_1", "name": "Sam Setter"},
    "closer": {"id": "closer_1", "name": "Cole Closer"},
}


def make_client(settings, fake_quickbase, fake_enerflo=None):
    fake_enerflo = fake_enerflo or FakeEnerflo()
    app = create_app(settings, quickbase_http=fake_quickbase.client(), enerflo_http=fake_enerflo.client())
    return TestClient(app)


@pytest.fixture
def no_enrichment(settings):
    return settings.model_copy(update={"enerflo_api_key": None})


class TestPrimaryPath:
    """수신 → 매핑 → 업서트"""

    def test_minimal_payload_creates_record(self, no_enrichment, fake_quickbase, minimal_payload):
        with make_client(no_enrichment, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["dealId"] == "D1"
        assert data["customerId"] == "C1"
        assert data["proposalId"] == "P1"
        assert data["quickbaseRecordId"] == 101
        assert data["action"] == "created"
        assert data["fieldsWritten"] > 50
        assert data["processingTime"].endswith("ms")
        assert data["requestId"].startswith("req_")

        record = fake_quickbase.records[101]
        assert record["6"] == {"value": "D1"}
        assert record["7"] == {"value": "Jane Doe"}
        assert record["14"] == {"value": 0}
        assert "192" not in record

    def test_redelivery_updates_same_record(self, no_enrichment, fake_quickbase, minimal_payload):
        """같은 페이로드 두 번 → 레코드 1개"""
        with make_client(no_enrichment, fake_quickbase) as client:
            first = client.post("/webhook/enerflo", json=minimal_payload).json()
            second = client.post("/webhook/enerflo", json=minimal_payload).json()

        assert first["action"] == "created"
        assert second["action"] == "updated"
        assert second["quickbaseRecordId"] == first["quickbaseRecordId"]
        assert len(fake_quickbase.records) == 1

    def test_full_payload(self, no_enrichment, fake_quickbase, full_payload):
        with make_client(no_enrichment, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", json=full_payload)

        assert response.status_code == 200
        record = fake_quickbase.records[response.json()["quickbaseRecordId"]]
        assert record["15"] == {"value": 25}
        assert record["194"] == {"value": "Value"}
        assert record["39"] == {"value": 7800}

    def test_invalid_email_is_advisory(self, no_enrichment, fake_quickbase, minimal_payload):
        """잘못된 이메일 → 빈 값으로 저장 + 경고"""
        minimal_payload["payload"]["customer"]["email"] = "jane-at-example"
        with make_client(no_enrichment, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 200
        assert fake_quickbase.records[101]["10"] == {"value": ""}
        assert any("Field 10" in w for w in response.json()["warnings"])


class TestRejections:
    """치명적 에러 → QuickBase 호출 전 거절"""

    @pytest.mark.parametrize("path", [
        ("event",),
        ("payload", "deal", "id"),
        ("payload", "customer", "id"),
        ("payload", "proposal", "id"),
    ])
    def test_missing_required_field(self, no_enrichment, fake_quickbase, minimal_payload, path):
        target = minimal_payload
        for key in path[:-1]:
            target = target[key]
        del target[path[-1]]

        with make_client(no_enrichment, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert ".".join(path) in data["message"]
        assert "processingTime" in data
        assert fake_quickbase.requests == []

    def test_blank_customer_id(self, no_enrichment, fake_quickbase, minimal_payload):
        minimal_payload["payload"]["customer"]["id"] = "  "
        with make_client(no_enrichment, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 400
        assert fake_quickbase.requests == []

    def test_invalid_json(self, no_enrichment, fake_quickbase):
        with make_client(no_enrichment, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", content=b"{not json",
                                   headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_unknown_source(self, no_enrichment, fake_quickbase, minimal_payload):
        with make_client(no_enrichment, fake_quickbase) as client:
            response = client.post("/webhook/stripe", json=minimal_payload)
        assert response.status_code == 404

    def test_validation_error_blocks_write(self, no_enrichment, fake_quickbase, minimal_payload, tmp_path):
        """카탈로그에 없는 필드 ID → 422, 쓰기 없음"""
        field_map = tmp_path / "field_map.yaml"
        field_map.write_text(
            "business_key_field: 6\n"
            "fields:\n"
            "  - {id: 6, label: Enerflo Deal ID, type: Text, path: deal.id}\n"
            "  - {id: 9999, label: Mystery, type: Text, path: deal.id}\n"
        )
        settings = no_enrichment.model_copy(update={"field_map_path": field_map})

        with make_client(settings, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 422
        assert any("9999" in e for e in response.json()["errors"])
        assert fake_quickbase.requests == []

    def test_quickbase_auth_failure(self, no_enrichment, fake_quickbase, minimal_payload):
        fake_quickbase.failures = [401]
        with make_client(no_enrichment, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 502
        assert response.json()["error"] == "AuthenticationError"
        assert len(fake_quickbase.requests) == 1

    def test_quickbase_not_configured(self, no_enrichment, fake_quickbase, minimal_payload):
        settings = no_enrichment.model_copy(update={"qb_user_token": None})
        with make_client(settings, fake_quickbase) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 503
        assert fake_quickbase.requests == []


class TestEnrichmentAfterResponse:
    """응답 후 백그라운드 enrichment"""

    def test_enrichment_patches_record(self, settings, fake_quickbase, minimal_payload):
        fake_enerflo = FakeEnerflo(install={"installer": {"id": "installer_3"}}, deal=GRAPH_DEAL)
        with make_client(settings, fake_quickbase, fake_enerflo) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 200
        record = fake_quickbase.records[101]
        assert record["218"] == {"value": "Sam Setter"}
        assert record["219"] == {"value": "Cole Closer"}
        assert record["70"] == {"value": "installer_3"}
        assert len(fake_quickbase.queries) == 1

    def test_enrichment_failure_does_not_change_response(self, settings, fake_quickbase, minimal_payload):
        fake_enerflo = FakeEnerflo(fail_status=500)
        with make_client(settings, fake_quickbase, fake_enerflo) as client:
            response = client.post("/webhook/enerflo", json=minimal_payload)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(fake_enerflo.requests) == 3

    def test_enrichment_disabled_without_api_key(self, no_enrichment, fake_quickbase, minimal_payload):
        fake_enerflo = FakeEnerflo(deal=GRAPH_DEAL)
        with make_client(no_enrichment, fake_quickbase, fake_enerflo) as client:
            client.post("/webhook/enerflo", json=minimal_payload)

        assert fake_enerflo.requests == []
        assert "218" not in fake_quickbase.records[101]
