# backend/integrations/enerflo_client.py
# Enerflo API 클라이언트 (enrichment 전용: install / survey / GraphQL deal)

import logging
from typing import Any, Dict, Optional

import httpx

from core.config import Settings
from core.errors import EnerfloAPIError

from .retry import RetryConfig, retry_async


logger = logging.getLogger(__name__)


DEAL_QUERY = """
query GetDeal($dealId: ID!) {
  deal(id: $dealId) {
    id
    status
    salesRep { id name email }
    setter { id name email }
    closer { id name email }
    welcomeCall {
      id
      date
      duration
      recordingUrl
      transcript
      agent
      outcome
      questions
      answers
    }
    notes {
      id
      text
      author
      category
      createdAt
    }
  }
}
"""

SURVEY_ID_KEYS = ("survey_id", "surveyId")


def survey_id_from_install(install: Dict[str, Any]) -> Optional[str]:
    """install 객체에서 survey id 추출 (필드명이 버전마다 다름)"""
    for key in SURVEY_ID_KEYS:
        if install.get(key):
            return str(install[key])
    survey = install.get("survey")
    if isinstance(survey, dict) and survey.get("id"):
        return str(survey["id"])
    return None


class EnerfloClient:
    """
    Enerflo REST (v3) + GraphQL (v2) 클라이언트

    404 는 None, 그 외 실패는 EnerfloAPIError (429 / 5xx / 타임아웃은 재시도)
    """

    def __init__(
        self,
        api_key: str,
        org_id: str = "kin",
        base_url: str = "https://api.enerflo.io",
        timeout: float = 10.0,
        retry: Optional[RetryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.org_id = org_id
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryConfig()
        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "EnerfloClient":
        return cls(
            api_key=settings.enerflo_api_key or "",
            org_id=settings.enerflo_org_id,
            base_url=settings.enerflo_base_url,
            timeout=settings.enerflo_timeout,
            retry=RetryConfig(
                max_attempts=settings.enerflo_retry_attempts,
                base_delay=settings.enerflo_retry_base_delay,
                max_delay=settings.enerflo_retry_max_delay,
            ),
            client=client,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "x-org": self.org_id,
            "Content-Type": "application/json",
        }

    async def close(self):
        if self._owns_client:
            await self.http_client.aclose()

    async def get_install(self, deal_id: str) -> Optional[Dict[str, Any]]:
        """전체 install 객체 (customer / salesRep / installer / survey_id)"""
        return await self._get(f"/api/v3/installs/find/{deal_id}", f"install {deal_id}")

    async def get_survey(self, survey_id: str) -> Optional[Dict[str, Any]]:
        """welcome call survey 답변"""
        return await self._get(f"/api/v3/surveys/{survey_id}", f"survey {survey_id}")

    async def get_deal(self, deal_id: str) -> Optional[Dict[str, Any]]:
        """GraphQL deal (setter / closer / welcomeCall / notes)"""
        body = {"query": DEAL_QUERY, "variables": {"dealId": deal_id}}
        payload = await self._request("POST", "/v2/graphql", f"GraphQL deal {deal_id}", json=body)
        if payload is None:
            return None

        if payload.get("errors"):
            messages = "; ".join(str(e.get("message", e)) for e in payload["errors"])
            raise EnerfloAPIError(f"Enerflo GraphQL errors for deal {deal_id}: {messages}")

        return (payload.get("data") or {}).get("deal")

    async def _get(self, path: str, description: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", path, description)

    async def _request(self, method: str, path: str, description: str, **kwargs) -> Optional[Dict[str, Any]]:
        """404 → None, 429 / 5xx / 전송 실패는 RetryConfig 에 따라 재시도"""
        url = f"{self.base_url}{path}"

        async def attempt() -> Optional[Dict[str, Any]]:
            try:
                response = await self.http_client.request(method, url, headers=self._headers(), **kwargs)
            except httpx.HTTPError as e:
                raise EnerfloAPIError(f"Enerflo request for {description} failed: {e}", retryable=True) from e

            if response.status_code == 404:
                logger.warning("Enerflo %s not found", description)
                return None
            if response.status_code >= 400:
                raise EnerfloAPIError(f"Enerflo API error {response.status_code} for {description}",
                                      http_status=response.status_code)

            data = response.json()
            return data if isinstance(data, dict) else {"data": data}

        return await retry_async(attempt, self.retry, description=f"Enerflo {description}")
