# backend/integrations/quickbase_client.py
# QuickBase REST API 클라이언트 (조회 → 생성/업데이트)

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from core.config import Settings
from core.errors import (
    AuthenticationError,
    PermissionDeniedError,
    QuickBaseError,
    QuickBaseNotConfiguredError,
    QuickBaseUnavailableError,
    RateLimitedError,
    SchemaValidationError,
    ServerError,
    TableNotFoundError,
    UpsertFailedError,
)
from .retry import RetryConfig, retry_async


logger = logging.getLogger(__name__)


USER_AGENT = "enerflo-quickbase-sync/1.0"

STATUS_ERRORS = {
    400: SchemaValidationError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: TableNotFoundError,
}


class UpsertResult(BaseModel):
    """쓰기 결과 - action: created | updated | unchanged"""
    record_id: int
    action: str
    fields_written: int = 0


def escape_query_value(value: str) -> str:
    """QuickBase 쿼리 문자열 리터럴 이스케이프"""
    return str(value).replace("\\", "\\\\").replace("'", "\\'")


def _ids(body: Dict[str, Any], key: str) -> List[int]:
    metadata = body.get("metadata") or {}
    ids = metadata.get(key)
    if ids is None:
        ids = body.get(key)
    return [int(i) for i in ids or []]


class QuickBaseClient:
    """
    QuickBase 업서트 클라이언트

    1. business key 로 기존 레코드 조회 (record id 만 select)
    2. 있으면 record id 포함 write (update), 없으면 field 만 write (create)
    3. 응답에 record id 가 정확히 1개여야 성공

    429 / 5xx / 타임아웃은 RetryConfig 에 따라 재시도, 나머지는 즉시 실패
    """

    def __init__(
        self,
        realm: str,
        table_id: str,
        user_token: str,
        base_url: str = "https://api.quickbase.com/v1",
        timeout: float = 15.0,
        key_field: int = 6,
        record_id_field: int = 3,
        retry: Optional[RetryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.realm = realm
        self.table_id = table_id
        self.base_url = base_url.rstrip("/")
        self.key_field = key_field
        self.record_id_field = record_id_field
        self.retry = retry or RetryConfig()
        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(timeout=timeout)
        self.headers = {
            "QB-Realm-Hostname": realm,
            "Authorization": f"QB-USER-TOKEN {user_token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        key_field: int = 6,
        record_id_field: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "QuickBaseClient":
        if not settings.quickbase_configured:
            raise QuickBaseNotConfiguredError("QuickBase credentials are not configured (QB_REALM, QB_TABLE_ID, QB_USER_TOKEN)")
        return cls(
            realm=settings.qb_realm,
            table_id=settings.qb_table_id,
            user_token=settings.qb_user_token,
            base_url=settings.qb_base_url,
            timeout=settings.qb_timeout,
            key_field=key_field,
            record_id_field=record_id_field,
            retry=RetryConfig(
                max_attempts=settings.qb_retry_attempts,
                base_delay=settings.qb_retry_base_delay,
                max_delay=settings.qb_retry_max_delay,
            ),
            client=client,
        )

    async def close(self):
        if self._owns_client:
            await self.http_client.aclose()

    # ─────────────────────────────────────────────────────────────────────
    # 조회 / 쓰기
    # ─────────────────────────────────────────────────────────────────────

    async def find_record_id(self, business_key: str) -> Optional[int]:
        """business key 필드 일치 레코드의 record id (없으면 None)"""
        body = {
            "from": self.table_id,
            "select": [self.record_id_field],
            "where": f"{{{self.key_field}.EX.'{escape_query_value(business_key)}'}}",
        }
        response = await self._post("/records/query", body, f"query deal {business_key}")

        rows = response.get("data") or []
        if not rows:
            return None
        if len(rows) > 1:
            logger.warning("Business key %s matches %d records; using the first", business_key, len(rows))

        cell = rows[0].get(str(self.record_id_field)) or {}
        value = cell.get("value") if isinstance(cell, dict) else cell
        return int(value) if value is not None else None

    async def upsert(self, business_key: str, row: Dict[str, Dict[str, Any]]) -> UpsertResult:
        """조회 후 생성 또는 업데이트"""
        row = dict(row)
        row[str(self.key_field)] = {"value": business_key}

        existing_id = await self.find_record_id(business_key)
        if existing_id is not None:
            logger.info("Deal %s exists as record %d, updating", business_key, existing_id)
            return await self.update_record(existing_id, row)

        logger.info("Deal %s not found, creating record", business_key)
        return await self._write(row)

    async def update_record(self, record_id: int, row: Dict[str, Dict[str, Any]]) -> UpsertResult:
        """이미 아는 record id 로 업데이트 (재조회 없음)"""
        row = dict(row)
        row[str(self.record_id_field)] = {"value": record_id}
        return await self._write(row)

    async def _write(self, row: Dict[str, Dict[str, Any]]) -> UpsertResult:
        body = {
            "to": self.table_id,
            "data": [row],
            "fieldsToReturn": [self.record_id_field],
        }
        response = await self._post("/records", body, "write record")

        created = _ids(response, "createdRecordIds")
        updated = _ids(response, "updatedRecordIds")
        unchanged = _ids(response, "unchangedRecordIds")
        fields_written = len([k for k in row if k != str(self.record_id_field)])

        for action, ids in (("created", created), ("updated", updated), ("unchanged", unchanged)):
            if ids:
                if len(created) + len(updated) + len(unchanged) > 1:
                    raise UpsertFailedError(
                        f"QuickBase write affected {len(created) + len(updated) + len(unchanged)} records, expected 1",
                        details=response,
                    )
                logger.info("QuickBase record %d %s (%d fields)", ids[0], action, fields_written)
                return UpsertResult(record_id=ids[0], action=action, fields_written=fields_written)

        line_errors = (response.get("metadata") or {}).get("lineErrors") or {}
        if line_errors:
            raise SchemaValidationError(f"QuickBase rejected the record: {line_errors}", http_status=207, details=response)
        raise UpsertFailedError("QuickBase write returned no created or updated record id", details=response)

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    async def _post(self, path: str, body: Dict[str, Any], description: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"

        async def attempt() -> Dict[str, Any]:
            try:
                response = await self.http_client.post(url, json=body, headers=self.headers)
            except httpx.TimeoutException as e:
                raise QuickBaseUnavailableError(f"QuickBase request timed out: {e}") from e
            except httpx.HTTPError as e:
                raise QuickBaseUnavailableError(f"QuickBase request failed: {e}") from e
            return self._handle_response(response)

        return await retry_async(attempt, self.retry, description=f"QuickBase {description}")

    @staticmethod
    def _handle_response(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}
        if not isinstance(payload, dict):
            payload = {"data": payload}

        status = response.status_code
        if status < 400:
            return payload

        message = payload.get("message") or response.reason_phrase or "QuickBase error"
        description = payload.get("description")
        if description:
            message = f"{message}: {description}"

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                retry_after_seconds = float(retry_after) if retry_after else None
            except ValueError:
                retry_after_seconds = None
            raise RateLimitedError(f"QuickBase rate limited: {message}", http_status=status,
                                   details=payload, retry_after=retry_after_seconds)
        if status >= 500:
            raise ServerError(f"QuickBase server error {status}: {message}", http_status=status, details=payload)

        error_cls = STATUS_ERRORS.get(status, QuickBaseError)
        raise error_cls(f"QuickBase error {status}: {message}", http_status=status, details=payload)
