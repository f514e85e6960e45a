# backend/core/errors.py
# 동기화 파이프라인 예외 계층

from typing import List, Optional


class SyncError(Exception):
    """모든 동기화 에러의 베이스"""

    status_code = 500


class PayloadShapeError(SyncError):
    """
    웹훅 페이로드 구조 에러 (deal/customer/proposal 또는 id 누락)

    재시도 없음 → 4xx 응답
    """

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RecordValidationError(SyncError):
    """카탈로그 검증 실패 - 레코드를 쓰면 안 됨"""

    status_code = 422

    def __init__(self, errors: List[str]):
        super().__init__(f"Field validation failed with {len(errors)} error(s): " + "; ".join(errors[:5]))
        self.errors = errors


class QuickBaseError(SyncError):
    """QuickBase API 에러 베이스"""

    status_code = 502
    retryable = False

    def __init__(self, message: str, http_status: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.http_status = http_status
        self.details = details or {}


class AuthenticationError(QuickBaseError):
    """401 - QB_USER_TOKEN 확인 필요"""


class PermissionDeniedError(QuickBaseError):
    """403 - 테이블 권한 없음"""


class SchemaValidationError(QuickBaseError):
    """400 - 필드 타입/ID 불일치"""


class TableNotFoundError(QuickBaseError):
    """404 - QB_TABLE_ID 설정 오류"""


class RateLimitedError(QuickBaseError):
    """429 - 백오프 후 재시도"""

    retryable = True

    def __init__(self, message: str, http_status: Optional[int] = 429, details: Optional[dict] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message, http_status, details)
        self.retry_after = retry_after


class ServerError(QuickBaseError):
    """5xx - 백오프 후 재시도"""

    retryable = True


class QuickBaseUnavailableError(QuickBaseError):
    """타임아웃 / 연결 실패 - 백오프 후 재시도"""

    retryable = True


class UpsertFailedError(QuickBaseError):
    """쓰기 응답에 created/updated 레코드 ID가 없음"""


class QuickBaseNotConfiguredError(QuickBaseError):
    """QB_REALM / QB_TABLE_ID / QB_USER_TOKEN 미설정"""

    status_code = 503


class EnerfloAPIError(SyncError):
    """Enerflo API 에러 (enrichment 전용, 응답에 노출 안 됨)"""

    def __init__(self, message: str, http_status: Optional[int] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.http_status = http_status
        # 429 / 5xx / 전송 실패만 재시도
        if retryable is None:
            retryable = http_status is not None and (http_status == 429 or http_status >= 500)
        self.retryable = retryable
