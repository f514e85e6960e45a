# backend/webhooks/__init__.py
# 웹훅 수신 라우터 / 처리

from .enerflo_webhook import router
from .processor import DealSyncProcessor, SyncOutcome
from .payload import validate_webhook_payload

__all__ = ["router", "DealSyncProcessor", "SyncOutcome", "validate_webhook_payload"]
