# backend/integrations/__init__.py
# 외부 API 클라이언트

from .retry import RetryConfig, retry_async
from .quickbase_client import QuickBaseClient, UpsertResult
from .enerflo_client import EnerfloClient

__all__ = [
    "RetryConfig",
    "retry_async",
    "QuickBaseClient",
    "UpsertResult",
    "EnerfloClient",
]
