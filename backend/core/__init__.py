# backend/core/__init__.py
# 공통 설정 / 예외

from .config import Settings, configure_logging, load_env_file
from .errors import (
    SyncError,
    PayloadShapeError,
    RecordValidationError,
    QuickBaseError,
    EnerfloAPIError,
)

__all__ = [
    "Settings",
    "configure_logging",
    "load_env_file",
    "SyncError",
    "PayloadShapeError",
    "RecordValidationError",
    "QuickBaseError",
    "EnerfloAPIError",
]
