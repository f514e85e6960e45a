# backend/core/config.py
# 서비스 설정 - 환경 변수에서 한 번 로드해서 주입

import os
import logging
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel


DATA_DIR = Path(__file__).resolve().parent.parent / "mapping" / "data"

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"


class Settings(BaseModel):
    """런타임 설정 (Enerflo → QuickBase 브릿지)"""

    # QuickBase
    qb_realm: Optional[str] = None
    qb_table_id: Optional[str] = None
    qb_user_token: Optional[str] = None
    qb_base_url: str = "https://api.quickbase.com/v1"
    qb_timeout: float = 15.0
    qb_retry_attempts: int = 3
    qb_retry_base_delay: float = 1.0
    qb_retry_max_delay: float = 10.0

    # Enerflo
    enerflo_api_key: Optional[str] = None
    enerflo_org_id: str = "kin"
    enerflo_base_url: str = "https://api.enerflo.io"
    enerflo_timeout: float = 10.0
    enerflo_retry_attempts: int = 3
    enerflo_retry_base_delay: float = 1.0
    enerflo_retry_max_delay: float = 10.0

    # Mapping data files
    field_map_path: Path = DATA_DIR / "field_map.yaml"
    field_catalog_path: Path = DATA_DIR / "quickbase_fields.csv"

    # Server
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """환경 변수 → Settings"""
        defaults = cls()
        return cls(
            qb_realm=os.getenv("QB_REALM") or None,
            qb_table_id=os.getenv("QB_TABLE_ID") or None,
            qb_user_token=os.getenv("QB_USER_TOKEN") or None,
            qb_base_url=os.getenv("QB_BASE_URL", defaults.qb_base_url),
            qb_timeout=float(os.getenv("QB_TIMEOUT", defaults.qb_timeout)),
            qb_retry_attempts=int(os.getenv("QB_RETRY_ATTEMPTS", defaults.qb_retry_attempts)),
            qb_retry_base_delay=float(os.getenv("QB_RETRY_BASE_DELAY", defaults.qb_retry_base_delay)),
            qb_retry_max_delay=float(os.getenv("QB_RETRY_MAX_DELAY", defaults.qb_retry_max_delay)),
            enerflo_api_key=os.getenv("ENERFLO_API_KEY") or None,
            enerflo_org_id=os.getenv("ENERFLO_ORG_ID", defaults.enerflo_org_id),
            enerflo_base_url=os.getenv("ENERFLO_BASE_URL", defaults.enerflo_base_url),
            enerflo_timeout=float(os.getenv("ENERFLO_TIMEOUT", defaults.enerflo_timeout)),
            enerflo_retry_attempts=int(os.getenv("ENERFLO_RETRY_ATTEMPTS", defaults.enerflo_retry_attempts)),
            enerflo_retry_base_delay=float(os.getenv("ENERFLO_RETRY_BASE_DELAY", defaults.enerflo_retry_base_delay)),
            enerflo_retry_max_delay=float(os.getenv("ENERFLO_RETRY_MAX_DELAY", defaults.enerflo_retry_max_delay)),
            field_map_path=Path(os.getenv("FIELD_MAP_PATH", str(defaults.field_map_path))),
            field_catalog_path=Path(os.getenv("FIELD_CATALOG_PATH", str(defaults.field_catalog_path))),
            port=int(os.getenv("PORT", defaults.port)),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )

    @property
    def quickbase_configured(self) -> bool:
        return bool(self.qb_realm and self.qb_table_id and self.qb_user_token)

    @property
    def enerflo_configured(self) -> bool:
        return bool(self.enerflo_api_key)


def configure_logging(level: str = "INFO"):
    """루트 로거 설정 (앱 시작 시 1회)"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_env_file(path: Optional[Path] = None) -> bool:
    """.env → os.environ (이미 설정된 변수는 유지)"""
    return load_dotenv(path or find_dotenv(usecwd=True))
