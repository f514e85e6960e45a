# backend/mapping/coercion.py
# 원시 값 → QuickBase 필드 타입 변환 (관대한 파싱 + 타입별 기본값)

import re
import json
import math
import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel


logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    """QuickBase 필드 타입 (스키마 export 라벨 그대로)"""
    NUMERIC = "Numeric"
    CURRENCY = "Currency"
    PERCENT = "Percent"
    DATE_TIME = "Date / Time"
    CHECKBOX = "Checkbox"
    EMAIL = "Email"
    PHONE = "Phone Number"
    URL = "URL"
    TEXT = "Text"
    TEXT_MULTILINE = "Text - Multi-line"
    TEXT_MULTIPLE_CHOICE = "Text - Multiple Choice"

    @classmethod
    def parse(cls, label: str) -> Optional["FieldType"]:
        """스키마 라벨 → FieldType (공백/대소문자 차이 허용)"""
        normalized = re.sub(r"\s+", " ", (label or "").strip()).lower()
        normalized = normalized.replace("date/time", "date / time")
        for member in cls:
            if member.value.lower() == normalized:
                return member
        return None


NUMERIC_TYPES = {FieldType.NUMERIC, FieldType.CURRENCY, FieldType.PERCENT}
TEXT_TYPES = {FieldType.TEXT, FieldType.TEXT_MULTILINE, FieldType.TEXT_MULTIPLE_CHOICE}

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NUMBER_NOISE_RE = re.compile(r"[$,%\s]")
PHONE_NOISE_RE = re.compile(r"[^\d+]")

TRUE_WORDS = {"true", "yes", "1", "on", "checked"}
FALSE_WORDS = {"false", "no", "0", "off", "unchecked"}

MIN_PHONE_LENGTH = 10

# 이 값보다 큰 epoch 숫자는 밀리초로 간주
EPOCH_MS_THRESHOLD = 1e11

DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
)


class CoercionWarning(BaseModel):
    """변환 경고 (값은 기본값/빈 값으로 대체됨)"""
    field_id: Optional[int] = None
    field_type: str
    raw_value: Any = None
    message: str

    def __str__(self) -> str:
        where = f"Field {self.field_id}" if self.field_id is not None else "Value"
        return f"{where} ({self.field_type}): {self.message}"


def iso_timestamp(dt: Optional[datetime] = None) -> str:
    """UTC ISO-8601 (밀리초, Z 접미사)"""
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_datetime(value: Any) -> Optional[datetime]:
    """datetime / date / epoch / ISO 문자열 → aware datetime (실패 시 None)"""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        seconds = value / 1000 if abs(value) > EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = None
        if parsed is None:
            for fmt in DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return None


def is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc) and " " not in value


class TypeCoercer:
    """
    필드 타입별 변환기

    - None / "" → 타입별 기본값 (파서 호출 안 함)
    - 파싱 실패 → 기본값 또는 "" + warning
    - 한 번 변환한 값을 다시 넣어도 같은 값 (idempotent)

    빌드 1회마다 새 인스턴스 사용 (warnings 누적)
    """

    def __init__(self):
        self.warnings: List[CoercionWarning] = []

    def coerce(self, value: Any, field_type: Any, field_id: Optional[int] = None) -> Any:
        ftype = field_type if isinstance(field_type, FieldType) else FieldType.parse(str(field_type))

        if ftype is None:
            self._warn(field_id, str(field_type), value, f"unknown field type '{field_type}', stored as text")
            return self._to_text(value)

        if value is None or (isinstance(value, str) and value == ""):
            return self.default_for(ftype)

        if ftype in NUMERIC_TYPES:
            return self._to_number(value, ftype, field_id)
        if ftype == FieldType.DATE_TIME:
            return self._to_datetime(value, field_id)
        if ftype == FieldType.CHECKBOX:
            return self._to_checkbox(value, field_id)
        if ftype == FieldType.EMAIL:
            return self._to_email(value, field_id)
        if ftype == FieldType.PHONE:
            return self._to_phone(value, field_id)
        if ftype == FieldType.URL:
            return self._to_url(value, field_id)
        return self._to_text(value)

    @staticmethod
    def default_for(field_type: FieldType) -> Any:
        if field_type in NUMERIC_TYPES:
            return 0
        if field_type == FieldType.CHECKBOX:
            return False
        if field_type == FieldType.DATE_TIME:
            return iso_timestamp()
        return ""

    # ─────────────────────────────────────────────────────────────────────
    # 타입별 변환
    # ─────────────────────────────────────────────────────────────────────

    def _to_number(self, value: Any, ftype: FieldType, field_id: Optional[int]) -> Any:
        if isinstance(value, bool):
            return int(value)

        if isinstance(value, (int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                self._warn(field_id, ftype.value, value, "non-finite number, defaulted to 0")
                return 0
            return value

        if isinstance(value, str):
            cleaned = NUMBER_NOISE_RE.sub("", value)
            try:
                return int(cleaned)
            except ValueError:
                pass
            try:
                number = float(cleaned)
            except ValueError:
                number = None
            if number is not None and math.isfinite(number):
                return number

        self._warn(field_id, ftype.value, value, f"expected {ftype.value.lower()}, got {value!r}; defaulted to 0")
        return 0

    def _to_datetime(self, value: Any, field_id: Optional[int]) -> str:
        parsed = parse_datetime(value)
        if parsed is None:
            self._warn(field_id, FieldType.DATE_TIME.value, value,
                       f"unparseable date {value!r}; substituted current timestamp")
            return iso_timestamp()
        return iso_timestamp(parsed)

    def _to_checkbox(self, value: Any, field_id: Optional[int]) -> bool:
        if isinstance(value, bool):
            return value

        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in TRUE_WORDS:
                return True
            if lowered in FALSE_WORDS:
                return False

        elif isinstance(value, (int, float)):
            return value != 0

        elif isinstance(value, (dict, list)):
            return bool(value)

        self._warn(field_id, FieldType.CHECKBOX.value, value, f"unrecognized checkbox value {value!r}; defaulted to false")
        return False

    def _to_email(self, value: Any, field_id: Optional[int]) -> str:
        email = str(value).strip()
        if not email:
            return ""
        if not EMAIL_RE.match(email):
            self._warn(field_id, FieldType.EMAIL.value, value, f"invalid email {value!r}; dropped")
            return ""
        return email

    def _to_phone(self, value: Any, field_id: Optional[int]) -> str:
        raw = str(value).strip()
        if not raw:
            return ""
        phone = PHONE_NOISE_RE.sub("", raw)
        if len(phone) < MIN_PHONE_LENGTH:
            self._warn(field_id, FieldType.PHONE.value, value, f"invalid phone number {value!r}; dropped")
            return ""
        return phone

    def _to_url(self, value: Any, field_id: Optional[int]) -> str:
        url = str(value).strip()
        if not url:
            return ""
        if not is_valid_url(url):
            self._warn(field_id, FieldType.URL.value, value, f"invalid URL {value!r}; dropped")
            return ""
        return url

    @staticmethod
    def _to_text(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (dict, list)):
            return json.dumps(value, default=str)
        return str(value)

    def _warn(self, field_id: Optional[int], field_type: str, raw: Any, message: str):
        warning = CoercionWarning(field_id=field_id, field_type=field_type, raw_value=raw, message=message)
        self.warnings.append(warning)
        logger.warning(str(warning))
