# backend/mapping/validator.py
# 빌드된 레코드 ↔ 필드 카탈로그 타입 검증

import math
import logging
from typing import Any, List

from pydantic import BaseModel, Field

from .builder import BuildResult
from .catalog import FieldCatalog
from .coercion import EMAIL_RE, MIN_PHONE_LENGTH, NUMERIC_TYPES, FieldType, is_valid_url, parse_datetime


logger = logging.getLogger(__name__)


class ValidationResult(BaseModel):
    """errors 는 쓰기 차단, warnings 는 로그만"""
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class FieldValidator:
    """
    레코드 검증

    - 카탈로그에 없는 필드 ID → error
    - Numeric / Currency / Percent: 유한 숫자 아니면 error
    - Date / Time: 파싱 불가 → error
    - Checkbox: bool 아니면 warning
    - Email / Phone / URL 형식 불량 → warning
    """

    def __init__(self, catalog: FieldCatalog):
        self.catalog = catalog

    def validate(self, record: BuildResult) -> ValidationResult:
        result = ValidationResult()

        for field_id, field_value in record.fields.items():
            definition = self.catalog.get(field_id)
            if definition is None:
                result.errors.append(f"Field {field_id} ({field_value.comment}): unknown field id")
                continue

            label = f"Field {field_id} ({definition.label})"
            value = field_value.value
            ftype = definition.type

            if ftype in NUMERIC_TYPES:
                if not _is_number(value):
                    result.errors.append(f"{label}: expected finite {ftype.value.lower()}, got {value!r}")

            elif ftype == FieldType.DATE_TIME:
                if parse_datetime(value) is None:
                    result.errors.append(f"{label}: unparseable date {value!r}")

            elif ftype == FieldType.CHECKBOX:
                if not isinstance(value, bool):
                    result.warnings.append(f"{label}: expected boolean, got {value!r}")

            elif ftype == FieldType.EMAIL:
                if value and not EMAIL_RE.match(str(value)):
                    result.warnings.append(f"{label}: malformed email {value!r}")

            elif ftype == FieldType.PHONE:
                if value and len(str(value)) < MIN_PHONE_LENGTH:
                    result.warnings.append(f"{label}: malformed phone {value!r}")

            elif ftype == FieldType.URL:
                if value and not is_valid_url(str(value)):
                    result.warnings.append(f"{label}: malformed URL {value!r}")

        for warning in result.warnings:
            logger.warning("Validation warning: %s", warning)
        if result.errors:
            logger.error("Record validation failed with %d errors: %s",
                         len(result.errors), "; ".join(result.errors[:5]))

        return result
