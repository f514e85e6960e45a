# backend/mapping/__init__.py
# 필드 매핑 레이어 (Enerflo 페이로드 → QuickBase 레코드)

from .paths import get_path, first_path
from .coercion import FieldType, TypeCoercer, CoercionWarning
from .catalog import FieldCatalog, FieldDefinition
from .field_table import FieldTable, FieldMapping
from .builder import RecordBuilder, BuildResult, FieldValue, build_context
from .validator import FieldValidator, ValidationResult

__all__ = [
    "get_path",
    "first_path",
    "FieldType",
    "TypeCoercer",
    "CoercionWarning",
    "FieldCatalog",
    "FieldDefinition",
    "FieldTable",
    "FieldMapping",
    "RecordBuilder",
    "BuildResult",
    "FieldValue",
    "build_context",
    "FieldValidator",
    "ValidationResult",
]
