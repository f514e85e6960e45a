# backend/mapping/catalog.py
# QuickBase 필드 카탈로그 (스키마 export CSV)

import csv
import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from pydantic import BaseModel

from .coercion import FieldType


logger = logging.getLogger(__name__)


class FieldDefinition(BaseModel):
    """대상 필드 정의"""
    field_id: int
    label: str
    type: FieldType
    relationship: Optional[str] = None

    @property
    def is_lookup(self) -> bool:
        return bool(self.relationship)


class FieldCatalog:
    """
    필드 ID → FieldDefinition

    CSV 컬럼: label, type, relationship, field id (헤더 행은 자동 스킵)
    """

    def __init__(self, fields: Optional[Dict[int, FieldDefinition]] = None):
        self._fields: Dict[int, FieldDefinition] = dict(fields or {})

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "FieldCatalog":
        path = Path(path)
        fields: Dict[int, FieldDefinition] = {}

        with open(path, "r", encoding="utf-8", newline="") as f:
            for line_no, row in enumerate(csv.reader(f), start=1):
                if len(row) < 4 or not row[3].strip().isdigit():
                    continue

                label, type_label, relationship, field_id = (c.strip() for c in row[:4])
                ftype = FieldType.parse(type_label)
                if ftype is None:
                    logger.warning("Catalog %s:%d has unknown type '%s' for field %s; treating as Text",
                                   path.name, line_no, type_label, field_id)
                    ftype = FieldType.TEXT

                fid = int(field_id)
                fields[fid] = FieldDefinition(
                    field_id=fid,
                    label=label,
                    type=ftype,
                    relationship=relationship or None,
                )

        logger.info("Loaded %d field definitions from %s", len(fields), path)
        return cls(fields)

    def get(self, field_id: int) -> Optional[FieldDefinition]:
        return self._fields.get(int(field_id))

    def type_of(self, field_id: int) -> Optional[FieldType]:
        definition = self.get(field_id)
        return definition.type if definition else None

    def label_of(self, field_id: int) -> str:
        definition = self.get(field_id)
        return definition.label if definition else f"Field {field_id}"

    def __contains__(self, field_id) -> bool:
        try:
            return int(field_id) in self._fields
        except (TypeError, ValueError):
            return False

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[FieldDefinition]:
        return iter(self._fields.values())
