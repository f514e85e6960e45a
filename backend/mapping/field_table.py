# backend/mapping/field_table.py
# 선언형 필드 매핑 테이블 (YAML)

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, model_validator

from .coercion import FieldType


logger = logging.getLogger(__name__)


class FieldMapping(BaseModel):
    """
    매핑 엔트리 1개

    path (단일 또는 후보 리스트) 와 derive 중 정확히 하나를 가짐
    """
    id: int
    label: str
    type: FieldType
    path: Optional[Union[str, List[str]]] = None
    derive: Optional[str] = None
    args: Dict[str, Any] = Field(default_factory=dict)
    default: Any = None
    optional: bool = False

    @model_validator(mode="after")
    def _one_source(self):
        if (self.path is None) == (self.derive is None):
            raise ValueError(f"field {self.id} ({self.label}) needs exactly one of 'path' or 'derive'")
        return self

    @property
    def paths(self) -> List[str]:
        if self.path is None:
            return []
        return [self.path] if isinstance(self.path, str) else list(self.path)


class FieldTable(BaseModel):
    """매핑 테이블 전체 (메인 레코드 + enrichment 패치)"""
    version: int = 1
    business_key_field: int = 6
    record_id_field: int = 3
    fields: List[FieldMapping]
    enrichment: List[FieldMapping] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self):
        for section in ("fields", "enrichment"):
            seen = set()
            for entry in getattr(self, section):
                if entry.id in seen:
                    raise ValueError(f"duplicate field id {entry.id} in '{section}'")
                seen.add(entry.id)
        if self.fields and self.business_key_field not in {e.id for e in self.fields}:
            raise ValueError(f"business key field {self.business_key_field} is not mapped")
        return self

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "FieldTable":
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        table = cls(**raw)
        logger.info("Loaded field table v%d from %s (%d fields, %d enrichment)",
                    table.version, path, len(table.fields), len(table.enrichment))
        return table

    def field_ids(self) -> List[int]:
        return [e.id for e in self.fields]
