# backend/mapping/derivations.py
# 계산 필드 (이름 → 함수 레지스트리)
#
# 모든 derivation 은 (context, **args) 를 받고, 소스가 없으면 None 을 반환한다.
# None 은 빌더에서 optional 이면 생략, 아니면 타입 기본값으로 처리된다.

import json
import math
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .coercion import FALSE_WORDS
from .paths import first_path, get_path


Paths = Union[str, List[str]]

DERIVATIONS: Dict[str, Callable[..., Any]] = {}

JSON_MAX_LENGTH = 50000

SYSTEM_SIZE_PATHS = [
    "pricing.systemSizeWatts",
    "design.totalSystemSizeWatts",
    "design.systemSizeWatts",
    "design.systemSize",
]

ADDER_ATTRS = {
    "name": ("displayName", "name"),
    "cost": ("amount", "cost"),
    "ppw": ("ppw",),
    "quantity": ("quantity",),
}


def derivation(name: str):
    """레지스트리 등록 데코레이터"""
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        DERIVATIONS[name] = fn
        return fn
    return decorator


def get_derivation(name: str) -> Callable[..., Any]:
    if name not in DERIVATIONS:
        raise KeyError(f"unknown derivation '{name}'")
    return DERIVATIONS[name]


# ─────────────────────────────────────────────────────────────────────────────
# helpers
# ─────────────────────────────────────────────────────────────────────────────

def to_number(value: Any) -> Optional[float]:
    """숫자로 해석 가능하면 float, 아니면 None"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.replace("$", "").replace(",", "").replace("%", "").strip()
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _list_at(ctx: Dict[str, Any], paths: Paths) -> List[Any]:
    value = first_path(ctx, paths)
    return value if isinstance(value, list) else []


def _arrays(ctx: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [a for a in _list_at(ctx, ["design.arrays", "pricing.arrays", "proposal.design.arrays"]) if isinstance(a, dict)]


def _tagged_adders(ctx: Dict[str, Any]) -> List[Tuple[Dict[str, Any], str]]:
    """value adder → system adder 순서, 카테고리 태그 포함"""
    value_adders = [a for a in ctx.get("value_adders") or [] if isinstance(a, dict)]
    system_adders = [a for a in ctx.get("system_adders") or [] if isinstance(a, dict)]
    return [(a, "Value") for a in value_adders] + [(a, "System") for a in system_adders]


def _sum_amounts(adders: List[Dict[str, Any]]) -> float:
    return sum(to_number(a.get("amount")) or 0 for a in adders if isinstance(a, dict))


def _first_attr(item: Dict[str, Any], attrs: Union[str, List[str], Tuple[str, ...]]) -> Any:
    attrs = [attrs] if isinstance(attrs, str) else attrs
    for attr in attrs:
        value = item.get(attr)
        if value not in (None, ""):
            return value
    return None


# ─────────────────────────────────────────────────────────────────────────────
# customer / address
# ─────────────────────────────────────────────────────────────────────────────

@derivation("full_name")
def full_name(ctx, first: str = "customer.firstName", last: str = "customer.lastName"):
    parts = [str(p).strip() for p in (get_path(ctx, first), get_path(ctx, last)) if p not in (None, "")]
    name = " ".join(p for p in parts if p)
    return name or None


@derivation("full_address")
def full_address(ctx):
    explicit = first_path(ctx, ["address.fullAddress", "deal.fullAddress"])
    if explicit:
        return explicit

    address = ctx.get("address") or {}
    if not isinstance(address, dict):
        return None
    zip_code = address.get("postalCode") or address.get("zip")
    region = " ".join(str(p) for p in (address.get("state"), zip_code) if p)
    parts = [str(p) for p in (address.get("line1"), address.get("city"), region) if p]
    return ", ".join(parts) or None


# ─────────────────────────────────────────────────────────────────────────────
# system design
# ─────────────────────────────────────────────────────────────────────────────

@derivation("system_size_watts")
def system_size_watts(ctx):
    """명시적 합계 우선, 없으면 어레이별 패널 수 × 패널 용량 합"""
    explicit = to_number(first_path(ctx, SYSTEM_SIZE_PATHS))
    if explicit is not None:
        return explicit

    arrays = _arrays(ctx)
    if not arrays:
        return None
    total = 0.0
    for array in arrays:
        count = to_number(array.get("moduleCount")) or 0
        capacity = to_number(get_path(array, "module.capacity")) or 0
        total += count * capacity
    return total


@derivation("system_size_kw")
def system_size_kw(ctx):
    watts = system_size_watts(ctx)
    if watts is None:
        return None
    return round(watts / 1000, 3)


@derivation("total_panel_count")
def total_panel_count(ctx):
    arrays = _arrays(ctx)
    if not arrays:
        return None
    return int(sum(to_number(a.get("moduleCount")) or 0 for a in arrays))


@derivation("array_count")
def array_count(ctx):
    arrays = _arrays(ctx)
    return len(arrays) if arrays else None


@derivation("offset_percent")
def offset_percent(ctx, path: Paths = "design.offset"):
    """0.95 → 95 (반올림)"""
    fraction = to_number(first_path(ctx, path))
    if fraction is None:
        return None
    return round_half_up(fraction * 100)


# ─────────────────────────────────────────────────────────────────────────────
# adders
# ─────────────────────────────────────────────────────────────────────────────

@derivation("adder")
def adder(ctx, index: int, attr: str):
    """합쳐진 adder 리스트의 index 번째 항목 속성 (없으면 None → 필드 생략)"""
    tagged = _tagged_adders(ctx)
    if index < 0 or index >= len(tagged):
        return None

    item, category = tagged[index]
    if attr == "category":
        return category
    value = _first_attr(item, ADDER_ATTRS.get(attr, (attr,)))
    if attr == "quantity" and value is None:
        return 1
    return value


@derivation("adders_total")
def adders_total(ctx):
    tagged = _tagged_adders(ctx)
    if not tagged:
        return None
    return _sum_amounts([a for a, _ in tagged])


@derivation("value_adders_total")
def value_adders_total(ctx):
    if not _tagged_adders(ctx):
        return None
    return _sum_amounts(ctx.get("value_adders") or [])


@derivation("system_adders_total")
def system_adders_total(ctx):
    if not _tagged_adders(ctx):
        return None
    return _sum_amounts(ctx.get("system_adders") or [])


@derivation("adders_count")
def adders_count(ctx):
    tagged = _tagged_adders(ctx)
    return len(tagged) if tagged else None


# ─────────────────────────────────────────────────────────────────────────────
# files
# ─────────────────────────────────────────────────────────────────────────────

def _file_by_source(ctx, source: str) -> Optional[Dict[str, Any]]:
    for item in _list_at(ctx, "files"):
        if isinstance(item, dict) and item.get("source") == source:
            return item
    return None


@derivation("file_url")
def file_url(ctx, source: str):
    item = _file_by_source(ctx, source)
    return item.get("url") if item else None


@derivation("file_name")
def file_name(ctx, source: str):
    item = _file_by_source(ctx, source)
    return item.get("name") if item else None


@derivation("files_count")
def files_count(ctx):
    value = ctx.get("files")
    return len(value) if isinstance(value, list) and value else None


# ─────────────────────────────────────────────────────────────────────────────
# generic
# ─────────────────────────────────────────────────────────────────────────────

@derivation("json_dump")
def json_dump(ctx, path: Paths, max_length: int = JSON_MAX_LENGTH):
    """원본 서브트리 JSON 백업 (max_length 에서 절단)"""
    value = first_path(ctx, path)
    if value is None or (isinstance(value, (dict, list)) and not value):
        return None
    text = json.dumps(value, default=str)
    return text[:max_length] if len(text) > max_length else text


@derivation("ratio")
def ratio(ctx, numerator: Paths, denominator: Paths):
    top = to_number(first_path(ctx, numerator))
    bottom = to_number(first_path(ctx, denominator))
    if top is None or not bottom:
        return None
    return top / bottom


@derivation("product")
def product(ctx, left: Paths, right: Paths):
    a = to_number(first_path(ctx, left))
    b = to_number(first_path(ctx, right))
    if a is None or b is None:
        return None
    return a * b


@derivation("scaled")
def scaled(ctx, path: Paths, factor: float):
    value = to_number(first_path(ctx, path))
    if value is None:
        return None
    return value * factor


@derivation("equals")
def equals(ctx, path: Paths, value: Any):
    return first_path(ctx, path) == value


@derivation("flag")
def flag(ctx, path: Paths):
    """위저드 단계 플래그: 값이 있으면 true (객체 / 비어있지 않은 문자열 포함)"""
    value = first_path(ctx, path)
    if value is None:
        return None
    if isinstance(value, str):
        lowered = value.strip().lower()
        return bool(lowered) and lowered not in FALSE_WORDS
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


@derivation("count")
def count(ctx, path: Paths):
    items = first_path(ctx, path)
    return len(items) if isinstance(items, list) else None


@derivation("latest")
def latest(ctx, path: Paths, attr: Union[str, List[str]]):
    """리스트 마지막 항목의 속성 (가장 최근 노트 등)"""
    items = [i for i in _list_at(ctx, path) if isinstance(i, dict)]
    if not items:
        return None
    return _first_attr(items[-1], attr)


@derivation("join_unique")
def join_unique(ctx, path: Paths, attr: str, separator: str = ", "):
    seen: List[str] = []
    for item in _list_at(ctx, path):
        if not isinstance(item, dict):
            continue
        value = item.get(attr)
        if value not in (None, "") and str(value) not in seen:
            seen.append(str(value))
    return separator.join(seen) or None


@derivation("name_or_id")
def name_or_id(ctx, path: Paths):
    """사람 참조 → 이름 (없으면 id, 문자열이면 그대로)"""
    person = first_path(ctx, path)
    if isinstance(person, dict):
        name = person.get("name") or " ".join(
            str(p) for p in (person.get("firstName"), person.get("lastName")) if p
        )
        return name or person.get("id")
    return person
