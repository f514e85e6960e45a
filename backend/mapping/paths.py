# backend/mapping/paths.py
# 중첩 JSON 안전 조회 (dotted path)

from typing import Any, Iterable, Union


_MISSING = object()


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """
    "a.b.0.c" 형태 경로로 값 조회

    - dict: 키가 있으면 내려감
    - list/tuple: 세그먼트가 정수 인덱스면 내려감
    - 그 외 (누락, None, 스칼라) → default
    """
    if not path:
        return default

    current = data
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return default
            current = current[segment]
        elif isinstance(current, (list, tuple)):
            try:
                index = int(segment)
            except ValueError:
                return default
            if index < 0 or index >= len(current):
                return default
            current = current[index]
        else:
            return default

        if current is None:
            return default

    return current


def first_path(data: Any, paths: Union[str, Iterable[str]], default: Any = None) -> Any:
    """여러 후보 경로 중 처음으로 값이 있는 것 (프로듀서 버전별 경로 차이 대응)"""
    paths = [paths] if isinstance(paths, str) else paths
    for p in paths:
        value = get_path(data, p, _MISSING)
        if value is not _MISSING:
            return value
    return default
