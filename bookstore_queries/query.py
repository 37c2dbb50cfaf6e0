from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from .errors import MalformedQueryError

COMPARISON_OPS = {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte"}
FIELD_OPS = COMPARISON_OPS | {"$in", "$nin", "$exists"}
LOGICAL_OPS = {"$and", "$or"}

ASCENDING = 1
DESCENDING = -1

SortSpec = List[Tuple[str, int]]


def eq(field: str, value: Any) -> Dict[str, Any]:
    return {field: value}


def gt(field: str, value: Any) -> Dict[str, Any]:
    return {field: {"$gt": value}}


def all_of(*filters: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge predicates into one implicit-AND filter. Falls back to an explicit
    $and when two predicates constrain the same field.
    """
    merged: Dict[str, Any] = {}
    for f in filters:
        for k, v in f.items():
            if k in merged:
                return {"$and": [dict(x) for x in filters]}
            merged[k] = v
    return merged


def validate_filter(q: Any) -> None:
    """
    Rejects filters the embedded engine cannot evaluate: non-dict filters,
    unknown operators, $in without a list.
    """
    if q is None:
        return
    if not isinstance(q, Mapping):
        raise MalformedQueryError(f"filter must be a mapping, got {type(q).__name__}")
    for k, v in q.items():
        if k.startswith("$"):
            if k not in LOGICAL_OPS:
                raise MalformedQueryError(f"unknown top-level operator {k}")
            if not isinstance(v, list) or not v:
                raise MalformedQueryError(f"{k} requires a non-empty list")
            for sub in v:
                validate_filter(sub)
            continue
        if isinstance(v, Mapping) and any(str(op).startswith("$") for op in v):
            for op, arg in v.items():
                if op not in FIELD_OPS:
                    raise MalformedQueryError(f"unknown operator {op} on field {k!r}")
                if op in ("$in", "$nin") and not isinstance(arg, (list, tuple)):
                    raise MalformedQueryError(f"{op} on field {k!r} needs a list")


def validate_projection(projection: Mapping[str, Any] | None) -> Tuple[bool, Dict[str, bool]]:
    """
    Returns (inclusion_mode, {field: keep}). `_id` may be excluded in
    either mode; mixing other inclusions and exclusions is an error.
    """
    if not projection:
        return False, {}
    spec = {k: bool(v) for k, v in projection.items()}
    modes = {keep for k, keep in spec.items() if k != "_id"}
    if len(modes) > 1:
        raise MalformedQueryError("projection cannot mix inclusion and exclusion")
    inclusion = modes == {True} or (not modes and spec.get("_id", True))
    return inclusion, spec


def normalize_sort(sort: Union[None, str, Mapping[str, int], Sequence[Tuple[str, int]]],
                   direction: int = ASCENDING) -> SortSpec:
    if sort is None:
        return []
    if isinstance(sort, str):
        pairs: Iterable[Tuple[str, int]] = [(sort, direction)]
    elif isinstance(sort, Mapping):
        pairs = list(sort.items())
    else:
        pairs = list(sort)
    out: SortSpec = []
    for field, d in pairs:
        if d not in (ASCENDING, DESCENDING):
            raise MalformedQueryError(f"sort direction for {field!r} must be 1 or -1, got {d!r}")
        out.append((field, int(d)))
    return out


def page_window(page: int, page_size: int) -> Tuple[int, int]:
    """
    1-based page number to (skip, limit).
    """
    if page < 1:
        raise MalformedQueryError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise MalformedQueryError(f"page_size must be >= 1, got {page_size}")
    return (page - 1) * page_size, page_size
