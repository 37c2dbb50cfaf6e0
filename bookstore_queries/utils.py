from __future__ import annotations
import datetime as _dt
import json
from typing import Any, Dict, Tuple

from bson import ObjectId

_MISSING = object()


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), sort_keys=True, default=str)


def get_path(doc: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Resolve a dotted path ("address.city") inside nested dicts.
    """
    cur: Any = doc
    for key in path.split("."):
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def has_path(doc: Dict[str, Any], path: str) -> bool:
    return get_path(doc, path, _MISSING) is not _MISSING


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = doc
    for key in parts[:-1]:
        nxt = cur.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[key] = nxt
        cur = nxt
    cur[parts[-1]] = value


def unset_path(doc: Dict[str, Any], path: str) -> bool:
    parts = path.split(".")
    cur: Any = doc
    for key in parts[:-1]:
        if not isinstance(cur, dict) or key not in cur:
            return False
        cur = cur[key]
    if isinstance(cur, dict) and parts[-1] in cur:
        del cur[parts[-1]]
        return True
    return False


def type_rank(v: Any) -> int:
    # MongoDB cross-type comparison order
    if v is None:
        return 1
    if isinstance(v, bool):
        return 8
    if isinstance(v, (int, float)):
        return 2
    if isinstance(v, str):
        return 3
    if isinstance(v, dict):
        return 4
    if isinstance(v, (list, tuple)):
        return 5
    if isinstance(v, ObjectId):
        return 7
    if isinstance(v, _dt.datetime):
        return 9
    return 10


def sort_key(v: Any) -> Tuple[int, Any]:
    rank = type_rank(v)
    if rank in (2, 3, 7, 8, 9):
        return (rank, v)
    if rank == 1:
        return (rank, 0)
    return (rank, canonical_json(v))


def comparable(a: Any, b: Any) -> bool:
    return type_rank(a) == type_rank(b) and type_rank(a) in (2, 3, 7, 8, 9)
