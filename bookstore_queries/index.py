from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Set, Tuple

from .errors import MalformedQueryError
from .utils import canonical_json, get_path


@dataclass(frozen=True)
class IndexSpec:
    name: str
    keys: Tuple[Tuple[str, int], ...]

    @property
    def leading_field(self) -> str:
        return self.keys[0][0]

    @property
    def key_pattern(self) -> Dict[str, int]:
        return dict(self.keys)

    @classmethod
    def from_keys(cls, keys: Iterable[Tuple[str, int]], name: Optional[str] = None) -> "IndexSpec":
        pairs = tuple((str(f), int(d)) for f, d in keys)
        if not pairs:
            raise MalformedQueryError("index needs at least one key")
        for f, d in pairs:
            if d not in (1, -1):
                raise MalformedQueryError(f"index direction for {f!r} must be 1 or -1")
        return cls(name=name or index_name(pairs), keys=pairs)


def _key(v: Any) -> str:
    # 2 and 2.0 must land on the same key
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    return canonical_json(v)


def _entry_keys(v: Any) -> Set[str]:
    # Multikey: an array is indexed under each of its elements
    if isinstance(v, list):
        return {_key(e) for e in v}
    return {_key(v)}


def index_name(keys: Iterable[Tuple[str, int]]) -> str:
    return "_".join(f"{f}_{d}" for f, d in keys)


class InMemoryIndex:
    """
    Secondary indexes keyed on the leading field value of each index.
    Maps (index name, canonical value) -> set of document ids.
    """
    def __init__(self) -> None:
        self.specs: Dict[str, IndexSpec] = {}
        self.secondary: Dict[Tuple[str, str], Set[Any]] = {}

    def add_spec(self, spec: IndexSpec, docs: Iterable[Tuple[Any, Dict[str, Any]]]) -> bool:
        existing = self.specs.get(spec.name)
        if existing is not None:
            if existing.keys != spec.keys:
                raise MalformedQueryError(f"index {spec.name!r} already exists with different keys")
            return False
        self.specs[spec.name] = spec
        for doc_id, doc in docs:
            self._add(spec, doc_id, doc)
        return True

    def for_field(self, field: str) -> Optional[IndexSpec]:
        for spec in self.specs.values():
            if spec.leading_field == field:
                return spec
        return None

    def lookup(self, spec: IndexSpec, value: Any) -> Set[Any]:
        return set(self.secondary.get((spec.name, _key(value)), set()))

    def add_doc(self, doc_id: Any, doc: Dict[str, Any]) -> None:
        for spec in self.specs.values():
            self._add(spec, doc_id, doc)

    def remove_doc(self, doc_id: Any, doc: Dict[str, Any]) -> None:
        for spec in self.specs.values():
            for k in _entry_keys(get_path(doc, spec.leading_field)):
                key = (spec.name, k)
                ids = self.secondary.get(key)
                if ids is None:
                    continue
                ids.discard(doc_id)
                if not ids:
                    del self.secondary[key]

    def _add(self, spec: IndexSpec, doc_id: Any, doc: Dict[str, Any]) -> None:
        for k in _entry_keys(get_path(doc, spec.leading_field)):
            self.secondary.setdefault((spec.name, k), set()).add(doc_id)
