from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterator, Mapping, Optional

BOOK_FIELDS = (
    "title",
    "author",
    "genre",
    "published_year",
    "price",
    "in_stock",
    "pages",
    "publisher",
)


@dataclass
class Book:
    """
    One book record. Only `title` is required; the store assigns `id`
    on insertion and every other field may be missing from a document.
    """
    title: str
    author: Optional[str] = None
    genre: Optional[str] = None
    published_year: Optional[int] = None
    price: Optional[float] = None
    in_stock: Optional[bool] = None
    pages: Optional[int] = None
    publisher: Optional[str] = None
    id: Any = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Book":
        known = {k: doc.get(k) for k in BOOK_FIELDS if k in doc}
        known.setdefault("title", "")
        return cls(id=doc.get("_id"), **known)

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {}
        for f in fields(self):
            if f.name == "id":
                continue
            val = getattr(self, f.name)
            if val is not None:
                doc[f.name] = val
        return doc


class BookView(Mapping[str, Any]):
    """
    Projected book: only the fields the query asked for.
    """
    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data = dict(data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, BookView):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"BookView({self._data!r})"


@dataclass(frozen=True)
class WriteAck:
    matched: int
    affected: int


@dataclass(frozen=True)
class AuthorCount:
    author: Optional[str]
    count: int


@dataclass(frozen=True)
class ExecutionStats:
    returned: int
    docs_examined: int
    keys_examined: int
    stage: str
    index_name: Optional[str] = None

    @property
    def used_index(self) -> bool:
        return self.index_name is not None

    @classmethod
    def from_explain(cls, explain: Mapping[str, Any]) -> "ExecutionStats":
        stats = explain.get("executionStats") or {}
        planner = explain.get("queryPlanner") or {}
        plan = planner.get("winningPlan") or {}
        # Newer servers nest the classic plan under "queryPlan"
        plan = plan.get("queryPlan", plan)
        stage, index_name = _scan_stage(plan)
        return cls(
            returned=int(stats.get("nReturned", 0)),
            docs_examined=int(stats.get("totalDocsExamined", 0)),
            keys_examined=int(stats.get("totalKeysExamined", 0)),
            stage=stage,
            index_name=index_name,
        )


def _scan_stage(plan: Mapping[str, Any]) -> tuple[str, Optional[str]]:
    # Walk down inputStage(s) to the leaf scan
    stage = plan.get("stage", "UNKNOWN")
    if stage == "IXSCAN":
        return stage, plan.get("indexName")
    children = []
    if isinstance(plan.get("inputStage"), Mapping):
        children.append(plan["inputStage"])
    children.extend(s for s in plan.get("inputStages", []) if isinstance(s, Mapping))
    for child in children:
        leaf, name = _scan_stage(child)
        if leaf in ("IXSCAN", "COLLSCAN"):
            return leaf, name
    return stage, None
