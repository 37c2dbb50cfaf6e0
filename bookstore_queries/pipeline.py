from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple, Union

from .query import ASCENDING, DESCENDING, normalize_sort

Stage = Dict[str, Any]


def field_ref(name: str) -> str:
    return name if name.startswith("$") else f"${name}"


# ----- Accumulators -----

@dataclass(frozen=True)
class Avg:
    of: str

    def to_expr(self) -> Dict[str, Any]:
        return {"$avg": field_ref(self.of)}


@dataclass(frozen=True)
class Sum:
    value: Union[int, str] = 1

    def to_expr(self) -> Dict[str, Any]:
        if isinstance(self.value, str):
            return {"$sum": field_ref(self.value)}
        return {"$sum": self.value}


Accumulator = Union[Avg, Sum]


# ----- Stages -----

@dataclass(frozen=True)
class Match:
    filter: Mapping[str, Any]

    def to_stage(self) -> Stage:
        return {"$match": dict(self.filter)}


@dataclass(frozen=True)
class Group:
    """
    Group on a field (or on None for a single bucket) and compute named
    accumulators per group.
    """
    key: Union[str, None]
    accumulators: Tuple[Tuple[str, Accumulator], ...] = ()

    def to_stage(self) -> Stage:
        spec: Dict[str, Any] = {"_id": field_ref(self.key) if self.key else None}
        for name, acc in self.accumulators:
            spec[name] = acc.to_expr()
        return {"$group": spec}


@dataclass(frozen=True)
class Sort:
    keys: Tuple[Tuple[str, int], ...]

    def to_stage(self) -> Stage:
        return {"$sort": dict(normalize_sort(list(self.keys)))}


@dataclass(frozen=True)
class Limit:
    n: int

    def to_stage(self) -> Stage:
        return {"$limit": int(self.n)}


@dataclass(frozen=True)
class Skip:
    n: int

    def to_stage(self) -> Stage:
        return {"$skip": int(self.n)}


@dataclass(frozen=True)
class Derived:
    """
    A computed field: `name` gets the value of expression `expr`.
    """
    name: str
    expr: Mapping[str, Any]


@dataclass(frozen=True)
class Project:
    include: Tuple[str, ...] = ()
    derived: Tuple[Derived, ...] = ()
    exclude_id: bool = False

    def to_stage(self) -> Stage:
        spec: Dict[str, Any] = {f: 1 for f in self.include}
        for d in self.derived:
            spec[d.name] = dict(d.expr)
        if self.exclude_id:
            spec["_id"] = 0
        return {"$project": spec}


PipelineStage = Union[Match, Group, Sort, Limit, Skip, Project]


@dataclass(frozen=True)
class Pipeline:
    stages: Tuple[PipelineStage, ...] = field(default_factory=tuple)

    def then(self, stage: PipelineStage) -> "Pipeline":
        return Pipeline(self.stages + (stage,))

    def to_list(self) -> List[Stage]:
        return [s.to_stage() for s in self.stages]

    def __len__(self) -> int:
        return len(self.stages)


# ----- Canned pipelines -----

def truncated_quotient(path: str, divisor: int) -> Dict[str, Any]:
    # $trunc rounds toward zero, so 1984 / 10 -> 198
    return {"$trunc": {"$divide": [field_ref(path), divisor]}}


def average_price_by_genre() -> Pipeline:
    return Pipeline((
        Group("genre", (("avgPrice", Avg("price")),)),
    ))


def top_author() -> Pipeline:
    return Pipeline((
        Group("author", (("bookCount", Sum(1)),)),
        Sort((("bookCount", DESCENDING),)),
        Limit(1),
    ))


def books_by_decade() -> Pipeline:
    return Pipeline((
        Project(derived=(Derived("decade", truncated_quotient("published_year", 10)),)),
        Group("decade", (("count", Sum(1)),)),
        Sort((("_id", ASCENDING),)),
    ))
