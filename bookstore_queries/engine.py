from __future__ import annotations
import copy
import logging
import math
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from bson import ObjectId
from pymongo.results import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from .errors import DuplicateKeyError, MalformedQueryError
from .index import IndexSpec, InMemoryIndex
from .query import SortSpec, normalize_sort, validate_filter, validate_projection
from .utils import comparable, get_path, has_path, set_path, sort_key, unset_path

logger = logging.getLogger(__name__)


# ----- Predicate evaluation -----

def _compare(op: str, val: Any, arg: Any) -> bool:
    if op == "$eq":
        return _equals(val, arg)
    if op == "$ne":
        return not _equals(val, arg)
    # Range operators only match values of the same BSON type bracket
    if isinstance(val, list):
        return any(_compare(op, v, arg) for v in val)
    if not comparable(val, arg):
        return False
    if op == "$gt":
        return val > arg
    if op == "$gte":
        return val >= arg
    if op == "$lt":
        return val < arg
    if op == "$lte":
        return val <= arg
    raise MalformedQueryError(f"unknown operator {op}")


def _equals(val: Any, arg: Any) -> bool:
    if isinstance(val, list) and not isinstance(arg, list):
        return any(_equals(v, arg) for v in val)
    if isinstance(val, bool) != isinstance(arg, bool):
        return False
    return val == arg


def match_document(doc: Mapping[str, Any], q: Mapping[str, Any]) -> bool:
    for k, v in q.items():
        if k == "$and":
            if not all(match_document(doc, sub) for sub in v):
                return False
            continue
        if k == "$or":
            if not any(match_document(doc, sub) for sub in v):
                return False
            continue
        present = has_path(doc, k)
        val = get_path(doc, k)
        if isinstance(v, Mapping) and any(str(op).startswith("$") for op in v):
            for op, arg in v.items():
                if op == "$exists":
                    if bool(arg) != present:
                        return False
                elif op == "$in":
                    if not any(_equals(val, a) for a in arg):
                        return False
                elif op == "$nin":
                    if any(_equals(val, a) for a in arg):
                        return False
                elif not _compare(op, val, arg):
                    return False
        elif not _equals(val, v):
            return False
    return True


# ----- Aggregation expressions -----

def evaluate(expr: Any, doc: Mapping[str, Any]) -> Any:
    if isinstance(expr, str) and expr.startswith("$"):
        return get_path(doc, expr[1:])
    if isinstance(expr, Mapping) and len(expr) == 1:
        op, args = next(iter(expr.items()))
        if isinstance(op, str) and op.startswith("$"):
            return _apply_operator(op, args, doc)
    if isinstance(expr, Mapping):
        return {k: evaluate(v, doc) for k, v in expr.items()}
    return expr


_ARITHMETIC = {"$add", "$multiply", "$subtract", "$divide", "$mod", "$trunc", "$floor"}


def _apply_operator(op: str, args: Any, doc: Mapping[str, Any]) -> Any:
    if op == "$literal":
        return args
    if op not in _ARITHMETIC:
        raise MalformedQueryError(f"unsupported expression operator {op}")
    if not isinstance(args, list):
        args = [args]
    vals = [evaluate(a, doc) for a in args]
    # Arithmetic on a missing/null operand yields null
    if any(v is None for v in vals):
        return None
    _numbers(op, vals)
    if op == "$add":
        return sum(vals)
    if op == "$multiply":
        out = 1
        for v in vals:
            out *= v
        return out
    if op == "$subtract":
        _arity(op, vals, 2)
        return vals[0] - vals[1]
    if op == "$divide":
        _arity(op, vals, 2)
        if vals[1] == 0:
            raise MalformedQueryError("$divide by zero")
        return vals[0] / vals[1]
    if op == "$mod":
        _arity(op, vals, 2)
        if vals[1] == 0:
            raise MalformedQueryError("$mod by zero")
        # Sign follows the dividend, as in the server
        return math.fmod(vals[0], vals[1])
    if op == "$trunc":
        _arity(op, vals, 1)
        return float(math.trunc(vals[0]))
    # $floor
    _arity(op, vals, 1)
    return float(math.floor(vals[0]))


def _arity(op: str, vals: Sequence[Any], n: int) -> None:
    if len(vals) != n:
        raise MalformedQueryError(f"{op} takes exactly {n} argument(s), got {len(vals)}")


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _numbers(op: str, vals: Sequence[Any]) -> None:
    for v in vals:
        if not _is_number(v):
            raise MalformedQueryError(f"{op} only supports numeric types, not {type(v).__name__}")


_ACCUMULATORS = {"$sum", "$avg", "$min", "$max", "$first", "$push"}


def _bucket_key(v: Any) -> str:
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    return repr(sort_key(v))


def _group(docs: List[Dict[str, Any]], spec: Mapping[str, Any]) -> List[Dict[str, Any]]:
    if "_id" not in spec:
        raise MalformedQueryError("$group requires an _id expression")
    accs: List[Tuple[str, str, Any]] = []
    for name, acc in spec.items():
        if name == "_id":
            continue
        if not isinstance(acc, Mapping) or len(acc) != 1:
            raise MalformedQueryError(f"accumulator {name!r} must be a single-operator document")
        op, arg = next(iter(acc.items()))
        if op not in _ACCUMULATORS:
            raise MalformedQueryError(f"unsupported accumulator {op}")
        accs.append((name, op, arg))

    buckets: Dict[str, Dict[str, Any]] = {}
    order: List[str] = []
    for d in docs:
        key = evaluate(spec["_id"], d)
        bkey = _bucket_key(key)
        state = buckets.get(bkey)
        if state is None:
            state = {"_id": key, "_n": {}}
            for name, op, _ in accs:
                state[name] = [] if op == "$push" else None
            buckets[bkey] = state
            order.append(bkey)
        for name, op, arg in accs:
            val = evaluate(arg, d)
            cur = state[name]
            if op == "$sum":
                if _is_number(val):
                    state[name] = (cur or 0) + val
                elif cur is None:
                    state[name] = 0
            elif op == "$avg":
                if _is_number(val):
                    state[name] = (cur or 0) + val
                    state["_n"][name] = state["_n"].get(name, 0) + 1
            elif op == "$min":
                if val is not None and (cur is None or sort_key(val) < sort_key(cur)):
                    state[name] = val
            elif op == "$max":
                if val is not None and (cur is None or sort_key(val) > sort_key(cur)):
                    state[name] = val
            elif op == "$first":
                if name not in state["_n"]:
                    state[name] = val
                    state["_n"][name] = 1
            elif op == "$push":
                cur.append(val)

    out: List[Dict[str, Any]] = []
    for bkey in order:
        state = buckets[bkey]
        counts = state.pop("_n")
        for name, op, _ in accs:
            if op == "$avg":
                n = counts.get(name, 0)
                state[name] = (state[name] / n) if n else None
        out.append(state)
    return out


def _project(doc: Mapping[str, Any], spec: Mapping[str, Any]) -> Dict[str, Any]:
    computed = {k: v for k, v in spec.items() if isinstance(v, (dict, str, list))}
    flags = {k: bool(v) for k, v in spec.items() if k not in computed}
    if computed or any(flags.get(k) for k in flags if k != "_id"):
        out: Dict[str, Any] = {}
        if flags.get("_id", True) and "_id" in doc:
            out["_id"] = doc["_id"]
        for k, keep in flags.items():
            if k != "_id" and keep and has_path(doc, k):
                set_path(out, k, copy.deepcopy(get_path(doc, k)))
        for k, expr in computed.items():
            set_path(out, k, evaluate(expr, doc))
        return out
    return _apply_projection(doc, spec)


def _apply_projection(doc: Mapping[str, Any], projection: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    inclusion, spec = validate_projection(projection)
    if not spec:
        return copy.deepcopy(dict(doc))
    if inclusion:
        out: Dict[str, Any] = {}
        if spec.get("_id", True) and "_id" in doc:
            out["_id"] = doc["_id"]
        for k, keep in spec.items():
            if k != "_id" and keep and has_path(doc, k):
                set_path(out, k, copy.deepcopy(get_path(doc, k)))
        return out
    out = copy.deepcopy(dict(doc))
    for k, keep in spec.items():
        if not keep:
            unset_path(out, k)
    return out


def _sorted(docs: List[Dict[str, Any]], keys: SortSpec) -> List[Dict[str, Any]]:
    # Stable multi-key sort: apply keys right to left
    out = list(docs)
    for field, direction in reversed(keys):
        out.sort(key=lambda d: sort_key(get_path(d, field)), reverse=(direction < 0))
    return out


# ----- Cursor / Collection -----

class Cursor:
    """
    Lazy find() result. sort/skip/limit may be chained until iteration starts.
    """
    def __init__(self, coll: "Collection", query: Mapping[str, Any], projection: Optional[Mapping[str, Any]]) -> None:
        self._coll = coll
        self._query = dict(query)
        self._projection = projection
        self._sort: SortSpec = []
        self._skip = 0
        self._limit = 0
        self._started = False

    def _check_not_started(self) -> None:
        if self._started:
            raise MalformedQueryError("cannot modify a cursor after iteration has started")

    def sort(self, key_or_list: Union[str, Sequence[Tuple[str, int]]], direction: Optional[int] = None) -> "Cursor":
        self._check_not_started()
        if isinstance(key_or_list, str):
            self._sort = normalize_sort(key_or_list, direction if direction is not None else 1)
        else:
            self._sort = normalize_sort(key_or_list)
        return self

    def skip(self, n: int) -> "Cursor":
        self._check_not_started()
        if not isinstance(n, int) or n < 0:
            raise MalformedQueryError(f"skip must be a non-negative integer, got {n!r}")
        self._skip = n
        return self

    def limit(self, n: int) -> "Cursor":
        self._check_not_started()
        if not isinstance(n, int) or n < 0:
            raise MalformedQueryError(f"limit must be a non-negative integer, got {n!r}")
        self._limit = n
        return self

    def _run(self) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        plan = self._coll._plan(self._query)
        docs = [d for d in plan["candidates"] if match_document(d, self._query)]
        if self._sort:
            docs = _sorted(docs, self._sort)
        end = self._skip + self._limit if self._limit else None
        docs = docs[self._skip:end]
        return [_apply_projection(d, self._projection) for d in docs], plan

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        self._started = True
        docs, _ = self._run()
        return iter(docs)

    def to_list(self) -> List[Dict[str, Any]]:
        return list(self)

    def explain(self) -> Dict[str, Any]:
        docs, plan = self._run()
        scan: Dict[str, Any]
        if plan["index"] is not None:
            spec: IndexSpec = plan["index"]
            scan = {
                "stage": "IXSCAN",
                "indexName": spec.name,
                "keyPattern": spec.key_pattern,
                "direction": "forward",
            }
            scan = {"stage": "FETCH", "inputStage": scan}
        else:
            scan = {"stage": "COLLSCAN", "filter": self._query, "direction": "forward"}
        return {
            "queryPlanner": {
                "namespace": self._coll.full_name,
                "parsedQuery": self._query,
                "winningPlan": scan,
                "rejectedPlans": [],
            },
            "executionStats": {
                "executionSuccess": True,
                "nReturned": len(docs),
                "executionTimeMillis": 0,
                "totalKeysExamined": plan["keys_examined"],
                "totalDocsExamined": len(plan["candidates"]),
            },
        }


class Collection:
    """
    Embedded document collection with the subset of the pymongo Collection
    API the catalog uses. Documents are kept in insertion order, which is
    the natural order for unsorted reads.
    """
    def __init__(self, name: str = "books", database: str = "plp_bookstore") -> None:
        self.name = name
        self.database_name = database
        self._docs: Dict[Any, Dict[str, Any]] = {}
        self._index = InMemoryIndex()

    @property
    def full_name(self) -> str:
        return f"{self.database_name}.{self.name}"

    # ----- writes -----

    def insert_one(self, document: Mapping[str, Any]) -> InsertOneResult:
        doc = copy.deepcopy(dict(document))
        doc_id = doc.setdefault("_id", ObjectId())
        if doc_id in self._docs:
            raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.full_name} _id: {doc_id!r}")
        self._docs[doc_id] = doc
        self._index.add_doc(doc_id, doc)
        return InsertOneResult(doc_id, True)

    def insert_many(self, documents: Iterable[Mapping[str, Any]]) -> InsertManyResult:
        ids = [self.insert_one(d).inserted_id for d in documents]
        return InsertManyResult(ids, True)

    def update_one(self, filter: Mapping[str, Any], update: Mapping[str, Any]) -> UpdateResult:
        validate_filter(filter)
        _validate_update(update)
        target = self._first_match(filter)
        if target is None:
            return UpdateResult({"n": 0, "nModified": 0, "ok": 1.0}, True)
        # All or nothing: a failing operator leaves the stored document as it was
        updated = copy.deepcopy(target)
        _apply_update(updated, update)
        doc_id = target["_id"]
        self._index.remove_doc(doc_id, target)
        self._docs[doc_id] = updated
        self._index.add_doc(doc_id, updated)
        modified = 0 if updated == target else 1
        return UpdateResult({"n": 1, "nModified": modified, "ok": 1.0}, True)

    def delete_one(self, filter: Mapping[str, Any]) -> DeleteResult:
        validate_filter(filter)
        target = self._first_match(filter)
        if target is None:
            return DeleteResult({"n": 0, "ok": 1.0}, True)
        self._index.remove_doc(target["_id"], target)
        del self._docs[target["_id"]]
        return DeleteResult({"n": 1, "ok": 1.0}, True)

    def drop(self) -> None:
        self._docs.clear()
        self._index = InMemoryIndex()

    # ----- reads -----

    def find(self, filter: Optional[Mapping[str, Any]] = None, projection: Optional[Mapping[str, Any]] = None) -> Cursor:
        filter = filter or {}
        validate_filter(filter)
        validate_projection(projection)
        return Cursor(self, filter, projection)

    def find_one(self, filter: Optional[Mapping[str, Any]] = None, projection: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        for doc in self.find(filter, projection).limit(1):
            return doc
        return None

    def count_documents(self, filter: Mapping[str, Any]) -> int:
        validate_filter(filter)
        return sum(1 for d in self._plan(filter)["candidates"] if match_document(d, filter))

    def aggregate(self, pipeline: Sequence[Mapping[str, Any]]) -> Iterator[Dict[str, Any]]:
        if not isinstance(pipeline, (list, tuple)):
            raise MalformedQueryError("pipeline must be a list of stages")
        docs = [copy.deepcopy(d) for d in self._docs.values()]
        for stage in pipeline:
            if not isinstance(stage, Mapping) or len(stage) != 1:
                raise MalformedQueryError("each pipeline stage must be a single-key document")
            op, spec = next(iter(stage.items()))
            logger.debug("aggregate %s stage %s over %d docs", self.full_name, op, len(docs))
            if op == "$match":
                validate_filter(spec)
                docs = [d for d in docs if match_document(d, spec)]
            elif op == "$group":
                docs = _group(docs, spec)
            elif op == "$sort":
                docs = _sorted(docs, normalize_sort(spec))
            elif op == "$limit":
                if not isinstance(spec, int) or spec <= 0:
                    raise MalformedQueryError("$limit must be a positive integer")
                docs = docs[:spec]
            elif op == "$skip":
                if not isinstance(spec, int) or spec < 0:
                    raise MalformedQueryError("$skip must be a non-negative integer")
                docs = docs[spec:]
            elif op == "$project":
                docs = [_project(d, spec) for d in docs]
            elif op == "$count":
                docs = [{spec: len(docs)}] if docs else []
            else:
                raise MalformedQueryError(f"unsupported aggregation stage {op}")
        return iter(docs)

    # ----- indexes -----

    def create_index(self, keys: Union[str, Sequence[Tuple[str, int]]], name: Optional[str] = None) -> str:
        if isinstance(keys, str):
            keys = [(keys, 1)]
        spec = IndexSpec.from_keys(keys, name)
        if self._index.add_spec(spec, self._docs.items()):
            logger.debug("created index %s on %s", spec.name, self.full_name)
        return spec.name

    def index_information(self) -> Dict[str, Dict[str, Any]]:
        info = {"_id_": {"key": [("_id", 1)]}}
        for spec in self._index.specs.values():
            info[spec.name] = {"key": list(spec.keys)}
        return info

    # ----- helpers -----

    def _first_match(self, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        for d in self._plan(filter)["candidates"]:
            if match_document(d, filter):
                return d
        return None

    def _plan(self, query: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Choose between an index lookup and a collection scan. Only plain
        equality (or $eq) on an index's leading field is served by an index.
        """
        for field, v in query.items():
            if field.startswith("$"):
                continue
            if isinstance(v, Mapping):
                if set(v) != {"$eq"}:
                    continue
                v = v["$eq"]
            if isinstance(v, (list, dict)):
                continue
            spec = self._index.for_field(field)
            if spec is None:
                continue
            ids: Set[Any] = self._index.lookup(spec, v)
            # Preserve natural order
            candidates = [d for did, d in self._docs.items() if did in ids]
            return {"index": spec, "candidates": candidates, "keys_examined": len(ids)}
        return {"index": None, "candidates": list(self._docs.values()), "keys_examined": 0}


_UPDATE_OPS = {"$set", "$unset", "$inc"}


def _validate_update(update: Mapping[str, Any]) -> None:
    if not isinstance(update, Mapping) or not update:
        raise MalformedQueryError("update document must be a non-empty mapping")
    for op, fields in update.items():
        if op not in _UPDATE_OPS:
            raise MalformedQueryError(f"update only works with operators ({', '.join(sorted(_UPDATE_OPS))}), got {op!r}")
        if not isinstance(fields, Mapping):
            raise MalformedQueryError(f"{op} needs a document of fields")
        if "_id" in fields:
            raise MalformedQueryError("the _id field is immutable")


def _apply_update(doc: Dict[str, Any], update: Mapping[str, Any]) -> None:
    for op, fields in update.items():
        for path, val in fields.items():
            if op == "$set":
                set_path(doc, path, copy.deepcopy(val))
            elif op == "$unset":
                unset_path(doc, path)
            elif op == "$inc":
                if not _is_number(val):
                    raise MalformedQueryError(f"cannot $inc {path!r} by non-numeric {val!r}")
                cur = get_path(doc, path, 0)
                if not _is_number(cur):
                    raise MalformedQueryError(f"cannot $inc non-numeric field {path!r}")
                set_path(doc, path, cur + val)
