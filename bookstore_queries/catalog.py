from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pymongo.errors import ConnectionFailure, DuplicateKeyError as MongoDuplicateKeyError, PyMongoError

from .errors import DuplicateKeyError, MalformedQueryError, StoreConnectionError, StoreOperationError
from .models import AuthorCount, Book, BookView, ExecutionStats, WriteAck
from .pipeline import Pipeline, average_price_by_genre, books_by_decade, top_author
from .query import ASCENDING, all_of, eq, gt, normalize_sort, page_window, validate_projection

logger = logging.getLogger(__name__)

Filter = Mapping[str, Any]
IndexKeys = Sequence[Tuple[str, int]]


@contextmanager
def store_call(operation: str) -> Iterator[None]:
    """
    Translate driver exceptions raised inside the block into the
    StoreOperationError family, tagged with the operation name.
    """
    try:
        yield
    except StoreOperationError as e:
        if e.operation is None:
            e.operation = operation
        raise
    except ConnectionFailure as e:
        raise StoreConnectionError(str(e), operation=operation) from e
    except MongoDuplicateKeyError as e:
        raise DuplicateKeyError(str(e), operation=operation) from e
    except PyMongoError as e:
        raise StoreOperationError(str(e), operation=operation) from e


class BookCatalog:
    """
    Typed operations on one collection of book documents. `collection` is
    a pymongo Collection or an embedded engine Collection; both expose the
    same method names and result objects. Filter operators are checked by
    the collection itself.
    """
    def __init__(self, collection: Any) -> None:
        self.collection = collection

    # ----- CRUD -----

    def insert_book(self, book: Union[Book, Mapping[str, Any]]) -> Any:
        doc = book.to_document() if isinstance(book, Book) else dict(book)
        with store_call("insert_book"):
            res = self.collection.insert_one(doc)
        logger.debug("inserted %r as %s", doc.get("title"), res.inserted_id)
        return res.inserted_id

    def find_books(
        self,
        filter: Optional[Filter] = None,
        *,
        projection: Optional[Mapping[str, Any]] = None,
        sort: Union[None, str, Sequence[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Union[Book, BookView]]:
        filter = dict(filter or {})
        with store_call("find_books"):
            validate_projection(projection)
            if skip < 0:
                raise MalformedQueryError(f"skip must be >= 0, got {skip}")
            if limit is not None and limit < 0:
                raise MalformedQueryError(f"limit must be >= 0, got {limit}")
            keys = normalize_sort(sort)
            if limit == 0:
                return []
            cursor = self.collection.find(filter, projection)
            if keys:
                cursor = cursor.sort(keys)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            docs = list(cursor)
        logger.debug("find %s -> %d docs", filter, len(docs))
        if projection:
            return [BookView(d) for d in docs]
        return [Book.from_document(d) for d in docs]

    def find_by_title(self, title: str) -> List[Book]:
        return self.find_books(eq("title", title))

    def find_by_genre(self, genre: str) -> List[Book]:
        return self.find_books(eq("genre", genre))

    def find_by_author(self, author: str) -> List[Book]:
        return self.find_books(eq("author", author))

    def find_published_after(self, year: int) -> List[Book]:
        return self.find_books(gt("published_year", year))

    def find_in_stock_after(self, year: int) -> List[Book]:
        return self.find_books(all_of(eq("in_stock", True), gt("published_year", year)))

    def find_projected(self, fields: Sequence[str]) -> List[BookView]:
        projection: Dict[str, int] = {f: 1 for f in fields}
        projection["_id"] = 0
        return self.find_books(projection=projection)

    def find_sorted(self, field: str, direction: int = ASCENDING) -> List[Book]:
        return self.find_books(sort=[(field, direction)])

    def find_page(self, page: int, page_size: int) -> List[Book]:
        with store_call("find_page"):
            skip, limit = page_window(page, page_size)
        return self.find_books(skip=skip, limit=limit)

    def count_books(self, filter: Optional[Filter] = None) -> int:
        filter = dict(filter or {})
        with store_call("count_books"):
            return int(self.collection.count_documents(filter))

    def update_book(self, title: str, changes: Mapping[str, Any]) -> WriteAck:
        if not changes:
            raise MalformedQueryError("no fields to update", operation="update_book")
        with store_call("update_book"):
            res = self.collection.update_one(eq("title", title), {"$set": dict(changes)})
        ack = WriteAck(matched=res.matched_count, affected=res.modified_count)
        logger.debug("update %r -> %s", title, ack)
        return ack

    def delete_book(self, title: str) -> WriteAck:
        with store_call("delete_book"):
            res = self.collection.delete_one(eq("title", title))
        ack = WriteAck(matched=res.deleted_count, affected=res.deleted_count)
        logger.debug("delete %r -> %s", title, ack)
        return ack

    # ----- aggregation -----

    def aggregate(self, pipeline: Union[Pipeline, Sequence[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
        stages = pipeline.to_list() if isinstance(pipeline, Pipeline) else [dict(s) for s in pipeline]
        with store_call("aggregate"):
            return list(self.collection.aggregate(stages))

    def average_price_by_genre(self) -> Dict[Optional[str], Optional[float]]:
        return {d["_id"]: d.get("avgPrice") for d in self.aggregate(average_price_by_genre())}

    def top_author(self) -> Optional[AuthorCount]:
        rows = self.aggregate(top_author())
        if not rows:
            return None
        return AuthorCount(author=rows[0]["_id"], count=int(rows[0]["bookCount"]))

    def books_by_decade(self) -> Dict[int, int]:
        out: Dict[int, int] = {}
        for d in self.aggregate(books_by_decade()):
            if d["_id"] is None:
                logger.debug("%d book(s) without published_year left out of decades", d["count"])
                continue
            out[int(d["_id"])] = int(d["count"])
        return out

    # ----- indexes -----

    def create_index(self, keys: IndexKeys) -> str:
        with store_call("create_index"):
            keys = normalize_sort(list(keys))
            if not keys:
                raise MalformedQueryError("index needs at least one key")
            name = self.collection.create_index(keys)
        logger.debug("index %s ready", name)
        return name

    def explain(self, filter: Filter) -> ExecutionStats:
        filter = dict(filter)
        with store_call("explain"):
            raw = self.collection.find(filter).explain()
        return ExecutionStats.from_explain(raw)
