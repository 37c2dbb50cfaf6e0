from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from rich.console import Console
from rich.pretty import Pretty
from rich.text import Text

from .catalog import BookCatalog
from .errors import StoreOperationError
from .models import Book
from .progress import Progress, ProgressCallback
from .query import ASCENDING, DESCENDING, eq
from .storage import DEFAULT_COLLECTION, DEFAULT_DATABASE, DEFAULT_URI

logger = logging.getLogger(__name__)


def _new_book() -> Book:
    return Book(
        title="New Book",
        author="Test Author",
        genre="Fiction",
        published_year=2022,
        price=15.99,
        in_stock=True,
        pages=250,
        publisher="Test Publisher",
    )


@dataclass
class RunnerConfig:
    """
    Fixed parameters of the query sequence. There is no environment or
    command-line override; callers construct a different config instead.
    """
    uri: str = DEFAULT_URI
    database: str = DEFAULT_DATABASE
    collection: str = DEFAULT_COLLECTION
    new_book: Book = field(default_factory=_new_book)
    genre: str = "Fiction"
    published_after: int = 2000
    author: str = "George Orwell"
    in_stock_after: int = 1960
    repriced_title: str = "To Kill a Mockingbird"
    new_price: float = 15.99
    projected_fields: Sequence[str] = ("title", "author", "price")
    page_size: int = 5
    explain_title: str = "1984"


@dataclass(frozen=True)
class Operation:
    label: str
    run: Callable[[BookCatalog], Any]


def default_operations(config: Optional[RunnerConfig] = None) -> List[Operation]:
    """
    The demonstration sequence: CRUD, advanced finds, aggregations and
    indexing, in that order.
    """
    c = config or RunnerConfig()
    return [
        # CRUD
        Operation(f"Inserted '{c.new_book.title}'", lambda cat: cat.insert_book(c.new_book.to_document())),
        Operation(f"{c.genre} books", lambda cat: cat.find_by_genre(c.genre)),
        Operation(f"📚 Books published after {c.published_after}", lambda cat: cat.find_published_after(c.published_after)),
        Operation(f"📚 Books by {c.author}", lambda cat: cat.find_by_author(c.author)),
        Operation(f"Updated {c.repriced_title} price",
                  lambda cat: cat.update_book(c.repriced_title, {"price": c.new_price})),
        Operation(f"Deleted '{c.new_book.title}'", lambda cat: cat.delete_book(c.new_book.title)),
        # Advanced queries
        Operation(f"📚 In stock & published after {c.in_stock_after}",
                  lambda cat: cat.find_in_stock_after(c.in_stock_after)),
        Operation(f"🎯 Projection ({', '.join(c.projected_fields)})",
                  lambda cat: cat.find_projected(c.projected_fields)),
        Operation("⬆️ Books sorted by price (ascending)", lambda cat: cat.find_sorted("price", ASCENDING)),
        Operation("⬇️ Books sorted by price (descending)", lambda cat: cat.find_sorted("price", DESCENDING)),
        Operation(f"📄 Page 1 (first {c.page_size} books)", lambda cat: cat.find_page(1, c.page_size)),
        Operation(f"📄 Page 2 (next {c.page_size} books)", lambda cat: cat.find_page(2, c.page_size)),
        # Aggregation pipelines
        Operation("📊 Average price by genre", lambda cat: cat.average_price_by_genre()),
        Operation("👑 Author with most books", lambda cat: cat.top_author()),
        Operation("📅 Books grouped by decade", lambda cat: cat.books_by_decade()),
        # Indexing
        Operation("⚡ Index created on 'title'", lambda cat: cat.create_index([("title", ASCENDING)])),
        Operation("⚡ Compound index created on 'author + published_year'",
                  lambda cat: cat.create_index([("author", ASCENDING), ("published_year", DESCENDING)])),
        Operation("🔍 Explain query with index", lambda cat: cat.explain(eq("title", c.explain_title))),
    ]


@dataclass
class RunReport:
    completed: List[str] = field(default_factory=list)
    results: Dict[str, Any] = field(default_factory=dict)
    failed: Optional[str] = None
    error: Optional[StoreOperationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CatalogQueryRunner:
    """
    Opens the store once, runs every operation in order, prints each
    result under its label and always closes the store. A
    StoreOperationError stops the sequence; nothing is retried.
    """
    def __init__(
        self,
        store: Any,
        *,
        operations: Optional[Sequence[Operation]] = None,
        config: Optional[RunnerConfig] = None,
        console: Optional[Console] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.store = store
        self.config = config or RunnerConfig()
        self.operations = list(operations) if operations is not None else default_operations(self.config)
        self.console = console or Console()
        self._progress = Progress(on_progress)

    def run(self) -> RunReport:
        report = RunReport()
        total = len(self.operations)
        current = "connect"
        self._progress.emit("run.start", 0, f"{total} operations")
        try:
            collection = self.store.open()
            self.console.print(f"connected to {self.store!r}")
            catalog = BookCatalog(collection)
            for i, op in enumerate(self.operations):
                current = op.label
                logger.debug("running %s", op.label)
                result = op.run(catalog)
                report.completed.append(op.label)
                report.results[op.label] = result
                self._show(op.label, result)
                self._progress.step("run.op", i + 1, total, op.label)
        except StoreOperationError as e:
            report.failed = current
            report.error = e
            logger.error("Error occurred during %r: %s", current, e, exc_info=True)
            self.console.print(Text(f"Error occurred: {e}", style="bold red"))
            self._progress.emit("run.failed", 100 * len(report.completed) // max(total, 1), str(e))
        finally:
            self.store.close()
            self.console.print("\nConnection closed")
        self._progress.emit("run.done", 100, "ok" if report.ok else f"aborted at {report.failed}")
        return report

    def _show(self, label: str, result: Any) -> None:
        self.console.print()
        self.console.print(Text(f"{label}:", style="bold"))
        self.console.print(Pretty(result))
