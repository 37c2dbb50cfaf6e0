from .catalog import BookCatalog
from .engine import Collection
from .errors import DuplicateKeyError, MalformedQueryError, StoreConnectionError, StoreOperationError
from .models import AuthorCount, Book, BookView, ExecutionStats, WriteAck
from .runner import CatalogQueryRunner, Operation, RunnerConfig, RunReport, default_operations
from .seed import SEED_BOOKS, seed_books
from .storage import EmbeddedStore, MongoStore

__all__ = [
    "AuthorCount",
    "Book",
    "BookCatalog",
    "BookView",
    "CatalogQueryRunner",
    "Collection",
    "DuplicateKeyError",
    "EmbeddedStore",
    "ExecutionStats",
    "MalformedQueryError",
    "MongoStore",
    "Operation",
    "RunReport",
    "RunnerConfig",
    "SEED_BOOKS",
    "StoreConnectionError",
    "StoreOperationError",
    "WriteAck",
    "default_operations",
    "seed_books",
]
