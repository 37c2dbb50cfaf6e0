from __future__ import annotations
import logging
from typing import Any, Optional

from pymongo import MongoClient
from pymongo.collection import Collection as MongoCollection
from pymongo.errors import PyMongoError

from .engine import Collection as EmbeddedCollection
from .errors import StoreConnectionError

logger = logging.getLogger(__name__)

DEFAULT_URI = "mongodb://localhost:27017/"
DEFAULT_DATABASE = "plp_bookstore"
DEFAULT_COLLECTION = "books"


class MongoStore:
    """
    One MongoDB client scoped to a single collection. open() connects and
    returns the collection handle; close() releases the client and is safe
    to call more than once.
    """
    def __init__(
        self,
        uri: str = DEFAULT_URI,
        database: str = DEFAULT_DATABASE,
        collection: str = DEFAULT_COLLECTION,
        **client_kwargs: Any,
    ) -> None:
        self.uri = uri
        self.database = database
        self.collection = collection
        self._client_kwargs = client_kwargs
        self._client: Optional[MongoClient] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def open(self) -> MongoCollection:
        if self._client is None:
            try:
                self._client = MongoClient(self.uri, **self._client_kwargs)
                # MongoClient connects lazily; ping so failures surface here
                self._client.admin.command("ping")
            except PyMongoError as e:
                raise StoreConnectionError(f"cannot reach {self.uri}: {e}", operation="connect") from e
            logger.debug("connected to %s", self.uri)
        return self._client[self.database][self.collection]

    def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            client.close()
            logger.debug("closed connection to %s", self.uri)

    def __enter__(self) -> MongoCollection:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"MongoStore({self.uri!r}, {self.database!r}, {self.collection!r})"


class EmbeddedStore:
    """
    Same open/close contract over an in-process collection. The collection
    outlives close(), so records stay visible to later opens.
    """
    def __init__(self, collection: Optional[EmbeddedCollection] = None) -> None:
        self.collection = collection if collection is not None else EmbeddedCollection(
            DEFAULT_COLLECTION, DEFAULT_DATABASE
        )
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> EmbeddedCollection:
        self._open = True
        return self.collection

    def close(self) -> None:
        self._open = False

    def __enter__(self) -> EmbeddedCollection:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"EmbeddedStore({self.collection.full_name!r})"
