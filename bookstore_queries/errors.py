from __future__ import annotations


class StoreOperationError(Exception):
    """
    Any failure coming from the document store: lost connection, malformed
    query or a store-side rejection. `operation` names the catalog call that
    failed, when known.
    """
    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation

    def __str__(self) -> str:
        msg = super().__str__()
        if self.operation:
            return f"{self.operation}: {msg}"
        return msg


class StoreConnectionError(StoreOperationError):
    pass


class MalformedQueryError(StoreOperationError):
    pass


class DuplicateKeyError(StoreOperationError):
    pass
