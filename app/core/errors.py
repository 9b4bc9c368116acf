"""Service layer exception classes.

Exception Hierarchy:
    AppError (base)
    ├── InvalidQuery            400  malformed page/limit/sort/date input
    ├── ValidationFailure       400  entity fails schema constraints
    ├── NotFound                404  identity does not resolve to a record
    ├── DataIntegrityError      409  stored data violates an assumed invariant
    │   └── CategoryCycleError
    ├── StorageFailure          500  the storage layer itself failed
    └── CascadeIncompleteError  500  category deleted, dependents not invalidated

Routers never build error responses by hand: they raise one of these and the
handler registered in ``main.py`` renders the ``{success: false, ...}`` envelope.
"""
from typing import Any, Optional


class AppError(Exception):
    """Base exception for all service layer errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "message": self.message}


class InvalidQuery(AppError):
    """Raised when list query parameters cannot be parsed."""

    status_code = 400

    def __init__(self, parameter: str, value: Any, reason: str):
        self.parameter = parameter
        self.value = value
        super().__init__(f"Invalid query parameter '{parameter}'={value!r}: {reason}")


class ValidationFailure(AppError):
    """Raised when an entity fails validation (e.g. duplicate unique field)."""

    status_code = 400


class NotFound(AppError):
    """Raised when an identity does not resolve to a record."""

    status_code = 404

    def __init__(self, entity: str, identity: str):
        self.entity = entity
        self.identity = identity
        super().__init__(f"{entity} not found")


class DataIntegrityError(AppError):
    """Raised when stored data breaks an invariant the service relies on."""

    status_code = 409


class CategoryCycleError(DataIntegrityError):
    """Raised when category parent references form a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(f"Category hierarchy contains a cycle: {' -> '.join(self.cycle)}")


class StorageFailure(AppError):
    """Raised when the storage layer errors (connectivity, timeout, ...).

    The message is deliberately generic; the underlying exception is chained
    and logged, never sent to the client.
    """

    status_code = 500

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message)


class CascadeIncompleteError(AppError):
    """Raised when a category was deleted but its plants were not invalidated."""

    status_code = 500

    def __init__(self, category_id: str, category_name: Optional[str]):
        self.category_id = category_id
        self.category_name = category_name
        super().__init__(
            "Category deleted, but associated plants could not be marked inactive"
        )

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["partial"] = True
        payload["deletedData"] = {"id": self.category_id, "name": self.category_name}
        return payload
