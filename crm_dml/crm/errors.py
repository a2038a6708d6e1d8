from __future__ import annotations

from typing import Any


class StoreOperationError(Exception):
    """Raised when the record store refuses a call before touching the database."""

    def __init__(self, operation: str, record_type: str, reason: str) -> None:
        self.operation = operation
        self.record_type = record_type
        self.reason = reason
        super().__init__(f"{operation} failed for '{record_type}': {reason}")


class RecordNotFoundError(StoreOperationError):
    def __init__(self, operation: str, record_type: str, record_id: Any) -> None:
        self.record_id = record_id
        super().__init__(operation, record_type, f"no record with id {record_id}")
