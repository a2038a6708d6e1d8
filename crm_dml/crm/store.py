from __future__ import annotations

import logging
import uuid
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from typing import Any, Protocol, TypeVar

from sqlalchemy import inspect, select
from sqlalchemy.orm import InstrumentedAttribute, Session, make_transient

from crm_dml.core.database import Base
from crm_dml.crm.errors import RecordNotFoundError, StoreOperationError


logger = logging.getLogger("crm_dml.crm.store")

RecordT = TypeVar("RecordT", bound=Base)


class RecordStore(Protocol):
    """Persistence capability handed to every exercise.

    Mutating calls treat an empty collection as a successful no-op.
    """

    def insert(self, records: Sequence[Base]) -> list[uuid.UUID]: ...

    def update(self, records: Sequence[Base]) -> None: ...

    def upsert(self, records: Sequence[Base], match_key: str | None = None) -> None: ...

    def delete(self, records: Sequence[Base]) -> None: ...

    def query_by_field(self, model: type[RecordT], field: str, value: Any) -> list[RecordT]: ...

    def get_by_id(self, model: type[RecordT], record_id: uuid.UUID | str) -> RecordT: ...


def _type_names(records: Sequence[Base]) -> str:
    return ",".join(sorted({type(record).__name__ for record in records}))


class SqlAlchemyRecordStore:
    """RecordStore over a SQLAlchemy session; every mutating call commits once."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def insert(self, records: Sequence[Base]) -> list[uuid.UUID]:
        if not records:
            return []

        with self._unit_of_work("insert", records):
            for record in records:
                if getattr(record, "id", None) is not None:
                    raise StoreOperationError("insert", type(record).__name__, "record already has an id")
            self.session.add_all(records)
            self.session.flush()
            ids = [record.id for record in records]  # type: ignore[attr-defined]
        return ids

    def update(self, records: Sequence[Base]) -> None:
        if not records:
            return

        with self._unit_of_work("update", records):
            for record in records:
                record_id = getattr(record, "id", None)
                if record_id is None:
                    raise StoreOperationError("update", type(record).__name__, "record has no id")
                if record in self.session:
                    continue
                if self.session.get(type(record), record_id) is None:
                    raise RecordNotFoundError("update", type(record).__name__, record_id)
                self.session.merge(record)

    def upsert(self, records: Sequence[Base], match_key: str | None = None) -> None:
        if not records:
            return

        key = match_key or "id"
        with self._unit_of_work("upsert", records):
            for record in records:
                if record in self.session:
                    continue

                model = type(record)
                column = self._column(model, key, "upsert")
                value = getattr(record, key)
                existing = None
                if value is not None:
                    existing = self.session.scalars(select(model).where(column == value).limit(1)).first()

                if existing is None:
                    if inspect(record).detached:
                        # Its row was deleted; insert it again under the same id.
                        make_transient(record)
                    self.session.add(record)
                    # Later records in this batch must see this one when matching on key.
                    self.session.flush()
                else:
                    record.id = existing.id  # type: ignore[attr-defined]
                    self.session.merge(record)

    def delete(self, records: Sequence[Base]) -> None:
        if not records:
            return

        with self._unit_of_work("delete", records):
            for record in records:
                record_id = getattr(record, "id", None)
                if record_id is None:
                    raise StoreOperationError("delete", type(record).__name__, "record has no id")

                target = record if record in self.session else self.session.get(type(record), record_id)
                if target is None:
                    raise RecordNotFoundError("delete", type(record).__name__, record_id)
                self.session.delete(target)

    def query_by_field(self, model: type[RecordT], field: str, value: Any) -> list[RecordT]:
        column = self._column(model, field, "query")
        stmt = select(model).where(column == value).order_by(model.created_at.asc())  # type: ignore[attr-defined]
        rows = list(self.session.scalars(stmt).all())
        logger.debug(
            "store.query",
            extra={"operation": "query", "record_type": model.__name__, "record_count": len(rows)},
        )
        return rows

    def get_by_id(self, model: type[RecordT], record_id: uuid.UUID | str) -> RecordT:
        if isinstance(record_id, str):
            try:
                record_id = uuid.UUID(record_id)
            except ValueError:
                raise StoreOperationError("get", model.__name__, f"malformed id '{record_id}'") from None

        record = self.session.get(model, record_id)
        if record is None:
            raise RecordNotFoundError("get", model.__name__, record_id)
        return record

    @staticmethod
    def _column(model: type[Base], field: str, operation: str) -> InstrumentedAttribute[Any]:
        if field not in inspect(model).columns:
            raise StoreOperationError(operation, model.__name__, f"unknown field '{field}'")
        return getattr(model, field)

    @contextmanager
    def _unit_of_work(self, operation: str, records: Sequence[Base]) -> Generator[None, None, None]:
        record_type = _type_names(records)
        try:
            yield
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            logger.warning(
                "store.failed",
                extra={
                    "operation": operation,
                    "record_type": record_type,
                    "record_count": len(records),
                    "error": str(exc),
                },
            )
            raise

        logger.debug(
            f"store.{operation}",
            extra={"operation": operation, "record_type": record_type, "record_count": len(records)},
        )
