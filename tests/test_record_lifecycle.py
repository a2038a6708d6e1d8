from __future__ import annotations

import uuid
from collections.abc import Generator, Sequence
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_dml.core.database import Base
from crm_dml.crm.exercises import DMLExercises
from crm_dml.crm.models import CRMCase, CRMLead
from crm_dml.crm.store import SqlAlchemyRecordStore


class RecordingStore(SqlAlchemyRecordStore):
    def __init__(self, session: Session) -> None:
        super().__init__(session)
        self.calls: list[tuple[str, int]] = []

    def insert(self, records: Sequence[Any]) -> list[uuid.UUID]:
        self.calls.append(("insert", len(records)))
        return super().insert(records)

    def delete(self, records: Sequence[Any]) -> None:
        self.calls.append(("delete", len(records)))
        super().delete(records)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def store(db_session: Session) -> RecordingStore:
    return RecordingStore(db_session)


def test_insert_and_delete_leads_leaves_nothing_behind(store: RecordingStore) -> None:
    DMLExercises().insert_and_delete_leads(store, ["Smith", "Jones", "Brown"])

    assert store.calls == [("insert", 3), ("delete", 3)]
    assert store.query_by_field(CRMLead, "company", "Acme Inc.") == []


def test_insert_and_delete_leads_with_empty_list(store: RecordingStore) -> None:
    DMLExercises().insert_and_delete_leads(store, [])

    assert store.query_by_field(CRMLead, "status", "Open - Not Contacted") == []


def test_delete_cases_for_account_leaves_nothing_behind(store: RecordingStore) -> None:
    account_id = uuid.uuid4()

    DMLExercises().delete_cases_for_account(store, account_id, 4)

    assert store.calls == [("insert", 4), ("delete", 4)]
    assert store.query_by_field(CRMCase, "account_id", str(account_id)) == []


@pytest.mark.parametrize("case_count", [0, -2])
def test_delete_cases_for_account_with_no_cases(store: RecordingStore, case_count: int) -> None:
    account_id = uuid.uuid4()

    DMLExercises().delete_cases_for_account(store, account_id, case_count)

    assert store.query_by_field(CRMCase, "account_id", str(account_id)) == []


def test_cases_store_account_reference_as_text(store: RecordingStore) -> None:
    account_id = uuid.uuid4()
    cases = [CRMCase(subject="Case 1", account_id=str(account_id))]

    store.insert(cases)

    (stored,) = store.query_by_field(CRMCase, "account_id", str(account_id))
    assert stored.status == "New"
    assert stored.account_id == str(account_id)
