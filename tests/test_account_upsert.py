from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_dml.core.database import Base
from crm_dml.crm.exercises import DMLExercises
from crm_dml.crm.models import CRMAccount, CRMContact, CRMLead
from crm_dml.crm.store import SqlAlchemyRecordStore
from crm_dml.crm.upsert import find_or_create


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
def store(db_session: Session) -> SqlAlchemyRecordStore:
    return SqlAlchemyRecordStore(db_session)


def test_find_or_create_builds_when_nothing_matches(store: SqlAlchemyRecordStore) -> None:
    found: list[CRMLead] = []

    lead = find_or_create(
        store,
        CRMLead,
        "last_name",
        "Nakamura",
        build=lambda: CRMLead(last_name="Nakamura", company="Tyrell", status="New"),
        on_found=found.append,
    )

    assert lead.id is not None
    assert found == []
    assert store.query_by_field(CRMLead, "last_name", "Nakamura") == [lead]


def test_find_or_create_mutates_existing_match(store: SqlAlchemyRecordStore) -> None:
    (lead_id,) = store.insert([CRMLead(last_name="Nakamura", company="Tyrell", status="New")])

    def mark_working(lead: CRMLead) -> None:
        lead.status = "Working"

    def fail_build() -> CRMLead:
        raise AssertionError("build must not run when a match exists")

    lead = find_or_create(store, CRMLead, "last_name", "Nakamura", build=fail_build, on_found=mark_working)

    store.session.expire_all()
    assert lead.id == lead_id
    assert store.get_by_id(CRMLead, lead_id).status == "Working"


def test_upsert_account_creates_then_updates_without_duplicates(
    store: SqlAlchemyRecordStore,
    db_session: Session,
) -> None:
    exercises = DMLExercises()

    created = exercises.upsert_account(store, "Wayne Enterprises")
    assert created.description == "New Account"
    created_id = created.id

    updated = exercises.upsert_account(store, "Wayne Enterprises")

    assert updated.id == created_id
    assert updated.description == "Updated Account"
    accounts = db_session.scalars(select(CRMAccount).where(CRMAccount.name == "Wayne Enterprises")).all()
    assert len(accounts) == 1


def test_upsert_accounts_for_contacts_links_each_contact_by_surname(
    store: SqlAlchemyRecordStore,
    db_session: Session,
) -> None:
    contacts = [
        CRMContact(first_name="John", last_name="Doe"),
        CRMContact(first_name="Mary", last_name="Jane"),
        CRMContact(first_name="Jill", last_name="Doe"),
    ]

    DMLExercises().upsert_accounts_for_contacts(store, contacts)

    accounts = db_session.scalars(select(CRMAccount)).all()
    assert sorted(account.name for account in accounts) == ["Doe", "Jane"]

    stored_contacts = db_session.scalars(select(CRMContact)).all()
    assert len(stored_contacts) == 3
    for contact in stored_contacts:
        account = db_session.get(CRMAccount, contact.account_id)
        assert account is not None
        assert account.name == contact.last_name

    by_name = {account.name: account for account in accounts}
    assert by_name["Doe"].description == "Updated Account"
    assert by_name["Jane"].description == "New Account"
    assert contacts[0].account_id == contacts[2].account_id


def test_upsert_accounts_for_contacts_relinks_stored_contacts(
    store: SqlAlchemyRecordStore,
    db_session: Session,
) -> None:
    (existing_account_id,) = store.insert([CRMAccount(name="Kent")])
    contact = CRMContact(first_name="Clark", last_name="Kent")
    store.insert([contact])

    DMLExercises().upsert_accounts_for_contacts(store, [contact])

    store.session.expire_all()
    assert store.get_by_id(CRMContact, contact.id).account_id == existing_account_id
    assert len(db_session.scalars(select(CRMAccount)).all()) == 1


def test_upsert_accounts_for_contacts_with_no_contacts(store: SqlAlchemyRecordStore, db_session: Session) -> None:
    DMLExercises().upsert_accounts_for_contacts(store, [])

    assert db_session.scalars(select(CRMAccount)).all() == []
