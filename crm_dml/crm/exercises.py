from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Generator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from opentelemetry.trace import Span, Status, StatusCode

from crm_dml.context import get_correlation_id, reset_correlation_id, set_correlation_id
from crm_dml.crm.models import CRMAccount, CRMCase, CRMContact, CRMLead, CRMOpportunity
from crm_dml.crm.store import RecordStore
from crm_dml.crm.upsert import find_or_create
from crm_dml.otel import get_tracer


logger = logging.getLogger("crm_dml.crm.exercises")
tracer = get_tracer("crm_dml.crm.exercises")

SAMPLE_ACCOUNT_NAME = "Acme Inc."
SAMPLE_ACCOUNT_INDUSTRY = "Technology"
SAMPLE_ACCOUNT_EMPLOYEES = 100

SAMPLE_CONTACT_FIRST_NAME = "John"
SAMPLE_CONTACT_LAST_NAME = "Doe"
SAMPLE_CONTACT_EMAIL = "john.doe@example.com"
SAMPLE_CONTACT_PHONE = "555-0100"

QUALIFICATION_STAGE = "Qualification"
PROSPECTING_STAGE = "Prospecting"
NORMALIZED_AMOUNT = Decimal("50000")
CLOSE_DATE_MONTHS_AHEAD = 3

NEW_ACCOUNT_DESCRIPTION = "New Account"
UPDATED_ACCOUNT_DESCRIPTION = "Updated Account"

LEAD_COMPANY = "Acme Inc."
LEAD_STATUS = "Open - Not Contacted"
CASE_STATUS = "New"


@contextmanager
def _exercise_run(exercise: str) -> Generator[Span, None, None]:
    correlation_id = get_correlation_id() or str(uuid.uuid4())
    token = set_correlation_id(correlation_id)
    started = time.perf_counter()
    try:
        with tracer.start_as_current_span(
            f"crm.exercise.{exercise}",
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            span.set_attribute("exercise", exercise)
            span.set_attribute("correlation_id", correlation_id)
            logger.info("exercise.started", extra={"exercise": exercise, "status": "Running", "duration_ms": 0.0})

            try:
                yield span
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                logger.info(
                    "exercise.finished",
                    extra={
                        "exercise": exercise,
                        "status": "Failed",
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "error": str(exc)[:500],
                    },
                )
                raise

            logger.info(
                "exercise.finished",
                extra={
                    "exercise": exercise,
                    "status": "Succeeded",
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
    finally:
        reset_correlation_id(token)


def _mark_account_updated(account: CRMAccount) -> None:
    account.description = UPDATED_ACCOUNT_DESCRIPTION


@dataclass(slots=True)
class DMLExercises:
    """Create, update, upsert and delete drills over Accounts, Contacts, Opportunities, Leads and Cases.

    Every operation receives the record store explicitly and lets store failures
    reach the caller untouched.
    """

    today: Callable[[], date] = date.today

    def insert_new_account(self, store: RecordStore) -> uuid.UUID:
        with _exercise_run("insert_new_account"):
            account = CRMAccount(
                name=SAMPLE_ACCOUNT_NAME,
                industry=SAMPLE_ACCOUNT_INDUSTRY,
                number_of_employees=SAMPLE_ACCOUNT_EMPLOYEES,
            )
            (account_id,) = store.insert([account])
            return account_id

    def create_account(self, store: RecordStore, name: str, industry: str) -> None:
        with _exercise_run("create_account"):
            store.insert([CRMAccount(name=name, industry=industry)])

    def insert_new_contact(self, store: RecordStore, account_id: uuid.UUID) -> uuid.UUID:
        with _exercise_run("insert_new_contact"):
            contact = CRMContact(
                first_name=SAMPLE_CONTACT_FIRST_NAME,
                last_name=SAMPLE_CONTACT_LAST_NAME,
                email=SAMPLE_CONTACT_EMAIL,
                phone=SAMPLE_CONTACT_PHONE,
                account_id=account_id,
            )
            (contact_id,) = store.insert([contact])
            return contact_id

    def update_contact_last_name(self, store: RecordStore, contact_id: uuid.UUID, new_last_name: str) -> None:
        with _exercise_run("update_contact_last_name"):
            contact = store.get_by_id(CRMContact, contact_id)
            contact.last_name = new_last_name
            store.update([contact])

    def update_opportunity_stage(self, store: RecordStore, opportunity_id: uuid.UUID, new_stage: str) -> None:
        with _exercise_run("update_opportunity_stage"):
            opportunity = store.get_by_id(CRMOpportunity, opportunity_id)
            opportunity.stage = new_stage
            store.update([opportunity])

    def update_account_fields(
        self,
        store: RecordStore,
        account_id: uuid.UUID,
        new_name: str,
        new_industry: str,
    ) -> None:
        with _exercise_run("update_account_fields"):
            account = store.get_by_id(CRMAccount, account_id)
            account.name = new_name
            account.industry = new_industry
            store.update([account])

    def upsert_opportunities(self, store: RecordStore, opportunities: Sequence[CRMOpportunity]) -> None:
        with _exercise_run("upsert_opportunities"):
            close_date = self._close_date()
            for opportunity in opportunities:
                opportunity.stage = QUALIFICATION_STAGE
                opportunity.close_date = close_date
                opportunity.amount = NORMALIZED_AMOUNT
            store.upsert(list(opportunities))

    def upsert_account_opportunities(
        self,
        store: RecordStore,
        account_name: str,
        opportunity_names: Sequence[str],
    ) -> None:
        with _exercise_run("upsert_account_opportunities"):
            account = self._find_or_create_account(store, account_name)
            close_date = self._close_date()
            opportunities = [
                CRMOpportunity(
                    name=name,
                    stage=PROSPECTING_STAGE,
                    close_date=close_date,
                    account_id=account.id,
                )
                for name in opportunity_names
            ]
            store.upsert(opportunities)

    def upsert_account(self, store: RecordStore, account_name: str) -> CRMAccount:
        with _exercise_run("upsert_account"):
            return self._find_or_create_account(store, account_name)

    def upsert_accounts_for_contacts(self, store: RecordStore, contacts: Sequence[CRMContact]) -> None:
        with _exercise_run("upsert_accounts_for_contacts"):
            # Each lookup commits before the next one, so repeated surnames resolve to the same account.
            for contact in contacts:
                account = self._find_or_create_account(store, contact.last_name)
                contact.account_id = account.id
            store.upsert(list(contacts))

    def insert_and_delete_leads(self, store: RecordStore, lead_names: Sequence[str]) -> None:
        with _exercise_run("insert_and_delete_leads"):
            leads = [CRMLead(last_name=name, company=LEAD_COMPANY, status=LEAD_STATUS) for name in lead_names]
            store.insert(leads)
            store.delete(leads)

    def delete_cases_for_account(self, store: RecordStore, account_id: uuid.UUID | str, case_count: int) -> None:
        with _exercise_run("delete_cases_for_account"):
            cases = [
                CRMCase(subject=f"Case {index + 1}", status=CASE_STATUS, account_id=str(account_id))
                for index in range(case_count)
            ]
            store.insert(cases)
            store.delete(cases)

    def _close_date(self) -> date:
        return self.today() + relativedelta(months=CLOSE_DATE_MONTHS_AHEAD)

    def _find_or_create_account(self, store: RecordStore, account_name: str) -> CRMAccount:
        """Commit the named account, new or marked updated, even when nothing will reference it."""
        return find_or_create(
            store,
            CRMAccount,
            "name",
            account_name,
            build=lambda: CRMAccount(name=account_name, description=NEW_ACCOUNT_DESCRIPTION),
            on_found=_mark_account_updated,
        )


dml_exercises = DMLExercises()
