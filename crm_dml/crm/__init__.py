from crm_dml.crm.errors import RecordNotFoundError, StoreOperationError
from crm_dml.crm.exercises import DMLExercises, dml_exercises
from crm_dml.crm.models import CRMAccount, CRMCase, CRMContact, CRMLead, CRMOpportunity
from crm_dml.crm.store import RecordStore, SqlAlchemyRecordStore
from crm_dml.crm.upsert import find_or_create

__all__ = [
    "CRMAccount",
    "CRMCase",
    "CRMContact",
    "CRMLead",
    "CRMOpportunity",
    "DMLExercises",
    "dml_exercises",
    "RecordNotFoundError",
    "RecordStore",
    "SqlAlchemyRecordStore",
    "StoreOperationError",
    "find_or_create",
]
