from __future__ import annotations

from collections.abc import Callable
from typing import Any

from crm_dml.crm.store import RecordStore, RecordT


def find_or_create(
    store: RecordStore,
    model: type[RecordT],
    match_field: str,
    match_value: Any,
    *,
    build: Callable[[], RecordT],
    on_found: Callable[[RecordT], None] | None = None,
) -> RecordT:
    """Return the first record whose ``match_field`` equals ``match_value``, creating it when absent.

    ``on_found`` mutates an existing match before it is saved; ``build`` constructs
    the record when nothing matches. Either way the record is upserted by id
    before returning, so callers can reference its id immediately.
    """
    matches = store.query_by_field(model, match_field, match_value)
    if matches:
        record = matches[0]
        if on_found is not None:
            on_found(record)
    else:
        record = build()

    store.upsert([record])
    return record
