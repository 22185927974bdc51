"""Command handlers operating on the employee record store."""

from query import RECORD_FIELDS, Query
from record_store import EmployeeRecord, RecordStore, RecordStoreError
from result import QueryResult, format_table

HELP_TEXT = "\n".join(
    [
        "Commands:",
        "  add id=<n> name=<text> [age=<n>] [position=<text>] [department=<text>]",
        "  delete id=<n>",
        "  update id=<n> field=<value> [...]",
        "  query [field=<value> ...]",
        "  stats",
        "  help",
        'Values containing spaces must be quoted, e.g. name="Ada Lovelace".',
    ]
)


def add_employee(query: Query, store: RecordStore) -> QueryResult:
    values = query.info.assigned()
    record = EmployeeRecord(**values)
    try:
        store.insert(record)
    except RecordStoreError:
        return QueryResult.failure(f"Employee {record.id} already exists.")
    return QueryResult(text=f"Added employee {record.id}.")


def delete_employee(query: Query, store: RecordStore) -> QueryResult:
    record_id = query.info.id
    if record_id is None or not store.delete(record_id):
        return QueryResult.failure(f"No employee with id {record_id}.")
    return QueryResult(text=f"Deleted employee {record_id}.")


def update_employee(query: Query, store: RecordStore) -> QueryResult:
    changes = query.info.assigned()
    record_id = changes.pop("id", None)
    if record_id is None:
        return QueryResult.failure("No employee id given.")
    updated = store.update(record_id, changes)
    if updated is None:
        return QueryResult.failure(f"No employee with id {record_id}.")
    return QueryResult(text=f"Updated employee {record_id}.")


def query_employees(query: Query, store: RecordStore) -> QueryResult:
    records = store.find(query.info.assigned())
    if not records:
        return QueryResult(text="No matching employees.")
    rows = [[getattr(record, name) for name in RECORD_FIELDS] for record in records]
    table = format_table(RECORD_FIELDS, rows)
    return QueryResult(text=f"{table}\n({len(records)} rows)")


def show_help(query: Query, store: RecordStore) -> QueryResult:
    _ = query, store
    return QueryResult(text=HELP_TEXT)
