from __future__ import annotations

import re
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

from roster_doctor.catalogue import FIELDS_BY_KEY, STATUS_VALUES, VOCABULARIES
from roster_doctor.column_matcher import ColumnMapping
from roster_doctor.normalization import (
    parse_boolean,
    parse_date,
    parse_list,
    parse_number,
    parse_status,
    parse_text,
)

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PHONE_RE = re.compile(r"[\d \-()+.]+")

MAX_LENGTHS = {
    "name": (200, "Name is too long"),
    "commute_address": (500, "Commute address too long"),
    "notes": (5000, "Notes too long"),
}


@dataclass(frozen=True)
class ValidationError:
    row: int
    field: str
    message: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "field": self.field, "message": self.message, "value": self.value}


@dataclass(frozen=True)
class RowValidation:
    errors: tuple[ValidationError, ...] = ()
    data: dict[str, Any] | None = None

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class ValidationReport:
    valid_rows: list[dict[str, Any]] = field(default_factory=list)
    errors: list[ValidationError] = field(default_factory=list)
    # 1-indexed source row of each entry in valid_rows
    valid_row_numbers: list[int] = field(default_factory=list)

    @property
    def invalid_row_count(self) -> int:
        return len({error.row for error in self.errors})


def display_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def _coerce_cell(key: str, raw: str) -> Any:
    spec = FIELDS_BY_KEY.get(key)
    kind = spec.kind if spec else "text"
    if kind == "boolean":
        return parse_boolean(raw)
    if kind == "number":
        return parse_number(raw)
    if kind == "date":
        return parse_date(raw)
    if kind == "list":
        vocabulary = VOCABULARIES.get(spec.vocabulary) if spec.vocabulary else None
        return parse_list(raw, vocabulary)
    if kind == "status":
        return parse_status(raw)
    return parse_text(raw)


def transform_row(
    row: Sequence[str],
    headers: Sequence[str],
    mappings: Sequence[ColumnMapping],
) -> dict[str, Any]:
    """
    Build a candidate record from one raw row.

    Mappings are lined up with header positions, so two columns that share
    a header name each use their own mapping. Blank or unparsable cells are
    left out of the record; mapped boolean columns are always present.
    """
    queues: dict[str, deque[ColumnMapping]] = defaultdict(deque)
    for mapping in mappings:
        queues[mapping.source_column].append(mapping)

    record: dict[str, Any] = {}
    for index, header in enumerate(headers):
        queue = queues.get(header)
        if not queue:
            continue
        mapping = queue.popleft()
        if not mapping.target_field:
            continue
        raw = row[index] if index < len(row) else ""
        value = _coerce_cell(mapping.target_field, raw or "")
        if value is not None:
            record[mapping.target_field] = value
    return record


def validate_row(record: dict[str, Any], row_number: int) -> RowValidation:
    errors: list[ValidationError] = []

    def fail(key: str, message: str, value: Any) -> None:
        errors.append(ValidationError(row_number, key, message, display_value(value)))

    name = record.get("name")
    if not isinstance(name, str) or not name.strip():
        fail("name", "Name is required", name)

    email = record.get("email")
    if email is not None and not EMAIL_RE.fullmatch(str(email)):
        fail("email", "Invalid email format", email)

    phone = record.get("phone")
    if phone is not None and not PHONE_RE.fullmatch(str(phone)):
        fail("phone", "Invalid phone format", phone)

    budget_min = record.get("budget_min")
    budget_max = record.get("budget_max")
    for key, amount in (("budget_min", budget_min), ("budget_max", budget_max)):
        if amount is not None and amount < 0:
            fail(key, "Budget must be positive", amount)
    if budget_min is not None and budget_max is not None and budget_min > budget_max:
        fail(
            "budget_min",
            "Minimum budget cannot exceed maximum budget",
            f"{display_value(budget_min)} > {display_value(budget_max)}",
        )

    for key, (limit, message) in MAX_LENGTHS.items():
        value = record.get(key)
        if isinstance(value, str) and len(value) > limit:
            fail(key, message, value[:50] + "...")

    status = record.get("status")
    if status is not None and status not in STATUS_VALUES:
        fail("status", f"Status must be one of: {', '.join(STATUS_VALUES)}", status)

    if errors:
        return RowValidation(errors=tuple(errors), data=None)
    return RowValidation(errors=(), data=dict(record))


def validate_all_rows(
    rows: Sequence[Sequence[str]],
    headers: Sequence[str],
    mappings: Sequence[ColumnMapping],
) -> ValidationReport:
    report = ValidationReport()
    for index, row in enumerate(rows):
        row_number = index + 1
        result = validate_row(transform_row(row, headers, mappings), row_number)
        if result.valid:
            report.valid_rows.append(result.data)
            report.valid_row_numbers.append(row_number)
        else:
            report.errors.extend(result.errors)
    return report
