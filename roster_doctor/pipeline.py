"""Preview, validate and commit-plan stages wired end to end.

Each stage takes the previous stage's output and returns new values, so a
caller can re-run ``validate_import`` after fixing mappings without parsing
the file again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Sequence

from roster_doctor.catalogue import CANONICAL_FIELDS, DEFAULT_STATUS, FieldSpec
from roster_doctor.column_matcher import ColumnMapping, get_unmapped_required_fields, match_all_columns
from roster_doctor.config import DEFAULT_SETTINGS, ImportSettings
from roster_doctor.duplicates import (
    RESOLUTION_UNRESOLVED,
    DuplicateMatch,
    ExistingRecord,
    OverwriteTarget,
    apply_resolutions,
    detect_duplicates,
    filter_duplicates,
    set_all_duplicate_resolutions,
)
from roster_doctor.loader import ParsedTable, get_preview_rows, parse_buffer
from roster_doctor.validate_row import ValidationError, validate_all_rows


@dataclass(frozen=True)
class ImportPreview:
    table: ParsedTable
    mappings: list[ColumnMapping]
    preview_rows: list[list[str]]
    unmapped_required: list[FieldSpec]


@dataclass
class ImportValidation:
    total_rows: int
    valid_rows: list[dict[str, Any]] = field(default_factory=list)
    valid_row_numbers: list[int] = field(default_factory=list)
    errors: list[ValidationError] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    unmapped_required: list[FieldSpec] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return bool(self.unmapped_required)


@dataclass
class CommitPlan:
    to_import: list[dict[str, Any]] = field(default_factory=list)
    to_overwrite: list[OverwriteTarget] = field(default_factory=list)
    skipped: int = 0
    unresolved: int = 0
    errors: list[ValidationError] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)


def preview_import(
    buffer: bytes,
    filename: str,
    settings: ImportSettings | None = None,
    fields: Sequence[FieldSpec] = CANONICAL_FIELDS,
) -> ImportPreview:
    settings = settings or DEFAULT_SETTINGS
    table = parse_buffer(buffer, filename, settings)
    mappings = match_all_columns(
        table.headers,
        fields,
        threshold=settings.fuzzy_threshold,
        scorer=settings.fuzzy_scorer,
    )
    return ImportPreview(
        table=table,
        mappings=mappings,
        preview_rows=get_preview_rows(table, settings.preview_rows),
        unmapped_required=get_unmapped_required_fields(mappings, fields),
    )


def validate_import(
    table: ParsedTable,
    mappings: Sequence[ColumnMapping],
    existing_records: Iterable[ExistingRecord] = (),
    fields: Sequence[FieldSpec] = CANONICAL_FIELDS,
) -> ImportValidation:
    """Validate every row and flag duplicates, unless a required field is unmapped."""
    unmapped = get_unmapped_required_fields(mappings, fields)
    if unmapped:
        return ImportValidation(total_rows=table.total_rows, unmapped_required=unmapped)

    report = validate_all_rows(table.rows, table.headers, mappings)
    return ImportValidation(
        total_rows=table.total_rows,
        valid_rows=report.valid_rows,
        valid_row_numbers=report.valid_row_numbers,
        errors=report.errors,
        duplicates=detect_duplicates(report.valid_rows, existing_records),
    )


def whole_dollars(value: float | None) -> int | None:
    """Round half up to a whole dollar: 2500.5 -> 2501."""
    if value is None:
        return None
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def commit_record(row: Mapping[str, Any]) -> dict[str, Any]:
    """Fill storage defaults: empty lists, false flags, whole-dollar budgets, active status."""
    record: dict[str, Any] = {}
    for spec in CANONICAL_FIELDS:
        value = row.get(spec.key)
        if spec.kind == "list":
            record[spec.key] = list(value or [])
        elif spec.kind == "boolean":
            record[spec.key] = bool(value)
        elif spec.kind == "number":
            record[spec.key] = whole_dollars(value)
        elif spec.kind == "status":
            record[spec.key] = value or DEFAULT_STATUS
        else:
            record[spec.key] = value if value not in ("", None) else None
    return record


def build_commit_plan(
    validation: ImportValidation,
    resolutions: Mapping[int, str] | None = None,
    resolve_all: str | None = None,
) -> CommitPlan:
    if validation.blocked:
        labels = ", ".join(spec.label for spec in validation.unmapped_required)
        raise ValueError(f"Required fields not mapped: {labels}")

    matches = list(validation.duplicates)
    if resolve_all:
        matches = set_all_duplicate_resolutions(matches, resolve_all)
    if resolutions:
        matches = apply_resolutions(matches, resolutions)

    partition = filter_duplicates(validation.valid_rows, matches)
    return CommitPlan(
        to_import=[commit_record(row) for row in partition.to_import],
        to_overwrite=[
            OverwriteTarget(commit_record(target.row), target.existing_id) for target in partition.to_overwrite
        ],
        skipped=len(partition.to_skip),
        unresolved=sum(1 for match in matches if match.resolution == RESOLUTION_UNRESOLVED),
        errors=list(validation.errors),
        duplicates=matches,
    )
