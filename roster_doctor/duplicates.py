"""Email-based duplicate detection against records that already exist.

Unresolved matches are treated as skips when partitioning, so nothing is
overwritten unless the operator asked for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Sequence

RESOLUTION_SKIP = "skip"
RESOLUTION_OVERWRITE = "overwrite"
RESOLUTION_UNRESOLVED = "unresolved"
SETTABLE_RESOLUTIONS = (RESOLUTION_SKIP, RESOLUTION_OVERWRITE)


@dataclass(frozen=True)
class ExistingRecord:
    id: str
    name: str
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class DuplicateMatch:
    imported_row: dict[str, Any]
    existing_record: ExistingRecord
    row_index: int
    resolution: str = RESOLUTION_UNRESOLVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "imported_name": self.imported_row.get("name"),
            "imported_email": self.imported_row.get("email"),
            "existing_record": self.existing_record.to_dict(),
            "resolution": self.resolution,
        }


@dataclass(frozen=True)
class OverwriteTarget:
    row: dict[str, Any]
    existing_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"existing_id": self.existing_id, "row": self.row}


@dataclass
class DuplicatePartition:
    to_import: list[dict[str, Any]] = field(default_factory=list)
    to_skip: list[dict[str, Any]] = field(default_factory=list)
    to_overwrite: list[OverwriteTarget] = field(default_factory=list)


def normalize_email(email: Any) -> str | None:
    if not isinstance(email, str):
        return None
    normalized = email.strip().casefold()
    return normalized or None


def existing_records_from_dicts(payload: Iterable[Mapping[str, Any]]) -> list[ExistingRecord]:
    records = []
    for item in payload:
        if "id" not in item:
            raise ValueError("Existing records need an 'id'")
        email = item.get("email")
        records.append(ExistingRecord(str(item["id"]), str(item.get("name") or ""), email or None))
    return records


def detect_duplicates(
    imported_rows: Sequence[Mapping[str, Any]],
    existing_records: Iterable[ExistingRecord],
) -> list[DuplicateMatch]:
    by_email: dict[str, ExistingRecord] = {}
    for record in existing_records:
        email = normalize_email(record.email)
        if email and email not in by_email:
            by_email[email] = record

    matches: list[DuplicateMatch] = []
    for index, row in enumerate(imported_rows):
        email = normalize_email(row.get("email"))
        if email and email in by_email:
            matches.append(DuplicateMatch(dict(row), by_email[email], index))
    return matches


def _check_resolution(resolution: str) -> str:
    if resolution not in SETTABLE_RESOLUTIONS:
        raise ValueError(
            f"Resolution must be one of {', '.join(SETTABLE_RESOLUTIONS)}, got {resolution!r}"
        )
    return resolution


def update_duplicate_resolution(
    matches: Sequence[DuplicateMatch],
    row_index: int,
    resolution: str,
) -> list[DuplicateMatch]:
    _check_resolution(resolution)
    return [
        replace(match, resolution=resolution) if match.row_index == row_index else match
        for match in matches
    ]


def set_all_duplicate_resolutions(matches: Sequence[DuplicateMatch], resolution: str) -> list[DuplicateMatch]:
    _check_resolution(resolution)
    return [replace(match, resolution=resolution) for match in matches]


def apply_resolutions(
    matches: Sequence[DuplicateMatch],
    resolutions: Mapping[int, str],
) -> list[DuplicateMatch]:
    """Merge caller choices keyed by row index; indexes without a match are ignored."""
    for resolution in resolutions.values():
        _check_resolution(resolution)
    return [
        replace(match, resolution=resolutions[match.row_index]) if match.row_index in resolutions else match
        for match in matches
    ]


def filter_duplicates(
    imported_rows: Sequence[dict[str, Any]],
    matches: Sequence[DuplicateMatch],
) -> DuplicatePartition:
    by_index = {match.row_index: match for match in matches}
    partition = DuplicatePartition()
    for index, row in enumerate(imported_rows):
        match = by_index.get(index)
        if match is None:
            partition.to_import.append(row)
        elif match.resolution == RESOLUTION_OVERWRITE:
            partition.to_overwrite.append(OverwriteTarget(row, match.existing_record.id))
        else:
            partition.to_skip.append(row)
    return partition
