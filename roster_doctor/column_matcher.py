from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Iterable, Sequence

from roster_doctor.catalogue import CANONICAL_FIELDS, FieldSpec, required_fields
from roster_doctor.config import DEFAULT_SETTINGS
from roster_doctor.similarity import get_scorer

KEY_CONFIDENCE = 1.0
LABEL_CONFIDENCE = 1.0
ALIAS_CONFIDENCE = 0.95

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ColumnMapping:
    source_column: str
    target_field: str | None
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_column": self.source_column,
            "target_field": self.target_field,
            "confidence": round(self.confidence, 4),
        }


def normalize_header(text: str) -> str:
    """Lowercase, turn punctuation into spaces, collapse whitespace."""
    return " ".join(_NON_ALNUM_RE.sub(" ", text.lower()).split())


def _unmatched(header: str) -> ColumnMapping:
    return ColumnMapping(header, None, 0.0)


def match_column(
    header: str,
    fields: Sequence[FieldSpec] = CANONICAL_FIELDS,
    *,
    threshold: float = DEFAULT_SETTINGS.fuzzy_threshold,
    scorer: str = DEFAULT_SETTINGS.fuzzy_scorer,
) -> ColumnMapping:
    stripped = header.strip()
    normalized = normalize_header(stripped)
    if not normalized:
        return _unmatched(header)

    for field in fields:
        if stripped == field.key:
            return ColumnMapping(header, field.key, KEY_CONFIDENCE)
    for field in fields:
        if normalized in (normalize_header(field.key), normalize_header(field.label)):
            return ColumnMapping(header, field.key, LABEL_CONFIDENCE)
    for field in fields:
        if any(normalized == normalize_header(alias) for alias in field.aliases):
            return ColumnMapping(header, field.key, ALIAS_CONFIDENCE)

    score_fn = get_scorer(scorer)
    best_field: str | None = None
    best_score = 0.0
    for field in fields:
        for candidate in (field.key, field.label, *field.aliases):
            score = score_fn(normalized, normalize_header(candidate))
            if score > best_score:
                best_field, best_score = field.key, score

    if best_field is not None and best_score >= threshold:
        return ColumnMapping(header, best_field, best_score)
    return _unmatched(header)


def match_all_columns(
    headers: Sequence[str],
    fields: Sequence[FieldSpec] = CANONICAL_FIELDS,
    *,
    threshold: float = DEFAULT_SETTINGS.fuzzy_threshold,
    scorer: str = DEFAULT_SETTINGS.fuzzy_scorer,
) -> list[ColumnMapping]:
    """
    Propose one mapping per header, then resolve collisions.

    When several headers claim the same field the highest confidence keeps
    it and earlier headers win ties. Output stays in header order, one entry
    per header position, so repeated header names are handled positionally.
    """
    proposals = [match_column(header, fields, threshold=threshold, scorer=scorer) for header in headers]
    order = sorted(range(len(proposals)), key=lambda index: (-proposals[index].confidence, index))

    claimed: set[str] = set()
    resolved: list[ColumnMapping | None] = [None] * len(proposals)
    for index in order:
        proposal = proposals[index]
        if proposal.target_field and proposal.target_field not in claimed:
            claimed.add(proposal.target_field)
            resolved[index] = proposal
        else:
            resolved[index] = _unmatched(proposal.source_column)
    return [mapping for mapping in resolved if mapping is not None]


def mapped_fields(mappings: Iterable[ColumnMapping]) -> set[str]:
    return {mapping.target_field for mapping in mappings if mapping.target_field}


def get_unmapped_required_fields(
    mappings: Iterable[ColumnMapping],
    fields: Sequence[FieldSpec] = CANONICAL_FIELDS,
) -> list[FieldSpec]:
    present = mapped_fields(mappings)
    return [field for field in required_fields(fields) if field.key not in present]


def update_mapping(
    mappings: Sequence[ColumnMapping],
    source_column: str,
    new_target: str | None,
    fields: Sequence[FieldSpec] = CANONICAL_FIELDS,
) -> list[ColumnMapping]:
    """Point ``source_column`` at ``new_target`` (or clear it), releasing the field elsewhere."""
    if new_target is not None and new_target not in {field.key for field in fields}:
        raise ValueError(f"Unknown canonical field: {new_target!r}")
    if not any(mapping.source_column == source_column for mapping in mappings):
        raise ValueError(f"Unknown source column: {source_column!r}")

    # Repeated header names: only the first occurrence is re-pointed.
    updated: list[ColumnMapping] = []
    seen = False
    for mapping in mappings:
        if mapping.source_column == source_column and not seen:
            seen = True
            confidence = KEY_CONFIDENCE if new_target else 0.0
            updated.append(replace(mapping, target_field=new_target, confidence=confidence))
        elif new_target and mapping.target_field == new_target:
            updated.append(replace(mapping, target_field=None, confidence=0.0))
        else:
            updated.append(mapping)
    return updated


def mapping_from_dict(payload: dict[str, Any]) -> ColumnMapping:
    try:
        source = payload["source_column"]
    except KeyError as exc:
        raise ValueError("Mapping entries need a 'source_column'") from exc
    target = payload.get("target_field") or None
    confidence = payload.get("confidence")
    if confidence is None:
        confidence = KEY_CONFIDENCE if target else 0.0
    return ColumnMapping(str(source), target, float(confidence))


def mappings_from_dicts(payload: Iterable[dict[str, Any]]) -> list[ColumnMapping]:
    return [mapping_from_dict(item) for item in payload]
