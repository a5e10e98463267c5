"""Canonical client fields and the controlled vocabularies behind them.

Everything here is static configuration. The column matcher reads
``CANONICAL_FIELDS`` to propose mappings, and the row transformer reads
each field's ``kind`` and ``vocabulary`` to coerce cells.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

CATALOGUE_VERSION = "2024.1"

FIELD_KINDS = ("text", "number", "boolean", "date", "list", "status")


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    aliases: tuple[str, ...] = ()
    required: bool = False
    kind: str = "text"
    vocabulary: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in FIELD_KINDS:
            raise ValueError(f"Field {self.key!r} has unknown kind {self.kind!r}")

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "aliases": list(self.aliases),
            "required": self.required,
            "kind": self.kind,
            "vocabulary": self.vocabulary,
        }


@dataclass(frozen=True)
class VocabularyOption:
    id: str
    label: str


# ── Controlled vocabularies ───────────────────────────────────────────────────

NEIGHBORHOODS = (
    # Tier 1
    "South End",
    "NoDa",
    "Plaza Midwood",
    "Dilworth",
    "Uptown Charlotte",
    "Elizabeth",
    "Myers Park",
    "Camp North End",
    # Tier 2
    "University City",
    "Ballantyne",
    "SouthPark",
    "Montford",
    "Wesley Heights",
    "FreeMoreWest",
    "Sedgefield",
    # Tier 3
    "Matthews",
    "Huntersville",
    "Cornelius",
    "Davidson",
    "Pineville",
    "Mint Hill",
)

BEDROOM_OPTIONS = (
    VocabularyOption("studio", "Studio"),
    VocabularyOption("1br", "1 Bedroom"),
    VocabularyOption("2br", "2 Bedrooms"),
    VocabularyOption("3br+", "3+ Bedrooms"),
)

VIBES = (
    VocabularyOption("young-professional", "Young Professional"),
    VocabularyOption("remote-worker", "Remote Worker"),
    VocabularyOption("social-butterfly", "Social Butterfly"),
    VocabularyOption("foodie", "Foodie"),
    VocabularyOption("creative", "Creative"),
    VocabularyOption("nightlife-lover", "Nightlife Lover"),
    VocabularyOption("outdoorsy", "Outdoorsy"),
    VocabularyOption("homebody", "Homebody"),
    VocabularyOption("fitness-focused", "Fitness Focused"),
    VocabularyOption("urban-explorer", "Urban Explorer"),
)

PRIORITIES = (
    VocabularyOption("quiet", "Quiet"),
    VocabularyOption("walkable", "Walkable"),
    VocabularyOption("nightlife", "Nightlife"),
    VocabularyOption("family-friendly", "Family-Friendly"),
    VocabularyOption("safe", "Safe"),
    VocabularyOption("good-transit", "Good Transit"),
    VocabularyOption("parks", "Parks & Green Space"),
    VocabularyOption("trendy", "Trendy/Up-and-Coming"),
    VocabularyOption("well-maintained", "Well-Maintained"),
)

# Neighborhoods are stored by display name; everything else by id.
VOCABULARIES: dict[str, tuple[VocabularyOption, ...]] = {
    "neighborhoods": tuple(VocabularyOption(name, name) for name in NEIGHBORHOODS),
    "bedrooms": BEDROOM_OPTIONS,
    "vibes": VIBES,
    "priorities": PRIORITIES,
}

STATUS_VALUES = ("active", "placed", "archived")
DEFAULT_STATUS = "active"

STATUS_MAP = {
    # open pipeline
    "lead": "active",
    "new": "active",
    "open": "active",
    "working": "active",
    "in progress": "active",
    "qualified": "active",
    "contacted": "active",
    "engaged": "active",
    # closed / won
    "closed": "placed",
    "won": "placed",
    "converted": "placed",
    "customer": "placed",
    "closed won": "placed",
    "successful": "placed",
    "completed": "placed",
    # lost / inactive
    "lost": "archived",
    "closed lost": "archived",
    "unqualified": "archived",
    "inactive": "archived",
    "dead": "archived",
    "cancelled": "archived",
    "canceled": "archived",
}

BOOLEAN_TRUE = {"yes", "true", "1", "y", "x"}


# ── Field catalogue ───────────────────────────────────────────────────────────

CANONICAL_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(
        "name",
        "Name",
        ("full name", "client name", "contact name", "first name", "last name", "client"),
        required=True,
    ),
    FieldSpec("email", "Email", ("email address", "e-mail", "contact email", "e mail")),
    FieldSpec(
        "phone",
        "Phone",
        ("phone number", "mobile", "cell", "telephone", "cell phone", "mobile phone"),
    ),
    FieldSpec(
        "budget_min",
        "Budget Min",
        ("min budget", "minimum budget", "budget low", "budget minimum", "min rent"),
        kind="number",
    ),
    FieldSpec(
        "budget_max",
        "Budget Max",
        ("max budget", "maximum budget", "budget high", "budget maximum", "max rent", "budget"),
        kind="number",
    ),
    FieldSpec(
        "bedrooms",
        "Bedrooms",
        ("beds", "br", "bedroom count", "bedroom", "bed count"),
        kind="list",
        vocabulary="bedrooms",
    ),
    FieldSpec(
        "neighborhoods",
        "Neighborhoods",
        ("areas", "preferred areas", "location", "preferred neighborhoods", "neighborhood"),
        kind="list",
        vocabulary="neighborhoods",
    ),
    FieldSpec(
        "move_in_date",
        "Move-in Date",
        ("move date", "target date", "move-in", "moving date", "desired move date"),
        kind="date",
    ),
    FieldSpec(
        "vibes",
        "Vibes",
        ("lifestyle", "archetype", "personality", "lifestyle type"),
        kind="list",
        vocabulary="vibes",
    ),
    FieldSpec(
        "priorities",
        "Priorities",
        ("preferences", "must haves", "requirements", "needs"),
        kind="list",
        vocabulary="priorities",
    ),
    FieldSpec(
        "amenities",
        "Amenities",
        ("amenity", "must have amenities", "building amenities", "features"),
        kind="list",
    ),
    FieldSpec(
        "notes",
        "Notes",
        ("comments", "additional info", "description", "additional notes", "other"),
    ),
    FieldSpec(
        "status",
        "Status",
        ("stage", "lifecycle stage", "lead status", "client status"),
        kind="status",
    ),
    FieldSpec(
        "contact_preference",
        "Contact Preference",
        ("preferred contact", "contact method", "how to contact"),
    ),
    FieldSpec("has_dog", "Has Dog", ("dog", "has a dog", "pet dog", "dogs"), kind="boolean"),
    FieldSpec("has_cat", "Has Cat", ("cat", "has a cat", "pet cat", "cats"), kind="boolean"),
    FieldSpec(
        "has_kids",
        "Has Kids",
        ("kids", "children", "has children", "family"),
        kind="boolean",
    ),
    FieldSpec(
        "works_from_home",
        "Works From Home",
        ("remote work", "wfh", "work from home", "remote"),
        kind="boolean",
    ),
    FieldSpec(
        "needs_parking",
        "Needs Parking",
        ("parking", "parking needed", "requires parking", "car"),
        kind="boolean",
    ),
    FieldSpec(
        "commute_address",
        "Commute Address",
        ("work address", "office address", "workplace", "work location"),
    ),
    FieldSpec(
        "commute_preference",
        "Commute Preference",
        ("commute method", "commute mode", "how they commute", "commute type"),
    ),
)

FIELDS_BY_KEY = {field.key: field for field in CANONICAL_FIELDS}


def required_fields(fields: Sequence[FieldSpec] = CANONICAL_FIELDS) -> list[FieldSpec]:
    return [field for field in fields if field.required]


def describe_catalogue(fields: tuple[FieldSpec, ...] | list[FieldSpec] = CANONICAL_FIELDS) -> dict:
    return {
        "catalogue_version": CATALOGUE_VERSION,
        "fields": [field.to_dict() for field in fields],
        "vocabularies": {
            name: [{"id": option.id, "label": option.label} for option in options]
            for name, options in VOCABULARIES.items()
        },
        "status_values": list(STATUS_VALUES),
    }
