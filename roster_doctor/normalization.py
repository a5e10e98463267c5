from __future__ import annotations

import re
from datetime import date, datetime
from typing import Sequence

import pandas as pd

from roster_doctor.catalogue import BOOLEAN_TRUE, STATUS_MAP, STATUS_VALUES, VocabularyOption

# US-style month-first before day-first: roster exports come from US CRMs.
DATE_FORMAT_PATTERNS = [
    ("%Y-%m-%d", re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$")),
    ("%Y/%m/%d", re.compile(r"^\d{4}/\d{1,2}/\d{1,2}$")),
    ("%m/%d/%Y", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")),
    ("%d/%m/%Y", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")),
    ("%m-%d-%Y", re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$")),
    ("%d-%m-%Y", re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$")),
    ("%m/%d/%y", re.compile(r"^\d{1,2}/\d{1,2}/\d{2}$")),
    ("%d/%m/%y", re.compile(r"^\d{1,2}/\d{1,2}/\d{2}$")),
    ("%B %d %Y", re.compile(r"^[A-Za-z]+\s+\d{1,2}\s+\d{4}$")),
    ("%b %d %Y", re.compile(r"^[A-Za-z]{3}\s+\d{1,2}\s+\d{4}$")),
    ("%B %d, %Y", re.compile(r"^[A-Za-z]+\s+\d{1,2},\s+\d{4}$")),
    ("%b %d, %Y", re.compile(r"^[A-Za-z]{3}\s+\d{1,2},\s+\d{4}$")),
    ("%d %B %Y", re.compile(r"^\d{1,2}\s+[A-Za-z]+\s+\d{4}$")),
    ("%d %b %Y", re.compile(r"^\d{1,2}\s+[A-Za-z]{3}\s+\d{4}$")),
]

CURRENCY_SYMBOLS = ("$", "€", "£", "¥", "₹")
CURRENCY_CODE_RE = re.compile(r"^(USD|EUR|GBP|CAD|AUD|INR|JPY|CHF)|(USD|EUR|GBP|CAD|AUD|INR|JPY|CHF)$", re.I)
NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")
LIST_SPLIT_RE = re.compile(r"[,;\n]")


def parse_text(value: str) -> str | None:
    text = value.strip()
    return text or None


def parse_number(value: str) -> float | None:
    """
    Parse currency-ish text into a float.

    Handles currency symbols and ISO codes, thousands separators, European
    decimal commas and accounting negatives such as ``(500)``. Returns None
    for blank or unparsable text, never zero.
    """
    text = value.strip()
    if not text:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()

    text = text.replace(" ", "")
    text = CURRENCY_CODE_RE.sub("", text)
    for symbol in CURRENCY_SYMBOLS:
        text = text.replace(symbol, "")

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif text.count(",") == 1:
        left, right = text.split(",", 1)
        if len(right) == 2:
            text = f"{left}.{right}"
        elif len(right) == 3:
            text = left + right
    else:
        text = text.replace(",", "")

    if not NUMBER_RE.fullmatch(text):
        return None
    number = float(text)
    return -number if negative else number


def parse_boolean(value: str) -> bool:
    return value.strip().lower() in BOOLEAN_TRUE


def parse_date(value: str) -> date | None:
    text = value.strip()
    if not text:
        return None

    for fmt, pattern in DATE_FORMAT_PATTERNS:
        if not pattern.fullmatch(text):
            continue
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed) or not isinstance(parsed, pd.Timestamp):
        return None
    return parsed.date()


def canonicalize_token(token: str, vocabulary: Sequence[VocabularyOption]) -> str:
    """Map one token onto a vocabulary id; unmatched tokens come back verbatim."""
    lowered = token.lower()
    for option in vocabulary:
        if lowered in (option.id.lower(), option.label.lower()):
            return option.id
    for option in vocabulary:
        for candidate in (option.id.lower(), option.label.lower()):
            if lowered in candidate or candidate in lowered:
                return option.id
    return token


def parse_list(value: str, vocabulary: Sequence[VocabularyOption] | None = None) -> list[str] | None:
    tokens = [token.strip() for token in LIST_SPLIT_RE.split(value)]
    tokens = [token for token in tokens if token]
    if not tokens:
        return None
    if not vocabulary:
        return tokens
    return [canonicalize_token(token, vocabulary) for token in tokens]


def parse_status(value: str) -> str | None:
    normalized = " ".join(value.lower().split())
    if normalized in STATUS_VALUES:
        return normalized
    return STATUS_MAP.get(normalized)
