"""Versioned contracts for roster-doctor machine outputs."""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from roster_doctor import __version__ as TOOL_VERSION
from roster_doctor.catalogue import CATALOGUE_VERSION

CONTRACT_VERSIONS = {
    "roster_doctor.preview": "1.0.0",
    "roster_doctor.validate": "1.0.0",
    "roster_doctor.plan": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    input_path: Path,
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "roster-doctor",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path),
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }


def wrap_payload(name: str, body: dict[str, Any], run_summary: dict[str, Any]) -> dict[str, Any]:
    payload = {
        "contract": build_contract(name),
        "schema_version": CONTRACT_VERSIONS[name],
        "tool_version": TOOL_VERSION,
        "catalogue_version": CATALOGUE_VERSION,
        "run_summary": run_summary,
    }
    payload.update(body)
    return payload


def to_jsonable(value: Any) -> Any:
    """Convert records (dates included) into JSON-safe structures."""
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "to_dict"):
        return to_jsonable(value.to_dict())
    return value
