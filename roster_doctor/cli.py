from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import pandas as pd

from roster_doctor import __version__ as TOOL_VERSION
from roster_doctor.catalogue import CANONICAL_FIELDS, describe_catalogue
from roster_doctor.column_matcher import ColumnMapping, mappings_from_dicts, update_mapping
from roster_doctor.config import ImportSettings, apply_overrides, load_settings, starter_config
from roster_doctor.contracts import build_run_summary, to_jsonable, wrap_payload
from roster_doctor.duplicates import SETTABLE_RESOLUTIONS, ExistingRecord, existing_records_from_dicts
from roster_doctor.loader import ParseError
from roster_doctor.pipeline import (
    CommitPlan,
    ImportPreview,
    ImportValidation,
    build_commit_plan,
    preview_import,
    validate_import,
)

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_UNMAPPED_REQUIRED = 3
EXIT_ROW_ERRORS = 4
EXIT_UNRESOLVED_DUPLICATES = 5

CLEAR_TARGETS = {"", "none", "null", "-"}


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class RosterDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(to_jsonable(payload), indent=2, ensure_ascii=False, sort_keys=True)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ParseError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def report_output_path(args: argparse.Namespace, input_path: Path, default_name: str) -> Path | None:
    if getattr(args, "output", None):
        return Path(args.output)
    if getattr(args, "out_dir", None):
        return Path(args.out_dir) / f"{input_path.stem}-{default_name}"
    return None


# ══════════════════════════════════════════════════════════════════════════════
# INPUT HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def read_json_file(path_text: str, what: str) -> Any:
    path = Path(path_text)
    if not path.exists():
        raise CliError(f"{what} file not found: {path}", EXIT_COMMAND_ERROR)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CliError(f"Could not read {what.lower()} file: {exc}", EXIT_COMMAND_ERROR) from exc


def settings_from_args(args: argparse.Namespace) -> ImportSettings:
    overrides = {}
    if getattr(args, "threshold", None) is not None:
        overrides["fuzzy_threshold"] = args.threshold
    settings = load_settings(getattr(args, "config", None))
    if overrides:
        settings = apply_overrides(settings, overrides)
    return settings


def parse_set_option(text: str) -> tuple[str, str | None]:
    if "=" not in text:
        raise CliError(f"--set expects 'Source Column=field_key', got {text!r}", EXIT_COMMAND_ERROR)
    source, target = text.rsplit("=", 1)
    target = target.strip()
    return source.strip(), None if target.lower() in CLEAR_TARGETS else target


def resolve_mappings(args: argparse.Namespace, preview: ImportPreview) -> list[ColumnMapping]:
    mappings = list(preview.mappings)
    if getattr(args, "mappings", None):
        payload = read_json_file(args.mappings, "Mappings")
        if isinstance(payload, dict):
            payload = payload.get("mappings", [])
        if not isinstance(payload, list):
            raise CliError("Mappings file must hold a JSON list of mappings.", EXIT_COMMAND_ERROR)
        mappings = mappings_from_dicts(payload)
    for item in getattr(args, "set_mappings", None) or []:
        source, target = parse_set_option(item)
        mappings = update_mapping(mappings, source, target)
    return mappings


def load_existing_records(args: argparse.Namespace) -> list[ExistingRecord]:
    if not getattr(args, "existing", None):
        return []
    payload = read_json_file(args.existing, "Existing records")
    if isinstance(payload, dict):
        payload = payload.get("records", [])
    if not isinstance(payload, list):
        raise CliError("Existing records file must hold a JSON list.", EXIT_COMMAND_ERROR)
    return existing_records_from_dicts(payload)


def load_resolutions(path_text: str) -> dict[int, str]:
    """Accept either {"row_index": "skip"} or a list of {"row_index", "resolution"} entries."""
    payload = read_json_file(path_text, "Resolutions")
    if isinstance(payload, dict):
        items = [(key, value) for key, value in payload.items()]
    elif isinstance(payload, list):
        items = [(entry.get("row_index"), entry.get("resolution")) for entry in payload if isinstance(entry, dict)]
    else:
        raise CliError("Resolutions file must hold a JSON object or list.", EXIT_COMMAND_ERROR)

    resolutions: dict[int, str] = {}
    for key, value in items:
        if value is None:
            continue
        try:
            resolutions[int(key)] = str(value)
        except (TypeError, ValueError) as exc:
            raise CliError(f"Invalid row index in resolutions: {key!r}", EXIT_COMMAND_ERROR) from exc
    return resolutions


# ══════════════════════════════════════════════════════════════════════════════
# PAYLOADS AND TEXT RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def build_preview_payload(preview: ImportPreview, input_path: Path) -> dict[str, Any]:
    table = preview.table
    summary = build_run_summary(
        command="preview",
        input_path=input_path,
        metrics={
            "total_rows": table.total_rows,
            "columns": len(table.headers),
            "mapped_columns": sum(1 for mapping in preview.mappings if mapping.target_field),
        },
        warnings=list(table.warnings),
    )
    body = {
        "headers": list(table.headers),
        "total_rows": table.total_rows,
        "delimiter": table.delimiter,
        "encoding": table.encoding,
        "mappings": preview.mappings,
        "preview_rows": preview.preview_rows,
        "unmapped_required": [spec.key for spec in preview.unmapped_required],
    }
    return wrap_payload("roster_doctor.preview", body, summary)


def build_validation_payload(
    validation: ImportValidation,
    mappings: list[ColumnMapping],
    input_path: Path,
    settings: ImportSettings,
    warnings: list[str],
) -> dict[str, Any]:
    summary = build_run_summary(
        command="validate",
        input_path=input_path,
        status="blocked" if validation.blocked else "ok",
        metrics={
            "total_rows": validation.total_rows,
            "valid_count": len(validation.valid_rows),
            "error_count": len(validation.errors),
            "duplicate_count": len(validation.duplicates),
        },
        warnings=warnings,
    )
    body = {
        "total_rows": validation.total_rows,
        "valid_count": len(validation.valid_rows),
        "error_count": len(validation.errors),
        "duplicate_count": len(validation.duplicates),
        "errors": validation.errors[: settings.max_reported_errors],
        "errors_truncated": len(validation.errors) > settings.max_reported_errors,
        "duplicates": validation.duplicates,
        "mappings": mappings,
        "unmapped_required": [spec.key for spec in validation.unmapped_required],
        "valid_rows": validation.valid_rows,
    }
    return wrap_payload("roster_doctor.validate", body, summary)


def build_plan_payload(
    plan: CommitPlan,
    validation: ImportValidation,
    input_path: Path,
    settings: ImportSettings,
    output_path: Path | None,
) -> dict[str, Any]:
    summary = build_run_summary(
        command="plan",
        input_path=input_path,
        output_path=output_path,
        metrics={
            "total_rows": validation.total_rows,
            "to_import": len(plan.to_import),
            "to_overwrite": len(plan.to_overwrite),
            "skipped": plan.skipped,
            "unresolved_duplicates": plan.unresolved,
            "failed": len(plan.errors),
        },
    )
    body = {
        "to_import": plan.to_import,
        "to_overwrite": plan.to_overwrite,
        "skipped": plan.skipped,
        "unresolved_duplicates": plan.unresolved,
        "errors": plan.errors[: settings.max_reported_errors],
        "error_count": len(plan.errors),
        "duplicates": plan.duplicates,
    }
    return wrap_payload("roster_doctor.plan", body, summary)


def render_mappings(mappings: list[ColumnMapping]) -> list[str]:
    lines = []
    for mapping in mappings:
        target = mapping.target_field or "[unmapped]"
        lines.append(f"- {mapping.source_column} -> {target} ({mapping.confidence:.2f})")
    return lines


def render_preview_text(preview: ImportPreview, input_path: Path, verbose: bool) -> str:
    table = preview.table
    lines = [
        "roster-doctor preview",
        f"File: {input_path}",
        f"Rows: {table.total_rows}",
        f"Delimiter: {table.delimiter!r}",
        f"Encoding: {table.encoding}",
        "Mappings:",
        *render_mappings(preview.mappings),
    ]
    if preview.unmapped_required:
        lines.append("Required fields not mapped: " + ", ".join(spec.label for spec in preview.unmapped_required))
    if preview.preview_rows:
        lines.append("Preview:")
        lines.append("  " + " | ".join(table.headers))
        lines.extend("  " + " | ".join(row) for row in preview.preview_rows)
    if table.warnings and verbose:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in table.warnings)
    elif table.warnings:
        lines.append(f"Warnings: {len(table.warnings)} (use -v to list)")
    return "\n".join(lines) + "\n"


def render_validation_text(validation: ImportValidation, input_path: Path, verbose: bool) -> str:
    lines = [
        "roster-doctor validate",
        f"File: {input_path}",
        f"Rows: {validation.total_rows}",
    ]
    if validation.blocked:
        lines.append(
            "Blocked: required fields not mapped: "
            + ", ".join(spec.label for spec in validation.unmapped_required)
        )
        return "\n".join(lines) + "\n"
    lines.extend(
        [
            f"Valid rows: {len(validation.valid_rows)}",
            f"Errors: {len(validation.errors)}",
            f"Duplicates: {len(validation.duplicates)}",
        ]
    )
    shown = validation.errors if verbose else validation.errors[:10]
    if shown:
        lines.append("Row errors:")
        lines.extend(f"- row {error.row} {error.field}: {error.message} ({error.value})" for error in shown)
        if len(shown) < len(validation.errors):
            lines.append(f"  ... {len(validation.errors) - len(shown)} more (use -v to list)")
    if validation.duplicates:
        lines.append("Duplicates:")
        for match in validation.duplicates:
            lines.append(
                f"- valid row {match.row_index}: {match.imported_row.get('email')} "
                f"matches existing {match.existing_record.id} ({match.existing_record.name})"
            )
    return "\n".join(lines) + "\n"


def render_plan_text(plan: CommitPlan, input_path: Path) -> str:
    lines = [
        "roster-doctor plan",
        f"File: {input_path}",
        f"To import: {len(plan.to_import)}",
        f"To overwrite: {len(plan.to_overwrite)}",
        f"Skipped: {plan.skipped}",
        f"Failed validation: {len(plan.errors)}",
    ]
    if plan.unresolved:
        lines.append(f"Unresolved duplicates (skipped): {plan.unresolved}")
    return "\n".join(lines) + "\n"


def write_import_csv(rows: list[dict[str, Any]], path: Path) -> None:
    columns = [spec.key for spec in CANONICAL_FIELDS]
    records = []
    for row in rows:
        flat = {}
        for key in columns:
            value = row.get(key)
            if isinstance(value, list):
                value = "; ".join(value)
            elif hasattr(value, "isoformat"):
                value = value.isoformat()
            flat[key] = value
        records.append(flat)
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(records, columns=columns).to_csv(path, index=False)


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Roster export (.csv, .tsv, .txt)")
    parser.add_argument("--config", help="JSON settings file")
    parser.add_argument("--threshold", type=float, help="Fuzzy header match threshold (0-1)")
    parser.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    parser.add_argument("--output", help="Explicit JSON output path")
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="More human logs")


def add_mapping_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--mappings", help="JSON file of column mappings to use instead of suggestions")
    parser.add_argument(
        "--set",
        dest="set_mappings",
        action="append",
        metavar="COLUMN=FIELD",
        help="Override one mapping; use COLUMN=none to unmap. Repeatable.",
    )
    parser.add_argument("--existing", help="JSON list of existing records (id, name, email)")


def build_parser() -> argparse.ArgumentParser:
    parser = RosterDoctorArgumentParser(
        prog="roster-doctor",
        description="Map, validate and de-duplicate client roster exports.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview = subparsers.add_parser("preview", help="Parse a file and suggest column mappings.")
    add_common_options(preview)

    validate = subparsers.add_parser("validate", help="Validate rows and flag duplicates.")
    add_common_options(validate)
    add_mapping_options(validate)

    plan = subparsers.add_parser("plan", help="Build a commit plan with duplicate resolutions applied.")
    add_common_options(plan)
    add_mapping_options(plan)
    plan.add_argument("--resolutions", help="JSON resolutions keyed by valid-row index")
    plan.add_argument("--resolve-all", choices=list(SETTABLE_RESOLUTIONS), help="Resolve every duplicate the same way")
    plan.add_argument("--csv", dest="csv_path", help="Write rows to import as CSV")
    plan.add_argument(
        "--fail-on-unresolved",
        action="store_true",
        help="Return exit code 5 when duplicates are left unresolved",
    )

    fields = subparsers.add_parser("fields", help="List the canonical client fields.")
    fields.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="roster-doctor.json", help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def _load_preview(input_path: Path, settings: ImportSettings) -> ImportPreview:
    return preview_import(input_path.read_bytes(), input_path.name, settings)


def run_preview(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        settings = settings_from_args(args)
        preview = _load_preview(input_path, settings)
        payload = build_preview_payload(preview, input_path)
        output_path = report_output_path(args, input_path, "preview.json")
        if output_path:
            write_text(output_path, json_dumps(payload))
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_preview_text(preview, input_path, args.verbose).rstrip(), quiet=args.quiet)
            if output_path:
                emit_human(f"Preview written: {output_path}", quiet=args.quiet)
        return EXIT_UNMAPPED_REQUIRED if preview.unmapped_required else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_validate(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        settings = settings_from_args(args)
        preview = _load_preview(input_path, settings)
        mappings = resolve_mappings(args, preview)
        validation = validate_import(preview.table, mappings, load_existing_records(args))
        payload = build_validation_payload(validation, mappings, input_path, settings, list(preview.table.warnings))
        output_path = report_output_path(args, input_path, "validation.json")
        if output_path:
            write_text(output_path, json_dumps(payload))
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            if args.verbose:
                emit_human("\n".join(["Mappings:", *render_mappings(mappings)]), quiet=args.quiet)
            emit_human(render_validation_text(validation, input_path, args.verbose).rstrip(), quiet=args.quiet)
            if output_path:
                emit_human(f"Validation report: {output_path}", quiet=args.quiet)
        if validation.blocked:
            return EXIT_UNMAPPED_REQUIRED
        if validation.errors:
            return EXIT_ROW_ERRORS
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_plan(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        settings = settings_from_args(args)
        preview = _load_preview(input_path, settings)
        mappings = resolve_mappings(args, preview)
        validation = validate_import(preview.table, mappings, load_existing_records(args))
        if validation.blocked:
            labels = ", ".join(spec.label for spec in validation.unmapped_required)
            raise CliError(f"Required fields not mapped: {labels}", EXIT_UNMAPPED_REQUIRED)

        resolutions = load_resolutions(args.resolutions) if args.resolutions else None
        plan = build_commit_plan(validation, resolutions=resolutions, resolve_all=args.resolve_all)

        csv_path = Path(args.csv_path) if args.csv_path else None
        if csv_path:
            if csv_path.exists():
                raise CliError(f"Refusing to overwrite existing output: {csv_path}", EXIT_COMMAND_ERROR)
            write_import_csv(plan.to_import, csv_path)

        payload = build_plan_payload(plan, validation, input_path, settings, csv_path)
        output_path = report_output_path(args, input_path, "plan.json")
        if output_path:
            write_text(output_path, json_dumps(payload))
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_plan_text(plan, input_path).rstrip(), quiet=args.quiet)
            if csv_path:
                emit_human(f"Rows to import: {csv_path}", quiet=args.quiet)
            if output_path:
                emit_human(f"Commit plan: {output_path}", quiet=args.quiet)
        if plan.unresolved and args.fail_on_unresolved:
            return EXIT_UNRESOLVED_DUPLICATES
        if plan.errors:
            return EXIT_ROW_ERRORS
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_fields(args: argparse.Namespace) -> int:
    catalogue = describe_catalogue()
    if args.json:
        maybe_emit_json_stdout(catalogue, True)
        return EXIT_SUCCESS
    lines = [f"Catalogue {catalogue['catalogue_version']}"]
    for spec in CANONICAL_FIELDS:
        flag = " (required)" if spec.required else ""
        lines.append(f"{spec.key}: {spec.label} [{spec.kind}]{flag}")
        if spec.aliases:
            lines.append("    aliases: " + ", ".join(spec.aliases))
    print("\n".join(lines))
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, json_dumps(starter_config()) + "\n")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "preview":
            return run_preview(args)
        if args.command == "validate":
            return run_validate(args)
        if args.command == "plan":
            return run_plan(args)
        if args.command == "fields":
            return run_fields(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
