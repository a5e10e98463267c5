from __future__ import annotations

import sys
import unittest
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SAMPLE_DIR = ROOT / "sample-data"

sys.path.insert(0, str(ROOT))

from roster_doctor.column_matcher import update_mapping
from roster_doctor.config import ImportSettings
from roster_doctor.duplicates import ExistingRecord
from roster_doctor.pipeline import build_commit_plan, commit_record, preview_import, validate_import, whole_dollars


def preview(name: str, settings: ImportSettings | None = None):
    return preview_import((SAMPLE_DIR / name).read_bytes(), name, settings)


class PreviewImportTests(unittest.TestCase):
    def test_simple_file_maps_every_column(self):
        result = preview("01-simple-5-clients.csv")

        self.assertEqual(result.table.total_rows, 5)
        self.assertEqual(result.unmapped_required, [])
        self.assertEqual(
            [mapping.target_field for mapping in result.mappings],
            ["name", "email", "phone", "budget_min", "budget_max", "bedrooms", "notes"],
        )
        self.assertEqual(len(result.preview_rows), 5)

    def test_preview_row_count_follows_settings(self):
        result = preview("01-simple-5-clients.csv", ImportSettings(preview_rows=2))
        self.assertEqual(len(result.preview_rows), 2)

    def test_weird_headers_fuzzy_match(self):
        result = preview("08-weird-column-names.csv")
        targets = {mapping.source_column: mapping.target_field for mapping in result.mappings}

        self.assertEqual(targets["Client Full Name"], "name")
        self.assertEqual(targets["E-Mail"], "email")
        self.assertEqual(targets["Monthly Budget (Max)"], "budget_max")
        self.assertEqual(targets["Beds"], "bedrooms")
        self.assertEqual(targets["Areas"], "neighborhoods")
        self.assertEqual(targets["Lifestyle"], "vibes")
        self.assertIsNone(targets["Random Data"])
        self.assertEqual(result.unmapped_required, [])

    def test_strict_threshold_leaves_name_unmapped(self):
        result = preview("08-weird-column-names.csv", ImportSettings(fuzzy_threshold=0.99))

        self.assertEqual([spec.key for spec in result.unmapped_required], ["name"])


class ValidateImportTests(unittest.TestCase):
    def test_simple_file_end_to_end(self):
        result = preview("01-simple-5-clients.csv")
        validation = validate_import(result.table, result.mappings)

        self.assertFalse(validation.blocked)
        self.assertEqual(validation.total_rows, 5)
        self.assertEqual(validation.errors, [])
        self.assertEqual(validation.valid_row_numbers, [1, 2, 3, 4, 5])
        self.assertEqual(validation.valid_rows[0]["budget_min"], 1500)
        self.assertEqual(validation.valid_rows[0]["budget_max"], 2200)
        self.assertEqual(validation.duplicates, [])

    def test_crm_export_conversions(self):
        result = preview("02-hubspot-export.csv")
        validation = validate_import(result.table, result.mappings)

        self.assertEqual(validation.errors, [])
        rows = validation.valid_rows
        self.assertEqual(rows[0]["name"], "Olivia Brooks")
        self.assertEqual(rows[0]["budget_min"], 1600)
        self.assertEqual(rows[0]["neighborhoods"], ["South End", "NoDa"])
        self.assertEqual(rows[0]["status"], "active")
        self.assertIs(rows[0]["has_dog"], True)
        self.assertEqual(rows[0]["move_in_date"], date(2025, 3, 1))
        self.assertEqual(rows[1]["status"], "placed")
        self.assertEqual(rows[1]["move_in_date"], date(2025, 3, 15))
        self.assertEqual(rows[2]["status"], "archived")
        self.assertEqual(rows[2]["move_in_date"], date(2025, 4, 1))
        self.assertNotIn("phone", rows[2])
        self.assertIs(rows[3]["has_dog"], False)
        self.assertNotIn("budget_min", rows[3])
        self.assertNotIn("move_in_date", rows[3])

    def test_clearing_name_blocks_validation(self):
        result = preview("01-simple-5-clients.csv")
        mappings = update_mapping(result.mappings, "Name", None)

        validation = validate_import(result.table, mappings)

        self.assertTrue(validation.blocked)
        self.assertEqual([spec.key for spec in validation.unmapped_required], ["name"])
        self.assertEqual(validation.valid_rows, [])
        self.assertEqual(validation.errors, [])
        with self.assertRaisesRegex(ValueError, "Required fields not mapped: Name"):
            build_commit_plan(validation)

    def test_remapping_an_ignored_column(self):
        result = preview("08-weird-column-names.csv")
        mappings = update_mapping(result.mappings, "Random Data", "notes")

        validation = validate_import(result.table, mappings)

        self.assertEqual(validation.valid_rows[0]["notes"], "abc")
        self.assertEqual(validation.valid_rows[1]["notes"], "def")


class CommitPlanTests(unittest.TestCase):
    def setUp(self):
        result = preview("10-duplicate-emails.csv")
        existing = [ExistingRecord("c1", "John Smith", " JOHNSMITH@gmail.com ")]
        self.validation = validate_import(result.table, result.mappings, existing)

    def test_unresolved_duplicates_are_skipped(self):
        plan = build_commit_plan(self.validation)

        self.assertEqual(len(plan.to_import), 6)
        self.assertEqual(plan.skipped, 2)
        self.assertEqual(plan.unresolved, 2)
        self.assertEqual(plan.to_overwrite, [])

    def test_overwrite_all(self):
        plan = build_commit_plan(self.validation, resolve_all="overwrite")

        self.assertEqual(len(plan.to_import), 6)
        self.assertEqual(plan.skipped, 0)
        self.assertEqual(plan.unresolved, 0)
        self.assertEqual([target.existing_id for target in plan.to_overwrite], ["c1", "c1"])

    def test_per_row_resolutions(self):
        plan = build_commit_plan(self.validation, resolutions={0: "overwrite"})

        self.assertEqual(len(plan.to_overwrite), 1)
        self.assertEqual(plan.to_overwrite[0].row["name"], "John Smith")
        self.assertEqual(plan.skipped, 1)
        self.assertEqual(plan.unresolved, 1)

    def test_per_row_resolutions_override_resolve_all(self):
        plan = build_commit_plan(self.validation, resolutions={3: "skip"}, resolve_all="overwrite")

        self.assertEqual(len(plan.to_overwrite), 1)
        self.assertEqual(plan.skipped, 1)

    def test_plan_counts_cover_valid_rows(self):
        plan = build_commit_plan(self.validation, resolutions={0: "overwrite"})
        self.assertEqual(
            len(plan.to_import) + len(plan.to_overwrite) + plan.skipped,
            len(self.validation.valid_rows),
        )


class CommitRecordTests(unittest.TestCase):
    def test_defaults_are_filled(self):
        record = commit_record({"name": "Ann", "budget_max": 1999.6})

        self.assertEqual(record["name"], "Ann")
        self.assertEqual(record["status"], "active")
        self.assertEqual(record["budget_max"], 2000)
        self.assertIsNone(record["budget_min"])
        self.assertEqual(record["neighborhoods"], [])
        self.assertEqual(record["amenities"], [])
        self.assertIs(record["has_dog"], False)
        self.assertIs(record["needs_parking"], False)
        self.assertIsNone(record["email"])
        self.assertIsNone(record["move_in_date"])

    def test_budgets_round_half_up(self):
        record = commit_record({"name": "Ann", "budget_min": 2500.5, "budget_max": 3500.49})

        self.assertEqual(record["budget_min"], 2501)
        self.assertEqual(record["budget_max"], 3500)
        self.assertEqual(whole_dollars(1500.5), 1501)
        self.assertIsNone(whole_dollars(None))

    def test_present_values_are_kept(self):
        record = commit_record({"name": "Ann", "status": "placed", "vibes": ["foodie"], "has_cat": True})

        self.assertEqual(record["status"], "placed")
        self.assertEqual(record["vibes"], ["foodie"])
        self.assertIs(record["has_cat"], True)


if __name__ == "__main__":
    unittest.main()
