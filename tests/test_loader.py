from __future__ import annotations

import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SAMPLE_DIR = ROOT / "sample-data"

sys.path.insert(0, str(ROOT))

from roster_doctor.config import ImportSettings
from roster_doctor.loader import ParseError, get_preview_rows, parse_buffer


def sample_bytes(name: str) -> bytes:
    return (SAMPLE_DIR / name).read_bytes()


class ParseBufferTests(unittest.TestCase):
    def test_simple_csv_headers_and_rows(self):
        table = parse_buffer(sample_bytes("01-simple-5-clients.csv"), "01-simple-5-clients.csv")

        self.assertEqual(
            table.headers,
            ("Name", "Email", "Phone", "Budget Min", "Budget Max", "Bedrooms", "Notes"),
        )
        self.assertEqual(table.total_rows, 5)
        self.assertEqual(table.delimiter, ",")
        self.assertTrue(all(len(row) == len(table.headers) for row in table.rows))
        self.assertEqual(table.rows[0][0], "Sarah Johnson")
        self.assertEqual(table.rows[4][6], "Likes South End, close to the light rail")
        self.assertEqual(table.warnings, ())

    def test_blank_rows_are_dropped_and_not_counted(self):
        raw = b"Name,Email\n\nAnn,ann@example.com\n , \n,,\nBen,ben@example.com\n\n"
        table = parse_buffer(raw, "clients.csv")

        self.assertEqual(table.total_rows, 2)
        self.assertEqual([row[0] for row in table.rows], ["Ann", "Ben"])

    def test_first_non_empty_line_is_header(self):
        table = parse_buffer(b"\n\nName,Email\nAnn,ann@example.com\n", "clients.csv")

        self.assertEqual(table.headers, ("Name", "Email"))
        self.assertEqual(table.total_rows, 1)

    def test_quoted_delimiters_stay_inside_field(self):
        table = parse_buffer(b'Name,Notes\n"Smith, John","likes parks, quiet"\n', "clients.csv")

        self.assertEqual(table.rows[0], ("Smith, John", "likes parks, quiet"))

    def test_cells_and_headers_are_trimmed(self):
        table = parse_buffer(b"  Name  , Email \n  Ann , ann@example.com  \n", "clients.csv")

        self.assertEqual(table.headers, ("Name", "Email"))
        self.assertEqual(table.rows[0], ("Ann", "ann@example.com"))

    def test_short_row_is_padded_with_warning(self):
        table = parse_buffer(b"Name,Email,Phone\nAnn,ann@example.com\n", "clients.csv")

        self.assertEqual(table.rows[0], ("Ann", "ann@example.com", ""))
        self.assertEqual(len(table.warnings), 1)
        self.assertIn("Line 2", table.warnings[0])

    def test_long_row_is_truncated_and_flagged(self):
        table = parse_buffer(b"Name,Email\nAnn,ann@example.com,surprise\n", "clients.csv")

        self.assertEqual(table.rows[0], ("Ann", "ann@example.com"))
        self.assertEqual(len(table.warnings), 1)
        self.assertIn("dropped extra values", table.warnings[0])

    def test_trailing_empty_cells_are_truncated_silently(self):
        table = parse_buffer(b"Name,Email\nAnn,ann@example.com,,\n", "clients.csv")

        self.assertEqual(table.rows[0], ("Ann", "ann@example.com"))
        self.assertEqual(table.warnings, ())

    def test_tsv_uses_tab_delimiter(self):
        table = parse_buffer(sample_bytes("03-tab-separated.tsv"), "03-tab-separated.tsv")

        self.assertEqual(table.delimiter, "\t")
        self.assertEqual(table.headers, ("Name", "Email", "Budget Max"))
        self.assertEqual(table.rows[0][2], "$2,000")

    def test_txt_delimiter_is_sniffed(self):
        table = parse_buffer(sample_bytes("04-semicolon-export.txt"), "04-semicolon-export.txt")

        self.assertEqual(table.delimiter, ";")
        self.assertEqual(table.headers, ("Name", "Email", "Status"))
        self.assertEqual(table.total_rows, 3)

    def test_utf8_bom_is_stripped_from_first_header(self):
        raw = "\ufeffName,Email\nAnn,ann@example.com\n".encode("utf-8")
        table = parse_buffer(raw, "clients.csv")

        self.assertEqual(table.headers[0], "Name")

    def test_non_utf8_lines_are_decoded_with_warning(self):
        raw = "Name,Notes\nJosé,café au lait\n".encode("latin-1")
        table = parse_buffer(raw, "clients.csv")

        self.assertEqual(table.total_rows, 1)
        self.assertTrue(any("not valid UTF-8" in warning for warning in table.warnings))

    def test_unicode_line_separators_stay_inside_cells(self):
        for notes in ("first\u2028second", '"first\u2029second"', "tab\x0bbed\x0cnotes\x85end"):
            with self.subTest(notes=notes):
                raw = f"Name,Email,Notes\nAnn,ann@example.com,{notes}\nBob,bob@example.com,\n".encode("utf-8")
                table = parse_buffer(raw, "clients.csv")

                self.assertEqual(table.total_rows, 2)
                self.assertEqual([row[0] for row in table.rows], ["Ann", "Bob"])
                self.assertEqual(table.rows[0][2], notes.strip('"'))
                self.assertEqual(table.warnings, ())

    def test_unicode_line_separator_in_txt_export(self):
        raw = "Name;Email;Notes\nAnn;ann@example.com;one\u2028two\nBob;bob@example.com;three\n".encode("utf-8")
        table = parse_buffer(raw, "clients.txt")

        self.assertEqual(table.delimiter, ";")
        self.assertEqual(table.total_rows, 2)
        self.assertEqual(table.rows[0][2], "one\u2028two")

    def test_cr_and_crlf_line_endings(self):
        for raw in (b"Name,Email\rAnn,a@b.co\rBen,b@c.co\r", b"Name,Email\r\nAnn,a@b.co\r\nBen,b@c.co\r\n"):
            with self.subTest(raw=raw):
                table = parse_buffer(raw, "clients.csv")
                self.assertEqual(table.rows, (("Ann", "a@b.co"), ("Ben", "b@c.co")))

    def test_mixed_encoding_warning_names_lines(self):
        raw = "Name,Notes\nAnn,plain\n".encode("utf-8") + "José,café\n".encode("latin-1")
        table = parse_buffer(raw, "clients.csv")

        self.assertEqual(table.total_rows, 2)
        self.assertEqual(len(table.warnings), 1)
        self.assertIn("(lines 3)", table.warnings[0])

    def test_special_characters_survive(self):
        table = parse_buffer(sample_bytes("09-special-characters.csv"), "09-special-characters.csv")

        self.assertEqual(table.rows[0][0], "José García")
        self.assertEqual(table.rows[0][2], 'Wants a place "close to work", ideally with a yard')
        self.assertEqual(table.rows[2][2], "Multiple, comma, separated, notes")

    def test_preview_rows_returns_leading_rows(self):
        table = parse_buffer(sample_bytes("01-simple-5-clients.csv"), "01-simple-5-clients.csv")

        preview = get_preview_rows(table, 2)
        self.assertEqual(len(preview), 2)
        self.assertEqual(preview[1][0], "Marcus Lee")
        self.assertEqual(len(get_preview_rows(table)), 5)


class ParseBufferFailureTests(unittest.TestCase):
    def test_parse_error_is_a_value_error(self):
        self.assertTrue(issubclass(ParseError, ValueError))

    def test_unsupported_suffix_is_rejected(self):
        with self.assertRaisesRegex(ParseError, "Invalid file type"):
            parse_buffer(b"Name\nAnn\n", "clients.xlsx")

    def test_missing_suffix_is_rejected(self):
        with self.assertRaisesRegex(ParseError, "missing extension"):
            parse_buffer(b"Name\nAnn\n", "clients")

    def test_workbook_bytes_renamed_to_csv_are_rejected(self):
        with self.assertRaisesRegex(ParseError, "Export it as CSV"):
            parse_buffer(b"PK\x03\x04\x14\x00\x00\x00", "clients.csv")

    def test_empty_buffer_is_rejected(self):
        with self.assertRaisesRegex(ParseError, "File contains no data"):
            parse_buffer(b"", "clients.csv")
        with self.assertRaisesRegex(ParseError, "File contains no data"):
            parse_buffer(b"  \n\n", "clients.csv")

    def test_blank_header_row_is_rejected(self):
        with self.assertRaisesRegex(ParseError, "no column headers"):
            parse_buffer(b",,\nAnn,ann@example.com,\n", "clients.csv")

    def test_headers_without_rows_are_rejected(self):
        with self.assertRaisesRegex(ParseError, "headers but no data rows"):
            parse_buffer(b"Name,Email\n\n,\n", "clients.csv")

    def test_row_limit_comes_from_settings(self):
        raw = b"Name\nA\nB\nC\nD\n"
        with self.assertRaisesRegex(ParseError, "Too many rows. Maximum is 3, got 4"):
            parse_buffer(raw, "clients.csv", ImportSettings(max_rows=3))
        self.assertEqual(parse_buffer(raw, "clients.csv", ImportSettings(max_rows=4)).total_rows, 4)

    def test_size_limit_comes_from_settings(self):
        with self.assertRaisesRegex(ParseError, "File too large"):
            parse_buffer(b"Name\nAnn Example\n", "clients.csv", ImportSettings(max_file_bytes=10))


if __name__ == "__main__":
    unittest.main()
