"""Tests for the spreadsheet importer: routing, upserts, idempotence, skips and timeouts."""

import itertools
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import Base
from app.services.importer import (
    STATE_FILENAME,
    SpreadsheetImporter,
    normalize_sheet_name,
    route_sheet,
)
from app.services.storage import (
    COMPLIANCE,
    DELIVERABLES,
    FINANCIALS,
    KEY_PERSONNEL,
    MASTER_REGISTER,
    DocumentBackend,
    PersistenceError,
    RelationalBackend,
)

PARTNER_HEADER = ["Partner ID", "Partner Name", "Partner Type", "Contact Email", "Contract Value"]


def write_workbook(path: Path, sheets: dict[str, list[list]]) -> Path:
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    wb.save(path)
    return path


class TestRouting(unittest.TestCase):
    def test_normalize_sheet_name(self) -> None:
        self.assertEqual(normalize_sheet_name("  Key_Personnel!! "), "key personnel")
        self.assertEqual(normalize_sheet_name("Master-Register"), "master register")

    def test_exact_routes(self) -> None:
        self.assertEqual(route_sheet("Master Register"), "partners")
        self.assertEqual(route_sheet("KEY PERSONNEL"), "personnel")
        self.assertEqual(route_sheet("Financial Summary"), "financials")
        self.assertEqual(route_sheet("Compliance Reporting"), "compliance")

    def test_keyword_fallbacks(self) -> None:
        self.assertEqual(route_sheet("Q3 Deliverable Tracker"), "deliverables")
        self.assertEqual(route_sheet("Key Person List"), "personnel")
        self.assertEqual(route_sheet("Sheet1", "2025 financials.xlsx"), "financials")
        self.assertIsNone(route_sheet("Sheet1", "misc.xlsx"))


class ImporterTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.dir = self.root / "excel"
        self.dir.mkdir()
        self.store = DocumentBackend(self.root / "store.json")
        self.backend = MagicMock(wraps=self.store)
        self.importer = SpreadsheetImporter(self.backend, self.dir)

    def tearDown(self) -> None:
        self.tmp.cleanup()


class TestImportPass(ImporterTestCase):
    def test_imports_partners_and_records_state(self) -> None:
        write_workbook(
            self.dir / "register.xlsx",
            {"Master Register": [PARTNER_HEADER, ["P-01", "Acme", "NGO", "info@acme.org", "$1,500"]]},
        )
        report = self.importer.scan()
        self.assertEqual(report.imported_count, 1)
        sheet = report.files[0].sheets[0]
        self.assertEqual(sheet.handler, "partners")
        self.assertEqual(sheet.processed, 1)

        partners = self.store.list_all(MASTER_REGISTER)
        self.assertEqual(len(partners), 1)
        self.assertEqual(partners[0]["contract_value"], 1500.0)

        state = json.loads((self.dir / STATE_FILENAME).read_text(encoding="utf-8"))
        self.assertIn("register.xlsx", state)
        self.assertEqual(len(state["register.xlsx"]["sha256"]), 64)

    def test_unchanged_file_causes_no_writes(self) -> None:
        write_workbook(
            self.dir / "register.xlsx",
            {"Master Register": [PARTNER_HEADER, ["P-01", "Acme", "NGO", "info@acme.org", 100]]},
        )
        self.importer.scan()
        self.backend.reset_mock()

        report = self.importer.scan()
        self.assertEqual(report.files[0].status, "unchanged")
        self.backend.create.assert_not_called()
        self.backend.update.assert_not_called()
        self.backend.find_one.assert_not_called()

    def test_changed_mtime_reimports_without_duplicates(self) -> None:
        path = write_workbook(
            self.dir / "register.xlsx",
            {"Master Register": [PARTNER_HEADER, ["P-01", "Acme", "NGO", "info@acme.org", 100]]},
        )
        self.importer.scan()
        st = path.stat()
        os.utime(path, (st.st_atime, st.st_mtime + 10))
        report = self.importer.scan()
        self.assertEqual(report.files[0].status, "imported")
        self.assertEqual(len(self.store.list_all(MASTER_REGISTER)), 1)

    def test_deliverable_without_number_reimports_without_duplicates(self) -> None:
        path = write_workbook(
            self.dir / "tracker.xlsx",
            {"Deliverables": [["Partner ID", "Description", "Status"], ["P-07", "Inception report", "done"]]},
        )
        self.importer.scan()
        st = path.stat()
        os.utime(path, (st.st_atime, st.st_mtime + 10))
        self.importer.scan()
        deliverables = self.store.list_all(DELIVERABLES)
        self.assertEqual(len(deliverables), 1)
        self.assertEqual(deliverables[0]["status"], "done")

    def test_compliance_without_period_reimports_without_duplicates(self) -> None:
        path = write_workbook(
            self.dir / "compliance.xlsx",
            {"Compliance": [["Partner ID", "Requirement", "Status"], ["P-07", "Annual audit", "open"]]},
        )
        self.importer.scan()
        st = path.stat()
        os.utime(path, (st.st_atime, st.st_mtime + 10))
        self.importer.scan()
        self.assertEqual(len(self.store.list_all(COMPLIANCE)), 1)

    def test_upsert_by_partner_id_and_loose_row_creates(self) -> None:
        existing = self.store.create(
            MASTER_REGISTER,
            {"partner_id": "P-01", "partner_name": "Old Name", "partner_type": "NGO",
             "contact_email": "old@acme.org"},
        )
        write_workbook(
            self.dir / "register.xlsx",
            {
                "Partners": [
                    PARTNER_HEADER,
                    ["P-01", "New Name", "NGO", "new@acme.org", None],
                    [None, "Loose Org", "CBO", "hello@loose.org", None],
                ]
            },
        )
        self.importer.scan()
        partners = {p["partner_name"]: p for p in self.store.list_all(MASTER_REGISTER)}
        self.assertEqual(set(partners), {"New Name", "Loose Org"})
        self.assertEqual(partners["New Name"]["id"], existing["id"])
        self.assertEqual(partners["New Name"]["contact_email"], "new@acme.org")

    def test_loose_row_matches_on_name_and_email(self) -> None:
        existing = self.store.create(
            MASTER_REGISTER,
            {"partner_name": "Loose Org", "partner_type": "CBO", "contact_email": "hello@loose.org"},
        )
        write_workbook(
            self.dir / "register.xlsx",
            {"Partners": [PARTNER_HEADER, [None, "Loose Org", "NGO", "hello@loose.org", None]]},
        )
        self.importer.scan()
        partners = self.store.list_all(MASTER_REGISTER)
        self.assertEqual(len(partners), 1)
        self.assertEqual(partners[0]["id"], existing["id"])
        self.assertEqual(partners[0]["partner_type"], "NGO")

    def test_title_row_skipped_before_header(self) -> None:
        write_workbook(
            self.dir / "register.xlsx",
            {
                "Master Register": [
                    ["Consortium partner master register " + "x" * 170],
                    PARTNER_HEADER,
                    ["P-02", "Beta", "NGO", "b@beta.org", 5],
                ]
            },
        )
        self.importer.scan()
        partners = self.store.list_all(MASTER_REGISTER)
        self.assertEqual([p["partner_id"] for p in partners], ["P-02"])

    def test_personnel_row_without_email_skipped(self) -> None:
        write_workbook(
            self.dir / "people.xlsx",
            {
                "Key Personnel": [
                    ["Full Name", "Email", "Job Title"],
                    ["No Email", None, "Lead"],
                    ["Ann Lee", "ann@example.org", "Coordinator"],
                ]
            },
        )
        with self.assertLogs("app.services.importer", level="WARNING") as logs:
            report = self.importer.scan()
        sheet = report.files[0].sheets[0]
        self.assertEqual((sheet.processed, sheet.skipped), (1, 1))
        self.assertTrue(any("email_address" in line for line in logs.output))
        people = self.store.list_all(KEY_PERSONNEL)
        self.assertEqual([p["email_address"] for p in people], ["ann@example.org"])

    def test_blank_rows_skipped(self) -> None:
        write_workbook(
            self.dir / "people.xlsx",
            {"Personnel": [["Full Name", "Email"], [None, None], ["Ann", "ann@example.org"]]},
        )
        report = self.importer.scan()
        self.assertEqual(report.files[0].sheets[0].processed, 1)

    def test_deliverables_financials_and_compliance(self) -> None:
        write_workbook(
            self.dir / "tracker.xlsx",
            {
                "Deliverables": [
                    ["Partner ID", "Deliverable #", "Description", "Payment Amount", "Due Date"],
                    ["P-01", "D1", "Inception report", "2,000", "2025-01-31"],
                ],
                "Financial Summary": [
                    ["Partner ID", "Partner Name", "Budget Allocated", "Q1 Actual Paid"],
                    ["P-01", "Acme", "50,000", "12,500.50"],
                ],
                "Compliance": [
                    ["Partner ID", "Requirement", "Reporting Period", "Status"],
                    ["P-01", "Quarterly narrative report", "Q1 2025", "Submitted"],
                ],
            },
        )
        self.importer.scan()
        deliverable = self.store.list_all(DELIVERABLES)[0]
        self.assertEqual(deliverable["deliverable_number"], "D1")
        self.assertEqual(deliverable["payment_amount"], 2000.0)
        self.assertEqual(deliverable["milestone_date"], "2025-01-31T00:00:00")
        self.assertTrue(deliverable["imported_from_excel"])
        financial = self.store.list_all(FINANCIALS)[0]
        self.assertEqual(financial["q1_actual_paid"], 12500.5)
        compliance = self.store.list_all(COMPLIANCE)[0]
        self.assertEqual(compliance["compliance_type"], "reporting")
        self.assertEqual(compliance["reporting_period"], "Q1 2025")

    def test_unrouted_and_narrow_sheets_skipped(self) -> None:
        write_workbook(
            self.dir / "misc.xlsx",
            {"Sheet1": [["a", "b"], [1, 2]], "Partners": [["Only one column"], ["x"]]},
        )
        report = self.importer.scan()
        reasons = {s.sheet: s.skipped_reason for s in report.files[0].sheets}
        self.assertEqual(reasons["Sheet1"], "no handler for sheet")
        self.assertEqual(reasons["Partners"], "header has fewer than two columns")

    def test_storage_failure_isolated_to_row(self) -> None:
        write_workbook(
            self.dir / "register.xlsx",
            {
                "Partners": [
                    PARTNER_HEADER,
                    ["P-01", "Acme", "NGO", "a@acme.org", None],
                    ["P-02", "Beta", "NGO", "b@beta.org", None],
                ]
            },
        )
        original_create = self.store.create

        def flaky_create(collection, data):
            if data.get("partner_id") == "P-01":
                raise PersistenceError("disk full", collection)
            return original_create(collection, data)

        self.backend.create.side_effect = flaky_create
        report = self.importer.scan()
        sheet = report.files[0].sheets[0]
        self.assertEqual((sheet.processed, sheet.failed), (1, 1))
        self.assertEqual([p["partner_id"] for p in self.store.list_all(MASTER_REGISTER)], ["P-02"])

    def test_corrupt_file_does_not_stop_pass(self) -> None:
        (self.dir / "a_broken.xlsx").write_bytes(b"garbage")
        write_workbook(
            self.dir / "b_register.xlsx",
            {"Partners": [PARTNER_HEADER, ["P-01", "Acme", "NGO", "a@acme.org", None]]},
        )
        report = self.importer.scan()
        statuses = {f.file: f.status for f in report.files}
        self.assertEqual(statuses, {"a_broken.xlsx": "failed", "b_register.xlsx": "imported"})
        self.assertNotIn("a_broken.xlsx", self.importer.state())

    def test_lock_and_hidden_files_ignored(self) -> None:
        (self.dir / "~$register.xlsx").write_bytes(b"lock")
        (self.dir / ".hidden.csv").write_text("a,b\n", encoding="utf-8")
        (self.dir / "notes.txt").write_text("hi", encoding="utf-8")
        self.assertEqual(self.importer.eligible_files(), [])

    def test_timeout_leaves_file_unrecorded(self) -> None:
        ticks = itertools.count(0, 100)
        importer = SpreadsheetImporter(
            self.backend, self.dir, file_timeout_sec=10, clock=lambda: next(ticks)
        )
        write_workbook(
            self.dir / "register.xlsx",
            {"Partners": [PARTNER_HEADER, ["P-01", "Acme", "NGO", "a@acme.org", None]]},
        )
        report = importer.scan()
        self.assertEqual(report.files[0].status, "timed_out")
        self.assertEqual(importer.state(), {})
        self.backend.create.assert_not_called()

    def test_directory_fingerprint_tracks_changes(self) -> None:
        empty = self.importer.directory_fingerprint()
        path = write_workbook(self.dir / "register.xlsx", {"Partners": [PARTNER_HEADER]})
        first = self.importer.directory_fingerprint()
        self.assertNotEqual(empty, first)
        self.assertEqual(first, self.importer.directory_fingerprint())
        st = path.stat()
        os.utime(path, (st.st_atime, st.st_mtime + 5))
        self.assertNotEqual(first, self.importer.directory_fingerprint())

    def test_missing_directory(self) -> None:
        importer = SpreadsheetImporter(self.backend, self.root / "absent")
        self.assertIsNone(importer.directory_fingerprint())
        self.assertEqual(importer.scan().files, [])


class TestRelationalImport(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.dir = Path(self.tmp.name)
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=engine)
        self.store = RelationalBackend(sessionmaker(bind=engine, autoflush=False))
        self.backend = MagicMock(wraps=self.store)
        self.importer = SpreadsheetImporter(self.backend, self.dir)

    def touch(self, path: Path) -> None:
        st = path.stat()
        os.utime(path, (st.st_atime, st.st_mtime + 10))

    def test_partner_upsert_and_unchanged_pass(self) -> None:
        path = write_workbook(
            self.dir / "register.xlsx",
            {"Master Register": [PARTNER_HEADER, ["P-01", "Acme", "NGO", "info@acme.org", "2,500"]]},
        )
        self.importer.scan()
        created = self.store.find_one(MASTER_REGISTER, partner_id="P-01")
        self.assertEqual(created["contract_value"], 2500.0)

        self.backend.reset_mock()
        self.assertEqual(self.importer.scan().files[0].status, "unchanged")
        self.backend.create.assert_not_called()
        self.backend.update.assert_not_called()

        write_workbook(
            path,
            {"Master Register": [PARTNER_HEADER, ["P-01", "Acme Ltd", "NGO", "info@acme.org", None]]},
        )
        self.touch(path)
        self.importer.scan()
        partners = self.store.list_all(MASTER_REGISTER)
        self.assertEqual(len(partners), 1)
        self.assertEqual(partners[0]["id"], created["id"])
        self.assertEqual(partners[0]["partner_name"], "Acme Ltd")

    def test_partial_keys_and_column_defaults(self) -> None:
        path = write_workbook(
            self.dir / "tracker.xlsx",
            {
                "Deliverables": [["Partner ID", "Description"], ["P-07", "Inception report"]],
                "Compliance": [["Partner ID", "Requirement"], ["P-07", "Annual audit"]],
            },
        )
        report = self.importer.scan()
        self.assertEqual([s.failed for s in report.files[0].sheets], [0, 0])
        self.touch(path)
        self.importer.scan()

        deliverables = self.store.list_all(DELIVERABLES)
        self.assertEqual(len(deliverables), 1)
        self.assertEqual(deliverables[0]["status"], "pending")
        compliance = self.store.list_all(COMPLIANCE)
        self.assertEqual(len(compliance), 1)
        self.assertEqual(compliance[0]["partner_name"], "Unknown Partner")


if __name__ == "__main__":
    unittest.main()
