"""
Spreadsheet importer: routes workbook sheets to entity handlers and upserts
their rows into the record store by natural key.

Files already imported with the same content hash and mtime are skipped, so a
pass over an unchanged directory performs no writes.
"""

import hashlib
import json
import logging
import os
import re
import tempfile
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from app.schemas.imports import FileReport, ImportStateEntry, ScanReport, SheetReport
from app.services.row_mappers import MAPPINGS, EntityMapping, RowSkipped
from app.services.sheet_reader import (
    SUPPORTED_EXTENSIONS,
    FileReadError,
    Sheet,
    detect_header_row,
    header_labels,
    is_blank,
    read_workbook,
    rows_to_records,
)
from app.services.storage import PersistenceError, StorageBackend

logger = logging.getLogger(__name__)

STATE_FILENAME = ".imported.json"
_HASH_CHUNK = 1024 * 1024

# Normalized sheet name -> handler.
SHEET_ROUTES: dict[str, str] = {
    "master register": "partners",
    "partners": "partners",
    "key personnel": "personnel",
    "personnel": "personnel",
    "deliverables": "deliverables",
    "financial summary": "financials",
    "financials": "financials",
    "compliance reporting": "compliance",
    "compliance": "compliance",
}

# Natural keys per handler, most specific first; the first one fully present in a row is matched on.
NATURAL_KEYS: dict[str, tuple[tuple[str, ...], ...]] = {
    "partners": (("partner_id",), ("partner_name", "contact_email")),
    "personnel": (("email_address",),),
    "deliverables": (
        ("partner_id", "deliverable_number"),
        ("partner_id", "description"),
        ("partner_name", "description"),
    ),
    "financials": (("partner_id",), ("partner_name",)),
    "compliance": (
        ("partner_id", "requirement", "reporting_period"),
        ("partner_id", "requirement"),
        ("partner_name", "requirement"),
    ),
}

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


class SheetSkipped(Exception):
    """A sheet has no handler or no usable header."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ImportTimeoutError(Exception):
    """A file exceeded its import deadline."""


def normalize_sheet_name(name: str) -> str:
    """Lower-case, punctuation replaced by spaces, whitespace collapsed."""
    text = _PUNCTUATION.sub(" ", (name or "").lower())
    return _WHITESPACE.sub(" ", text).strip()


def _keyword_route(normalized: str) -> str | None:
    if "deliver" in normalized:
        return "deliverables"
    if "master" in normalized or "register" in normalized:
        return "partners"
    if "key" in normalized and "person" in normalized:
        return "personnel"
    if "financ" in normalized:
        return "financials"
    if "compli" in normalized or "report" in normalized:
        return "compliance"
    return None


def route_sheet(sheet_name: str, file_name: str = "") -> str | None:
    """Handler name for a sheet: exact table match, then sheet keywords, then file-name keywords."""
    normalized = normalize_sheet_name(sheet_name)
    if normalized in SHEET_ROUTES:
        return SHEET_ROUTES[normalized]
    handler = _keyword_route(normalized)
    if handler is None and file_name:
        handler = _keyword_route(normalize_sheet_name(Path(file_name).stem))
    return handler


def file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def is_eligible(path: Path) -> bool:
    """Workbook extensions only; Office lock files (~$) and hidden files excluded."""
    name = path.name
    if name.startswith("~$") or name.startswith("."):
        return False
    return path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS


class SpreadsheetImporter:
    """Imports every eligible workbook in a directory into a StorageBackend."""

    def __init__(
        self,
        backend: StorageBackend,
        directory: str | Path,
        state_path: str | Path | None = None,
        file_timeout_sec: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.backend = backend
        self.directory = Path(directory)
        self.state_path = Path(state_path) if state_path else self.directory / STATE_FILENAME
        self.file_timeout_sec = file_timeout_sec
        self.clock = clock or time.monotonic

    # --- state ------------------------------------------------------------

    def state(self) -> dict[str, ImportStateEntry]:
        """Persisted fingerprints of imported files, keyed by path relative to the directory."""
        if not self.state_path.exists():
            return {}
        try:
            with self.state_path.open(encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Import state unreadable, starting fresh: %s", e)
            return {}
        entries: dict[str, ImportStateEntry] = {}
        for key, value in (raw or {}).items():
            try:
                entries[key] = ImportStateEntry.model_validate(value)
            except ValueError:
                logger.warning("Ignoring malformed import state entry for %s", key)
        return entries

    def _save_state(self, entries: dict[str, ImportStateEntry]) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {k: v.model_dump() for k, v in entries.items()}
        fd, tmp = tempfile.mkstemp(dir=self.state_path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp, self.state_path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _state_key(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.directory.resolve()).as_posix()
        except ValueError:
            return path.name

    # --- directory --------------------------------------------------------

    def eligible_files(self) -> list[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(p for p in self.directory.iterdir() if is_eligible(p))

    def file_signatures(self) -> dict[str, tuple[float, int]]:
        """(mtime, size) per eligible file; files vanishing mid-listing are ignored."""
        signatures: dict[str, tuple[float, int]] = {}
        for path in self.eligible_files():
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            signatures[self._state_key(path)] = (st.st_mtime, st.st_size)
        return signatures

    def directory_fingerprint(self) -> str | None:
        """Hash over path|mtime|size of every eligible file; None if the directory is missing."""
        if not self.directory.is_dir():
            return None
        h = hashlib.sha256()
        for key, (mtime, size) in sorted(self.file_signatures().items()):
            h.update(f"{key}|{mtime}|{size}\n".encode())
        return h.hexdigest()

    # --- passes -----------------------------------------------------------

    def scan(self) -> ScanReport:
        """Process every eligible file in sorted order; one bad file never stops the pass."""
        report = ScanReport(started_at=datetime.now(UTC))
        files = self.eligible_files()
        logger.info("Import pass started: dir=%s files=%s", self.directory, len(files))
        for path in files:
            report.files.append(self.process_file(path))
        report.finished_at = datetime.now(UTC)
        logger.info(
            "Import pass finished: imported=%s total=%s",
            report.imported_count,
            len(report.files),
        )
        return report

    def process_file(self, path: str | Path) -> FileReport:
        """Import one workbook unless its hash and mtime match the recorded state."""
        path = Path(path)
        key = self._state_key(path)
        try:
            st = path.stat()
            digest = file_sha256(path)
        except OSError as e:
            logger.error("Cannot read %s: %s", path, e)
            return FileReport(file=key, status="failed", error=str(e))

        entries = self.state()
        previous = entries.get(key)
        if previous is not None and previous.sha256 == digest and previous.mtime == st.st_mtime:
            logger.debug("Unchanged, skipping: %s", key)
            return FileReport(file=key, status="unchanged")

        report = FileReport(file=key, status="imported")
        deadline = (
            self.clock() + self.file_timeout_sec if self.file_timeout_sec else None
        )
        try:
            sheets = read_workbook(path)
            self._check_deadline(deadline, key)
            for sheet in sheets:
                self._check_deadline(deadline, key)
                report.sheets.append(self._process_sheet(sheet, path.name, deadline))
        except FileReadError as e:
            logger.error("Unreadable workbook %s: %s", key, e.message)
            report.status = "failed"
            report.error = e.message
            return report
        except ImportTimeoutError as e:
            logger.error("Import of %s timed out; it will be retried on the next pass", key)
            report.status = "timed_out"
            report.error = str(e)
            return report

        entries[key] = ImportStateEntry(
            sha256=digest,
            mtime=st.st_mtime,
            size=st.st_size,
            imported_at=datetime.now(UTC).isoformat(),
        )
        try:
            self._save_state(entries)
        except OSError as e:
            logger.error("Cannot write import state %s: %s", self.state_path, e)
            report.status = "failed"
            report.error = f"state not saved: {e}"
        logger.info("Imported %s (%s sheets)", key, len(report.sheets))
        return report

    def _check_deadline(self, deadline: float | None, key: str) -> None:
        if deadline is not None and self.clock() >= deadline:
            raise ImportTimeoutError(f"{key} exceeded {self.file_timeout_sec}s")

    def _process_sheet(self, sheet: Sheet, file_name: str, deadline: float | None) -> SheetReport:
        handler = route_sheet(sheet.name, file_name)
        report = SheetReport(sheet=sheet.name, handler=handler)
        try:
            if handler is None:
                raise SheetSkipped("no handler for sheet")
            header_index = detect_header_row(sheet.rows)
            if header_index is None:
                raise SheetSkipped("sheet is empty")
            header = header_labels(sheet.rows[header_index])
            if sum(1 for h in header if h) < 2:
                raise SheetSkipped("header has fewer than two columns")
            records = rows_to_records(header, sheet.rows[header_index + 1:])
            self._import_rows(MAPPINGS[handler], records, report, deadline, file_name)
        except SheetSkipped as e:
            logger.info("Skipping sheet %r in %s: %s", sheet.name, file_name, e.reason)
            report.skipped_reason = e.reason
        except ImportTimeoutError:
            raise
        except Exception as e:
            logger.exception("Sheet %r in %s failed", sheet.name, file_name)
            report.skipped_reason = f"error: {e}"
        return report

    def _import_rows(
        self,
        mapping: EntityMapping,
        records: list[dict[str, Any]],
        report: SheetReport,
        deadline: float | None,
        file_name: str,
    ) -> None:
        report.total_rows = len(records)
        for record in records:
            self._check_deadline(deadline, file_name)
            if all(is_blank(v) for v in record.values()):
                report.skipped += 1
                continue
            try:
                payload = mapping.map_row(record)
            except RowSkipped as e:
                logger.warning(
                    "Skipping %s row in %s: %s preview=%s",
                    mapping.name, file_name, e.message, e.preview,
                )
                report.skipped += 1
                continue
            if mapping.name == "deliverables":
                payload["imported_from_excel"] = True
                payload["imported_at"] = datetime.now(UTC).isoformat()
            try:
                self.upsert(mapping, payload)
                report.processed += 1
            except PersistenceError as e:
                logger.error(
                    "Failed to store %s row: %s preview=%s",
                    mapping.name,
                    e.message,
                    {f: payload.get(f) for f in mapping.preview_fields},
                )
                report.failed += 1
        logger.info(
            "Imported %s/%s %s rows from %s",
            report.processed, report.total_rows, mapping.name, file_name,
        )

    def upsert(self, mapping: EntityMapping, payload: dict[str, Any]) -> str:
        """Update the record matching the first complete natural key, else create one."""
        criteria = next(
            (
                {f: payload[f] for f in key}
                for key in NATURAL_KEYS[mapping.name]
                if all(payload.get(f) is not None for f in key)
            ),
            None,
        )

        existing = self.backend.find_one(mapping.collection, **criteria) if criteria else None
        if existing is not None:
            self.backend.update(mapping.collection, existing["id"], payload)
            return "updated"
        self.backend.create(mapping.collection, payload)
        return "created"
