"""Schemas describing spreadsheet import passes."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

FileStatus = Literal["imported", "unchanged", "failed", "timed_out"]


class SheetReport(BaseModel):
    """Outcome of one worksheet."""

    sheet: str
    handler: str | None = Field(default=None, description="Entity handler used, if any.")
    skipped_reason: str | None = None
    total_rows: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0


class FileReport(BaseModel):
    """Outcome of one workbook file."""

    file: str
    status: FileStatus
    error: str | None = None
    sheets: list[SheetReport] = Field(default_factory=list)


class ScanReport(BaseModel):
    """Outcome of a full pass over the import directory."""

    started_at: datetime
    finished_at: datetime | None = None
    files: list[FileReport] = Field(default_factory=list)

    @property
    def imported_count(self) -> int:
        return sum(1 for f in self.files if f.status == "imported")


class ImportStateEntry(BaseModel):
    """Fingerprint recorded for a file after a successful import."""

    sha256: str
    mtime: float
    size: int
    imported_at: str


class ImportStateResponse(BaseModel):
    """Response for GET /imports/state."""

    directory: str
    files: dict[str, ImportStateEntry]


class UploadResponse(BaseModel):
    """Response after a workbook was written into the import directory."""

    filename: str = Field(..., description="Name the file was stored under.")
    size: int = Field(..., ge=0, description="Size in bytes.")
    report: ScanReport | None = Field(
        default=None,
        description="Import pass triggered by the upload, when one ran.",
    )
