"""Spreadsheet import endpoints: manual pass, import state and workbook upload."""

import os
import tempfile
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status
from starlette.concurrency import run_in_threadpool

from app.api.v1.auth import require_admin
from app.core.config import Settings, get_settings
from app.schemas.auth import CurrentUser
from app.schemas.imports import ImportStateResponse, ScanReport, UploadResponse
from app.services.sheet_reader import SUPPORTED_EXTENSIONS
from app.services.watcher import ImportWatcher

router = APIRouter()


def get_import_watcher(request: Request) -> ImportWatcher:
    """Dependency: the watcher created at startup."""
    watcher = getattr(request.app.state, "import_watcher", None)
    if watcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Spreadsheet importer is not running.",
        )
    return watcher


def _is_upload_file(obj: object) -> bool:
    """True if obj is an uploaded file (UploadFile or file-like with filename and read)."""
    if isinstance(obj, UploadFile):
        return True
    return (
        hasattr(obj, "read")
        and callable(getattr(obj, "read", None))
        and hasattr(obj, "filename")
    )


def _safe_filename(filename: str) -> str:
    """Base name only; lock-file and hidden names are rejected."""
    name = Path(filename.replace("\\", "/")).name.strip()
    if not name or name.startswith(".") or name.startswith("~$"):
        raise HTTPException(status_code=422, detail="Invalid file name.")
    if Path(name).suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise HTTPException(
            status_code=422,
            detail="Uploaded file must be .xlsx, .xls or .csv.",
        )
    return name


def _write_atomic(directory: Path, name: str, content: bytes) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / name
    # Hidden temp name so the watcher never sees a half-written workbook
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=".upload-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.replace(tmp, target)
    except OSError:
        Path(tmp).unlink(missing_ok=True)
        raise
    return target


@router.post("/run", response_model=ScanReport)
def run_import(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    watcher: Annotated[ImportWatcher, Depends(get_import_watcher)],
) -> ScanReport:
    """Run an import pass now (admin only). 409 when a pass is already running."""
    report = watcher.trigger()
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An import pass is already running.",
        )
    return report


@router.get("/state", response_model=ImportStateResponse)
def import_state(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    watcher: Annotated[ImportWatcher, Depends(get_import_watcher)],
) -> ImportStateResponse:
    importer = watcher.importer
    return ImportStateResponse(directory=str(importer.directory), files=importer.state())


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_workbook(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    watcher: Annotated[ImportWatcher, Depends(get_import_watcher)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UploadResponse:
    """
    Store a workbook in the import directory and run a pass.

    Send `multipart/form-data` with a field named `file` holding a `.xlsx`,
    `.xls` or `.csv` file. If a pass is already running the file is picked up
    by the watcher and `report` is null.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type != "multipart/form-data":
        raise HTTPException(
            status_code=415,
            detail="Content-Type must be multipart/form-data.",
        )
    form = await request.form()
    file = form.get("file")
    if file is None or not _is_upload_file(file):
        # Some clients send the file under another name; use first file-like part.
        file = next(
            (v for v in form.values() if _is_upload_file(v)),
            None,
        )
    if file is None or not _is_upload_file(file):
        raise HTTPException(
            status_code=422,
            detail="Multipart request must include a 'file' field with a workbook.",
        )
    name = _safe_filename(getattr(file, "filename", None) or "")
    content = await file.read()
    max_bytes = settings.IMPORT_MAX_UPLOAD_BYTES
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File size must not exceed {max_bytes // (1024 * 1024)} MB.",
        )
    if not content:
        raise HTTPException(status_code=422, detail="Uploaded file is empty.")

    await run_in_threadpool(_write_atomic, watcher.importer.directory, name, content)
    report = await run_in_threadpool(watcher.trigger)
    return UploadResponse(filename=name, size=len(content), report=report)
