"""
CLI entrypoint for the spreadsheet importer. Run once (e.g. from cron):

  python -m app.importer --once

Or keep watching the import directory until interrupted:

  python -m app.importer --dir data/excel
"""

import argparse
import logging
import sys
import threading

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.services.importer import SpreadsheetImporter
from app.services.storage import PersistenceError, build_storage_backend
from app.services.watcher import ImportWatcher

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Run one import pass (--once) or watch the directory."""
    parser = argparse.ArgumentParser(description="Import partner workbooks into the record store.")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument("--dir", dest="directory", default=None, help="Directory to import from")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    directory = args.directory or settings.IMPORT_DIR

    try:
        backend = build_storage_backend(settings)
        backend.check()
    except PersistenceError as e:
        logger.error("Record store not usable: %s", e.message)
        return 1

    importer = SpreadsheetImporter(
        backend, directory, file_timeout_sec=settings.IMPORT_FILE_TIMEOUT_SEC
    )
    if args.once:
        try:
            report = importer.scan()
        except Exception as e:
            logger.exception("Import pass failed: %s", e)
            return 1
        failed = [f for f in report.files if f.status in ("failed", "timed_out")]
        logger.info(
            "Import completed: imported=%s failed=%s", report.imported_count, len(failed)
        )
        return 1 if failed else 0

    watcher = ImportWatcher(
        importer,
        interval_sec=settings.IMPORT_POLL_INTERVAL_SEC,
        debounce_sec=settings.IMPORT_DEBOUNCE_SEC,
    )
    watcher.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted; stopping watcher")
    finally:
        watcher.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
