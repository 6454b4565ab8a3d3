"""Poll the import directory and run import passes once changes settle."""

import logging
import threading
import time
from collections.abc import Callable

from app.schemas.imports import ScanReport
from app.services.importer import SpreadsheetImporter

logger = logging.getLogger(__name__)


class ImportWatcher:
    """
    Debounced directory watcher around a SpreadsheetImporter.

    A changed directory fingerprint marks the directory dirty; the pass runs
    once the fingerprint has stayed the same for debounce_sec. At most one
    pass runs at a time; triggers arriving during a pass are dropped.
    """

    def __init__(
        self,
        importer: SpreadsheetImporter,
        interval_sec: float = 10.0,
        debounce_sec: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.importer = importer
        self.interval_sec = interval_sec
        self.debounce_sec = debounce_sec
        self.clock = clock
        self._pass_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_fingerprint: str | None = None
        self._last_signatures: dict[str, tuple[float, int]] = {}
        self._changed_at: float | None = None
        self.pending_files: set[str] = set()
        self.last_report: ScanReport | None = None

    @property
    def busy(self) -> bool:
        return self._pass_lock.locked()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def trigger(self) -> ScanReport | None:
        """Run a pass now unless one is active; returns None when the trigger was dropped."""
        if not self._pass_lock.acquire(blocking=False):
            logger.info("Import pass already running; trigger dropped")
            return None
        try:
            report = self.importer.scan()
            self.last_report = report
            self.pending_files.clear()
            self._changed_at = None
            return report
        finally:
            self._pass_lock.release()

    def poll(self) -> ScanReport | None:
        """One watch tick; returns the pass report when a debounced change was imported."""
        fingerprint = self.importer.directory_fingerprint()
        now = self.clock()
        if fingerprint != self._last_fingerprint:
            signatures = self.importer.file_signatures()
            changed = {
                name for name, sig in signatures.items()
                if self._last_signatures.get(name) != sig
            }
            if changed:
                logger.debug("Import directory changed: %s", sorted(changed))
            self.pending_files |= changed
            self._last_signatures = signatures
            self._last_fingerprint = fingerprint
            self._changed_at = now
            return None
        if self._changed_at is None or now - self._changed_at < self.debounce_sec:
            return None
        if fingerprint is None:
            self._changed_at = None
            return None
        return self.trigger()

    def _run(self) -> None:
        logger.info(
            "Import watcher started: dir=%s interval=%ss", self.importer.directory, self.interval_sec
        )
        # Short ticks until the debounce settles, then the regular interval.
        while not self._stop.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("Import watcher tick failed")
            wait = self.debounce_sec if self._changed_at is not None else self.interval_sec
            self._stop.wait(wait)
        logger.info("Import watcher stopped")

    def start(self) -> None:
        """Start the background polling thread (no-op if already running)."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="import-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 30.0) -> None:
        """Signal the thread and wait for it; an in-flight pass is allowed to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Import watcher did not stop within %ss", timeout)
            self._thread = None
