"""Keeps the vector store in step with the input folder.

watchdog reports file events on its observer thread. Changes to ``.txt``
files are collected per path and applied on the event loop once the
folder has been quiet for a while: created, modified and moved-in files
are re-indexed, deleted and moved-out files lose their record.
"""
import asyncio
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Dict, Optional

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from askdocs import config
from askdocs.errors import EmbeddingServiceError
from askdocs.rag.indexer import DocumentIndexer

logger = structlog.get_logger()

WATCHED_SUFFIX = ".txt"

REINDEX = "reindex"
REMOVE = "remove"


def _is_watched(path) -> bool:
    return str(path).lower().endswith(WATCHED_SUFFIX)


class InputFolderHandler(FileSystemEventHandler):
    """Collects changes to text files and applies them after a quiet period."""

    def __init__(
        self,
        indexer: DocumentIndexer,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        quiet_seconds: float = None,
    ):
        """Initialize the handler.

        Args:
            indexer: Indexer used to rebuild and delete records
            loop: Event loop the changes are applied on
            quiet_seconds: Time without events before pending changes are applied
        """
        super().__init__()
        self.indexer = indexer
        self.loop = loop
        self.quiet_seconds = (
            config.WATCH_DEBOUNCE_SECONDS if quiet_seconds is None else quiet_seconds
        )

        self._lock = threading.Lock()
        self._changes: Dict[Path, str] = {}
        self._last_event = 0.0
        self._flush: Optional[Future] = None
        self._flush_pending = False
        self._closed = False

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory and _is_watched(event.src_path):
            self.record_change(Path(event.src_path), REINDEX)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory and _is_watched(event.src_path):
            self.record_change(Path(event.src_path), REINDEX)

    def on_deleted(self, event: FileSystemEvent):
        if not event.is_directory and _is_watched(event.src_path):
            self.record_change(Path(event.src_path), REMOVE)

    def on_moved(self, event: FileSystemEvent):
        if event.is_directory:
            return
        if _is_watched(event.src_path):
            self.record_change(Path(event.src_path), REMOVE)
        if _is_watched(event.dest_path):
            self.record_change(Path(event.dest_path), REINDEX)

    def record_change(self, path: Path, action: str):
        """Remember the latest action for a path and make sure a flush is pending.

        Called from the observer thread.
        """
        logger.info("input_change_detected", path=str(path), action=action)
        with self._lock:
            self._changes[path] = action
            self._last_event = time.monotonic()
            if self._closed or self.loop is None:
                return
            if not self._flush_pending:
                self._flush_pending = True
                self._flush = asyncio.run_coroutine_threadsafe(
                    self._flush_when_quiet(), self.loop
                )

    async def _flush_when_quiet(self):
        try:
            while not self._closed:
                await asyncio.sleep(self.quiet_seconds)

                with self._lock:
                    if time.monotonic() - self._last_event < self.quiet_seconds:
                        continue
                    changes, self._changes = self._changes, {}
                    # Exit and flag reset under the lock
                    if not changes:
                        self._flush_pending = False
                        return

                await self.apply_changes(changes)
        except BaseException:
            with self._lock:
                self._flush_pending = False
            raise

    async def apply_changes(self, changes: Dict[Path, str]):
        """Re-index or remove the given files, one at a time.

        Failures are logged per file; the remaining changes still apply.
        """
        logger.info("applying_input_changes", count=len(changes))

        for path, action in sorted(changes.items()):
            if action == REMOVE:
                try:
                    self.indexer.remove_document(path.name)
                except OSError as e:
                    logger.error("record_removal_failed", path=str(path), error=str(e))
                continue

            if not path.exists():
                logger.warning("changed_file_missing", path=str(path))
                continue

            try:
                await self.indexer.index_file(path)
            except (EmbeddingServiceError, OSError) as e:
                logger.error(
                    "changed_file_index_failed",
                    path=str(path),
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def close(self):
        """Drop pending changes and cancel a pending flush."""
        with self._lock:
            self._closed = True
            self._changes.clear()
            if self._flush is not None:
                self._flush.cancel()


class InputWatcher:
    """Runs a watchdog observer on the input folder."""

    def __init__(
        self,
        indexer: DocumentIndexer,
        input_dir: Optional[Path] = None,
        quiet_seconds: float = None,
    ):
        self.indexer = indexer
        self.input_dir = Path(input_dir or config.INPUT_DIR)
        self.quiet_seconds = quiet_seconds

        self.handler: Optional[InputFolderHandler] = None
        self.observer: Optional[Observer] = None

    async def start(self):
        """Begin watching; must be awaited on the loop that applies changes."""
        if self.observer is not None:
            logger.warning("input_watcher_running")
            return

        self.input_dir.mkdir(parents=True, exist_ok=True)
        self.handler = InputFolderHandler(
            self.indexer,
            loop=asyncio.get_running_loop(),
            quiet_seconds=self.quiet_seconds,
        )
        self.observer = Observer()
        self.observer.schedule(self.handler, str(self.input_dir), recursive=False)
        self.observer.start()

        logger.info("input_watcher_started", input_dir=str(self.input_dir))

    def stop(self):
        if self.observer is None:
            return

        self.observer.stop()
        self.observer.join(timeout=5.0)
        self.handler.close()
        self.observer = None
        logger.info("input_watcher_stopped", input_dir=str(self.input_dir))

    def is_alive(self) -> bool:
        return self.observer is not None and self.observer.is_alive()
