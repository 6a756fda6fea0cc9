"""Append-only audit log of questions and their outcomes."""
from pathlib import Path

import structlog

from askdocs import config

logger = structlog.get_logger()


class AuditLog:
    """Plain-text log with one record per answered (or failed) question.

    Each record is written with a single ``write`` call so interleaved
    writers never split a record. Write failures are logged, not raised.
    """

    def __init__(self, path: Path = None):
        self.path = Path(path or config.AUDIT_LOG_PATH)

    def record_answer(self, question: str, answer: str) -> None:
        self._append(f"Question: {question}, Answer: {answer}")

    def record_exception(self, question: str, error: BaseException) -> None:
        self._append(f"Question: {question}, Exception: {error}")

    def _append(self, line: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(f"{line}\n\n")
        except OSError as e:
            logger.warning("audit_log_write_failed", path=str(self.path), error=str(e))
