"""File-based vector store: one JSON record per source document.

Handles:
- Record schema and validation (pydantic)
- Flattening of older nested embedding formats on read
- Atomic overwrite-by-name on save
- Loading the whole corpus for a query
"""
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from askdocs import config
from askdocs.errors import CorpusReadError

logger = structlog.get_logger()

RECORD_PREFIX = "embed_"
RECORD_SUFFIX = ".json"


def flatten_embedding(value: Any) -> List[float]:
    """Concatenate every numeric sub-array of an embedding payload.

    Accepts a flat list of numbers, a list of lists, a single
    ``{"embedding": [...]}`` object, or a full embeddings response
    (``{"data": [{"embedding": [...]}, ...]}``).

    Raises:
        ValueError: If the payload has no recognizable shape
    """
    if isinstance(value, dict):
        if "data" in value or "Data" in value:
            data = value.get("data", value.get("Data")) or []
            return [x for datum in data for x in flatten_embedding(datum)]
        if "embedding" in value or "Embedding" in value:
            return flatten_embedding(value.get("embedding", value.get("Embedding")))
        raise ValueError(f"Unrecognized embedding object with keys {sorted(value)}")

    if isinstance(value, (list, tuple)):
        if all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in value):
            return [float(x) for x in value]
        return [x for item in value for x in flatten_embedding(item)]

    raise ValueError(f"Unsupported embedding type: {type(value).__name__}")


class StoredFragment(BaseModel):
    """One fragment of a document together with its embedding."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    text: str
    embedding: List[float] = Field(alias="embeddings")

    @field_validator("embedding", mode="before")
    @classmethod
    def _flatten(cls, value: Any) -> List[float]:
        return flatten_embedding(value)


class VectorStoreRecord(BaseModel):
    """Persisted fragments and embeddings of one source document."""

    model_config = ConfigDict(populate_by_name=True)

    source_file_name: str = Field(alias="sourceFileName")
    fragments: List[StoredFragment] = Field(default_factory=list, alias="embeddings")

    @property
    def dimension(self) -> Optional[int]:
        """Embedding dimension, or None for a record without fragments."""
        if not self.fragments:
            return None
        return len(self.fragments[0].embedding)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class VectorStore:
    """Directory of vector store records, keyed by source document name."""

    def __init__(self, store_dir: Path = None):
        """Initialize the vector store.

        Args:
            store_dir: Directory holding the record files (default: EMBEDDINGS_DIR)
        """
        self.store_dir = Path(store_dir or config.EMBEDDINGS_DIR)

    def path_for(self, source_file_name: str) -> Path:
        """Record path for a source document name.

        Raises:
            ValueError: If the name is empty once directory parts are removed
        """
        name = Path(source_file_name).name
        if not name:
            raise ValueError(f"Invalid source document name: {source_file_name!r}")
        return self.store_dir / f"{RECORD_PREFIX}{name}{RECORD_SUFFIX}"

    def save(self, record: VectorStoreRecord) -> Path:
        """Write a record, atomically replacing any previous version.

        Returns:
            Path of the written record
        """
        self.store_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(record.source_file_name)

        # Temp files end in .tmp so load_all never picks them up
        fd, tmp_name = tempfile.mkstemp(
            dir=self.store_dir, prefix=f".{RECORD_PREFIX}", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(record.to_json())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(
            "vector_record_saved",
            path=str(path),
            source=record.source_file_name,
            fragment_count=len(record.fragments),
        )
        return path

    def load(self, path: Path) -> VectorStoreRecord:
        """Read and validate one record file.

        Raises:
            OSError: If the file can't be read
            ValidationError: If the content isn't a valid record
        """
        raw = Path(path).read_text(encoding="utf-8")
        return VectorStoreRecord.model_validate_json(raw)

    def load_all(self) -> List[VectorStoreRecord]:
        """Load every record in the store.

        Unreadable or malformed files are logged and skipped; a missing
        store directory is an empty corpus.

        Raises:
            CorpusReadError: If the store directory itself can't be listed
        """
        if not self.store_dir.exists():
            logger.warning("vector_store_missing", store_dir=str(self.store_dir))
            return []

        try:
            paths = sorted(
                p for p in self.store_dir.iterdir() if p.suffix == RECORD_SUFFIX
            )
        except OSError as e:
            logger.error("vector_store_list_failed", store_dir=str(self.store_dir), error=str(e))
            raise CorpusReadError(f"Unable to read vector store: {e}") from e

        records = []
        for path in paths:
            try:
                records.append(self.load(path))
            except (OSError, ValidationError, ValueError) as e:
                logger.warning(
                    "vector_record_skipped",
                    path=str(path),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.info(
            "vector_store_loaded",
            records=len(records),
            skipped=len(paths) - len(records),
            fragments=sum(len(r.fragments) for r in records),
        )
        return records

    def delete(self, source_file_name: str) -> bool:
        """Remove a document's record.

        Returns:
            True if a record was deleted
        """
        path = self.path_for(source_file_name)
        if not path.exists():
            logger.debug("vector_record_not_found", source=source_file_name)
            return False

        path.unlink()
        logger.info("vector_record_deleted", path=str(path), source=source_file_name)
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        records = self.load_all()
        dimensions = sorted({r.dimension for r in records if r.dimension is not None})
        return {
            "store_dir": str(self.store_dir),
            "record_count": len(records),
            "fragment_count": sum(len(r.fragments) for r in records),
            "dimensions": dimensions,
        }
