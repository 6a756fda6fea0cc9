"""Upgrade of the legacy one-file-per-fragment store layout.

Older stores held one file per fragment, named
``embed_{source}_{n}.json`` and containing ``text``, ``embeddings`` and
``sourceFileName``. The current layout holds one record per source
document. This module groups the legacy files by source name, orders
them by fragment number and writes the consolidated records.
"""
import json
import re
from collections import defaultdict
from pathlib import Path
from typing import Dict, List

import structlog

from askdocs.rag.store import StoredFragment, VectorStore, VectorStoreRecord

logger = structlog.get_logger()

LEGACY_NAME_RE = re.compile(r"^embed_(?P<source>.+)_(?P<part>\d+)\.json$")


def group_legacy_files(legacy_dir: Path) -> Dict[str, List[Path]]:
    """Group legacy fragment files by source document name.

    Files that don't follow the ``embed_{source}_{n}.json`` pattern are
    ignored.
    """
    groups: Dict[str, List[tuple]] = defaultdict(list)

    for path in sorted(Path(legacy_dir).glob("embed_*.json")):
        match = LEGACY_NAME_RE.match(path.name)
        if not match:
            logger.debug("legacy_file_ignored", path=str(path))
            continue
        groups[match.group("source")].append((int(match.group("part")), path))

    return {
        source: [path for _, path in sorted(parts)]
        for source, parts in groups.items()
    }


def consolidate(source_file_name: str, paths: List[Path]) -> VectorStoreRecord:
    """Build one record from the legacy fragment files of a document.

    Empty files are skipped.

    Raises:
        ValueError: If a file isn't valid JSON or its embedding can't be read
    """
    fragments = []
    for path in paths:
        raw = path.read_text(encoding="utf-8")
        if not raw.strip():
            logger.warning("legacy_file_empty", path=str(path))
            continue
        data = json.loads(raw)
        if "text" not in data or "embeddings" not in data:
            raise ValueError(f"{path.name} is not a legacy fragment file")
        fragments.append(
            StoredFragment(text=data["text"], embedding=data["embeddings"])
        )

    return VectorStoreRecord(source_file_name=source_file_name, fragments=fragments)


def upgrade_store(legacy_dir: Path, target: VectorStore) -> List[Path]:
    """Consolidate every legacy document into ``target``.

    Args:
        legacy_dir: Directory holding the per-fragment files
        target: Store receiving the consolidated records; use a different
            directory than ``legacy_dir`` and swap the folders afterwards

    Returns:
        Paths of the records written
    """
    written = []
    for source, paths in group_legacy_files(legacy_dir).items():
        record = consolidate(source, paths)
        written.append(target.save(record))
        logger.info(
            "legacy_document_consolidated",
            source=source,
            files=len(paths),
            fragments=len(record.fragments),
        )
    return written
