"""Greedy context assembly under a similarity threshold and a byte budget."""
from typing import Iterable

import structlog

from askdocs import config
from askdocs.rag.ranker import RankedFragment

logger = structlog.get_logger()

SEPARATOR = "\n"


def _entry(text: str) -> str:
    """Fragment text followed by a blank separator line."""
    if not text.endswith("\n"):
        text += "\n"
    return text + SEPARATOR


def assemble(
    ranked: Iterable[RankedFragment],
    threshold: float = None,
    max_bytes: int = None,
) -> str:
    """Concatenate the best fragments into a bounded context string.

    Fragments are taken in the given (descending score) order. Fragments
    scoring below ``threshold`` are skipped. The first fragment that would
    push the context past ``max_bytes`` UTF-8 bytes stops the assembly.

    Args:
        ranked: Fragments sorted by descending score
        threshold: Minimum similarity (default from config)
        max_bytes: Byte budget, separators included (default from config)

    Returns:
        The context, or an empty string when nothing qualified
    """
    threshold = config.SIMILARITY_THRESHOLD if threshold is None else threshold
    max_bytes = config.MAX_CONTEXT_BYTES if max_bytes is None else max_bytes

    parts = []
    total_bytes = 0

    for fragment in ranked:
        if fragment.score < threshold:
            continue

        entry = _entry(fragment.text)
        entry_bytes = len(entry.encode("utf-8"))
        if total_bytes + entry_bytes > max_bytes:
            break

        parts.append(entry)
        total_bytes += entry_bytes

    logger.debug(
        "context_assembled",
        fragments_used=len(parts),
        context_bytes=total_bytes,
        threshold=threshold,
        max_bytes=max_bytes,
    )

    return "".join(parts)
