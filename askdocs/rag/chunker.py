"""Line-based text chunking for the RAG pipeline.

Fragments are built line by line and closed on two triggers:

- length: the next line would push the fragment past the maximum length
- section: a blank line, which usually follows a header or ends a paragraph

Blank lines are never part of a fragment. A single line longer than the
maximum is kept whole as its own oversized fragment.
"""
import re
from typing import List

import structlog

from askdocs import config

logger = structlog.get_logger()

LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


def split(text: str, max_length: int) -> List[str]:
    """Split text into fragments of at most ``max_length`` characters.

    Args:
        text: Raw document text
        max_length: Soft cap on fragment length in characters

    Returns:
        Fragments in document order, each ending with a newline
    """
    fragments: List[str] = []
    current: List[str] = []
    current_length = 0

    for line in LINE_BREAK_RE.split(text):
        # Length overflow, independent of section detection
        if current and current_length + len(line) + 1 > max_length:
            fragments.append("".join(current))
            current, current_length = [], 0

        if not line.strip():
            if current:
                fragments.append("".join(current))
                current, current_length = [], 0
            continue

        current.append(line + "\n")
        current_length += len(line) + 1

    if current:
        fragments.append("".join(current))

    return fragments


class TextChunker:
    """Section-aware line chunker with a soft length cap."""

    def __init__(self, max_length: int = None):
        """Initialize the text chunker.

        Args:
            max_length: Maximum fragment length in characters (default from config)
        """
        self.max_length = config.MAX_FRAGMENT_LENGTH if max_length is None else max_length

        if self.max_length <= 0:
            raise ValueError(f"Fragment length must be positive, got {self.max_length}")

    def chunk_text(self, text: str) -> List[str]:
        """Split text into fragments.

        Args:
            text: Text to chunk

        Returns:
            List of fragment strings (empty for blank input)
        """
        if not text or not text.strip():
            return []

        fragments = split(text, self.max_length)

        logger.info(
            "text_chunked",
            text_length=len(text),
            fragment_count=len(fragments),
            oversized=sum(1 for f in fragments if len(f) > self.max_length),
        )

        return fragments
