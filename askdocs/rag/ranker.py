"""Cosine-similarity ranking over the whole fragment corpus.

Exhaustive scan: every fragment of every record is scored against the
query, which is fine for hundreds to low thousands of fragments.
"""
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import structlog

from askdocs.errors import DimensionMismatchError
from askdocs.rag.store import VectorStoreRecord

logger = structlog.get_logger()


@dataclass(frozen=True)
class RankedFragment:
    """A fragment scored against the current query."""

    text: str
    score: float
    source_file_name: str


def normalize(vector: Sequence[float]) -> np.ndarray:
    """Scale a vector to unit L2 norm. A zero vector is returned unchanged."""
    v = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(v)
    if norm == 0:
        return v
    return v / norm


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0 if either vector is zero.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Cannot compare vectors of dimension {len(a)} and {len(b)}"
        )
    score = float(np.dot(normalize(a), normalize(b)))
    return max(-1.0, min(1.0, score))


def rank(
    query_vector: Sequence[float], records: Sequence[VectorStoreRecord]
) -> List[RankedFragment]:
    """Score every fragment of every record and sort by descending score.

    Equal scores keep their input order (records first, then fragments).

    Raises:
        DimensionMismatchError: If a fragment's embedding dimension differs
            from the query's, e.g. a store built with another model
    """
    pool = [
        (record.source_file_name, fragment)
        for record in records
        for fragment in record.fragments
    ]
    if not pool:
        return []

    query = normalize(query_vector)
    dimension = query.shape[0]

    for source, fragment in pool:
        if len(fragment.embedding) != dimension:
            raise DimensionMismatchError(
                f"Fragment of {source} has dimension {len(fragment.embedding)}, "
                f"query has {dimension}. Please rebuild the vector store."
            )

    matrix = np.array([fragment.embedding for _, fragment in pool], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1)
    matrix = matrix / np.where(norms == 0, 1.0, norms)[:, np.newaxis]

    scores = np.clip(matrix @ query, -1.0, 1.0)
    order = np.argsort(-scores, kind="stable")

    ranked = [
        RankedFragment(
            text=pool[i][1].text,
            score=float(scores[i]),
            source_file_name=pool[i][0],
        )
        for i in order
    ]

    logger.debug(
        "fragments_ranked",
        fragment_count=len(ranked),
        top_score=ranked[0].score,
    )
    return ranked
