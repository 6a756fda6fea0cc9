#!/usr/bin/env python
"""Index every .txt document of the input folder.

Usage:
    python scripts/reindex.py                    # Index input/ into data/embeddings/
    python scripts/reindex.py --input-dir docs   # Index another folder
    python scripts/reindex.py --verbose          # Show detailed progress
"""
import argparse
import asyncio
import sys
import time
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from askdocs import config
from askdocs.errors import EmbeddingCredentialError
from askdocs.llm_client import create_llm_client
from askdocs.log_config import configure_logging
from askdocs.rag.indexer import DocumentIndexer
from askdocs.rag.store import VectorStore


class IndexingReport:
    """Prints one line per indexed file and a summary at the end."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.started = time.monotonic()

    def file_started(self, current: int, total: int, file_path: Path):
        width = len(str(total))
        line = f"  [{current:>{width}}/{total}] {file_path.name}"
        if self.verbose:
            print(line)
        else:
            # Overwritten by the next file
            print(f"\r{line:<70}", end="", flush=True)

    def summary(self, stats: dict, store_stats: dict):
        elapsed = time.monotonic() - self.started
        rule = "-" * 48

        print(f"\n\n{rule}")
        for label, key in (
            ("Documents indexed", "files_processed"),
            ("Documents failed", "files_failed"),
            ("Fragments", "fragments_created"),
            ("Embeddings", "embeddings_generated"),
        ):
            print(f"  {label + ':':<20}{stats[key]:>8}")
        print(f"  {'Elapsed:':<20}{elapsed:>7.1f}s")
        print(rule)

        if stats["files_failed"]:
            print(f"\n{stats['files_failed']} document(s) could not be indexed, see the log above.")
        elif stats["files_processed"]:
            dimensions = ", ".join(str(d) for d in store_stats["dimensions"]) or "none"
            print(
                f"\nVector store {store_stats['store_dir']} now holds "
                f"{store_stats['record_count']} document(s), "
                f"{store_stats['fragment_count']} fragment(s), dimension {dimensions}"
            )


def parse_args():
    parser = argparse.ArgumentParser(description="Index .txt documents for question answering")
    parser.add_argument("--input-dir", type=Path, help=f"Folder of .txt documents (default: {config.INPUT_DIR})")
    parser.add_argument("--store-dir", type=Path, help=f"Vector store folder (default: {config.EMBEDDINGS_DIR})")
    parser.add_argument(
        "--concurrency",
        type=int,
        help=f"Embedding calls in flight per document (default: {config.EMBED_CONCURRENCY})",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="One line per document and debug logs")
    return parser.parse_args()


async def run(args) -> int:
    """Index the input folder; returns the process exit code."""
    configure_logging(level="DEBUG" if args.verbose else "WARNING", fmt="console")
    config.ensure_directories()

    input_dir = args.input_dir or config.INPUT_DIR
    store = VectorStore(args.store_dir)

    print(f"Indexing {input_dir} into {store.store_dir}")
    print(f"Embedding model {config.EMBEDDING_MODEL} ({config.LLM_PROVIDER}), "
          f"fragments up to {config.MAX_FRAGMENT_LENGTH} chars\n")

    indexer = DocumentIndexer(
        embedder=create_llm_client(),
        store=store,
        concurrency=args.concurrency,
    )
    report = IndexingReport(verbose=args.verbose)

    try:
        stats = await indexer.index_directory(input_dir, progress_callback=report.file_started)
    except EmbeddingCredentialError as e:
        print(f"\nError: {e}")
        print("The API key is missing or invalid. Please check the configured credential.")
        return 1
    except FileNotFoundError as e:
        print(f"\nError: {e}")
        return 1

    report.summary(stats, store.get_stats())
    return 1 if stats["files_failed"] else 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(run(parse_args())))
    except KeyboardInterrupt:
        print("\nIndexing cancelled.")
        sys.exit(1)
