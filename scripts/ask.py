#!/usr/bin/env python
"""Interactive question loop over the indexed documents.

Usage:
    python scripts/ask.py                # Ask until an empty line is entered
    python scripts/ask.py --show-source  # Always print the context used
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from askdocs import config
from askdocs.llm_client import create_llm_client
from askdocs.log_config import configure_logging
from askdocs.rag.answerer import QueryState, QuestionAnswerer
from askdocs.rag.store import VectorStore


async def main():
    parser = argparse.ArgumentParser(description="Ask questions about your documents")
    parser.add_argument(
        "--store-dir",
        type=Path,
        default=None,
        help=f"Vector store folder (default: {config.EMBEDDINGS_DIR})",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help=f"Minimum similarity (default: {config.SIMILARITY_THRESHOLD})",
    )
    parser.add_argument("--show-source", action="store_true", help="Print the context after every answer")
    args = parser.parse_args()

    configure_logging(level="WARNING", fmt="console")

    client = create_llm_client()
    answerer = QuestionAnswerer(
        embedder=client,
        generator=client,
        store=VectorStore(args.store_dir),
        threshold=args.threshold,
    )

    while True:
        print("QUESTION -----------------------------------------")
        try:
            question = input("? ")
        except EOFError:
            return
        if not question.strip():
            return

        print("Answering...", end="\r", flush=True)
        outcome = await answerer.answer(question)
        print(outcome.message)

        if outcome.state == QueryState.FAILED:
            sys.exit(1)

        if outcome.state != QueryState.ANSWERED:
            continue

        show = args.show_source or input("Show source (y/N)? ").strip().lower() == "y"
        if show:
            print("SOURCE -------------------------------------------")
            print(outcome.context)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print()
