#!/usr/bin/env python
"""Convert a legacy per-fragment vector store into per-document records.

The consolidated records are written to a separate folder. Move them into
the embeddings folder afterwards, replacing the legacy files. Running the
upgrade on an already upgraded folder writes nothing.

Usage:
    python scripts/upgrade_store.py data/embeddings data/consolidated
"""
import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from askdocs.log_config import configure_logging
from askdocs.rag.store import VectorStore
from askdocs.rag.upgrade import upgrade_store


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("legacy_dir", type=Path, help="Folder with embed_{source}_{n}.json files")
    parser.add_argument("output_dir", type=Path, help="Folder for the consolidated records")
    args = parser.parse_args()

    configure_logging(fmt="console")

    if args.legacy_dir.resolve() == args.output_dir.resolve():
        print("Error: the output folder must differ from the legacy folder.")
        sys.exit(1)

    written = upgrade_store(args.legacy_dir, VectorStore(args.output_dir))
    for path in written:
        print(f"Consolidated file written: {path}")
    print(f"{len(written)} document(s) upgraded.")


if __name__ == "__main__":
    main()
