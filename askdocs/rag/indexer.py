"""Indexing pipeline for plain-text documents.

Orchestrates:
- File discovery
- Text chunking
- Embedding generation (with retry)
- Vector store record persistence
"""
import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from askdocs import config
from askdocs.errors import (
    EmbeddingCredentialError,
    EmbeddingServiceTransientError,
    LLMTransientError,
    LLMUnauthorizedError,
)
from askdocs.rag.chunker import TextChunker
from askdocs.rag.store import StoredFragment, VectorStore, VectorStoreRecord
from askdocs.retry import RetryPolicy, call_with_retry

logger = structlog.get_logger()

TEXT_FILE_PATTERN = "*.txt"


class DocumentIndexer:
    """Turns documents into vector store records."""

    def __init__(
        self,
        embedder,
        store: VectorStore = None,
        chunker: TextChunker = None,
        retry_policy: RetryPolicy = None,
        concurrency: int = None,
    ):
        """Initialize the indexer.

        Args:
            embedder: Object with ``async embed(text) -> list[float]``
            store: Vector store to write records to (default store dir from config)
            chunker: Text chunker (default fragment length from config)
            retry_policy: Retry policy for embedding calls
            concurrency: Maximum embedding calls in flight per document
                (default from config; 1 means strictly sequential)
        """
        self.embedder = embedder
        self.store = store or VectorStore()
        self.chunker = chunker or TextChunker()
        self.retry_policy = retry_policy or RetryPolicy()
        self.concurrency = max(
            1, config.EMBED_CONCURRENCY if concurrency is None else concurrency
        )

        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "files_processed": 0,
            "files_failed": 0,
            "fragments_created": 0,
            "embeddings_generated": 0,
        }

    async def _embed_fragment(
        self, name: str, ordinal: int, text: str, semaphore: asyncio.Semaphore
    ) -> List[float]:
        async with semaphore:
            embedding = await call_with_retry(
                lambda: self.embedder.embed(text),
                self.retry_policy,
                operation_name=f"embed:{name}#{ordinal}",
            )
        self.stats["embeddings_generated"] += 1
        return embedding

    async def embed_fragments(self, name: str, fragments: List[str]) -> List[List[float]]:
        """Embed every fragment of a document, preserving fragment order.

        Raises:
            EmbeddingCredentialError: If the service rejects the credential
            EmbeddingServiceTransientError: If a fragment keeps failing
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = []
        try:
            if self.concurrency == 1:
                return [
                    await self._embed_fragment(name, i, text, semaphore)
                    for i, text in enumerate(fragments)
                ]

            tasks = [
                asyncio.ensure_future(self._embed_fragment(name, i, text, semaphore))
                for i, text in enumerate(fragments)
            ]
            return list(await asyncio.gather(*tasks))
        except LLMUnauthorizedError as e:
            raise EmbeddingCredentialError(
                f"Embedding service rejected the credential: {e}"
            ) from e
        except LLMTransientError as e:
            raise EmbeddingServiceTransientError(
                f"Embedding service unavailable while indexing {name}: {e}"
            ) from e
        finally:
            # Stop the remaining calls once one fragment has failed
            for task in tasks:
                task.cancel()

    async def index_document(self, name: str, text: str) -> VectorStoreRecord:
        """Chunk, embed and persist one document.

        The record is written only after every fragment is embedded, and
        replaces any earlier record for the same name.

        Args:
            name: Source document name (the record key)
            text: Document text

        Returns:
            The persisted record

        Raises:
            EmbeddingCredentialError: If the service rejects the credential
            EmbeddingServiceTransientError: If embedding keeps failing
        """
        logger.info("indexing_document", source=name, text_length=len(text))

        fragments = self.chunker.chunk_text(text)
        if not fragments:
            logger.warning("no_fragments_created", source=name)

        embeddings = await self.embed_fragments(name, fragments)

        record = VectorStoreRecord(
            source_file_name=name,
            fragments=[
                StoredFragment(text=fragment, embedding=embedding)
                for fragment, embedding in zip(fragments, embeddings)
            ],
        )
        self.store.save(record)

        self.stats["fragments_created"] += len(fragments)

        logger.info(
            "document_indexed",
            source=name,
            fragments_created=len(fragments),
            dimension=record.dimension,
        )
        return record

    async def index_file(self, file_path: Path) -> VectorStoreRecord:
        """Index a text file under its file name."""
        file_path = Path(file_path)
        text = file_path.read_text(encoding="utf-8", errors="replace")
        record = await self.index_document(file_path.name, text)
        self.stats["files_processed"] += 1
        return record

    def remove_document(self, name: str) -> bool:
        """Delete the record of a document that no longer exists."""
        return self.store.delete(name)

    def discover_text_files(self, input_dir: Path) -> List[Path]:
        """Find all text files in the input directory.

        Raises:
            FileNotFoundError: If the input directory doesn't exist
        """
        input_dir = Path(input_dir)
        if not input_dir.exists():
            raise FileNotFoundError(f"Input directory not found: {input_dir}")

        files = sorted(input_dir.glob(TEXT_FILE_PATTERN))
        logger.info("text_files_discovered", count=len(files), input_dir=str(input_dir))
        return files

    async def index_directory(
        self,
        input_dir: Path = None,
        progress_callback: Optional[Callable[[int, int, Path], Any]] = None,
    ) -> Dict[str, int]:
        """Index every text file in a directory.

        Files that fail transiently are counted and skipped. A rejected
        credential aborts the whole run since every other file would fail
        the same way.

        Args:
            input_dir: Directory of .txt files (default from config)
            progress_callback: Optional callback(current, total, file_path)

        Returns:
            Indexing statistics

        Raises:
            EmbeddingCredentialError: If the service rejects the credential
            FileNotFoundError: If the input directory doesn't exist
        """
        input_dir = Path(input_dir or config.INPUT_DIR)
        self.stats = self._empty_stats()

        files = self.discover_text_files(input_dir)
        if not files:
            logger.warning("no_text_files_found", input_dir=str(input_dir))
            return self.stats

        for idx, file_path in enumerate(files, 1):
            if progress_callback:
                progress_callback(idx, len(files), file_path)

            try:
                await self.index_file(file_path)
            except EmbeddingCredentialError:
                logger.error("indexing_aborted_invalid_credential", path=str(file_path))
                raise
            except (EmbeddingServiceTransientError, OSError) as e:
                logger.error(
                    "file_indexing_failed",
                    path=str(file_path),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self.stats["files_failed"] += 1

        logger.info("index_directory_completed", stats=self.stats)
        return self.stats
