"""Tests for the document indexer."""
import asyncio

import pytest

from askdocs.errors import (
    EmbeddingCredentialError,
    EmbeddingServiceTransientError,
    LLMTransientError,
    LLMUnauthorizedError,
)
from askdocs.rag.chunker import TextChunker
from askdocs.rag.indexer import DocumentIndexer
from tests.unit.stubs import StubEmbedder

DOCUMENT = "Intro\n\nThe sky is blue.\n\nConclusion"


def make_indexer(store, retry_policy, embedder=None, **kwargs):
    return DocumentIndexer(
        embedder or StubEmbedder(),
        store=store,
        chunker=TextChunker(max_length=2048),
        retry_policy=retry_policy,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_index_document_persists_fragments_in_order(store, retry_policy):
    indexer = make_indexer(store, retry_policy)

    record = await indexer.index_document("sky.txt", DOCUMENT)

    assert [f.text for f in record.fragments] == ["Intro\n", "The sky is blue.\n", "Conclusion\n"]
    assert [f.embedding for f in record.fragments] == [[6.0, 1.0], [17.0, 1.0], [11.0, 1.0]]
    assert store.load_all() == [record]
    assert indexer.stats["fragments_created"] == 3
    assert indexer.stats["embeddings_generated"] == 3


@pytest.mark.asyncio
async def test_transient_failures_are_retried(store, retry_policy, sleep):
    embedder = StubEmbedder(failures=[LLMTransientError("busy"), LLMTransientError("busy")])
    indexer = make_indexer(store, retry_policy, embedder)

    record = await indexer.index_document("sky.txt", DOCUMENT)

    assert len(record.fragments) == 3
    assert sleep.delays == [1.0, 2.0]
    assert embedder.calls[:3] == ["Intro\n"] * 3


@pytest.mark.asyncio
async def test_exhausted_retries_keep_previous_record(store, retry_policy, sleep):
    indexer = make_indexer(store, retry_policy)
    previous = await indexer.index_document("sky.txt", "old content")

    indexer.embedder = StubEmbedder(failures=[LLMTransientError("down")] * 3)
    with pytest.raises(EmbeddingServiceTransientError):
        await indexer.index_document("sky.txt", DOCUMENT)

    assert store.load_all() == [previous]
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_rejected_credential_is_not_retried(store, retry_policy, sleep):
    embedder = StubEmbedder(failures=[LLMUnauthorizedError("bad key")])
    indexer = make_indexer(store, retry_policy, embedder)

    with pytest.raises(EmbeddingCredentialError):
        await indexer.index_document("sky.txt", DOCUMENT)

    assert embedder.calls == ["Intro\n"]
    assert sleep.delays == []
    assert store.load_all() == []


@pytest.mark.asyncio
async def test_empty_document_gets_empty_record(store, retry_policy):
    embedder = StubEmbedder()
    indexer = make_indexer(store, retry_policy, embedder)

    record = await indexer.index_document("empty.txt", "\n\n   \n")

    assert record.fragments == []
    assert embedder.calls == []
    assert store.load_all() == [record]


@pytest.mark.asyncio
async def test_reindexing_replaces_record(store, retry_policy):
    indexer = make_indexer(store, retry_policy)

    await indexer.index_document("doc.txt", "first version")
    await indexer.index_document("doc.txt", "second\n\nversion")

    (record,) = store.load_all()
    assert [f.text for f in record.fragments] == ["second\n", "version\n"]


@pytest.mark.asyncio
async def test_concurrent_embedding_preserves_order(store, retry_policy):
    text = "\n\n".join("x" * n for n in range(1, 11))
    indexer = make_indexer(store, retry_policy, concurrency=4)

    record = await indexer.index_document("many.txt", text)

    assert [f.embedding[0] for f in record.fragments] == [float(n + 1) for n in range(1, 11)]


@pytest.mark.asyncio
async def test_index_file_uses_file_name(tmp_path, store, retry_policy):
    path = tmp_path / "input" / "notes.txt"
    path.parent.mkdir()
    path.write_text(DOCUMENT, encoding="utf-8")
    indexer = make_indexer(store, retry_policy)

    record = await indexer.index_file(path)

    assert record.source_file_name == "notes.txt"
    assert store.path_for("notes.txt").exists()
    assert indexer.stats["files_processed"] == 1


def failing_on(marker):
    def embed(text):
        if marker in text:
            raise LLMTransientError("service down")
        return [1.0, 0.0]
    return embed


@pytest.mark.asyncio
async def test_index_directory_skips_failed_files(tmp_path, store, retry_policy):
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    (input_dir / "a.txt").write_text("alpha", encoding="utf-8")
    (input_dir / "b.txt").write_text("broken", encoding="utf-8")
    (input_dir / "c.txt").write_text("gamma", encoding="utf-8")
    (input_dir / "ignored.md").write_text("not text", encoding="utf-8")
    progress = []
    indexer = make_indexer(store, retry_policy, StubEmbedder(embed_fn=failing_on("broken")))

    stats = await indexer.index_directory(
        input_dir, progress_callback=lambda i, total, path: progress.append((i, total, path.name))
    )

    assert stats["files_processed"] == 2
    assert stats["files_failed"] == 1
    assert sorted(r.source_file_name for r in store.load_all()) == ["a.txt", "c.txt"]
    assert progress == [(1, 3, "a.txt"), (2, 3, "b.txt"), (3, 3, "c.txt")]


@pytest.mark.asyncio
async def test_index_directory_aborts_on_rejected_credential(tmp_path, store, retry_policy):
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    (input_dir / "a.txt").write_text("alpha", encoding="utf-8")
    (input_dir / "b.txt").write_text("beta", encoding="utf-8")
    embedder = StubEmbedder(failures=[LLMUnauthorizedError("bad key")])
    indexer = make_indexer(store, retry_policy, embedder)

    with pytest.raises(EmbeddingCredentialError):
        await indexer.index_directory(input_dir)

    assert embedder.calls == ["alpha\n"]
    assert store.load_all() == []


@pytest.mark.asyncio
async def test_index_directory_missing_dir(tmp_path, store, retry_policy):
    indexer = make_indexer(store, retry_policy)

    with pytest.raises(FileNotFoundError):
        await indexer.index_directory(tmp_path / "missing")


@pytest.mark.asyncio
async def test_index_directory_empty_dir(tmp_path, store, retry_policy):
    indexer = make_indexer(store, retry_policy)

    stats = await indexer.index_directory(tmp_path)

    assert stats["files_processed"] == 0
    assert store.load_all() == []


@pytest.mark.asyncio
async def test_remove_document(store, retry_policy):
    indexer = make_indexer(store, retry_policy)
    await indexer.index_document("gone.txt", "bye")

    assert indexer.remove_document("gone.txt") is True
    assert store.load_all() == []


class SlowEmbedder:
    """Fails at once on ``failing_text``; every other call waits and can be cancelled."""

    def __init__(self, failing_text, error):
        self.failing_text = failing_text
        self.error = error
        self.cancelled = []

    async def embed(self, text):
        if text == self.failing_text:
            raise self.error
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            self.cancelled.append(text)
            raise
        return [1.0, 0.0]


POOL_DOCUMENT = "first\n\nsecond\n\nbroken\n\nlast"


@pytest.mark.asyncio
async def test_pool_failure_cancels_remaining_calls(store, retry_policy, sleep):
    embedder = SlowEmbedder("broken\n", LLMTransientError("service down"))
    indexer = make_indexer(store, retry_policy, embedder, concurrency=4)

    with pytest.raises(EmbeddingServiceTransientError):
        await indexer.index_document("pool.txt", POOL_DOCUMENT)
    await asyncio.sleep(0.01)

    assert sorted(embedder.cancelled) == ["first\n", "last\n", "second\n"]
    assert sleep.delays == [1.0, 2.0]
    assert store.load_all() == []
    assert not store.path_for("pool.txt").exists()


@pytest.mark.asyncio
async def test_pool_rejected_credential(store, retry_policy, sleep):
    embedder = SlowEmbedder("broken\n", LLMUnauthorizedError("bad key"))
    indexer = make_indexer(store, retry_policy, embedder, concurrency=4)

    with pytest.raises(EmbeddingCredentialError):
        await indexer.index_document("pool.txt", POOL_DOCUMENT)
    await asyncio.sleep(0.01)

    assert sorted(embedder.cancelled) == ["first\n", "last\n", "second\n"]
    assert sleep.delays == []
    assert store.load_all() == []
