"""Shared fixtures for unit tests."""
import pytest

from askdocs.audit import AuditLog
from askdocs.rag.chunker import TextChunker
from askdocs.rag.store import VectorStore
from askdocs.retry import RetryPolicy
from tests.unit.stubs import RecordingSleep


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def retry_policy(sleep):
    return RetryPolicy(max_attempts=3, backoff_seconds=1.0, sleep=sleep)


@pytest.fixture
def store(tmp_path):
    return VectorStore(tmp_path / "embeddings")


@pytest.fixture
def audit_log(tmp_path):
    return AuditLog(tmp_path / "askdocs.log")


@pytest.fixture
def chunker():
    return TextChunker(max_length=2048)
