"""Tests for the Quart application, with the pipeline stubbed out."""
import asyncio
from io import BytesIO

import pytest
from werkzeug.datastructures import FileStorage

from askdocs import config
from askdocs.errors import (
    CorpusReadError,
    EmbeddingServiceTransientError,
    InvalidCredentialError,
    LLMTransientError,
    TransientServiceError,
)
from askdocs.main import create_app
from askdocs.rag.answerer import AnswerOutcome, QueryState, failure_message


class StubAnswerer:
    """Returns a fixed outcome and records the questions."""

    def __init__(self, outcome=None, generator=None):
        self.outcome = outcome
        self.generator = generator
        self.questions = []

    async def answer(self, question):
        self.questions.append(question)
        if self.outcome is not None:
            return self.outcome
        return AnswerOutcome(
            state=QueryState.ANSWERED,
            question=question,
            message="Blue <b>sky</b>\nindeed.",
            answer="Blue <b>sky</b>\nindeed.",
        )


class StubIndexer:
    def __init__(self, error=None):
        self.error = error
        self.indexed = []

    async def index_file(self, file_path):
        self.indexed.append(file_path)
        if self.error:
            raise self.error


class ModelLister:
    def __init__(self, error=None):
        self.error = error

    async def list_models(self):
        if self.error:
            raise self.error
        return ["chat-model"]


def failed(error):
    return AnswerOutcome(
        state=QueryState.FAILED, question="q", message=failure_message(error), error=error
    )


@pytest.fixture(autouse=True)
def data_dirs(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DATA_DIR", tmp_path / "data")
    monkeypatch.setattr(config, "INPUT_DIR", tmp_path / "input")
    monkeypatch.setattr(config, "EMBEDDINGS_DIR", tmp_path / "data" / "embeddings")
    monkeypatch.setattr(config, "WATCH_INPUT", False)


def make_app(tmp_path, answerer=None, indexer=None):
    return create_app(
        answerer=answerer or StubAnswerer(),
        indexer=indexer or StubIndexer(),
        input_dir=tmp_path / "input",
    )


def upload_file(name, content):
    return {"file": FileStorage(BytesIO(content), filename=name)}


@pytest.mark.asyncio
async def test_index_page(tmp_path):
    client = make_app(tmp_path).test_client()

    response = await client.get("/")

    assert response.status_code == 200
    assert config.ASSISTANT_NAME in await response.get_data(as_text=True)


@pytest.mark.asyncio
async def test_query_answer_is_escaped_html(tmp_path):
    answerer = StubAnswerer()
    client = make_app(tmp_path, answerer=answerer).test_client()

    response = await client.post("/api/query", json={"query": "  What colour is the sky?  "})

    assert response.status_code == 200
    assert await response.get_json() == {
        "state": "answered",
        "answer": "Blue &lt;b&gt;sky&lt;/b&gt;<br />indeed.",
    }
    assert answerer.questions == ["What colour is the sky?"]


@pytest.mark.asyncio
async def test_query_from_form_field(tmp_path):
    answerer = StubAnswerer()
    client = make_app(tmp_path, answerer=answerer).test_client()

    response = await client.post("/api/query", form={"query": "Why?"})

    assert response.status_code == 200
    assert answerer.questions == ["Why?"]


@pytest.mark.asyncio
async def test_query_no_match(tmp_path):
    outcome = AnswerOutcome(state=QueryState.NO_MATCH, question="q", message="No good matches found.")
    client = make_app(tmp_path, answerer=StubAnswerer(outcome)).test_client()

    response = await client.post("/api/query", json={"query": "q"})

    assert response.status_code == 200
    assert await response.get_json() == {"state": "no_match", "message": "No good matches found."}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, status_code",
    [
        (TransientServiceError("down"), 503),
        (InvalidCredentialError("401"), 500),
        (CorpusReadError("unreadable"), 500),
    ],
)
async def test_query_failures(tmp_path, error, status_code):
    client = make_app(tmp_path, answerer=StubAnswerer(failed(error))).test_client()

    response = await client.post("/api/query", json={"query": "q"})

    assert response.status_code == status_code
    data = await response.get_json()
    assert data == {"state": "failed", "error": failure_message(error)}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"query": ""}, {"query": "   "}, {}, ["not", "a", "dict"]])
async def test_empty_query_is_rejected(tmp_path, body):
    answerer = StubAnswerer()
    client = make_app(tmp_path, answerer=answerer).test_client()

    response = await client.post("/api/query", json=body)

    assert response.status_code == 400
    assert answerer.questions == []


@pytest.mark.asyncio
async def test_overlong_query_is_rejected(tmp_path):
    client = make_app(tmp_path).test_client()

    response = await client.post("/api/query", json={"query": "x" * 2001})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_upload_is_saved_and_indexed(tmp_path):
    indexer = StubIndexer()
    app = make_app(tmp_path, indexer=indexer)

    async with app.test_app() as test_app:
        response = await test_app.test_client().post(
            "/api/upload", files=upload_file("notes.txt", b"The sky is blue.")
        )
        assert response.status_code == 200
        assert await response.get_json() == {"message": "File notes.txt uploaded."}

    # Background tasks are awaited when the app shuts down
    saved = tmp_path / "input" / "notes.txt"
    assert saved.read_bytes() == b"The sky is blue."
    assert indexer.indexed == [saved]


@pytest.mark.asyncio
async def test_upload_indexing_failure_is_logged_not_raised(tmp_path):
    indexer = StubIndexer(error=EmbeddingServiceTransientError("down"))
    app = make_app(tmp_path, indexer=indexer)

    async with app.test_app() as test_app:
        response = await test_app.test_client().post(
            "/api/upload", files=upload_file("notes.txt", b"text")
        )
        assert response.status_code == 200

    assert len(indexer.indexed) == 1


@pytest.mark.asyncio
async def test_upload_strips_directories_from_name(tmp_path):
    app = make_app(tmp_path)

    async with app.test_app() as test_app:
        await test_app.test_client().post(
            "/api/upload", files=upload_file("../../evil.txt", b"text")
        )

    assert (tmp_path / "input" / "evil.txt").exists()
    assert not (tmp_path / "evil.txt").exists()


@pytest.mark.asyncio
async def test_upload_rejects_other_file_types(tmp_path):
    indexer = StubIndexer()
    client = make_app(tmp_path, indexer=indexer).test_client()

    response = await client.post("/api/upload", files=upload_file("notes.pdf", b"%PDF"))

    assert response.status_code == 400
    assert indexer.indexed == []
    assert not (tmp_path / "input" / "notes.pdf").exists()


@pytest.mark.asyncio
async def test_upload_rejects_large_files(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 10)
    client = make_app(tmp_path).test_client()

    response = await client.post("/api/upload", files=upload_file("big.txt", b"x" * 11))

    assert response.status_code == 400
    assert "too large" in (await response.get_json())["error"]


@pytest.mark.asyncio
async def test_upload_without_file(tmp_path):
    client = make_app(tmp_path).test_client()

    response = await client.post("/api/upload", form={"other": "value"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_health_ready(tmp_path):
    client = make_app(tmp_path, answerer=StubAnswerer(generator=ModelLister())).test_client()

    response = await client.get("/health/ready")

    assert response.status_code == 200
    assert (await response.get_json())["llm"] is True


@pytest.mark.asyncio
async def test_health_ready_service_down(tmp_path):
    answerer = StubAnswerer(generator=ModelLister(error=LLMTransientError("unreachable")))
    client = make_app(tmp_path, answerer=answerer).test_client()

    response = await client.get("/health/ready")

    assert response.status_code == 503
    assert (await response.get_json())["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_health_live_and_not_found(tmp_path):
    client = make_app(tmp_path).test_client()

    assert (await client.get("/health/live")).status_code == 200
    response = await client.get("/nope")
    assert response.status_code == 404
    assert await response.get_json() == {"error": "Not found"}


@pytest.mark.asyncio
async def test_upload_indexed_once_when_watching(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "WATCH_INPUT", True)
    monkeypatch.setattr(config, "WATCH_DEBOUNCE_SECONDS", 0.1)
    indexer = StubIndexer()
    app = make_app(tmp_path, indexer=indexer)

    async with app.test_app() as test_app:
        response = await test_app.test_client().post(
            "/api/upload", files=upload_file("notes.txt", b"The sky is blue.")
        )
        assert response.status_code == 200
        for _ in range(50):
            if indexer.indexed:
                break
            await asyncio.sleep(0.05)
        await asyncio.sleep(0.3)

    assert indexer.indexed == [tmp_path / "input" / "notes.txt"]
