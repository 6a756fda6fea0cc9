"""Quart application: ask questions about the indexed documents and upload new ones."""
from pathlib import Path

import structlog
from quart import Quart, jsonify, render_template, request

from askdocs import config
from askdocs.errors import EmbeddingServiceError, LLMError, TransientServiceError
from askdocs.llm_client import create_llm_client
from askdocs.log_config import configure_logging
from askdocs.rag.answerer import QueryState, QuestionAnswerer, render_html
from askdocs.rag.indexer import DocumentIndexer
from askdocs.rag.watcher import InputWatcher

configure_logging()

logger = structlog.get_logger()

MAX_QUESTION_LENGTH = 2000


def create_app(
    client=None,
    answerer: QuestionAnswerer = None,
    indexer: DocumentIndexer = None,
    input_dir: Path = None,
) -> Quart:
    """Build the web application.

    Args:
        client: Embedding/generation client (built from config if not provided)
        answerer: Question answerer (built around ``client`` if not provided)
        indexer: Indexer for uploaded files (built around ``client`` if not provided)
        input_dir: Folder uploaded files are stored in (default from config)

    Returns:
        Configured Quart app
    """
    if client is None and (answerer is None or indexer is None):
        client = create_llm_client()
    answerer = answerer or QuestionAnswerer(embedder=client, generator=client)
    indexer = indexer or DocumentIndexer(embedder=client)
    input_dir = Path(input_dir or config.INPUT_DIR)

    app = Quart(
        __name__,
        template_folder=str(config.TEMPLATES_DIR),
    )
    watcher = InputWatcher(indexer, input_dir=input_dir) if config.WATCH_INPUT else None

    @app.before_serving
    async def startup():
        config.ensure_directories()
        if watcher:
            await watcher.start()

    @app.after_serving
    async def shutdown():
        if watcher:
            watcher.stop()

    async def index_upload(file_path: Path):
        """Index an uploaded file outside the request/response cycle."""
        try:
            await indexer.index_file(file_path)
            logger.info("upload_indexed", path=str(file_path))
        except (EmbeddingServiceError, OSError) as e:
            logger.error(
                "upload_indexing_failed",
                path=str(file_path),
                error=str(e),
                error_type=type(e).__name__,
            )

    @app.route("/")
    async def index():
        """Render the question page."""
        return await render_template(
            "index.html",
            static_version=config.STATIC_VERSION,
            assistant_name=config.ASSISTANT_NAME,
            max_upload_bytes=config.MAX_UPLOAD_BYTES,
        )

    @app.route("/api/query", methods=["POST"])
    async def query():
        """Answer a question.

        Accepts a JSON body ``{"query": "..."}`` or a form field ``query``.

        Returns JSON:
        {
            "state": "answered" | "no_match" | "failed",
            "answer": "HTML-escaped answer",   // answered only
            "message": "...",                  // no_match only
            "error": "..."                     // failed only
        }
        """
        data = await request.get_json(silent=True)
        if data is None:
            form = await request.form
            question = form.get("query", "")
        else:
            question = data.get("query", "") if isinstance(data, dict) else ""

        question = (question or "").strip()
        if not question:
            return jsonify({"error": "Empty question asked."}), 400

        if len(question) > MAX_QUESTION_LENGTH:
            return jsonify(
                {"error": f"Question too long (max {MAX_QUESTION_LENGTH} characters)"}
            ), 400

        outcome = await answerer.answer(question)

        if outcome.state == QueryState.ANSWERED:
            return jsonify({"state": outcome.state.value, "answer": render_html(outcome.answer)})

        if outcome.state == QueryState.NO_MATCH:
            return jsonify({"state": outcome.state.value, "message": outcome.message})

        status_code = 503 if isinstance(outcome.error, TransientServiceError) else 500
        return jsonify({"state": outcome.state.value, "error": outcome.message}), status_code

    @app.route("/api/upload", methods=["POST"])
    async def upload():
        """Store an uploaded .txt file and index it in the background."""
        files = await request.files
        file = files.get("file")
        if file is None or not file.filename:
            return jsonify({"error": "No file uploaded."}), 400

        filename = Path(file.filename).name
        if Path(filename).suffix.lower() not in config.ALLOWED_UPLOAD_EXTENSIONS:
            return jsonify({"error": "Invalid file type. Please upload a .txt file."}), 400

        content = file.read()
        if len(content) > config.MAX_UPLOAD_BYTES:
            return jsonify({
                "error": "The uploaded file is too large. "
                f"Please upload a file smaller than {config.MAX_UPLOAD_BYTES // 1024} KB."
            }), 400

        input_dir.mkdir(parents=True, exist_ok=True)
        file_path = input_dir / filename
        file_path.write_bytes(content)

        logger.info("file_uploaded", filename=filename, size=len(content))

        # A running watcher picks the new file up by itself
        if watcher is not None and watcher.is_alive():
            logger.info("upload_left_to_watcher", filename=filename)
        else:
            app.add_background_task(index_upload, file_path)

        return jsonify({"message": f"File {filename} uploaded."})

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check the model service is reachable."""
        checks = {"status": "healthy", "llm": False}

        list_models = getattr(answerer.generator, "list_models", None)
        if list_models is None:
            checks["llm"] = True
            return jsonify(checks), 200

        try:
            await list_models()
            checks["llm"] = True
            return jsonify(checks), 200
        except LLMError as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)
            return jsonify(checks), 503

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
