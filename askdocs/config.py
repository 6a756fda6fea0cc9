"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
INPUT_DIR = Path(os.getenv("INPUT_DIR", str(BASE_DIR / "input")))
EMBEDDINGS_DIR = Path(os.getenv("EMBEDDINGS_DIR", str(DATA_DIR / "embeddings")))
AUDIT_LOG_PATH = Path(os.getenv("AUDIT_LOG_PATH", str(DATA_DIR / "askdocs.log")))
TEMPLATES_DIR = BASE_DIR / "web" / "templates"

# LLM provider: "ollama" or "openai" (any OpenAI-compatible endpoint)
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "ollama")
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_API_KEY_FILE = Path(os.getenv("OPENAI_API_KEY_FILE", str(BASE_DIR / ".openai")))
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "mxbai-embed-large:latest")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60.0"))

# Chunking (characters)
MAX_FRAGMENT_LENGTH = int(os.getenv("MAX_FRAGMENT_LENGTH", "2048"))

# Retrieval
SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "0.75"))
MAX_CONTEXT_BYTES = int(os.getenv("MAX_CONTEXT_BYTES", "8192"))      # UTF-8 bytes

# Generation
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.1"))
MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", "512"))

# Retry (linear backoff: backoff * attempt)
RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
RETRY_BACKOFF_SECONDS = float(os.getenv("RETRY_BACKOFF_SECONDS", "1.0"))

# Indexing
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "1"))
WATCH_INPUT = os.getenv("WATCH_INPUT", "false").lower() in ("1", "true", "yes")
WATCH_DEBOUNCE_SECONDS = float(os.getenv("WATCH_DEBOUNCE_SECONDS", "2.0"))

# Uploads
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(1024 * 1024)))
ALLOWED_UPLOAD_EXTENSIONS = (".txt",)

# UI & assets
STATIC_VERSION = os.getenv("STATIC_VERSION", "1.0.0")
ASSISTANT_NAME = os.getenv("ASSISTANT_NAME", "Ask Docs")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")  # "json" or "console"


def ensure_directories() -> None:
    """Create the data, input and embeddings folders if missing."""
    for directory in (DATA_DIR, INPUT_DIR, EMBEDDINGS_DIR):
        directory.mkdir(parents=True, exist_ok=True)
