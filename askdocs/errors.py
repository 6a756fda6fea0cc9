"""Exception hierarchy for the question-answering pipeline.

Two layers:

- ``LLMError`` and its subclasses are raised by the model clients. They
  describe *what kind* of failure the remote service produced, so the
  retry helper can decide whether another attempt makes sense.
- ``AskDocsError`` and its subclasses are raised (or reported) by the
  indexer and the answerer. Callers only ever see these.
"""


class LLMError(Exception):
    """Base class for failures of the embedding/generation services."""


class LLMUnauthorizedError(LLMError):
    """The service rejected the credential. Retrying cannot help."""


class LLMTransientError(LLMError):
    """Network error, timeout, rate limit or server-side failure."""


class AskDocsError(Exception):
    """Base class for pipeline errors surfaced to callers."""


class InvalidCredentialError(AskDocsError):
    """The configured API credential is missing or invalid."""


class TransientServiceError(AskDocsError):
    """The model service stayed unavailable after all retries."""


class CorpusReadError(AskDocsError):
    """The vector store could not be read for the current query."""


class DimensionMismatchError(AskDocsError, ValueError):
    """Vectors of different dimensionality were compared."""


class EmbeddingServiceError(AskDocsError):
    """Indexing failed because the embedding service failed."""


class EmbeddingCredentialError(EmbeddingServiceError, InvalidCredentialError):
    """The embedding service rejected the credential during indexing."""


class EmbeddingServiceTransientError(EmbeddingServiceError, TransientServiceError):
    """The embedding service stayed unavailable during indexing."""
