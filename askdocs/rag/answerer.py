"""Question answering over the indexed documents.

One call to ``QuestionAnswerer.answer`` walks this state machine:

    START -> EMBEDDING_QUERY -> RETRIEVING -> ASSEMBLING_CONTEXT -> NO_MATCH
                                                                 -> GENERATING_ANSWER -> ANSWERED

and any non-terminal state may end in FAILED. Every terminal state is
written to the audit log. Service failures never escape as exceptions;
they are reported on the returned ``AnswerOutcome``.
"""
import html
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from askdocs import config
from askdocs.audit import AuditLog
from askdocs.errors import (
    AskDocsError,
    CorpusReadError,
    DimensionMismatchError,
    InvalidCredentialError,
    LLMTransientError,
    LLMUnauthorizedError,
    TransientServiceError,
)
from askdocs.rag.context import assemble
from askdocs.rag.ranker import rank
from askdocs.rag.store import VectorStore
from askdocs.retry import RetryPolicy, call_with_retry

logger = structlog.get_logger()

NO_MATCH_MESSAGE = "No good matches found."
INVALID_CREDENTIAL_MESSAGE = (
    "The API key of the language model service is invalid. "
    "Please check the configured credential."
)
SERVICE_UNAVAILABLE_MESSAGE = (
    "An error occurred contacting the language model service. "
    "You may try again in a moment."
)
CORPUS_READ_MESSAGE = "An error occurred while reading the file data."


class QueryState(str, Enum):
    START = "start"
    EMBEDDING_QUERY = "embedding_query"
    RETRIEVING = "retrieving"
    ASSEMBLING_CONTEXT = "assembling_context"
    GENERATING_ANSWER = "generating_answer"
    NO_MATCH = "no_match"
    ANSWERED = "answered"
    FAILED = "failed"


@dataclass
class AnswerOutcome:
    """Terminal result of one question."""

    state: QueryState
    question: str
    message: str
    answer: Optional[str] = None
    context: str = ""
    error: Optional[AskDocsError] = None

    @property
    def ok(self) -> bool:
        """True unless the pipeline failed. NO_MATCH is a normal outcome."""
        return self.state != QueryState.FAILED


def build_prompt(question: str, context: str, assistant_name: str = None) -> str:
    """Instructions, then the retrieved context, then the question itself."""
    assistant_name = assistant_name or config.ASSISTANT_NAME
    return (
        f"You are a helpful assistant called '{assistant_name}'. "
        f"Answer using only the information provided below.\n\n"
        f"The following information is provided for context:\n\n"
        f"{context}\n"
        f"Given this information, can you please answer the following question:\n\n"
        f"\"{question}\"?"
    )


def render_html(answer: str) -> str:
    """Escape an answer for a web page, turning line breaks into <br />."""
    return (
        html.escape(answer)
        .replace("\r\n", "<br />")
        .replace("\n", "<br />")
    )


class QuestionAnswerer:
    """Retrieval-augmented answering of one question at a time."""

    def __init__(
        self,
        embedder,
        generator,
        store: VectorStore = None,
        audit_log: AuditLog = None,
        retry_policy: RetryPolicy = None,
        threshold: float = None,
        max_context_bytes: int = None,
        temperature: float = None,
        max_output_tokens: int = None,
    ):
        """Initialize the answerer.

        Args:
            embedder: Object with ``async embed(text) -> list[float]``
            generator: Object with ``async generate(prompt, temperature, max_output_tokens) -> str``
            store: Vector store to retrieve from (default store dir from config)
            audit_log: Question/answer log (default path from config)
            retry_policy: Retry policy for both service calls
            threshold: Minimum similarity for a fragment to enter the context
            max_context_bytes: Context byte budget
            temperature: Sampling temperature for generation
            max_output_tokens: Cap on generated tokens
        """
        self.embedder = embedder
        self.generator = generator
        self.store = store or VectorStore()
        self.audit_log = audit_log or AuditLog()
        self.retry_policy = retry_policy or RetryPolicy()
        self.threshold = config.SIMILARITY_THRESHOLD if threshold is None else threshold
        self.max_context_bytes = (
            config.MAX_CONTEXT_BYTES if max_context_bytes is None else max_context_bytes
        )
        self.temperature = (
            config.GENERATION_TEMPERATURE if temperature is None else temperature
        )
        self.max_output_tokens = (
            config.MAX_OUTPUT_TOKENS if max_output_tokens is None else max_output_tokens
        )

    async def answer(self, question: str) -> AnswerOutcome:
        """Answer a question from the indexed documents.

        Args:
            question: Non-empty question text

        Returns:
            AnswerOutcome in state ANSWERED, NO_MATCH or FAILED

        Raises:
            ValueError: If the question is empty
        """
        if not question or not question.strip():
            raise ValueError("Empty question asked.")

        state = QueryState.START
        logger.info("question_received", question_length=len(question))

        try:
            state = QueryState.EMBEDDING_QUERY
            query_vector = await call_with_retry(
                lambda: self.embedder.embed(question),
                self.retry_policy,
                operation_name="embed_query",
            )

            state = QueryState.RETRIEVING
            records = self.store.load_all()

            state = QueryState.ASSEMBLING_CONTEXT
            try:
                ranked = rank(query_vector, records)
            except DimensionMismatchError as e:
                raise CorpusReadError(str(e)) from e
            context = assemble(ranked, self.threshold, self.max_context_bytes)

            if not context.strip():
                return self._no_match(question, top_score=ranked[0].score if ranked else None)

            state = QueryState.GENERATING_ANSWER
            prompt = build_prompt(question, context)
            answer = await call_with_retry(
                lambda: self.generator.generate(
                    prompt, self.temperature, self.max_output_tokens
                ),
                self.retry_policy,
                operation_name="generate_answer",
            )
            answer = (answer or "").lstrip()
            if not answer:
                raise TransientServiceError("The model did not return an answer.")

        except LLMUnauthorizedError as e:
            return self._failed(question, state, InvalidCredentialError(str(e)))
        except LLMTransientError as e:
            return self._failed(question, state, TransientServiceError(str(e)))
        except (CorpusReadError, TransientServiceError) as e:
            return self._failed(question, state, e)

        self.audit_log.record_answer(question, answer)
        logger.info(
            "question_answered",
            answer_length=len(answer),
            context_bytes=len(context.encode("utf-8")),
        )
        return AnswerOutcome(
            state=QueryState.ANSWERED,
            question=question,
            message=answer,
            answer=answer,
            context=context,
        )

    def _no_match(self, question: str, top_score: Optional[float]) -> AnswerOutcome:
        self.audit_log.record_answer(question, NO_MATCH_MESSAGE)
        logger.info("no_good_match", top_score=top_score, threshold=self.threshold)
        return AnswerOutcome(
            state=QueryState.NO_MATCH,
            question=question,
            message=NO_MATCH_MESSAGE,
        )

    def _failed(
        self, question: str, state: QueryState, error: AskDocsError
    ) -> AnswerOutcome:
        self.audit_log.record_exception(question, error)
        logger.error(
            "question_failed",
            failed_in=state.value,
            error=str(error),
            error_type=type(error).__name__,
        )
        return AnswerOutcome(
            state=QueryState.FAILED,
            question=question,
            message=failure_message(error),
            error=error,
        )


def failure_message(error: AskDocsError) -> str:
    """User-facing message for a failed question."""
    if isinstance(error, InvalidCredentialError):
        return INVALID_CREDENTIAL_MESSAGE
    if isinstance(error, CorpusReadError):
        return CORPUS_READ_MESSAGE
    return SERVICE_UNAVAILABLE_MESSAGE
