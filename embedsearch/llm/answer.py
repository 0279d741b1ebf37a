"""
EmbedSearch Answer Generation

All chat-completion calls happen here and only here.

Flow (compose):
  1. Order snippets best-first (score desc, id asc)
  2. Build the prompt; while it exceeds ANSWER_MAX_PROMPT_CHARS drop the
     lowest-ranked snippet
  3. Call the chat model and return its text

Every failure is raised as a ModelError (ModelUnavailable / ModelTimeout)
so the query layer can degrade to "matches without answer".
"""

import time
from collections.abc import Sequence
from typing import Optional

import structlog
from openai import AsyncOpenAI, OpenAIError

from embedsearch.errors import ModelError, ModelUnavailable
from embedsearch.llm.providers import get_llm_client, translate_openai_error
from embedsearch.search.search import SearchResult

log = structlog.get_logger(__name__)


ANSWER_SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions using only the "
    "numbered context passages provided by the user. Cite passages by their "
    "number in square brackets. If the passages do not contain the answer, "
    "say that you do not know. Keep the answer under five sentences."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a friendly summarization assistant. Take the input text and "
    "return a summary in three sentences. Keep your response concise."
)


def _format_context(snippets: Sequence[SearchResult]) -> str:
    return "\n\n".join(
        f"[{i}] (id={s.chunk_id}, score={s.score:.3f})\n{s.text}"
        for i, s in enumerate(snippets, start=1)
    )


def _build_user_message(query: str, snippets: Sequence[SearchResult]) -> str:
    if not snippets:
        return f"Question: {query}\n\nContext: (no passages available)"
    return f"Question: {query}\n\nContext:\n{_format_context(snippets)}"


def build_prompt(
    query: str,
    snippets: Sequence[SearchResult],
    max_chars: int,
) -> tuple[list[dict], list[SearchResult]]:
    """
    Build chat messages that fit within ``max_chars``.

    Snippets are dropped from the lowest-ranked end until the system and
    user messages together fit the budget. If none fit, the prompt carries
    the question alone.

    Returns:
        (messages, snippets actually included)
    """
    kept = sorted(snippets, key=lambda s: (-s.score, s.chunk_id))

    while True:
        user_msg = _build_user_message(query, kept)
        if len(ANSWER_SYSTEM_PROMPT) + len(user_msg) <= max_chars or not kept:
            break
        kept.pop()

    messages = [
        {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
        {"role": "user", "content": user_msg},
    ]
    return messages, kept


class AnswerGenerator:
    """
    Synthesizes answers (and ingestion summaries) with a chat model.

    Args:
        settings: Application settings (provider, model, budget, timeout).
        client: Pre-built client; created lazily from settings when omitted.
    """

    def __init__(self, settings, client: Optional[AsyncOpenAI] = None):
        self.model = settings.ANSWER_LLM_MODEL
        self.max_prompt_chars = settings.ANSWER_MAX_PROMPT_CHARS
        self._settings = settings
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = get_llm_client(
                    self._settings.ANSWER_LLM_PROVIDER,
                    self._settings,
                    timeout=self._settings.ANSWER_TIMEOUT_SECONDS,
                )
            except ValueError as exc:
                raise ModelUnavailable(f"answer model not configured: {exc}") from exc
        return self._client

    async def aclose(self) -> None:
        """Release the underlying HTTP client, if one was created."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _complete(self, messages: list[dict], what: str) -> str:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self._settings.ANSWER_LLM_TEMPERATURE,
                max_tokens=self._settings.ANSWER_LLM_MAX_TOKENS,
            )
        except OpenAIError as exc:
            error = translate_openai_error(exc, what)
            if not isinstance(error, ModelError):
                error = ModelUnavailable(error.message)
            log.warning("llm_call_failed", model=self.model, purpose=what, error=str(exc))
            raise error from exc

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            raise ModelUnavailable(f"{what} model returned an empty completion")
        return content

    async def compose(self, query: str, snippets: Sequence[SearchResult]) -> str:
        """
        Answer ``query`` from the ranked ``snippets``.

        Raises:
            ModelUnavailable / ModelTimeout: The generation service failed.
        """
        start_time = time.time()
        messages, used = build_prompt(query, snippets, self.max_prompt_chars)
        if len(used) < len(snippets):
            log.info("answer_prompt_trimmed", kept=len(used), dropped=len(snippets) - len(used))

        answer = await self._complete(messages, "answer generation")

        log.info(
            "answer_generated",
            model=self.model,
            snippet_count=len(used),
            answer_chars=len(answer),
            elapsed_seconds=round(time.time() - start_time, 3),
        )
        return answer

    async def summarize(self, text: str) -> str:
        """Three-sentence summary of ``text``, used when INGEST_SUMMARIZE is on."""
        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": f"Please summarize the following text:\n\n{text}"},
        ]
        return await self._complete(messages, "summarization")
