"""Chat over the journal, grounded in the user's own notes."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from daynote.config import config
from daynote.exceptions import DaynoteError, ErrorCode
from daynote.models.schema import ChatMessage, ChatRole
from daynote.observability import timed_operation
from daynote.services.search_service import SemanticRetrievalService, SimilarNote
from daynote.utils import clean_note_text, truncate_snippet

if TYPE_CHECKING:
    from daynote.services.provider_types import ChatProvider

logger = logging.getLogger(__name__)

ERROR_REPLY = "Sorry, I encountered an error. Please try again."
DISABLED_REPLY = (
    "The assistant is not available because no OpenAI API key is configured."
)
NO_CONTENT_PLACEHOLDER = "No content for today yet."

SYSTEM_PROMPT_TEMPLATE = """You are a helpful AI assistant that answers questions about the user's notes.

Current note content for today:
{current_note}
{related_section}
Please help the user understand, analyze, or get insights about their notes. Be concise and helpful."""

RELATED_SECTION_TEMPLATE = """
Related notes from other days:
{snippets}
"""

# Queries mentioning any of these reach beyond the current day
_SEARCH_TRIGGER_TERMS = (
    # recall
    "remember", "recall", "write", "wrote", "written", "mentioned", "said",
    "noted",
    # search
    "find", "search", "look for", "any notes", "other notes", "related",
    "similar", "where did",
    # compare
    "compare", "comparison", "difference", "pattern", "trend", "often",
    "usually", "always", "again",
    # time references
    "yesterday", "last week", "last month", "last year", "before",
    "previous", "previously", "earlier", "ago", "past", "history",
    "when did", "since",
)
_TRIGGER_RE = re.compile(
    r"\b(" + "|".join(re.escape(term) for term in _SEARCH_TRIGGER_TERMS) + r")\b",
    re.IGNORECASE,
)


@dataclass
class ChatContext:
    """Grounding material assembled for one assistant turn."""

    current_note_text: str
    related: List[SimilarNote] = field(default_factory=list)
    used_search: bool = False
    snippet_length: int = 200

    def format_snippets(self) -> List[str]:
        """One ``[YYYY-MM-DD] (NN% relevant) snippet`` line per related note."""
        return [
            f"[{hit.note.day}] ({hit.relevance_percent}% relevant) "
            f"{truncate_snippet(clean_note_text(hit.note.text), self.snippet_length)}"
            for hit in self.related
        ]

    def system_prompt(self) -> str:
        current = clean_note_text(self.current_note_text) or NO_CONTENT_PLACEHOLDER
        related_section = ""
        if self.related:
            related_section = RELATED_SECTION_TEMPLATE.format(
                snippets="\n".join(self.format_snippets())
            )
        return SYSTEM_PROMPT_TEMPLATE.format(
            current_note=current, related_section=related_section
        )


class ChatContextBuilder:
    """Decides whether a question needs the wider journal, and gathers it.

    Args:
        retrieval: Semantic retrieval over stored notes.
        context_limit: Maximum related notes. Defaults to
            ``config.chat_context_limit``.
        snippet_length: Characters kept per related note. Defaults to
            ``config.snippet_length``.
    """

    def __init__(
        self,
        retrieval: SemanticRetrievalService,
        context_limit: Optional[int] = None,
        snippet_length: Optional[int] = None,
    ) -> None:
        self.retrieval = retrieval
        self.context_limit = (
            config.chat_context_limit if context_limit is None else context_limit
        )
        self.snippet_length = (
            config.snippet_length if snippet_length is None else snippet_length
        )

    @staticmethod
    def needs_corpus_search(query: str) -> bool:
        """Whether the query refers to recall, search, comparison or time."""
        return bool(query and _TRIGGER_RE.search(query))

    def build(self, query: str, current_note_text: str = "") -> ChatContext:
        """Assemble the context for ``query``.

        Retrieval failures are logged and the context falls back to the
        current day's note alone.
        """
        context = ChatContext(
            current_note_text=current_note_text or "",
            snippet_length=self.snippet_length,
        )
        if not self.needs_corpus_search(query) or not self.retrieval.is_available:
            return context

        context.used_search = True
        try:
            context.related = self.retrieval.find_similar(query, self.context_limit)
        except DaynoteError as e:
            logger.warning(f"Retrieval for chat context failed, using current day only: {e}")
        logger.debug(f"Chat context: {len(context.related)} related notes")
        return context


class ChatService:
    """Keeps a chat history and exchanges turns with the provider.

    Args:
        context_builder: Builds the grounding context for each turn.
        provider: Chat-completion provider, or None when unconfigured.
    """

    def __init__(
        self,
        context_builder: ChatContextBuilder,
        provider: Optional[ChatProvider] = None,
    ) -> None:
        self.context_builder = context_builder
        self._provider = provider
        self._lock = threading.Lock()
        self._messages: List[ChatMessage] = []
        self.last_error: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return self._provider is not None

    @property
    def messages(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages)

    def clear(self) -> None:
        """Reset the conversation."""
        with self._lock:
            self._messages.clear()
            self.last_error = None

    def _provider_history(self) -> List[Dict[str, str]]:
        """Prior successful exchanges.

        An error turn is dropped together with the user turn it answered.
        """
        kept: List[ChatMessage] = []
        for message in self._messages:
            if message.is_error:
                if kept and kept[-1].role == ChatRole.USER:
                    kept.pop()
                continue
            kept.append(message)
        return [m.to_provider_dict() for m in kept]

    def _append_error(self, content: str, error: str) -> ChatMessage:
        reply = ChatMessage(role=ChatRole.ASSISTANT, content=content, is_error=True)
        self._messages.append(reply)
        self.last_error = error
        return reply

    def send_message(self, content: str, current_note_text: str = "") -> Optional[ChatMessage]:
        """Send one user turn and return the assistant's reply.

        A provider failure does not raise: it yields an assistant turn with
        ``is_error=True`` and sets ``last_error``, so the user gets visible
        feedback and can retry.

        Returns:
            The assistant turn, or None for a blank message.
        """
        content = (content or "").strip()
        if not content:
            return None

        with self._lock:
            self.last_error = None
            history = self._provider_history()
            self._messages.append(ChatMessage(role=ChatRole.USER, content=content))

            if self._provider is None:
                return self._append_error(DISABLED_REPLY, "Chat provider is not configured")

            with timed_operation("chat_turn", history=len(history)) as op:
                context = self.context_builder.build(content, current_note_text)
                op["related"] = len(context.related)
                messages = (
                    [{"role": ChatRole.SYSTEM.value, "content": context.system_prompt()}]
                    + history
                    + [{"role": ChatRole.USER.value, "content": content}]
                )
                try:
                    reply_text = self._provider.complete(messages)
                except DaynoteError as e:
                    logger.warning(f"Chat provider failed: {e}")
                    op["error_turn"] = True
                    return self._append_error(ERROR_REPLY, e.message)

                if not reply_text or not reply_text.strip():
                    logger.warning("Chat provider returned an empty reply")
                    op["error_turn"] = True
                    return self._append_error(
                        ERROR_REPLY, f"[{ErrorCode.CHAT_EMPTY_RESPONSE.name}] empty reply"
                    )

                reply = ChatMessage(role=ChatRole.ASSISTANT, content=reply_text.strip())
                self._messages.append(reply)
                return reply
