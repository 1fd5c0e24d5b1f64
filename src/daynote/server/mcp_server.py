"""MCP server implementation for the day journal."""

import atexit
import logging
import uuid
from datetime import date
from typing import Optional

from mcp.server.fastmcp import FastMCP

from daynote.app import JournalApp
from daynote.exceptions import DaynoteError
from daynote.models.schema import validate_day
from daynote.observability import metrics, timed_operation
from daynote.utils import clean_note_text, truncate_snippet

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 1_000_000  # 1 MB
MAX_QUERY_LENGTH = 2_000
MAX_SEARCH_LIMIT = 50


def _validate_input_lengths(
    text: Optional[str] = None, query: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if text and len(text) > MAX_TEXT_LENGTH:
        raise ValueError(f"Text exceeds maximum length of {MAX_TEXT_LENGTH} characters")
    if query and len(query) > MAX_QUERY_LENGTH:
        raise ValueError(
            f"Query exceeds maximum length of {MAX_QUERY_LENGTH} characters"
        )


class JournalMcpServer:
    """MCP server for the day journal."""

    def __init__(self, app: JournalApp):
        """Initialize the MCP server.

        Args:
            app: The journal application. Its ``startup()`` must have run.
        """
        self.app = app
        self.mcp = FastMCP(app.config.server_name)
        # Register shutdown hook for resource cleanup
        atexit.register(self._shutdown)
        self._register_tools()
        logger.info("Journal MCP server initialized")

    def _shutdown(self) -> None:
        """Clean up resources on server exit."""
        self.app.shutdown()

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        # Generate a unique error ID for traceability in logs
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, DaynoteError):
            # Structured domain errors - use the error code and message
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            # Log full detail but return generic ref to avoid leaking internals
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        else:
            # Unexpected errors - log with full stack trace but return generic message
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _current_text(self, day: str) -> str:
        """The day's newest text, including unsaved edits of the open day."""
        session = self.app.coordinator.session
        if session is not None and session.day == day:
            return session.latest_text
        note = self.app.note_store.get(day)
        return note.text if note is not None else ""

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="journal_get_note")
        def journal_get_note(day: str) -> str:
            """Retrieve the note for a calendar day.
            Args:
                day: ISO date (YYYY-MM-DD)
            """
            with timed_operation("journal_get_note", day=day) as op:
                try:
                    note = self.app.note_store.get(day)
                    op["found"] = note is not None
                    if note is None:
                        return f"No note for {day}"

                    result = f"# {note.day}\n"
                    result += f"ID: {note.id}\n"
                    result += f"Created: {note.created_at.isoformat()}\n"
                    result += f"Updated: {note.updated_at.isoformat()}\n"
                    result += f"\n{note.text}\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="journal_save_note")
        def journal_save_note(day: str, text: str) -> str:
            """Save the note for a calendar day, replacing its text.

            Goes through the same autosave path as the editor, so the note's
            embedding is refreshed in the background afterwards.
            Args:
                day: ISO date (YYYY-MM-DD)
                text: Full rich-text content of the note
            """
            with timed_operation("journal_save_note", day=day) as op:
                try:
                    _validate_input_lengths(text=text)
                    coordinator = self.app.coordinator
                    day = validate_day(day)
                    if coordinator.active_day != day:
                        coordinator.open(day)
                    coordinator.content_changed(text)
                    written = coordinator.force_save()
                    op["written"] = written
                    if not written:
                        return f"No changes to save for {day}"
                    return f"Note saved for {day}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="journal_delete_note")
        def journal_delete_note(day: str) -> str:
            """Delete the note for a calendar day, together with its embedding.
            Args:
                day: ISO date (YYYY-MM-DD)
            """
            with timed_operation("journal_delete_note", day=day) as op:
                try:
                    day = validate_day(day)
                    if self.app.coordinator.active_day == day:
                        self.app.coordinator.close()
                    deleted = self.app.note_store.delete(day)
                    op["deleted"] = deleted
                    if not deleted:
                        return f"No note for {day}"
                    return f"Note deleted for {day}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="journal_list_dates")
        def journal_list_dates() -> str:
            """List every day that has a non-empty note, oldest first."""
            with timed_operation("journal_list_dates") as op:
                try:
                    days = self.app.note_store.list_edited_dates()
                    op["result_count"] = len(days)
                    if not days:
                        return "No notes written yet."
                    return f"{len(days)} day(s) with notes:\n" + "\n".join(days)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="journal_find_similar")
        def journal_find_similar(query: str, limit: int = 5) -> str:
            """Find notes related in meaning to a query.
            Args:
                query: Natural-language description of what to look for
                limit: Maximum number of results (default: 5)
            """
            with timed_operation("journal_find_similar", limit=limit) as op:
                try:
                    _validate_input_lengths(query=query)
                    if not self.app.retrieval.is_available:
                        return "Semantic search is disabled: no OpenAI API key configured."
                    limit = max(1, min(limit, MAX_SEARCH_LIMIT))
                    hits = self.app.retrieval.find_similar(query, limit)
                    op["result_count"] = len(hits)
                    if not hits:
                        return f"No related notes found for: {query}"

                    result = f"Found {len(hits)} related note(s):\n\n"
                    for i, hit in enumerate(hits, 1):
                        snippet = truncate_snippet(
                            clean_note_text(hit.note.text), self.app.config.snippet_length
                        )
                        result += f"{i}. [{hit.note.day}] ({hit.relevance_percent}% relevant)\n"
                        result += f"   {snippet}\n\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="journal_ask")
        def journal_ask(question: str, day: Optional[str] = None) -> str:
            """Ask the assistant a question about the journal.
            Args:
                question: The question to ask
                day: Day whose note is the current context (default: the open day, else today)
            """
            with timed_operation("journal_ask") as op:
                try:
                    _validate_input_lengths(query=question)
                    if day is None:
                        day = self.app.coordinator.active_day or date.today().isoformat()
                    day = validate_day(day)
                    reply = self.app.chat_service.send_message(
                        question, self._current_text(day)
                    )
                    if reply is None:
                        return "Error: Question is empty"
                    op["error_turn"] = reply.is_error
                    return reply.content
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="journal_backfill_embeddings")
        def journal_backfill_embeddings() -> str:
            """Generate embeddings for every note that is missing one."""
            with timed_operation("journal_backfill_embeddings") as op:
                try:
                    if not self.app.embedding_index.is_available:
                        return "Embeddings are disabled: no OpenAI API key configured."
                    result = self.app.embedding_index.generate_missing_embeddings()
                    op.update(result.to_dict())
                    return (
                        f"Backfill complete: {result.processed} processed, "
                        f"{result.succeeded} succeeded, {result.failed} failed"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="journal_status")
        def journal_status() -> str:
            """Get journal status: note and embedding counts, features and metrics."""
            with timed_operation("journal_status"):
                try:
                    output = "# Journal Status\n\n"
                    output += f"**Version:** {self.app.config.server_version}\n"
                    total_notes = self.app.note_store.count_notes()
                    edited = len(self.app.note_store.list_edited_dates())
                    output += f"**Notes:** {total_notes} ({edited} with content)\n"

                    if self.app.embedding_index.is_available:
                        emb_count = self.app.embedding_repository.count()
                        output += f"**Embedded:** {emb_count}/{edited} notes\n"
                        output += f"**Embedding Model:** {self.app.embedding_service.model_name}\n"
                    else:
                        output += "**Semantic Search:** disabled (no API key)\n"
                    output += (
                        "**Chat:** "
                        f"{'enabled' if self.app.chat_service.is_configured else 'disabled (no API key)'}\n"
                    )

                    session = self.app.coordinator.session
                    if session is not None:
                        output += f"**Editing:** {session.day} ({session.state.value})\n"
                    output += "\n"

                    summary = metrics.get_summary()
                    output += "## Server Metrics\n"
                    output += f"**Uptime:** {summary['uptime_seconds']:.0f} seconds\n"
                    output += f"**Operations:** {summary['total_operations']}\n"
                    output += (
                        f"**Success Rate:** {summary['overall_success_rate']:.1%}\n"
                    )
                    output += f"**Errors:** {summary['total_errors']}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
