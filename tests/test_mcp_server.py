# tests/test_mcp_server.py
"""Tests for the MCP server implementation."""
from unittest.mock import MagicMock, patch

import pytest

from daynote.app import JournalApp
from daynote.exceptions import StorageWriteError
from daynote.server.mcp_server import MAX_QUERY_LENGTH, JournalMcpServer
from tests.fakes import FakeChatProvider, FakeEmbeddingProvider, chat_outage


class TestMcpServer:
    """Tests for the JournalMcpServer class."""

    @pytest.fixture(autouse=True)
    def server(self, test_config, db_url):
        """Build a server on a real journal with fake providers."""
        # Capture the tool decorator functions when registering
        self.registered_tools = {}

        # Create a mock for FastMCP
        self.mock_mcp = MagicMock()

        # Mock the tool decorator to capture registered functions BEFORE server creation
        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        self.embedder = FakeEmbeddingProvider()
        self.chat = FakeChatProvider(replies=["You wrote about the standup."])
        self.app = JournalApp(
            test_config,
            database_url=db_url,
            embedding_provider=self.embedder,
            chat_provider=self.chat,
        )
        self.app.startup(backfill=False)

        self.mcp_patcher = patch(
            "daynote.server.mcp_server.FastMCP", return_value=self.mock_mcp
        )
        self.atexit_patcher = patch("daynote.server.mcp_server.atexit")
        self.mcp_patcher.start()
        self.atexit_patcher.start()

        # Create a server instance AFTER setting up the mocks
        self.server = JournalMcpServer(self.app)
        yield self.server

        self.mcp_patcher.stop()
        self.atexit_patcher.stop()
        self.app.shutdown()

    def save(self, day, text):
        result = self.registered_tools["journal_save_note"](day=day, text=text)
        assert self.app.coordinator.wait_for_background(timeout=5)
        return result

    def test_all_tools_registered(self):
        assert set(self.registered_tools) == {
            "journal_get_note",
            "journal_save_note",
            "journal_delete_note",
            "journal_list_dates",
            "journal_find_similar",
            "journal_ask",
            "journal_backfill_embeddings",
            "journal_status",
        }

    def test_save_and_get_note(self):
        assert self.save("2025-01-01", "<p>Standup at 10</p>") == "Note saved for 2025-01-01"

        result = self.registered_tools["journal_get_note"](day="2025-01-01")
        assert result.startswith("# 2025-01-01\n")
        assert "<p>Standup at 10</p>" in result
        # The save refreshed the embedding in the background
        assert self.app.embedding_repository.count() == 1

    def test_saving_same_text_twice(self):
        self.save("2025-01-01", "<p>Same</p>")
        assert self.save("2025-01-01", "<p>Same</p>") == "No changes to save for 2025-01-01"

    def test_save_switches_active_day(self):
        self.save("2025-01-01", "<p>one</p>")
        self.save("2025-01-02", "<p>two</p>")
        assert self.app.coordinator.active_day == "2025-01-02"
        assert self.app.note_store.get("2025-01-01").text == "<p>one</p>"

    def test_get_missing_note(self):
        assert self.registered_tools["journal_get_note"](day="2030-01-01") == "No note for 2030-01-01"

    def test_invalid_day_is_reported(self):
        result = self.registered_tools["journal_save_note"](day="01/02/2025", text="x")
        assert result.startswith("Error: Day must be an ISO date")

    def test_storage_failure_is_reported(self):
        with patch.object(
            self.app.note_store, "upsert", side_effect=StorageWriteError("Failed to save note")
        ):
            result = self.registered_tools["journal_save_note"](day="2025-01-01", text="x")
        assert result == "Error: Failed to save note"

    def test_unexpected_error_is_generic(self):
        with patch.object(self.app.note_store, "list_edited_dates", side_effect=RuntimeError("boom")):
            result = self.registered_tools["journal_list_dates"]()
        assert result.startswith("Error: An unexpected error occurred (ref: ")
        assert "boom" not in result

    def test_query_too_long(self):
        result = self.registered_tools["journal_find_similar"](query="x" * (MAX_QUERY_LENGTH + 1))
        assert result.startswith("Error: Invalid input (ref: ")

    def test_delete_note(self):
        self.save("2025-01-01", "<p>gone soon</p>")
        delete = self.registered_tools["journal_delete_note"]
        assert delete(day="2025-01-01") == "Note deleted for 2025-01-01"
        assert self.app.coordinator.active_day is None
        assert self.app.embedding_repository.count() == 0
        assert delete(day="2025-01-01") == "No note for 2025-01-01"

    def test_list_dates(self):
        list_dates = self.registered_tools["journal_list_dates"]
        assert list_dates() == "No notes written yet."
        self.save("2025-01-02", "<p>b</p>")
        self.save("2025-01-01", "<p>a</p>")
        assert list_dates() == "2 day(s) with notes:\n2025-01-01\n2025-01-02"

    def test_find_similar(self):
        self.save("2025-01-01", "<p>Notes about the meeting I had today</p>")
        self.save("2025-01-02", "<p>Bought groceries and cooked pasta</p>")

        result = self.registered_tools["journal_find_similar"](
            query="what did I write about the meeting", limit=5
        )
        assert result.startswith("Found 1 related note(s):")
        assert "[2025-01-01] (" in result
        assert "Notes about the meeting I had today" in result
        assert "2025-01-02" not in result

    def test_find_similar_without_matches(self):
        result = self.registered_tools["journal_find_similar"](query="volcanoes")
        assert result == "No related notes found for: volcanoes"

    def test_ask_uses_open_day_text(self):
        self.save("2025-01-01", "<p>Standup at 10</p>")
        # Unsaved edit of the open day is part of the context
        self.app.coordinator.content_changed("<p>Standup moved to 11</p>")

        reply = self.registered_tools["journal_ask"](question="Summarize this note")
        assert reply == "You wrote about the standup."
        system = self.chat.requests[0][0]["content"]
        assert "Standup moved to 11" in system

    def test_ask_for_another_day(self):
        self.save("2025-01-01", "<p>Quiet day</p>")
        self.registered_tools["journal_ask"](question="Summarize", day="2025-01-01")
        assert "Quiet day" in self.chat.requests[0][0]["content"]

    def test_ask_error_turn_returned(self):
        self.chat.error = chat_outage()
        reply = self.registered_tools["journal_ask"](question="hello", day="2025-01-01")
        assert reply == "Sorry, I encountered an error. Please try again."

    def test_backfill(self):
        self.app.note_store.upsert("2025-01-01", "<p>old entry</p>")
        self.app.note_store.upsert("2025-01-02", "<p></p>")
        result = self.registered_tools["journal_backfill_embeddings"]()
        assert result == "Backfill complete: 1 processed, 1 succeeded, 0 failed"

    def test_status(self):
        self.save("2025-01-01", "<p>hello</p>")
        result = self.registered_tools["journal_status"]()
        assert f"**Version:** {self.app.config.server_version}" in result
        assert "**Notes:** 1 (1 with content)" in result
        assert "**Embedded:** 1/1 notes" in result
        assert "**Chat:** enabled" in result
        assert "**Editing:** 2025-01-01 (idle)" in result


class TestMcpServerWithoutCredential:
    """Tools degrade when no provider is configured."""

    @pytest.fixture
    def tools(self, test_config, db_url):
        registered = {}
        mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                registered[kwargs.get("name")] = func
                return func
            return tool_wrapper
        mock_mcp.tool = mock_tool_decorator

        app = JournalApp(test_config, database_url=db_url)
        app.startup()
        with patch("daynote.server.mcp_server.FastMCP", return_value=mock_mcp), \
                patch("daynote.server.mcp_server.atexit"):
            JournalMcpServer(app)
        yield registered
        app.shutdown()

    def test_find_similar_disabled(self, tools):
        assert tools["journal_find_similar"](query="anything").startswith(
            "Semantic search is disabled"
        )

    def test_backfill_disabled(self, tools):
        assert tools["journal_backfill_embeddings"]().startswith("Embeddings are disabled")

    def test_ask_disabled(self, tools):
        from daynote.services.chat_service import DISABLED_REPLY

        assert tools["journal_ask"](question="hello", day="2025-01-01") == DISABLED_REPLY

    def test_status_reports_disabled_features(self, tools):
        result = tools["journal_status"]()
        assert "**Semantic Search:** disabled (no API key)" in result
        assert "**Chat:** disabled (no API key)" in result

    def test_saving_still_works(self, tools):
        assert tools["journal_save_note"](day="2025-01-01", text="<p>x</p>") == "Note saved for 2025-01-01"
