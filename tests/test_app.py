"""Tests for JournalApp wiring and the command line entry point."""
from unittest.mock import MagicMock, patch

import pytest

from daynote.app import JournalApp
from daynote.exceptions import StorageInitError
from daynote.main import main, parse_args
from daynote.services.openai_providers import OpenAIChatProvider, OpenAIEmbeddingProvider
from daynote.storage.note_store import NoteStore
from tests.fakes import FakeChatProvider, FakeEmbeddingProvider


class TestProviderSelection:
    """Providers follow the configured credential."""

    def test_no_credential_disables_both(self, test_config, db_url):
        app = JournalApp(test_config, database_url=db_url)
        assert app.is_configured is False
        assert app.embedding_index.is_available is False
        assert app.chat_service.is_configured is False

    def test_credential_builds_openai_providers(self, test_config, db_url, monkeypatch):
        monkeypatch.setattr(test_config, "openai_api_key", "sk-test")
        with patch("daynote.services.openai_providers.OpenAI"):
            app = JournalApp(test_config, database_url=db_url)
        assert app.is_configured is True
        assert isinstance(app.embedding_service._provider, OpenAIEmbeddingProvider)
        assert isinstance(app.chat_service._provider, OpenAIChatProvider)
        assert app.chat_service._provider.max_tokens == test_config.chat_max_tokens

    def test_explicit_none_overrides_credential(self, test_config, db_url, monkeypatch):
        monkeypatch.setattr(test_config, "openai_api_key", "sk-test")
        app = JournalApp(
            test_config, database_url=db_url, embedding_provider=None, chat_provider=None
        )
        assert app.is_configured is False


class TestLifecycle:
    """Tests for startup and shutdown."""

    def test_startup_backfills_in_background(self, test_config, db_url):
        embedder = FakeEmbeddingProvider()
        app = JournalApp(
            test_config,
            database_url=db_url,
            embedding_provider=embedder,
            chat_provider=FakeChatProvider(),
        )
        app.note_store.initialize()
        app.note_store.upsert("2025-01-01", "<p>written before embeddings existed</p>")

        app.startup(backfill=True)
        app._backfill_thread.join(timeout=5)

        assert app.embedding_repository.count() == 1
        app.shutdown()

    def test_startup_without_backfill(self, test_config, db_url):
        app = JournalApp(test_config, database_url=db_url, embedding_provider=FakeEmbeddingProvider())
        app.startup()
        assert app._backfill_thread is None
        app.shutdown()

    def test_shutdown_flushes_pending_edit(self, test_config, db_url, monkeypatch):
        monkeypatch.setattr(test_config, "debounce_seconds", 60.0)
        app = JournalApp(test_config, database_url=db_url, embedding_provider=FakeEmbeddingProvider())
        app.startup()
        app.coordinator.open("2025-01-01")
        app.coordinator.content_changed("<p>typed just before quitting</p>")

        app.shutdown()

        store = NoteStore(database_url=db_url)
        store.initialize()
        assert store.get("2025-01-01").text == "<p>typed just before quitting</p>"
        store.shutdown()

    def test_startup_failure_raises(self, test_config, tmp_path):
        # A directory cannot be opened as a database file
        app = JournalApp(test_config, database_url=f"sqlite:///{tmp_path}")
        with pytest.raises(StorageInitError):
            app.startup()


class TestMain:
    """Tests for the command line entry point."""

    def test_parse_args(self):
        args = parse_args(["--database-path", "/tmp/j.db", "--log-level", "DEBUG", "--no-backfill"])
        assert args.database_path == "/tmp/j.db"
        assert args.log_level == "DEBUG"
        assert args.no_backfill is True

    def test_storage_init_failure_exits(self, test_config, tmp_path):
        failing_app = MagicMock()
        failing_app.startup.side_effect = StorageInitError("cannot open database")
        with patch("daynote.main.configure_logging", return_value=tmp_path), \
                patch("daynote.main.JournalApp", return_value=failing_app), \
                patch("daynote.main.JournalMcpServer") as server_cls:
            with pytest.raises(SystemExit) as exc_info:
                main(["--log-dir", str(tmp_path / "logs")])
        assert exc_info.value.code == 1
        server_cls.assert_not_called()

    def test_runs_server(self, test_config, tmp_path):
        with patch("daynote.main.configure_logging", return_value=tmp_path), \
                patch("daynote.main.JournalApp") as app_cls, \
                patch("daynote.main.JournalMcpServer") as server_cls:
            main(["--log-dir", str(tmp_path / "logs"), "--no-backfill"])
        app_cls.return_value.startup.assert_called_once()
        server_cls.assert_called_once_with(app_cls.return_value)
        server_cls.return_value.run.assert_called_once()
        assert test_config.backfill_on_startup is False
