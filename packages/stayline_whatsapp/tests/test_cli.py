"""
Tests for the admin CLI against a throwaway SQLite file.
"""

import pytest
from typer.testing import CliRunner

from stayline_core import db as core_db
from stayline_core.settings import get_settings
from stayline_whatsapp.cli.main import app
from stayline_whatsapp.persistence.repo import WhatsAppRepository

runner = CliRunner()


def _clear_caches():
    get_settings.cache_clear()
    core_db.get_engine.cache_clear()
    core_db.get_sessionmaker.cache_clear()


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("WHATSAPP_ENCRYPTION_KEY", "")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    _clear_caches()
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0, result.output
    yield
    core_db.get_engine().dispose()
    _clear_caches()


def _repo_session():
    return core_db.get_sessionmaker()()


class TestAdminCommands:
    """Provisioning through the CLI."""

    def test_register_and_link(self, cli_db):
        result = runner.invoke(
            app,
            ["register-account", "host-1", "106540352242922", "+15550001111", "--waba-id", "waba-1",
             "--access-token", "tok"],
        )
        assert result.exit_code == 0, result.output
        assert "Account registered" in result.output

        result = runner.invoke(
            app,
            ["link-property", "106540352242922", "15551234567", "--name", "Sunny Downtown Loft",
             "--wifi-password", "Welcome2024!", "--no-auto-respond"],
        )
        assert result.exit_code == 0, result.output

        session = _repo_session()
        try:
            repo = WhatsAppRepository(session)
            account = repo.find_account_by_phone_number_id("106540352242922")
            assert account.access_token == "tok"
            info = repo.find_property_link(account.user_id, account.id, "15551234567")
            assert info.property_name == "Sunny Downtown Loft"
            assert info.property_details["wifi_password"] == "Welcome2024!"
            assert info.auto_respond_enabled is False
        finally:
            session.close()

        result = runner.invoke(app, ["set-auto-respond", "106540352242922", "15551234567", "--on"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["unlink-property", "106540352242922", "15551234567", "--force"])
        assert result.exit_code == 0, result.output
        assert "Unlinked 1" in result.output

    def test_duplicate_account_rejected(self, cli_db):
        args = ["register-account", "host-1", "106540352242922", "+15550001111", "--waba-id", "waba-1"]
        assert runner.invoke(app, args).exit_code == 0

        result = runner.invoke(app, args)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_unknown_account(self, cli_db):
        result = runner.invoke(app, ["link-property", "000", "15551234567", "--name", "Loft"])

        assert result.exit_code == 1

    def test_set_auto_respond_without_link(self, cli_db):
        runner.invoke(app, ["register-account", "host-1", "106540352242922", "+15550001111", "--waba-id", "waba-1"])

        result = runner.invoke(app, ["set-auto-respond", "106540352242922", "15551234567", "--off"])

        assert result.exit_code == 1

    def test_list_conversations_empty(self, cli_db):
        result = runner.invoke(app, ["list-conversations"])

        assert result.exit_code == 0
        assert "No conversations found" in result.output
