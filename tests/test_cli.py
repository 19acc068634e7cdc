from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from savemychat import cli as cli_module
from savemychat.cli import app
from savemychat.client import ApiError
from savemychat.store import ChatStore

runner = CliRunner()


def _write_backup(path: Path) -> Path:
    path.write_text(
        json.dumps(
            {
                "version": "1.0",
                "exported_at": "2024-05-01T12:00:00Z",
                "collections": [{"id": 1, "name": "Work"}],
                "conversations": [
                    {
                        "canonical_url": "https://claude.ai/chat/1",
                        "source": "claude",
                        "title": "Parsing [brackets]",
                        "content": "c",
                        "tags": ["parser"],
                        "collection_id": 1,
                    }
                ],
                "snippets": [{"title": "s", "content": "c"}],
                "settings": {"storageMode": "local"},
            }
        )
    )
    return path


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "cli.sqlite"
    monkeypatch.setenv("SAVEMYCHAT_DB", str(path))
    return path


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("serve", "init-db", "import", "export", "push", "search", "settings"):
        assert command in result.stdout


def test_init_db_creates_schema(db_path: Path) -> None:
    result = runner.invoke(app, ["init-db"])

    assert result.exit_code == 0
    assert db_path.exists()


def test_import_dry_run_writes_nothing(tmp_path: Path, db_path: Path) -> None:
    backup = _write_backup(tmp_path / "backup.json")

    result = runner.invoke(app, ["import", str(backup), "--dry-run"])

    assert result.exit_code == 0
    assert "Dry run" in result.stdout
    assert "Conversations: 1" in result.stdout
    assert not db_path.exists()


def test_import_preview_prints_header_fields_literally(tmp_path: Path, db_path: Path) -> None:
    backup = tmp_path / "backup.json"
    backup.write_text(
        json.dumps({"version": "[bold]9[/bold]", "exported_at": "[red]today[/red]"})
    )

    result = runner.invoke(app, ["import", str(backup), "--dry-run"])

    assert result.exit_code == 0
    assert "Backup version: [bold]9[/bold]" in result.stdout
    assert "Exported at: [red]today[/red]" in result.stdout


def test_import_then_search_and_export(tmp_path: Path, db_path: Path) -> None:
    backup = _write_backup(tmp_path / "backup.json")

    result = runner.invoke(app, ["import", str(backup)])
    assert result.exit_code == 0
    assert "Created: 3" in result.stdout
    assert "Updated: 1" in result.stdout
    assert "Errors: 0" in result.stdout

    result = runner.invoke(app, ["search", "--tag", "parser"])
    assert result.exit_code == 0
    assert "Parsing" in result.stdout
    assert "brackets" in result.stdout

    result = runner.invoke(app, ["search", "--source", "nobody"])
    assert result.exit_code == 0
    assert "No conversations found" in result.stdout

    result = runner.invoke(app, ["collections"])
    assert "Work" in result.stdout

    out = tmp_path / "export.json"
    result = runner.invoke(app, ["export", str(out)])
    assert result.exit_code == 0
    exported = json.loads(out.read_text())
    assert exported["version"] == "1.0"
    assert len(exported["conversations"]) == 1

    result = runner.invoke(app, ["export", "-"])
    assert json.loads(result.stdout)["collections"][0]["name"] == "Work"


def test_import_from_stdin(db_path: Path) -> None:
    payload = json.dumps(
        {"conversations": [{"canonical_url": "u", "source": "s", "title": "t", "content": "c"}]}
    )

    result = runner.invoke(app, ["import", "-"], input=payload)

    assert result.exit_code == 0
    store = ChatStore(db_path)
    try:
        assert store.get_conversation_by_url("u").title == "t"
    finally:
        store.close()


def test_import_rejects_bad_input(tmp_path: Path, db_path: Path) -> None:
    missing = runner.invoke(app, ["import", str(tmp_path / "missing.json")])
    assert missing.exit_code == 1
    assert "Input file not found" in missing.stdout

    bad = tmp_path / "bad.json"
    bad.write_text("{nope")
    invalid = runner.invoke(app, ["import", str(bad)])
    assert invalid.exit_code == 1
    assert "Invalid JSON" in invalid.stdout

    bad.write_text(json.dumps({"conversations": "nope"}))
    malformed = runner.invoke(app, ["import", str(bad)])
    assert malformed.exit_code == 1
    assert "Invalid backup" in malformed.stdout


def test_settings_show_prints_defaults(db_path: Path) -> None:
    result = runner.invoke(app, ["settings", "show"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["storageMode"] == "local"


def test_push_uses_api_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    backup = _write_backup(tmp_path / "backup.json")
    calls: list[tuple[str, str | None, dict]] = []

    class FakeClient:
        def __init__(self, base_url: str, api_key: str | None = None) -> None:
            self.base_url = base_url
            self.api_key = api_key

        def import_backup(self, data: dict) -> dict:
            calls.append((self.base_url, self.api_key, data))
            return {"created": 2, "updated": 0, "errors": 1}

    monkeypatch.setattr("savemychat.commands.remote_cmds.ApiClient", FakeClient)

    result = runner.invoke(
        app, ["push", str(backup), "--url", "http://127.0.0.1:9", "--api-key", "k"]
    )

    assert result.exit_code == 0
    assert "Errors: 1" in result.stdout
    assert calls[0][0:2] == ("http://127.0.0.1:9", "k")
    assert calls[0][2]["version"] == "1.0"


def test_push_reports_api_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    backup = _write_backup(tmp_path / "backup.json")

    class FailingClient:
        base_url = "http://127.0.0.1:9"

        def __init__(self, *args: object) -> None:
            pass

        def import_backup(self, data: dict) -> dict:
            raise ApiError(401, "Invalid API key")

    monkeypatch.setattr("savemychat.commands.remote_cmds.ApiClient", FailingClient)

    result = runner.invoke(app, ["push", str(backup)])

    assert result.exit_code == 1
    assert "Invalid API key" in result.stdout


def test_serve_configures_server(monkeypatch: pytest.MonkeyPatch, db_path: Path) -> None:
    seen = []
    monkeypatch.setattr(cli_module, "_serve_api", lambda cfg: seen.append(cfg))

    result = runner.invoke(app, ["serve", "--host", "0.0.0.0", "--port", "9999"])

    assert result.exit_code == 0
    assert (seen[0].host, seen[0].port, seen[0].db_path) == ("0.0.0.0", 9999, str(db_path))


def test_config_set_and_show(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    result = runner.invoke(app, ["config", "set", "port", "9001"])
    assert result.exit_code == 0
    runner.invoke(app, ["config", "set", "api_key", "secret"])
    runner.invoke(app, ["config", "set", "cors_origins", "https://a.example,https://b.example"])

    saved = json.loads((tmp_path / "config.json").read_text())
    assert saved == {
        "port": 9001,
        "api_key": "secret",
        "cors_origins": ["https://a.example", "https://b.example"],
    }

    monkeypatch.setenv("SAVEMYCHAT_RATE_LIMIT_MAX", "7")
    shown = json.loads(runner.invoke(app, ["config", "show"]).stdout)
    assert shown["port"] == 9001
    assert shown["api_key"] == "***"
    assert shown["rate_limit_max"] == 7
    assert shown["env_overrides"] == ["rate_limit_max"]


def test_config_set_rejects_bad_values() -> None:
    unknown = runner.invoke(app, ["config", "set", "colour", "blue"])
    assert unknown.exit_code == 1
    assert "Unknown config key" in unknown.stdout

    bad_int = runner.invoke(app, ["config", "set", "port", "eighty"])
    assert bad_int.exit_code == 1

    bad_prefix = runner.invoke(app, ["config", "set", "table_prefix", "a-b"])
    assert bad_prefix.exit_code == 1
