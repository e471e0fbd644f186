"""
CLI tests with Typer's CliRunner over the test SQLite database.
"""

import re
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from studyflow.cli import main as cli_main

runner = CliRunner()

UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")


@pytest.fixture
def cli(engine, oracle, test_settings, monkeypatch):
    monkeypatch.setattr(cli_main, "get_settings", lambda: test_settings)
    monkeypatch.setattr(cli_main, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(cli_main, "GatewayOracle", SimpleNamespace(from_settings=lambda settings: oracle))
    return cli_main.app


def _create(cli, user="alice"):
    result = runner.invoke(cli, ["--user", user, "create-project", "--title", "Networking"])
    assert result.exit_code == 0, result.output
    return UUID_RE.search(result.output).group(0)


def test_create_and_show(cli):
    project_id = _create(cli)

    result = runner.invoke(cli, ["--user", "alice", "show", project_id])

    assert result.exit_code == 0, result.output
    assert "Networking" in result.output
    assert "created" in result.output


def test_ingest_files(cli, tmp_path):
    project_id = _create(cli)
    notes = tmp_path / "notes.txt"
    notes.write_text("Routing moves packets between networks.", encoding="utf-8")

    result = runner.invoke(cli, ["--user", "alice", "ingest", project_id, str(notes)])

    assert result.exit_code == 0, result.output
    assert "1 chunks from 1 documents" in result.output


def test_errors_exit_nonzero(cli):
    project_id = _create(cli)

    result = runner.invoke(cli, ["--user", "mallory", "show", project_id])

    assert result.exit_code == 1
    assert "forbidden" in result.output


def test_submit_requires_json(cli):
    result = runner.invoke(cli, ["submit", "00000000-0000-0000-0000-000000000000", "not json"])

    assert result.exit_code == 1
    assert "not valid JSON" in result.output


def test_db_init_is_idempotent(cli):
    first = runner.invoke(cli, ["db", "init"])
    second = runner.invoke(cli, ["db", "init"])

    assert first.exit_code == second.exit_code == 0
    assert "Database initialized" in second.output
