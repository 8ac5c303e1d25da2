"""Tests for the command-line entrypoint."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from newsmon import db
from newsmon.__main__ import build_parser, main
from newsmon.models import BatchResult, RunResult


@pytest.fixture
def config_file(tmp_path, sample_config):
    path = tmp_path / "config.yaml"
    assert path.exists()
    return str(path)


def _run(argv):
    with patch("newsmon.__main__.setup_logging"):
        with pytest.raises(SystemExit) as exc_info:
            main(argv)
    return exc_info.value.code


def test_parser_ingest_options():
    args = build_parser().parse_args(["ingest", "newsapi", "--lookback-hours", "6", "--json"])
    assert args.sources == ["newsapi"]
    assert args.lookback_hours == 6
    assert args.triggered_by == "manual"
    assert args.json


def test_parser_rejects_unknown_signal():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["articles", "--signal", "bogus"])


def test_init_db(config_file, sample_config, capsys):
    assert _run(["--config", config_file, "init-db"]) == 0
    assert "Database initialized" in capsys.readouterr().out
    conn = db.get_connection(sample_config["database"]["path"])
    try:
        assert db.get_stats(conn)["total_articles"] == 0
    finally:
        conn.close()


def test_ingest_exit_code_reflects_failures(config_file, capsys):
    batch = BatchResult(results=[
        RunResult(source="gdelt", success=True, run_id=1, articles_fetched=3, articles_new=2),
        RunResult(source="newsapi", success=False, run_id=2, status_code=429, error="quota"),
    ])
    with patch("newsmon.pipeline.run_all_ingestion", AsyncMock(return_value=batch)):
        code = _run(["--config", config_file, "ingest", "--json"])

    assert code == 1
    out = capsys.readouterr().out
    assert "gdelt: run #1 fetched 3, new 2" in out
    assert "newsapi: FAILED (429) quota" in out
    assert '"success": false' in out


def test_stats_and_articles(config_file, db_path, make_article, capsys):
    conn = db.get_connection(db_path)
    try:
        db.insert_article(conn, make_article())
    finally:
        conn.close()

    assert _run(["--config", config_file, "stats"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["total_articles"] == 1

    assert _run(["--config", config_file, "articles", "--status", "pending"]) == 0
    out = capsys.readouterr().out
    assert "Cayman Islands fund enters liquidation" in out
    assert "(1 articles)" in out


def test_entities_and_runs_empty(config_file, db_path, capsys):
    assert _run(["--config", config_file, "entities"]) == 0
    assert "No entities yet." in capsys.readouterr().out
    assert _run(["--config", config_file, "runs"]) == 0
    assert "No ingestion runs yet." in capsys.readouterr().out
