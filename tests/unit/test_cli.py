"""Tests for the CLI module."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest
import respx
import yaml
from click.testing import CliRunner

from fx_proxy.cli import cli

FEED_URL = "https://feed.example.com/v1/latest"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """YAML config pointing at a throwaway SQLite file."""
    import os

    for key in list(os.environ):
        if key.startswith("FX_PROXY_"):
            monkeypatch.delenv(key)
    path = tmp_path / "fx-proxy.yml"
    path.write_text(
        yaml.safe_dump(
            {
                "feed": {
                    "base_currency": "USD",
                    "symbols": ["EUR", "GHS"],
                    "feed_url": FEED_URL,
                    "daily_call_budget": 1,
                    "max_retries": 0,
                },
                "storage": {"sqlite_path": str(tmp_path / "fx.db")},
            }
        )
    )
    return str(path)


def _feed_body() -> dict:
    now = datetime.now(UTC).replace(microsecond=0)
    return {
        "asOf": now.isoformat().replace("+00:00", "Z"),
        "rates": {"EUR": 0.92, "GHS": 15.4, "JPY": 151.2},
    }


def _ingest(runner, config_file):
    with respx.mock:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, json=_feed_body()))
        return runner.invoke(cli, ["--config", config_file, "ingest"])


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class TestGroup:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("ingest", "latest", "history", "status", "purge", "serve"):
            assert command in result.output

    def test_missing_config_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["--config", str(tmp_path / "nope.yml"), "status"])
        assert result.exit_code != 0

    def test_invalid_config(self, runner, tmp_path, monkeypatch):
        monkeypatch.delenv("FX_PROXY_CONFIG", raising=False)
        path = tmp_path / "bad.yml"
        path.write_text(yaml.safe_dump({"feed": {"base_currency": "USD"}}))
        result = runner.invoke(cli, ["--config", str(path), "status"])
        assert result.exit_code == 1
        assert "ConfigError" in result.output


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


class TestIngest:
    def test_ingest(self, runner, config_file):
        result = _ingest(runner, config_file)
        assert result.exit_code == 0, result.output
        assert "Ingested 2 rates for USD" in result.output

    def test_second_ingest_hits_budget(self, runner, config_file):
        _ingest(runner, config_file)
        result = _ingest(runner, config_file)
        assert result.exit_code == 0
        assert "budget" in result.output

    @respx.mock
    def test_feed_failure_exits_nonzero(self, runner, config_file):
        respx.get(FEED_URL).mock(return_value=httpx.Response(404))
        result = runner.invoke(cli, ["--config", config_file, "ingest"])
        assert result.exit_code == 1
        assert "FetchError" in result.output

    @respx.mock
    def test_redirect_loop_exits_cleanly(self, runner, config_file):
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(302, headers={"Location": FEED_URL})
        )
        result = runner.invoke(cli, ["--config", config_file, "ingest"])
        assert result.exit_code == 1
        assert "FetchError" in result.output
        assert not isinstance(result.exception, httpx.HTTPError)

    @respx.mock
    def test_no_usable_symbols(self, runner, config_file):
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(
                200, json={"asOf": "2024-04-01T00:00:00Z", "rates": {"JPY": 151.2}}
            )
        )
        result = runner.invoke(cli, ["--config", config_file, "ingest"])
        assert result.exit_code == 0
        assert "Nothing stored" in result.output


# ---------------------------------------------------------------------------
# latest / history
# ---------------------------------------------------------------------------


class TestQueries:
    def test_latest_json(self, runner, config_file):
        _ingest(runner, config_file)
        result = runner.invoke(
            cli, ["--config", config_file, "latest", "--symbols", "GHS,NGN", "--json"]
        )
        assert result.exit_code == 0, result.output
        body = json.loads(result.output)
        assert body["base"] == "USD"
        assert body["rates"] == [{"key": "GHS", "value": 15.4}]

    def test_latest_table(self, runner, config_file):
        _ingest(runner, config_file)
        result = runner.invoke(cli, ["--config", config_file, "latest"])
        assert result.exit_code == 0
        assert "EUR" in result.output
        assert "0.920000" in result.output

    def test_latest_no_data(self, runner, config_file):
        result = runner.invoke(cli, ["--config", config_file, "latest"])
        assert result.exit_code == 1
        assert "NoDataError" in result.output

    def test_history_json(self, runner, config_file):
        _ingest(runner, config_file)
        result = runner.invoke(
            cli, ["--config", config_file, "history", "--symbol", "EUR", "--days", "7", "--json"]
        )
        assert result.exit_code == 0, result.output
        points = json.loads(result.output)
        assert points == [{"date": datetime.now(UTC).date().isoformat(), "value": 0.92}]

    def test_history_empty(self, runner, config_file):
        result = runner.invoke(cli, ["--config", config_file, "history", "--symbol", "EUR"])
        assert result.exit_code == 0
        assert "No EUR data" in result.output

    def test_history_bad_days(self, runner, config_file):
        result = runner.invoke(
            cli, ["--config", config_file, "history", "--symbol", "EUR", "--days", "0"]
        )
        assert result.exit_code == 1
        assert "ValidationError" in result.output


# ---------------------------------------------------------------------------
# status / purge
# ---------------------------------------------------------------------------


class TestMaintenance:
    def test_status(self, runner, config_file):
        _ingest(runner, config_file)
        result = runner.invoke(cli, ["--config", config_file, "status"])
        assert result.exit_code == 0, result.output
        assert "1/1" in result.output

    def test_purge(self, runner, config_file):
        result = runner.invoke(cli, ["--config", config_file, "purge"])
        assert result.exit_code == 0
        assert "Purged 0 expired rows" in result.output

    def test_purge_removes_old_counters(self, runner, config_file, tmp_path):
        import asyncio

        from fx_proxy.core.config import StorageConfig
        from fx_proxy.ingestion.store import SqliteStore

        async def _old_counter():
            store = SqliteStore(StorageConfig(sqlite_path=str(tmp_path / "fx.db")))
            await store.initialize()
            await store.increment_budget_counter(
                datetime.now(UTC).date() - timedelta(days=30), 3
            )
            await store.close()

        asyncio.run(_old_counter())
        result = runner.invoke(cli, ["--config", config_file, "purge"])
        assert "Purged 1 expired rows" in result.output
