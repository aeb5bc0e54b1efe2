"""Tests for the CLI module."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import respx
from click.testing import CliRunner

from rate_sentinel.cli import cli
from rate_sentinel.core.config import StorageConfig
from rate_sentinel.core.models import RateSample
from rate_sentinel.ingestion.store import create_store

LIVE_URL = "http://rates.test/live"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture
def config_file(tmp_path, db_path):
    path = tmp_path / "rate-sentinel.yml"
    path.write_text(
        "provider:\n"
        "  base_url: http://rates.test\n"
        "  access_key: test-key\n"
        "sync:\n"
        "  retry_delay_seconds: 0\n"
        "storage:\n"
        f"  sqlite_path: {db_path}\n"
    )
    return path


@pytest.fixture
def invoke(runner, config_file):
    def _invoke(*args):
        return runner.invoke(cli, ["--config", str(config_file), *args])

    return _invoke


@pytest.fixture
def seed(db_path):
    """Write samples straight into the CLI's database file."""

    def _seed(*rows: tuple[str, str, int]):
        async def _run():
            store = await create_store(StorageConfig(sqlite_path=str(db_path)))
            try:
                await store.append(
                    [
                        RateSample(
                            symbol=symbol,
                            rate=Decimal(rate),
                            observed_at=observed_at,
                            recorded_at=datetime.now(timezone.utc),
                        )
                        for symbol, rate, observed_at in rows
                    ]
                )
            finally:
                await store.close()

        asyncio.run(_run())

    return _seed


def _live_ok(rates=None):
    return httpx.Response(
        200,
        json={
            "success": True,
            "timestamp": 1_710_072_000,
            "target": "USD",
            "rates": rates if rates is not None else {"BTC": 64500.12, "ETH": 3400.5},
        },
    )


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class TestGroup:
    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("sync", "latest", "history", "summary", "explain", "symbols", "status", "serve"):
            assert name in result.output

    def test_missing_config_file(self, runner):
        result = runner.invoke(cli, ["--config", "/nonexistent.yml", "status"])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


class TestSyncCommand:
    def test_sync_stores_rows(self, invoke):
        with respx.mock as mock:
            mock.get(LIVE_URL).mock(return_value=_live_ok())
            result = invoke("sync")
        assert result.exit_code == 0, result.output
        assert "Stored 2 rate samples" in result.output

        latest = json.loads(invoke("latest", "--json").stdout)
        assert {row["symbol"] for row in latest} == {"BTC", "ETH"}

    def test_sync_rate_limited(self, invoke):
        with respx.mock as mock:
            route = mock.get(LIVE_URL).mock(return_value=httpx.Response(429))
            result = invoke("sync")
        assert result.exit_code == 1
        assert "RateLimitExceeded" in result.output
        assert route.call_count == 1

    def test_sync_empty_result_retried_once(self, invoke):
        with respx.mock as mock:
            route = mock.get(LIVE_URL).mock(return_value=_live_ok(rates={}))
            result = invoke("sync")
        assert result.exit_code == 1
        assert "EmptyResultError" in result.output
        assert route.call_count == 2


# ---------------------------------------------------------------------------
# Read-side commands
# ---------------------------------------------------------------------------


class TestLatestCommand:
    def test_json_empty(self, invoke):
        result = invoke("latest", "--json")
        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_json_single_symbol(self, invoke, seed):
        seed(("BTC", "64500.12", 100), ("ETH", "3400.5", 100))
        result = invoke("latest", "--symbol", "btc", "--json")
        rows = json.loads(result.stdout)
        assert [r["symbol"] for r in rows] == ["BTC"]
        assert Decimal(rows[0]["rate"]) == Decimal("64500.12")

    def test_table(self, invoke, seed):
        seed(("BTC", "1.5", 100))
        result = invoke("latest")
        assert result.exit_code == 0
        assert "BTC" in result.output


class TestHistoryCommand:
    def test_json(self, invoke, seed):
        noon = int(datetime(2024, 3, 10, 12, 0).timestamp())
        seed(("BTC", "100", noon), ("BTC", "105", noon + 60))
        result = invoke("history", "BTC", "--start", "2024-03-10", "--end", "2024-03-10", "--json")
        assert result.exit_code == 0
        points = json.loads(result.stdout)
        assert [p["date"] for p in points] == ["2024-03-10", "2024-03-10"]

    def test_bad_date_exits_nonzero(self, invoke):
        result = invoke("history", "BTC", "--start", "10/03/2024", "--end", "2024-03-10")
        assert result.exit_code == 1
        assert "QueryValidationError" in result.output


class TestSummaryCommand:
    def test_json_empty(self, invoke):
        result = invoke("summary", "BTC", "--range", "30d", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["window"] == "30d"
        assert data["price_change_percent"] == "0.0%"

    def test_invalid_range_rejected_by_click(self, invoke):
        result = invoke("summary", "BTC", "--range", "1y")
        assert result.exit_code == 2

    def test_table(self, invoke, seed):
        now = int(datetime.now(timezone.utc).timestamp())
        seed(("BTC", "100", now - 7200), ("BTC", "110", now - 3600))
        result = invoke("summary", "BTC")
        assert result.exit_code == 0
        assert "10.0%" in result.output


class TestExplainCommand:
    def test_no_data(self, invoke):
        result = invoke("explain", "btc")
        assert result.exit_code == 0
        assert result.stdout.strip() == "No data for BTC in the last 24 hours."


class TestSymbolsCommand:
    def test_bootstrap_json(self, invoke):
        result = invoke("symbols", "--json")
        assert len(json.loads(result.stdout)) == 20

    def test_keyword(self, invoke):
        result = invoke("symbols", "--keyword", "do", "--json")
        assert json.loads(result.stdout) == ["DOGE", "DOT"]


# ---------------------------------------------------------------------------
# status / serve
# ---------------------------------------------------------------------------


class TestStatusCommand:
    def test_status(self, invoke, seed):
        seed(("BTC", "1", 100), ("ETH", "2", 200))
        result = invoke("status")
        assert result.exit_code == 0
        assert "Total" in result.output
        assert "Scheduler enabled" in result.output


class TestServeCommand:
    def test_serve_runs_uvicorn_factory(self, runner, config_file, monkeypatch):
        calls = []
        monkeypatch.setattr("uvicorn.run", lambda *a, **kw: calls.append((a, kw)))
        monkeypatch.setenv("RATE_SENTINEL_CONFIG", str(config_file))

        result = runner.invoke(cli, ["serve", "--port", "9001"])

        assert result.exit_code == 0, result.output
        (args, kwargs), = calls
        assert args == ("rate_sentinel.api.app:create_app",)
        assert kwargs["factory"] is True
        assert kwargs["port"] == 9001
        assert kwargs["host"] == "0.0.0.0"
