"""Tests for the command line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from wheel_engine.__version__ import __version__
from wheel_engine.cli.run import main

from conftest import raw_leg

ENV = {"WHEEL_ENGINE_CONFIG": ""}


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def positions_file(tmp_path: Path) -> Path:
    path = tmp_path / "positions.json"
    path.write_text(
        json.dumps(
            {
                "legs": [raw_leg()],
                "account": {"sharesPerSymbol": {"IBIT": 1400}, "costBasisPerSymbol": {"IBIT": 59.09}},
                "prices": {"IBIT": 66.0},
            }
        )
    )
    return path


class TestAnalyzeCommand:
    def test_json_output(self, runner: CliRunner, positions_file: Path) -> None:
        result = runner.invoke(main, ["analyze", str(positions_file), "--format", "json"], env=ENV)

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["api_version"] == "v1"
        assert payload["strategies"][0]["strategy"] == "CoveredCall"
        assert payload["strategies"][0]["wheel_metrics"][0]["wheel_net"] == 419.32
        assert payload["summaries"][0]["symbol"] == "IBIT"

    def test_separate_account_and_prices(self, runner: CliRunner, tmp_path: Path) -> None:
        positions = tmp_path / "legs.json"
        positions.write_text(json.dumps([raw_leg(optionType="PUT", strike=55)]))
        account = tmp_path / "account.json"
        account.write_text(json.dumps({"cashBalance": 10000}))

        result = runner.invoke(
            main,
            ["analyze", str(positions), "--account", str(account), "--format", "json", "--as-of", "2025-07-01"],
            env=ENV,
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["strategies"][0]["strategy"] == "CashSecuredPut"
        assert payload["timeframes"][0]["timeframe"] == "30-days"

    def test_text_output(self, runner: CliRunner, positions_file: Path) -> None:
        result = runner.invoke(main, ["analyze", str(positions_file)], env=ENV)

        assert result.exit_code == 0, result.output
        assert "position analysis" in result.output

    def test_invalid_json(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "positions.json"
        path.write_text("{not json")

        result = runner.invoke(main, ["analyze", str(path)], env=ENV)

        assert result.exit_code != 0
        assert "not valid JSON" in result.output

    def test_positions_must_be_a_list(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "positions.json"
        path.write_text(json.dumps({"legs": "nope"}))

        result = runner.invoke(main, ["analyze", str(path)], env=ENV)

        assert result.exit_code != 0
        assert "list of legs" in result.output

    def test_bad_config(self, runner: CliRunner, positions_file: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            main, ["analyze", str(positions_file), "--config", str(tmp_path / "missing.yaml")], env=ENV
        )

        assert result.exit_code != 0
        assert "not found" in result.output

    def test_unusable_greeks_store(self, runner: CliRunner, positions_file: Path, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        env = {
            **ENV,
            "WHEEL_ENGINE_STORAGE__BACKEND": "json",
            "WHEEL_ENGINE_STORAGE__PATH": str(blocker / "greeks.json"),
        }

        result = runner.invoke(main, ["analyze", str(positions_file), "--fetch-greeks"], env=env)

        assert result.exit_code != 0


class TestCacheStatsCommand:
    def test_json(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["cache-stats", "--format", "json"], env=ENV)

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["backend"] == "memory"
        assert payload["hits"] == 0

    def test_text(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["cache-stats"], env=ENV)

        assert result.exit_code == 0, result.output
        assert "Greeks Cache" in result.output


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert f"Wheel Engine v{__version__}" in result.output
