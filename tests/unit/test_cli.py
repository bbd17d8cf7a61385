"""Tests for the Jyoti CLI."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from jyoti.cli import app

runner = CliRunner()


@pytest.fixture
def offline_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Hash embeddings so ingestion never loads a model or calls an API."""
    monkeypatch.delenv("JYOTI_CONFIG", raising=False)
    monkeypatch.setenv("JYOTI_EMBEDDING__PROVIDER", "hash")
    monkeypatch.setenv("JYOTI_EMBEDDING__DIMENSION", "16")


class TestCLICommands:
    """Test CLI commands."""

    def test_version_command(self) -> None:
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "Jyoti version" in result.stdout

    def test_modes_command(self) -> None:
        result = runner.invoke(app, ["modes"])

        assert result.exit_code == 0
        assert "- general" in result.stdout
        assert "- compatibility" in result.stdout

    def test_profiles_command(self) -> None:
        result = runner.invoke(app, ["profiles"])

        assert result.exit_code == 0
        assert "lite" in result.stdout
        assert "standard" in result.stdout
        assert "External services: True" in result.stdout

    def test_info_command(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("JYOTI_CONFIG", raising=False)

        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "Chat rate limit: 20 requests / 60s" in result.stdout


class TestIngestCommand:
    """Test the ingest command."""

    def test_ingest_directory(self, tmp_path: Path, offline_env: None) -> None:
        source = tmp_path / "sources"
        source.mkdir()
        (source / "career_guide.md").write_text("The tenth house governs work.")
        (source / "remedies.txt").write_text("Chant this mantra at sunrise.")

        result = runner.invoke(
            app, ["ingest", str(source), "--database", str(tmp_path / "knowledge.duckdb")]
        )

        assert result.exit_code == 0
        assert "Files: 2/2 processed" in result.stdout
        assert "Chunks: 2 stored of 2 generated" in result.stdout
        assert "- career: 1" in result.stdout
        assert "- remedy: 1" in result.stdout

    def test_ingest_missing_directory(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["ingest", str(tmp_path / "absent")])

        assert result.exit_code == 1

    def test_ingest_invalid_mode(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["ingest", str(tmp_path), "--mode", "tarot"])

        assert result.exit_code == 1

    def test_ingest_missing_config_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["ingest", str(tmp_path), "--config", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1


class TestServeCommand:
    """Test the serve command."""

    def test_invalid_profile(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("JYOTI_CONFIG", raising=False)

        result = runner.invoke(app, ["serve", "--profile", "cloud"])

        assert result.exit_code == 1

    @patch("uvicorn.run")
    def test_serve_runs_uvicorn(self, mock_run, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("JYOTI_CONFIG", raising=False)

        result = runner.invoke(app, ["serve", "--host", "127.0.0.1", "--port", "9001"])

        assert result.exit_code == 0
        mock_run.assert_called_once()
        assert mock_run.call_args.kwargs["host"] == "127.0.0.1"
        assert mock_run.call_args.kwargs["port"] == 9001
