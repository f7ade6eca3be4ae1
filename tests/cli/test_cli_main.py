"""Tests for the Typer CLI, run standalone against a scratch database."""

import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from typer.testing import CliRunner

from src.cli.main import app
from src.db.models import TrackingClass
from tests.helpers import add_entries, add_order

cli = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Isolated cwd, home and storage dirs, with no config file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("TRACKPOOL_CONFIG_PATH", raising=False)
    monkeypatch.setenv("TRACKPOOL_STORAGE_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("TRACKPOOL_STORAGE_REPORT_DIR", str(tmp_path / "reports"))
    return tmp_path


@pytest.fixture
def local_db(workspace, file_based_db, monkeypatch):
    import src.db.connection as connection

    engine = create_engine(file_based_db, connect_args={"check_same_thread": False})
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    monkeypatch.setattr(connection, "engine", engine)
    monkeypatch.setattr(connection, "SessionLocal", Session)
    yield Session
    engine.dispose()


def test_version():
    result = cli.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "TrackPool" in result.output


class TestConfigCommands:
    def test_show_defaults(self, workspace):
        result = cli.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "No config file found; showing defaults." in result.output
        assert "ready_status: process-to-ship" in result.output

    def test_validate_good_file(self, workspace):
        path = workspace / "trackpool.yaml"
        path.write_text("assignment:\n  weight_threshold_grams: 750\n")

        result = cli.invoke(app, ["config", "validate", "--config", str(path)])

        assert result.exit_code == 0
        assert "Config is valid." in result.output
        assert "Weight threshold: 750g" in result.output

    def test_validate_bad_file(self, workspace):
        path = workspace / "bad.yaml"
        path.write_text("assignment:\n  weight_threshold_grams: -5\n")

        result = cli.invoke(app, ["config", "validate", "--config", str(path)])

        assert result.exit_code == 1
        assert "Config validation failed" in result.output

    def test_validate_without_file(self, workspace):
        result = cli.invoke(app, ["config", "validate"])

        assert result.exit_code == 1
        assert "No config file found." in result.output

    def test_missing_explicit_config(self, workspace):
        result = cli.invoke(app, ["--config", str(workspace / "nope.yaml"), "config", "show"])

        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestStandalone:
    def test_pool_summary_json(self, local_db):
        with local_db() as db:
            add_entries(db, TrackingClass.EG, ["EG1IN", "EG2IN"])

        result = cli.invoke(app, ["--standalone", "pool", "summary", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data[0] == {
            "tracking_class": "EG", "total": 2, "available": 2, "bound": 0, "withdrawn": 0,
        }

    def test_empty_pool_warning(self, local_db):
        result = cli.invoke(app, ["--standalone", "pool", "summary"])

        assert result.exit_code == 0
        assert "pool is empty" in result.output

    def test_import_then_list(self, local_db, workspace):
        path = workspace / "numbers.csv"
        path.write_text("EG1IN\nCG1IN\nXX1IN\n")

        imported = cli.invoke(app, ["--standalone", "import", str(path), "-u", "7"])
        listed = cli.invoke(app, ["--standalone", "pool", "list", "CG", "--json"])

        assert imported.exit_code == 0, imported.output
        assert "Upload Result" in imported.output
        assert json.loads(listed.output)["rows"][0]["tracking_id"] == "CG1IN"

    def test_import_wrong_extension(self, local_db, workspace):
        path = workspace / "numbers.txt"
        path.write_text("EG1IN\n")

        result = cli.invoke(app, ["--standalone", "import", str(path), "-u", "7"])

        assert result.exit_code == 1
        assert "E-2004" in result.output

    def test_assign(self, local_db):
        with local_db() as db:
            add_entries(db, TrackingClass.EG, ["EG1IN"])
            add_order(db, "1042", weights=["750"])

        result = cli.invoke(app, ["--standalone", "assign", "1042"])

        assert result.exit_code == 0, result.output
        assert "Order #1042 assigned EG tracking number EG1IN" in result.output

    def test_assign_with_empty_pool_fails(self, local_db):
        with local_db() as db:
            add_order(db, "7", weights=["5000"])

        result = cli.invoke(app, ["--standalone", "assign", "7"])

        assert result.exit_code == 1
        assert "E-3001" in result.output

    def test_sync_reports_status(self, local_db):
        with local_db() as db:
            add_entries(db, TrackingClass.CG, ["CG1IN"])
            add_order(db, "55", status="process-to-ship")

        result = cli.invoke(app, ["--standalone", "sync", "55", "process-to-ship", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["tracking_id"] == "CG1IN"
        assert data["status_synced"] is True

    def test_delete_needs_confirmation(self, local_db):
        result = cli.invoke(app, ["--standalone", "pool", "delete", "EG", "1"], input="n\n")

        assert result.exit_code == 1

    def test_withdraw(self, local_db):
        with local_db() as db:
            ids = [e.id for e in add_entries(db, TrackingClass.EG, ["EG1IN"])]

        result = cli.invoke(app, ["--standalone", "pool", "withdraw", "EG", str(ids[0]), "999"])

        assert result.exit_code == 0, result.output
        assert "Withdrew 1 of 2 entries." in result.output

    def test_logs_list_empty(self, local_db):
        result = cli.invoke(app, ["--standalone", "logs", "list"])

        assert result.exit_code == 0
        assert "No upload logs found." in result.output


def test_unreachable_daemon(workspace, monkeypatch):
    monkeypatch.setenv("TRACKPOOL_DAEMON_PORT", "1")

    result = cli.invoke(app, ["pool", "summary"])

    assert result.exit_code == 1
    assert "Cannot reach the daemon" in result.output
