"""Tests for the bothost CLI."""

import zipfile

import pytest
from typer.testing import CliRunner

from bothost import __version__
from bothost.cli.main import app
from bothost.config import settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "data_dir", tmp_path / "data")
    monkeypatch.setattr(settings, "db_path", tmp_path / "data" / "cli.db")
    monkeypatch.setattr(settings, "bots_dir", tmp_path / "data" / "bots")
    monkeypatch.setattr(settings, "default_runtime", "python")


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_stats_on_empty_host():
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0
    assert "Users" in result.output


def test_verify_prints_code():
    result = runner.invoke(app, ["verify", "1001", "--username", "alice"])
    assert result.exit_code == 0
    assert "Your verification code" in result.output


def test_bots_unknown_tenant():
    result = runner.invoke(app, ["bots", "nobody"])
    assert result.exit_code == 1
    assert "No account" in result.output


def test_create_and_list(tmp_path):
    from bothost.cli.context import build_service, prepare, run_async

    service = build_service()
    run_async(prepare(service))
    run_async(service.registry.find_or_create_tenant("1001", "alice"))

    source = tmp_path / "main.py"
    source.write_text("print(1)")
    result = runner.invoke(app, ["create", "1001", "echo", "--file", str(source)])
    assert result.exit_code == 0, result.output
    assert "Created bot echo" in result.output
    assert source.read_text() == "print(1)"

    result = runner.invoke(app, ["bots", "1001"])
    assert result.exit_code == 0
    assert "echo" in result.output


def test_create_from_zip_keeps_archive(tmp_path):
    from bothost.cli.context import build_service, prepare, run_async

    service = build_service()
    run_async(prepare(service))
    tenant = run_async(service.registry.find_or_create_tenant("1001", "alice"))

    archive = tmp_path / "bot.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("main.py", "print(1)")
    result = runner.invoke(app, ["create", "1001", "zipped", "--file", str(archive)])
    assert result.exit_code == 0, result.output
    assert "Created bot zipped" in result.output
    assert archive.exists()

    bot = run_async(service.registry.find_bot_by_name(tenant.id, "zipped"))
    assert (settings.bots_dir / tenant.id / "zipped" / "main.py").read_text() == "print(1)"
    assert bot is not None


def test_create_missing_file(tmp_path):
    from bothost.cli.context import build_service, prepare, run_async

    service = build_service()
    run_async(prepare(service))
    run_async(service.registry.find_or_create_tenant("1001", "alice"))

    result = runner.invoke(app, ["create", "1001", "echo", "--file", str(tmp_path / "nope.py")])
    assert result.exit_code == 1
    assert "No such file" in result.output
