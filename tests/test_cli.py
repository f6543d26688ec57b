"""Command line interface."""

import asyncio
import json
import logging
import os
import signal
from datetime import datetime, timedelta, timezone

import pytest
from click.testing import CliRunner

from acmed import __version__
from acmed.main import cli, serve_forever
from acmed.utils.config import Config

from tests.fake_ca import make_certificate, write_certificate_file


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
	monkeypatch.setattr("acmed.main.setup_logging", lambda level: None)


@pytest.fixture
def runner():
	return CliRunner()


def _config(tmp_path, webs):
	(tmp_path / "acmed.json").write_text(json.dumps({"server": {"address": "127.0.0.1:0", "webs": webs}}))


def test_run_skips_valid_certificate(runner, tmp_path):
	_config(tmp_path, [{"domain": "example.com", "disco": "https://ca.invalid/directory"}])
	not_after = (datetime.now(timezone.utc) + timedelta(days=60)).replace(microsecond=0)
	write_certificate_file(tmp_path / "webs" / "example.com" / "example.com.crt", make_certificate("example.com", not_after))

	result = runner.invoke(cli, ["run", "--config-dir", str(tmp_path)])

	assert result.exit_code == 0, result.output
	assert "example.com: skipped" in result.output


def test_run_with_no_webs(runner, tmp_path):
	_config(tmp_path, [])

	result = runner.invoke(cli, ["run", "--config-dir", str(tmp_path), "-p", "127.0.0.1:4402"])

	assert result.exit_code == 0, result.output
	assert result.output == ""


def test_missing_config_exits_1(runner, tmp_path):
	result = runner.invoke(cli, ["run", "--config-dir", str(tmp_path)])

	assert result.exit_code == 1
	assert "Config file not found" in result.output


def test_invalid_config_exits_1(runner, tmp_path):
	_config(tmp_path, [{"email": "a@example.com"}])

	result = runner.invoke(cli, ["server", "--config-dir", str(tmp_path)])

	assert result.exit_code == 1
	assert "Domain of web #0 is required." in result.output


def test_unknown_command_exits_2(runner):
	result = runner.invoke(cli, ["renew"])

	assert result.exit_code == 2


def test_no_command_prints_usage(runner):
	result = runner.invoke(cli, [])

	assert result.exit_code == 0
	assert "Usage:" in result.output
	assert "run" in result.output and "server" in result.output
	assert "delete a web folder" in result.output


def test_version(runner):
	result = runner.invoke(cli, ["--version"])

	assert result.exit_code == 0
	assert __version__ in result.output


@pytest.mark.asyncio
async def test_server_runs_first_pass_and_stops_on_sigterm(tmp_path, caplog):
	config = Config(base_dir=tmp_path, address="127.0.0.1:0", webs=(), interval_hours=1.0)
	caplog.set_level(logging.INFO, logger="acmed.main")

	task = asyncio.create_task(serve_forever(config))
	await asyncio.sleep(0.2)
	os.kill(os.getpid(), signal.SIGTERM)
	await asyncio.wait_for(task, timeout=10)

	assert "Renewal passes: 1 completed, 0 failed" in caplog.text
