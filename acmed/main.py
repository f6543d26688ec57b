#!/usr/bin/env python3
#
# acmed/main.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Command line entry point: one-shot `run` and periodic `server`."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .errors import ConfigValidationError
from .lifecycle import DomainResult, LifecycleManager
from .utils.config import Config, load_config
from .utils.log import setup_logging
from .utils.scheduler import Scheduler

_log = logging.getLogger(__name__)

__all__ = ["cli", "main", "run_once", "serve_forever"]

_EPILOG = (
	"Notice that you can delete a web folder under webs and restart acmed "
	"to re-generate certificates."
)


def _summary(results: list[DomainResult]) -> None:
	for result in results:
		line = f"{result.domain}: {result.outcome}"
		if result.not_after is not None:
			line += f" (valid until {result.not_after.isoformat()})"
		if result.error:
			line += f" - {result.error}"
		click.echo(line)


async def run_once(config: Config) -> list[DomainResult]:
	"""One renewal pass over every configured domain."""
	return await LifecycleManager(config).run()


async def serve_forever(config: Config) -> None:
	"""Run the renewal pass now and then every config.interval_hours until signalled.

	A pass that is still busy when the next one is due is cancelled and
	counted as failed.
	"""
	manager = LifecycleManager(config)
	interval = config.interval_hours * 3600
	stop = asyncio.Event()
	loop = asyncio.get_running_loop()
	handled = []
	for sig in (signal.SIGINT, signal.SIGTERM):
		try:
			loop.add_signal_handler(sig, stop.set)
			handled.append(sig)
		except (NotImplementedError, RuntimeError):
			pass

	async def _job() -> None:
		await manager.run()

	scheduler = Scheduler()
	scheduler.add("renew", interval, _job, run_on_start=True, timeout=interval)
	await scheduler.start()
	try:
		await stop.wait()
	finally:
		_log.info("Shutting down")
		for sig in handled:
			loop.remove_signal_handler(sig)
		await scheduler.stop_graceful()
		stats = scheduler.job_stats("renew")
		_log.info(
			"Renewal passes: %d completed, %d failed, last success %s",
			stats["run_count"], stats["fail_count"], stats["last_success"] or "never",
		)


def _load(config_dir: Optional[Path], address: Optional[str], log_level: Optional[str], interval: Optional[float] = None) -> Config:
	try:
		config = load_config(config_dir, address=address, log_level=log_level, interval_hours=interval)
	except ConfigValidationError as exc:
		raise click.ClickException(str(exc)) from exc
	setup_logging(config.log_level)
	return config


_common = [
	click.option("-p", "address", default=None, help="Address for challenges, such as 0.0.0.0:4402."),
	click.option(
		"--config-dir",
		type=click.Path(file_okay=False, path_type=Path),
		default=None,
		help="Directory holding acmed.json and webs/ (default: $ACMED_CONFIG_DIR or ./).",
	),
	click.option("--log-level", default=None, help="CRITICAL, ERROR, WARNING, INFO or DEBUG."),
]


def _with_common(func):
	for option in reversed(_common):
		func = option(func)
	return func


@click.group(epilog=_EPILOG, invoke_without_command=True)
@click.version_option(__version__, prog_name="acmed")
@click.pass_context
def cli(ctx: click.Context) -> None:
	"""acmed - obtain and renew ACME certificates for the configured webs."""
	if ctx.invoked_subcommand is None:
		click.echo(ctx.get_help())


@cli.command("run")
@_with_common
def run_command(address: Optional[str], config_dir: Optional[Path], log_level: Optional[str]) -> None:
	"""Generate certificates of account and webs."""
	config = _load(config_dir, address, log_level)
	results = asyncio.run(run_once(config))
	_summary(results)


@cli.command("server")
@_with_common
@click.option("--interval", type=float, default=None, help="Hours between renewal passes (default: 24).")
def server_command(address: Optional[str], config_dir: Optional[Path], log_level: Optional[str], interval: Optional[float]) -> None:
	"""Periodically generate certificates of account and webs."""
	config = _load(config_dir, address, log_level, interval)
	asyncio.run(serve_forever(config))


def main(argv: Optional[list[str]] = None) -> None:
	# click exits 2 on a missing or unknown command
	cli.main(args=argv, prog_name="acmed")


if __name__ == "__main__":
	main(sys.argv[1:])
