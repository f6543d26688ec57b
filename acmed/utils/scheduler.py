#!/usr/bin/env python3
#
# acmed/utils/scheduler.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Async scheduler that re-runs the renewal pass on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

_log = logging.getLogger(__name__)

__all__ = ["Scheduler"]

# Minimum allowed interval to prevent CPU-pinning tight loops
_MIN_INTERVAL = 1.0


@dataclass
class _Job:
	name: str
	interval_seconds: float
	func: Callable[[], Awaitable[None]]
	run_on_start: bool = False
	timeout: float | None = None
	last_success: datetime | None = None
	run_count: int = 0
	fail_count: int = 0


class Scheduler:
	"""Runs registered async jobs every interval until stopped.

	A failed run delays the next one by an exponential backoff capped at the
	job interval; it never makes the next run happen sooner.

	Usage::

		scheduler = Scheduler()
		scheduler.add("renew", 86400, manager_run, run_on_start=True)
		await scheduler.start()
		...
		await scheduler.stop_graceful()
	"""

	def __init__(self) -> None:
		self._jobs: dict[str, _Job] = {}
		self._tasks: dict[str, asyncio.Task] = {}
		self._stop_event: asyncio.Event | None = None
		self._started = False

	def add(
		self,
		name: str,
		interval_seconds: float,
		func: Callable[[], Awaitable[None]],
		*,
		run_on_start: bool = False,
		timeout: float | None = None,
	) -> None:
		"""Register a periodic job.

		Raises:
			RuntimeError: scheduler already running
			ValueError: duplicate name or interval below the minimum
		"""
		if self._started:
			raise RuntimeError(f"Cannot add job {name!r} while scheduler is running")
		if name in self._jobs:
			raise ValueError(f"Job {name!r} is already registered")
		if interval_seconds < _MIN_INTERVAL:
			raise ValueError(f"interval_seconds must be >= {_MIN_INTERVAL}, got {interval_seconds}")

		self._jobs[name] = _Job(
			name=name,
			interval_seconds=interval_seconds,
			func=func,
			run_on_start=run_on_start,
			timeout=timeout,
		)

	def job_stats(self, name: str) -> dict:
		job = self._jobs[name]
		return {
			"name": job.name,
			"run_count": job.run_count,
			"fail_count": job.fail_count,
			"last_success": job.last_success.isoformat() if job.last_success else None,
		}

	async def start(self) -> None:
		"""Start every job on its own task. Needs a running loop."""
		if self._started:
			return
		self._started = True
		self._stop_event = asyncio.Event()
		for job in self._jobs.values():
			self._tasks[job.name] = asyncio.create_task(self._run_loop(job))
			_log.info("SCHEDULER job=%s interval=%ds started", job.name, job.interval_seconds)

	async def stop_graceful(self, timeout: float = 5.0) -> None:
		"""Signal all loops to stop; cancel those that are still busy after timeout."""
		if not self._started:
			return
		self._started = False
		if self._stop_event is not None:
			self._stop_event.set()

		pending = [t for t in self._tasks.values() if not t.done()]
		if pending:
			_, not_done = await asyncio.wait(pending, timeout=timeout)
			if not_done:
				_log.warning("SCHEDULER %d tasks did not stop gracefully, forcing cancel", len(not_done))
				for task in not_done:
					task.cancel()
				await asyncio.gather(*not_done, return_exceptions=True)

		self._tasks.clear()
		_log.info("SCHEDULER stopped")

	async def _sleep(self, seconds: float) -> bool:
		"""Wait up to seconds; True if a stop was requested meanwhile."""
		assert self._stop_event is not None
		try:
			await asyncio.wait_for(self._stop_event.wait(), timeout=max(0.0, seconds))
			return True
		except asyncio.TimeoutError:
			return not self._started

	async def _run_loop(self, job: _Job) -> None:
		loop = asyncio.get_running_loop()
		consecutive_failures = 0
		next_run = loop.time() if job.run_on_start else loop.time() + job.interval_seconds

		try:
			while self._started:
				if await self._sleep(next_run - loop.time()):
					break

				success = await self._execute(job)
				now = loop.time()
				if success:
					consecutive_failures = 0
					next_run = max(next_run + job.interval_seconds, now)
					continue

				consecutive_failures += 1
				backoff = min(2 ** consecutive_failures, job.interval_seconds)
				_log.error(
					"SCHEDULER job=%s failed (%d consecutive), backing off %.0fs",
					job.name, consecutive_failures, backoff,
				)
				next_run = max(next_run + job.interval_seconds, now + backoff)
		except asyncio.CancelledError:
			_log.debug("SCHEDULER job=%s cancelled", job.name)
		except Exception:
			_log.exception("SCHEDULER job=%s fatal error in run loop", job.name)

	async def _execute(self, job: _Job) -> bool:
		"""Run job once; False if it raised or timed out."""
		try:
			if job.timeout is not None:
				await asyncio.wait_for(job.func(), timeout=job.timeout)
			else:
				await job.func()
		except asyncio.TimeoutError:
			job.fail_count += 1
			_log.error("SCHEDULER job=%s timed out after %.1fs (fail #%d)", job.name, job.timeout, job.fail_count)
			return False
		except Exception:
			job.fail_count += 1
			_log.exception("SCHEDULER job=%s failed (fail #%d)", job.name, job.fail_count)
			return False

		job.last_success = datetime.now(timezone.utc)
		job.run_count += 1
		_log.info("SCHEDULER job=%s completed (run #%d)", job.name, job.run_count)
		return True
