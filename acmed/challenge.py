#!/usr/bin/env python3
#
# acmed/challenge.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Transient HTTP-01 challenge responder.

Serves exactly one path with one body and answers 404 everywhere else. The
listener lives only inside ``async with ChallengeResponder(...)``.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from .errors import ChallengeListenError
from .utils.config import parse_address

_log = logging.getLogger(__name__)

__all__ = ["http01_app", "bind_listener", "ChallengeResponder"]

_STARTUP_TIMEOUT = 5.0
_SHUTDOWN_TIMEOUT = 5
_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def http01_app(path: str, value: str) -> FastAPI:
	"""ASGI app answering the single (path, value) pair."""
	app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

	@app.api_route("/{full_path:path}", methods=_METHODS)
	async def serve_challenge(request: Request, full_path: str) -> Response:
		if request.url.path != path:
			_log.info("unknown request path: %s", request.url.path)
			return Response(status_code=404)
		return PlainTextResponse(value)

	return app


def bind_listener(address: str) -> socket.socket:
	"""Bind and listen on address; any OS failure is a ChallengeListenError."""
	host, port = parse_address(address)
	family = socket.AF_INET6 if ":" in host else socket.AF_INET
	try:
		return socket.create_server((host, port), family=family, backlog=128)
	except OSError as exc:
		raise ChallengeListenError(f"listen {address}: {exc}") from exc


class ChallengeResponder:
	"""Async context manager running the http-01 app on its own task.

	The socket is bound before the server task starts and __aenter__ returns
	only after uvicorn reports it is serving, so the CA can be told to
	validate right away.
	"""

	def __init__(self, address: str, path: str, value: str):
		self.address = address
		self.path = path
		self.value = value
		self._sock: Optional[socket.socket] = None
		self._server: Optional[uvicorn.Server] = None
		self._task: Optional[asyncio.Task] = None

	@property
	def port(self) -> int:
		if self._sock is None:
			raise RuntimeError("Responder is not listening")
		return self._sock.getsockname()[1]

	async def __aenter__(self) -> "ChallengeResponder":
		await self.start()
		return self

	async def __aexit__(self, *exc_info) -> None:
		await self.close()

	async def start(self) -> None:
		self._sock = bind_listener(self.address)
		try:
			config = uvicorn.Config(
				http01_app(self.path, self.value),
				lifespan="off",
				log_config=None,
				access_log=False,
				timeout_graceful_shutdown=_SHUTDOWN_TIMEOUT,
			)
			self._server = uvicorn.Server(config)
			self._task = asyncio.create_task(self._server.serve(sockets=[self._sock]))
			await self._wait_started()
		except BaseException:
			await self.close()
			raise
		_log.info("Challenge responder listening on %s for %s", self.address, self.path)

	async def _wait_started(self) -> None:
		assert self._server is not None and self._task is not None
		loop = asyncio.get_running_loop()
		deadline = loop.time() + _STARTUP_TIMEOUT
		while not self._server.started:
			if self._task.done():
				exc = None if self._task.cancelled() else self._task.exception()
				raise ChallengeListenError(f"challenge responder on {self.address} exited during startup: {exc}")
			if loop.time() > deadline:
				raise ChallengeListenError(f"challenge responder on {self.address} did not start in {_STARTUP_TIMEOUT}s")
			await asyncio.sleep(0.01)

	async def close(self) -> None:
		"""Stop serving and release the port. Safe to call more than once."""
		if self._server is not None:
			self._server.should_exit = True
		if self._task is not None:
			try:
				await self._task
			except asyncio.CancelledError:
				if not self._task.cancelled():
					raise
			except Exception:
				_log.exception("Challenge responder on %s failed during shutdown", self.address)
			self._task = None
		if self._sock is not None:
			self._sock.close()
			self._sock = None
			_log.debug("Challenge responder on %s closed", self.address)
		self._server = None
