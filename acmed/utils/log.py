#!/usr/bin/env python3
#
# acmed/utils/log.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Unified logging setup for the CLI and the challenge responder."""

from __future__ import annotations

import logging
import sys

__all__ = ["LOG_FORMAT", "DATE_FORMAT", "setup_logging"]

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# ANSI color codes for log levels (if TTY)
_LOG_COLORS = {
	"DEBUG": "\033[36m",    # Cyan
	"INFO": "\033[32m",     # Green
	"WARNING": "\033[33m",  # Yellow
	"ERROR": "\033[31m",    # Red
	"CRITICAL": "\033[35m", # Magenta
}
_RESET = "\033[0m"


class _ColoredFormatter(logging.Formatter):
	"""Formatter that colors the level name on a TTY."""

	def format(self, record):
		orig_levelname = record.levelname
		color = _LOG_COLORS.get(orig_levelname)
		if color:
			record.levelname = f"{color}{orig_levelname:<8}{_RESET}"
		else:
			record.levelname = f"{orig_levelname:<8}"
		try:
			return super().format(record)
		finally:
			record.levelname = orig_levelname


def setup_logging(log_level: str = "INFO") -> None:
	"""Configure the root logger once for the whole process."""
	level = getattr(logging, log_level.upper(), logging.INFO)

	if sys.stdout.isatty():
		formatter: logging.Formatter = _ColoredFormatter(
			fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
			datefmt=DATE_FORMAT,
		)
	else:
		formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

	# force=True drops handlers installed by anything imported earlier
	logging.basicConfig(
		level=level,
		handlers=[logging.StreamHandler(sys.stdout)],
		force=True,
	)
	for handler in logging.root.handlers:
		handler.setFormatter(formatter)

	# The responder runs uvicorn in-process; route its loggers to ours
	for name in ("uvicorn", "uvicorn.error"):
		logger = logging.getLogger(name)
		logger.handlers.clear()
		logger.setLevel(level)
		logger.propagate = True

	for name in ("httpcore", "httpx", "uvicorn.access"):
		logging.getLogger(name).setLevel(logging.WARNING)
