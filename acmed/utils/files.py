#!/usr/bin/env python3
#
# acmed/utils/files.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Durable file writes for keys, certificates and account state."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

__all__ = ["atomic_write"]


def atomic_write(path: Path, data: bytes, mode: int = 0o600) -> None:
	"""Write data to path so readers see either the old or the new content.

	The temp file lives in the target directory so the final rename stays on
	one filesystem. Parent directories are created with 0755.
	"""
	path = Path(path)
	path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)

	fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
	fd_closed = False
	try:
		os.write(fd, data)
		os.fchmod(fd, mode)
		os.fsync(fd)
		os.close(fd)
		fd_closed = True
		os.replace(temp_path, str(path))
	except BaseException:
		if not fd_closed:
			os.close(fd)
		try:
			os.unlink(temp_path)
		except OSError:
			pass
		raise
