#!/usr/bin/env python3
#
# acmed/layout.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Per-domain on-disk layout under <base_dir>/webs/<domain>/."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

__all__ = ["DomainPaths", "WEBS_DIR"]

WEBS_DIR = "webs"


@dataclass(frozen=True)
class DomainPaths:
	"""Fixed file locations for one managed domain."""
	base_dir: Path
	domain: str

	@property
	def web_dir(self) -> Path:
		return Path(self.base_dir) / WEBS_DIR / self.domain

	@property
	def account_key(self) -> Path:
		return self.web_dir / "account.key"

	@property
	def account_json(self) -> Path:
		return self.web_dir / "account.json"

	@property
	def certificate_key(self) -> Path:
		return self.web_dir / f"{self.domain}.key"

	@property
	def certificate(self) -> Path:
		return self.web_dir / f"{self.domain}.crt"
