#!/usr/bin/env python3
#
# acmed/utils/config.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Configuration loading and resolved defaults.

acmed.json is validated once and resolved into an immutable Config in which
every optional field already carries its default.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ConfigValidationError

_log = logging.getLogger(__name__)

__all__ = [
	"CONFIG_FILE",
	"DEFAULT_ADDRESS",
	"DEFAULT_DIRECTORY_URL",
	"DEFAULT_EMAIL",
	"DEFAULT_REMAINING_DAYS",
	"DEFAULT_BUNDLE",
	"DEFAULT_INTERVAL_HOURS",
	"Config",
	"DomainConfig",
	"parse_address",
	"resolve_log_level",
	"load_config",
]

CONFIG_FILE = "acmed.json"

DEFAULT_ADDRESS = "0.0.0.0:4402"
DEFAULT_DIRECTORY_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"
DEFAULT_EMAIL = "email@example.com"
DEFAULT_REMAINING_DAYS = 21
DEFAULT_BUNDLE = True
DEFAULT_INTERVAL_HOURS = 24.0

_ALLOWED_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DOMAIN_RE = re.compile(
	r"^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*$"
)


@dataclass(frozen=True)
class DomainConfig:
	"""One managed web domain, fully populated."""
	domain: str
	email: str = DEFAULT_EMAIL
	directory_url: str = DEFAULT_DIRECTORY_URL
	remaining_days: int = DEFAULT_REMAINING_DAYS
	bundle: bool = DEFAULT_BUNDLE


@dataclass(frozen=True)
class Config:
	"""Resolved runtime configuration."""
	base_dir: Path
	address: str = DEFAULT_ADDRESS
	webs: tuple[DomainConfig, ...] = ()
	log_level: str = "INFO"
	interval_hours: float = DEFAULT_INTERVAL_HOURS


# ---------------------------------------------------------------------------
# acmed.json schema
# ---------------------------------------------------------------------------

class _WebFile(BaseModel):
	"""One entry of server.webs; unset or empty values fall back to defaults."""
	model_config = ConfigDict(extra="ignore")

	domain: Optional[str] = None
	email: Optional[str] = None
	disco: Optional[str] = None
	remaining: Optional[int] = Field(None, ge=0)
	bundle: Optional[bool] = None

	@field_validator("domain")
	@classmethod
	def domain_valid(cls, v: Optional[str]) -> Optional[str]:
		if v is None:
			return v
		v = v.strip().lower()
		if v and not _DOMAIN_RE.fullmatch(v):
			raise ValueError(f"invalid domain name {v!r}")
		return v

	@field_validator("email")
	@classmethod
	def email_valid(cls, v: Optional[str]) -> Optional[str]:
		if v and not _EMAIL_RE.fullmatch(v):
			raise ValueError(f"invalid email address {v!r}")
		return v


class _ServerFile(BaseModel):
	model_config = ConfigDict(extra="ignore")

	address: Optional[str] = None
	webs: list[_WebFile] = Field(default_factory=list)


class _ConfigFile(BaseModel):
	model_config = ConfigDict(extra="ignore")

	server: _ServerFile = Field(default_factory=_ServerFile)


def parse_address(address: str) -> tuple[str, int]:
	"""Split 'host:port' (or '[v6]:port') into its parts."""
	host, sep, port_str = address.rpartition(":")
	if not sep or not port_str.isdigit():
		raise ConfigValidationError(f"invalid listen address {address!r}, expected host:port")
	port = int(port_str)
	if port > 65535:
		raise ConfigValidationError(f"invalid port in listen address {address!r}")
	if host.startswith("[") and host.endswith("]"):
		host = host[1:-1]
	return host or "0.0.0.0", port


def resolve_log_level(value: Optional[str]) -> str:
	level = (value or "INFO").upper()
	return level if level in _ALLOWED_LEVELS else "INFO"


def _resolve_web(index: int, web: _WebFile) -> DomainConfig:
	if not web.domain:
		raise ConfigValidationError(f"Domain of web #{index} is required.")
	return DomainConfig(
		domain=web.domain,
		email=web.email or DEFAULT_EMAIL,
		directory_url=web.disco or DEFAULT_DIRECTORY_URL,
		remaining_days=DEFAULT_REMAINING_DAYS if web.remaining is None else web.remaining,
		bundle=DEFAULT_BUNDLE if web.bundle is None else web.bundle,
	)


def load_config(
	config_dir: Optional[Path] = None,
	*,
	address: Optional[str] = None,
	log_level: Optional[str] = None,
	interval_hours: Optional[float] = None,
) -> Config:
	"""Load <config_dir>/acmed.json and resolve it into a Config.

	config_dir defaults to $ACMED_CONFIG_DIR, then the working directory.
	address/log_level/interval_hours override the file and environment.
	"""
	base_dir = Path(config_dir or os.getenv("ACMED_CONFIG_DIR", "./")).resolve()
	config_path = base_dir / CONFIG_FILE

	try:
		raw = json.loads(config_path.read_text(encoding="utf-8"))
		parsed = _ConfigFile.model_validate(raw)
	except FileNotFoundError as exc:
		raise ConfigValidationError(f"Config file not found: {config_path}") from exc
	except json.JSONDecodeError as exc:
		raise ConfigValidationError(f"acmed config: {exc}") from exc
	except ValidationError as exc:
		raise ConfigValidationError(f"acmed config: {exc}") from exc
	except OSError as exc:
		raise ConfigValidationError(f"Cannot read {config_path}: {exc}") from exc

	webs = tuple(_resolve_web(i, web) for i, web in enumerate(parsed.server.webs))
	seen: set[str] = set()
	for web in webs:
		if web.domain in seen:
			raise ConfigValidationError(f"Domain {web.domain!r} is configured more than once")
		seen.add(web.domain)

	resolved_address = address or parsed.server.address or DEFAULT_ADDRESS
	parse_address(resolved_address)

	hours = DEFAULT_INTERVAL_HOURS if interval_hours is None else interval_hours
	if hours <= 0:
		raise ConfigValidationError(f"interval must be positive, got {hours}")

	if not webs:
		_log.warning("No webs configured in %s", config_path)

	return Config(
		base_dir=base_dir,
		address=resolved_address,
		webs=webs,
		log_level=resolve_log_level(log_level or os.getenv("LOG_LEVEL")),
		interval_hours=hours,
	)
