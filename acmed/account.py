#!/usr/bin/env python3
#
# acmed/account.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Account manager: load or register the ACME account for one domain.

The persisted record and the account key are separate artifacts and are
joined only on the ACMEClient. Reuse requires both to be present, the record's
CA to be the configured directory and its first contact the configured email.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .acme import ACMEClient
from .keys import SigningKey, load_or_generate, read_key
from .layout import DomainPaths
from .utils.config import DomainConfig
from .utils.files import atomic_write

_log = logging.getLogger(__name__)

__all__ = [
	"AccountRecord",
	"REGISTER_TIMEOUT",
	"contact_for",
	"read_account",
	"write_account",
	"ensure_account",
]

REGISTER_TIMEOUT = 60.0


class AccountRecord(BaseModel):
	"""CA-side account state as persisted in account.json (no key material)."""
	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	uri: str
	status: str = "valid"
	contact: list[str] = Field(default_factory=list)
	terms_of_service_agreed: bool = Field(default=False, alias="termsOfServiceAgreed")
	orders: Optional[str] = None
	ca: str = ""

	def matches(self, email: str) -> bool:
		"""Only the first contact entry is compared."""
		return bool(self.contact) and self.contact[0] == f"mailto:{email}"


def contact_for(email: str) -> list[str]:
	return [f"mailto:{email}"]


def read_account(path: Path) -> AccountRecord:
	"""Read account.json; raises FileNotFoundError or ValueError."""
	return AccountRecord.model_validate_json(Path(path).read_bytes())


def write_account(path: Path, record: AccountRecord) -> None:
	data = record.model_dump(by_alias=True)
	atomic_write(Path(path), json.dumps(data, indent=2).encode("utf-8"), mode=0o600)


def _load_existing(paths: DomainPaths, web: DomainConfig) -> tuple[Optional[AccountRecord], Optional[SigningKey]]:
	"""Return (record, key) if both exist and the record still fits web.

	An undecodable account.json is ignored; an undecodable account key raises
	KeyMaterialError.
	"""
	try:
		record = read_account(paths.account_json)
	except FileNotFoundError:
		return None, None
	except ValueError as exc:
		_log.warning("Ignoring unreadable %s: %s", paths.account_json, exc)
		return None, None

	if record.ca != web.directory_url:
		_log.info(
			"ACME directory for %s changed (%s -> %s), re-registering",
			paths.domain, record.ca or "unknown", web.directory_url,
		)
		return None, None
	if not record.matches(web.email):
		_log.info(
			"Account contact for %s changed (%s -> mailto:%s), re-registering",
			paths.domain, record.contact[0] if record.contact else "none", web.email,
		)
		return None, None

	try:
		key = read_key(paths.account_key)
	except FileNotFoundError:
		return None, None
	return record, key


async def _register(client: ACMEClient, web: DomainConfig, paths: DomainPaths) -> AccountRecord:
	key = load_or_generate(paths.account_key)
	contact = contact_for(web.email)

	account = await client.register(key, contact)
	# The CA answers with the existing account for an already known key,
	# which may still carry the previous contact.
	if account.get("contact", [])[:1] != contact:
		account = await client.update_account(contact)

	return AccountRecord.model_validate({**account, "ca": web.directory_url})


async def ensure_account(
	client: ACMEClient,
	web: DomainConfig,
	paths: DomainPaths,
	*,
	timeout: float = REGISTER_TIMEOUT,
) -> AccountRecord:
	"""Bind client to a usable account for web and return its record.

	The fast path (record and key on disk, contact unchanged) makes no network
	call. Otherwise the account is registered with the configured contact and
	the returned state is persisted. Registration errors propagate unchanged.
	"""
	record, key = _load_existing(paths, web)
	if record is not None:
		client.use_account(key, record.uri)
		_log.debug("Reusing ACME account %s for %s", record.uri, web.domain)
		return record

	record = await asyncio.wait_for(_register(client, web, paths), timeout=timeout)
	write_account(paths.account_json, record)
	_log.info("Registered ACME account for %s: %s", web.domain, record.uri)
	return record
