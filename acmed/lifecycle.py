#!/usr/bin/env python3
#
# acmed/lifecycle.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Lifecycle manager: the per-domain renewal driver.

For each configured web, in order:

1. read the stored certificate and skip the domain if renewal is not due
2. ensure the ACME account (may be a no-op)
3. load/generate the certificate key and build the CSR
4. authorize the domain over http-01
5. issue and write the certificate

Domains run strictly one after another because they share the challenge
listen address. A failure is recorded for that domain and the loop moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal, Optional

import httpx
from cryptography import x509

from .account import REGISTER_TIMEOUT, ensure_account
from .acme import ACMEClient
from .authz import AUTHZ_TIMEOUT, authorize
from .certs import common_name, load_if_valid, needs_renewal
from .errors import KeyMaterialError
from .issuance import ISSUE_TIMEOUT, build_csr, issue
from .keys import load_or_generate
from .layout import DomainPaths
from .utils.config import Config, DomainConfig

_log = logging.getLogger(__name__)

__all__ = ["DomainResult", "LifecycleManager"]

Outcome = Literal["skipped", "issued", "failed"]


@dataclass
class DomainResult:
	"""Outcome of one domain within one run."""
	domain: str
	outcome: Outcome
	error: Optional[str] = None
	not_after: Optional[datetime] = None


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class LifecycleManager:
	"""Runs the certificate lifecycle for every configured domain.

	validity, when set, is sent with each order as notAfter = now + validity.
	Leave it None for Let's Encrypt, which rejects orders carrying notAfter.
	"""

	def __init__(
		self,
		config: Config,
		*,
		transport: Optional[httpx.AsyncBaseTransport] = None,
		poll_interval: float = 2.0,
		register_timeout: float = REGISTER_TIMEOUT,
		authz_timeout: float = AUTHZ_TIMEOUT,
		issue_timeout: float = ISSUE_TIMEOUT,
		validity: Optional[timedelta] = None,
		clock: Callable[[], datetime] = _utcnow,
	):
		self.config = config
		self.register_timeout = register_timeout
		self.authz_timeout = authz_timeout
		self.issue_timeout = issue_timeout
		self.validity = validity
		self._transport = transport
		self._poll_interval = poll_interval
		self._clock = clock

	async def run(self) -> list[DomainResult]:
		"""Process every configured domain sequentially."""
		results = []
		for web in self.config.webs:
			results.append(await self.renew(web))

		issued = sum(1 for r in results if r.outcome == "issued")
		failed = sum(1 for r in results if r.outcome == "failed")
		_log.info("Run finished: %d domains, %d issued, %d failed", len(results), issued, failed)
		return results

	async def renew(self, web: DomainConfig) -> DomainResult:
		"""Renew one domain if due. Never raises for per-domain failures."""
		_log.info("Get cert of %s...", web.domain)
		try:
			return await self._renew(web)
		except Exception as exc:
			_log.error("%s: %s", web.domain, exc, exc_info=_log.isEnabledFor(logging.DEBUG))
			return DomainResult(domain=web.domain, outcome="failed", error=f"{type(exc).__name__}: {exc}")

	def _current_certificate(self, web: DomainConfig, paths: DomainPaths) -> Optional[x509.Certificate]:
		"""Stored certificate, or None when missing, unreadable or for another name."""
		try:
			cert = load_if_valid(paths.certificate)
		except KeyMaterialError as exc:
			_log.warning("Existing certificate for %s is unusable, reissuing: %s", web.domain, exc)
			return None
		if cert is None:
			return None

		cn = common_name(cert)
		if cn != web.domain:
			_log.warning("Existing certificate %s is for %r, not %r; reissuing", paths.certificate, cn, web.domain)
			return None
		return cert

	async def _renew(self, web: DomainConfig) -> DomainResult:
		paths = DomainPaths(self.config.base_dir, web.domain)

		cert = self._current_certificate(web, paths)
		not_after = cert.not_valid_after_utc if cert is not None else None
		if not needs_renewal(not_after, web.remaining_days, self._clock()):
			_log.info("cert of %s is still valid until %s, not renewing", web.domain, not_after)
			return DomainResult(domain=web.domain, outcome="skipped", not_after=not_after)

		async with ACMEClient(
			web.directory_url,
			transport=self._transport,
			poll_interval=self._poll_interval,
		) as client:
			await ensure_account(client, web, paths, timeout=self.register_timeout)

			# CSR before any authorization so a bad key fails fast
			cert_key = load_or_generate(paths.certificate_key)
			csr = build_csr(web.domain, cert_key)

			await authorize(client, web.domain, self.config.address, timeout=self.authz_timeout)

			requested = self._clock() + self.validity if self.validity else None
			pem = await issue(
				client,
				web.domain,
				cert_key,
				web.bundle,
				paths.certificate,
				csr=csr,
				not_after=requested,
				timeout=self.issue_timeout,
			)

		issued = x509.load_pem_x509_certificate(pem)
		_log.info("Issued certificate for %s, valid until %s", web.domain, issued.not_valid_after_utc)
		return DomainResult(domain=web.domain, outcome="issued", not_after=issued.not_valid_after_utc)
