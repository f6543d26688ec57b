#!/usr/bin/env python3
#
# acmed/issuance.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Issuance flow: CSR, order finalization and certificate retrieval."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from .acme import ACMEClient
from .certs import der_chain_to_pem, write_certificate
from .errors import IssuanceError, IssuanceTimeout
from .keys import SigningKey

_log = logging.getLogger(__name__)

__all__ = ["ISSUE_TIMEOUT", "build_csr", "issue"]

ISSUE_TIMEOUT = 1800.0


def build_csr(domain: str, key: SigningKey) -> bytes:
	"""DER CSR for domain as CN (and its single SAN), signed with key."""
	csr = (
		x509.CertificateSigningRequestBuilder()
		.subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)]))
		.add_extension(
			x509.SubjectAlternativeName([x509.DNSName(domain)]),
			critical=False,
		)
		.sign(key, hashes.SHA256())
	)
	return csr.public_bytes(serialization.Encoding.DER)


async def _issue(
	client: ACMEClient,
	domain: str,
	csr: bytes,
	bundle: bool,
	not_after: Optional[datetime],
) -> bytes:
	order = await client.new_order(domain, not_after)
	if order.status != "valid":
		if not order.uri:
			raise IssuanceError(f"No order URL for {domain}")
		order = await client.wait_order(order.uri, ("ready", "valid"))
	if order.status == "ready":
		order = await client.finalize(order, csr)
		if order.status != "valid":
			order = await client.wait_order(order.uri, ("valid",))

	if not order.certificate:
		raise IssuanceError(f"No certificate URL in order for {domain}")

	chain = await client.fetch_certificate(order.certificate, bundle)
	if not chain:
		raise IssuanceError(f"CA returned no certificate for {domain}")
	return der_chain_to_pem(chain)


async def issue(
	client: ACMEClient,
	domain: str,
	certificate_key: SigningKey,
	bundle: bool,
	cert_path: Path,
	*,
	csr: Optional[bytes] = None,
	not_after: Optional[datetime] = None,
	timeout: float = ISSUE_TIMEOUT,
) -> bytes:
	"""Obtain a certificate for an authorized domain and write it to cert_path.

	The file is only replaced once the whole chain is in hand. Returns the PEM
	bytes written, leaf first.
	"""
	if csr is None:
		csr = build_csr(domain, certificate_key)

	try:
		pem = await asyncio.wait_for(_issue(client, domain, csr, bundle, not_after), timeout=timeout)
	except asyncio.TimeoutError:
		raise IssuanceTimeout(f"{domain}: issuance did not complete within {timeout:.0f}s") from None

	write_certificate(cert_path, pem)
	return pem
