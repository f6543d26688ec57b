#!/usr/bin/env python3
#
# acmed/certs.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Certificate store: read issued certificates and decide on renewal."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from .errors import KeyMaterialError, UnsupportedBlockType
from .keys import pem_block_type
from .utils.files import atomic_write

_log = logging.getLogger(__name__)

__all__ = [
	"CERTIFICATE",
	"load_if_valid",
	"needs_renewal",
	"common_name",
	"der_chain_to_pem",
	"write_certificate",
]

CERTIFICATE = "CERTIFICATE"


def load_if_valid(path: Path) -> x509.Certificate | None:
	"""Load the leaf certificate stored at path.

	Returns None when the file does not exist (never issued). Decode failures
	are raised so the caller can decide to reissue.
	"""
	path = Path(path)
	try:
		data = path.read_bytes()
	except FileNotFoundError:
		return None

	block_type = pem_block_type(data)
	if block_type is None:
		raise KeyMaterialError(f"no block found in {str(path)!r}")
	if block_type != CERTIFICATE:
		raise UnsupportedBlockType(block_type, path)

	try:
		return x509.load_pem_x509_certificate(data)
	except ValueError as exc:
		raise KeyMaterialError(f"cannot decode certificate in {str(path)!r}: {exc}") from exc


def needs_renewal(not_after: datetime | None, remaining_days: int, now: datetime | None = None) -> bool:
	"""True unless the certificate outlives now by more than remaining_days.

	A missing certificate (not_after None) always needs renewal. Exactly
	remaining_days left counts as due.
	"""
	if not_after is None:
		return True
	now = now or datetime.now(timezone.utc)
	return not (not_after - now > timedelta(days=remaining_days))


def common_name(cert: x509.Certificate) -> str | None:
	"""Subject CN of cert, if present."""
	attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
	if not attrs:
		return None
	value = attrs[0].value
	return value.decode("utf-8") if isinstance(value, bytes) else value


def der_chain_to_pem(chain: list[bytes]) -> bytes:
	"""PEM-encode each DER certificate and concatenate in order."""
	pem = b""
	for der in chain:
		cert = x509.load_der_x509_certificate(der)
		pem += cert.public_bytes(serialization.Encoding.PEM)
	return pem


def write_certificate(path: Path, pem: bytes) -> None:
	"""Replace the certificate file; it is public, so 0644."""
	atomic_write(Path(path), pem, mode=0o644)
	_log.info("Wrote certificate %s", path)
