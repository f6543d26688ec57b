#!/usr/bin/env python3
#
# acmed/keys.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Key store: read, generate and persist PEM private keys.

A key file, once written, is the source of truth for that key. Absence is the
only condition that triggers generation; any other read failure propagates.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from .errors import KeyMaterialError, UnsupportedKeyType
from .utils.files import atomic_write

_log = logging.getLogger(__name__)

__all__ = [
	"SigningKey",
	"RSA_PRIVATE_KEY",
	"EC_PRIVATE_KEY",
	"pem_block_type",
	"read_key",
	"write_key",
	"generate_key",
	"load_or_generate",
]

SigningKey = Union[ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey]

RSA_PRIVATE_KEY = "RSA PRIVATE KEY"
EC_PRIVATE_KEY = "EC PRIVATE KEY"
_SUPPORTED_KEY_BLOCKS = (RSA_PRIVATE_KEY, EC_PRIVATE_KEY)

_PEM_BEGIN_RE = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----")


def pem_block_type(data: bytes) -> str | None:
	"""Return the type label of the first PEM block in data, or None."""
	match = _PEM_BEGIN_RE.search(data)
	if not match:
		return None
	return match.group(1).decode("ascii")


def read_key(path: Path) -> SigningKey:
	"""Read a PEM-encoded RSA or EC private key from path.

	Raises:
		FileNotFoundError: path does not exist
		UnsupportedKeyType: first PEM block is not an RSA/EC private key
		KeyMaterialError: no PEM block, or the block does not decode
	"""
	path = Path(path)
	data = path.read_bytes()

	block_type = pem_block_type(data)
	if block_type is None:
		raise KeyMaterialError(f"no block found in {str(path)!r}")
	if block_type not in _SUPPORTED_KEY_BLOCKS:
		raise UnsupportedKeyType(block_type, path)

	try:
		key = serialization.load_pem_private_key(data, password=None)
	except (ValueError, TypeError) as exc:
		raise KeyMaterialError(f"cannot decode {block_type} in {str(path)!r}: {exc}") from exc

	if not isinstance(key, (ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey)):
		raise UnsupportedKeyType(type(key).__name__, path)
	return key


def write_key(path: Path, key: SigningKey) -> None:
	"""Write key to path in traditional OpenSSL PEM form with 0600 mode."""
	pem = key.private_bytes(
		encoding=serialization.Encoding.PEM,
		format=serialization.PrivateFormat.TraditionalOpenSSL,
		encryption_algorithm=serialization.NoEncryption(),
	)
	atomic_write(Path(path), pem, mode=0o600)


def generate_key() -> ec.EllipticCurvePrivateKey:
	"""Generate a new P-256 key."""
	return ec.generate_private_key(ec.SECP256R1())


def load_or_generate(path: Path) -> SigningKey:
	"""Return the key stored at path, generating and persisting one if absent."""
	path = Path(path)
	try:
		return read_key(path)
	except FileNotFoundError:
		pass

	key = generate_key()
	write_key(path, key)
	_log.info("Generated new P-256 key at %s", path)
	return key
