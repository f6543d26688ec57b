#!/usr/bin/env python3
#
# acmed/acme/jws.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""JWS helpers for signing ACME requests with EC or RSA account keys."""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from ..errors import UnsupportedKeyType
from ..keys import SigningKey

__all__ = ["b64url", "jwk", "thumbprint", "algorithm", "sign", "encode"]

# curve name -> (JWS alg, JWK crv, hash, coordinate size in bytes)
_EC_PARAMS = {
	"secp256r1": ("ES256", "P-256", hashes.SHA256, 32),
	"secp384r1": ("ES384", "P-384", hashes.SHA384, 48),
	"secp521r1": ("ES512", "P-521", hashes.SHA512, 66),
}


def b64url(data: bytes) -> str:
	"""Base64url encode without padding."""
	return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _int_bytes(value: int) -> bytes:
	return value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")


def _ec_params(key: ec.EllipticCurvePrivateKey) -> tuple:
	params = _EC_PARAMS.get(key.curve.name)
	if params is None:
		raise UnsupportedKeyType(f"EC curve {key.curve.name}")
	return params


def jwk(key: SigningKey) -> dict:
	"""Public JWK of an account key."""
	if isinstance(key, ec.EllipticCurvePrivateKey):
		_, crv, _, size = _ec_params(key)
		numbers = key.public_key().public_numbers()
		return {
			"kty": "EC",
			"crv": crv,
			"x": b64url(numbers.x.to_bytes(size, "big")),
			"y": b64url(numbers.y.to_bytes(size, "big")),
		}
	if isinstance(key, rsa.RSAPrivateKey):
		numbers = key.public_key().public_numbers()
		return {
			"kty": "RSA",
			"e": b64url(_int_bytes(numbers.e)),
			"n": b64url(_int_bytes(numbers.n)),
		}
	raise UnsupportedKeyType(type(key).__name__)


def thumbprint(jwk_dict: dict) -> str:
	"""Calculate JWK thumbprint (RFC 7638)."""
	kty = jwk_dict.get("kty")
	if kty == "EC":
		canonical = {"crv": jwk_dict["crv"], "kty": "EC", "x": jwk_dict["x"], "y": jwk_dict["y"]}
	elif kty == "RSA":
		canonical = {"e": jwk_dict["e"], "kty": "RSA", "n": jwk_dict["n"]}
	else:
		raise ValueError(f"Unsupported key type: {kty}")

	canonical_json = json.dumps(canonical, separators=(",", ":"), sort_keys=True)
	return b64url(hashlib.sha256(canonical_json.encode("utf-8")).digest())


def algorithm(key: SigningKey) -> str:
	"""JWS alg name for key."""
	if isinstance(key, ec.EllipticCurvePrivateKey):
		return _ec_params(key)[0]
	if isinstance(key, rsa.RSAPrivateKey):
		return "RS256"
	raise UnsupportedKeyType(type(key).__name__)


def sign(key: SigningKey, signing_input: bytes) -> bytes:
	"""Raw JWS signature; EC signatures are r || s at fixed width."""
	if isinstance(key, ec.EllipticCurvePrivateKey):
		_, _, hash_cls, size = _ec_params(key)
		sig_der = key.sign(signing_input, ec.ECDSA(hash_cls()))
		r, s = decode_dss_signature(sig_der)
		return r.to_bytes(size, "big") + s.to_bytes(size, "big")
	if isinstance(key, rsa.RSAPrivateKey):
		return key.sign(signing_input, padding.PKCS1v15(), hashes.SHA256())
	raise UnsupportedKeyType(type(key).__name__)


def encode(
	key: SigningKey,
	payload: Optional[dict],
	*,
	nonce: str,
	url: str,
	kid: Optional[str] = None,
) -> dict:
	"""Build a flattened JWS body. payload None yields a POST-as-GET."""
	protected = {
		"alg": algorithm(key),
		"nonce": nonce,
		"url": url,
	}
	if kid:
		protected["kid"] = kid
	else:
		protected["jwk"] = jwk(key)

	protected_b64 = b64url(json.dumps(protected).encode("utf-8"))
	payload_b64 = "" if payload is None else b64url(json.dumps(payload).encode("utf-8"))

	signing_input = f"{protected_b64}.{payload_b64}".encode("ascii")
	return {
		"protected": protected_b64,
		"payload": payload_b64,
		"signature": b64url(sign(key, signing_input)),
	}
