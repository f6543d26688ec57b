#!/usr/bin/env python3
#
# acmed/errors.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Exception hierarchy shared by all acmed components."""

from __future__ import annotations

__all__ = [
	"AcmedError",
	"ConfigValidationError",
	"KeyMaterialError",
	"UnsupportedKeyType",
	"UnsupportedBlockType",
	"ACMEError",
	"NoSupportedChallenge",
	"AuthorizationError",
	"AuthorizationTimeout",
	"IssuanceError",
	"IssuanceTimeout",
	"ChallengeListenError",
]


class AcmedError(Exception):
	"""Base class for every error raised by acmed itself."""


class ConfigValidationError(AcmedError):
	"""Raised when critical configuration is missing or invalid."""


class KeyMaterialError(AcmedError):
	"""A key or certificate file exists but cannot be decoded."""


class UnsupportedKeyType(KeyMaterialError):
	"""PEM block holds something other than an RSA or EC private key."""

	def __init__(self, block_type: str, path: object = None):
		self.block_type = block_type
		self.path = path
		where = f" in {str(path)!r}" if path is not None else ""
		super().__init__(f"{block_type!r} is unsupported{where}")


class UnsupportedBlockType(KeyMaterialError):
	"""PEM block holds something other than a certificate."""

	def __init__(self, block_type: str, path: object = None):
		self.block_type = block_type
		self.path = path
		where = f" in {str(path)!r}" if path is not None else ""
		super().__init__(f"{block_type!r} is unsupported{where}")


class ACMEError(AcmedError):
	"""ACME server returned a problem document or an unexpected response."""

	def __init__(self, message: str, *, status: int | None = None, type: str | None = None, detail: str | None = None):
		super().__init__(message)
		self.status = status
		self.type = type
		self.detail = detail


class NoSupportedChallenge(ACMEError):
	"""Authorization offers no http-01 challenge."""


class AuthorizationError(ACMEError):
	"""Authorization resolved to a terminal status other than valid."""


class AuthorizationTimeout(AuthorizationError):
	"""Authorization did not resolve before the flow deadline."""


class IssuanceError(ACMEError):
	"""Order could not be finalized or the certificate not retrieved."""


class IssuanceTimeout(IssuanceError):
	"""Issuance did not complete before the flow deadline."""


class ChallengeListenError(AcmedError):
	"""The challenge responder could not bind or start on its address."""
