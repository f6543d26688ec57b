#!/usr/bin/env python3
#
# acmed/authz.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Authorization flow: prove control of a domain with an http-01 challenge."""

from __future__ import annotations

import asyncio
import logging

from .acme import ACMEClient, Authorization
from .challenge import ChallengeResponder
from .errors import AuthorizationTimeout, NoSupportedChallenge

_log = logging.getLogger(__name__)

__all__ = ["AUTHZ_TIMEOUT", "HTTP01", "authorize"]

AUTHZ_TIMEOUT = 600.0
HTTP01 = "http-01"


async def _authorize(client: ACMEClient, domain: str, address: str) -> Authorization:
	authz = await client.authorize(domain)
	if authz.status == "valid":
		_log.info("Authorization for %s is already valid", domain)
		return authz

	chal = authz.challenge(HTTP01)
	if chal is None:
		offered = ", ".join(c.type for c in authz.challenges) or "none"
		raise NoSupportedChallenge(f"no supported challenge found for {domain} (offered: {offered})")

	path = client.http01_path(chal.token)
	value = client.http01_response(chal.token)

	async with ChallengeResponder(address, path, value):
		await client.accept(chal)
		authz = await client.wait_authorization(authz.uri)

	_log.info("Authorization for %s is valid", domain)
	return authz


async def authorize(
	client: ACMEClient,
	domain: str,
	address: str,
	*,
	timeout: float = AUTHZ_TIMEOUT,
) -> Authorization:
	"""Run one authorization round for domain within timeout seconds.

	The challenge listener on address is released before this returns, on
	success, error and timeout alike.
	"""
	try:
		return await asyncio.wait_for(_authorize(client, domain, address), timeout=timeout)
	except asyncio.TimeoutError:
		raise AuthorizationTimeout(f"{domain}: authorization did not complete within {timeout:.0f}s") from None
