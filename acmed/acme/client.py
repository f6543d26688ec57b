#!/usr/bin/env python3
#
# acmed/acme/client.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Lightweight async ACME v2 client.

Each remote operation is one method. Orchestration and deadlines belong to the
flows that call these methods (account, authz, issuance).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .. import __version__
from ..errors import ACMEError, AuthorizationError, IssuanceError
from ..keys import SigningKey
from . import jws
from .models import Authorization, Challenge, Order, problem_text

_log = logging.getLogger(__name__)

__all__ = ["ACMEClient", "HTTP01_PATH_PREFIX"]

HTTP01_PATH_PREFIX = "/.well-known/acme-challenge/"

_BAD_NONCE = "urn:ietf:params:acme:error:badNonce"
_AUTHZ_FAILED = ("invalid", "deactivated", "expired", "revoked")
_PEM_CHAIN = "application/pem-certificate-chain"


def _problem(resp: httpx.Response) -> dict:
	try:
		body = resp.json()
	except ValueError:
		return {"detail": resp.text}
	return body if isinstance(body, dict) else {"detail": resp.text}


def _raise_for_acme(resp: httpx.Response, what: str, expected: tuple[int, ...], error_cls: type[ACMEError] = ACMEError) -> None:
	"""Turn a non-expected response into an ACMEError carrying the problem doc."""
	if resp.status_code in expected:
		return
	problem = _problem(resp)
	raise error_cls(
		f"{what}: {problem_text(problem) or resp.status_code}",
		status=resp.status_code,
		type=problem.get("type"),
		detail=problem.get("detail"),
	)


class ACMEClient:
	"""Async ACME v2 client bound to one directory URL and one account key."""

	def __init__(
		self,
		directory_url: str,
		*,
		transport: Optional[httpx.AsyncBaseTransport] = None,
		timeout: float = 30.0,
		poll_interval: float = 2.0,
	):
		self.directory_url = directory_url
		self.poll_interval = poll_interval
		self.directory: dict = {}
		self.account_url: Optional[str] = None
		self.http_client: Optional[httpx.AsyncClient] = None
		self._timeout = timeout
		self._transport = transport
		self._nonce: Optional[str] = None
		self._key: Optional[SigningKey] = None

	async def __aenter__(self):
		self.http_client = httpx.AsyncClient(
			timeout=self._timeout,
			transport=self._transport,
			headers={"User-Agent": f"acmed/{__version__}"},
		)
		return self

	async def __aexit__(self, *args):
		if self.http_client:
			await self.http_client.aclose()
			self.http_client = None

	# ------------------------------------------------------------------
	# Account binding
	# ------------------------------------------------------------------

	def use_account(self, key: SigningKey, account_url: Optional[str] = None) -> None:
		"""Sign subsequent requests with key (and kid=account_url once known)."""
		self._key = key
		self.account_url = account_url

	@property
	def account_key(self) -> SigningKey:
		if self._key is None:
			raise RuntimeError("Account key not loaded")
		return self._key

	# ------------------------------------------------------------------
	# Transport
	# ------------------------------------------------------------------

	def _http(self) -> httpx.AsyncClient:
		if not self.http_client:
			raise RuntimeError("HTTP client not initialized")
		return self.http_client

	async def _fetch_directory(self) -> dict:
		"""Fetch the ACME directory once per client."""
		if self.directory:
			return self.directory
		resp = await self._http().get(self.directory_url)
		_raise_for_acme(resp, "fetch directory", (200,))
		self.directory = resp.json()
		return self.directory

	async def _endpoint(self, name: str) -> str:
		directory = await self._fetch_directory()
		url = directory.get(name)
		if not url:
			raise ACMEError(f"directory {self.directory_url} has no {name!r} endpoint")
		return url

	async def _get_nonce(self) -> str:
		"""Get a fresh nonce, reusing the last Replay-Nonce if we have one."""
		if self._nonce:
			nonce = self._nonce
			self._nonce = None
			return nonce

		url = await self._endpoint("newNonce")
		resp = await self._http().head(url)
		if "Replay-Nonce" not in resp.headers:
			# Some servers only answer GET on newNonce
			resp = await self._http().get(url)
		if "Replay-Nonce" not in resp.headers:
			raise ACMEError("Failed to obtain ACME nonce", status=resp.status_code)
		return resp.headers["Replay-Nonce"]

	async def _signed_request(
		self,
		url: str,
		payload: Optional[dict],
		*,
		accept: Optional[str] = None,
	) -> httpx.Response:
		"""POST a JWS to url; payload None is a POST-as-GET.

		A badNonce rejection is replayed once with the nonce the server just
		handed out.
		"""
		headers = {"Content-Type": "application/jose+json"}
		if accept:
			headers["Accept"] = accept

		for attempt in range(2):
			nonce = await self._get_nonce()
			body = jws.encode(self.account_key, payload, nonce=nonce, url=url, kid=self.account_url)
			resp = await self._http().post(url, json=body, headers=headers)

			if "Replay-Nonce" in resp.headers:
				self._nonce = resp.headers["Replay-Nonce"]

			if resp.status_code == 400 and attempt == 0 and _problem(resp).get("type") == _BAD_NONCE:
				_log.debug("Retrying %s after badNonce", url)
				continue
			return resp
		return resp

	def _retry_after(self, resp: httpx.Response) -> float:
		value = resp.headers.get("Retry-After", "")
		try:
			return max(float(value), 0.0)
		except ValueError:
			return self.poll_interval

	# ------------------------------------------------------------------
	# Accounts
	# ------------------------------------------------------------------

	async def register(self, key: SigningKey, contact: list[str]) -> dict:
		"""Register (or look up) the account for key, agreeing to the ToS.

		Returns the account object with its URL under "uri".
		"""
		self.use_account(key)
		url = await self._endpoint("newAccount")
		payload = {
			"termsOfServiceAgreed": True,
			"contact": contact,
		}
		resp = await self._signed_request(url, payload)
		_raise_for_acme(resp, "register account", (200, 201))

		account_url = resp.headers.get("Location")
		if not account_url:
			raise ACMEError("No account URL in response", status=resp.status_code)
		self.account_url = account_url

		account = resp.json()
		account["uri"] = account_url
		_log.info("ACME account %s (%s)", account_url, "created" if resp.status_code == 201 else "existing")
		return account

	async def update_account(self, contact: list[str]) -> dict:
		"""Replace the contact list of the bound account."""
		if not self.account_url:
			raise RuntimeError("No account bound")
		resp = await self._signed_request(self.account_url, {"contact": contact})
		_raise_for_acme(resp, "update account", (200,))
		account = resp.json()
		account["uri"] = self.account_url
		return account

	# ------------------------------------------------------------------
	# Authorizations
	# ------------------------------------------------------------------

	async def authorize(self, domain: str) -> Authorization:
		"""Obtain an authorization for domain.

		Uses pre-authorization when the directory offers newAuthz, otherwise
		opens an order for the domain and returns its authorization.
		"""
		directory = await self._fetch_directory()
		identifier = {"type": "dns", "value": domain}

		if directory.get("newAuthz"):
			resp = await self._signed_request(directory["newAuthz"], {"identifier": identifier})
			_raise_for_acme(resp, f"authorize {domain}", (200, 201))
			uri = resp.headers.get("Location", "")
			return Authorization.model_validate({**resp.json(), "uri": uri})

		order = await self.new_order(domain)
		if not order.authorizations:
			raise ACMEError(f"No authorizations in order for {domain}")
		return await self.get_authorization(order.authorizations[0])

	async def _fetch_authorization(self, url: str) -> tuple[Authorization, httpx.Response]:
		resp = await self._signed_request(url, None)
		_raise_for_acme(resp, "get authorization", (200,))
		return Authorization.model_validate({**resp.json(), "uri": url}), resp

	async def get_authorization(self, url: str) -> Authorization:
		authz, _ = await self._fetch_authorization(url)
		return authz

	async def accept(self, challenge: Challenge) -> Challenge:
		"""Tell the CA the challenge response is in place."""
		resp = await self._signed_request(challenge.url, {})
		_raise_for_acme(resp, "accept challenge", (200, 202))
		return Challenge.model_validate(resp.json())

	async def wait_authorization(self, url: str) -> Authorization:
		"""Poll url until the authorization is valid; raise if it fails."""
		while True:
			authz, resp = await self._fetch_authorization(url)
			if authz.status == "valid":
				return authz
			if authz.status in _AUTHZ_FAILED:
				raise AuthorizationError(
					f"authorization {authz.status}: {authz.failure_detail()}",
					status=resp.status_code,
				)
			await asyncio.sleep(self._retry_after(resp))

	def http01_response(self, token: str) -> str:
		"""Key authorization served for an http-01 token."""
		return f"{token}.{jws.thumbprint(jws.jwk(self.account_key))}"

	@staticmethod
	def http01_path(token: str) -> str:
		return HTTP01_PATH_PREFIX + token

	# ------------------------------------------------------------------
	# Orders
	# ------------------------------------------------------------------

	async def new_order(self, domain: str, not_after: Optional[datetime] = None) -> Order:
		"""Create an order for a single dns identifier."""
		url = await self._endpoint("newOrder")
		payload: dict = {"identifiers": [{"type": "dns", "value": domain}]}
		if not_after is not None:
			payload["notAfter"] = not_after.isoformat().replace("+00:00", "Z")

		resp = await self._signed_request(url, payload)
		_raise_for_acme(resp, f"create order for {domain}", (200, 201))
		return Order.model_validate({**resp.json(), "uri": resp.headers.get("Location", "")})

	async def _fetch_order(self, url: str) -> tuple[Order, httpx.Response]:
		resp = await self._signed_request(url, None)
		_raise_for_acme(resp, "get order", (200,), IssuanceError)
		return Order.model_validate({**resp.json(), "uri": url}), resp

	async def wait_order(self, url: str, until: tuple[str, ...] = ("ready", "valid")) -> Order:
		"""Poll the order until its status is one of until."""
		while True:
			order, resp = await self._fetch_order(url)
			if order.status in until:
				return order
			if order.status == "invalid":
				raise IssuanceError(
					f"order invalid: {problem_text(order.error) or 'no detail'}",
					status=resp.status_code,
				)
			await asyncio.sleep(self._retry_after(resp))

	async def finalize(self, order: Order, csr_der: bytes) -> Order:
		"""Submit the CSR for a ready order."""
		resp = await self._signed_request(order.finalize, {"csr": jws.b64url(csr_der)})
		_raise_for_acme(resp, "finalize order", (200,), IssuanceError)
		return Order.model_validate({**resp.json(), "uri": order.uri})

	async def fetch_certificate(self, url: str, bundle: bool = True) -> list[bytes]:
		"""Download the issued chain as DER certificates, leaf first."""
		resp = await self._signed_request(url, None, accept=_PEM_CHAIN)
		_raise_for_acme(resp, "download certificate", (200,), IssuanceError)

		try:
			certs = x509.load_pem_x509_certificates(resp.content)
		except ValueError as exc:
			raise IssuanceError(f"CA returned an unreadable certificate chain: {exc}") from exc
		if not bundle:
			certs = certs[:1]
		return [cert.public_bytes(serialization.Encoding.DER) for cert in certs]
