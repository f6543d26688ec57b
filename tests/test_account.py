"""Account registration and reuse."""

import json
import os
import stat
from dataclasses import replace

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from acmed.account import ensure_account, read_account
from acmed.acme import ACMEClient
from acmed.errors import ACMEError, UnsupportedKeyType
from acmed.keys import generate_key, write_key

from tests.fake_ca import FakeCA


def _client(ca: FakeCA) -> ACMEClient:
	return ACMEClient(ca.directory_url, transport=ca.transport(), poll_interval=0.01)


@pytest.mark.asyncio
async def test_new_account_is_registered_and_persisted(fake_ca, web, paths):
	async with _client(fake_ca) as client:
		record = await ensure_account(client, web, paths)
		assert client.account_url == record.uri

	assert record.uri in fake_ca.accounts
	assert record.contact == ["mailto:admin@example.com"]
	assert record.terms_of_service_agreed is True
	assert record.ca == web.directory_url

	stored = json.loads(paths.account_json.read_text())
	assert stored["uri"] == record.uri
	assert stored["termsOfServiceAgreed"] is True
	assert "key" not in stored
	assert stat.S_IMODE(os.stat(paths.account_json).st_mode) == 0o600
	assert stat.S_IMODE(os.stat(paths.account_key).st_mode) == 0o600


@pytest.mark.asyncio
async def test_existing_account_is_reused_without_network(fake_ca, web, paths):
	async with _client(fake_ca) as client:
		first = await ensure_account(client, web, paths)
	key_pem = paths.account_key.read_bytes()

	other_ca = FakeCA()
	async with _client(other_ca) as client:
		second = await ensure_account(client, web, paths)
		assert client.account_url == first.uri

	assert second.uri == first.uri
	assert other_ca.requests == []
	assert paths.account_key.read_bytes() == key_pem


@pytest.mark.asyncio
async def test_changed_email_reregisters_with_same_key(fake_ca, web, paths):
	async with _client(fake_ca) as client:
		first = await ensure_account(client, web, paths)
	key_pem = paths.account_key.read_bytes()

	changed = replace(web, email="new@example.com")
	async with _client(fake_ca) as client:
		second = await ensure_account(client, changed, paths)

	assert second.uri == first.uri
	assert second.contact == ["mailto:new@example.com"]
	assert fake_ca.accounts[first.uri]["contact"] == ["mailto:new@example.com"]
	assert fake_ca.posts("/acct/") == 1
	assert read_account(paths.account_json).contact == ["mailto:new@example.com"]
	assert paths.account_key.read_bytes() == key_pem


@pytest.mark.asyncio
async def test_missing_record_with_existing_key_keeps_key(fake_ca, web, paths):
	key = generate_key()
	write_key(paths.account_key, key)
	key_pem = paths.account_key.read_bytes()

	async with _client(fake_ca) as client:
		record = await ensure_account(client, web, paths)

	assert paths.account_key.read_bytes() == key_pem
	assert paths.account_json.exists()
	assert record.uri in fake_ca.accounts


@pytest.mark.asyncio
async def test_corrupt_record_is_replaced(fake_ca, web, paths):
	paths.web_dir.mkdir(parents=True)
	paths.account_json.write_text("{not json")

	async with _client(fake_ca) as client:
		record = await ensure_account(client, web, paths)

	assert read_account(paths.account_json).uri == record.uri


@pytest.mark.asyncio
async def test_rejected_registration_raises_and_writes_no_record(web, paths):
	ca = FakeCA(reject_accounts=True)

	async with _client(ca) as client:
		with pytest.raises(ACMEError) as excinfo:
			await ensure_account(client, web, paths)

	assert excinfo.value.status == 403
	assert excinfo.value.type == "urn:ietf:params:acme:error:unauthorized"
	assert not paths.account_json.exists()


@pytest.mark.asyncio
async def test_changed_directory_reregisters_with_same_key(fake_ca, web, paths):
	async with _client(fake_ca) as client:
		first = await ensure_account(client, web, paths)
	key_pem = paths.account_key.read_bytes()

	production = FakeCA(base="https://prod-ca.test")
	moved = replace(web, directory_url=production.directory_url)
	async with _client(production) as client:
		second = await ensure_account(client, moved, paths)

	assert second.uri != first.uri
	assert second.uri in production.accounts
	assert second.ca == production.directory_url
	assert read_account(paths.account_json).ca == production.directory_url
	assert paths.account_key.read_bytes() == key_pem


@pytest.mark.asyncio
async def test_unsupported_account_key_fails(fake_ca, web, paths):
	async with _client(fake_ca) as client:
		await ensure_account(client, web, paths)
	pkcs8 = ec.generate_private_key(ec.SECP256R1()).private_bytes(
		serialization.Encoding.PEM,
		serialization.PrivateFormat.PKCS8,
		serialization.NoEncryption(),
	)
	paths.account_key.write_bytes(pkcs8)
	requests_before = len(fake_ca.requests)

	async with _client(fake_ca) as client:
		with pytest.raises(UnsupportedKeyType):
			await ensure_account(client, web, paths)

	assert len(fake_ca.requests) == requests_before
