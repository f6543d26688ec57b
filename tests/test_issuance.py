"""Issuance: CSR, finalize and chain download."""

import os
import stat
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.x509.oid import NameOID

from acmed.acme import ACMEClient
from acmed.errors import IssuanceError, IssuanceTimeout
from acmed.issuance import build_csr, issue
from acmed.keys import generate_key

from tests.fake_ca import FakeCA, make_certificate, write_certificate_file

DOMAIN = "example.com"


async def _authorized(client: ACMEClient, ca: FakeCA) -> None:
	await client.register(generate_key(), ["mailto:admin@example.com"])
	ca.preauthorize(client.account_url, DOMAIN)


def test_csr_carries_domain_as_cn_and_san():
	key = generate_key()

	csr = x509.load_der_x509_csr(build_csr(DOMAIN, key))

	assert csr.is_signature_valid
	assert csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == DOMAIN
	san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
	assert san.get_values_for_type(x509.DNSName) == [DOMAIN]
	assert csr.public_key().public_numbers() == key.public_key().public_numbers()


@pytest.mark.asyncio
async def test_bundle_writes_leaf_then_intermediate(tmp_path):
	ca = FakeCA()
	cert_path = tmp_path / "webs" / DOMAIN / f"{DOMAIN}.crt"
	key = generate_key()

	async with ACMEClient(ca.directory_url, transport=ca.transport(), poll_interval=0.01) as client:
		await _authorized(client, ca)
		pem = await issue(client, DOMAIN, key, True, cert_path)

	chain = x509.load_pem_x509_certificates(cert_path.read_bytes())
	assert cert_path.read_bytes() == pem
	assert len(chain) == 2
	assert chain[0] == ca.issued[0]
	assert chain[1] == ca.intermediate
	assert chain[0].public_key().public_numbers() == key.public_key().public_numbers()
	assert stat.S_IMODE(os.stat(cert_path).st_mode) == 0o644


@pytest.mark.asyncio
async def test_no_bundle_writes_leaf_only(tmp_path):
	ca = FakeCA()
	cert_path = tmp_path / f"{DOMAIN}.crt"

	async with ACMEClient(ca.directory_url, transport=ca.transport(), poll_interval=0.01) as client:
		await _authorized(client, ca)
		await issue(client, DOMAIN, generate_key(), False, cert_path)

	chain = x509.load_pem_x509_certificates(cert_path.read_bytes())
	assert chain == [ca.issued[0]]


@pytest.mark.asyncio
async def test_requested_not_after_is_sent(tmp_path):
	ca = FakeCA()
	wanted = datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

	async with ACMEClient(ca.directory_url, transport=ca.transport(), poll_interval=0.01) as client:
		await _authorized(client, ca)
		await issue(client, DOMAIN, generate_key(), True, tmp_path / "c.crt", not_after=wanted)

	(order,) = ca.orders.values()
	assert order["notAfter"] == "2030-01-02T03:04:05Z"


@pytest.mark.asyncio
async def test_failed_finalize_keeps_previous_certificate(tmp_path):
	ca = FakeCA(fail_finalize=True)
	cert_path = tmp_path / f"{DOMAIN}.crt"
	old = write_certificate_file(cert_path, make_certificate(DOMAIN, datetime.now(timezone.utc) + timedelta(days=3)))

	async with ACMEClient(ca.directory_url, transport=ca.transport(), poll_interval=0.01) as client:
		await _authorized(client, ca)
		with pytest.raises(IssuanceError) as excinfo:
			await issue(client, DOMAIN, generate_key(), True, cert_path)

	assert excinfo.value.status == 500
	assert cert_path.read_bytes() == old
	assert list(tmp_path.iterdir()) == [cert_path]


@pytest.mark.asyncio
async def test_unauthorized_order_times_out(tmp_path):
	ca = FakeCA()
	cert_path = tmp_path / f"{DOMAIN}.crt"

	async with ACMEClient(ca.directory_url, transport=ca.transport(), poll_interval=0.01) as client:
		await client.register(generate_key(), ["mailto:admin@example.com"])
		with pytest.raises(IssuanceTimeout):
			await issue(client, DOMAIN, generate_key(), True, cert_path, timeout=0.3)

	assert not cert_path.exists()
