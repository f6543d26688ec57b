"""Certificate store and the renewal decision."""

import os
import stat
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from acmed.certs import common_name, der_chain_to_pem, load_if_valid, needs_renewal, write_certificate
from acmed.errors import KeyMaterialError, UnsupportedBlockType

from tests.fake_ca import make_certificate, write_certificate_file

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


class TestNeedsRenewal:

	def test_missing_certificate_is_due(self):
		assert needs_renewal(None, 21, NOW) is True

	def test_exact_boundary_renews(self):
		assert needs_renewal(NOW + timedelta(days=21), 21, NOW) is True

	def test_just_past_boundary_is_skipped(self):
		assert needs_renewal(NOW + timedelta(days=21, seconds=1), 21, NOW) is False

	def test_expiring_soon_is_due(self):
		assert needs_renewal(NOW + timedelta(days=5), 21, NOW) is True

	def test_far_expiry_is_skipped(self):
		assert needs_renewal(NOW + timedelta(days=60), 21, NOW) is False

	def test_already_expired_is_due(self):
		assert needs_renewal(NOW - timedelta(days=1), 0, NOW) is True

	def test_zero_threshold(self):
		assert needs_renewal(NOW + timedelta(seconds=1), 0, NOW) is False
		assert needs_renewal(NOW, 0, NOW) is True


def test_missing_file_is_absent_not_error(tmp_path):
	assert load_if_valid(tmp_path / "nope.crt") is None


def test_loads_leaf_certificate(tmp_path):
	not_after = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=30)
	path = tmp_path / "example.com.crt"
	write_certificate_file(path, make_certificate("example.com", not_after))

	cert = load_if_valid(path)

	assert cert is not None
	assert common_name(cert) == "example.com"
	assert cert.not_valid_after_utc == not_after


def test_non_certificate_block_is_rejected(tmp_path):
	path = tmp_path / "example.com.crt"
	path.write_bytes(ec.generate_private_key(ec.SECP256R1()).private_bytes(
		serialization.Encoding.PEM,
		serialization.PrivateFormat.TraditionalOpenSSL,
		serialization.NoEncryption(),
	))

	with pytest.raises(UnsupportedBlockType):
		load_if_valid(path)


def test_corrupt_certificate_surfaces_decode_error(tmp_path):
	path = tmp_path / "example.com.crt"
	path.write_bytes(b"-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n")

	with pytest.raises(KeyMaterialError):
		load_if_valid(path)


def test_der_chain_to_pem_keeps_order(tmp_path):
	leaf = make_certificate("leaf.example", datetime.now(timezone.utc) + timedelta(days=1))
	other = make_certificate("other.example", datetime.now(timezone.utc) + timedelta(days=1))

	pem = der_chain_to_pem([leaf.public_bytes(serialization.Encoding.DER), other.public_bytes(serialization.Encoding.DER)])

	assert pem == leaf.public_bytes(serialization.Encoding.PEM) + other.public_bytes(serialization.Encoding.PEM)


def test_write_certificate_is_world_readable(tmp_path):
	path = tmp_path / "webs" / "example.com" / "example.com.crt"

	write_certificate(path, b"pem")

	assert path.read_bytes() == b"pem"
	assert stat.S_IMODE(path.stat().st_mode) == 0o644


def test_failed_write_keeps_previous_certificate(tmp_path, monkeypatch):
	path = tmp_path / "example.com.crt"
	path.write_bytes(b"previous")

	def broken_replace(src, dst):
		raise OSError("disk full")

	monkeypatch.setattr(os, "replace", broken_replace)
	with pytest.raises(OSError):
		write_certificate(path, b"new")

	assert path.read_bytes() == b"previous"
	assert sorted(p.name for p in tmp_path.iterdir()) == ["example.com.crt"]
