"""
Pytest configuration and shared fixtures.

The fake CA lives in tests/fake_ca.py; every test gets its own instance and
its own config directory under tmp_path.
"""

import socket
import sys
from pathlib import Path

import pytest

# Make the repository root importable without an editable install
root_path = Path(__file__).parent.parent
if str(root_path) not in sys.path:
	sys.path.insert(0, str(root_path))

from acmed.layout import DomainPaths
from acmed.utils.config import Config, DomainConfig

from tests.fake_ca import FakeCA


def _free_port() -> int:
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
		sock.bind(("127.0.0.1", 0))
		return sock.getsockname()[1]


def port_is_free(port: int) -> bool:
	"""True if a listener can bind 127.0.0.1:port right now."""
	sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
	sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
	try:
		sock.bind(("127.0.0.1", port))
		return True
	except OSError:
		return False
	finally:
		sock.close()


@pytest.fixture
def free_port() -> int:
	return _free_port()


@pytest.fixture
def address(free_port) -> str:
	return f"127.0.0.1:{free_port}"


@pytest.fixture
def fake_ca(address) -> FakeCA:
	return FakeCA(responder=address)


@pytest.fixture
def web(fake_ca) -> DomainConfig:
	return DomainConfig(
		domain="example.com",
		email="admin@example.com",
		directory_url=fake_ca.directory_url,
		remaining_days=21,
		bundle=True,
	)


@pytest.fixture
def paths(tmp_path, web) -> DomainPaths:
	return DomainPaths(tmp_path, web.domain)


@pytest.fixture
def config(tmp_path, address, web) -> Config:
	return Config(base_dir=tmp_path, address=address, webs=(web,))
