"""Pytest configuration and fixtures for tests."""

import os
import socket
from pathlib import Path

import pytest

from ticktick_mcp.models import ClientCredentials
from ticktick_mcp.token_store import TokenStore

# Keep a developer's real credentials and token file out of the tests
for _name in list(os.environ):
    if _name.startswith("TICKTICK_"):
        del os.environ[_name]


@pytest.fixture
def free_port() -> int:
    """Return a local TCP port that is currently unused."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def credentials() -> ClientCredentials:
    return ClientCredentials("test-client-id", "test-client-secret")


@pytest.fixture
def token_file(tmp_path: Path) -> Path:
    return tmp_path / "tokens" / ".env"


@pytest.fixture
def token_store(token_file: Path) -> TokenStore:
    return TokenStore(token_file)
