"""Pytest configuration and fixtures for faucet tests."""

import os

import pytest
from pydantic import SecretStr

from continuum_faucet.core.wallet import EnvironmentWallet

# Test private key (DO NOT USE IN PRODUCTION - this is a well-known test key)
TEST_PRIVATE_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_ADDRESS = "0xFCAd0B19bB29D4674531d6f115237E16AfCE377c"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Clear faucet-related environment variables before each test."""
    for key in list(os.environ.keys()):
        if key.startswith("FAUCET_"):
            monkeypatch.delenv(key, raising=False)
    # Keep a developer's .env out of the tests
    monkeypatch.chdir(os.path.dirname(__file__))


@pytest.fixture
def test_wallet():
    """Real wallet built from the well-known test key."""
    return EnvironmentWallet(private_key=SecretStr(TEST_PRIVATE_KEY))
