"""
Hopeless Bot Test Configuration
===============================
Shared fixtures. No test touches the network: RPC and HTTP are MagicMocks.
"""

from types import SimpleNamespace

import pytest
from solders.keypair import Keypair

import config
import logger

TEST_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path, monkeypatch):
    """Keep the JSON log/event feed out of the working tree."""
    monkeypatch.setattr(logger, "LOG_FILE_PATH", str(tmp_path / "logs.json"))
    monkeypatch.setattr(logger, "EVENTS_FILE_PATH", str(tmp_path / "events.json"))
    yield tmp_path


@pytest.fixture(autouse=True)
def test_config(monkeypatch):
    monkeypatch.setattr(config, "TOKEN_MINT", TEST_MINT)
    monkeypatch.setattr(config, "GAS_RESERVE", 0.01)
    monkeypatch.setattr(config, "MIN_FEE_SOL", 0.005)
    monkeypatch.setattr(config, "BURN_METHOD", "spl")
    monkeypatch.setattr(config, "CLAIM_METHOD", "program")
    monkeypatch.setattr(config, "BURN_RETRIES", 1)
    monkeypatch.setattr(config, "DRY_RUN", False)
    monkeypatch.setattr(config, "LOG_LEVEL", "INFO")
    yield


@pytest.fixture
def keypair():
    return Keypair()


@pytest.fixture
def wallet():
    return str(Keypair().pubkey())


def make_wallet() -> str:
    return str(Keypair().pubkey())


def rpc_value(value):
    """Mimic a solana-py response object: only `.value` is read."""
    return SimpleNamespace(value=value)
