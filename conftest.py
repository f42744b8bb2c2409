"""
Flight Oracle Relay - pytest Configuration

Shared fixtures and configuration for all tests.
"""

import os
import random
import sys

import pytest

# Make the package importable without installation
sys.path.insert(0, os.path.dirname(__file__))


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires a ledger node)"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection based on markers."""
    # Skip integration tests by default unless explicitly requested
    if not config.getoption("--run-integration", default=False):
        skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="run integration tests that require a ledger node"
    )


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

STAKE_WEI = 10 * 10**18


@pytest.fixture
def ledger():
    """In-memory ledger with five identities and deterministic indices."""
    from oracle_relay.ledger.gateway import MockLedgerGateway
    return MockLedgerGateway(identity_count=5, seed=1309)


@pytest.fixture
def registry(ledger):
    """Empty registry bound to the mock ledger."""
    from oracle_relay.oracles.registry import OracleRegistry
    return OracleRegistry(ledger, stake_wei=STAKE_WEI)


@pytest.fixture
def submitter(ledger):
    """Submitter with a seeded random source."""
    from oracle_relay.oracles.submitter import ResponseSubmitter
    return ResponseSubmitter(ledger, rng=random.Random(42))


@pytest.fixture
def dispatcher(registry, submitter):
    from oracle_relay.oracles.dispatcher import RequestDispatcher
    return RequestDispatcher(registry, submitter)


# =============================================================================
# EVENT FIXTURES
# =============================================================================

@pytest.fixture
def airline():
    return "0x" + "a1" * 20


@pytest.fixture
def request_payload(airline):
    """Raw OracleRequest arguments as the ledger delivers them."""
    return {
        "index": 4,
        "airline": airline,
        "flight": "ND1309",
        "timestamp": 1_700_000_000,
    }


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def relay_config():
    """Create a test configuration."""
    from oracle_relay.config import RelayConfig, Environment, LedgerConfig

    return RelayConfig(
        environment=Environment.DEVELOPMENT,
        ledger=LedgerConfig(app_address="0x" + "ab" * 20),
    )
