import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import soulmint`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from soulmint.attestation import Ed25519AttestationVerifier, RootAttestor  # noqa: E402
from soulmint.authorizer import MintAuthorizer, MintPolicy, UserData, build_public_signals  # noqa: E402
from soulmint.config import DEFAULT_TOKEN_ID, ConfigManager  # noqa: E402
from soulmint.dates import encode_date  # noqa: E402
from soulmint.events import EventBus, EventLog  # noqa: E402
from soulmint.ledger import MintStore, SoulboundTokenLedger  # noqa: E402
from soulmint.observability import AuditLog  # noqa: E402
from soulmint.roots import RegistryRootLedger  # noqa: E402
from soulmint.zkp import MockProver, MockVerifier, ProofGateway  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "perf: performance/benchmark tests (skipped unless SOULMINT_RUN_PERF=1)",
    )
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless SOULMINT_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_perf = _env_flag('SOULMINT_RUN_PERF')
    run_slow = _env_flag('SOULMINT_RUN_SLOW')

    for item in items:
        if 'perf' in item.keywords and not run_perf:
            item.add_marker(pytest.mark.skip(reason='perf tests skipped; set SOULMINT_RUN_PERF=1 to enable'))
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set SOULMINT_RUN_SLOW=1 to enable'))


# =============================================================================
# SHARED CONSTANTS
# =============================================================================

# 2024-12-09T00:00:00Z, the day encoded by "241209".
DAY_START = 1733702400
ACTIVATION = DAY_START + 3600
NOW = DAY_START + 12 * 3600
CURRENT_DATE = encode_date("241209")

GENESIS_ROOT = 0x1b5a3d5f0c8e2a4f6b7c9d0e1f2a3b4c5d6e7f8091a2b3c4d5e6f708192a3b4c
GENESIS_TIMESTAMP = 1_733_000_000

RECIPIENT = "0x" + "ab" * 20
OTHER_RECIPIENT = "0x" + "cd" * 20


class FixedClock:
    """Manually advanced clock returning integer Unix seconds."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def _fresh_config():
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def event_log(bus):
    return EventLog(bus)


@pytest.fixture
def attestor():
    return RootAttestor.generate()


@pytest.fixture
def roots(attestor, clock, bus):
    return RegistryRootLedger(
        Ed25519AttestationVerifier([attestor.public_key]),
        validity_window=3600,
        clock=clock,
        event_bus=bus,
        genesis_root=GENESIS_ROOT,
        genesis_timestamp=GENESIS_TIMESTAMP,
    )


@pytest.fixture
def policy():
    return MintPolicy(token_id=DEFAULT_TOKEN_ID, activation_timestamp=ACTIVATION)


@pytest.fixture
def prover():
    return MockProver()


@pytest.fixture
def verifier():
    return MockVerifier()


@pytest.fixture
def store():
    return MintStore()


@pytest.fixture
def token_ledger():
    return SoulboundTokenLedger()


@pytest.fixture
def authorizer(roots, verifier, store, token_ledger, policy, clock, bus):
    return MintAuthorizer(
        roots,
        ProofGateway(verifier),
        store,
        token_ledger,
        policy=policy,
        clock=clock,
        event_bus=bus,
        audit_log=AuditLog(),
    )


@pytest.fixture
def make_proof(policy, prover):
    """Prove the signals the authorizer will rebuild for a request."""
    def _make(root, recipient, user_data, current_date=CURRENT_DATE, activation=ACTIVATION):
        signals = build_public_signals(policy, root, recipient, current_date, user_data, activation)
        return prover.prove(signals)
    return _make


@pytest.fixture
def user_data():
    return UserData(nullifier=0x2a2a2a, identity_creation_timestamp=0, identity_counter=0)
