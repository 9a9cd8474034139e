"""
Shared fixtures for the ledger test suite.

Key generation is the slow part, so one BFV engine pair is shared by the
whole session. Everything stateful (ledger, oracle, logger) is per test.
"""

import pytest
import sys
import tenseal as ts
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fhe_core.bfv_engine import ChargingFHE, load_public_engine
from fhe_core.ciphertext import CiphertextWidth, EncryptedValue, PlaintextAlgebra, compute_checksum
from fhe_core.security_logger import SecurityLogger
from coordinator.charging_ledger import ChargingLedger
from coordinator.config import LedgerConfig
from oracle.local_oracle import LocalDecryptionOracle


@pytest.fixture(scope="session")
def oracle_fhe():
    """Secret-key engine (oracle side)"""
    return ChargingFHE()


@pytest.fixture(scope="session")
def ledger_fhe(oracle_fhe):
    """Public-only engine (ledger and submitter side)"""
    return load_public_engine(oracle_fhe)


@pytest.fixture
def security_logger():
    return SecurityLogger()


@pytest.fixture
def oracle(oracle_fhe, security_logger):
    return LocalDecryptionOracle(oracle_fhe, security_logger=security_logger)


@pytest.fixture
def ledger(ledger_fhe, oracle, security_logger):
    return ChargingLedger(ledger_fhe, oracle, security_logger=security_logger)


@pytest.fixture
def plain_algebra():
    return PlaintextAlgebra()


@pytest.fixture
def plain_oracle(plain_algebra):
    return LocalDecryptionOracle(plain_algebra)


@pytest.fixture
def make_plain_ledger(plain_algebra, plain_oracle, security_logger):
    """Factory for ledgers over the plaintext baseline (fast, same semantics)"""
    def _make(**config):
        return ChargingLedger(
            plain_algebra,
            plain_oracle,
            config=LedgerConfig(**config),
            security_logger=security_logger,
            allow_private_algebra=True
        )
    return _make


@pytest.fixture
def plain_ledger(make_plain_ledger):
    return make_plain_ledger()


def contribute(ledger, algebra, window_key, count, energy):
    """Accumulate one (count, energy) contribution encrypted with algebra"""
    ledger.accumulate(
        window_key,
        algebra.encrypt(count, CiphertextWidth.NARROW),
        algebra.encrypt(energy, CiphertextWidth.WIDE)
    )


def forge_wide(engine, limbs):
    """Encrypt raw slot values, bypassing the limb encoder"""
    ciphertext = ts.bfv_vector(engine.context, limbs).serialize()
    return EncryptedValue(ciphertext=ciphertext, width=CiphertextWidth.WIDE,
                          checksum=compute_checksum(ciphertext))
