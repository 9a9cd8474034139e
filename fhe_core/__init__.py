"""
FHE Core Module - Ciphertext algebra for the private charging ledger
Powered by TenSEAL with the BFV scheme for exact integer operations
"""

from .ciphertext import (
    CiphertextAlgebra,
    CiphertextWidth,
    EncryptedValue,
    OracleHandle,
    PlaintextAlgebra,
)
from .bfv_engine import ChargingFHE, load_public_engine
from .key_manager import KeyManager, KeyMetadata
from .security_logger import SecurityLogger, DataType, OperationType

__all__ = [
    'CiphertextAlgebra', 'CiphertextWidth', 'EncryptedValue', 'OracleHandle',
    'PlaintextAlgebra', 'ChargingFHE', 'load_public_engine',
    'KeyManager', 'KeyMetadata',
    'SecurityLogger', 'DataType', 'OperationType'
]
__version__ = '1.0.0'
