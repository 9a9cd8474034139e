"""
Decryption Oracle Module
"""
from .local_oracle import LocalDecryptionOracle, PendingDecryption, format_reveal
from .proof import ProofSigner, ProofVerifier, proof_message
from .relay import HttpCallbackRelay, CallbackRelayError

__all__ = [
    'LocalDecryptionOracle', 'PendingDecryption', 'format_reveal',
    'ProofSigner', 'ProofVerifier', 'proof_message',
    'HttpCallbackRelay', 'CallbackRelayError'
]
