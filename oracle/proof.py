"""
Decryption Proofs
=================
The oracle signs every set of cleartexts it returns so the ledger can check
the result came from the oracle and matches the request it answers.
Uses ECDSA (P-256, SHA-256) for compact, fast signatures.

Signed message: b"decryption-proof|<request_id>|<sha256(cleartexts)>"
"""

import hashlib
from typing import Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.exceptions import InvalidSignature


def proof_message(request_id: int, cleartexts: bytes) -> bytes:
    digest = hashlib.sha256(cleartexts).hexdigest()
    return f"decryption-proof|{int(request_id)}|{digest}".encode('utf-8')


def _key_id(public_key: ec.EllipticCurvePublicKey) -> str:
    """Short id from public key (first 8 chars of hash)"""
    pub_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return hashlib.sha256(pub_bytes).hexdigest()[:8]


class ProofSigner:
    """
    Oracle-side signer.

    Private key: stays with the oracle
    Public key: distributed to the ledger for verification
    """

    def __init__(self, private_key: Optional[ec.EllipticCurvePrivateKey] = None):
        self.private_key = private_key or ec.generate_private_key(ec.SECP256R1())
        self.public_key = self.private_key.public_key()
        self.key_id = _key_id(self.public_key)

    @classmethod
    def from_pem(cls, pem: bytes, password: Optional[bytes] = None) -> 'ProofSigner':
        private_key = serialization.load_pem_private_key(pem, password=password)
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ValueError("Proof signing key must be an EC private key")
        return cls(private_key)

    def prove(self, request_id: int, cleartexts: bytes) -> bytes:
        """DER-encoded ECDSA signature over the proof message"""
        return self.private_key.sign(
            proof_message(request_id, cleartexts),
            ec.ECDSA(hashes.SHA256())
        )

    def get_public_key_pem(self) -> str:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

    def export_private_key(self, password: Optional[bytes] = None) -> bytes:
        """Export private key (for secure storage)"""
        if password:
            encryption = serialization.BestAvailableEncryption(password)
        else:
            encryption = serialization.NoEncryption()

        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption
        )


class ProofVerifier:
    """Ledger-side verification against the oracle's public key"""

    def __init__(self, public_key_pem: str):
        public_key = serialization.load_pem_public_key(public_key_pem.encode('utf-8'))
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            raise ValueError("Oracle verification key must be an EC public key")
        self.public_key = public_key
        self.key_id = _key_id(public_key)

    def verify(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        try:
            self.public_key.verify(
                proof,
                proof_message(request_id, cleartexts),
                ec.ECDSA(hashes.SHA256())
            )
            return True
        except (InvalidSignature, ValueError):
            # ValueError: proof is not a DER-encoded signature
            return False
