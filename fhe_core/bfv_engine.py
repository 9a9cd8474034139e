"""
FHE Engine for Private Charging Metrics
========================================
Implements the ciphertext algebra with the TenSEAL BFV scheme.

Cryptographic Justification:
- BFV chosen over CKKS because charging metrics are integers
  (session counts, energy in Wh buckets) and decryption must be exact
- Addition is all the ledger needs; no relinearization or rotation keys

Security Parameters:
- poly_modulus_degree: 4096 → 128-bit security for BFV
- plain_modulus: 998244353 (119 * 2^23 + 1) → batching-friendly prime

Limb Encoding:
A BFV slot holds integers modulo plain_modulus, far fewer bits than a
64-bit accumulator needs. Each value is therefore split into 8-bit limbs,
one per slot (NARROW = 4 slots, WIDE = 8 slots), least significant first.
Slot-wise addition never carries, so every slot stays below
terms * 255 and the exact sum is recovered at decryption as
sum(limb_i * 256^i), reduced to the width. An accumulator may absorb up to
max_terms ciphertexts before a slot could wrap; add() refuses beyond that.
"""

import tenseal as ts
import hashlib
from datetime import datetime
from typing import List

from fhe_core.ciphertext import (
    CiphertextAlgebra,
    CiphertextWidth,
    EncryptedValue,
    compute_checksum,
)


DEFAULT_POLY_MODULUS_DEGREE = 4096
DEFAULT_PLAIN_MODULUS = 998244353

LIMB_BITS = 8
LIMB_MASK = (1 << LIMB_BITS) - 1


def limb_count(width: CiphertextWidth) -> int:
    return width.bits // LIMB_BITS


def split_limbs(value: int, width: CiphertextWidth) -> List[int]:
    return [(value >> (LIMB_BITS * i)) & LIMB_MASK for i in range(limb_count(width))]


def join_limbs(limbs: List[int], width: CiphertextWidth) -> int:
    total = sum(limb << (LIMB_BITS * i) for i, limb in enumerate(limbs))
    return total & width.max_value


class ChargingFHE(CiphertextAlgebra):
    """
    Homomorphic Encryption Engine for charging-session metrics.

    The ledger uses this with PUBLIC context only (cannot decrypt).
    Only the decryption oracle holds the SECRET context.
    """

    def __init__(self,
                 poly_modulus_degree: int = DEFAULT_POLY_MODULUS_DEGREE,
                 plain_modulus: int = DEFAULT_PLAIN_MODULUS):
        """
        Initialize FHE Engine with BFV parameters.

        Args:
            poly_modulus_degree: Polynomial ring degree (power of 2)
            plain_modulus: Prime plaintext modulus, congruent to 1 mod 2n
        """
        self.poly_modulus_degree = poly_modulus_degree
        self.plain_modulus = plain_modulus

        self.context = ts.context(
            ts.SCHEME_TYPE.BFV,
            poly_modulus_degree=poly_modulus_degree,
            plain_modulus=plain_modulus
        )

        self.created_at = datetime.now().isoformat()
        self._operation_count = 0

    @property
    def max_terms(self) -> int:
        """Ciphertexts one accumulator can absorb before a slot could wrap"""
        return (self.plain_modulus // 2) // LIMB_MASK

    def get_public_context(self) -> bytes:
        """
        Get public context (without secret key) for untrusted parties.

        Submitters and the ledger receive this context.
        They can ENCRYPT and ADD but CANNOT DECRYPT.
        """
        public_ctx = self.context.copy()
        public_ctx.make_context_public()
        return public_ctx.serialize()

    def get_secret_context(self) -> bytes:
        """Get full context WITH secret key (decryption oracle only)"""
        return self.context.serialize(save_secret_key=True)

    def get_context_hash(self) -> str:
        """Get unique hash of this context for verification"""
        return hashlib.sha256(self.get_public_context()).hexdigest()[:16]

    def is_private(self) -> bool:
        return self.context.is_private()

    @classmethod
    def from_context(cls,
                     context_bytes: bytes,
                     plain_modulus: int = DEFAULT_PLAIN_MODULUS,
                     poly_modulus_degree: int = DEFAULT_POLY_MODULUS_DEGREE) -> 'ChargingFHE':
        """
        Reconstruct engine from a serialized context.

        Used by the ledger (public context) and the oracle (secret context).
        The serialized context does not expose its parameters, so callers
        pass the ones it was generated with.
        """
        engine = cls.__new__(cls)
        engine.context = ts.context_from(context_bytes)
        engine.poly_modulus_degree = poly_modulus_degree
        engine.plain_modulus = plain_modulus
        engine.created_at = datetime.now().isoformat()
        engine._operation_count = 0
        return engine

    # ==================== ENCRYPTION / DECRYPTION ====================

    def encrypt(self, value: int, width: CiphertextWidth) -> EncryptedValue:
        """
        Encrypt a non-negative integer.

        Example:
            enc = engine.encrypt(15, CiphertextWidth.WIDE)
        """
        value = int(value)
        self._check_range(value, width, width.max_value)

        encrypted = ts.bfv_vector(self.context, split_limbs(value, width))
        ciphertext = encrypted.serialize()
        self._operation_count += 1

        return EncryptedValue(
            ciphertext=ciphertext,
            width=width,
            checksum=compute_checksum(ciphertext),
            metadata={'operation_id': self._operation_count, 'terms': 1}
        )

    def decrypt(self, encrypted: EncryptedValue) -> int:
        """
        Decrypt an encrypted value.

        Raises:
            ValueError: If context doesn't have secret key, the ciphertext
                fails its integrity check, or a limb decrypts outside
                0..plain_modulus/2 (the accumulator wrapped or was forged)
        """
        if not self.context.is_private():
            raise ValueError("Cannot decrypt: context does not contain secret key. "
                             "Only the decryption oracle can decrypt.")

        if compute_checksum(encrypted.ciphertext) != encrypted.checksum:
            raise ValueError("Ciphertext integrity check failed - data may be corrupted")

        limbs = [int(v) for v in self._load_encrypted(encrypted).decrypt()]
        expected = limb_count(encrypted.width)
        if len(limbs) != expected:
            raise ValueError(
                f"Malformed {encrypted.width.value} ciphertext: "
                f"{len(limbs)} slots, expected {expected}"
            )
        for limb in limbs:
            if limb < 0 or limb > self.plain_modulus // 2:
                raise ValueError(
                    f"Limb {limb} outside 0..{self.plain_modulus // 2}: "
                    "accumulator overflowed its plain modulus"
                )
        return join_limbs(limbs, encrypted.width)

    def validate(self, encrypted: EncryptedValue):
        """Parse the ciphertext against this context and check its slot count"""
        try:
            vector = self._load_encrypted(encrypted)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Malformed {encrypted.width.value} ciphertext: {e}") from e
        expected = limb_count(encrypted.width)
        if vector.size() != expected:
            raise ValueError(
                f"Malformed {encrypted.width.value} ciphertext: "
                f"{vector.size()} slots, expected {expected}"
            )

    # ==================== HOMOMORPHIC OPERATIONS ====================

    def _load_encrypted(self, encrypted: EncryptedValue) -> ts.BFVVector:
        return ts.bfv_vector_from(self.context, encrypted.ciphertext)

    @staticmethod
    def _terms(encrypted: EncryptedValue) -> int:
        return max(1, int(encrypted.metadata.get('terms', 1)))

    def add(self, enc_a: EncryptedValue, enc_b: EncryptedValue) -> EncryptedValue:
        """
        Homomorphic addition: E(a) + E(b) = E(a + b)

        Result is still encrypted - the ledger never sees values.

        Raises:
            ValueError: On mismatched widths, or when the result would hold
                more than max_terms contributions
        """
        self._check_widths(enc_a, enc_b)
        terms = self._terms(enc_a) + self._terms(enc_b)
        if terms > self.max_terms:
            raise ValueError(
                f"Accumulator capacity exceeded: {terms} terms "
                f"(max {self.max_terms} for plain modulus {self.plain_modulus})"
            )

        result = self._load_encrypted(enc_a) + self._load_encrypted(enc_b)
        ciphertext = result.serialize()
        self._operation_count += 1

        return EncryptedValue(
            ciphertext=ciphertext,
            width=enc_a.width,
            checksum=compute_checksum(ciphertext),
            metadata={'operation': 'sum', 'operation_id': self._operation_count, 'terms': terms}
        )

    # ==================== UTILITY METHODS ====================

    def get_info(self) -> dict:
        """Get engine configuration information"""
        return {
            'scheme': 'BFV',
            'poly_modulus_degree': self.poly_modulus_degree,
            'plain_modulus': self.plain_modulus,
            'limb_bits': LIMB_BITS,
            'max_terms': self.max_terms,
            'security_level': '128-bit',
            'created_at': self.created_at,
            'context_hash': self.get_context_hash(),
            'has_secret_key': self.context.is_private(),
            'operations_performed': self._operation_count
        }

    def verify_integrity(self, encrypted: EncryptedValue) -> bool:
        return compute_checksum(encrypted.ciphertext) == encrypted.checksum


def load_public_engine(secret_engine: ChargingFHE) -> ChargingFHE:
    """Derive the ledger-side (public) engine from the oracle's engine"""
    return ChargingFHE.from_context(
        secret_engine.get_public_context(),
        plain_modulus=secret_engine.plain_modulus,
        poly_modulus_degree=secret_engine.poly_modulus_degree
    )
