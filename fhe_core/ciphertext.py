"""
Ciphertext Algebra Boundary
===========================
Opaque encrypted integers as the ledger sees them.

The ledger never branches on ciphertext internals. It only needs:
- Homomorphic addition: E(a) + E(b) = E(a + b)
- Serialization into a handle the decryption oracle can resolve

Two widths are supported, matching what the oracle can decrypt:
- NARROW (32-bit): counters such as session counts
- WIDE (64-bit): accumulated magnitudes such as total energy
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict
import base64
import hashlib


class CiphertextWidth(str, Enum):
    """Plaintext width carried by a ciphertext"""
    NARROW = "euint32"
    WIDE = "euint64"

    @property
    def bits(self) -> int:
        return 32 if self is CiphertextWidth.NARROW else 64

    @property
    def max_value(self) -> int:
        return 2**self.bits - 1


@dataclass
class EncryptedValue:
    """
    Wrapper for one encrypted integer.

    No plaintext information is stored or derivable from this object.
    """
    ciphertext: bytes
    width: CiphertextWidth
    checksum: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize to dictionary for transmission"""
        return {
            'ciphertext': base64.b64encode(self.ciphertext).decode('utf-8'),
            'width': self.width.value,
            'checksum': self.checksum,
            'timestamp': self.timestamp,
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'EncryptedValue':
        """Deserialize from dictionary"""
        return cls(
            ciphertext=base64.b64decode(data['ciphertext']),
            width=CiphertextWidth(data['width']),
            checksum=data['checksum'],
            timestamp=data.get('timestamp', datetime.now().isoformat()),
            metadata=data.get('metadata', {})
        )

    def get_display_ciphertext(self, max_length: int = 64) -> str:
        """Get truncated base64 ciphertext for display (proves it's encrypted)"""
        b64 = base64.b64encode(self.ciphertext).decode('utf-8')
        if len(b64) > max_length:
            return f"{b64[:max_length//2]}...{b64[-max_length//2:]}"
        return b64

    def get_size_kb(self) -> float:
        """Get ciphertext size in KB"""
        return len(self.ciphertext) / 1024


@dataclass(frozen=True)
class OracleHandle:
    """Opaque reference to a ciphertext, handed to the decryption oracle"""
    handle: str
    ciphertext: bytes
    width: CiphertextWidth


def compute_checksum(ciphertext: bytes) -> str:
    return hashlib.sha256(ciphertext).hexdigest()[:12]


class CiphertextAlgebra(ABC):
    """
    Interface the ledger consumes.

    Implementations own the encryption scheme. The ledger holds a public
    instance (cannot decrypt); the oracle holds a private one.
    """

    @abstractmethod
    def encrypt(self, value: int, width: CiphertextWidth) -> EncryptedValue:
        """Encrypt a non-negative integer of the given width"""

    @abstractmethod
    def add(self, enc_a: EncryptedValue, enc_b: EncryptedValue) -> EncryptedValue:
        """Homomorphic addition: E(a) + E(b) = E(a + b)"""

    @abstractmethod
    def decrypt(self, encrypted: EncryptedValue) -> int:
        """Decrypt; raises ValueError without secret material"""

    @abstractmethod
    def is_private(self) -> bool:
        """True if this instance can decrypt"""

    @abstractmethod
    def validate(self, encrypted: EncryptedValue):
        """
        Check that a ciphertext is well-formed for its width without
        decrypting it. Raises ValueError otherwise.
        """

    def serialize_for_oracle(self, encrypted: EncryptedValue) -> OracleHandle:
        """Package a ciphertext into a handle the oracle can resolve"""
        return OracleHandle(
            handle=hashlib.sha256(encrypted.width.value.encode() + encrypted.ciphertext).hexdigest(),
            ciphertext=encrypted.ciphertext,
            width=encrypted.width
        )

    def decrypt_handle(self, handle: OracleHandle) -> int:
        """Decrypt a ciphertext referenced by an oracle handle"""
        return self.decrypt(EncryptedValue(
            ciphertext=handle.ciphertext,
            width=handle.width,
            checksum=compute_checksum(handle.ciphertext)
        ))

    @staticmethod
    def _check_widths(enc_a: EncryptedValue, enc_b: EncryptedValue):
        if enc_a.width != enc_b.width:
            raise ValueError(
                f"Cannot add {enc_a.width.value} to {enc_b.width.value}: "
                "homomorphic addition requires matching widths"
            )

    @staticmethod
    def _check_range(value: int, width: CiphertextWidth, limit: int):
        if value < 0 or value > min(width.max_value, limit):
            raise ValueError(
                f"Value {value} out of range for {width.value} "
                f"(0..{min(width.max_value, limit)})"
            )


class PlaintextAlgebra(CiphertextAlgebra):
    """
    Plaintext algebra for baseline comparison.

    This is what a TRADITIONAL ledger would do - the "ciphertext" is the
    number itself. PRIVACY VIOLATION: anyone holding the bytes sees the value.
    Useful for benchmarks and for exercising ledger logic without FHE cost.
    """

    def __init__(self):
        self._operation_count = 0

    def encrypt(self, value: int, width: CiphertextWidth) -> EncryptedValue:
        self._check_range(value, width, width.max_value)
        # Wide enough for 64-bit sums; wraps like the fixed-width ciphertexts
        payload = value.to_bytes(16, 'big')
        self._operation_count += 1
        return EncryptedValue(
            ciphertext=payload,
            width=width,
            checksum=compute_checksum(payload),
            metadata={'operation_id': self._operation_count}
        )

    def add(self, enc_a: EncryptedValue, enc_b: EncryptedValue) -> EncryptedValue:
        self._check_widths(enc_a, enc_b)
        total = (
            int.from_bytes(enc_a.ciphertext, 'big') + int.from_bytes(enc_b.ciphertext, 'big')
        ) & enc_a.width.max_value
        payload = total.to_bytes(16, 'big')
        self._operation_count += 1
        return EncryptedValue(
            ciphertext=payload,
            width=enc_a.width,
            checksum=compute_checksum(payload),
            metadata={'operation': 'sum', 'operation_id': self._operation_count}
        )

    def decrypt(self, encrypted: EncryptedValue) -> int:
        return int.from_bytes(encrypted.ciphertext, 'big')

    def is_private(self) -> bool:
        return True

    def validate(self, encrypted: EncryptedValue):
        if len(encrypted.ciphertext) != 16:
            raise ValueError(
                f"Malformed {encrypted.width.value} payload: expected 16 bytes, "
                f"got {len(encrypted.ciphertext)}"
            )
