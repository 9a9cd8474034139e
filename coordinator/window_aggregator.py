"""
Encrypted Window Aggregator
===========================
Keeps a running homomorphic sum per aggregation window.

ALL operations happen on CIPHERTEXT - no plaintext is ever accessed.

Per window:
- Session count:  E(c₁) + E(c₂) + ... = E(Σcᵢ)   (NARROW ciphertext)
- Total energy:   E(e₁) + E(e₂) + ... = E(Σeᵢ)   (WIDE ciphertext)

The first contribution sets the baseline; every later one is added.
Addition is associative and commutative, so the final aggregate does not
depend on arrival order.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import hashlib
import time

from fhe_core.ciphertext import CiphertextAlgebra, CiphertextWidth, EncryptedValue
from fhe_core.security_logger import SecurityLogger


def window_key_for(bucket_start: int) -> str:
    """Content-derived window key for a time bucket start"""
    return "0x" + hashlib.sha256(f"window:{int(bucket_start)}".encode()).hexdigest()


def region_key_for(region: str) -> str:
    """Content-derived key for a region (site-suggestion context)"""
    return "0x" + hashlib.sha256(f"region:{region}".encode()).hexdigest()


@dataclass
class AggregatedWindowMetrics:
    """Encrypted aggregate for one window; fields are meaningless until initialized"""
    encrypted_total_energy: Optional[EncryptedValue] = None
    encrypted_session_count: Optional[EncryptedValue] = None
    initialized: bool = False
    contributions: int = 0

    def to_dict(self) -> dict:
        return {
            'encrypted_total_energy': (
                self.encrypted_total_energy.to_dict() if self.encrypted_total_energy else None
            ),
            'encrypted_session_count': (
                self.encrypted_session_count.to_dict() if self.encrypted_session_count else None
            ),
            'initialized': self.initialized,
            'contributions': self.contributions
        }


class WindowAggregator:
    """
    Performs homomorphic aggregation per window.

    Security Model:
    - Has PUBLIC algebra only (cannot decrypt)
    - All inputs are encrypted, all stored aggregates are encrypted
    - Makes no judgement about plaintext magnitudes
    """

    def __init__(self,
                 algebra: CiphertextAlgebra,
                 security_logger: Optional[SecurityLogger] = None):
        self.algebra = algebra
        self.logger = security_logger
        self._windows: Dict[str, AggregatedWindowMetrics] = {}

        self._accumulate_count = 0
        self._total_computation_time_ms = 0.0

    def accumulate(self,
                   window_key: str,
                   encrypted_count_delta: EncryptedValue,
                   encrypted_magnitude_delta: EncryptedValue):
        """
        Fold one contribution into a window.

        Args:
            window_key: Opaque window identifier
            encrypted_count_delta: NARROW ciphertext added to the session count
            encrypted_magnitude_delta: WIDE ciphertext added to the total energy

        Raises:
            ValueError: If a delta has the wrong ciphertext width
                or does not parse as a ciphertext
        """
        if encrypted_count_delta.width != CiphertextWidth.NARROW:
            raise ValueError("Count delta must be a NARROW ciphertext")
        if encrypted_magnitude_delta.width != CiphertextWidth.WIDE:
            raise ValueError("Magnitude delta must be a WIDE ciphertext")
        self.algebra.validate(encrypted_count_delta)
        self.algebra.validate(encrypted_magnitude_delta)

        start_time = time.time()
        metrics = self._windows.get(window_key)

        if metrics is None or not metrics.initialized:
            # First contribution defines the baseline
            updated = AggregatedWindowMetrics(
                encrypted_total_energy=encrypted_magnitude_delta,
                encrypted_session_count=encrypted_count_delta,
                initialized=True,
                contributions=1
            )
            was_initialized = False
        else:
            # Compute both sums before replacing either field
            updated = AggregatedWindowMetrics(
                encrypted_total_energy=self.algebra.add(
                    metrics.encrypted_total_energy, encrypted_magnitude_delta
                ),
                encrypted_session_count=self.algebra.add(
                    metrics.encrypted_session_count, encrypted_count_delta
                ),
                initialized=True,
                contributions=metrics.contributions + 1
            )
            was_initialized = True

        self._windows[window_key] = updated

        if self.logger:
            self.logger.log_window_accumulate(window_key, was_initialized)

        self._accumulate_count += 1
        self._total_computation_time_ms += (time.time() - start_time) * 1000

    def get_metrics(self, window_key: str) -> AggregatedWindowMetrics:
        """Return the window's aggregate, or an uninitialized one"""
        return self._windows.get(window_key, AggregatedWindowMetrics())

    def is_initialized(self, window_key: str) -> bool:
        return self.get_metrics(window_key).initialized

    def window_keys(self) -> List[str]:
        return list(self._windows)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'windows': len(self._windows),
            'accumulations_performed': self._accumulate_count,
            'total_computation_time_ms': round(self._total_computation_time_ms, 2),
            'avg_time_per_accumulation_ms': (
                round(self._total_computation_time_ms / self._accumulate_count, 2)
                if self._accumulate_count > 0 else 0
            ),
            'can_decrypt': self.algebra.is_private()
        }
