"""
Decryption Oracle Boundary
==========================
The ledger cannot decrypt. It hands ciphertext handles to an external
oracle, which later calls back with cleartexts and a proof of correct
decryption. This module is the shape of that collaborator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List

from fhe_core.ciphertext import OracleHandle
from coordinator.events import EventType


class RevealRoute(str, Enum):
    """Call sites that request decryption; each has its own callback entry point"""
    FORECAST = "forecast"
    LOAD_BALANCE = "load_balance"
    SITE_SUGGESTION = "site_suggestion"

    @property
    def requested_event(self) -> EventType:
        return EventType(f"{self.value}_requested")

    @property
    def delivered_event(self) -> EventType:
        return EventType(f"{self.value}_delivered")


# (request_id, cleartexts, proof) -> None
CallbackHandler = Callable[[int, bytes, bytes], None]


@dataclass(frozen=True)
class CallbackReference:
    """Which ledger entry point the oracle must call when it is done"""
    route: RevealRoute
    handler: CallbackHandler


class DecryptionOracle(ABC):

    @abstractmethod
    def request_decryption(self, handles: List[OracleHandle], callback: CallbackReference) -> int:
        """
        Accept a decryption request and return a fresh request id.

        Must not invoke the callback before returning.
        """

    @abstractmethod
    def verify_proof(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        """Check that cleartexts are the correct decryption for request_id"""
