"""
Local Decryption Oracle
=======================
In-process stand-in for the external decryption service.

The oracle:
1. Accepts decryption requests and queues them (never answers inline)
2. On fulfil, decrypts the handles with the SECRET context
3. Formats the plaintexts into [label, payload] for the request's route
4. Signs the cleartexts and calls the route's callback (or a relay)

This is the ONLY component with the secret key.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import threading

from fhe_core.ciphertext import CiphertextAlgebra, OracleHandle
from fhe_core.security_logger import SecurityLogger
from coordinator.cleartext_codec import encode_cleartexts
from coordinator.oracle_interface import CallbackReference, DecryptionOracle, RevealRoute
from oracle.proof import ProofSigner, ProofVerifier


def format_reveal(route: RevealRoute, values: Sequence[int]) -> Tuple[str, str]:
    """Render decrypted values, in request order, as (label, payload)"""
    if route == RevealRoute.FORECAST:
        energy, count = values
        return "forecast", f"demand={energy}kWh/{count}sessions"
    if route == RevealRoute.LOAD_BALANCE:
        energy, count, priority = values
        return "load_balance", f"load={energy}kWh/{count}sessions/priority={priority}"
    demand, stations = values
    return "site_suggestion", f"demand={demand}/stations={stations}"


@dataclass
class PendingDecryption:
    request_id: int
    handles: List[OracleHandle]
    callback: CallbackReference
    requested_at: str


class LocalDecryptionOracle(DecryptionOracle):
    """
    Decryption oracle holding the secret context and the proof signing key.

    Request ids start at 1 and are never reused by one oracle instance.
    """

    def __init__(self,
                 algebra: CiphertextAlgebra,
                 signer: Optional[ProofSigner] = None,
                 security_logger: Optional[SecurityLogger] = None,
                 relay=None):
        """
        Args:
            algebra: PRIVATE ciphertext algebra (must hold secret key)
            signer: Proof signing key (generated if omitted)
            security_logger: Security audit logger
            relay: Optional HttpCallbackRelay; callbacks go to a remote
                ledger instead of the in-process handler
        """
        if not algebra.is_private():
            raise ValueError("Oracle did not receive secret key!")

        self.algebra = algebra
        self.signer = signer or ProofSigner()
        self.verifier = ProofVerifier(self.signer.get_public_key_pem())
        self.logger = security_logger
        self.relay = relay

        self._lock = threading.Lock()
        self._next_id = 1
        self._queue: Dict[int, PendingDecryption] = {}
        self._fulfilled = 0
        self._failed = 0

    def request_decryption(self, handles: List[OracleHandle], callback: CallbackReference) -> int:
        with self._lock:
            request_id = self._next_id
            self._next_id += 1
            self._queue[request_id] = PendingDecryption(
                request_id=request_id,
                handles=list(handles),
                callback=callback,
                requested_at=datetime.now().isoformat()
            )
        return request_id

    def verify_proof(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        return self.verifier.verify(request_id, cleartexts, proof)

    def prove(self, request_id: int, cleartexts: bytes) -> bytes:
        """Sign arbitrary cleartexts for a request id"""
        return self.signer.prove(request_id, cleartexts)

    def decrypt_request(self, request_id: int) -> Tuple[bytes, bytes]:
        """
        Decrypt a queued request without delivering it.

        Returns:
            (cleartexts, proof)

        Raises:
            KeyError: If the request is not queued
            ValueError: If a handle does not decrypt to a value in range
                for its width; nothing is signed
        """
        with self._lock:
            pending = self._queue.get(request_id)
        if pending is None:
            raise KeyError(f"No queued decryption request {request_id}")

        values = [self.algebra.decrypt_handle(h) for h in pending.handles]
        for handle, value in zip(pending.handles, values):
            if value < 0 or value > handle.width.max_value:
                raise ValueError(
                    f"Request {request_id}: decrypted value {value} out of range "
                    f"for {handle.width.value}"
                )
        if self.logger:
            self.logger.log_oracle_decrypt(request_id, len(values))

        label, payload = format_reveal(pending.callback.route, values)
        cleartexts = encode_cleartexts(label, payload)
        return cleartexts, self.prove(request_id, cleartexts)

    def fulfill(self, request_id: int):
        """
        Decrypt, sign and deliver one queued request.

        The request leaves the queue only after the callback accepts it;
        callback errors propagate to the caller. A request that cannot be
        decrypted is dropped from the queue and its ValueError propagates.
        """
        try:
            cleartexts, proof = self.decrypt_request(request_id)
        except ValueError as e:
            self.drop(request_id)
            with self._lock:
                self._failed += 1
            if self.logger:
                self.logger.log_oracle_failure(request_id, str(e))
            raise
        with self._lock:
            callback = self._queue[request_id].callback

        if self.relay is not None:
            self.relay.deliver(callback.route, request_id, cleartexts, proof)
        else:
            callback.handler(request_id, cleartexts, proof)

        with self._lock:
            self._queue.pop(request_id, None)
            self._fulfilled += 1

    def fulfill_all(self) -> List[int]:
        """Fulfil every queued request in id order"""
        fulfilled = []
        for request_id in self.pending_ids():
            self.fulfill(request_id)
            fulfilled.append(request_id)
        return fulfilled

    def drop(self, request_id: int) -> bool:
        """Forget a queued request without answering (oracle failure)"""
        with self._lock:
            return self._queue.pop(request_id, None) is not None

    def pending_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._queue)

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'requests_received': self._next_id - 1,
                'queued': len(self._queue),
                'fulfilled': self._fulfilled,
                'failed': self._failed
            }
