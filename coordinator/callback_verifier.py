"""
Oracle Callback Verifier
========================
Admits an oracle result into the result store.

Checks, in order, before anything is written:
1. The request id was issued by this ledger for this route
2. The oracle's proof of decryption verifies
3. The cleartexts decode as [label, payload]
4. (single-delivery policy only) the request is not already revealed

Forecast, load-balance and site-suggestion callbacks are the same state
machine; they differ only in the notification they emit.
"""

from typing import Optional

from fhe_core.security_logger import SecurityLogger
from coordinator.cleartext_codec import decode_cleartexts
from coordinator.config import DeliveryPolicy
from coordinator.decryption_broker import CorrelationTable
from coordinator.errors import (
    DecodeError,
    DuplicateDelivery,
    InvalidProof,
    LedgerError,
    UnknownRequest,
)
from coordinator.events import EventBus
from coordinator.oracle_interface import DecryptionOracle, RevealRoute
from coordinator.result_store import RevealedResult, ResultStore


class CallbackVerifier:

    def __init__(self,
                 oracle: DecryptionOracle,
                 correlations: CorrelationTable,
                 results: ResultStore,
                 events: EventBus,
                 delivery_policy: DeliveryPolicy = DeliveryPolicy.LAST_WRITE_WINS,
                 security_logger: Optional[SecurityLogger] = None):
        self.oracle = oracle
        self.correlations = correlations
        self.results = results
        self.events = events
        self.delivery_policy = delivery_policy
        self.logger = security_logger

    def deliver(self,
                route: RevealRoute,
                request_id: int,
                cleartexts: bytes,
                proof: bytes) -> RevealedResult:
        """
        Verify and commit an oracle callback.

        Raises:
            UnknownRequest: request id never issued for this route
            InvalidProof: oracle proof rejected
            DecodeError: cleartexts are not [label, payload]
            DuplicateDelivery: already revealed under single-delivery policy
        """
        try:
            correlation = self.correlations.lookup(request_id)
            if correlation is None or correlation.route != route:
                raise UnknownRequest(request_id)

            # A verifier may reject by returning False or by raising
            try:
                valid = bool(self.oracle.verify_proof(request_id, cleartexts, proof))
                failure = None
            except Exception as e:
                valid = False
                failure = e
            if self.logger:
                self.logger.log_proof_verified(request_id, valid)
            if not valid:
                raise InvalidProof(request_id) from failure

            try:
                label, payload = decode_cleartexts(cleartexts)
            except ValueError as e:
                raise DecodeError(request_id, str(e)) from e

            if (self.delivery_policy == DeliveryPolicy.SINGLE_DELIVERY
                    and self.results.is_revealed(request_id)):
                raise DuplicateDelivery(request_id)
        except LedgerError as e:
            if self.logger:
                self.logger.log_rejected(f"deliver_{route.value}", e.error_code,
                                         {'request_id': request_id})
            raise

        result = self.results.commit(request_id, label, payload)

        if self.logger:
            self.logger.log_result_delivered(request_id, route.value, correlation.context_key)

        self.events.emit(route.delivered_event,
                         request_id=request_id,
                         context_key=correlation.context_key)
        return result

