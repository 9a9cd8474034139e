"""
Decryption Request Broker
=========================
Packages ciphertexts for the oracle and remembers where each request came
from.

Flow:
1. Snapshot the ciphertexts in the order the oracle must return cleartexts
2. Serialize each into an oracle handle
3. oracle.request_decryption(handles, callback) -> fresh request id
4. Record request id -> (context key, route) before returning

The broker never waits for the oracle. Resolution arrives later through
the callback verifier, possibly never.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from fhe_core.ciphertext import CiphertextAlgebra, EncryptedValue
from fhe_core.security_logger import SecurityLogger
from coordinator.authorization import AuthorizationPolicy, SITE_SUGGESTION_ACTION
from coordinator.errors import NoMetricsForWindow, Unauthorized
from coordinator.events import EventBus
from coordinator.oracle_interface import (
    CallbackHandler,
    CallbackReference,
    DecryptionOracle,
    RevealRoute,
)
from coordinator.window_aggregator import WindowAggregator


@dataclass(frozen=True)
class Correlation:
    context_key: str
    route: RevealRoute
    requested_at: str


class CorrelationTable:
    """
    Durable map from oracle request id to originating context.

    Entries are written once and never removed.
    """

    def __init__(self):
        self._entries: Dict[int, Correlation] = {}

    def record(self, request_id: int, context_key: str, route: RevealRoute) -> Correlation:
        if request_id in self._entries:
            raise ValueError(f"Oracle reissued request id {request_id}")
        correlation = Correlation(
            context_key=context_key,
            route=route,
            requested_at=datetime.now().isoformat()
        )
        self._entries[request_id] = correlation
        return correlation

    def lookup(self, request_id: int) -> Optional[Correlation]:
        return self._entries.get(request_id)

    def items(self) -> Iterator[Tuple[int, Correlation]]:
        return iter(sorted(self._entries.items()))

    def __contains__(self, request_id: int) -> bool:
        return request_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class DecryptionBroker:
    """Issues decryption requests for windows and ad hoc ciphertext sets"""

    def __init__(self,
                 algebra: CiphertextAlgebra,
                 oracle: DecryptionOracle,
                 aggregator: WindowAggregator,
                 correlations: CorrelationTable,
                 handler_for: Callable[[RevealRoute], CallbackHandler],
                 authorization: AuthorizationPolicy,
                 events: EventBus,
                 security_logger: Optional[SecurityLogger] = None):
        """
        Args:
            algebra: Public ciphertext algebra (serialization only)
            oracle: External decryption oracle
            aggregator: Source of window snapshots
            correlations: Table this broker is the only writer of
            handler_for: Resolves a route to the callback entry point
            authorization: Gate for privileged call sites
            events: Notification bus
            security_logger: Security audit logger
        """
        self.algebra = algebra
        self.oracle = oracle
        self.aggregator = aggregator
        self.correlations = correlations
        self.handler_for = handler_for
        self.authorization = authorization
        self.events = events
        self.logger = security_logger

    def request_reveal(self,
                       context_key: str,
                       ciphertexts: List[EncryptedValue],
                       route: RevealRoute) -> int:
        """
        Ask the oracle to decrypt an ordered list of ciphertexts.

        The oracle returns cleartexts in the same order.

        Returns:
            Oracle-assigned request id
        """
        for ct in ciphertexts:
            self.algebra.validate(ct)
        handles = [self.algebra.serialize_for_oracle(ct) for ct in ciphertexts]
        callback = CallbackReference(route=route, handler=self.handler_for(route))

        request_id = self.oracle.request_decryption(handles, callback)
        self.correlations.record(request_id, context_key, route)

        if self.logger:
            self.logger.log_decryption_requested(request_id, route.value, context_key, len(handles))

        self.events.emit(route.requested_event, request_id=request_id, context_key=context_key)
        return request_id

    def _window_snapshot(self, window_key: str) -> List[EncryptedValue]:
        metrics = self.aggregator.get_metrics(window_key)
        if not metrics.initialized:
            if self.logger:
                self.logger.log_rejected('request_reveal', NoMetricsForWindow.error_code,
                                         {'window_key': window_key})
            raise NoMetricsForWindow(window_key)
        return [metrics.encrypted_total_energy, metrics.encrypted_session_count]

    def request_forecast(self, window_key: str) -> int:
        """Reveal [total energy, session count] for a window"""
        ciphertexts = self._window_snapshot(window_key)
        return self.request_reveal(window_key, ciphertexts, RevealRoute.FORECAST)

    def request_load_balance(self, window_key: str, encrypted_priority: EncryptedValue) -> int:
        """Reveal [total energy, session count, priority] for a window"""
        ciphertexts = self._window_snapshot(window_key) + [encrypted_priority]
        return self.request_reveal(window_key, ciphertexts, RevealRoute.LOAD_BALANCE)

    def request_site_suggestion(self,
                                caller: Optional[str],
                                region_key: str,
                                encrypted_demand: EncryptedValue,
                                encrypted_station_count: EncryptedValue) -> int:
        """Reveal [demand metric, station count] for a region (privileged)"""
        if not self.authorization.is_authorized(caller, SITE_SUGGESTION_ACTION):
            if self.logger:
                self.logger.log_rejected(SITE_SUGGESTION_ACTION, Unauthorized.error_code,
                                         {'caller': caller})
            raise Unauthorized(caller, SITE_SUGGESTION_ACTION)

        return self.request_reveal(
            region_key,
            [encrypted_demand, encrypted_station_count],
            RevealRoute.SITE_SUGGESTION
        )
