"""
Private Charging Ledger
=======================
Central ledger that aggregates encrypted charging sessions and reveals
per-window summaries through an external decryption oracle.

The ledger is the UNTRUSTED party that:
- Stores encrypted session records submitted by stations
- Aggregates per-window metrics with homomorphic addition
- Requests decryption of aggregates from the oracle
- Admits oracle results only after the decryption proof verifies

Security Model: HONEST-BUT-CURIOUS
- Holds the PUBLIC algebra only
- Sees plaintext only as proof-verified revealed results

Execution Model:
Every public entry point runs to completion under one lock, so calls are
totally ordered and no caller observes a partial update.
"""

from typing import Any, Dict, List, Optional, Tuple
import threading

from fhe_core.ciphertext import CiphertextAlgebra, EncryptedValue
from fhe_core.security_logger import SecurityLogger
from coordinator.authorization import AuthorizationPolicy
from coordinator.callback_verifier import CallbackVerifier
from coordinator.config import LedgerConfig
from coordinator.decryption_broker import CorrelationTable, DecryptionBroker
from coordinator.events import EventBus
from coordinator.oracle_interface import CallbackHandler, DecryptionOracle, RevealRoute
from coordinator.result_store import RevealedResult, ResultStore
from coordinator.session_intake import EncryptedSession, SessionIntake
from coordinator.window_aggregator import AggregatedWindowMetrics, WindowAggregator


class ChargingLedger:
    """
    Facade over intake, aggregation, request brokering and callback
    verification.

    Each table has exactly one writer:
    - sessions: SessionIntake
    - window aggregates: WindowAggregator
    - correlations: DecryptionBroker
    - revealed results: CallbackVerifier
    """

    def __init__(self,
                 algebra: CiphertextAlgebra,
                 oracle: DecryptionOracle,
                 config: Optional[LedgerConfig] = None,
                 authorization: Optional[AuthorizationPolicy] = None,
                 security_logger: Optional[SecurityLogger] = None,
                 events: Optional[EventBus] = None,
                 allow_private_algebra: bool = False):
        """
        Initialize the ledger.

        Args:
            algebra: PUBLIC ciphertext algebra (no secret key!)
            oracle: External decryption oracle
            config: Ledger configuration (delivery policy, allow-list)
            authorization: Overrides the policy built from config
            security_logger: Security audit logger
            events: Notification bus (a private one is created if omitted)
            allow_private_algebra: Permit an algebra that can decrypt
                (plaintext baselines only)
        """
        if algebra.is_private() and not allow_private_algebra:
            raise ValueError("Ledger received secret key - security violation!")

        self.config = config or LedgerConfig()
        self.algebra = algebra
        self.oracle = oracle
        self.logger = security_logger
        self.events = events or EventBus()
        self.authorization = authorization or self.config.build_authorization_policy()

        self._lock = threading.RLock()

        self.intake = SessionIntake(self.events, security_logger)
        self.aggregator = WindowAggregator(algebra, security_logger)
        self.correlations = CorrelationTable()
        self.results = ResultStore()
        self.verifier = CallbackVerifier(
            oracle,
            self.correlations,
            self.results,
            self.events,
            delivery_policy=self.config.delivery_policy,
            security_logger=security_logger
        )
        self.broker = DecryptionBroker(
            algebra,
            oracle,
            self.aggregator,
            self.correlations,
            self._handler_for,
            self.authorization,
            self.events,
            security_logger
        )

    # ==================== INTAKE / AGGREGATION ====================

    def submit_session(self,
                       encrypted_station_id: EncryptedValue,
                       encrypted_start_bucket: EncryptedValue,
                       encrypted_duration_bucket: EncryptedValue,
                       encrypted_energy: EncryptedValue) -> int:
        with self._lock:
            return self.intake.submit(
                encrypted_station_id,
                encrypted_start_bucket,
                encrypted_duration_bucket,
                encrypted_energy
            )

    def accumulate(self,
                   window_key: str,
                   encrypted_count_delta: EncryptedValue,
                   encrypted_magnitude_delta: EncryptedValue):
        with self._lock:
            self.aggregator.accumulate(window_key, encrypted_count_delta, encrypted_magnitude_delta)

    # ==================== DECRYPTION REQUESTS ====================

    def request_forecast(self, window_key: str) -> int:
        with self._lock:
            return self.broker.request_forecast(window_key)

    def request_load_balance(self, window_key: str, encrypted_priority: EncryptedValue) -> int:
        with self._lock:
            return self.broker.request_load_balance(window_key, encrypted_priority)

    def request_site_suggestion(self,
                                caller: Optional[str],
                                region_key: str,
                                encrypted_demand: EncryptedValue,
                                encrypted_station_count: EncryptedValue) -> int:
        with self._lock:
            return self.broker.request_site_suggestion(
                caller, region_key, encrypted_demand, encrypted_station_count
            )

    # ==================== ORACLE CALLBACKS ====================

    def deliver(self,
                route: RevealRoute,
                request_id: int,
                cleartexts: bytes,
                proof: bytes) -> RevealedResult:
        with self._lock:
            return self.verifier.deliver(route, request_id, cleartexts, proof)

    def deliver_forecast(self, request_id: int, cleartexts: bytes, proof: bytes) -> RevealedResult:
        return self.deliver(RevealRoute.FORECAST, request_id, cleartexts, proof)

    def deliver_load_balance(self, request_id: int, cleartexts: bytes, proof: bytes) -> RevealedResult:
        return self.deliver(RevealRoute.LOAD_BALANCE, request_id, cleartexts, proof)

    def deliver_site_suggestion(self, request_id: int, cleartexts: bytes, proof: bytes) -> RevealedResult:
        return self.deliver(RevealRoute.SITE_SUGGESTION, request_id, cleartexts, proof)

    def _handler_for(self, route: RevealRoute) -> CallbackHandler:
        return {
            RevealRoute.FORECAST: self.deliver_forecast,
            RevealRoute.LOAD_BALANCE: self.deliver_load_balance,
            RevealRoute.SITE_SUGGESTION: self.deliver_site_suggestion,
        }[route]

    # ==================== READS ====================

    def get_result(self, request_id: int) -> Tuple[str, str, bool]:
        with self._lock:
            return self.results.get_result(request_id)

    def get_session(self, session_id: int) -> Optional[EncryptedSession]:
        with self._lock:
            return self.intake.get_session(session_id)

    def list_sessions(self, offset: int = 0, limit: Optional[int] = None) -> List[EncryptedSession]:
        with self._lock:
            return self.intake.list_sessions(offset, limit)

    def session_count(self) -> int:
        with self._lock:
            return self.intake.session_count()

    def get_window(self, window_key: str) -> AggregatedWindowMetrics:
        with self._lock:
            return self.aggregator.get_metrics(window_key)

    def pending_requests(self) -> List[Dict[str, Any]]:
        """Correlated requests with no revealed result yet"""
        with self._lock:
            return [
                {
                    'request_id': request_id,
                    'context_key': c.context_key,
                    'route': c.route.value,
                    'requested_at': c.requested_at
                }
                for request_id, c in self.correlations.items()
                if not self.results.is_revealed(request_id)
            ]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'sessions': self.intake.session_count(),
                'aggregator': self.aggregator.get_stats(),
                'requests_issued': len(self.correlations),
                'results_revealed': len(self.results),
                'delivery_policy': self.config.delivery_policy.value,
                'can_decrypt': self.algebra.is_private()
            }
