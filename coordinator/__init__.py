"""
Private Charging Ledger - Coordinator Module
"""
from .charging_ledger import ChargingLedger
from .window_aggregator import (
    WindowAggregator,
    AggregatedWindowMetrics,
    window_key_for,
    region_key_for,
)
from .session_intake import SessionIntake, EncryptedSession
from .decryption_broker import DecryptionBroker, CorrelationTable, Correlation
from .callback_verifier import CallbackVerifier
from .result_store import ResultStore, RevealedResult
from .oracle_interface import DecryptionOracle, CallbackReference, RevealRoute
from .cleartext_codec import encode_cleartexts, decode_cleartexts
from .authorization import AuthorizationPolicy, AllowAllPolicy, AllowListPolicy
from .config import LedgerConfig, ServerConfig, DeliveryPolicy
from .events import EventBus, EventType, LedgerEvent
from .errors import (
    LedgerError,
    NoMetricsForWindow,
    UnknownRequest,
    InvalidProof,
    DecodeError,
    DuplicateDelivery,
    Unauthorized,
)

__all__ = [
    'ChargingLedger',
    'WindowAggregator', 'AggregatedWindowMetrics', 'window_key_for', 'region_key_for',
    'SessionIntake', 'EncryptedSession',
    'DecryptionBroker', 'CorrelationTable', 'Correlation',
    'CallbackVerifier', 'ResultStore', 'RevealedResult',
    'DecryptionOracle', 'CallbackReference', 'RevealRoute',
    'encode_cleartexts', 'decode_cleartexts',
    'AuthorizationPolicy', 'AllowAllPolicy', 'AllowListPolicy',
    'LedgerConfig', 'ServerConfig', 'DeliveryPolicy',
    'EventBus', 'EventType', 'LedgerEvent',
    'LedgerError', 'NoMetricsForWindow', 'UnknownRequest', 'InvalidProof',
    'DecodeError', 'DuplicateDelivery', 'Unauthorized',
]
