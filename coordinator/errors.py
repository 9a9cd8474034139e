"""
Ledger Error Taxonomy
=====================
Every rejection the ledger can surface. All are fail-fast: when one is
raised, no state has been mutated.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for ledger rejections"""
    error_code = "LEDGER_ERROR"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error_code': self.error_code,
            'message': self.message,
            'retryable': self.retryable,
            'details': self.details
        }


class NoMetricsForWindow(LedgerError):
    """Reveal requested for a window that has no contributions yet"""
    error_code = "NO_METRICS_FOR_WINDOW"

    def __init__(self, window_key: str):
        super().__init__(f"No metrics recorded for window {window_key}",
                         {'window_key': window_key})


class UnknownRequest(LedgerError):
    """Callback for a request id this ledger never correlated"""
    error_code = "UNKNOWN_REQUEST"

    def __init__(self, request_id: int):
        super().__init__(f"Unknown decryption request {request_id}",
                         {'request_id': request_id})


class InvalidProof(LedgerError):
    """Oracle proof of decryption did not verify"""
    error_code = "INVALID_PROOF"

    def __init__(self, request_id: int):
        super().__init__(f"Decryption proof rejected for request {request_id}",
                         {'request_id': request_id})


class DecodeError(LedgerError):
    """Cleartext payload is not an ordered [label, payload] pair of strings"""
    error_code = "DECODE_ERROR"

    def __init__(self, request_id: int, reason: str):
        super().__init__(f"Malformed cleartexts for request {request_id}: {reason}",
                         {'request_id': request_id, 'reason': reason})


class DuplicateDelivery(LedgerError):
    """Second delivery for an already revealed request (single-delivery policy)"""
    error_code = "DUPLICATE_DELIVERY"

    def __init__(self, request_id: int):
        super().__init__(f"Request {request_id} has already been revealed",
                         {'request_id': request_id})


class Unauthorized(LedgerError):
    """Caller is not permitted to use a privileged entry point"""
    error_code = "UNAUTHORIZED"

    def __init__(self, caller: Optional[str], action: str):
        super().__init__(f"Caller {caller!r} is not authorized for {action}",
                         {'caller': caller, 'action': action})
