"""
Security Logger for the Private Charging Ledger
===============================================
Provides an audit trail proving the ledger never handles plaintext metrics.

Purpose:
- Log all operations with encrypted vs plaintext classification
- Prove to auditors that the ledger only handles ciphertext until a
  proof-verified result is revealed
- Detect any security violations
"""

import json
from datetime import datetime
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
import threading


LEDGER_ENTITY = 'ledger'
ORACLE_ENTITY = 'oracle'


class DataType(Enum):
    """Classification of data handled in an operation"""
    CIPHERTEXT = "ciphertext"      # Encrypted data - safe
    PLAINTEXT = "plaintext"        # Raw data - privacy risk
    PUBLIC_PARAM = "public_param"  # Public parameters (keys, ids) - safe
    METADATA = "metadata"          # Non-sensitive metadata - safe
    REVEALED = "revealed"          # Proof-verified oracle output - authorized


class OperationType(Enum):
    """Types of operations in the system"""
    SUBMIT = "submit"
    ACCUMULATE = "accumulate"
    REQUEST_DECRYPTION = "request_decryption"
    DECRYPT = "decrypt"
    VERIFY_PROOF = "verify_proof"
    DELIVER = "deliver"
    REJECT = "reject"


@dataclass
class SecurityLogEntry:
    """Single security audit log entry"""
    timestamp: str
    entity: str          # 'ledger', 'oracle', submitter id
    operation: str
    data_types: List[str]
    is_safe: bool        # True if no plaintext exposure
    details: Dict[str, Any]
    sequence_id: int

    def to_dict(self) -> dict:
        return asdict(self)


class SecurityLogger:
    """
    Append-only audit log for proving privacy preservation.

    The ledger should ONLY have entries without PLAINTEXT data type.
    Any PLAINTEXT entry for the ledger indicates a security violation.
    """

    def __init__(self, log_file: Optional[str] = None):
        """
        Initialize security logger.

        Args:
            log_file: Optional file path to persist logs (JSON lines)
        """
        self._entries: List[SecurityLogEntry] = []
        self._lock = threading.Lock()
        self._sequence = 0
        self.log_file = Path(log_file) if log_file else None

        if self.log_file and self.log_file.exists():
            self._load_from_file()

    def log(self,
            entity: str,
            operation: OperationType,
            data_types: List[DataType],
            details: Dict[str, Any] = None) -> SecurityLogEntry:
        """
        Log a security-relevant operation.

        Args:
            entity: Who performed the operation ('ledger', 'oracle', ...)
            operation: Type of operation performed
            data_types: Types of data involved in the operation
            details: Additional context for the operation

        Returns:
            The created log entry
        """
        with self._lock:
            self._sequence += 1

            is_safe = not (entity == LEDGER_ENTITY and DataType.PLAINTEXT in data_types)

            entry = SecurityLogEntry(
                timestamp=datetime.now().isoformat(),
                entity=entity,
                operation=operation.value,
                data_types=[dt.value for dt in data_types],
                is_safe=is_safe,
                details=details or {},
                sequence_id=self._sequence
            )

            self._entries.append(entry)

            if self.log_file:
                self._append_to_file(entry)

            return entry

    def log_session_submitted(self, session_id: int, ciphertext_size_kb: float) -> SecurityLogEntry:
        return self.log(
            entity=LEDGER_ENTITY,
            operation=OperationType.SUBMIT,
            data_types=[DataType.CIPHERTEXT, DataType.METADATA],
            details={'session_id': session_id, 'ciphertext_size_kb': round(ciphertext_size_kb, 2)}
        )

    def log_window_accumulate(self, window_key: str, initialized: bool) -> SecurityLogEntry:
        """Log the ledger folding a contribution into a window"""
        return self.log(
            entity=LEDGER_ENTITY,
            operation=OperationType.ACCUMULATE,
            data_types=[DataType.CIPHERTEXT, DataType.PUBLIC_PARAM],
            details={
                'window_key': window_key,
                'operation': 'homomorphic_sum' if initialized else 'initialize'
            }
        )

    def log_decryption_requested(self, request_id: int, route: str, context_key: str,
                                 handle_count: int) -> SecurityLogEntry:
        return self.log(
            entity=LEDGER_ENTITY,
            operation=OperationType.REQUEST_DECRYPTION,
            data_types=[DataType.CIPHERTEXT, DataType.PUBLIC_PARAM],
            details={
                'request_id': request_id,
                'route': route,
                'context_key': context_key,
                'handle_count': handle_count
            }
        )

    def log_oracle_decrypt(self, request_id: int, handle_count: int) -> SecurityLogEntry:
        """Log the oracle decrypting (authorized, holds the secret key)"""
        return self.log(
            entity=ORACLE_ENTITY,
            operation=OperationType.DECRYPT,
            data_types=[DataType.CIPHERTEXT, DataType.PLAINTEXT],
            details={'request_id': request_id, 'handle_count': handle_count, 'authorized': True}
        )

    def log_oracle_failure(self, request_id: int, reason: str) -> SecurityLogEntry:
        """Log the oracle refusing to sign a request it could not decrypt"""
        return self.log(
            entity=ORACLE_ENTITY,
            operation=OperationType.REJECT,
            data_types=[DataType.CIPHERTEXT],
            details={'request_id': request_id, 'reason': reason}
        )

    def log_proof_verified(self, request_id: int, valid: bool) -> SecurityLogEntry:
        return self.log(
            entity=LEDGER_ENTITY,
            operation=OperationType.VERIFY_PROOF,
            data_types=[DataType.PUBLIC_PARAM],
            details={'request_id': request_id, 'valid': valid}
        )

    def log_result_delivered(self, request_id: int, route: str, context_key: str) -> SecurityLogEntry:
        """Log the ledger committing a proof-verified result"""
        return self.log(
            entity=LEDGER_ENTITY,
            operation=OperationType.DELIVER,
            data_types=[DataType.REVEALED, DataType.PUBLIC_PARAM],
            details={'request_id': request_id, 'route': route, 'context_key': context_key}
        )

    def log_rejected(self, operation: str, reason: str, details: Dict[str, Any] = None) -> SecurityLogEntry:
        return self.log(
            entity=LEDGER_ENTITY,
            operation=OperationType.REJECT,
            data_types=[DataType.METADATA],
            details={'rejected_operation': operation, 'reason': reason, **(details or {})}
        )

    def get_all_entries(self) -> List[SecurityLogEntry]:
        return list(self._entries)

    def get_entries_for_entity(self, entity: str) -> List[SecurityLogEntry]:
        return [e for e in self._entries if e.entity == entity]

    def get_violations(self) -> List[SecurityLogEntry]:
        return [e for e in self._entries if not e.is_safe]

    def verify_no_violations(self) -> bool:
        return len(self.get_violations()) == 0

    def get_ledger_summary(self) -> Dict[str, Any]:
        """
        Get summary of ledger operations for audit.

        This proves the ledger never accessed plaintext.
        """
        ledger_entries = self.get_entries_for_entity(LEDGER_ENTITY)

        data_types_seen = set()
        for entry in ledger_entries:
            data_types_seen.update(entry.data_types)

        return {
            'total_operations': len(ledger_entries),
            'data_types_handled': sorted(data_types_seen),
            'plaintext_access': DataType.PLAINTEXT.value in data_types_seen,
            'violations': len([e for e in ledger_entries if not e.is_safe]),
            'privacy_preserved': DataType.PLAINTEXT.value not in data_types_seen
        }

    def generate_audit_report(self) -> Dict[str, Any]:
        """Generate comprehensive audit report for compliance reviews"""
        ledger_summary = self.get_ledger_summary()

        return {
            'report_generated': datetime.now().isoformat(),
            'total_log_entries': len(self._entries),
            'entities': sorted(set(e.entity for e in self._entries)),
            'ledger_privacy_audit': ledger_summary,
            'security_violations': [e.to_dict() for e in self.get_violations()],
            'conclusion': (
                "PRIVACY PRESERVED: Ledger never accessed plaintext data."
                if ledger_summary['privacy_preserved']
                else "PRIVACY VIOLATION: Ledger accessed plaintext data!"
            )
        }

    def _append_to_file(self, entry: SecurityLogEntry):
        with open(self.log_file, 'a') as f:
            f.write(json.dumps(entry.to_dict()) + '\n')

    def _load_from_file(self):
        with open(self.log_file, 'r') as f:
            for line in f:
                if line.strip():
                    data = json.loads(line)
                    self._entries.append(SecurityLogEntry(**data))
                    self._sequence = max(self._sequence, data['sequence_id'])

    def clear(self):
        """Clear all entries (for testing)"""
        with self._lock:
            self._entries.clear()
            self._sequence = 0
            if self.log_file and self.log_file.exists():
                self.log_file.unlink()

    def to_display_format(self, max_entries: int = 50) -> List[Dict[str, Any]]:
        """
        Convert entries to display format for dashboard.

        - green: ledger ciphertext-only operation
        - blue: oracle operation (authorized decryption)
        - yellow: rejection
        - red: violation (ledger saw plaintext)
        """
        display = []
        for e in self._entries[-max_entries:]:
            if not e.is_safe:
                color, icon = 'red', '🚨'
            elif e.operation == OperationType.REJECT.value:
                color, icon = 'yellow', '⛔'
            elif e.entity == LEDGER_ENTITY:
                color, icon = 'green', '🔒'
            elif e.entity == ORACLE_ENTITY:
                color, icon = 'blue', '⚡'
            else:
                color, icon = 'gray', '📝'

            display.append({
                'time': e.timestamp.split('T')[1][:8],
                'icon': icon,
                'color': color,
                'entity': e.entity,
                'operation': e.operation,
                'safe': e.is_safe,
                'details': e.details
            })

        return display
