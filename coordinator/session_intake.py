"""
Session Intake
==============
Accepts one encrypted charging-session record per call and stores it
verbatim. Plaintext content is never validated - it cannot be.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from fhe_core.ciphertext import EncryptedValue
from fhe_core.security_logger import SecurityLogger
from coordinator.events import EventBus, EventType


@dataclass(frozen=True)
class EncryptedSession:
    """One submitted charging session. Immutable once stored."""
    id: int
    encrypted_station_id: EncryptedValue
    encrypted_start_bucket: EncryptedValue
    encrypted_duration_bucket: EncryptedValue
    encrypted_energy: EncryptedValue
    submitted_at: str

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'encrypted_station_id': self.encrypted_station_id.to_dict(),
            'encrypted_start_bucket': self.encrypted_start_bucket.to_dict(),
            'encrypted_duration_bucket': self.encrypted_duration_bucket.to_dict(),
            'encrypted_energy': self.encrypted_energy.to_dict(),
            'submitted_at': self.submitted_at
        }

    def size_kb(self) -> float:
        return sum(v.get_size_kb() for v in (
            self.encrypted_station_id,
            self.encrypted_start_bucket,
            self.encrypted_duration_bucket,
            self.encrypted_energy,
        ))


class SessionIntake:
    """Append-only store of encrypted sessions with sequential ids starting at 1"""

    def __init__(self,
                 events: EventBus,
                 security_logger: Optional[SecurityLogger] = None):
        self.events = events
        self.logger = security_logger
        self._sessions: Dict[int, EncryptedSession] = {}
        self._last_id = 0

    def submit(self,
               encrypted_station_id: EncryptedValue,
               encrypted_start_bucket: EncryptedValue,
               encrypted_duration_bucket: EncryptedValue,
               encrypted_energy: EncryptedValue) -> int:
        """
        Store an encrypted session.

        Returns:
            The new session id
        """
        session = EncryptedSession(
            id=self._last_id + 1,
            encrypted_station_id=encrypted_station_id,
            encrypted_start_bucket=encrypted_start_bucket,
            encrypted_duration_bucket=encrypted_duration_bucket,
            encrypted_energy=encrypted_energy,
            submitted_at=datetime.now().isoformat()
        )
        self._sessions[session.id] = session
        self._last_id = session.id

        if self.logger:
            self.logger.log_session_submitted(session.id, session.size_kb())

        self.events.emit(EventType.SESSION_SUBMITTED, id=session.id, time=session.submitted_at)
        return session.id

    def get_session(self, session_id: int) -> Optional[EncryptedSession]:
        return self._sessions.get(session_id)

    def list_sessions(self, offset: int = 0, limit: Optional[int] = None) -> List[EncryptedSession]:
        ids = sorted(self._sessions)[offset:]
        if limit is not None:
            ids = ids[:limit]
        return [self._sessions[i] for i in ids]

    def session_count(self) -> int:
        return len(self._sessions)
