"""
Result Store
============
Revealed, proof-verified results keyed by decryption request id.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class RevealedResult:
    label: str = ""
    payload: str = ""
    revealed: bool = False

    def as_tuple(self) -> Tuple[str, str, bool]:
        return self.label, self.payload, self.revealed

    def to_dict(self) -> dict:
        return {'label': self.label, 'payload': self.payload, 'revealed': self.revealed}


EMPTY_RESULT = RevealedResult()


class ResultStore:
    """Written only by the callback verifier; read by everyone else"""

    def __init__(self):
        self._results: Dict[int, RevealedResult] = {}
        self._delivery_counts: Dict[int, int] = {}

    def get_result(self, request_id: int) -> Tuple[str, str, bool]:
        """(label, payload, revealed); ("", "", False) if nothing delivered yet"""
        return self._results.get(request_id, EMPTY_RESULT).as_tuple()

    def get(self, request_id: int) -> Optional[RevealedResult]:
        return self._results.get(request_id)

    def is_revealed(self, request_id: int) -> bool:
        return self._results.get(request_id, EMPTY_RESULT).revealed

    def commit(self, request_id: int, label: str, payload: str) -> RevealedResult:
        """Write a revealed result, replacing any earlier one"""
        result = RevealedResult(label=label, payload=payload, revealed=True)
        self._results[request_id] = result
        self._delivery_counts[request_id] = self._delivery_counts.get(request_id, 0) + 1
        return result

    def delivery_count(self, request_id: int) -> int:
        return self._delivery_counts.get(request_id, 0)

    def revealed_ids(self) -> List[int]:
        return sorted(self._results)

    def __len__(self) -> int:
        return len(self._results)
