"""
Cleartext wire format between the oracle and the ledger.

Cleartexts are an ordered pair of strings, [label, payload], encoded as a
compact UTF-8 JSON array. Order is part of the contract.
"""

import json
from typing import Tuple


def encode_cleartexts(label: str, payload: str) -> bytes:
    return json.dumps([label, payload], separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def decode_cleartexts(cleartexts: bytes) -> Tuple[str, str]:
    """
    Decode [label, payload].

    Raises:
        ValueError: If the bytes are not a JSON array of exactly two strings
    """
    try:
        decoded = json.loads(cleartexts.decode('utf-8'))
    except UnicodeDecodeError as e:
        raise ValueError(f"cleartexts are not UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"cleartexts are not JSON: {e}") from e

    if not isinstance(decoded, list) or len(decoded) != 2:
        raise ValueError("expected an ordered list of two strings")

    label, payload = decoded
    if not isinstance(label, str) or not isinstance(payload, str):
        raise ValueError("label and payload must both be strings")

    return label, payload
