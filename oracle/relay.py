"""
HTTP Callback Relay
===================
Delivers oracle callbacks to a ledger running in another process, through
its POST /oracle/callback/{route} endpoint.
"""

import base64
from typing import Optional

import httpx

from coordinator.oracle_interface import RevealRoute


class CallbackRelayError(Exception):
    """The remote ledger refused or failed a callback"""

    def __init__(self, status_code: int, detail):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Callback rejected with HTTP {status_code}: {detail}")


class HttpCallbackRelay:

    def __init__(self,
                 base_url: str = "http://127.0.0.1:8000",
                 client: Optional[httpx.Client] = None,
                 timeout: float = 10.0):
        """
        Args:
            base_url: Remote ledger server URL
            client: Preconfigured httpx client (tests pass a mock transport)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def deliver(self, route: RevealRoute, request_id: int, cleartexts: bytes, proof: bytes) -> dict:
        response = self.client.post(
            f"{self.base_url}/oracle/callback/{route.value}",
            json={
                'request_id': request_id,
                'cleartexts': base64.b64encode(cleartexts).decode('utf-8'),
                'proof': base64.b64encode(proof).decode('utf-8')
            }
        )
        if response.status_code >= 400:
            try:
                detail = response.json().get('detail')
            except ValueError:
                detail = response.text
            raise CallbackRelayError(response.status_code, detail)
        return response.json()

    def close(self):
        if self._owns_client:
            self.client.close()
