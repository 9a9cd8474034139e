"""
Server Module - HTTP surface of the private charging ledger
"""

from .server import app, ChargingLedgerServer, run_server

__all__ = [
    'app',
    'ChargingLedgerServer',
    'run_server'
]
