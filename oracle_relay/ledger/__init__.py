"""
Flight Oracle Relay Ledger Package

Gateway to the ledger hosting the application contract.
"""

from .gateway import LedgerGateway, MockLedgerGateway, Subscription

__all__ = [
    "LedgerGateway",
    "MockLedgerGateway",
    "Subscription",
]
