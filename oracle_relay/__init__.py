"""
Flight Oracle Relay - Multi-Oracle Responder for FlightSurety

This package listens for OracleRequest events emitted by the FlightSurety
application contract, fans each request out to a pool of registered oracle
identities, and has every oracle submit an independent status response.

Modules:
    - ledger: Ledger gateway interface, in-memory mock, web3 implementation
    - oracles: Registration, request dispatch and response submission
    - relay: RelayService wiring and the console entry point
    - config: Environment-driven configuration
"""

from .relay import RelayService

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = ["RelayService"]
