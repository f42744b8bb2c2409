"""
Flight Oracle Relay Oracles Package

Oracle registration, request dispatch and response submission.
"""

from .registry import OracleRegistry
from .dispatcher import RequestDispatcher
from .submitter import ResponseSubmitter

__all__ = [
    "OracleRegistry",
    "RequestDispatcher",
    "ResponseSubmitter",
]
